"""Warn when someone else changed watched files upstream since we branched.

This is an early merge-conflict signal: commits that landed on the
comparison ref after the merge-base with ``HEAD``, authored by someone outside
the allow list and touching a watched path, are reported.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from scripts.depfence import git
from scripts.depfence.globs import GlobSet, compile_globs, filter_matching
from scripts.depfence.models import RuleContext
from scripts.depfence.rules.base import GuardRule, validate_action

# Tried in order when neither base_ref nor an upstream is available
DEFAULT_BASE_REFS = ("origin/main", "origin/master")


@dataclass
class UpstreamConflictRule(GuardRule):
    watch: list[str]
    base_ref: Optional[str] = None
    allowed_authors: Optional[list[str]] = None
    action: str = "error"
    name: str = field(default="upstream-conflict", init=False)
    _watch_set: GlobSet = field(init=False, repr=False)

    def __post_init__(self) -> None:
        validate_action(self.action)
        self._watch_set = compile_globs(self.watch)

    def _comparison_ref(self, cwd: str) -> Optional[str]:
        if self.base_ref:
            return self.base_ref
        upstream = git.upstream_ref(cwd)
        if upstream:
            return upstream
        for candidate in DEFAULT_BASE_REFS:
            if git.remote_branch_exists(candidate, cwd):
                return candidate
        return None

    def _allowed(self, cwd: str) -> set[str]:
        if self.allowed_authors:
            return {a.lower() for a in self.allowed_authors}
        me = git.user_email(cwd)
        return {me.lower()} if me else set()

    def run(self, ctx: RuleContext) -> None:
        cwd = ctx.cwd
        upstream = self._comparison_ref(cwd)
        if not upstream:
            return
        base = git.merge_base("HEAD", upstream, cwd)
        if not base:
            return

        commits = git.exclusive_commits(base, upstream, cwd)
        if not commits:
            return

        allowed = self._allowed(cwd)
        offenders = []
        for commit in commits:
            author = (git.commit_author_email(commit, cwd) or "").lower()
            if author in allowed:
                continue
            hit = filter_matching(git.commit_changed_files(commit, cwd), self._watch_set)
            if hit:
                offenders.append((commit, author, hit))

        if offenders:
            # dict keeps first-seen order
            files = list(dict.fromkeys(f for _, _, hit in offenders for f in hit))
            self.report(
                ctx,
                f"Upstream has commits by other authors touching protected files since base ({upstream}).",
                files=files,
                meta={
                    "upstream": upstream,
                    "count": len(offenders),
                    "commits": [{"commit": c, "author": a} for c, a, _ in offenders],
                },
            )


def upstream_conflict_rule(
    watch: list[str],
    base_ref: Optional[str] = None,
    allowed_authors: Optional[list[str]] = None,
    action: str = "error",
) -> UpstreamConflictRule:
    return UpstreamConflictRule(
        watch=list(watch),
        base_ref=base_ref,
        allowed_authors=list(allowed_authors) if allowed_authors else None,
        action=action,
    )
