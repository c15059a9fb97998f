"""Reject staged files that fall outside the allowed directories."""

from __future__ import annotations

from dataclasses import dataclass, field

from scripts.depfence import git
from scripts.depfence.globs import GlobSet, compile_globs, matches, normalize_path
from scripts.depfence.models import RuleContext
from scripts.depfence.rules.base import GuardRule, validate_action


@dataclass
class AllowedDirsRule(GuardRule):
    allow: list[str]
    action: str = "error"
    name: str = field(default="allowed-dirs", init=False)
    _allow_set: GlobSet = field(init=False, repr=False)

    def __post_init__(self) -> None:
        validate_action(self.action)
        self._allow_set = compile_globs(self.allow)

    def run(self, ctx: RuleContext) -> None:
        staged = [normalize_path(f) for f in git.staged_files(ctx.cwd)]
        if not staged:
            return

        outside = [f for f in staged if not matches(f, self._allow_set)]
        if outside:
            self.report(ctx, "Staged files outside allowed directories were found.", files=outside)


def allowed_dirs_rule(allow: list[str], action: str = "error") -> AllowedDirsRule:
    return AllowedDirsRule(allow=list(allow), action=action)
