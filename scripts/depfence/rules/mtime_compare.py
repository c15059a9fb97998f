"""Flag files in group A that changed after every file in group B.

Typical use: ``group_b`` holds a config or manifest that must be touched
whenever sources in ``group_a`` change. Any A file newer than the newest B
file (plus a tolerance for coarse timestamps) is reported.

Known limitation: a fresh clone or checkout stamps every file with the
checkout time, so the comparison carries no signal until files are edited.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from scripts.depfence import git
from scripts.depfence.globs import GlobSet, compile_globs, matches
from scripts.depfence.models import RuleContext
from scripts.depfence.rules.base import GuardRule, validate_action

DEFAULT_EPSILON_MS = 1500


@dataclass
class MtimeCompareRule(GuardRule):
    group_a: list[str]
    group_b: list[str]
    action: str = "error"
    epsilon_ms: float = DEFAULT_EPSILON_MS
    only_tracked: bool = True
    name: str = field(default="mtime-compare", init=False)
    _set_a: GlobSet = field(init=False, repr=False)
    _set_b: GlobSet = field(init=False, repr=False)

    def __post_init__(self) -> None:
        validate_action(self.action)
        if self.epsilon_ms < 0:
            raise ValueError(f"epsilon_ms must be >= 0, got {self.epsilon_ms}")
        self._set_a = compile_globs(self.group_a)
        self._set_b = compile_globs(self.group_b)

    def run(self, ctx: RuleContext) -> None:
        root = git.repo_root(ctx.cwd)
        files = git.tracked_files(ctx.cwd) if self.only_tracked else git.working_files(ctx.cwd)

        max_b = None
        for rel in files:
            if not matches(rel, self._set_b):
                continue
            mtime = git.file_mtime_ms(root, rel)
            if mtime is not None and (max_b is None or mtime > max_b):
                max_b = mtime

        if max_b is None:
            return

        newer = []
        for rel in files:
            if not matches(rel, self._set_a):
                continue
            mtime = git.file_mtime_ms(root, rel)
            if mtime is not None and mtime > max_b + self.epsilon_ms:
                newer.append(rel)

        if newer:
            stamp = datetime.fromtimestamp(max_b / 1000, tz=timezone.utc).isoformat()
            self.report(
                ctx,
                f"Files in groupA are newer than groupB (maxB={stamp}).",
                files=newer,
                meta={"maxB": max_b, "epsilonMs": self.epsilon_ms},
            )


def mtime_compare_rule(
    group_a: list[str],
    group_b: list[str],
    action: str = "error",
    epsilon_ms: float = DEFAULT_EPSILON_MS,
    only_tracked: bool = True,
) -> MtimeCompareRule:
    return MtimeCompareRule(
        group_a=list(group_a),
        group_b=list(group_b),
        action=action,
        epsilon_ms=epsilon_ms,
        only_tracked=only_tracked,
    )
