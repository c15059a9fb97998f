"""Shared types for guard rules and the rule engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Literal, Optional, Protocol, Union

GuardMode = Literal["pre-commit", "pre-push", "manual"]
Action = Literal["warn", "error"]

GUARD_MODES: tuple[str, ...] = ("pre-commit", "pre-push", "manual")
ACTIONS: tuple[str, ...] = ("warn", "error")


@dataclass
class Annotation:
    """A warning or failure reported by a rule."""

    name: str
    message: str
    files: Optional[list[str]] = None
    meta: Optional[dict[str, Any]] = None

    def to_json(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name, "message": self.message}
        if self.files:
            result["files"] = list(self.files)
        if self.meta:
            result["meta"] = dict(self.meta)
        return result


@dataclass
class RunResult:
    """Aggregated outcome of one engine run."""

    warnings: list[Annotation] = field(default_factory=list)
    failures: list[Annotation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when nothing failed. Warnings never make a run fail."""
        return not self.failures


Sink = Callable[..., None]


@dataclass(frozen=True)
class RuleContext:
    """Per-run context handed to each rule.

    ``warn`` and ``fail`` take ``(name, message, files=None, meta=None)``.
    """

    mode: GuardMode
    cwd: str
    warn: Sink
    fail: Sink


class Rule(Protocol):
    """Anything with a name and a ``run(ctx)`` method."""

    name: str

    def run(self, ctx: RuleContext) -> Union[None, Awaitable[None]]:
        ...
