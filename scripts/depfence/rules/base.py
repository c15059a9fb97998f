"""Common behaviour for the built-in guard rules."""

from __future__ import annotations

from typing import Any, Optional

from scripts.depfence.models import ACTIONS, RuleContext


def validate_action(action: str) -> str:
    if action not in ACTIONS:
        raise ValueError(f"action must be one of {', '.join(ACTIONS)}, got {action!r}")
    return action


class GuardRule:
    """Mixin giving rules an ``action``-aware ``report``.

    Subclasses are dataclasses that define ``name`` and an ``action`` field.
    """

    name: str = "rule"
    action: str = "error"

    def report(
        self,
        ctx: RuleContext,
        message: str,
        files: Optional[list[str]] = None,
        meta: Optional[dict[str, Any]] = None,
    ) -> None:
        sink = ctx.warn if self.action == "warn" else ctx.fail
        sink(self.name, message, files=files, meta=meta)
