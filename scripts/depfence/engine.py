"""Run guard rules in order and collect their annotations."""

from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from scripts.depfence.models import Annotation, GuardMode, Rule, RuleContext, RunResult

logger = logging.getLogger(__name__)


def run_rules(rules: Iterable[Rule], mode: GuardMode, cwd: Optional[Path | str] = None) -> RunResult:
    """Run every rule against a shared context.

    Rules run strictly in the given order. An exception raised by a rule is
    recorded as a failure under that rule's name and the remaining rules still
    run.

    Args:
        rules: Rules to evaluate.
        mode: ``pre-commit``, ``pre-push`` or ``manual``.
        cwd: Repository working directory. Defaults to the current directory.

    Returns:
        RunResult with warnings and failures in report order.
    """
    result = RunResult()

    def warn(name: str, message: str, files: Optional[list[str]] = None,
             meta: Optional[dict[str, Any]] = None) -> None:
        result.warnings.append(Annotation(name, message, files, meta))

    def fail(name: str, message: str, files: Optional[list[str]] = None,
             meta: Optional[dict[str, Any]] = None) -> None:
        result.failures.append(Annotation(name, message, files, meta))

    ctx = RuleContext(
        mode=mode,
        cwd=str(cwd if cwd is not None else Path.cwd()),
        warn=warn,
        fail=fail,
    )

    for rule in rules:
        name = getattr(rule, "name", type(rule).__name__)
        logger.debug("running rule %s (mode=%s)", name, mode)
        try:
            outcome = rule.run(ctx)
            if inspect.iscoroutine(outcome):
                asyncio.run(outcome)
        except Exception as e:
            logger.debug("rule %s raised", name, exc_info=True)
            result.failures.append(Annotation(name, str(e) or type(e).__name__))
            continue
        logger.debug("rule %s finished", name)

    return result
