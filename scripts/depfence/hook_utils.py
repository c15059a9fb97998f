"""
Output and failure handling for the dep-fence hook commands.

Hook commands talk to the person pushing or committing through
``[dep-fence]``-prefixed lines on stderr. When ``DEP_FENCE_LOG_FILE`` names a
file, every message, annotation and rejection is also appended to it as one
JSON object per line, together with the start and end of each hook run.
"""

from __future__ import annotations

import functools
import json
import os
import sys
import time
import traceback
from contextvars import ContextVar
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

HOOK_PREFIX = "[dep-fence]"

LOG_FILE_ENV_VAR = "DEP_FENCE_LOG_FILE"
DEBUG_ENV_VAR = "DEP_FENCE_DEBUG"

EXIT_BLOCKED = 2
EXIT_INTERRUPTED = 130


@dataclass
class HookContext:
    """State of the hook run in progress: where to log and what is running."""
    log_file: Optional[str] = None
    hook_name: Optional[str] = None
    start_time: Optional[float] = None


_context: ContextVar[Optional[HookContext]] = ContextVar("depfence_hook_context", default=None)


def init_context(log_file: Optional[str] = None) -> HookContext:
    """
    Start a fresh context for the current hook process.

    Args:
        log_file: JSON-lines file to append to. None reads DEP_FENCE_LOG_FILE.
    """
    if log_file is None:
        log_file = os.environ.get(LOG_FILE_ENV_VAR) or None
    ctx = HookContext(log_file=log_file)
    _context.set(ctx)
    return ctx


def get_context() -> HookContext:
    ctx = _context.get()
    return ctx if ctx is not None else init_context()


def debug_enabled() -> bool:
    return bool(os.environ.get(DEBUG_ENV_VAR))


def log_record(level: str, message: str, **extra: Any) -> None:
    """Append one entry to the log file. Does nothing when no file is set."""
    ctx = get_context()
    if not ctx.log_file:
        return

    entry: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "message": message,
    }
    if ctx.hook_name:
        entry["hook"] = ctx.hook_name
    entry.update(extra)

    try:
        with open(ctx.log_file, "a", encoding="utf-8") as fh:
            fh.write(json.dumps(entry, default=str) + "\n")
    except OSError as e:
        # Log failures never change the exit code
        if debug_enabled():
            print(f"{HOOK_PREFIX} cannot write {ctx.log_file}: {e}", file=sys.stderr)


def log_error(message: str, **extra: Any) -> None:
    """Print a prefixed error line to stderr and record it in the log file."""
    print(f"{HOOK_PREFIX} ERROR: {message}", file=sys.stderr)
    log_record("ERROR", message, **extra)


def begin_run(hook_name: str) -> None:
    ctx = get_context()
    ctx.hook_name = hook_name
    ctx.start_time = time.monotonic()
    log_record("DEBUG", f"Hook started: {hook_name}")


def end_run(blocked: bool) -> None:
    """Record how the run ended and how long it took, then clear the run state."""
    ctx = get_context()
    if ctx.start_time is not None:
        elapsed = (time.monotonic() - ctx.start_time) * 1000
        log_record(
            "DEBUG",
            f"Hook completed: {ctx.hook_name}",
            duration_ms=round(elapsed, 2),
            blocked=blocked,
        )
    ctx.hook_name = None
    ctx.start_time = None


def graceful_hook(blocking: bool = False, name: Optional[str] = None) -> Callable:
    """
    Turn unexpected exceptions in a hook command into an exit code.

    The wrapped function returns its own exit code; any non-zero code is
    logged as a blocked run.

    Args:
        blocking: Exit 2 on an unexpected error when True; exit 0 when False.
        name: Hook name used in log entries. Defaults to the function name.
    """
    def decorator(func: Callable[..., int]) -> Callable[..., int]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            begin_run(name or func.__name__)
            try:
                code = func(*args, **kwargs)
            except KeyboardInterrupt:
                end_run(blocked=True)
                return EXIT_INTERRUPTED
            except BrokenPipeError:
                # Reader went away; nothing left to report to
                end_run(blocked=False)
                return 0
            except Exception as e:
                log_error(f"Hook error: {e}", exception=type(e).__name__)
                if debug_enabled():
                    traceback.print_exc(file=sys.stderr)
                end_run(blocked=blocking)
                return EXIT_BLOCKED if blocking else 0
            end_run(blocked=bool(code))
            return code
        return wrapper
    return decorator
