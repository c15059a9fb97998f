"""Install dep-fence git hooks into a repository."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from scripts.depfence import git

CLIENT_HOOKS = ("pre-commit", "pre-push")
SERVER_HOOKS = ("pre-receive",)


def hook_script(hook_name: str, command: str = "dep-fence") -> str:
    """Shell script body for a hook."""
    lines = ["#!/usr/bin/env sh", "set -eu", ""]
    if hook_name == "pre-receive":
        lines.append(f"exec {command} pre-receive")
    else:
        lines.append(f"exec {command} check --mode {hook_name}")
    return "\n".join(lines) + "\n"


@dataclass
class InstallResult:
    hook: str
    path: Path
    installed: bool
    message: str


def hooks_dir(cwd: Path | str) -> Path:
    """Hooks directory of the repository at ``cwd`` (honours core.hooksPath)."""
    out = git.run_git(["rev-parse", "--git-path", "hooks"], cwd).strip()
    path = Path(out)
    if not path.is_absolute():
        path = Path(cwd) / path
    return path


def install_hook(directory: Path, hook_name: str, force: bool = False,
                 command: str = "dep-fence") -> InstallResult:
    """Write one hook script. Existing hooks are left alone unless ``force``."""
    directory.mkdir(parents=True, exist_ok=True)
    hook_file = directory / hook_name

    if hook_file.exists() and not force:
        return InstallResult(hook_name, hook_file, False, f"hook exists: {hook_name} (skipped)")

    try:
        hook_file.write_text(hook_script(hook_name, command), encoding="utf-8")
        hook_file.chmod(0o755)
    except OSError as e:
        return InstallResult(hook_name, hook_file, False, f"failed to write {hook_name}: {e}")
    return InstallResult(hook_name, hook_file, True, f"hook installed: {hook_name}")


def install_hooks(cwd: Path | str, server: bool = False, force: bool = False,
                  command: Optional[str] = None) -> list[InstallResult]:
    """Install client hooks, or the pre-receive hook when ``server`` is set."""
    directory = hooks_dir(cwd)
    names = SERVER_HOOKS if server else CLIENT_HOOKS
    return [install_hook(directory, name, force=force, command=command or "dep-fence") for name in names]
