"""Read-only queries against a git repository.

Every function takes an explicit ``cwd``; nothing relies on the process's
current directory. Paths are returned relative to the repository root with
forward slashes.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

ZERO_SHA = "0" * 40


class CommandError(Exception):
    """A git invocation failed."""

    def __init__(self, args: list[str], returncode: Optional[int], stderr: str = ""):
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = self.stderr or f"exited with code {returncode}"
        super().__init__(f"git {' '.join(args)} failed: {detail}")


def run_git(args: list[str], cwd: Path | str) -> str:
    """Run git and return stdout.

    Raises:
        CommandError: If git is missing or exits non-zero.
    """
    logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError as e:
        raise CommandError(args, None, f"git executable not found: {e}") from e
    except NotADirectoryError as e:
        raise CommandError(args, None, str(e)) from e
    if result.returncode != 0:
        raise CommandError(args, result.returncode, result.stderr)
    return result.stdout


def try_git(args: list[str], cwd: Path | str) -> str:
    """Run git, returning an empty string when the command fails."""
    try:
        return run_git(args, cwd)
    except CommandError as e:
        logger.debug("ignored: %s", e)
        return ""


def _lines(output: str) -> list[str]:
    return [line.replace("\\", "/") for line in output.splitlines() if line.strip()]


def _nul_split(output: str) -> list[str]:
    return [p.replace("\\", "/") for p in output.split("\0") if p]


def repo_root(cwd: Path | str) -> Path:
    return Path(run_git(["rev-parse", "--show-toplevel"], cwd).strip())


def staged_files(cwd: Path | str) -> list[str]:
    """Files in the index that differ from HEAD."""
    return _nul_split(try_git(["diff", "--cached", "--name-only", "-z"], cwd))


def tracked_files(cwd: Path | str) -> list[str]:
    """All files tracked by git."""
    return _nul_split(run_git(["ls-files", "-z", "--full-name"], cwd))


def working_files(cwd: Path | str) -> list[str]:
    """Tracked files plus untracked files that are not ignored."""
    return _nul_split(
        run_git(
            ["ls-files", "-z", "--full-name", "--cached", "--others", "--exclude-standard"],
            cwd,
        )
    )


def file_mtime_ms(root: Path | str, rel_path: str) -> Optional[float]:
    """Modification time in milliseconds, or None when the file can't be read."""
    try:
        return (Path(root) / rel_path).stat().st_mtime_ns / 1_000_000
    except OSError:
        return None


def merge_base(a: str, b: str, cwd: Path | str) -> Optional[str]:
    return try_git(["merge-base", a, b], cwd).strip() or None


def exclusive_commits(ancestor: str, head: str, cwd: Path | str) -> list[str]:
    """Non-merge commits reachable from ``head`` but not from ``ancestor``."""
    return _lines(try_git(["rev-list", "--no-merges", f"{ancestor}..{head}"], cwd))


def commit_author_email(commit: str, cwd: Path | str) -> Optional[str]:
    return try_git(["show", "-s", "--format=%ae", commit], cwd).strip() or None


def commit_changed_files(commit: str, cwd: Path | str) -> list[str]:
    """Files changed by a single commit (root commits included)."""
    return _nul_split(
        try_git(["diff-tree", "--no-commit-id", "--name-only", "-r", "-z", "--root", commit], cwd)
    )


def user_email(cwd: Path | str) -> Optional[str]:
    return try_git(["config", "user.email"], cwd).strip() or None


def upstream_ref(cwd: Path | str) -> Optional[str]:
    """Symbolic name of the current branch's upstream, e.g. ``origin/main``."""
    out = try_git(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{upstream}"], cwd)
    return out.strip() or None


def remote_branch_exists(ref: str, cwd: Path | str) -> bool:
    """Check for a remote-tracking branch such as ``origin/main``."""
    try:
        run_git(["rev-parse", "--verify", "--quiet", f"refs/remotes/{ref}^{{commit}}"], cwd)
    except CommandError:
        return False
    return True


def list_refs(prefix: str, cwd: Path | str) -> list[str]:
    """Full ref names under ``prefix``."""
    return _lines(run_git(["for-each-ref", "--format=%(refname)", prefix], cwd))


def show_file(rev: str, path: str, cwd: Path | str) -> str:
    """Contents of ``path`` at ``rev``.

    Raises:
        CommandError: If the revision or the path does not exist.
    """
    return run_git(["show", f"{rev}:{path}"], cwd)


def changed_files_between(old: str, new: str, cwd: Path | str) -> list[str]:
    """Files that differ between two commits."""
    return _nul_split(run_git(["diff", "--name-only", "-z", old, new], cwd))


def new_commits(sha: str, cwd: Path | str) -> list[str]:
    """Commits reachable from ``sha`` that no existing ref already reaches."""
    return _lines(run_git(["rev-list", sha, "--not", "--all"], cwd))
