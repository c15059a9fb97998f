"""Shared fixtures for dep-fence tests."""

import os
import subprocess
from pathlib import Path
from typing import Optional

import pytest

from scripts.depfence import hook_utils
from scripts.depfence.locks import PUSHER_ENV_VARS


class GitRepo:
    """A throwaway repository driven through the git executable."""

    def __init__(self, path: Path):
        self.path = path

    def git(self, *args: str, env: Optional[dict] = None) -> str:
        full_env = dict(os.environ)
        if env:
            full_env.update(env)
        result = subprocess.run(
            ["git", *args],
            cwd=self.path,
            capture_output=True,
            text=True,
            check=True,
            env=full_env,
        )
        return result.stdout.strip()

    def write(self, rel_path: str, content: str = "x\n") -> Path:
        target = self.path / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
        return target

    def commit(self, files: dict, message: str = "change",
               author: str = "Me <me@example.com>") -> str:
        for rel_path, content in files.items():
            self.write(rel_path, content)
        self.git("add", "--", *files.keys())
        self.git("commit", "-q", "-m", message, f"--author={author}")
        return self.git("rev-parse", "HEAD")

    def update_ref(self, ref: str, sha: str) -> None:
        self.git("update-ref", ref, sha)


def _init_repo(path: Path) -> GitRepo:
    path.mkdir(parents=True, exist_ok=True)
    repo = GitRepo(path)
    repo.git("init", "-q")
    repo.git("symbolic-ref", "HEAD", "refs/heads/main")
    repo.git("config", "user.email", "me@example.com")
    repo.git("config", "user.name", "Me")
    repo.git("config", "commit.gpgsign", "false")
    return repo


@pytest.fixture(autouse=True)
def isolated_git_env(tmp_path, monkeypatch):
    """Keep the user's git config and any hook environment out of the tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for var in ("GIT_DIR", "GIT_WORK_TREE", "GIT_INDEX_FILE", "DEP_FENCE_CONFIG",
                "DEP_FENCE_LOG_FILE", "DEP_FENCE_DEBUG", "DEP_FENCE_LOCK_NAMESPACE",
                *PUSHER_ENV_VARS):
        monkeypatch.delenv(var, raising=False)
    hook_utils.init_context()


@pytest.fixture
def git_repo(tmp_path):
    """An empty repository on branch main."""
    return _init_repo(tmp_path / "repo")


@pytest.fixture
def make_repo(tmp_path):
    """Factory for additional repositories under tmp_path."""
    def factory(name: str) -> GitRepo:
        return _init_repo(tmp_path / name)
    return factory


@pytest.fixture
def clone_repo(tmp_path):
    """Factory that clones a GitRepo into tmp_path/<name>."""
    def factory(source: GitRepo, name: str) -> GitRepo:
        subprocess.run(
            ["git", "clone", "-q", str(source.path), str(tmp_path / name)],
            check=True,
            capture_output=True,
        )
        clone = GitRepo(tmp_path / name)
        clone.git("config", "user.email", "me@example.com")
        clone.git("config", "user.name", "Me")
        clone.git("config", "commit.gpgsign", "false")
        return clone
    return factory
