"""Lock policy document: who administers locks and what each key protects.

The policy lives in the repository at ``.mrtask/lock-policy.json``::

    {
      "admins": ["alice"],
      "keys": {
        "schema": {"capacity": 1, "ttlSeconds": 3600, "patterns": ["db/**"]}
      }
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from scripts.depfence import git
from scripts.depfence.git import ZERO_SHA, CommandError
from scripts.depfence.globs import GlobSet, compile_globs

logger = logging.getLogger(__name__)

POLICY_PATH = ".mrtask/lock-policy.json"

# Default-branch tip of the receiving repository
DEFAULT_BRANCH_REV = "HEAD"


class PolicyLoadError(Exception):
    """The lock policy document could not be parsed."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.source = source

    def to_json(self) -> dict[str, Any]:
        result: dict[str, Any] = {"error": "policy_invalid", "message": self.message}
        if self.source:
            result["source"] = self.source
        return result

    def __str__(self) -> str:
        if self.source:
            return f"{self.message} | source: {self.source}"
        return self.message


@dataclass
class KeyPolicy:
    capacity: int = 1
    ttl_seconds: int = 0
    patterns: list[str] = field(default_factory=list)
    _globs: Optional[GlobSet] = field(default=None, init=False, repr=False, compare=False)

    @property
    def globs(self) -> GlobSet:
        if self._globs is None:
            self._globs = compile_globs(self.patterns)
        return self._globs

    @property
    def protects_paths(self) -> bool:
        return bool(self.patterns)


@dataclass
class LockPolicy:
    admins: list[str] = field(default_factory=list)
    keys: dict[str, KeyPolicy] = field(default_factory=dict)

    def key(self, name: str) -> KeyPolicy:
        """Policy for ``name``; unknown keys get the defaults."""
        return self.keys.get(name) or KeyPolicy()

    def is_admin(self, identity: str) -> bool:
        wanted = identity.lower()
        return any(a.lower() == wanted for a in self.admins)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _parse_key(name: str, raw: Any, source: Optional[str]) -> KeyPolicy:
    if not isinstance(raw, dict):
        raise PolicyLoadError(f"keys.{name} must be an object", source)

    capacity = raw.get("capacity", 1)
    if not _is_int(capacity) or capacity < 1:
        raise PolicyLoadError(f"keys.{name}.capacity must be an integer >= 1", source)

    ttl = raw.get("ttlSeconds", 0)
    if not _is_int(ttl) or ttl < 0:
        raise PolicyLoadError(f"keys.{name}.ttlSeconds must be an integer >= 0", source)

    patterns = raw.get("patterns", [])
    if patterns is None:
        patterns = []
    if not isinstance(patterns, list) or not all(isinstance(p, str) for p in patterns):
        raise PolicyLoadError(f"keys.{name}.patterns must be a list of strings", source)

    return KeyPolicy(capacity=capacity, ttl_seconds=ttl, patterns=list(patterns))


def parse_policy(data: Any, source: Optional[str] = None) -> LockPolicy:
    """Validate decoded JSON and build a LockPolicy.

    Raises:
        PolicyLoadError: If the structure or value types are wrong.
    """
    if not isinstance(data, dict):
        raise PolicyLoadError("lock policy must be a JSON object", source)

    admins = data.get("admins", [])
    if admins is None:
        admins = []
    if not isinstance(admins, list) or not all(isinstance(a, str) for a in admins):
        raise PolicyLoadError("admins must be a list of strings", source)

    raw_keys = data.get("keys", {})
    if raw_keys is None:
        raw_keys = {}
    if not isinstance(raw_keys, dict):
        raise PolicyLoadError("keys must be an object", source)

    keys = {str(name): _parse_key(str(name), raw, source) for name, raw in raw_keys.items()}
    return LockPolicy(admins=list(admins), keys=keys)


def loads_policy(text: str, source: Optional[str] = None) -> LockPolicy:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PolicyLoadError(f"invalid JSON: {e}", source)
    return parse_policy(data, source)


def load_policy_file(path: Path | str) -> LockPolicy:
    """Read a policy from the working tree. A missing file means no policy."""
    path = Path(path)
    if not path.exists():
        return LockPolicy()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise PolicyLoadError(f"cannot read policy: {e}", str(path))
    return loads_policy(text, str(path))


def dump_policy(policy: LockPolicy) -> str:
    """Serialize a policy back to its JSON document form."""
    data = {
        "admins": list(policy.admins),
        "keys": {
            name: {
                "capacity": kp.capacity,
                "ttlSeconds": kp.ttl_seconds,
                "patterns": list(kp.patterns),
            }
            for name, kp in policy.keys.items()
        },
    }
    return json.dumps(data, indent=2, sort_keys=True) + "\n"


def save_policy(policy: LockPolicy, path: Path | str) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_policy(policy), encoding="utf-8")


def read_policy_at(rev: str, cwd: Path | str) -> Optional[LockPolicy]:
    """Policy stored in commit ``rev``, or None if the commit has no policy file.

    Raises:
        PolicyLoadError: If the file exists at ``rev`` but is invalid.
    """
    if not rev or rev == ZERO_SHA:
        return None
    try:
        text = git.show_file(rev, POLICY_PATH, cwd)
    except CommandError as e:
        logger.debug("no policy at %s: %s", rev, e)
        return None
    return loads_policy(text, f"{rev}:{POLICY_PATH}")


def load_push_policy(new_sha: Optional[str], cwd: Path | str) -> LockPolicy:
    """Policy that governs a push: the incoming commit's, else the default branch's.

    When neither has a policy file the empty policy applies.
    """
    for rev in (new_sha, DEFAULT_BRANCH_REV):
        if not rev:
            continue
        policy = read_policy_at(rev, cwd)
        if policy is not None:
            return policy
    return LockPolicy()
