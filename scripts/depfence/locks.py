"""Server-side lock enforcement for pushes.

The ref namespace is the only store: a token ref existing means the lock is
held. This module never writes refs. It decides whether each ref update of an
incoming push may be accepted:

- creating a token is admitted while the key has fewer valid tokens than its
  capacity (admins bypass the limit);
- deleting a token is allowed for its owner, an admin, or anyone once the
  token has expired;
- a branch update touching a key's protected patterns needs a valid token for
  that key owned by the pusher.

Capacity checks are only race-free because the git host applies one push's
ref transaction at a time per repository. That serialisation is an external
guarantee; nothing here re-implements it.
"""

from __future__ import annotations

import getpass
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Optional

from scripts.depfence import git
from scripts.depfence.git import ZERO_SHA
from scripts.depfence.globs import any_match
from scripts.depfence.policy import LockPolicy, load_push_policy
from scripts.depfence.tokens import (
    DEFAULT_NAMESPACE,
    LockToken,
    TokenFormatError,
    is_lock_ref,
    key_prefix,
    lock_prefix,
    parse_token_ref,
)

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "refs/heads/"

# Checked in order; first non-empty wins
PUSHER_ENV_VARS = (
    "GITEA_PUSHER_NAME",
    "GL_USERNAME",
    "GL_ID",
    "GL_USER",
    "GIT_PUSHER",
)


@dataclass(frozen=True)
class RefUpdate:
    """One line of pre-receive input."""

    old_sha: str
    new_sha: str
    ref: str

    @property
    def is_create(self) -> bool:
        return self.old_sha == ZERO_SHA

    @property
    def is_delete(self) -> bool:
        return self.new_sha == ZERO_SHA

    @property
    def is_branch(self) -> bool:
        return self.ref.startswith(BRANCH_PREFIX)

    @classmethod
    def parse(cls, line: str) -> "RefUpdate":
        parts = line.split()
        if len(parts) != 3:
            raise ValueError(f"expected '<old> <new> <ref>', got {line!r}")
        return cls(*parts)


def parse_ref_updates(text: str) -> list[RefUpdate]:
    return [RefUpdate.parse(line) for line in text.splitlines() if line.strip()]


@dataclass
class Rejection:
    ref: str
    message: str


@dataclass
class PushDecision:
    rejections: list[Rejection] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return not self.rejections


def resolve_pusher(environ: Optional[Mapping[str, str]] = None) -> str:
    """Identity of whoever is pushing.

    Hosting platforms export the pusher in different variables; fall back to
    the OS account, then to ``"unknown"``.
    """
    env = os.environ if environ is None else environ
    for name in PUSHER_ENV_VARS:
        value = env.get(name)
        if value:
            return value
    try:
        return getpass.getuser() or "unknown"
    except (KeyError, OSError):
        # No passwd entry and no LOGNAME/USER in the environment
        return "unknown"


def valid_tokens(tokens: Iterable[LockToken], now: float) -> list[LockToken]:
    return [t for t in tokens if t.is_valid(now)]


def decide_lock_update(
    update: RefUpdate,
    token: Optional[LockToken],
    policy: LockPolicy,
    live: list[LockToken],
    pusher: str,
    now: float,
) -> Optional[str]:
    """Admit or reject a change to a lock ref.

    Args:
        update: The ref update being pushed.
        token: Decoded token, or None if the ref name is malformed.
        policy: Lock policy in effect for this push.
        live: Currently valid tokens for the token's key.
        pusher: Identity of the pusher.
        now: Current time in epoch seconds.

    Returns:
        A rejection message, or None to accept.
    """
    admin = policy.is_admin(pusher)

    if token is None:
        if admin:
            return None
        return f"malformed lock ref '{update.ref}'; expected <key>/<owner>@<expiry>/<nonce>"

    if update.is_create:
        capacity = policy.key(token.key).capacity
        if len(live) >= capacity and not admin:
            return f"lock '{token.key}' at capacity ({len(live)}); ask admin or wait."
        return None

    if update.is_delete:
        if admin or token.owned_by(pusher):
            return None
        if token.is_expired(now):
            return None
        return f"not owner/admin to delete token '{update.ref}'"

    # Tokens are immutable; moving one is not special-cased
    return None


def protected_keys(changed_files: list[str], policy: LockPolicy) -> list[str]:
    """Keys whose patterns match at least one changed file."""
    return [
        name for name, kp in policy.keys.items()
        if kp.protects_paths and any_match(changed_files, kp.globs)
    ]


def decide_branch_update(
    changed_files: list[str],
    policy: LockPolicy,
    tokens_by_key: Mapping[str, list[LockToken]],
    pusher: str,
    now: float,
) -> list[str]:
    """Rejection messages for a branch update, one per unmet key."""
    messages = []
    for key in protected_keys(changed_files, policy):
        held = valid_tokens(tokens_by_key.get(key, []), now)
        if not any(t.owned_by(pusher) for t in held):
            messages.append(f"missing lock '{key}' for protected paths; acquire before pushing.")
    return messages


class LockManager:
    """Gathers lock state from a repository and evaluates pushes against it."""

    def __init__(self, cwd: Path | str, namespace: str = DEFAULT_NAMESPACE,
                 now: Optional[float] = None):
        self.cwd = str(cwd)
        self.namespace = namespace
        self.now = now

    def _tokens_under(self, prefix: str) -> list[LockToken]:
        tokens = []
        for ref in git.list_refs(prefix, self.cwd):
            try:
                tokens.append(parse_token_ref(ref, self.namespace))
            except TokenFormatError as e:
                logger.debug("skipping %s: %s", ref, e)
        return tokens

    def list_tokens(self, key: str) -> list[LockToken]:
        """Every token ref currently stored for ``key``. Malformed refs are skipped."""
        return self._tokens_under(key_prefix(key, self.namespace))

    def list_all_tokens(self) -> list[LockToken]:
        return self._tokens_under(lock_prefix(self.namespace))

    def changed_files(self, update: RefUpdate) -> list[str]:
        """Files a branch update brings in."""
        if update.is_create:
            files: dict[str, None] = {}
            for commit in git.new_commits(update.new_sha, self.cwd):
                for path in git.commit_changed_files(commit, self.cwd):
                    files[path] = None
            return list(files)
        return git.changed_files_between(update.old_sha, update.new_sha, self.cwd)

    def evaluate(self, updates: list[RefUpdate], pusher: str) -> PushDecision:
        """Check every update of a push.

        Lock-ref updates are decided first, in input order. Capacity counts the
        tokens stored before the push plus admitted creations, minus admitted
        deletions. Branch updates are then checked against the stored tokens
        plus admitted creations: a push may acquire a lock and touch the paths
        it protects, or land a protected change and release its own lock.

        Raises:
            PolicyLoadError: If a policy document in play is invalid.
        """
        now = time.time() if self.now is None else self.now
        decision = PushDecision()
        stored: dict[str, list[LockToken]] = {}
        created: dict[str, list[LockToken]] = {}
        released: set[str] = set()
        policies: dict[Optional[str], LockPolicy] = {}

        def held_tokens(key: str) -> list[LockToken]:
            if key not in stored:
                stored[key] = self.list_tokens(key)
            return stored[key] + created.get(key, [])

        def live_for_capacity(key: str) -> list[LockToken]:
            return [t for t in held_tokens(key) if t.ref not in released]

        def policy_for(new_sha: Optional[str]) -> LockPolicy:
            if new_sha not in policies:
                policies[new_sha] = load_push_policy(new_sha, self.cwd)
            return policies[new_sha]

        for update in updates:
            if not is_lock_ref(update.ref, self.namespace):
                continue
            try:
                token: Optional[LockToken] = parse_token_ref(update.ref, self.namespace)
            except TokenFormatError:
                token = None

            policy = policy_for(None if update.is_delete else update.new_sha)
            live = valid_tokens(live_for_capacity(token.key), now) if token else []
            message = decide_lock_update(update, token, policy, live, pusher, now)
            logger.debug("lock update %s by %s: %s", update.ref, pusher, message or "accepted")
            if message:
                decision.rejections.append(Rejection(update.ref, message))
                continue

            if token is not None:
                if update.is_create:
                    created.setdefault(token.key, []).append(token)
                elif update.is_delete:
                    released.add(token.ref)

        for update in updates:
            if not update.is_branch or update.is_delete:
                continue
            policy = policy_for(update.new_sha)
            if not any(kp.protects_paths for kp in policy.keys.values()):
                continue
            files = self.changed_files(update)
            keys = protected_keys(files, policy)
            tokens_by_key = {key: held_tokens(key) for key in keys}
            for message in decide_branch_update(files, policy, tokens_by_key, pusher, now):
                logger.debug("branch update %s by %s: %s", update.ref, pusher, message)
                decision.rejections.append(Rejection(update.ref, message))

        return decision
