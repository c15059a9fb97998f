"""Lock tokens encoded as git ref names.

A token's whole state lives in its ref name::

    refs/<namespace>/sem/<key>/<owner>@<expiry>/<nonce>

``expiry`` is epoch seconds, ``0`` meaning the token never expires. The ref
existing is the acquisition; deleting it is the release.
"""

from __future__ import annotations

import os
import time
import uuid
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_NAMESPACE = "mrtask"
NAMESPACE_ENV_VAR = "DEP_FENCE_LOCK_NAMESPACE"


class TokenFormatError(ValueError):
    """A ref under the lock namespace does not follow the token layout."""


@dataclass(frozen=True)
class LockToken:
    key: str
    owner: str
    expiry: int
    nonce: str
    namespace: str = DEFAULT_NAMESPACE

    @property
    def ref(self) -> str:
        return format_token_ref(self.key, self.owner, self.expiry, self.nonce, self.namespace)

    def is_valid(self, now: float) -> bool:
        return self.expiry == 0 or self.expiry > now

    def is_expired(self, now: float) -> bool:
        return not self.is_valid(now)

    def owned_by(self, identity: str) -> bool:
        return self.owner.lower() == identity.lower()


def resolve_namespace(environ: Optional[Mapping[str, str]] = None) -> str:
    env = os.environ if environ is None else environ
    return env.get(NAMESPACE_ENV_VAR) or DEFAULT_NAMESPACE


def lock_prefix(namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"refs/{namespace}/sem/"


def key_prefix(key: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{lock_prefix(namespace)}{key}/"


def is_lock_ref(ref: str, namespace: str = DEFAULT_NAMESPACE) -> bool:
    return ref.startswith(lock_prefix(namespace))


def _check_segment(label: str, value: str, forbidden: str = "/") -> None:
    if not value:
        raise TokenFormatError(f"{label} must not be empty")
    bad = [c for c in forbidden if c in value]
    if bad:
        raise TokenFormatError(f"{label} must not contain {' or '.join(repr(c) for c in bad)}")


def format_token_ref(key: str, owner: str, expiry: int, nonce: str,
                     namespace: str = DEFAULT_NAMESPACE) -> str:
    """Encode a token as a ref name.

    Raises:
        TokenFormatError: If a component would break the layout.
    """
    _check_segment("key", key)
    _check_segment("owner", owner, "/@")
    _check_segment("nonce", nonce)
    if expiry < 0:
        raise TokenFormatError("expiry must be >= 0")
    return f"{key_prefix(key, namespace)}{owner}@{int(expiry)}/{nonce}"


def parse_token_ref(ref: str, namespace: str = DEFAULT_NAMESPACE) -> LockToken:
    """Decode a token ref name.

    Raises:
        TokenFormatError: If ``ref`` is not a well-formed token under ``namespace``.
    """
    prefix = lock_prefix(namespace)
    if not ref.startswith(prefix):
        raise TokenFormatError(f"not a lock ref: {ref}")

    parts = ref[len(prefix):].split("/")
    if len(parts) != 3:
        raise TokenFormatError(f"expected <key>/<owner>@<expiry>/<nonce>: {ref}")
    key, owner_exp, nonce = parts

    owner, sep, exp_str = owner_exp.partition("@")
    if not sep or not (exp_str.isascii() and exp_str.isdigit()):
        raise TokenFormatError(f"expected <owner>@<expiry> in {ref}")
    _check_segment("key", key)
    _check_segment("owner", owner)
    _check_segment("nonce", nonce)

    return LockToken(key=key, owner=owner, expiry=int(exp_str), nonce=nonce, namespace=namespace)


def new_token(key: str, owner: str, ttl_seconds: int = 0,
              namespace: str = DEFAULT_NAMESPACE, now: Optional[float] = None) -> LockToken:
    """Mint a fresh token. ``ttl_seconds`` of 0 means no expiry."""
    if ttl_seconds < 0:
        raise TokenFormatError("ttl must be >= 0")
    current = time.time() if now is None else now
    expiry = int(current) + ttl_seconds if ttl_seconds else 0
    nonce = uuid.uuid4().hex[:12]
    format_token_ref(key, owner, expiry, nonce, namespace)
    return LockToken(key=key, owner=owner, expiry=expiry, nonce=nonce, namespace=namespace)
