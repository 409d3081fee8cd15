"""
auth/codec.py -- Credential digest strategies.

A codec turns a secret into the fixed-length string that is stored and
compared. The directory service never calls a codec itself: callers digest
the secret on their side of the boundary and the service stores and compares
whatever digest it receives. The bootstrap command in main.py is the only
in-process caller.

The shipped codec is unsalted SHA-512, kept for compatibility with digests
already stored by existing deployments. It is NOT a password hashing
algorithm. A salted, memory-hard codec can be registered under a new name
and selected with CREDENTIAL_CODEC, but existing rows would then need
re-enrolment.

Layer rule: stdlib only.
"""

from __future__ import annotations

import hashlib
from typing import Protocol


class CredentialCodec(Protocol):
    """Deterministic secret -> digest transform."""

    name: str

    def digest(self, secret: str) -> str: ...


class Sha512Codec:
    """Hex-encoded SHA-512 of the UTF-8 secret (128 lowercase hex chars)."""

    name = "sha512"

    def digest(self, secret: str) -> str:
        return hashlib.sha512(secret.encode("utf-8")).hexdigest()


_CODECS: dict[str, CredentialCodec] = {
    Sha512Codec.name: Sha512Codec(),
}


def get_codec(name: str) -> CredentialCodec:
    """Return the registered codec called name. Raises ValueError if unknown."""
    try:
        return _CODECS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown credential codec: {name!r} (known: {', '.join(sorted(_CODECS))})") from None
