"""
auth/models.py -- Domain dataclasses for the user directory.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; the store and the directory service do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class User:
    """A directory entry.

    credential_digest is the codec output supplied by the caller, never the
    plaintext secret. id is None only before the store has assigned one.
    """

    login: str
    credential_digest: str
    id: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class AuthResult:
    """Outcome of verify / register. id is None whenever success is False."""

    success: bool
    id: int | None = None


@dataclass(frozen=True)
class UserInfo:
    """Public projection of a User: no digest, creation time as epoch seconds."""

    id: int
    login: str
    registered_at: int

    @classmethod
    def from_user(cls, user: User) -> UserInfo:
        return cls(
            id=user.id,
            login=user.login,
            registered_at=int(user.created_at.timestamp()),
        )


@dataclass(frozen=True)
class UserPage:
    """One window of list_users(). total counts every matching row, not just this page."""

    users: list[UserInfo] = field(default_factory=list)
    total: int = 0
