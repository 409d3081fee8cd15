"""
auth/service.py -- Directory service: credential checks and user CRUD rules.

The service is the only place that knows the business rules:
  - a login is unique (re-checked on every rename, not only at registration);
  - a digest is compared for exact equality with the stored one;
  - "unknown user", "wrong digest" and "login taken" all collapse into
    success=False so the response shape never tells them apart.

Two-tier failure model:
  Domain negatives come back as values (AuthResult.success=False, False).
  Store failures are logged here with full detail and re-raised as a single
  InternalServiceError whose message carries nothing about the storage.

The repository is injected at construction time. The service itself holds no
mutable state, so one instance can serve concurrent requests.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Iterable
from typing import Protocol

from auth.models import AuthResult, User, UserInfo, UserPage
from auth.store import LoginConflictError, StoreUnavailableError

logger = logging.getLogger("logindirectory.directory")

_DB_ACCESS_MSG = "Failed to access database: %s"


class InternalServiceError(Exception):
    """Opaque infrastructure failure. The message is safe to show to callers."""

    def __init__(self) -> None:
        super().__init__("internal service error")


class UserRepository(Protocol):
    """Persistence operations the directory service relies on.

    Implementations raise StoreUnavailableError on any storage failure and
    LoginConflictError when a write violates login uniqueness.
    """

    def find_by_login(self, login: str) -> User | None: ...

    def find_by_id(self, user_id: int) -> User | None: ...

    def find_by_ids(self, user_ids: Iterable[int]) -> list[User]: ...

    def create(self, login: str, credential_digest: str) -> User: ...

    def update_fields(
        self,
        user_id: int,
        *,
        login: str | None = None,
        credential_digest: str | None = None,
    ) -> bool: ...

    def delete(self, user_id: int) -> bool: ...

    def count_matching(self, login_filter: str | None = None) -> int: ...

    def list_page(self, login_filter: str | None, offset: int, limit: int) -> list[User]: ...


def _masks_store_errors(method):
    """Log StoreUnavailableError and replace it with InternalServiceError."""

    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except StoreUnavailableError as exc:
            logger.error(_DB_ACCESS_MSG, exc)
            raise InternalServiceError() from None

    return wrapper


class DirectoryService:
    """Implements the seven remote operations on top of a UserRepository."""

    def __init__(self, repository: UserRepository) -> None:
        self._repository = repository

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    @_masks_store_errors
    def verify(self, login: str, supplied_digest: str) -> AuthResult:
        """Return success and the user id when login exists and the digest matches."""
        user = self._repository.find_by_login(login)
        if user is None or user.credential_digest != supplied_digest:
            return AuthResult(success=False)
        return AuthResult(success=True, id=user.id)

    @_masks_store_errors
    def register(self, login: str, supplied_digest: str) -> AuthResult:
        """Create a user unless login is empty or already taken.

        The digest is stored as given; callers apply the codec before sending.
        """
        if not login:
            return AuthResult(success=False)
        if self._repository.find_by_login(login) is not None:
            return AuthResult(success=False)
        try:
            user = self._repository.create(login, supplied_digest)
        except LoginConflictError:
            # Another request registered the same login between our check and insert.
            logger.info("Concurrent registration lost for login %r", login)
            return AuthResult(success=False)
        logger.info("Registered user id=%s", user.id)
        return AuthResult(success=True, id=user.id)

    @_masks_store_errors
    def change_login(self, user_id: int, old_digest: str, new_login: str) -> bool:
        if not new_login:
            return False
        user = self._repository.find_by_id(user_id)
        if user is None or user.credential_digest != old_digest:
            return False
        if new_login == user.login:
            return True
        holder = self._repository.find_by_login(new_login)
        if holder is not None and holder.id != user_id:
            return False
        try:
            updated = self._repository.update_fields(user_id, login=new_login)
        except LoginConflictError:
            logger.info("Concurrent rename lost for user id=%s", user_id)
            return False
        return updated

    @_masks_store_errors
    def change_password(self, user_id: int, old_digest: str, new_digest: str) -> bool:
        user = self._repository.find_by_id(user_id)
        if user is None or user.credential_digest != old_digest:
            return False
        return self._repository.update_fields(user_id, credential_digest=new_digest)

    # ------------------------------------------------------------------
    # Directory
    # ------------------------------------------------------------------

    @_masks_store_errors
    def get_users(self, user_ids: Iterable[int]) -> list[UserInfo]:
        """Return the users that exist among user_ids; missing ids are ignored."""
        wanted = set(user_ids)
        if not wanted:
            return []
        return [UserInfo.from_user(u) for u in self._repository.find_by_ids(wanted)]

    @_masks_store_errors
    def list_users(self, start: int, end: int, login_filter: str = "") -> UserPage:
        """Return users[start:end] by login order plus the total matching count.

        login_filter is a substring of login; empty means no filter. When
        end <= start the page is empty but total is still reported.
        """
        total = self._repository.count_matching(login_filter)
        if total == 0:
            return UserPage()
        limit = end - start
        if limit <= 0:
            return UserPage(total=total)
        users = self._repository.list_page(login_filter, start, limit)
        return UserPage(users=[UserInfo.from_user(u) for u in users], total=total)

    @_masks_store_errors
    def delete(self, user_id: int) -> bool:
        """Delete user_id. Succeeds whether or not the user existed."""
        if self._repository.delete(user_id):
            logger.info("Deleted user id=%s", user_id)
        return True
