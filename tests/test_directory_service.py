"""Unit tests for auth/service.py -- DirectoryService business rules.

Most tests run against a real in-memory UserStore. Store failures are
injected with a MagicMock repository whose methods raise StoreUnavailableError.

Covers:
- verify / register / change_login / change_password domain outcomes
- login uniqueness on register and rename, including lost races
- get_users and list_users projection, ordering, totals and window edge cases
- delete idempotence
- store failures masked as InternalServiceError, detail logged only
"""

import logging
import time
from unittest.mock import MagicMock

import pytest

from auth.codec import Sha512Codec
from auth.models import AuthResult, User
from auth.service import DirectoryService, InternalServiceError
from auth.store import LoginConflictError, StoreUnavailableError

_digest = Sha512Codec().digest

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _register(directory: DirectoryService, login: str, secret: str = "pw") -> int:
    result = directory.register(login, _digest(secret))
    assert result.success, f"setup registration of {login!r} failed"
    return result.id


def _failing_repository(message: str = "disk I/O error on table users") -> MagicMock:
    repo = MagicMock()
    error = StoreUnavailableError(message)
    for name in (
        "find_by_login",
        "find_by_id",
        "find_by_ids",
        "create",
        "update_fields",
        "delete",
        "count_matching",
        "list_page",
    ):
        getattr(repo, name).side_effect = error
    return repo


# ---------------------------------------------------------------------------
# Verify
# ---------------------------------------------------------------------------


class TestVerify:
    def test_matching_digest_succeeds_with_id(self, directory):
        uid = _register(directory, "alice", "s3cret")
        assert directory.verify("alice", _digest("s3cret")) == AuthResult(success=True, id=uid)

    def test_wrong_digest_fails(self, directory):
        _register(directory, "alice", "s3cret")
        assert directory.verify("alice", _digest("wrong")) == AuthResult(success=False)

    def test_unknown_login_fails_the_same_way(self, directory):
        _register(directory, "alice", "s3cret")
        assert directory.verify("bob", _digest("s3cret")) == directory.verify("alice", _digest("wrong"))

    def test_login_match_is_case_sensitive(self, directory):
        _register(directory, "alice", "s3cret")
        assert directory.verify("Alice", _digest("s3cret")).success is False


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------


class TestRegister:
    def test_fresh_login_gets_unique_id(self, directory):
        first = directory.register("alice", _digest("a"))
        second = directory.register("bob", _digest("b"))
        assert first.success and second.success
        assert first.id != second.id

    def test_verify_after_register_returns_same_id(self, directory):
        result = directory.register("alice", _digest("a"))
        assert directory.verify("alice", _digest("a")).id == result.id

    def test_digest_is_stored_as_given(self, directory, store):
        directory.register("alice", "not-really-a-digest")
        assert store.find_by_login("alice").credential_digest == "not-really-a-digest"

    def test_empty_login_rejected_without_row(self, directory, store):
        assert directory.register("", _digest("a")) == AuthResult(success=False)
        assert store.count_matching("") == 0

    def test_taken_login_rejected_and_single_row_kept(self, directory, store):
        uid = _register(directory, "alice", "a")
        assert directory.register("alice", _digest("b")) == AuthResult(success=False)
        assert store.count_matching("") == 1
        assert directory.verify("alice", _digest("a")).id == uid

    def test_lost_race_maps_to_domain_negative(self):
        repo = MagicMock()
        repo.find_by_login.return_value = None
        repo.create.side_effect = LoginConflictError("UNIQUE constraint failed: users.login")
        assert DirectoryService(repo).register("alice", "d") == AuthResult(success=False)


# ---------------------------------------------------------------------------
# ChangeLogin
# ---------------------------------------------------------------------------


class TestChangeLogin:
    def test_rename_with_correct_digest(self, directory):
        uid = _register(directory, "alice", "a")
        assert directory.change_login(uid, _digest("a"), "alicia") is True
        assert directory.verify("alicia", _digest("a")).id == uid
        assert directory.verify("alice", _digest("a")).success is False

    def test_wrong_digest_leaves_row_unchanged(self, directory, store):
        uid = _register(directory, "alice", "a")
        assert directory.change_login(uid, _digest("nope"), "alicia") is False
        assert store.find_by_id(uid).login == "alice"

    def test_empty_new_login_rejected(self, directory, store):
        uid = _register(directory, "alice", "a")
        assert directory.change_login(uid, _digest("a"), "") is False
        assert store.find_by_id(uid).login == "alice"

    def test_unknown_user(self, directory):
        assert directory.change_login(404, _digest("a"), "ghost") is False

    def test_new_login_taken_by_another_user(self, directory, store):
        uid = _register(directory, "alice", "a")
        _register(directory, "bob", "b")
        assert directory.change_login(uid, _digest("a"), "bob") is False
        assert store.find_by_id(uid).login == "alice"

    def test_rename_to_own_login_succeeds(self, directory):
        uid = _register(directory, "alice", "a")
        assert directory.change_login(uid, _digest("a"), "alice") is True

    def test_lost_race_maps_to_domain_negative(self):
        repo = MagicMock()
        repo.find_by_id.return_value = User(id=1, login="alice", credential_digest="d")
        repo.find_by_login.return_value = None
        repo.update_fields.side_effect = LoginConflictError("UNIQUE constraint failed: users.login")
        assert DirectoryService(repo).change_login(1, "d", "bob") is False

    def test_password_untouched_by_rename(self, directory, store):
        uid = _register(directory, "alice", "a")
        directory.change_login(uid, _digest("a"), "alicia")
        assert store.find_by_id(uid).credential_digest == _digest("a")


# ---------------------------------------------------------------------------
# ChangePassword
# ---------------------------------------------------------------------------


class TestChangePassword:
    def test_change_with_correct_digest(self, directory):
        uid = _register(directory, "alice", "old")
        assert directory.change_password(uid, _digest("old"), _digest("new")) is True
        assert directory.verify("alice", _digest("new")).id == uid
        assert directory.verify("alice", _digest("old")).success is False

    def test_wrong_digest_leaves_row_unchanged(self, directory, store):
        uid = _register(directory, "alice", "old")
        assert directory.change_password(uid, _digest("guess"), _digest("new")) is False
        assert store.find_by_id(uid).credential_digest == _digest("old")

    def test_unknown_user(self, directory):
        assert directory.change_password(404, _digest("old"), _digest("new")) is False


# ---------------------------------------------------------------------------
# GetUsers
# ---------------------------------------------------------------------------


class TestGetUsers:
    def test_only_existing_ids_returned(self, directory):
        alice = _register(directory, "alice")
        bob = _register(directory, "bob")
        infos = directory.get_users([alice, 999, bob, 1000])
        assert {(i.id, i.login) for i in infos} == {(alice, "alice"), (bob, "bob")}

    def test_empty_input_skips_the_store(self):
        repo = MagicMock()
        assert DirectoryService(repo).get_users([]) == []
        repo.find_by_ids.assert_not_called()

    def test_registered_at_is_epoch_seconds(self, directory):
        before = int(time.time())
        uid = _register(directory, "alice")
        (info,) = directory.get_users([uid])
        assert before - 1 <= info.registered_at <= int(time.time()) + 1


# ---------------------------------------------------------------------------
# ListUsers
# ---------------------------------------------------------------------------


class TestListUsers:
    @pytest.fixture
    def three(self, directory):
        for login in ("carol", "alice", "bob"):
            _register(directory, login)
        return directory

    def test_first_page_in_login_order_with_full_total(self, three):
        page = three.list_users(0, 2, "")
        assert [u.login for u in page.users] == ["alice", "bob"]
        assert page.total == 3

    def test_second_page(self, three):
        page = three.list_users(2, 4, "")
        assert [u.login for u in page.users] == ["carol"]
        assert page.total == 3

    def test_filter_restricts_rows_and_total(self, three):
        page = three.list_users(0, 10, "o")
        assert [u.login for u in page.users] == ["bob", "carol"]
        assert page.total == 2

    def test_end_before_start_returns_no_rows_but_total(self, three):
        page = three.list_users(2, 1, "")
        assert page.users == []
        assert page.total == 3

    def test_no_match_skips_page_query(self):
        repo = MagicMock()
        repo.count_matching.return_value = 0
        page = DirectoryService(repo).list_users(0, 10, "zzz")
        assert page.users == [] and page.total == 0
        repo.list_page.assert_not_called()

    def test_window_passed_as_offset_and_limit(self):
        repo = MagicMock()
        repo.count_matching.return_value = 50
        repo.list_page.return_value = []
        DirectoryService(repo).list_users(10, 25, "a")
        repo.list_page.assert_called_once_with("a", 10, 15)


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


class TestDelete:
    def test_delete_existing(self, directory, store):
        uid = _register(directory, "alice")
        assert directory.delete(uid) is True
        assert store.find_by_id(uid) is None

    def test_delete_missing_is_success_and_changes_nothing(self, directory, store):
        _register(directory, "alice")
        assert directory.delete(12345) is True
        assert store.count_matching("") == 1


# ---------------------------------------------------------------------------
# Ids beyond the store's integer range
# ---------------------------------------------------------------------------


class TestOversizedIds:
    def test_delete_is_still_idempotent(self, directory, store):
        _register(directory, "alice")
        assert directory.delete(2**63) is True
        assert store.count_matching("") == 1

    def test_get_users_returns_only_real_users(self, directory):
        uid = _register(directory, "alice")
        assert directory.get_users([2**64 - 1]) == []
        assert [u.id for u in directory.get_users([uid, 2**63])] == [uid]

    def test_change_password_unknown_user(self, directory):
        assert directory.change_password(2**63, _digest("pw"), _digest("new")) is False

    def test_change_login_unknown_user(self, directory):
        assert directory.change_login(2**64 - 1, _digest("pw"), "ghost") is False


# ---------------------------------------------------------------------------
# Store failures
# ---------------------------------------------------------------------------


class TestStoreFailures:
    @pytest.mark.parametrize(
        "call",
        [
            lambda d: d.verify("alice", "d"),
            lambda d: d.register("alice", "d"),
            lambda d: d.change_login(1, "d", "bob"),
            lambda d: d.change_password(1, "d", "e"),
            lambda d: d.get_users([1, 2]),
            lambda d: d.list_users(0, 10, ""),
            lambda d: d.delete(1),
        ],
    )
    def test_every_operation_masks_store_errors(self, call):
        with pytest.raises(InternalServiceError) as excinfo:
            call(DirectoryService(_failing_repository()))
        assert str(excinfo.value) == "internal service error"
        assert excinfo.value.__cause__ is None

    def test_store_detail_is_logged(self, caplog):
        directory = DirectoryService(_failing_repository("no such table: users"))
        with caplog.at_level(logging.ERROR, logger="logindirectory.directory"):
            with pytest.raises(InternalServiceError):
                directory.verify("alice", "d")
        assert "no such table: users" in caplog.text
