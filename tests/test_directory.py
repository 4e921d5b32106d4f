"""
tests/test_directory.py -- Unit tests for UserDirectory and its query helpers.

Covers:
  - create / get_by_id / get_by_email (case-insensitive)
  - duplicate email rejected by the unique constraint
  - update_role / update_status stamp updated_at; unknown uid -> False
  - touch_last_login, delete
  - search_users filters, newest-first sort and pagination
  - user_statistics counts
"""

from __future__ import annotations

import time
import uuid

import pytest
from sqlalchemy.exc import IntegrityError

from auth.directory import UserDirectory, search_users, user_statistics
from auth.models import User


@pytest.fixture
def directory() -> UserDirectory:
    d = UserDirectory(f"sqlite:///file:test_directory_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")
    yield d
    d.close()


def _add(directory: UserDirectory, email: str, role: str = "user", **fields) -> User:
    uid = uuid.uuid4().hex
    return directory.create(uid, User(uid=uid, email=email, role=role, **fields))


class TestReadsAndWrites:
    def test_create_and_get(self, directory: UserDirectory) -> None:
        user = _add(directory, "Alice@Example.com", first_name="Alice", created_by="system")
        assert user.email == "alice@example.com"
        assert user.created_at and user.created_at == user.updated_at
        assert user.last_login is None
        assert directory.get_by_id(user.uid) == user
        assert directory.get_by_email("ALICE@example.com ") == user

    def test_missing(self, directory: UserDirectory) -> None:
        assert directory.get_by_id("nope") is None
        assert directory.get_by_email("nobody@example.com") is None

    def test_duplicate_email(self, directory: UserDirectory) -> None:
        _add(directory, "alice@example.com")
        with pytest.raises(IntegrityError):
            _add(directory, "ALICE@example.com")

    def test_update_role_stamps_updated_at(self, directory: UserDirectory) -> None:
        user = _add(directory, "alice@example.com")
        time.sleep(0.001)
        assert directory.update_role(user.uid, "admin")
        updated = directory.get_by_id(user.uid)
        assert updated.role == "admin"
        assert updated.updated_at > user.updated_at

    def test_update_status(self, directory: UserDirectory) -> None:
        user = _add(directory, "alice@example.com")
        assert directory.update_status(user.uid, False)
        assert directory.get_by_id(user.uid).is_active is False

    def test_updates_on_unknown_uid(self, directory: UserDirectory) -> None:
        assert directory.update_role("missing", "admin") is False
        assert directory.update_status("missing", False) is False
        assert directory.delete("missing") is False

    def test_touch_last_login(self, directory: UserDirectory) -> None:
        user = _add(directory, "alice@example.com")
        assert directory.touch_last_login(user.uid)
        assert directory.get_by_id(user.uid).last_login is not None

    def test_delete(self, directory: UserDirectory) -> None:
        user = _add(directory, "alice@example.com")
        assert directory.delete(user.uid)
        assert directory.get_by_id(user.uid) is None


class TestQueries:
    @pytest.fixture
    def users(self) -> list[User]:
        return [
            User(uid="1", email="ann@example.com", role="admin", first_name="Ann", created_at="2026-01-01T00:00:00"),
            User(uid="2", email="bob@example.com", first_name="Bob", created_at="2026-01-02T00:00:00"),
            User(uid="3", email="cat@example.com", last_name="Smith", is_active=False, created_at="2026-01-03T00:00:00"),
            User(uid="4", email="dan@example.com", created_at="2026-01-04T00:00:00"),
        ]

    def test_newest_first(self, users: list[User]) -> None:
        page = search_users(users)
        assert [u.uid for u in page.users] == ["4", "3", "2", "1"]

    def test_role_filter(self, users: list[User]) -> None:
        assert [u.uid for u in search_users(users, role="admin").users] == ["1"]
        assert search_users(users, role="all").total == 4

    def test_status_filter(self, users: list[User]) -> None:
        assert [u.uid for u in search_users(users, status="inactive").users] == ["3"]
        assert search_users(users, status="active").total == 3

    def test_search_matches_email_and_names(self, users: list[User]) -> None:
        assert [u.uid for u in search_users(users, search="BOB").users] == ["2"]
        assert [u.uid for u in search_users(users, search="smith").users] == ["3"]

    def test_pagination(self, users: list[User]) -> None:
        first = search_users(users, page=1, limit=3)
        second = search_users(users, page=2, limit=3)
        assert [u.uid for u in first.users] == ["4", "3", "2"]
        assert [u.uid for u in second.users] == ["1"]
        assert first.total_pages == 2
        assert first.has_next and not first.has_prev
        assert second.has_prev and not second.has_next

    def test_statistics(self, users: list[User]) -> None:
        assert user_statistics(users) == {
            "total_users": 4,
            "admin_users": 1,
            "normal_users": 3,
            "active_users": 3,
            "inactive_users": 1,
        }
