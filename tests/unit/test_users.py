"""Tests for accounts, password hashing and sessions."""

import pytest

from jezarch.core import Archive
from jezarch.crypto import PasswordHasher
from jezarch.errors import ConflictError, NotFoundError, ValidationError
from jezarch.tags import TagStore
from jezarch.users import SessionStore, User, UserStore, is_allowed_role

from .conftest import FAST_HASHER, PASSWORD


def test_hash_round_trip_and_format() -> None:
	encoded = FAST_HASHER.hash(PASSWORD)
	algorithm, iterations, _, _ = encoded.split("$")
	assert (algorithm, iterations) == ("pbkdf2_sha256", "1000")
	assert FAST_HASHER.verify(PASSWORD, encoded)
	assert not FAST_HASHER.verify("wrong-password", encoded)
	# Stored iteration count wins over the hasher's own
	assert PasswordHasher().verify(PASSWORD, encoded)


def test_hashes_are_salted() -> None:
	assert FAST_HASHER.hash(PASSWORD) != FAST_HASHER.hash(PASSWORD)


@pytest.mark.parametrize("encoded", ["", "plain", "md5$1$abc$def", "pbkdf2_sha256$x$abc$def"])
def test_malformed_hash_never_verifies(encoded: str) -> None:
	assert not FAST_HASHER.verify(PASSWORD, encoded)


def test_new_users_have_no_role(users: UserStore) -> None:
	user = users.create("newcomer", PASSWORD)
	assert user.role is None
	assert not is_allowed_role(user)
	assert "password" not in user.to_dict()


def test_duplicate_login_conflicts(users: UserStore, employee: User) -> None:
	with pytest.raises(ConflictError):
		users.create("employee", PASSWORD)


@pytest.mark.parametrize("login, password, field", [
	("ab", PASSWORD, "login"),
	("valid-login", "short", "password"),
	(None, PASSWORD, "login"),
])
def test_create_validation(users: UserStore, login, password, field: str) -> None:
	with pytest.raises(ValidationError) as exc:
		users.create(login, password)
	assert exc.value.field == field


def test_authenticate(users: UserStore, employee: User) -> None:
	assert users.authenticate("employee", PASSWORD) == employee
	assert users.authenticate("employee", "bad-password") is None
	assert users.authenticate("nobody", PASSWORD) is None


def test_role_checks(admin: User, employee: User) -> None:
	assert is_allowed_role(admin, "admin")
	assert is_allowed_role(employee)
	assert not is_allowed_role(employee, "admin")


def test_update_role(users: UserStore, employee: User) -> None:
	assert users.update_role("employee", "user").role == "user"
	with pytest.raises(ValidationError):
		users.update_role("employee", "superuser")
	with pytest.raises(NotFoundError):
		users.update_role("ghost", "user")


def test_password_change_ends_sessions(archive: Archive, users: UserStore, employee: User) -> None:
	sessions = SessionStore(archive)
	token = sessions.create(employee)
	assert sessions.get_user(token) == employee
	
	users.update_password(employee, "another-long-password")
	
	assert sessions.get_user(token) is None
	assert users.authenticate("employee", "another-long-password") == employee


def test_expired_sessions_are_rejected(archive: Archive, employee: User) -> None:
	expired = SessionStore(archive, ttl_hours=-1)
	token = expired.create(employee)
	assert expired.get_user(token) is None


def test_logout(archive: Archive, employee: User) -> None:
	sessions = SessionStore(archive)
	token = sessions.create(employee)
	assert sessions.delete(token)
	assert not sessions.delete(token)
	assert sessions.get_user(token) is None


def test_allowed_tags(archive: Archive, users: UserStore, employee: User) -> None:
	tags = TagStore(archive)
	first = tags.create("first")["tagId"]
	second = tags.create("second")["tagId"]
	
	users.set_allowed_tag_ids(employee.user_id, [second, first])
	assert users.get_allowed_tag_ids(employee.user_id) == [first, second]
	
	with pytest.raises(ValidationError):
		users.set_allowed_tag_ids(employee.user_id, [first, 999])
	assert users.get_allowed_tag_ids(employee.user_id) == [first, second]
