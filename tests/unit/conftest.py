"""Shared test fixtures."""

from pathlib import Path
from typing import Callable, Dict, Iterator

import pytest
from flask import Flask
from flask.testing import FlaskClient

from jezarch.core import Archive
from jezarch.crypto import PasswordHasher
from jezarch.signatures import SignatureStore
from jezarch.users import User, UserStore
from jezarch_server import ServerConfig, create_app

PASSWORD = "correct-horse-battery"

# Hashes still verify at any iteration count; a low count keeps the suite fast
FAST_HASHER = PasswordHasher(iterations=1000)


@pytest.fixture
def archive() -> Iterator[Archive]:
	"""Return an in-memory archive with the full schema."""
	archive = Archive(":memory:")
	yield archive
	archive.close()


@pytest.fixture
def users(archive: Archive) -> UserStore:
	return UserStore(archive, FAST_HASHER)


@pytest.fixture
def admin(users: UserStore) -> User:
	return users.create("admin", PASSWORD, role="admin")


@pytest.fixture
def employee(users: UserStore) -> User:
	return users.create("employee", PASSWORD, role="employee")


@pytest.fixture
def other_employee(users: UserStore) -> User:
	return users.create("other", PASSWORD, role="employee")


@pytest.fixture
def signatures(archive: Archive) -> SignatureStore:
	return SignatureStore(archive)


@pytest.fixture
def app(tmp_path: Path) -> Flask:
	"""Application backed by a fresh database file with admin, employee and pending accounts."""
	config = ServerConfig(db_path=tmp_path / "jezarch.db")
	app = create_app(config)
	app.config["TESTING"] = True
	
	archive = Archive(config.db_path)
	store = UserStore(archive, FAST_HASHER)
	store.create("admin", PASSWORD, role="admin")
	store.create("employee", PASSWORD, role="employee")
	store.create("pending", PASSWORD)
	archive.close()
	return app


@pytest.fixture
def client(app: Flask) -> FlaskClient:
	return app.test_client()


@pytest.fixture
def login(client: FlaskClient) -> Callable[[str], Dict[str, str]]:
	"""Log in and return request headers carrying the session token."""
	def do_login(login_name: str, password: str = PASSWORD) -> Dict[str, str]:
		response = client.post("/api/user/login", json={"login": login_name, "password": password})
		assert response.status_code == 200, response.get_json()
		return {"Authorization": response.get_json()["token"]}
	return do_login


@pytest.fixture
def admin_headers(login) -> Dict[str, str]:
	return login("admin")


@pytest.fixture
def employee_headers(login) -> Dict[str, str]:
	return login("employee")
