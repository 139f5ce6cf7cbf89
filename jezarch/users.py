import sqlite3
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Any

from .core import Archive
from .crypto import PasswordHasher
from .errors import ConflictError, NotFoundError, ValidationError
from .config import SUPPORTED_LANGUAGES

logger = logging.getLogger(__name__)

ROLES = ("admin", "employee", "user")
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
MIN_PASSWORD_LENGTH = 8


@dataclass
class User:
	user_id: int
	login: str
	role: Optional[str]
	preferred_language: str = "en"
	
	@classmethod
	def from_row(cls, row) -> 'User':
		return cls(
			user_id=row["userId"],
			login=row["login"],
			role=row["role"],
			preferred_language=row["preferredLanguage"]
		)
	
	@property
	def is_admin(self) -> bool:
		return self.role == "admin"
	
	def to_dict(self) -> dict:
		return {
			"userId": self.user_id,
			"login": self.login,
			"role": self.role,
			"preferredLanguage": self.preferred_language
		}


def is_allowed_role(user: User, *roles: str) -> bool:
	"""No roles means any authenticated user. A NULL role never matches."""
	if user.role is None:
		return False
	if not roles:
		return True
	return user.role in roles


def is_owner(user: User, owner_user_id: int) -> bool:
	return user.user_id == owner_user_id


def _validate_login(login: Any) -> str:
	if not isinstance(login, str) or not 3 <= len(login.strip()) <= 64:
		raise ValidationError("Login must be 3 to 64 characters", field="login")
	return login.strip()


def _validate_password(password: Any) -> str:
	if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
		raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", field="password")
	return password


class UserStore:
	def __init__(self, archive: Archive, hasher: Optional[PasswordHasher] = None):
		self.archive = archive
		self.conn = archive.conn
		self.hasher = hasher or PasswordHasher()
	
	def create(self, login: Any, password: Any, role: Optional[str] = None,
			preferred_language: str = "en") -> User:
		login = _validate_login(login)
		password = _validate_password(password)
		if role is not None and role not in ROLES:
			raise ValidationError(f"Invalid role: {role}", field="role")
		if preferred_language not in SUPPORTED_LANGUAGES:
			raise ValidationError(f"Unsupported language: {preferred_language}", field="preferredLanguage")
		
		with self.archive.transaction():
			try:
				cursor = self.conn.execute(
					"INSERT INTO users (login, password, role, preferredLanguage) VALUES (?, ?, ?, ?)",
					(login, self.hasher.hash(password), role, preferred_language)
				)
			except sqlite3.IntegrityError:
				raise ConflictError("Username already exists")
		
		logger.info(f"Created user '{login}' (role: {role})")
		return self.get_by_id(cursor.lastrowid)
	
	def get_by_id(self, user_id: int) -> User:
		row = self.conn.execute("SELECT * FROM users WHERE userId = ?", (user_id,)).fetchone()
		if row is None:
			raise NotFoundError(f"User {user_id} not found")
		return User.from_row(row)
	
	def get_by_login(self, login: str) -> User:
		row = self.conn.execute("SELECT * FROM users WHERE login = ?", (login,)).fetchone()
		if row is None:
			raise NotFoundError(f"User '{login}' not found")
		return User.from_row(row)
	
	def list_all(self) -> List[User]:
		cursor = self.conn.execute("SELECT * FROM users ORDER BY login")
		return [User.from_row(row) for row in cursor]
	
	def authenticate(self, login: str, password: str) -> Optional[User]:
		"""Returns the user when the credentials match, else None."""
		row = self.conn.execute("SELECT * FROM users WHERE login = ?", (login,)).fetchone()
		if row is None or not isinstance(password, str):
			return None
		if not self.hasher.verify(password, row["password"]):
			return None
		return User.from_row(row)
	
	def update_role(self, login: str, role: Optional[str]) -> User:
		if role is not None and role not in ROLES:
			raise ValidationError(f"Invalid role: {role}", field="role")
		user = self.get_by_login(login)
		with self.archive.transaction():
			self.conn.execute("UPDATE users SET role = ? WHERE userId = ?", (role, user.user_id))
		logger.info(f"User '{login}' role changed from {user.role} to {role}")
		return self.get_by_id(user.user_id)
	
	def update_password(self, user: User, new_password: Any):
		new_password = _validate_password(new_password)
		with self.archive.transaction():
			self.conn.execute(
				"UPDATE users SET password = ? WHERE userId = ?",
				(self.hasher.hash(new_password), user.user_id)
			)
			# Other sessions are invalidated
			self.conn.execute("DELETE FROM sessions WHERE userId = ?", (user.user_id,))
	
	def get_allowed_tag_ids(self, user_id: int) -> List[int]:
		cursor = self.conn.execute(
			"SELECT tagId FROM user_allowed_tags WHERE userId = ? ORDER BY tagId", (user_id,)
		)
		return [row[0] for row in cursor]
	
	def set_allowed_tag_ids(self, user_id: int, tag_ids: List[int]):
		with self.archive.transaction():
			self.conn.execute("DELETE FROM user_allowed_tags WHERE userId = ?", (user_id,))
			try:
				self.conn.executemany(
					"INSERT INTO user_allowed_tags (userId, tagId) VALUES (?, ?)",
					[(user_id, tag_id) for tag_id in tag_ids]
				)
			except sqlite3.IntegrityError:
				raise ValidationError("One or more tags do not exist", field="tagIds", status=422)


class SessionStore:
	"""Opaque bearer tokens with a fixed lifetime."""
	
	def __init__(self, archive: Archive, ttl_hours: float = 24):
		self.archive = archive
		self.conn = archive.conn
		self.ttl = timedelta(hours=ttl_hours)
	
	def create(self, user: User) -> str:
		token = str(uuid.uuid4())
		expires_at = (datetime.now(timezone.utc) + self.ttl).strftime(TIMESTAMP_FORMAT)
		with self.archive.transaction():
			self.conn.execute("DELETE FROM sessions WHERE expiresAt <= ?", (datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT),))
			self.conn.execute(
				"INSERT INTO sessions (userId, token, expiresAt) VALUES (?, ?, ?)",
				(user.user_id, token, expires_at)
			)
		return token
	
	def get_user(self, token: str) -> Optional[User]:
		"""User behind a live session, or None."""
		row = self.conn.execute("""
			SELECT u.* FROM sessions s
			JOIN users u ON u.userId = s.userId
			WHERE s.token = ? AND s.expiresAt > ?
		""", (token, datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT))).fetchone()
		if row is None:
			return None
		return User.from_row(row)
	
	def delete(self, token: str) -> bool:
		with self.archive.transaction():
			cursor = self.conn.execute("DELETE FROM sessions WHERE token = ?", (token,))
		return cursor.rowcount > 0
