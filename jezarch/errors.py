"""
Jezarch error taxonomy.

Stores and the query layer raise these; the HTTP layer maps each class
to a status code and a stable JSON shape.
"""

from typing import Optional


class JezarchError(Exception):
	"""Base class for all application errors."""
	status = 500

	def __init__(self, message: str, status: Optional[int] = None):
		self.message = message
		if status is not None:
			self.status = status
		super().__init__(message)

	def to_dict(self) -> dict:
		return {"error": self.message}


class ValidationError(JezarchError):
	"""Malformed input, disallowed field/condition, cycle or dangling reference."""
	status = 400

	def __init__(self, message: str, field: Optional[str] = None, status: Optional[int] = None):
		self.field = field
		super().__init__(message, status)

	def to_dict(self) -> dict:
		data = super().to_dict()
		if self.field is not None:
			data["field"] = self.field
		return data


class AuthenticationError(JezarchError):
	"""Missing, expired or unusable session."""
	status = 401


class AuthorizationError(JezarchError):
	"""Caller lacks the role or ownership for the operation."""
	status = 403


class NotFoundError(JezarchError):
	status = 404


class ConflictError(JezarchError):
	"""Unique constraint on a user-visible name."""
	status = 409


class StorageError(JezarchError):
	"""
	Underlying datastore failure.
	The message is safe to show to clients; the driver error is chained as __cause__.
	"""
	status = 500

	def __init__(self, message: str = "Internal storage error"):
		super().__init__(message)
