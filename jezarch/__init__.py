from .core import Archive
from .errors import (
	JezarchError, ValidationError, AuthenticationError, AuthorizationError,
	NotFoundError, ConflictError, StorageError
)

__all__ = [
	"Archive",
	"JezarchError", "ValidationError", "AuthenticationError", "AuthorizationError",
	"NotFoundError", "ConflictError", "StorageError",
]
