import os
import base64
from typing import Optional
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.backends import default_backend
from cryptography.exceptions import InvalidKey
import logging

logger = logging.getLogger(__name__)


class PasswordHasher:
	"""
	Hashes user passwords with PBKDF2-HMAC-SHA256.
	Encoded form: pbkdf2_sha256$<iterations>$<salt b64>$<hash b64>
	"""
	ALGORITHM = "pbkdf2_sha256"
	SALT_SIZE = 16
	KEY_SIZE = 32
	ITERATIONS = 100000
	
	def __init__(self, iterations: Optional[int] = None):
		self.iterations = iterations or self.ITERATIONS
	
	def _kdf(self, salt: bytes, iterations: int) -> PBKDF2HMAC:
		return PBKDF2HMAC(
			algorithm=hashes.SHA256(),
			length=self.KEY_SIZE,
			salt=salt,
			iterations=iterations,
			backend=default_backend()
		)
	
	def hash(self, password: str) -> str:
		"""Derive a salted hash for storage."""
		salt = os.urandom(self.SALT_SIZE)
		key = self._kdf(salt, self.iterations).derive(password.encode('utf-8'))
		return "$".join([
			self.ALGORITHM,
			str(self.iterations),
			base64.b64encode(salt).decode('ascii'),
			base64.b64encode(key).decode('ascii')
		])
	
	def verify(self, password: str, encoded: str) -> bool:
		"""Check a password against a stored hash. Malformed hashes never verify."""
		try:
			algorithm, iterations, salt_b64, key_b64 = encoded.split("$")
			if algorithm != self.ALGORITHM:
				return False
			salt = base64.b64decode(salt_b64)
			expected = base64.b64decode(key_b64)
			rounds = int(iterations)
		except (ValueError, AttributeError):
			logger.warning("Stored password hash is malformed")
			return False
		
		try:
			self._kdf(salt, rounds).verify(password.encode('utf-8'), expected)
		except InvalidKey:
			return False
		return True
