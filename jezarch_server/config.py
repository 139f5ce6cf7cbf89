from dataclasses import dataclass, field
from pathlib import Path
from typing import Union
import os
import logging

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
	"""Configuration for the Jezarch API server."""
	host: str = "127.0.0.1"
	port: int = 8080
	debug: bool = False
	secret_key: str = field(default_factory=lambda: os.urandom(24).hex())
	db_path: Union[str, Path] = None
	session_ttl_hours: float = 24
	default_page_size: int = 10
	max_page_size: int = 100
	# Request body cap, database restore uploads included
	max_content_length: int = 256 * 1024 * 1024
	
	def __post_init__(self):
		# Each request opens its own connection, so the database must be a file
		if self.db_path is None:
			self.db_path = Path.cwd() / ".jezarch" / "jezarch.db"
		self.db_path = Path(self.db_path).resolve()
		self.db_path.parent.mkdir(parents=True, exist_ok=True)
		
		if not 1 <= self.port <= 65535:
			raise ValueError(f"Port must be between 1 and 65535, got {self.port}")
		if self.default_page_size < 1 or self.max_page_size < self.default_page_size:
			raise ValueError("Page sizes must satisfy 1 <= default_page_size <= max_page_size")
