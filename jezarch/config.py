import logging
from enum import Enum
from typing import Optional, Any

from .core import Archive
from .errors import ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("en", "pl")


class AppConfigKey(Enum):
	"""Runtime settings stored in the config table."""
	DEFAULT_LANGUAGE = "default_language"
	PORT = "port"


def _validate_language(value: str) -> str:
	if value not in SUPPORTED_LANGUAGES:
		raise ValidationError(
			f"Unsupported language '{value}', expected one of: {', '.join(SUPPORTED_LANGUAGES)}", field="value"
		)
	return value


def _validate_port(value: str) -> str:
	try:
		port = int(value)
	except ValueError:
		raise ValidationError(f"Port must be an integer, got '{value}'", field="value")
	if not 1 <= port <= 65535:
		raise ValidationError(f"Port must be between 1 and 65535, got {port}", field="value")
	return str(port)


VALIDATORS = {
	AppConfigKey.DEFAULT_LANGUAGE: _validate_language,
	AppConfigKey.PORT: _validate_port,
}

DEFAULTS = {
	AppConfigKey.DEFAULT_LANGUAGE: "en",
}


def parse_key(raw: str) -> AppConfigKey:
	try:
		return AppConfigKey(raw)
	except ValueError:
		raise ValidationError(f"Unknown configuration key: {raw}", field="key")


class ConfigStore:
	"""Key/value settings. Values are stored as text."""
	
	def __init__(self, archive: Archive):
		self.archive = archive
		self.conn = archive.conn
	
	def get(self, key: AppConfigKey) -> Optional[str]:
		row = self.conn.execute("SELECT value FROM config WHERE key = ?", (key.value,)).fetchone()
		if row is None:
			return DEFAULTS.get(key)
		return row["value"]
	
	def set(self, key: AppConfigKey, value: Any) -> str:
		if value is None or isinstance(value, (bool, dict, list)):
			raise ValidationError(f"Invalid value for {key.value}", field="value")
		value = VALIDATORS[key](str(value).strip())
		
		with self.archive.transaction():
			self.conn.execute(
				"INSERT INTO config (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value = excluded.value",
				(key.value, value)
			)
		logger.info(f"Config '{key.value}' set to '{value}'")
		return value
