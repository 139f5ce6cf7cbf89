"""
Persistent audit log.

Entries are written to the logs table and mirrored to the Python logger,
so they show up both in the admin log viewer and on the console.
"""

import json
import sqlite3
import logging
from typing import Any, Dict, Optional

from .core import Archive
from .errors import StorageError, ValidationError
from .query import FieldSpec, FieldType, ResourceSchema, SearchRequest, SearchResponse, search

logger = logging.getLogger(__name__)

LEVELS = {
	"info": logging.INFO,
	"warn": logging.WARNING,
	"error": logging.ERROR,
}

LOG_SCHEMA = ResourceSchema(
	name="logs",
	table="logs",
	alias="l",
	primary_key="id",
	fields={
		"id": FieldSpec(FieldType.NUMBER),
		"level": FieldSpec(FieldType.TEXT),
		"userId": FieldSpec(FieldType.TEXT),
		"category": FieldSpec(FieldType.TEXT),
		"message": FieldSpec(FieldType.TEXT),
		"createdOn": FieldSpec(FieldType.DATE),
	},
	default_sort=[("createdOn", "DESC"), ("id", "DESC")]
)


def _serialize_data(data: Any) -> Optional[str]:
	if data is None:
		return None
	if isinstance(data, BaseException):
		data = {"error": type(data).__name__, "message": str(data)}
	elif isinstance(data, dict):
		data = {
			k: ({"error": type(v).__name__, "message": str(v)} if isinstance(v, BaseException) else v)
			for k, v in data.items()
		}
	return json.dumps(data, default=str)


class AuditLog:
	"""Append-only log of user-visible events."""
	
	def __init__(self, archive: Archive):
		self.archive = archive
		self.conn = archive.conn
	
	def write(self, level: str, message: str, user: Optional[str] = None,
			category: Optional[str] = None, data: Any = None):
		"""Persist an entry. Failures to persist are reported on the console only."""
		if level not in LEVELS:
			raise ValueError(f"Unknown log level: {level}")
		
		prefix = f"[{category}] " if category else ""
		suffix = f" (user: {user})" if user else ""
		logger.log(LEVELS[level], f"{prefix}{message}{suffix}")
		
		try:
			with self.conn:
				self.conn.execute(
					"INSERT INTO logs (level, userId, category, message, data) VALUES (?, ?, ?, ?, ?)",
					(level, user, category, message, _serialize_data(data))
				)
		except sqlite3.Error:
			logger.exception("Could not persist audit log entry")
	
	def info(self, message: str, user: Optional[str] = None, category: Optional[str] = None, data: Any = None):
		self.write("info", message, user, category, data)
	
	def warn(self, message: str, user: Optional[str] = None, category: Optional[str] = None, data: Any = None):
		self.write("warn", message, user, category, data)
	
	def error(self, message: str, user: Optional[str] = None, category: Optional[str] = None, data: Any = None):
		self.write("error", message, user, category, data)
	
	def search(self, request: SearchRequest) -> SearchResponse:
		response = search(self.conn, LOG_SCHEMA, request)
		for entry in response.data:
			entry["data"] = self._decode(entry.get("data"))
		return response
	
	@staticmethod
	def _decode(raw: Optional[str]) -> Any:
		if raw is None:
			return None
		try:
			return json.loads(raw)
		except json.JSONDecodeError:
			return raw
	
	def purge(self, older_than_days: Any) -> int:
		"""Delete entries older than the given age in days. Returns the number removed."""
		if isinstance(older_than_days, bool) or not isinstance(older_than_days, (int, float)) or older_than_days < 0:
			raise ValidationError("'olderThanDays' must be a non-negative number", field="olderThanDays")
		
		try:
			with self.conn:
				cursor = self.conn.execute(
					"DELETE FROM logs WHERE createdOn <= datetime('now', ?)",
					(f"-{float(older_than_days)} days",)
				)
		except sqlite3.Error as e:
			logger.exception("Log purge failed")
			raise StorageError("Failed to purge logs") from e
		
		logger.info(f"Purged {cursor.rowcount} log entries older than {older_than_days} days")
		return cursor.rowcount
	
