"""
Whole-database backup and restore.

Both directions go through SQLite's online backup API, so they are safe
while other connections are open and copy a consistent snapshot.
"""

import sqlite3
import logging
from datetime import datetime
from pathlib import Path
from typing import Union

from .core import Archive
from .errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

SQLITE_HEADER = b"SQLite format 3\x00"
BACKUP_MIMETYPE = "application/vnd.sqlite3"
RESTORE_UPLOAD_NAME = "database-restore-upload.db.temp"
UNPROCESSABLE = 422

# Tables an uploaded file must carry to be taken for an archive database
REQUIRED_TABLES = frozenset({
	"logs", "config", "users", "sessions", "tags", "user_allowed_tags", "notes", "note_tags",
	"signature_components", "signature_elements", "signature_element_parents",
	"archive_documents", "archive_document_tags",
})


def backup_filename(now: datetime = None) -> str:
	now = now or datetime.now()
	return f"jezarch-backup-{now.strftime('%Y-%m-%dT%H-%M-%S')}.sqlite.db"


class DatabaseBackup:
	def __init__(self, archive: Archive):
		self.archive = archive
		self.conn = archive.conn

	def checkpoint(self):
		"""Fold the WAL into the main file. A failed checkpoint only makes the copy slower."""
		try:
			self.conn.execute("PRAGMA wal_checkpoint(TRUNCATE);")
		except sqlite3.Error as e:
			logger.warning(f"WAL checkpoint before backup failed: {e}")

	def export(self, target: Union[str, Path]) -> Path:
		"""Copy the live database into a standalone file at target."""
		target = Path(target)
		target.parent.mkdir(parents=True, exist_ok=True)
		self.checkpoint()

		try:
			dest = sqlite3.connect(str(target))
			try:
				self.conn.backup(dest)
			finally:
				dest.close()
		except sqlite3.Error as e:
			logger.exception(f"Backup to {target} failed")
			raise StorageError("Database backup failed") from e

		logger.info(f"Database backed up to {target} ({target.stat().st_size} bytes)")
		return target

	@staticmethod
	def validate(source: Union[str, Path]):
		"""Reject anything that is not an intact archive database."""
		source = Path(source)
		with open(source, "rb") as f:
			if f.read(len(SQLITE_HEADER)) != SQLITE_HEADER:
				raise ValidationError("Uploaded file is not an SQLite database", field="file")

		try:
			conn = sqlite3.connect(str(source))
			try:
				result = conn.execute("PRAGMA integrity_check;").fetchone()[0]
				tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
			finally:
				conn.close()
		except sqlite3.Error as e:
			raise ValidationError(f"Uploaded database cannot be read: {e}", field="file", status=UNPROCESSABLE)

		if result != "ok":
			raise ValidationError(f"Uploaded database failed integrity check: {result}", field="file", status=UNPROCESSABLE)

		missing = REQUIRED_TABLES - tables
		if missing:
			raise ValidationError(
				f"Uploaded database is missing tables: {', '.join(sorted(missing))}",
				field="file", status=UNPROCESSABLE
			)

	def restore(self, source: Union[str, Path]):
		"""Replace the live database with the contents of source. Validates first."""
		self.validate(source)

		try:
			src = sqlite3.connect(str(source))
			try:
				src.backup(self.conn)
			finally:
				src.close()
		except sqlite3.Error as e:
			logger.exception(f"Restore from {source} failed")
			raise StorageError("Database restore failed") from e

		logger.info(f"Database restored from {source}")
