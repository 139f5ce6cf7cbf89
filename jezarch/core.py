import sqlite3
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Union, Iterator

from .errors import StorageError
from .query.executor import register_functions

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


class Archive:
	def __init__(self, db_path: Union[str, Path] = MEMORY_DB, initialize: bool = True):
		"""
		Open the archive database.
		:param db_path: Path to the SQLite file, or ":memory:".
		:param initialize: Create missing tables and indices.
		"""
		self.db_path = str(db_path)
		self.conn = self._get_connection()
		self._tx_depth = 0

		if initialize:
			self._initialize_schema()
			logger.debug(f"Initialized archive schema at {self.db_path}")

	def _get_connection(self) -> sqlite3.Connection:
		"""Returns a tuned SQLite connection."""
		try:
			conn = sqlite3.connect(self.db_path, check_same_thread=False)
		except sqlite3.Error as e:
			logger.exception(f"Could not open database {self.db_path}")
			raise StorageError("Database unavailable") from e
		conn.row_factory = sqlite3.Row
		if self.db_path != MEMORY_DB:
			conn.execute("PRAGMA journal_mode=WAL;")
		conn.execute("PRAGMA synchronous=NORMAL;")
		conn.execute("PRAGMA foreign_keys=ON;")
		register_functions(conn)
		return conn

	def _initialize_schema(self):
		"""Creates the Database Tables with Indices for performance."""
		with self.conn:
			# 1. LOGS (Audit trail)
			self.conn.execute("""
				CREATE TABLE IF NOT EXISTS logs (
					id INTEGER PRIMARY KEY AUTOINCREMENT,
					level TEXT NOT NULL CHECK(level IN ('info', 'warn', 'error')),
					createdOn DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
					userId TEXT,
					category TEXT,
					message TEXT NOT NULL,
					data TEXT
				);
			""")
			self.conn.execute("CREATE INDEX IF NOT EXISTS idx_logs_created ON logs(createdOn);")

			# 2. CONFIG (Key/value settings)
			self.conn.execute("""
				CREATE TABLE IF NOT EXISTS config (
					key TEXT PRIMARY KEY,
					value TEXT NOT NULL
				);
			""")

			# 3. USERS & SESSIONS
			self.conn.execute("""
				CREATE TABLE IF NOT EXISTS users (
					userId INTEGER PRIMARY KEY AUTOINCREMENT,
					login TEXT NOT NULL UNIQUE,
					password TEXT NOT NULL,
					role TEXT DEFAULT NULL CHECK(role IS NULL OR role IN ('admin', 'employee', 'user')),
					preferredLanguage TEXT NOT NULL DEFAULT 'en' CHECK(preferredLanguage IN ('en', 'pl')),
					createdOn DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
				);
			""")
			self.conn.execute("""
				CREATE TABLE IF NOT EXISTS sessions (
					sessionId INTEGER PRIMARY KEY AUTOINCREMENT,
					userId INTEGER NOT NULL,
					token TEXT NOT NULL UNIQUE,
					expiresAt DATETIME NOT NULL,
					FOREIGN KEY(userId) REFERENCES users(userId) ON DELETE CASCADE
				);
			""")

			# 4. TAGS
			self.conn.execute("""
				CREATE TABLE IF NOT EXISTS tags (
					tagId INTEGER PRIMARY KEY AUTOINCREMENT,
					name TEXT NOT NULL UNIQUE COLLATE NOCASE,
					description TEXT,
					createdOn DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
				);
			""")
			self.conn.execute("""
				CREATE TABLE IF NOT EXISTS user_allowed_tags (
					userId INTEGER NOT NULL,
					tagId INTEGER NOT NULL,
					PRIMARY KEY (userId, tagId),
					FOREIGN KEY(userId) REFERENCES users(userId) ON DELETE CASCADE,
					FOREIGN KEY(tagId) REFERENCES tags(tagId) ON DELETE CASCADE
				);
			""")

			# 5. NOTES
			self.conn.execute("""
				CREATE TABLE IF NOT EXISTS notes (
					noteId INTEGER PRIMARY KEY AUTOINCREMENT,
					title TEXT NOT NULL,
					content TEXT,
					shared BOOLEAN NOT NULL DEFAULT 0,
					ownerUserId INTEGER NOT NULL,
					createdOn DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
					modifiedOn DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
					FOREIGN KEY(ownerUserId) REFERENCES users(userId) ON DELETE CASCADE
				);
			""")
			self.conn.execute("CREATE INDEX IF NOT EXISTS idx_notes_owner ON notes(ownerUserId);")
			self.conn.execute("""
				CREATE TABLE IF NOT EXISTS note_tags (
					noteId INTEGER NOT NULL,
					tagId INTEGER NOT NULL,
					PRIMARY KEY (noteId, tagId),
					FOREIGN KEY(noteId) REFERENCES notes(noteId) ON DELETE CASCADE,
					FOREIGN KEY(tagId) REFERENCES tags(tagId) ON DELETE CASCADE
				);
			""")
			self.conn.execute("CREATE INDEX IF NOT EXISTS idx_note_tags_tag ON note_tags(tagId);")

			# 6. SIGNATURES (Components, Elements, Parent graph)
			self.conn.execute("""
				CREATE TABLE IF NOT EXISTS signature_components (
					signatureComponentId INTEGER PRIMARY KEY AUTOINCREMENT,
					name TEXT NOT NULL UNIQUE,
					description TEXT,
					index_type TEXT NOT NULL DEFAULT 'dec' CHECK(index_type IN ('dec', 'roman', 'small_char', 'capital_char')),
					index_count INTEGER NOT NULL DEFAULT 0,
					createdOn DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
					modifiedOn DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
				);
			""")
			self.conn.execute("""
				CREATE TABLE IF NOT EXISTS signature_elements (
					signatureElementId INTEGER PRIMARY KEY AUTOINCREMENT,
					signatureComponentId INTEGER NOT NULL,
					name TEXT NOT NULL,
					description TEXT,
					"index" TEXT,
					createdOn DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
					modifiedOn DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
					FOREIGN KEY(signatureComponentId) REFERENCES signature_components(signatureComponentId) ON DELETE CASCADE
				);
			""")
			self.conn.execute("CREATE INDEX IF NOT EXISTS idx_elements_component ON signature_elements(signatureComponentId);")
			self.conn.execute("CREATE INDEX IF NOT EXISTS idx_elements_name ON signature_elements(name COLLATE NOCASE);")
			self.conn.execute("""
				CREATE TABLE IF NOT EXISTS signature_element_parents (
					childElementId INTEGER NOT NULL,
					parentElementId INTEGER NOT NULL,
					PRIMARY KEY (childElementId, parentElementId),
					FOREIGN KEY(childElementId) REFERENCES signature_elements(signatureElementId) ON DELETE CASCADE,
					FOREIGN KEY(parentElementId) REFERENCES signature_elements(signatureElementId) ON DELETE CASCADE
				);
			""")
			self.conn.execute("CREATE INDEX IF NOT EXISTS idx_sep_parent ON signature_element_parents(parentElementId);")

			# 7. ARCHIVE DOCUMENTS
			self.conn.execute("""
				CREATE TABLE IF NOT EXISTS archive_documents (
					archiveDocumentId INTEGER PRIMARY KEY AUTOINCREMENT,
					parentUnitArchiveDocumentId INTEGER,
					ownerUserId INTEGER NOT NULL,
					type TEXT NOT NULL CHECK(type IN ('unit', 'document')),
					active BOOLEAN NOT NULL DEFAULT 1,
					topographicSignatureElementIds TEXT NOT NULL DEFAULT '[]',
					descriptiveSignatureElementIds TEXT NOT NULL DEFAULT '[]',
					title TEXT NOT NULL,
					creator TEXT NOT NULL,
					creationDate TEXT NOT NULL,
					numberOfPages INTEGER,
					documentType TEXT,
					dimensions TEXT,
					binding TEXT,
					condition TEXT,
					documentLanguage TEXT,
					contentDescription TEXT,
					remarks TEXT,
					accessLevel TEXT,
					accessConditions TEXT,
					additionalInformation TEXT,
					relatedDocumentsReferences TEXT,
					recordChangeHistory TEXT,
					isDigitized BOOLEAN NOT NULL DEFAULT 0,
					digitizedVersionLink TEXT,
					createdOn DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
					modifiedOn DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP,
					FOREIGN KEY(ownerUserId) REFERENCES users(userId) ON DELETE CASCADE,
					FOREIGN KEY(parentUnitArchiveDocumentId) REFERENCES archive_documents(archiveDocumentId) ON DELETE SET NULL
				);
			""")
			self.conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_parent ON archive_documents(parentUnitArchiveDocumentId);")
			self.conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_owner ON archive_documents(ownerUserId);")
			self.conn.execute("""
				CREATE TABLE IF NOT EXISTS archive_document_tags (
					archiveDocumentId INTEGER NOT NULL,
					tagId INTEGER NOT NULL,
					PRIMARY KEY (archiveDocumentId, tagId),
					FOREIGN KEY(archiveDocumentId) REFERENCES archive_documents(archiveDocumentId) ON DELETE CASCADE,
					FOREIGN KEY(tagId) REFERENCES tags(tagId) ON DELETE CASCADE
				);
			""")
			self.conn.execute("CREATE INDEX IF NOT EXISTS idx_adt_tag ON archive_document_tags(tagId);")

	@contextmanager
	def transaction(self) -> Iterator[sqlite3.Connection]:
		"""
		Run a block of writes atomically.

		BEGIN IMMEDIATE takes the write lock before the block reads anything, so
		concurrent writers are serialized and every read inside sees the state
		the block commits against. Nested calls join the outer transaction.
		Commits on success, rolls back on any exception. Driver errors surface as StorageError.
		"""
		if self._tx_depth:
			self._tx_depth += 1
			try:
				yield self.conn
			finally:
				self._tx_depth -= 1
			return

		try:
			self.conn.execute("BEGIN IMMEDIATE")
		except sqlite3.Error as e:
			logger.exception("Could not begin transaction")
			raise StorageError() from e

		self._tx_depth = 1
		try:
			yield self.conn
			self.conn.commit()
		except sqlite3.Error as e:
			self.conn.rollback()
			logger.exception("Transaction rolled back")
			raise StorageError() from e
		except BaseException:
			self.conn.rollback()
			raise
		finally:
			self._tx_depth = 0

	def close(self):
		self.conn.close()
