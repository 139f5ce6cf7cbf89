import sqlite3
import logging
from typing import Any, Dict, List, Sequence

from .core import Archive
from .errors import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Join tables that attach tags to other resources: table -> owning id column
TAG_LINKS = {
	"note_tags": "noteId",
	"archive_document_tags": "archiveDocumentId",
}


def parse_tag_ids(values: Any, field: str = "tagIds") -> List[int]:
	if values is None:
		return []
	if not isinstance(values, list):
		raise ValidationError(f"'{field}' must be a list of tag ids", field=field)
	ids = []
	for value in values:
		if not isinstance(value, int) or isinstance(value, bool) or value < 1:
			raise ValidationError(f"Invalid tag id {value!r}", field=field)
		if value not in ids:
			ids.append(value)
	return ids


class TagStore:
	def __init__(self, archive: Archive):
		self.archive = archive
		self.conn = archive.conn
	
	def list_all(self) -> List[Dict]:
		cursor = self.conn.execute("SELECT * FROM tags ORDER BY name COLLATE NOCASE")
		return [dict(row) for row in cursor]
	
	def get(self, tag_id: int) -> Dict:
		row = self.conn.execute("SELECT * FROM tags WHERE tagId = ?", (tag_id,)).fetchone()
		if row is None:
			raise NotFoundError(f"Tag {tag_id} not found")
		return dict(row)
	
	def create(self, name: Any, description: Any = None) -> Dict:
		name = self._validate_name(name)
		if description is not None and not isinstance(description, str):
			raise ValidationError("'description' must be a string", field="description")
		
		with self.archive.transaction():
			try:
				cursor = self.conn.execute(
					"INSERT INTO tags (name, description) VALUES (?, ?)", (name, description)
				)
			except sqlite3.IntegrityError:
				raise ConflictError(f"Tag '{name}' already exists")
		return self.get(cursor.lastrowid)
	
	def update(self, tag_id: int, changes: Dict[str, Any]) -> Dict:
		self.get(tag_id)
		assignments = []
		params = []
		if "name" in changes:
			assignments.append("name = ?")
			params.append(self._validate_name(changes["name"]))
		if "description" in changes:
			if changes["description"] is not None and not isinstance(changes["description"], str):
				raise ValidationError("'description' must be a string", field="description")
			assignments.append("description = ?")
			params.append(changes["description"])
		
		if assignments:
			with self.archive.transaction():
				try:
					self.conn.execute(
						f"UPDATE tags SET {', '.join(assignments)} WHERE tagId = ?", params + [tag_id]
					)
				except sqlite3.IntegrityError:
					raise ConflictError(f"Tag '{changes.get('name')}' already exists")
		return self.get(tag_id)
	
	def delete(self, tag_id: int):
		tag = self.get(tag_id)
		with self.archive.transaction():
			self.conn.execute("DELETE FROM tags WHERE tagId = ?", (tag_id,))
		logger.info(f"Deleted tag '{tag['name']}'")
	
	@staticmethod
	def _validate_name(name: Any) -> str:
		if not isinstance(name, str) or not name.strip():
			raise ValidationError("Tag name must be a non-empty string", field="name")
		if len(name.strip()) > 100:
			raise ValidationError("Tag name must be at most 100 characters", field="name")
		return name.strip()
	
	# --- LINKS ---
	
	def require_existing(self, tag_ids: Sequence[int]):
		"""Raise naming the first tag id that does not exist."""
		if not tag_ids:
			return
		placeholders = ", ".join("?" for _ in tag_ids)
		existing = {
			row[0] for row in self.conn.execute(
				f"SELECT tagId FROM tags WHERE tagId IN ({placeholders})", list(tag_ids)
			)
		}
		for tag_id in tag_ids:
			if tag_id not in existing:
				raise ValidationError(f"Tag {tag_id} does not exist", field="tagIds", status=422)
	
	def replace_links(self, table: str, owner_id: int, tag_ids: Sequence[int]):
		"""Replace the tag set of one row. Call inside the caller's transaction."""
		column = TAG_LINKS[table]
		self.require_existing(tag_ids)
		self.conn.execute(f"DELETE FROM {table} WHERE {column} = ?", (owner_id,))
		self.conn.executemany(
			f"INSERT INTO {table} ({column}, tagId) VALUES (?, ?)",
			[(owner_id, tag_id) for tag_id in tag_ids]
		)
	
	def tags_for(self, table: str, owner_ids: Sequence[int]) -> Dict[int, List[Dict]]:
		"""Tags of many rows in one query, keyed by owner id."""
		column = TAG_LINKS[table]
		result: Dict[int, List[Dict]] = {owner_id: [] for owner_id in owner_ids}
		if not owner_ids:
			return result
		placeholders = ", ".join("?" for _ in owner_ids)
		cursor = self.conn.execute(f"""
			SELECT link.{column} AS ownerId, t.tagId, t.name, t.description
			FROM {table} link
			JOIN tags t ON t.tagId = link.tagId
			WHERE link.{column} IN ({placeholders})
			ORDER BY t.name COLLATE NOCASE
		""", list(owner_ids))
		for row in cursor:
			result[row["ownerId"]].append({
				"tagId": row["tagId"],
				"name": row["name"],
				"description": row["description"]
			})
		return result


def tag_link_condition(table: str, alias: str):
	"""Custom field handler factory: ANY_OF tag ids via EXISTS on the join table."""
	column = TAG_LINKS[table]
	
	def build(predicate):
		placeholders = ", ".join("?" for _ in predicate.value)
		return (
			f"EXISTS (SELECT 1 FROM {table} link WHERE link.{column} = {alias}.{column}"
			f" AND link.tagId IN ({placeholders}))"
		), list(predicate.value)
	
	return build
