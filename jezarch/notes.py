import logging
from typing import Any, Dict, Optional

from .core import Archive
from .errors import AuthorizationError, NotFoundError, ValidationError
from .tags import TagStore, parse_tag_ids, tag_link_condition
from .users import User, is_owner
from .query import (
	Condition, FieldSpec, FieldType, ResourceSchema, SearchRequest,
	SearchResponse, VisibilityClause, search
)

logger = logging.getLogger(__name__)

NOTE_SCHEMA = ResourceSchema(
	name="notes",
	table="notes",
	alias="n",
	primary_key="noteId",
	fields={
		"noteId": FieldSpec(FieldType.NUMBER),
		"title": FieldSpec(FieldType.TEXT),
		"content": FieldSpec(FieldType.TEXT, sortable=False),
		"shared": FieldSpec(FieldType.BOOLEAN),
		"ownerUserId": FieldSpec(FieldType.NUMBER),
		"createdOn": FieldSpec(FieldType.DATE),
		"modifiedOn": FieldSpec(FieldType.DATE),
		"tags": FieldSpec(FieldType.NUMBER, sortable=False, handler=tag_link_condition("note_tags", "n"),
						conditions=frozenset({Condition.ANY_OF})),
	},
	columns="n.*, (SELECT login FROM users u WHERE u.userId = n.ownerUserId) AS ownerLogin",
	default_sort=[("modifiedOn", "DESC")]
)


def note_visibility(user: User) -> Optional[VisibilityClause]:
	"""Own notes plus shared ones; administrators see everything."""
	if user.is_admin:
		return None
	return VisibilityClause("n.ownerUserId = ? OR n.shared = 1", [user.user_id])


def _note_fields(data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
	fields = {}
	if "title" in data or not partial:
		title = data.get("title")
		if not isinstance(title, str) or not title.strip():
			raise ValidationError("'title' must be a non-empty string", field="title")
		fields["title"] = title.strip()
	if "content" in data:
		if data["content"] is not None and not isinstance(data["content"], str):
			raise ValidationError("'content' must be a string", field="content")
		fields["content"] = data["content"]
	if "shared" in data:
		if not isinstance(data["shared"], bool):
			raise ValidationError("'shared' must be a boolean", field="shared")
		fields["shared"] = 1 if data["shared"] else 0
	return fields


class NoteStore:
	def __init__(self, archive: Archive):
		self.archive = archive
		self.conn = archive.conn
		self.tags = TagStore(archive)
	
	def _get_row(self, note_id: int) -> Dict:
		row = self.conn.execute(
			f"SELECT {NOTE_SCHEMA.select_list} FROM notes n WHERE n.noteId = ?", (note_id,)
		).fetchone()
		if row is None:
			raise NotFoundError(f"Note {note_id} not found")
		return self._present(dict(row))
	
	def _present(self, note: Dict) -> Dict:
		note["shared"] = bool(note["shared"])
		note["tags"] = self.tags.tags_for("note_tags", [note["noteId"]])[note["noteId"]]
		return note
	
	def get(self, note_id: int, user: User) -> Dict:
		"""Readable by the owner, by anyone when shared, and by administrators."""
		note = self._get_row(note_id)
		if not (note["shared"] or is_owner(user, note["ownerUserId"]) or user.is_admin):
			raise AuthorizationError("You do not have access to this note")
		return note
	
	def create(self, data: Dict[str, Any], owner: User) -> Dict:
		fields = _note_fields(data, partial=False)
		tag_ids = parse_tag_ids(data.get("tagIds"))
		
		with self.archive.transaction():
			cursor = self.conn.execute(
				"INSERT INTO notes (title, content, shared, ownerUserId) VALUES (?, ?, ?, ?)",
				(fields["title"], fields.get("content"), fields.get("shared", 0), owner.user_id)
			)
			note_id = cursor.lastrowid
			self.tags.replace_links("note_tags", note_id, tag_ids)
		
		logger.debug(f"Note {note_id} created by {owner.login}")
		return self._get_row(note_id)
	
	def update(self, note_id: int, data: Dict[str, Any], user: User) -> Dict:
		note = self._get_row(note_id)
		if not (is_owner(user, note["ownerUserId"]) or user.is_admin):
			raise AuthorizationError("Only the owner can edit this note")
		
		fields = _note_fields(data, partial=True)
		with self.archive.transaction():
			if fields:
				assignments = ", ".join(f"{name} = ?" for name in fields)
				self.conn.execute(
					f"UPDATE notes SET {assignments}, modifiedOn = CURRENT_TIMESTAMP WHERE noteId = ?",
					list(fields.values()) + [note_id]
				)
			if "tagIds" in data:
				self.tags.replace_links("note_tags", note_id, parse_tag_ids(data["tagIds"]))
		return self._get_row(note_id)
	
	def delete(self, note_id: int, user: User):
		note = self._get_row(note_id)
		if not (is_owner(user, note["ownerUserId"]) or user.is_admin):
			raise AuthorizationError("Only the owner can delete this note")
		with self.archive.transaction():
			self.conn.execute("DELETE FROM notes WHERE noteId = ?", (note_id,))
	
	def search(self, request: SearchRequest, user: User) -> SearchResponse:
		response = search(self.conn, NOTE_SCHEMA, request, note_visibility(user))
		tags = self.tags.tags_for("note_tags", [n["noteId"] for n in response.data])
		for note in response.data:
			note["shared"] = bool(note["shared"])
			note["tags"] = tags[note["noteId"]]
		return response
