"""
Archive documents.

Documents nest under 'unit' containers, carry tags and two independent
lists of signature paths. Disabling sets active = 0; rows are never
removed through the API.
"""

import json
import logging
from typing import Any, Dict, List, Optional, Sequence

from .core import Archive
from .errors import AuthorizationError, NotFoundError, ValidationError
from .signatures import SignatureStore
from .tags import TagStore, parse_tag_ids, tag_link_condition
from .users import User, is_owner
from .query import (
	Condition, FieldSpec, FieldType, Predicate, QueryCompiler, ResourceSchema,
	SearchRequest, SearchResponse, VisibilityClause, search
)

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = ("unit", "document")
SIGNATURE_FIELDS = ("topographicSignatureElementIds", "descriptiveSignatureElementIds")
REQUIRED_TEXT_FIELDS = ("title", "creator", "creationDate")
OPTIONAL_TEXT_FIELDS = (
	"documentType", "dimensions", "binding", "condition", "documentLanguage",
	"contentDescription", "remarks", "accessLevel", "accessConditions",
	"additionalInformation", "relatedDocumentsReferences", "recordChangeHistory",
	"digitizedVersionLink",
)


def _signature_prefix_condition(column: str):
	"""
	Match documents holding a path that starts with the given id prefix.
	Paths are stored as compact JSON, so [1,5] matches '[1,5]' and '[1,5,...'.
	EQ matches one exact path; ANY_OF matches any of several prefixes.
	"""
	def build(predicate: Predicate):
		def exact(path: List[int]) -> str:
			return json.dumps(path, separators=(",", ":"))
		
		if predicate.condition == Condition.EQ:
			return (
				f"EXISTS (SELECT 1 FROM json_each(d.{column}) je WHERE je.value = ?)"
			), [exact(predicate.value)]
		
		parts = []
		params = []
		for prefix in predicate.value:
			parts.append("je.value = ? OR je.value LIKE ?")
			params.extend([exact(prefix), exact(prefix)[:-1] + ",%"])
		return (
			f"EXISTS (SELECT 1 FROM json_each(d.{column}) je WHERE {' OR '.join(parts)})"
		), params
	
	return build


DOCUMENT_SCHEMA = ResourceSchema(
	name="archive_documents",
	table="archive_documents",
	alias="d",
	primary_key="archiveDocumentId",
	fields={
		"archiveDocumentId": FieldSpec(FieldType.NUMBER),
		"parentUnitArchiveDocumentId": FieldSpec(FieldType.NUMBER),
		"ownerUserId": FieldSpec(FieldType.NUMBER),
		"type": FieldSpec(FieldType.TEXT),
		"active": FieldSpec(FieldType.BOOLEAN, admin_only=True),
		"title": FieldSpec(FieldType.TEXT),
		"creator": FieldSpec(FieldType.TEXT),
		"creationDate": FieldSpec(FieldType.TEXT),
		"numberOfPages": FieldSpec(FieldType.NUMBER),
		"documentType": FieldSpec(FieldType.TEXT),
		"dimensions": FieldSpec(FieldType.TEXT),
		"binding": FieldSpec(FieldType.TEXT),
		"condition": FieldSpec(FieldType.TEXT),
		"documentLanguage": FieldSpec(FieldType.TEXT),
		"contentDescription": FieldSpec(FieldType.TEXT, sortable=False),
		"remarks": FieldSpec(FieldType.TEXT, sortable=False),
		"accessLevel": FieldSpec(FieldType.TEXT),
		"accessConditions": FieldSpec(FieldType.TEXT, sortable=False),
		"additionalInformation": FieldSpec(FieldType.TEXT, sortable=False),
		"relatedDocumentsReferences": FieldSpec(FieldType.TEXT, sortable=False),
		"isDigitized": FieldSpec(FieldType.BOOLEAN),
		"digitizedVersionLink": FieldSpec(FieldType.TEXT, sortable=False),
		"createdOn": FieldSpec(FieldType.DATE),
		"modifiedOn": FieldSpec(FieldType.DATE),
		"tags": FieldSpec(FieldType.NUMBER, sortable=False,
						handler=tag_link_condition("archive_document_tags", "d"),
						conditions=frozenset({Condition.ANY_OF})),
		"topographicSignaturePrefix": FieldSpec(FieldType.PATH, sortable=False,
						handler=_signature_prefix_condition("topographicSignatureElementIds")),
		"descriptiveSignaturePrefix": FieldSpec(FieldType.PATH, sortable=False,
						handler=_signature_prefix_condition("descriptiveSignatureElementIds")),
	},
	default_sort=[("createdOn", "DESC")]
)


def document_visibility(user: User, allowed_tag_ids: Sequence[int] = (),
						include_inactive: bool = False) -> Optional[VisibilityClause]:
	"""
	Disabled documents are hidden unless include_inactive is set.
	Employees with an allowed-tag list only see documents carrying one of those tags.
	"""
	clauses = []
	if not include_inactive:
		clauses.append(VisibilityClause("d.active = 1"))
	if user.role == "employee" and allowed_tag_ids:
		placeholders = ", ".join("?" for _ in allowed_tag_ids)
		clauses.append(VisibilityClause(
			"EXISTS (SELECT 1 FROM archive_document_tags adt"
			" WHERE adt.archiveDocumentId = d.archiveDocumentId"
			f" AND adt.tagId IN ({placeholders}))",
			list(allowed_tag_ids)
		))
	return VisibilityClause.combine(*clauses)


def _parse_paths(value: Any, field: str) -> List[List[int]]:
	if value is None:
		return []
	if not isinstance(value, list):
		raise ValidationError(f"'{field}' must be a list of element id paths", field=field)
	paths = []
	for path in value:
		if (not isinstance(path, list) or not path
				or not all(isinstance(i, int) and not isinstance(i, bool) and i > 0 for i in path)):
			raise ValidationError(f"Invalid signature path {path!r} in '{field}'", field=field)
		paths.append(list(path))
	return paths


def _document_fields(data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
	"""Validate and convert request fields to column values."""
	fields: Dict[str, Any] = {}
	
	if "type" in data or not partial:
		if data.get("type") not in DOCUMENT_TYPES:
			raise ValidationError("'type' must be 'unit' or 'document'", field="type")
		fields["type"] = data["type"]
	
	for name in REQUIRED_TEXT_FIELDS:
		if name in data or not partial:
			value = data.get(name)
			if not isinstance(value, str) or not value.strip():
				raise ValidationError(f"'{name}' must be a non-empty string", field=name)
			fields[name] = value.strip()
	
	for name in OPTIONAL_TEXT_FIELDS:
		if name in data:
			value = data[name]
			if value is not None and not isinstance(value, str):
				raise ValidationError(f"'{name}' must be a string", field=name)
			fields[name] = value
	
	if "numberOfPages" in data:
		pages = data["numberOfPages"]
		if pages is not None and (not isinstance(pages, int) or isinstance(pages, bool) or pages < 0):
			raise ValidationError("'numberOfPages' must be a non-negative integer", field="numberOfPages")
		fields["numberOfPages"] = pages
	
	if "isDigitized" in data:
		if not isinstance(data["isDigitized"], bool):
			raise ValidationError("'isDigitized' must be a boolean", field="isDigitized")
		fields["isDigitized"] = 1 if data["isDigitized"] else 0
	
	if "parentUnitArchiveDocumentId" in data:
		parent = data["parentUnitArchiveDocumentId"]
		if parent is not None and (not isinstance(parent, int) or isinstance(parent, bool)):
			raise ValidationError("'parentUnitArchiveDocumentId' must be an integer", field="parentUnitArchiveDocumentId")
		fields["parentUnitArchiveDocumentId"] = parent
	
	for name in SIGNATURE_FIELDS:
		if name in data:
			fields[name] = _parse_paths(data[name], name)
	
	return fields


class DocumentStore:
	def __init__(self, archive: Archive):
		self.archive = archive
		self.conn = archive.conn
		self.tags = TagStore(archive)
		self.signatures = SignatureStore(archive)
	
	# --- READ ---
	
	def _get_row(self, document_id: int) -> Dict:
		row = self.conn.execute(
			"SELECT * FROM archive_documents WHERE archiveDocumentId = ?", (document_id,)
		).fetchone()
		if row is None:
			raise NotFoundError(f"Archive document {document_id} not found")
		return dict(row)
	
	def get(self, document_id: int, visibility: Optional[VisibilityClause] = None) -> Dict:
		"""Fetch a document through a visibility clause. Invisible documents are not found."""
		params: List[Any] = [document_id]
		sql = "SELECT d.* FROM archive_documents d WHERE d.archiveDocumentId = ?"
		if visibility is not None:
			sql += f" AND ({visibility.condition})"
			params.extend(visibility.params)
		row = self.conn.execute(sql, params).fetchone()
		if row is None:
			raise NotFoundError(f"Archive document {document_id} not found")
		return self._present([dict(row)])[0]
	
	def _present(self, documents: List[Dict]) -> List[Dict]:
		"""Decode JSON columns, booleans, and attach tags and resolved signatures."""
		tags = self.tags.tags_for("archive_document_tags", [d["archiveDocumentId"] for d in documents])
		for doc in documents:
			doc["active"] = bool(doc["active"])
			doc["isDigitized"] = bool(doc["isDigitized"])
			for name in SIGNATURE_FIELDS:
				try:
					doc[name] = json.loads(doc[name] or "[]")
				except json.JSONDecodeError:
					logger.warning(f"Document {doc['archiveDocumentId']} has malformed {name}")
					doc[name] = []
			doc["tags"] = tags[doc["archiveDocumentId"]]
			doc["resolvedTopographicSignatures"] = self.signatures.resolve_paths(doc["topographicSignatureElementIds"])
			doc["resolvedDescriptiveSignatures"] = self.signatures.resolve_paths(doc["descriptiveSignatureElementIds"])
		return documents
	
	def search(self, request: SearchRequest, visibility: Optional[VisibilityClause] = None) -> SearchResponse:
		response = search(self.conn, DOCUMENT_SCHEMA, request, visibility)
		response.data = self._present(response.data)
		return response
	
	# --- WRITE ---
	
	def _validate_parent(self, parent_id: Optional[int], document_id: Optional[int] = None):
		"""Parents must be active units, and a unit cannot be placed under its own descendant."""
		if parent_id is None:
			return
		row = self.conn.execute(
			"SELECT type, active FROM archive_documents WHERE archiveDocumentId = ?", (parent_id,)
		).fetchone()
		if row is None or not row["active"]:
			raise ValidationError(
				f"Parent unit {parent_id} does not exist", field="parentUnitArchiveDocumentId", status=422
			)
		if row["type"] != "unit":
			raise ValidationError(
				f"Parent {parent_id} is not a unit", field="parentUnitArchiveDocumentId", status=422
			)
		if document_id is None:
			return
		
		current = parent_id
		seen = set()
		while current is not None and current not in seen:
			if current == document_id:
				raise ValidationError(
					f"Document {document_id} cannot be nested under its own descendant {parent_id}",
					field="parentUnitArchiveDocumentId", status=422
				)
			seen.add(current)
			row = self.conn.execute(
				"SELECT parentUnitArchiveDocumentId FROM archive_documents WHERE archiveDocumentId = ?", (current,)
			).fetchone()
			current = row[0] if row else None
	
	def _validate_signature_elements(self, fields: Dict[str, Any]):
		ids = {i for name in SIGNATURE_FIELDS for path in fields.get(name, []) for i in path}
		if not ids:
			return
		ordered = sorted(ids)
		placeholders = ", ".join("?" for _ in ordered)
		existing = {
			row[0] for row in self.conn.execute(
				f"SELECT signatureElementId FROM signature_elements WHERE signatureElementId IN ({placeholders})",
				ordered
			)
		}
		for element_id in ordered:
			if element_id not in existing:
				raise ValidationError(f"Signature element {element_id} does not exist", field="signature", status=422)
	
	@staticmethod
	def _column_values(fields: Dict[str, Any]) -> Dict[str, Any]:
		values = dict(fields)
		for name in SIGNATURE_FIELDS:
			if name in values:
				values[name] = json.dumps(values[name], separators=(",", ":"))
		return values
	
	def create(self, data: Dict[str, Any], owner: User) -> int:
		"""Insert a document with its tags and signatures in one transaction. Returns the new id."""
		fields = _document_fields(data, partial=False)
		tag_ids = parse_tag_ids(data.get("tagIds"))
		
		with self.archive.transaction():
			self._validate_parent(fields.get("parentUnitArchiveDocumentId"))
			self._validate_signature_elements(fields)
			
			values = self._column_values(fields)
			values["ownerUserId"] = owner.user_id
			columns = ", ".join(values)
			placeholders = ", ".join("?" for _ in values)
			cursor = self.conn.execute(
				f"INSERT INTO archive_documents ({columns}) VALUES ({placeholders})", list(values.values())
			)
			document_id = cursor.lastrowid
			self.tags.replace_links("archive_document_tags", document_id, tag_ids)
		
		logger.info(f"Archive document {document_id} ('{fields['title']}') created by {owner.login}")
		return document_id
	
	def update(self, document_id: int, data: Dict[str, Any], user: User) -> Dict:
		existing = self._get_row(document_id)
		if not (is_owner(user, existing["ownerUserId"]) or user.is_admin):
			raise AuthorizationError("Only the owner can edit this document")
		
		fields = _document_fields(data, partial=True)
		
		with self.archive.transaction():
			if "parentUnitArchiveDocumentId" in fields:
				self._validate_parent(fields["parentUnitArchiveDocumentId"], document_id)
			if fields.get("type") == "document" and existing["type"] == "unit":
				children = self.conn.execute(
					"SELECT COUNT(*) FROM archive_documents WHERE parentUnitArchiveDocumentId = ?", (document_id,)
				).fetchone()[0]
				if children:
					raise ValidationError(
						f"Unit {document_id} still contains {children} documents", field="type", status=422
					)
			self._validate_signature_elements(fields)
			
			if fields:
				values = self._column_values(fields)
				assignments = ", ".join(f"{name} = ?" for name in values)
				self.conn.execute(
					f"UPDATE archive_documents SET {assignments}, modifiedOn = CURRENT_TIMESTAMP"
					" WHERE archiveDocumentId = ?",
					list(values.values()) + [document_id]
				)
			if "tagIds" in data:
				self.tags.replace_links("archive_document_tags", document_id, parse_tag_ids(data["tagIds"]))
		
		return self.get(document_id)
	
	def disable(self, document_id: int, user: User):
		existing = self._get_row(document_id)
		if not (is_owner(user, existing["ownerUserId"]) or user.is_admin):
			raise AuthorizationError("Only the owner can disable this document")
		if not existing["active"]:
			raise ValidationError("Document already inactive", field="active")
		
		with self.archive.transaction():
			self.conn.execute(
				"UPDATE archive_documents SET active = 0, modifiedOn = CURRENT_TIMESTAMP WHERE archiveDocumentId = ?",
				(document_id,)
			)
		logger.info(f"Archive document {document_id} disabled by {user.login}")
	
	def batch_tag(self, request: SearchRequest, tag_ids: Sequence[int], action: str,
				visibility: Optional[VisibilityClause] = None) -> int:
		"""
		Add or remove tags on every document matching a search.
		Pagination is ignored. Returns the number of matched documents.
		"""
		if action not in ("add", "remove"):
			raise ValidationError("'action' must be 'add' or 'remove'", field="action")
		if not tag_ids:
			raise ValidationError("'tagIds' must not be empty", field="tagIds")
		
		compiled = QueryCompiler(DOCUMENT_SCHEMA).compile(request, visibility, columns="d.archiveDocumentId")
		
		with self.archive.transaction():
			self.tags.require_existing(tag_ids)
			document_ids = [row[0] for row in self.conn.execute(compiled.data_sql, compiled.params)]
			pairs = [(doc_id, tag_id) for doc_id in document_ids for tag_id in tag_ids]
			
			if action == "add":
				self.conn.executemany(
					"INSERT OR IGNORE INTO archive_document_tags (archiveDocumentId, tagId) VALUES (?, ?)", pairs
				)
			else:
				self.conn.executemany(
					"DELETE FROM archive_document_tags WHERE archiveDocumentId = ? AND tagId = ?", pairs
				)
		
		logger.info(f"Batch {action} of tags {list(tag_ids)} on {len(document_ids)} documents")
		return len(document_ids)
