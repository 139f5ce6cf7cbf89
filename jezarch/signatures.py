"""
Signature components and elements.

Components are classification axes with a numbering scheme. Elements
belong to one component and may have any number of parents in any
component; the parent links form a DAG that documents reference as
denormalized id paths, e.g. [1, 5, 9].
"""

import sqlite3
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from .core import Archive
from .errors import ConflictError, NotFoundError, StorageError, ValidationError
from .indexing import IndexType, format_index
from .query import (
	Condition, FieldSpec, FieldType, Predicate, ResourceSchema,
	SearchRequest, SearchResponse, fragment_condition, search
)

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " / "
UNPROCESSABLE = 422


def _parent_ids_condition(predicate: Predicate):
	placeholders = ", ".join("?" for _ in predicate.value)
	return (
		"EXISTS (SELECT 1 FROM signature_element_parents sep"
		" WHERE sep.childElementId = se.signatureElementId"
		f" AND sep.parentElementId IN ({placeholders}))"
	), list(predicate.value)


def _has_parents_condition(predicate: Predicate):
	exists = (
		"EXISTS (SELECT 1 FROM signature_element_parents sep"
		" WHERE sep.childElementId = se.signatureElementId)"
	)
	return (exists if predicate.value else f"NOT {exists}"), []


def _component_name_condition(predicate: Predicate):
	if predicate.condition == Condition.FRAGMENT:
		match, params = fragment_condition("sc.name", predicate.value)
	else:
		match, params = "sc.name = ?", [predicate.value]
	return (
		"EXISTS (SELECT 1 FROM signature_components sc"
		" WHERE sc.signatureComponentId = se.signatureComponentId"
		f" AND {match})"
	), params


ELEMENT_SCHEMA = ResourceSchema(
	name="signature_elements",
	table="signature_elements",
	alias="se",
	primary_key="signatureElementId",
	fields={
		"signatureElementId": FieldSpec(FieldType.NUMBER),
		"signatureComponentId": FieldSpec(FieldType.NUMBER),
		"name": FieldSpec(FieldType.TEXT),
		"description": FieldSpec(FieldType.TEXT),
		"index": FieldSpec(FieldType.TEXT),
		"createdOn": FieldSpec(FieldType.DATE),
		"modifiedOn": FieldSpec(FieldType.DATE),
		"parentIds": FieldSpec(FieldType.NUMBER, sortable=False, handler=_parent_ids_condition,
							conditions=frozenset({Condition.ANY_OF})),
		"hasParents": FieldSpec(FieldType.BOOLEAN, sortable=False, handler=_has_parents_condition),
		"componentName": FieldSpec(FieldType.TEXT, sortable=False, handler=_component_name_condition,
								conditions=frozenset({Condition.EQ, Condition.FRAGMENT})),
	},
	default_sort=[("name", "ASC")],
	allow_unpaged=True
)


def _require_name(value: Any, field: str = "name") -> str:
	if not isinstance(value, str) or not value.strip():
		raise ValidationError(f"'{field}' must be a non-empty string", field=field)
	return value.strip()


def _optional_text(value: Any, field: str) -> Optional[str]:
	if value is None:
		return None
	if not isinstance(value, str):
		raise ValidationError(f"'{field}' must be a string", field=field)
	return value


def _index_type(value: Any) -> str:
	try:
		return IndexType(value).value
	except ValueError:
		allowed = ", ".join(t.value for t in IndexType)
		raise ValidationError(f"Invalid index_type '{value}', expected one of: {allowed}", field="index_type")


def _parse_ids(values: Any, field: str) -> List[int]:
	"""Deduplicated list of positive ints, order preserved."""
	if not isinstance(values, list):
		raise ValidationError(f"'{field}' must be a list of ids", field=field)
	ids = []
	for value in values:
		if not isinstance(value, int) or isinstance(value, bool) or value < 1:
			raise ValidationError(f"Invalid id {value!r} in '{field}'", field=field)
		if value not in ids:
			ids.append(value)
	return ids


class SignatureStore:
	"""Components, elements and the parent-link graph between elements."""
	
	def __init__(self, archive: Archive):
		self.archive = archive
		self.conn = archive.conn
	
	# --- COMPONENTS ---
	
	def list_components(self) -> List[Dict]:
		cursor = self.conn.execute("SELECT * FROM signature_components ORDER BY name COLLATE NOCASE")
		return [dict(row) for row in cursor]
	
	def get_component(self, component_id: int) -> Dict:
		row = self.conn.execute(
			"SELECT * FROM signature_components WHERE signatureComponentId = ?", (component_id,)
		).fetchone()
		if row is None:
			raise NotFoundError(f"Signature component {component_id} not found")
		return dict(row)
	
	def create_component(self, name: Any, description: Any = None, index_type: Any = IndexType.DEC.value) -> Dict:
		name = _require_name(name)
		description = _optional_text(description, "description")
		index_type = _index_type(index_type)
		
		with self.archive.transaction():
			try:
				cursor = self.conn.execute(
					"INSERT INTO signature_components (name, description, index_type) VALUES (?, ?, ?)",
					(name, description, index_type)
				)
			except sqlite3.IntegrityError:
				raise ConflictError(f"Signature component '{name}' already exists")
		
		logger.info(f"Created signature component '{name}' ({index_type})")
		return self.get_component(cursor.lastrowid)
	
	def update_component(self, component_id: int, changes: Dict[str, Any]) -> Dict:
		"""Update name, description or index_type. Changing index_type does not re-index."""
		self.get_component(component_id)
		
		assignments = []
		params = []
		if "name" in changes:
			assignments.append("name = ?")
			params.append(_require_name(changes["name"]))
		if "description" in changes:
			assignments.append("description = ?")
			params.append(_optional_text(changes["description"], "description"))
		if "index_type" in changes:
			assignments.append("index_type = ?")
			params.append(_index_type(changes["index_type"]))
		
		if assignments:
			with self.archive.transaction():
				try:
					self.conn.execute(
						f"UPDATE signature_components SET {', '.join(assignments)}, modifiedOn = CURRENT_TIMESTAMP"
						" WHERE signatureComponentId = ?",
						params + [component_id]
					)
				except sqlite3.IntegrityError:
					raise ConflictError(f"Signature component '{changes.get('name')}' already exists")
		
		return self.get_component(component_id)
	
	def delete_component(self, component_id: int):
		"""Deletes the component; its elements and their parent links cascade."""
		component = self.get_component(component_id)
		with self.archive.transaction():
			self.conn.execute("DELETE FROM signature_components WHERE signatureComponentId = ?", (component_id,))
		logger.info(f"Deleted signature component '{component['name']}' with its elements")
	
	def reindex_component(self, component_id: int) -> int:
		"""
		Renumber every element of a component under its index_type.
		
		Elements are ordered by name (case-insensitive), then by id, so running
		this twice without intervening writes assigns the same indices. All
		updates share one transaction: any failure leaves the previous numbering.
		Returns the number of elements indexed.
		"""
		with self.archive.transaction():
			component = self.get_component(component_id)
			rows = self.conn.execute(
				"SELECT signatureElementId FROM signature_elements WHERE signatureComponentId = ?"
				" ORDER BY name COLLATE NOCASE, signatureElementId",
				(component_id,)
			).fetchall()
			
			for position, row in enumerate(rows, start=1):
				self.conn.execute(
					'UPDATE signature_elements SET "index" = ?, modifiedOn = CURRENT_TIMESTAMP'
					" WHERE signatureElementId = ?",
					(format_index(position, component["index_type"]), row["signatureElementId"])
				)
			
			self.conn.execute(
				"UPDATE signature_components SET index_count = ?, modifiedOn = CURRENT_TIMESTAMP"
				" WHERE signatureComponentId = ?",
				(len(rows), component_id)
			)
		
		logger.info(f"Re-indexed component {component_id} ({component['index_type']}): {len(rows)} elements")
		return len(rows)
	
	def _next_position(self, component_id: int) -> int:
		"""
		Advance the component's counter and return the new position.
		index_count only moves forward between re-indexes, so deleted
		elements never free a label for reuse.
		"""
		self.conn.execute(
			"UPDATE signature_components SET index_count = index_count + 1 WHERE signatureComponentId = ?",
			(component_id,)
		)
		return self.conn.execute(
			"SELECT index_count FROM signature_components WHERE signatureComponentId = ?", (component_id,)
		).fetchone()[0]
	
	# --- ELEMENTS ---
	
	def _get_element_row(self, element_id: int) -> Dict:
		row = self.conn.execute(
			"SELECT * FROM signature_elements WHERE signatureElementId = ?", (element_id,)
		).fetchone()
		if row is None:
			raise NotFoundError(f"Signature element {element_id} not found")
		return dict(row)
	
	def get_element(self, element_id: int, populate: Iterable[str] = ()) -> Dict:
		"""
		Fetch an element with its parentIds.
		populate may include 'component', 'parents' and 'paths'.
		"""
		element = self._get_element_row(element_id)
		element["parentIds"] = self.get_parent_ids(element_id)
		populate = set(populate)
		
		if "component" in populate:
			element["component"] = self.get_component(element["signatureComponentId"])
		if "parents" in populate:
			element["parents"] = self._get_elements(element["parentIds"])
		if "paths" in populate:
			paths = self.element_paths(element_id)
			element["paths"] = paths
			element["resolvedPaths"] = self.resolve_paths(paths)
		return element
	
	def _get_elements(self, element_ids: Sequence[int]) -> List[Dict]:
		if not element_ids:
			return []
		placeholders = ", ".join("?" for _ in element_ids)
		cursor = self.conn.execute(
			f"SELECT * FROM signature_elements WHERE signatureElementId IN ({placeholders})",
			list(element_ids)
		)
		by_id = {row["signatureElementId"]: dict(row) for row in cursor}
		return [by_id[i] for i in element_ids if i in by_id]
	
	def list_component_elements(self, component_id: int) -> List[Dict]:
		"""Elements of a component in re-index order."""
		self.get_component(component_id)
		cursor = self.conn.execute(
			"SELECT * FROM signature_elements WHERE signatureComponentId = ?"
			" ORDER BY name COLLATE NOCASE, signatureElementId",
			(component_id,)
		)
		return self._attach_parent_ids([dict(row) for row in cursor])
	
	def create_element(self, component_id: Any, name: Any, description: Any = None,
					index: Any = None, parent_ids: Any = None) -> Dict:
		"""
		Create an element. When index is omitted the next index under the
		component's scheme is assigned.
		"""
		name = _require_name(name)
		description = _optional_text(description, "description")
		index = _optional_text(index, "index")
		parents = _parse_ids(parent_ids or [], "parentIds")
		
		with self.archive.transaction():
			component = self._require_component_reference(component_id)
			
			if index is None:
				index = format_index(self._next_position(component_id), component["index_type"])
			
			cursor = self.conn.execute(
				'INSERT INTO signature_elements (signatureComponentId, name, description, "index")'
				" VALUES (?, ?, ?, ?)",
				(component_id, name, description, index)
			)
			element_id = cursor.lastrowid
			
			self._validate_parents(element_id, parents)
			self._replace_parents(element_id, parents)

		logger.info(f"Created signature element '{name}' ({element_id}) in component {component_id}")
		return self.get_element(element_id)
	
	def update_element(self, element_id: int, changes: Dict[str, Any]) -> Dict:
		"""Partial update; 'parentIds' replaces the whole parent set."""
		element = self._get_element_row(element_id)
		
		assignments = []
		params = []
		if "name" in changes:
			assignments.append("name = ?")
			params.append(_require_name(changes["name"]))
		if "description" in changes:
			assignments.append("description = ?")
			params.append(_optional_text(changes["description"], "description"))
		if "index" in changes:
			assignments.append('"index" = ?')
			params.append(_optional_text(changes["index"], "index"))
		
		new_component_id = changes.get("signatureComponentId", element["signatureComponentId"])
		parents = None
		if "parentIds" in changes:
			parents = _parse_ids(changes["parentIds"] or [], "parentIds")
		
		with self.archive.transaction():
			if new_component_id != element["signatureComponentId"]:
				self._require_component_reference(new_component_id)
				assignments.append("signatureComponentId = ?")
				params.append(new_component_id)
			
			if assignments:
				self.conn.execute(
					f"UPDATE signature_elements SET {', '.join(assignments)}, modifiedOn = CURRENT_TIMESTAMP"
					" WHERE signatureElementId = ?",
					params + [element_id]
				)
			
			if parents is not None:
				self._validate_parents(element_id, parents)
				self._replace_parents(element_id, parents)

		return self.get_element(element_id)
	
	def delete_element(self, element_id: int):
		"""
		Delete an element. Links to its parents and from its children are removed;
		children keep their remaining parents and otherwise become roots.
		"""
		element = self._get_element_row(element_id)
		with self.archive.transaction():
			self.conn.execute("DELETE FROM signature_elements WHERE signatureElementId = ?", (element_id,))
		logger.info(f"Deleted signature element {element_id} ('{element['name']}')")
	
	def search_elements(self, request: SearchRequest) -> SearchResponse:
		response = search(self.conn, ELEMENT_SCHEMA, request)
		response.data = self._attach_parent_ids(response.data)
		return response
	
	def _require_component_reference(self, component_id: Any) -> Dict:
		if not isinstance(component_id, int) or isinstance(component_id, bool):
			raise ValidationError("'signatureComponentId' must be an integer", field="signatureComponentId")
		row = self.conn.execute(
			"SELECT * FROM signature_components WHERE signatureComponentId = ?", (component_id,)
		).fetchone()
		if row is None:
			raise ValidationError(
				f"Signature component {component_id} does not exist",
				field="signatureComponentId", status=UNPROCESSABLE
			)
		return dict(row)
	
	# --- PARENT GRAPH ---
	
	def get_parent_ids(self, element_id: int) -> List[int]:
		cursor = self.conn.execute(
			"SELECT parentElementId FROM signature_element_parents WHERE childElementId = ? ORDER BY parentElementId",
			(element_id,)
		)
		return [row[0] for row in cursor]
	
	def _attach_parent_ids(self, elements: List[Dict]) -> List[Dict]:
		if not elements:
			return elements
		ids = [e["signatureElementId"] for e in elements]
		placeholders = ", ".join("?" for _ in ids)
		cursor = self.conn.execute(
			"SELECT childElementId, parentElementId FROM signature_element_parents"
			f" WHERE childElementId IN ({placeholders}) ORDER BY parentElementId",
			ids
		)
		parents: Dict[int, List[int]] = {i: [] for i in ids}
		for child, parent in cursor:
			parents[child].append(parent)
		for element in elements:
			element["parentIds"] = parents[element["signatureElementId"]]
		return elements
	
	def get_ancestor_ids(self, element_id: int) -> Set[int]:
		"""Every element reachable through parent links (iterative walk)."""
		ancestors: Set[int] = set()
		stack = self.get_parent_ids(element_id)
		while stack:
			current = stack.pop()
			if current in ancestors:
				continue
			ancestors.add(current)
			stack.extend(self.get_parent_ids(current))
		return ancestors
	
	def set_parents(self, element_id: int, parent_ids: Any):
		"""
		Replace an element's parent set.
		Rejects unknown ids, self-links and links that would create a cycle,
		naming the offending parent. Nothing is written unless every parent is valid.
		"""
		parents = _parse_ids(parent_ids, "parentIds")
		with self.archive.transaction():
			self._get_element_row(element_id)
			self._validate_parents(element_id, parents)
			self._replace_parents(element_id, parents)
		logger.debug(f"Element {element_id} parents set to {parents}")
	
	def _validate_parents(self, element_id: int, parent_ids: List[int]):
		if not parent_ids:
			return
		
		placeholders = ", ".join("?" for _ in parent_ids)
		existing = {
			row[0] for row in self.conn.execute(
				f"SELECT signatureElementId FROM signature_elements WHERE signatureElementId IN ({placeholders})",
				parent_ids
			)
		}
		for parent_id in parent_ids:
			if parent_id not in existing:
				raise ValidationError(
					f"Parent element {parent_id} does not exist", field="parentIds", status=UNPROCESSABLE
				)
			if parent_id == element_id:
				raise ValidationError(
					f"Element {element_id} cannot be its own parent", field="parentIds", status=UNPROCESSABLE
				)
			if element_id in self.get_ancestor_ids(parent_id):
				raise ValidationError(
					f"Parent element {parent_id} is a descendant of element {element_id} (cycle)",
					field="parentIds", status=UNPROCESSABLE
				)
	
	def _replace_parents(self, element_id: int, parent_ids: List[int]):
		self.conn.execute("DELETE FROM signature_element_parents WHERE childElementId = ?", (element_id,))
		self.conn.executemany(
			"INSERT INTO signature_element_parents (childElementId, parentElementId) VALUES (?, ?)",
			[(element_id, parent_id) for parent_id in parent_ids]
		)
	
	def element_paths(self, element_id: int) -> List[List[int]]:
		"""All root-to-element id paths through the parent DAG."""
		self._get_element_row(element_id)
		parent_cache: Dict[int, List[int]] = {}
		paths = []
		stack = [(element_id, [element_id])]
		
		while stack:
			current, tail = stack.pop()
			if current not in parent_cache:
				parent_cache[current] = self.get_parent_ids(current)
			parents = parent_cache[current]
			if not parents:
				paths.append(tail)
				continue
			for parent_id in parents:
				stack.append((parent_id, [parent_id] + tail))
		
		return sorted(paths)
	
	# --- PATH RESOLUTION ---
	
	@staticmethod
	def format_element(element: Dict) -> str:
		if element.get("index"):
			return f"[{element['index']}] {element['name']}"
		return element["name"]
	
	def resolve_path(self, element_ids: Sequence[int]) -> str:
		"""
		Render an id path as "[I] Name / [1] Name".
		Missing elements render as [ID:<n>?] so stale paths still resolve.
		"""
		if not element_ids:
			return ""
		try:
			by_id = {e["signatureElementId"]: e for e in self._get_elements(list(set(element_ids)))}
		except sqlite3.Error as e:
			logger.exception(f"Failed to resolve signature path {list(element_ids)}")
			raise StorageError("Failed to resolve signature path") from e
		
		parts = []
		for element_id in element_ids:
			element = by_id.get(element_id)
			parts.append(self.format_element(element) if element else f"[ID:{element_id}?]")
		return PATH_SEPARATOR.join(parts)
	
	def resolve_paths(self, paths: Iterable[Sequence[int]]) -> List[str]:
		return [self.resolve_path(path) for path in paths]
