"""
Jezarch Search Request Parser

Turns the client-supplied search body into validated, typed predicates
bound to a resource schema.

Body shape:
	{
		"query": [{"field": "title", "condition": "FRAGMENT", "value": "letter", "not": false}],
		"page": 1,
		"pageSize": 10,
		"sort": [{"field": "createdOn", "direction": "desc"}]
	}
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Any

from ..errors import ValidationError
from .schema import Condition, FieldSpec, FieldType, ResourceSchema

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
UNPAGED = -1


@dataclass
class Predicate:
	"""One validated filter term."""
	field: str
	condition: Condition
	value: Any
	negated: bool = False
	spec: Optional[FieldSpec] = None


@dataclass
class SortKey:
	field: str
	descending: bool = False


@dataclass
class SearchRequest:
	predicates: List[Predicate] = field(default_factory=list)
	page: int = 1
	page_size: int = DEFAULT_PAGE_SIZE
	sort: List[SortKey] = field(default_factory=list)
	
	@property
	def unpaged(self) -> bool:
		return self.page_size == UNPAGED
	
	def has_field(self, name: str) -> bool:
		return any(p.field == name for p in self.predicates)


def _is_int(value: Any) -> bool:
	return isinstance(value, int) and not isinstance(value, bool)


class SearchRequestParser:
	"""Validates raw search bodies against a resource schema."""
	
	def __init__(self, schema: ResourceSchema, max_page_size: int = MAX_PAGE_SIZE,
				default_page_size: int = DEFAULT_PAGE_SIZE, is_admin: bool = False):
		self.schema = schema
		self.max_page_size = max_page_size
		self.default_page_size = default_page_size
		self.is_admin = is_admin
	
	def parse(self, body: Any) -> SearchRequest:
		"""Parse a complete search body."""
		if body is None:
			body = {}
		if not isinstance(body, dict):
			raise ValidationError("Search body must be a JSON object")
		
		raw_query = body.get("query") or []
		if not isinstance(raw_query, list):
			raise ValidationError("'query' must be a list of predicates", field="query")
		
		return SearchRequest(
			predicates=[self.parse_predicate(raw) for raw in raw_query],
			page=self._parse_page(body.get("page")),
			page_size=self._parse_page_size(body.get("pageSize")),
			sort=self._parse_sort(body.get("sort"))
		)
	
	def parse_predicate(self, raw: Any) -> Predicate:
		"""Validate one {field, condition, value, not} element."""
		if not isinstance(raw, dict):
			raise ValidationError("Each query element must be an object", field="query")
		
		name = raw.get("field")
		if not isinstance(name, str) or not name:
			raise ValidationError("Query element is missing 'field'", field="query")
		
		spec = self.schema.get_field(name)
		if spec is None or not spec.filterable:
			raise ValidationError(f"Invalid field: {name}", field=name)
		if spec.admin_only and not self.is_admin:
			raise ValidationError(f"Field '{name}' can only be filtered by administrators", field=name)
		
		raw_condition = raw.get("condition")
		try:
			condition = Condition(raw_condition)
		except ValueError:
			raise ValidationError(f"Unknown condition '{raw_condition}' for field {name}", field=name)
		
		if condition not in spec.allowed_conditions():
			raise ValidationError(
				f"Condition {condition.value} is not allowed on field {name}", field=name
			)
		
		negated = raw.get("not", False)
		if not isinstance(negated, bool):
			raise ValidationError(f"'not' must be a boolean on field {name}", field=name)
		
		if "value" not in raw:
			raise ValidationError(f"Query element for {name} is missing 'value'", field=name)
		value = raw["value"]
		
		if condition == Condition.ANY_OF:
			if not isinstance(value, list) or not value:
				raise ValidationError(f"ANY_OF on {name} requires a non-empty list", field=name)
			value = [self._coerce(name, spec.type, item) for item in value]
		elif condition == Condition.FRAGMENT:
			if not isinstance(value, str):
				raise ValidationError(f"FRAGMENT on {name} requires a string", field=name)
		else:
			value = self._coerce(name, spec.type, value)
		
		return Predicate(field=name, condition=condition, value=value, negated=negated, spec=spec)
	
	def _coerce(self, name: str, field_type: FieldType, value: Any) -> Any:
		"""Convert a JSON scalar to the value bound for the field's type."""
		if field_type == FieldType.TEXT:
			if isinstance(value, str):
				return value
			if _is_int(value) or isinstance(value, float):
				return str(value)
		
		elif field_type == FieldType.NUMBER:
			if _is_int(value) or isinstance(value, float):
				return value
			if isinstance(value, str):
				try:
					return int(value)
				except ValueError:
					try:
						return float(value)
					except ValueError:
						pass
		
		elif field_type == FieldType.DATE:
			if isinstance(value, str):
				return self._normalize_date(name, value)
		
		elif field_type == FieldType.BOOLEAN:
			if isinstance(value, bool):
				return 1 if value else 0
			if _is_int(value) and value in (0, 1):
				return value
		
		elif field_type == FieldType.PATH:
			if isinstance(value, list) and value and all(_is_int(v) and v > 0 for v in value):
				return list(value)
			raise ValidationError(
				f"Field {name} expects a non-empty list of positive element ids", field=name
			)
		
		raise ValidationError(
			f"Invalid value {value!r} for {field_type.name.lower()} field {name}", field=name
		)
	
	def _normalize_date(self, name: str, value: str) -> str:
		"""
		Dates are stored as 'YYYY-MM-DD HH:MM:SS' (UTC).
		Date-only values stay as-is and match the whole day.
		"""
		text = value.strip()
		try:
			parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
		except ValueError:
			raise ValidationError(f"Invalid date '{value}' for field {name}", field=name)
		if len(text) == 10:
			return parsed.strftime("%Y-%m-%d")
		if parsed.tzinfo is not None:
			parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
		return parsed.strftime("%Y-%m-%d %H:%M:%S")
	
	def _parse_page(self, raw: Any) -> int:
		if raw is None:
			return 1
		if not _is_int(raw) or raw < 1:
			raise ValidationError("'page' must be an integer >= 1", field="page")
		return raw
	
	def _parse_page_size(self, raw: Any) -> int:
		if raw is None:
			return self.default_page_size
		if not _is_int(raw):
			raise ValidationError("'pageSize' must be an integer", field="pageSize")
		if raw == UNPAGED:
			if not self.schema.allow_unpaged:
				raise ValidationError(f"Unpaged search is not available for {self.schema.name}", field="pageSize")
			return raw
		if raw < 1:
			raise ValidationError("'pageSize' must be >= 1", field="pageSize")
		return min(raw, self.max_page_size)
	
	def _parse_sort(self, raw: Any) -> List[SortKey]:
		if raw is None:
			return []
		if isinstance(raw, dict):
			raw = [raw]
		if not isinstance(raw, list):
			raise ValidationError("'sort' must be a list", field="sort")
		
		keys = []
		for item in raw:
			if not isinstance(item, dict):
				raise ValidationError("Sort entries must be objects", field="sort")
			name = item.get("field")
			spec = self.schema.get_field(name) if isinstance(name, str) else None
			is_pk = name == self.schema.primary_key
			if not is_pk and (spec is None or not spec.sortable or spec.column is None):
				raise ValidationError(f"Cannot sort by field: {name}", field="sort")
			direction = str(item.get("direction", "asc")).lower()
			if direction not in ("asc", "desc"):
				raise ValidationError(f"Invalid sort direction: {direction}", field="sort")
			keys.append(SortKey(field=name, descending=direction == "desc"))
		return keys
