"""
Jezarch Query Executor

Compiles validated search requests into parameterized SQL and runs them
against the archive database.
"""

import sqlite3
import logging
from datetime import date, timedelta
from typing import List, Dict, Any, Optional, Tuple
from dataclasses import dataclass, field

from ..errors import StorageError
from .parser import SearchRequest, Predicate, SortKey
from .schema import Condition, FieldSpec, FieldType, ResourceSchema
from .pagination import SearchResponse, compute_window, unpaged_window

logger = logging.getLogger(__name__)

DATE_ONLY_LENGTH = len("YYYY-MM-DD")


def _casefold(value: Any) -> Any:
	if value is None:
		return None
	return str(value).casefold()


def register_functions(conn: sqlite3.Connection):
	"""SQL functions the compiled queries rely on. LIKE alone only folds ASCII letters."""
	conn.create_function("casefold", 1, _casefold, deterministic=True)


def fragment_condition(column: str, fragment: str) -> Tuple[str, List[Any]]:
	"""Case-insensitive substring match, wildcards in the fragment taken literally."""
	return f"casefold({column}) LIKE ? ESCAPE '\\'", [f"%{escape_like(fragment.casefold())}%"]


def _day_bounds(value: str) -> Tuple[str, str]:
	"""[start, end) of a whole day, comparable with stored 'YYYY-MM-DD HH:MM:SS' text."""
	day = date.fromisoformat(value)
	return day.isoformat(), (day + timedelta(days=1)).isoformat()


def _is_date_only(spec: Optional[FieldSpec], value: Any) -> bool:
	return (
		spec is not None and spec.type == FieldType.DATE
		and isinstance(value, str) and len(value) == DATE_ONLY_LENGTH
	)


COMPARISON_OPERATORS = {
	Condition.EQ: "=",
	Condition.GT: ">",
	Condition.GTE: ">=",
	Condition.LT: "<",
	Condition.LTE: "<=",
}


@dataclass
class VisibilityClause:
	"""Access-control condition supplied by the caller, always AND-ed at the top level."""
	condition: str
	params: List[Any] = field(default_factory=list)
	
	@classmethod
	def combine(cls, *clauses: Optional['VisibilityClause']) -> Optional['VisibilityClause']:
		parts = [c for c in clauses if c is not None]
		if not parts:
			return None
		if len(parts) == 1:
			return parts[0]
		params = []
		for c in parts:
			params.extend(c.params)
		return cls(" AND ".join(f"({c.condition})" for c in parts), params)


@dataclass
class CompiledQuery:
	"""A data query (without LIMIT) and its matching count query."""
	data_sql: str
	count_sql: str
	params: List[Any]


class QueryCompiler:
	"""Builds SQL for one resource schema."""
	
	def __init__(self, schema: ResourceSchema):
		self.schema = schema
	
	def compile(self, request: SearchRequest, visibility: Optional[VisibilityClause] = None,
				columns: Optional[str] = None) -> CompiledQuery:
		where_clause, params = self._build_where(request.predicates, visibility)
		order_clause = self._build_order_by(request.sort)
		
		data_sql = (
			f"SELECT {columns or self.schema.select_list} FROM {self.schema.from_clause}"
			f"{where_clause} {order_clause}"
		)
		count_sql = f"SELECT COUNT(*) FROM {self.schema.from_clause}{where_clause}"
		return CompiledQuery(data_sql=data_sql, count_sql=count_sql, params=params)
	
	def _build_where(self, predicates: List[Predicate],
					visibility: Optional[VisibilityClause]) -> Tuple[str, List[Any]]:
		"""Build WHERE clause; the visibility clause is its own top-level conjunct."""
		conditions = []
		params = []
		
		if visibility is not None:
			conditions.append(f"({visibility.condition})")
			params.extend(visibility.params)
		
		for predicate in predicates:
			cond, prms = self.build_condition(predicate)
			conditions.append(f"({cond})")
			params.extend(prms)
		
		if not conditions:
			return "", []
		
		return " WHERE " + " AND ".join(conditions), params
	
	def build_condition(self, predicate: Predicate) -> Tuple[str, List[Any]]:
		"""Build SQL condition for a single predicate."""
		spec = predicate.spec or self.schema.fields[predicate.field]
		
		if spec.handler is not None:
			condition, params = spec.handler(predicate)
		else:
			condition, params = self._build_column_condition(spec, predicate)
	
		# A NULL field satisfies the negation: it is neither equal to nor inside anything
		if predicate.negated:
			condition = f"COALESCE(({condition}), 0) = 0"
	
		return condition, params
	
	def _build_column_condition(self, spec: FieldSpec, predicate: Predicate) -> Tuple[str, List[Any]]:
		column = spec.column
		condition = predicate.condition
	
		if condition == Condition.FRAGMENT:
			return fragment_condition(column, predicate.value)
	
		if condition == Condition.ANY_OF:
			if any(_is_date_only(spec, v) for v in predicate.value):
				parts = []
				params = []
				for value in predicate.value:
					part, prms = self._build_date_condition(column, Condition.EQ, value)
					parts.append(f"({part})")
					params.extend(prms)
				return " OR ".join(parts), params
			placeholders = ", ".join("?" for _ in predicate.value)
			return f"{column} IN ({placeholders})", list(predicate.value)
	
		if condition in COMPARISON_OPERATORS:
			if _is_date_only(spec, predicate.value):
				return self._build_date_condition(column, condition, predicate.value)
			return f"{column} {COMPARISON_OPERATORS[condition]} ?", [predicate.value]
	
		raise ValueError(f"Unsupported condition: {condition}")
	
	@staticmethod
	def _build_date_condition(column: str, condition: Condition, value: str) -> Tuple[str, List[Any]]:
		"""A date without a time part stands for the whole day."""
		if len(value) != DATE_ONLY_LENGTH:
			return f"{column} = ?", [value]
		start, end = _day_bounds(value)
		if condition == Condition.EQ:
			return f"{column} >= ? AND {column} < ?", [start, end]
		if condition == Condition.GT:
			return f"{column} >= ?", [end]
		if condition == Condition.GTE:
			return f"{column} >= ?", [start]
		if condition == Condition.LT:
			return f"{column} < ?", [start]
		if condition == Condition.LTE:
			return f"{column} < ?", [end]
		raise ValueError(f"Unsupported date condition: {condition}")
	
	def _build_order_by(self, sort: List[SortKey]) -> str:
		"""Explicit sort, else resource default; the primary key always breaks ties."""
		parts = []
		seen = set()
		
		if sort:
			keys = [(k.field, "DESC" if k.descending else "ASC") for k in sort]
		else:
			keys = list(self.schema.default_sort)
		
		for name, direction in keys:
			if name in seen:
				continue
			seen.add(name)
			parts.append(f"{self.schema.column_for(name)} {direction}")
		
		if self.schema.primary_key not in seen:
			parts.append(f"{self.schema.primary_key_column} ASC")
		
		return "ORDER BY " + ", ".join(parts)


def escape_like(value: str) -> str:
	"""Escape LIKE wildcards so fragments match literally."""
	return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class QueryExecutor:
	"""Executes compiled searches and wraps them in the pagination envelope."""
	
	def __init__(self, conn: sqlite3.Connection, schema: ResourceSchema):
		self.conn = conn
		self.schema = schema
		self.compiler = QueryCompiler(schema)
		register_functions(conn)
	
	def execute(self, request: SearchRequest, visibility: Optional[VisibilityClause] = None) -> SearchResponse:
		compiled = self.compiler.compile(request, visibility)
		
		try:
			total_size = self.conn.execute(compiled.count_sql, compiled.params).fetchone()[0]
			
			if request.unpaged:
				window = unpaged_window(total_size)
				cursor = self.conn.execute(compiled.data_sql, compiled.params)
			else:
				# Clamp before fetching so the served page matches the reported one
				window = compute_window(request.page, request.page_size, total_size)
				cursor = self.conn.execute(
					compiled.data_sql + " LIMIT ? OFFSET ?",
					compiled.params + [window.limit, window.offset]
				)
			rows = [dict(row) for row in cursor]
		except sqlite3.Error as e:
			logger.exception(f"Search on {self.schema.name} failed")
			raise StorageError(f"Failed to search {self.schema.name}") from e
		
		logger.debug(f"Search {self.schema.name}: {total_size} matches, page {window.page}/{window.total_pages}")
		return SearchResponse.from_window(rows, window)


def search(conn: sqlite3.Connection, schema: ResourceSchema, request: SearchRequest,
		visibility: Optional[VisibilityClause] = None) -> SearchResponse:
	"""Run a validated search request against a resource."""
	return QueryExecutor(conn, schema).execute(request, visibility)
