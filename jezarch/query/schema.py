"""
Resource schema descriptors.

Each searchable resource declares the fields a client may filter and sort
on, their types and the SQL expression behind each one. The compiler is
parameterized over these descriptors and never sees raw column names
from a request.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple
from enum import Enum, auto


class FieldType(Enum):
	TEXT = auto()
	NUMBER = auto()
	DATE = auto()
	BOOLEAN = auto()
	PATH = auto()           # Sequence of positive element ids, e.g. [1, 5, 9]


class Condition(Enum):
	EQ = "EQ"
	GT = "GT"
	GTE = "GTE"
	LT = "LT"
	LTE = "LTE"
	FRAGMENT = "FRAGMENT"
	ANY_OF = "ANY_OF"


COMPARISONS = frozenset({Condition.GT, Condition.GTE, Condition.LT, Condition.LTE})

# Conditions a field of each type accepts
TYPE_CONDITIONS: Dict[FieldType, FrozenSet[Condition]] = {
	FieldType.TEXT: frozenset({Condition.EQ, Condition.FRAGMENT, Condition.ANY_OF}),
	FieldType.NUMBER: frozenset({Condition.EQ, Condition.ANY_OF}) | COMPARISONS,
	FieldType.DATE: frozenset({Condition.EQ, Condition.ANY_OF}) | COMPARISONS,
	FieldType.BOOLEAN: frozenset({Condition.EQ}),
	FieldType.PATH: frozenset({Condition.EQ, Condition.ANY_OF}),
}

# (condition SQL, params) produced by a custom field handler
SqlFragment = Tuple[str, List[Any]]


@dataclass
class FieldSpec:
	"""
	A single searchable field.
	
	column: SQL expression for the field. Defaults to the quoted field name on the resource alias.
	handler: builds the condition itself (joins, EXISTS subqueries). Receives the validated predicate.
	conditions: overrides the type's default condition set.
	"""
	type: FieldType
	column: Optional[str] = None
	sortable: bool = True
	filterable: bool = True
	handler: Optional[Callable[[Any], SqlFragment]] = None
	conditions: Optional[FrozenSet[Condition]] = None
	admin_only: bool = False
	
	def allowed_conditions(self) -> FrozenSet[Condition]:
		if self.conditions is not None:
			return self.conditions
		return TYPE_CONDITIONS[self.type]


@dataclass
class ResourceSchema:
	"""Describes how a resource is searched."""
	name: str
	table: str
	alias: str
	primary_key: str
	fields: Dict[str, FieldSpec]
	default_sort: List[Tuple[str, str]] = field(default_factory=list)
	columns: Optional[str] = None   # SELECT list, defaults to alias.*
	allow_unpaged: bool = False     # pageSize -1 returns every row
	
	def __post_init__(self):
		for name, spec in self.fields.items():
			if spec.column is None and spec.handler is None:
				spec.column = f'{self.alias}."{name}"'
		for name, _ in self.default_sort:
			if name != self.primary_key and name not in self.fields:
				raise ValueError(f"Default sort field '{name}' is not declared on {self.name}")
	
	def get_field(self, name: str) -> Optional[FieldSpec]:
		return self.fields.get(name)
	
	@property
	def primary_key_column(self) -> str:
		return f'{self.alias}."{self.primary_key}"'
	
	@property
	def select_list(self) -> str:
		return self.columns or f"{self.alias}.*"
	
	@property
	def from_clause(self) -> str:
		return f"{self.table} {self.alias}"
	
	def column_for(self, name: str) -> str:
		"""SQL expression for a plain field or the primary key."""
		if name == self.primary_key and name not in self.fields:
			return self.primary_key_column
		spec = self.fields[name]
		if spec.column is None:
			raise ValueError(f"Field '{name}' on {self.name} has no column")
		return spec.column
