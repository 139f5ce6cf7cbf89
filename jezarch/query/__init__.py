from .schema import FieldType, Condition, FieldSpec, ResourceSchema
from .parser import Predicate, SortKey, SearchRequest, SearchRequestParser, UNPAGED
from .executor import (
	QueryCompiler, QueryExecutor, CompiledQuery, VisibilityClause, search, escape_like,
	fragment_condition, register_functions
)
from .pagination import PageWindow, SearchResponse, compute_window

__all__ = [
	"FieldType", "Condition", "FieldSpec", "ResourceSchema",
	"Predicate", "SortKey", "SearchRequest", "SearchRequestParser", "UNPAGED",
	"QueryCompiler", "QueryExecutor", "CompiledQuery", "VisibilityClause", "search", "escape_like",
	"fragment_condition", "register_functions",
	"PageWindow", "SearchResponse", "compute_window",
]
