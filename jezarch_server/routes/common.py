import logging
from functools import wraps
from typing import Any, Dict
from flask import current_app, g, request

from jezarch.audit import AuditLog
from jezarch.errors import AuthenticationError, AuthorizationError, ValidationError
from jezarch.query import ResourceSchema, SearchRequest, SearchRequestParser
from jezarch.users import SessionStore, User, is_allowed_role
from ..server import get_archive

logger = logging.getLogger(__name__)


def get_config():
	return current_app.config["JEZARCH_CONFIG"]


def get_audit() -> AuditLog:
	return AuditLog(get_archive())


def get_sessions() -> SessionStore:
	return SessionStore(get_archive(), ttl_hours=get_config().session_ttl_hours)


def get_token() -> str:
	"""Token from the Authorization header, bare or 'Bearer <token>'."""
	header = request.headers.get("Authorization", "").strip()
	if header.lower().startswith("bearer "):
		header = header[7:].strip()
	return header


def current_user() -> User:
	return g.user


def require_auth(*roles: str):
	"""Decorator to require a live session and, optionally, one of the given roles."""
	def decorator(f):
		@wraps(f)
		def decorated(*args, **kwargs):
			token = get_token()
			if not token:
				raise AuthenticationError("Unauthorized")
			
			user = get_sessions().get_user(token)
			if user is None or user.role is None:
				raise AuthenticationError("Unauthorized")
			
			g.user = user
			if not is_allowed_role(user, *roles):
				raise AuthorizationError(f"Forbidden: requires role {' or '.join(roles)}")
			
			return f(*args, **kwargs)
		return decorated
	return decorator


def json_body() -> Dict[str, Any]:
	data = request.get_json(silent=True)
	if data is None:
		data = {}
	if not isinstance(data, dict):
		raise ValidationError("Request body must be a JSON object")
	return data


def parse_search(schema: ResourceSchema, body: Any = None) -> SearchRequest:
	"""Validate a search body against a resource schema for the current user."""
	config = get_config()
	parser = SearchRequestParser(
		schema,
		max_page_size=config.max_page_size,
		default_page_size=config.default_page_size,
		is_admin=current_user().is_admin
	)
	return parser.parse(json_body() if body is None else body)


def populate_args() -> set:
	"""?populate=component,parents"""
	raw = request.args.get("populate", "")
	return {part.strip() for part in raw.split(",") if part.strip()}
