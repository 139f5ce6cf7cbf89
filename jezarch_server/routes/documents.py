import logging
from flask import Blueprint, jsonify

from jezarch.documents import DOCUMENT_SCHEMA, DocumentStore, document_visibility
from jezarch.errors import ValidationError
from jezarch.query import SearchRequest
from jezarch.tags import parse_tag_ids
from jezarch.users import UserStore
from ..server import get_archive
from .common import current_user, get_audit, json_body, parse_search, require_auth

logger = logging.getLogger(__name__)

documents_bp = Blueprint("documents", __name__)

AREA = "archive_document"


def visibility_for(request: SearchRequest = None):
	"""Caller-scoped visibility. Admins filtering on 'active' also see disabled documents."""
	user = current_user()
	allowed_tags = UserStore(get_archive()).get_allowed_tag_ids(user.user_id) if user.role == "employee" else []
	include_inactive = user.is_admin and (request is None or request.has_field("active"))
	return document_visibility(user, allowed_tags, include_inactive)


@documents_bp.route("/archive/document", methods=["POST"])
@require_auth("admin", "employee")
def create_document():
	store = DocumentStore(get_archive())
	document_id = store.create(json_body(), current_user())
	document = store.get(document_id)
	get_audit().info(f"Archive document created: {document['title']} (ID: {document_id})", current_user().login, AREA)
	return jsonify(document), 201


@documents_bp.route("/archive/document/<int:document_id>", methods=["GET"])
@require_auth("admin", "employee")
def get_document(document_id: int):
	return jsonify(DocumentStore(get_archive()).get(document_id, visibility_for()))


@documents_bp.route("/archive/document/<int:document_id>", methods=["PATCH"])
@require_auth("admin", "employee")
def update_document(document_id: int):
	document = DocumentStore(get_archive()).update(document_id, json_body(), current_user())
	get_audit().info(f"Archive document updated: {document['title']} (ID: {document_id})", current_user().login, AREA)
	return jsonify(document)


@documents_bp.route("/archive/document/<int:document_id>", methods=["DELETE"])
@require_auth("admin", "employee")
def disable_document(document_id: int):
	DocumentStore(get_archive()).disable(document_id, current_user())
	get_audit().info(f"Archive document disabled: ID {document_id}", current_user().login, AREA)
	return "", 204


@documents_bp.route("/archive/documents/search", methods=["POST"])
@require_auth("admin", "employee")
def search_documents():
	request = parse_search(DOCUMENT_SCHEMA)
	response = DocumentStore(get_archive()).search(request, visibility_for(request))
	return jsonify(response.to_dict())


@documents_bp.route("/archive/documents/batch-tag", methods=["POST"])
@require_auth("admin")
def batch_tag_documents():
	"""Body: {"searchQuery": [...predicates], "tagIds": [1, 2], "action": "add" | "remove"}"""
	data = json_body()
	search_query = data.get("searchQuery") or []
	if not isinstance(search_query, list):
		raise ValidationError("'searchQuery' must be a list of predicates", field="searchQuery")
	
	request = parse_search(DOCUMENT_SCHEMA, {"query": search_query})
	tag_ids = parse_tag_ids(data.get("tagIds"))
	action = data.get("action")
	
	affected = DocumentStore(get_archive()).batch_tag(request, tag_ids, action, visibility_for(request))
	get_audit().info(
		f"Batch tag {action} on {affected} documents", current_user().login, AREA,
		{"tagIds": tag_ids, "searchQuery": search_query}
	)
	verb = "added to" if action == "add" else "removed from"
	return jsonify({"message": f"Tags {verb} {affected} documents", "affectedDocuments": affected})
