import logging
from flask import Blueprint, jsonify

from jezarch.errors import ValidationError
from jezarch.signatures import ELEMENT_SCHEMA, SignatureStore
from ..server import get_archive
from .common import current_user, get_audit, json_body, parse_search, populate_args, require_auth

logger = logging.getLogger(__name__)

signatures_bp = Blueprint("signatures", __name__)

AREA = "signature"


def get_store() -> SignatureStore:
	return SignatureStore(get_archive())


# ============ Components ============

@signatures_bp.route("/signature/components", methods=["GET"])
@require_auth("admin", "employee")
def list_components():
	return jsonify(get_store().list_components())


@signatures_bp.route("/signature/components", methods=["POST"])
@require_auth("admin")
def create_component():
	data = json_body()
	component = get_store().create_component(
		data.get("name"), data.get("description"), data.get("index_type", "dec")
	)
	get_audit().info(f"Signature component created: {component['name']}", current_user().login, AREA)
	return jsonify(component), 201


@signatures_bp.route("/signature/components/<int:component_id>", methods=["GET"])
@require_auth("admin", "employee")
def get_component(component_id: int):
	return jsonify(get_store().get_component(component_id))


@signatures_bp.route("/signature/components/<int:component_id>", methods=["PATCH"])
@require_auth("admin")
def update_component(component_id: int):
	component = get_store().update_component(component_id, json_body())
	get_audit().info(f"Signature component updated: {component['name']}", current_user().login, AREA)
	return jsonify(component)


@signatures_bp.route("/signature/components/<int:component_id>", methods=["DELETE"])
@require_auth("admin")
def delete_component(component_id: int):
	get_store().delete_component(component_id)
	get_audit().info(f"Signature component deleted: {component_id}", current_user().login, AREA)
	return "", 204


@signatures_bp.route("/signature/components/<int:component_id>/reindex", methods=["POST"])
@require_auth("admin")
def reindex_component(component_id: int):
	final_count = get_store().reindex_component(component_id)
	get_audit().info(
		f"Signature component {component_id} re-indexed", current_user().login, AREA, {"finalCount": final_count}
	)
	return jsonify({"message": "Component re-indexed successfully", "finalCount": final_count})


@signatures_bp.route("/signature/components/<int:component_id>/elements", methods=["GET"])
@require_auth("admin", "employee")
def list_component_elements(component_id: int):
	return jsonify(get_store().list_component_elements(component_id))


# ============ Elements ============

@signatures_bp.route("/signature/elements", methods=["POST"])
@require_auth("admin")
def create_element():
	data = json_body()
	element = get_store().create_element(
		data.get("signatureComponentId"),
		data.get("name"),
		description=data.get("description"),
		index=data.get("index"),
		parent_ids=data.get("parentIds")
	)
	get_audit().info(
		f"Signature element created: {element['name']} (ID: {element['signatureElementId']})",
		current_user().login, AREA
	)
	return jsonify(element), 201


@signatures_bp.route("/signature/elements/<int:element_id>", methods=["GET"])
@require_auth("admin", "employee")
def get_element(element_id: int):
	return jsonify(get_store().get_element(element_id, populate_args()))


@signatures_bp.route("/signature/elements/<int:element_id>", methods=["PATCH"])
@require_auth("admin")
def update_element(element_id: int):
	element = get_store().update_element(element_id, json_body())
	get_audit().info(f"Signature element updated: {element_id}", current_user().login, AREA)
	return jsonify(element)


@signatures_bp.route("/signature/elements/<int:element_id>", methods=["DELETE"])
@require_auth("admin")
def delete_element(element_id: int):
	get_store().delete_element(element_id)
	get_audit().info(f"Signature element deleted: {element_id}", current_user().login, AREA)
	return "", 204


@signatures_bp.route("/signature/elements/search", methods=["POST"])
@require_auth("admin", "employee")
def search_elements():
	request = parse_search(ELEMENT_SCHEMA)
	return jsonify(get_store().search_elements(request).to_dict())


@signatures_bp.route("/signature/resolve", methods=["POST"])
@require_auth("admin", "employee")
def resolve_paths():
	"""Render id paths for display: {"paths": [[1, 5, 9], [2]]}"""
	paths = json_body().get("paths")
	if not isinstance(paths, list) or not all(
		isinstance(path, list) and all(isinstance(i, int) and not isinstance(i, bool) for i in path)
		for path in paths
	):
		raise ValidationError("'paths' must be a list of element id lists", field="paths")
	return jsonify({"resolved": get_store().resolve_paths(paths)})
