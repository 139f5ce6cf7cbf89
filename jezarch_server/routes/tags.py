import logging
from flask import Blueprint, jsonify

from jezarch.tags import TagStore
from ..server import get_archive
from .common import current_user, get_audit, json_body, require_auth

logger = logging.getLogger(__name__)

tags_bp = Blueprint("tags", __name__)

AREA = "tag"


@tags_bp.route("/tags", methods=["GET"])
@require_auth("admin", "employee")
def list_tags():
	return jsonify(TagStore(get_archive()).list_all())


@tags_bp.route("/tags", methods=["POST"])
@require_auth("admin", "employee")
def create_tag():
	data = json_body()
	tag = TagStore(get_archive()).create(data.get("name"), data.get("description"))
	get_audit().info(f"Tag created: {tag['name']}", current_user().login, AREA)
	return jsonify(tag), 201


@tags_bp.route("/tags/<int:tag_id>", methods=["GET"])
@require_auth("admin", "employee")
def get_tag(tag_id: int):
	return jsonify(TagStore(get_archive()).get(tag_id))


@tags_bp.route("/tags/<int:tag_id>", methods=["PATCH"])
@require_auth("admin")
def update_tag(tag_id: int):
	tag = TagStore(get_archive()).update(tag_id, json_body())
	get_audit().info(f"Tag updated: {tag['name']}", current_user().login, AREA)
	return jsonify(tag)


@tags_bp.route("/tags/<int:tag_id>", methods=["DELETE"])
@require_auth("admin")
def delete_tag(tag_id: int):
	TagStore(get_archive()).delete(tag_id)
	get_audit().info(f"Tag deleted: {tag_id}", current_user().login, AREA)
	return "", 204
