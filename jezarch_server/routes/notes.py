import logging
from flask import Blueprint, jsonify

from jezarch.notes import NOTE_SCHEMA, NoteStore
from ..server import get_archive
from .common import current_user, get_audit, json_body, parse_search, require_auth

logger = logging.getLogger(__name__)

notes_bp = Blueprint("notes", __name__)

AREA = "note"


@notes_bp.route("/note", methods=["POST"])
@require_auth("admin", "employee")
def create_note():
	note = NoteStore(get_archive()).create(json_body(), current_user())
	get_audit().info(f"Note created: {note['title']} (ID: {note['noteId']})", current_user().login, AREA)
	return jsonify(note), 201


@notes_bp.route("/note/<int:note_id>", methods=["GET"])
@require_auth("admin", "employee")
def get_note(note_id: int):
	return jsonify(NoteStore(get_archive()).get(note_id, current_user()))


@notes_bp.route("/note/<int:note_id>", methods=["PATCH"])
@require_auth("admin", "employee")
def update_note(note_id: int):
	note = NoteStore(get_archive()).update(note_id, json_body(), current_user())
	return jsonify(note)


@notes_bp.route("/note/<int:note_id>", methods=["DELETE"])
@require_auth("admin", "employee")
def delete_note(note_id: int):
	NoteStore(get_archive()).delete(note_id, current_user())
	get_audit().info(f"Note deleted: {note_id}", current_user().login, AREA)
	return "", 204


@notes_bp.route("/notes/search", methods=["POST"])
@require_auth("admin", "employee")
def search_notes():
	request = parse_search(NOTE_SCHEMA)
	response = NoteStore(get_archive()).search(request, current_user())
	return jsonify(response.to_dict())
