import logging
from flask import Blueprint, jsonify, request, send_file

from jezarch.backup import BACKUP_MIMETYPE, RESTORE_UPLOAD_NAME, DatabaseBackup, backup_filename
from jezarch.errors import NotFoundError, ValidationError
from ..server import get_archive
from .common import current_user, get_audit, get_config, require_auth

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)


@admin_bp.route("/status", methods=["GET"])
def status():
	return jsonify({"message": "API is working"})


@admin_bp.route("/ping", methods=["GET"])
def ping():
	return "PONG", 200, {"Content-Type": "text/plain"}


@admin_bp.route("/admin/db/backup", methods=["GET"])
@require_auth("admin")
def backup_database():
	"""Download a consistent copy of the live database."""
	db_path = get_config().db_path
	target = db_path.parent / "backups" / backup_filename()

	get_audit().info(f"Database backup requested: {target.name}", current_user().login, "admin_db")
	DatabaseBackup(get_archive()).export(target)
	if not target.exists():
		raise NotFoundError("Backup file was not created")

	get_audit().info(f"Database backup created: {target.name}", current_user().login, "admin_db")
	return send_file(target, mimetype=BACKUP_MIMETYPE, as_attachment=True, download_name=target.name)


@admin_bp.route("/admin/db/restore", methods=["PUT"])
@require_auth("admin")
def restore_database():
	"""Replace the database with an uploaded backup, as a 'file' form field or the raw body."""
	login = current_user().login
	if "file" in request.files:
		data = request.files["file"].read()
	else:
		data = request.get_data()
	if not data:
		raise ValidationError("No database file provided", field="file")

	upload = get_config().db_path.parent / RESTORE_UPLOAD_NAME
	upload.write_bytes(data)
	try:
		DatabaseBackup(get_archive()).restore(upload)
	finally:
		upload.unlink(missing_ok=True)

	# Written into the restored database
	get_audit().info(f"Database restored from upload ({len(data)} bytes)", login, "admin_db")
	return jsonify({"message": "Database restored"})
