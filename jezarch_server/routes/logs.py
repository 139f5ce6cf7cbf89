import logging
from flask import Blueprint, jsonify

from jezarch.audit import LOG_SCHEMA
from .common import current_user, get_audit, json_body, parse_search, require_auth

logger = logging.getLogger(__name__)

logs_bp = Blueprint("logs", __name__)


@logs_bp.route("/logs/search", methods=["POST"])
@require_auth("admin")
def search_logs():
	request = parse_search(LOG_SCHEMA)
	return jsonify(get_audit().search(request).to_dict())


@logs_bp.route("/logs/purge", methods=["DELETE"])
@require_auth("admin")
def purge_logs():
	"""Body: {"olderThanDays": 30}"""
	days = json_body().get("olderThanDays")
	audit = get_audit()
	deleted = audit.purge(days)
	audit.info(f"Purged {deleted} log entries older than {days} days", current_user().login, "log")
	return jsonify({"message": f"Purged {deleted} log entries", "deletedCount": deleted})
