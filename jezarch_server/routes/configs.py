import logging
from flask import Blueprint, jsonify

from jezarch.config import AppConfigKey, ConfigStore, parse_key
from jezarch.errors import AuthorizationError
from jezarch.users import is_allowed_role
from ..server import get_archive
from .common import current_user, get_audit, json_body, require_auth

logger = logging.getLogger(__name__)

configs_bp = Blueprint("configs", __name__)

# Keys readable by roles other than admin
READ_ROLES = {
	AppConfigKey.DEFAULT_LANGUAGE: ("admin", "employee"),
}


@configs_bp.route("/configs/<key>", methods=["GET"])
@require_auth()
def get_config_value(key: str):
	config_key = parse_key(key)
	if not is_allowed_role(current_user(), *READ_ROLES.get(config_key, ("admin",))):
		raise AuthorizationError(f"Forbidden: cannot read configuration key {key}")
	return jsonify({config_key.value: ConfigStore(get_archive()).get(config_key)})


@configs_bp.route("/configs/<key>", methods=["PUT"])
@require_auth("admin")
def set_config_value(key: str):
	config_key = parse_key(key)
	value = ConfigStore(get_archive()).set(config_key, json_body().get("value"))
	get_audit().info(f"Config {config_key.value} set to {value}", current_user().login, "config")
	return jsonify({config_key.value: value})
