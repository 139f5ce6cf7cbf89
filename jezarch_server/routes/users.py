import logging
from flask import Blueprint, jsonify

from jezarch.errors import AuthenticationError, ValidationError
from jezarch.tags import TagStore, parse_tag_ids
from jezarch.users import UserStore
from ..server import get_archive
from .common import current_user, get_audit, get_sessions, get_token, json_body, require_auth

logger = logging.getLogger(__name__)

users_bp = Blueprint("users", __name__)

AREA = "user"


# ============ Session ============

@users_bp.route("/user/create", methods=["POST"])
def create_user():
	"""Register a new account. New accounts have no role until an admin assigns one."""
	data = json_body()
	user = UserStore(get_archive()).create(data.get("login"), data.get("password"))
	get_audit().info(f"User created: {user.login}", user.login, AREA)
	return jsonify({"login": user.login, "message": "User created successfully"}), 201


@users_bp.route("/user/login", methods=["POST"])
def login():
	data = json_body()
	login_name = data.get("login")
	if not isinstance(login_name, str) or not login_name:
		raise ValidationError("'login' is required", field="login")
	
	user = UserStore(get_archive()).authenticate(login_name, data.get("password"))
	if user is None:
		get_audit().warn(f"Invalid login attempt: {login_name}", login_name, "auth")
		raise AuthenticationError("Invalid credentials")
	
	token = get_sessions().create(user)
	get_audit().info(f"User logged in: {user.login}", user.login, "auth")
	return jsonify({"token": token, "role": user.role, "login": user.login})


@users_bp.route("/user/logout", methods=["POST"])
def logout():
	token = get_token()
	if not token:
		raise ValidationError("Missing auth token")
	get_sessions().delete(token)
	return jsonify({"message": "Logged out"})


@users_bp.route("/user/me", methods=["GET"])
@require_auth()
def get_me():
	return jsonify(current_user().to_dict())


@users_bp.route("/user/change-password", methods=["POST"])
@require_auth()
def change_password():
	data = json_body()
	user = current_user()
	store = UserStore(get_archive())
	
	if store.authenticate(user.login, data.get("oldPassword")) is None:
		get_audit().warn("Invalid old password", user.login, "auth")
		raise AuthenticationError("Invalid password")
	
	store.update_password(user, data.get("password"))
	get_audit().info("Password changed", user.login, AREA)
	return jsonify({"message": "Password updated successfully"})


# ============ Administration ============

@users_bp.route("/users/all", methods=["GET"])
@require_auth("admin")
def list_users():
	users = UserStore(get_archive()).list_all()
	return jsonify([u.to_dict() for u in users])


@users_bp.route("/user/by-login/<login>", methods=["GET"])
@require_auth("admin")
def get_user(login: str):
	store = UserStore(get_archive())
	user = store.get_by_login(login)
	data = user.to_dict()
	data["allowedTagIds"] = store.get_allowed_tag_ids(user.user_id)
	return jsonify(data)


@users_bp.route("/user/by-login/<login>", methods=["PATCH"])
@require_auth("admin")
def update_user_role(login: str):
	data = json_body()
	if "role" not in data:
		raise ValidationError("'role' is required", field="role")
	user = UserStore(get_archive()).update_role(login, data["role"])
	get_audit().info(f"Role of {login} set to {user.role}", current_user().login, AREA)
	return jsonify({"message": "User role updated successfully", "user": user.to_dict()})


@users_bp.route("/user/by-login/<login>/allowed-tags", methods=["PUT"])
@require_auth("admin")
def set_allowed_tags(login: str):
	"""Restrict which tagged documents an employee can see. An empty list lifts the restriction."""
	data = json_body()
	tag_ids = parse_tag_ids(data.get("tagIds"))
	archive = get_archive()
	store = UserStore(archive)
	user = store.get_by_login(login)
	TagStore(archive).require_existing(tag_ids)
	store.set_allowed_tag_ids(user.user_id, tag_ids)
	get_audit().info(f"Allowed tags of {login} set to {tag_ids}", current_user().login, AREA)
	return jsonify({"login": login, "allowedTagIds": tag_ids})
