import sqlite3
import logging
from typing import Optional
from flask import Flask, current_app, g, jsonify, request

from jezarch.core import Archive
from jezarch.audit import AuditLog
from jezarch.errors import AuthorizationError, JezarchError, StorageError
from .config import ServerConfig

logger = logging.getLogger(__name__)


def get_archive() -> Archive:
	"""Request-scoped archive connection, opened on first use."""
	if "archive" not in g:
		config = current_app.config["JEZARCH_CONFIG"]
		g.archive = Archive(config.db_path, initialize=False)
	return g.archive


def _close_archive(exception=None):
	archive = g.pop("archive", None)
	if archive is not None:
		archive.close()


def register_error_handlers(app: Flask):
	"""Map the error taxonomy to status codes and a stable JSON shape."""
	
	@app.errorhandler(JezarchError)
	def handle_jezarch_error(error: JezarchError):
		user = g.get("user")
		login = user.login if user else None
		if isinstance(error, StorageError):
			logger.error(f"Storage error: {error.message}", exc_info=error.__cause__ or error)
			AuditLog(get_archive()).error(error.message, login, "storage", data=error.__cause__)
		elif isinstance(error, AuthorizationError):
			AuditLog(get_archive()).warn(f"{error.message} ({request.method} {request.path})", login, "auth")
		return jsonify(error.to_dict()), error.status
	
	@app.errorhandler(sqlite3.Error)
	def handle_sqlite_error(error: sqlite3.Error):
		logger.exception("Unhandled database error")
		return jsonify(StorageError().to_dict()), 500
	
	@app.errorhandler(404)
	def handle_not_found(error):
		return jsonify({"error": "Not found"}), 404
	
	@app.errorhandler(405)
	def handle_method_not_allowed(error):
		return jsonify({"error": "Method not allowed"}), 405


def create_app(config: Optional[ServerConfig] = None) -> Flask:
	"""Create and configure the Flask application."""
	if config is None:
		config = ServerConfig()
	
	app = Flask(__name__)
	
	# Configure app
	app.config["SECRET_KEY"] = config.secret_key
	app.config["MAX_CONTENT_LENGTH"] = config.max_content_length
	app.config["JEZARCH_CONFIG"] = config
	
	# Create tables once; requests open their own connections
	Archive(config.db_path).close()
	
	app.teardown_appcontext(_close_archive)
	register_error_handlers(app)
	
	# Register blueprints
	from .routes.users import users_bp
	from .routes.notes import notes_bp
	from .routes.tags import tags_bp
	from .routes.signatures import signatures_bp
	from .routes.documents import documents_bp
	from .routes.logs import logs_bp
	from .routes.configs import configs_bp
	from .routes.admin import admin_bp
	
	for blueprint in (users_bp, notes_bp, tags_bp, signatures_bp, documents_bp, logs_bp, configs_bp, admin_bp):
		app.register_blueprint(blueprint, url_prefix="/api")
	
	logger.info(f"Jezarch server initialized (database: {config.db_path})")
	
	return app


def run_server(config: Optional[ServerConfig] = None):
	"""Run the Jezarch API server."""
	if config is None:
		config = ServerConfig()
	
	app = create_app(config)
	
	logger.info(f"Starting Jezarch server on http://{config.host}:{config.port}")
	
	app.run(
		host=config.host,
		port=config.port,
		debug=config.debug,
		threaded=True
	)
