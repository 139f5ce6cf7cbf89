import argparse
import logging
from jezarch import Archive, ConflictError, JezarchError
from jezarch.logger import setup_logging
from jezarch.users import UserStore
from jezarch_server import ServerConfig, run_server

DEFAULT_DB = ".jezarch/jezarch.db"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8080


def create_admin(db_path: str, login: str, password: str):
	"""Create an administrator, or promote an existing account."""
	archive = Archive(db_path)
	try:
		store = UserStore(archive)
		try:
			store.create(login, password, role="admin")
			logging.info(f"Administrator '{login}' created")
		except ConflictError:
			store.update_role(login, "admin")
			logging.info(f"Existing user '{login}' promoted to administrator")
	finally:
		archive.close()


def main():
	parser = argparse.ArgumentParser(description="Jezarch archive backend")
	parser.add_argument("--db", default=DEFAULT_DB, help="SQLite database path")
	parser.add_argument("--host", default=DEFAULT_HOST, help="Server host")
	parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Server port")
	parser.add_argument("--create-admin", nargs=2, metavar=("LOGIN", "PASSWORD"), help="Create an administrator and exit")
	parser.add_argument("--debug", action="store_true", help="Enable debug logging")
	
	args = parser.parse_args()
	
	setup_logging(level=logging.DEBUG if args.debug else logging.INFO)
	
	try:
		config = ServerConfig(host=args.host, port=args.port, debug=args.debug, db_path=args.db)
		
		if args.create_admin:
			create_admin(str(config.db_path), *args.create_admin)
			return
		
		logging.info("Press Ctrl+C to stop")
		run_server(config)
	
	except KeyboardInterrupt:
		logging.info("Shutting down...")
	except JezarchError as e:
		logging.error(f"{type(e).__name__}: {e.message}")
	except Exception as e:
		logging.critical(f"Fatal error: {e}", exc_info=True)


if __name__ == "__main__":
	main()
