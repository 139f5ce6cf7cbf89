import logging, sys

def setup_logging(level = logging.INFO):
	root_logger = logging.getLogger()
	root_logger.setLevel(level)

	# Repeated calls replace the handler instead of stacking another
	for existing in list(root_logger.handlers):
		if getattr(existing, "_jezarch", False):
			root_logger.removeHandler(existing)

	handler = logging.StreamHandler(sys.stdout)
	handler._jezarch = True
	
	formatter = logging.Formatter(
		"[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
		datefmt="%H:%M:%S"
	)
	handler.setFormatter(formatter)
	root_logger.addHandler(handler)

	# Werkzeug request lines are noisy at DEBUG
	logging.getLogger("werkzeug").setLevel(max(level, logging.INFO))
