"""Tests for process logging setup."""

import logging
from typing import Iterator

import pytest

from jezarch.logger import setup_logging


@pytest.fixture
def root_logger() -> Iterator[logging.Logger]:
	root = logging.getLogger()
	handlers, level = list(root.handlers), root.level
	yield root
	root.handlers[:] = handlers
	root.setLevel(level)
	logging.getLogger("werkzeug").setLevel(logging.NOTSET)


def test_repeated_setup_keeps_one_handler(root_logger: logging.Logger) -> None:
	setup_logging()
	setup_logging(logging.DEBUG)
	ours = [h for h in root_logger.handlers if getattr(h, "_jezarch", False)]
	assert len(ours) == 1
	assert root_logger.level == logging.DEBUG
	assert logging.getLogger("werkzeug").level == logging.INFO
