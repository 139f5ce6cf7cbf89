"""Tests for the archive connection and its transactions."""

from pathlib import Path
from typing import Iterator, Tuple

import pytest

from jezarch.core import Archive
from jezarch.errors import StorageError


@pytest.fixture
def two_connections(tmp_path: Path) -> Iterator[Tuple[Archive, Archive]]:
	"""Two connections to one database file; the second gives up on a lock at once."""
	first = Archive(tmp_path / "archive.db")
	second = Archive(tmp_path / "archive.db", initialize=False)
	second.conn.execute("PRAGMA busy_timeout = 0;")
	yield first, second
	second.close()
	first.close()


def tag_names(archive: Archive):
	return [row["name"] for row in archive.conn.execute("SELECT name FROM tags ORDER BY name")]


def test_transaction_takes_write_lock_before_any_write(two_connections) -> None:
	first, second = two_connections
	with first.transaction():
		assert first.conn.in_transaction
		with pytest.raises(StorageError):
			with second.transaction():
				pass

	with second.transaction() as conn:
		conn.execute("INSERT INTO tags (name) VALUES ('after')")
	assert tag_names(first) == ["after"]


def test_failed_block_is_rolled_back(archive: Archive) -> None:
	with pytest.raises(ValueError):
		with archive.transaction() as conn:
			conn.execute("INSERT INTO tags (name) VALUES ('doomed')")
			raise ValueError("abort")
	assert tag_names(archive) == []
	assert not archive.conn.in_transaction


def test_driver_errors_surface_as_storage_error(archive: Archive) -> None:
	with pytest.raises(StorageError):
		with archive.transaction() as conn:
			conn.execute("INSERT INTO tags (name) VALUES ('kept out')")
			conn.execute("INSERT INTO no_such_table VALUES (1)")
	assert tag_names(archive) == []


def test_nested_transactions_join_the_outer_one(archive: Archive) -> None:
	with pytest.raises(ValueError):
		with archive.transaction() as conn:
			with archive.transaction():
				conn.execute("INSERT INTO tags (name) VALUES ('inner')")
			conn.execute("INSERT INTO tags (name) VALUES ('outer')")
			raise ValueError("abort")
	assert tag_names(archive) == []

	with archive.transaction() as conn:
		with archive.transaction():
			conn.execute("INSERT INTO tags (name) VALUES ('inner')")
	assert tag_names(archive) == ["inner"]


def test_casefold_is_available_to_queries(archive: Archive) -> None:
	assert archive.conn.execute("SELECT casefold('ŁÓDŹ')").fetchone()[0] == "łódź"
