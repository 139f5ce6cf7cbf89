"""Tests for page clamping."""

import pytest

from jezarch.query import SearchResponse, compute_window


@pytest.mark.parametrize("requested,page_size,total,expected_page,expected_pages", [
	(1, 10, 0, 1, 1),
	(1, 10, 10, 1, 1),
	(2, 10, 11, 2, 2),
	(50, 10, 30, 3, 3),
	(3, 7, 20, 3, 3),
	(9, 1, 5, 5, 5),
])
def test_compute_window(requested, page_size, total, expected_page, expected_pages) -> None:
	window = compute_window(requested, page_size, total)
	assert window.page == expected_page
	assert window.total_pages == expected_pages


def test_window_offset() -> None:
	window = compute_window(3, 10, 25)
	assert (window.offset, window.limit) == (20, 10)


def test_page_size_must_be_positive() -> None:
	with pytest.raises(ValueError):
		compute_window(1, 0, 10)


def test_response_uses_wire_names() -> None:
	response = SearchResponse.from_window([{"id": 1}], compute_window(1, 5, 1))
	assert response.to_dict() == {"data": [{"id": 1}], "page": 1, "pageSize": 5, "totalSize": 1, "totalPages": 1}
