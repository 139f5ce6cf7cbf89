import math
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class PageWindow:
	"""The page actually served after clamping."""
	page: int
	page_size: int
	total_size: int
	total_pages: int
	
	@property
	def offset(self) -> int:
		return (self.page - 1) * self.page_size
	
	@property
	def limit(self) -> int:
		return self.page_size


def compute_window(requested_page: int, page_size: int, total_size: int) -> PageWindow:
	"""
	Clamp the requested page into [1, total_pages].
	Out-of-range pages serve the nearest valid page instead of an empty result.
	"""
	if page_size < 1:
		raise ValueError("page_size must be positive")
	total_pages = max(1, math.ceil(total_size / page_size))
	page = min(max(1, requested_page), total_pages)
	return PageWindow(page=page, page_size=page_size, total_size=total_size, total_pages=total_pages)


def unpaged_window(total_size: int) -> PageWindow:
	"""Single page holding every row."""
	return PageWindow(page=1, page_size=max(1, total_size), total_size=total_size, total_pages=1)


@dataclass
class SearchResponse:
	"""Uniform envelope returned by every search endpoint."""
	data: List[Dict[str, Any]] = field(default_factory=list)
	page: int = 1
	page_size: int = 10
	total_size: int = 0
	total_pages: int = 1
	
	@classmethod
	def from_window(cls, rows: List[Dict[str, Any]], window: PageWindow) -> 'SearchResponse':
		return cls(
			data=rows,
			page=window.page,
			page_size=window.page_size,
			total_size=window.total_size,
			total_pages=window.total_pages
		)
	
	def to_dict(self) -> dict:
		return {
			"data": self.data,
			"page": self.page,
			"pageSize": self.page_size,
			"totalSize": self.total_size,
			"totalPages": self.total_pages
		}
