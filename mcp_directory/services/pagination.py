from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

ELLIPSIS = "..."
DEFAULT_PAGE = 1
# Keeps the row offset well inside a Postgres bigint.
MAX_PAGE = 100_000
MAX_PAGE_SIZE = 100
# Pages shown on each side of the current page.
WINDOW_RADIUS = 1


@dataclass(slots=True)
class PageInfo:
    page: int
    page_size: int
    total_count: int
    total_pages: int
    pages: list[int | str] = field(default_factory=list)

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def disabled(self) -> bool:
        return self.total_pages <= 1

    def as_dict(self) -> dict[str, Any]:
        return {
            "page": self.page,
            "page_size": self.page_size,
            "total_count": self.total_count,
            "total_pages": self.total_pages,
            "pages": list(self.pages),
            "has_previous": self.has_previous,
            "has_next": self.has_next,
            "disabled": self.disabled,
        }


def parse_positive_int(raw: Any, default: int, maximum: int | None = None) -> int:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return default
    if isinstance(raw, int):
        parsed = raw
    else:
        try:
            parsed = int(str(raw).strip())
        except ValueError:
            return default
    if parsed <= 0 or (maximum is not None and parsed > maximum):
        return default
    return parsed


def parse_page_size(raw: Any, default: int) -> int:
    return min(parse_positive_int(raw, default), MAX_PAGE_SIZE)


def record_range(page: int, page_size: int) -> tuple[int, int]:
    start = (page - 1) * page_size
    return start, start + page_size - 1


def total_pages(total_count: int, page_size: int) -> int:
    if page_size <= 0 or total_count <= 0:
        return 0
    return math.ceil(total_count / page_size)


def page_numbers(current_page: int, last_page: int) -> list[int | str]:
    """Compressed page list: first, last, current ±1, gaps as one ellipsis."""
    pages: list[int | str] = [1]

    range_start = max(2, current_page - WINDOW_RADIUS)
    range_end = min(last_page - 1, current_page + WINDOW_RADIUS)

    if range_start > 2:
        pages.append(ELLIPSIS)

    pages.extend(range(range_start, range_end + 1))

    if range_end < last_page - 1 and last_page > 1:
        pages.append(ELLIPSIS)

    if last_page > 1 and last_page not in pages:
        pages.append(last_page)

    return pages


def build_page_info(*, page: int, page_size: int, total_count: int) -> PageInfo:
    pages_total = total_pages(total_count, page_size)
    return PageInfo(
        page=page,
        page_size=page_size,
        total_count=total_count,
        total_pages=pages_total,
        pages=page_numbers(page, pages_total),
    )
