"""Pagination parameter validation.

Page and limit values arrive from query strings, so they may be ints,
numeric strings, garbage, or missing.  :func:`validate_pagination` never
rejects input.  Bad or out-of-range values fall back to defaults and
oversized limits are capped, so the result is always safe to hand to a query.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

# Leading integer, the way a query-string parser reads "3.5" or "12abc".
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass(frozen=True)
class PaginationBounds:
    """Per-endpoint limit bounds."""

    default_limit: int
    max_limit: int
    min_limit: int = 1
    max_page: int = 10000
    name: str = "default"


@dataclass(frozen=True)
class PageRequest:
    """Validated pagination window."""

    page: int
    limit: int
    skip: int


LIST_BOUNDS = PaginationBounds(default_limit=20, max_limit=100, name="list")
SEARCH_BOUNDS = PaginationBounds(default_limit=10, max_limit=50, name="search")
CONTACTS_BOUNDS = PaginationBounds(default_limit=20, max_limit=1000, name="contacts")
COMMUNICATION_BOUNDS = PaginationBounds(default_limit=50, max_limit=100, name="communication")


def parse_int(raw: Any) -> int | None:
    """Parse *raw* as an integer, or return None.

    Strings are read up to the first non-digit (``"3.5"`` -> 3).  Floats are
    accepted only when integral; booleans are never numbers here.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if math.isfinite(raw) and raw.is_integer():
            return int(raw)
        return None
    if isinstance(raw, str):
        match = _LEADING_INT.match(raw)
        return int(match.group(1)) if match else None
    return None


def validate_pagination(page_raw: Any, limit_raw: Any, bounds: PaginationBounds) -> PageRequest:
    """Turn raw page/limit inputs into a bounded :class:`PageRequest`."""
    page = parse_int(page_raw)
    if page is None or page < 1 or page > bounds.max_page:
        if page_raw not in (None, ""):
            logger.debug("pagination_page_defaulted", bounds=bounds.name, raw=str(page_raw))
        page = 1

    limit = parse_int(limit_raw)
    if limit is None or limit < bounds.min_limit:
        if limit_raw not in (None, ""):
            logger.debug("pagination_limit_defaulted", bounds=bounds.name, raw=str(limit_raw))
        limit = bounds.default_limit
    elif limit > bounds.max_limit:
        logger.debug(
            "pagination_limit_capped",
            bounds=bounds.name,
            requested=limit,
            max_limit=bounds.max_limit,
        )
        limit = bounds.max_limit

    return PageRequest(page=page, limit=limit, skip=(page - 1) * limit)


def total_pages(total: int, limit: int) -> int:
    """Number of pages needed for *total* items at *limit* per page."""
    if total <= 0:
        return 0
    return math.ceil(total / limit)
