"""Caller-side validation of path and query parameters.

These checks run before the engine is invoked and raise
:class:`~commgraph_analytics.errors.InvalidParameterError` with a message
naming the offending field.
"""

from __future__ import annotations

import re
from datetime import datetime, time, timezone

from commgraph_analytics.errors import InvalidParameterError

USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}:\d{2}(\.\d{3})?Z?)?$")
GRANULARITIES = ("daily", "weekly", "monthly")
CONVERSATION_TYPES = ("group", "direct")
MAX_SEARCH_QUERY_LENGTH = 200


def validate_user_id(value: str | None, field: str = "userId") -> str:
    if not value:
        raise InvalidParameterError(field, "Both user IDs are required")
    if not USER_ID_PATTERN.match(value):
        raise InvalidParameterError(
            field,
            f"Invalid {field} field format. Only alphanumeric characters, "
            "hyphens, and underscores are allowed.",
        )
    return value


def parse_iso_date(value: str | None, field: str, end_of_day: bool = False) -> datetime | None:
    """Parse an ISO-8601 date or datetime into an aware UTC datetime.

    A bare date used as an upper bound (*end_of_day*) covers the whole day.
    """
    if not value:
        return None
    message = f"Invalid {field} format. Expected ISO 8601 format."
    if not ISO_DATE_PATTERN.match(value):
        raise InvalidParameterError(field, message)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidParameterError(field, message) from exc

    if "T" not in value and end_of_day:
        parsed = datetime.combine(parsed.date(), time.max)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validate_granularity(value: str | None) -> str:
    granularity = value or "daily"
    if granularity not in GRANULARITIES:
        raise InvalidParameterError(
            "granularity", "Invalid granularity. Must be one of: daily, weekly, monthly"
        )
    return granularity


def validate_search_query(value: str | None) -> str:
    query = (value or "").strip()
    if not query:
        raise InvalidParameterError("query", "Query parameter is required")
    if len(query) > MAX_SEARCH_QUERY_LENGTH:
        raise InvalidParameterError(
            "query", f"Query parameter must not exceed {MAX_SEARCH_QUERY_LENGTH} characters"
        )
    return query


def validate_conversation_type(value: str | None) -> str | None:
    if not value:
        return None
    if value not in CONVERSATION_TYPES:
        raise InvalidParameterError(
            "type", f"Invalid type parameter. Must be one of: {', '.join(CONVERSATION_TYPES)}"
        )
    return value


def validate_date_range(date_from: datetime | None, date_to: datetime | None) -> None:
    """Reject a window whose upper bound precedes its lower bound."""
    if date_from is not None and date_to is not None and date_to < date_from:
        raise InvalidParameterError(
            "dateTo", "Invalid date range: dateTo must not be before dateFrom"
        )
