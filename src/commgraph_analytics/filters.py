"""Structured message filters and their SQL rendering.

Optional request filters are modelled as small tagged values rather than
string fragments, so the filter logic can be tested on its own and only
:func:`render_sql` knows about the query language.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Union

from commgraph_analytics.scalars import format_datetime


@dataclass(frozen=True)
class NoFilter:
    """Matches every message."""


@dataclass(frozen=True)
class ConversationFilter:
    """Restrict to a single conversation."""

    conversation_id: str


@dataclass(frozen=True)
class DateRangeFilter:
    """Inclusive timestamp window; either end may be open."""

    date_from: datetime | None = None
    date_to: datetime | None = None


@dataclass(frozen=True)
class Combined:
    """All of the contained filters must match."""

    filters: tuple[MessageFilter, ...]


MessageFilter = Union[NoFilter, ConversationFilter, DateRangeFilter, Combined]


def build_message_filter(
    conversation_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> MessageFilter:
    """Compose a filter from optional request parameters."""
    parts: list[MessageFilter] = []
    if conversation_id:
        parts.append(ConversationFilter(conversation_id))
    if date_from is not None or date_to is not None:
        parts.append(DateRangeFilter(date_from, date_to))

    if not parts:
        return NoFilter()
    if len(parts) == 1:
        return parts[0]
    return Combined(tuple(parts))


def date_range_of(flt: MessageFilter) -> DateRangeFilter | None:
    """Return the date window contained in *flt*, if any."""
    if isinstance(flt, DateRangeFilter):
        return flt
    if isinstance(flt, Combined):
        for part in flt.filters:
            found = date_range_of(part)
            if found is not None:
                return found
    return None


def render_sql(flt: MessageFilter, alias: str = "m") -> tuple[str, dict[str, Any]]:
    """Render *flt* as a SQL predicate over the messages table *alias*.

    Returns ``(clause, params)``; the clause is empty or starts with
    ``" AND "`` so it can be appended to an existing WHERE/ON condition.
    Parameter names are suffixed with the alias so the same filter can be
    rendered twice into one statement.
    """
    conditions: list[str] = []
    params: dict[str, Any] = {}
    _collect(flt, alias, conditions, params)
    if not conditions:
        return "", params
    return " AND " + " AND ".join(conditions), params


def _collect(flt: MessageFilter, alias: str, conditions: list[str], params: dict[str, Any]) -> None:
    if isinstance(flt, NoFilter):
        return
    if isinstance(flt, ConversationFilter):
        conditions.append(f"{alias}.conversation_id = :conversation_id_{alias}")
        params[f"conversation_id_{alias}"] = flt.conversation_id
    elif isinstance(flt, DateRangeFilter):
        if flt.date_from is not None:
            conditions.append(f"julianday({alias}.timestamp) >= julianday(:date_from_{alias})")
            params[f"date_from_{alias}"] = format_datetime(flt.date_from)
        if flt.date_to is not None:
            conditions.append(f"julianday({alias}.timestamp) <= julianday(:date_to_{alias})")
            params[f"date_to_{alias}"] = format_datetime(flt.date_to)
    elif isinstance(flt, Combined):
        for part in flt.filters:
            _collect(part, alias, conditions, params)
    else:
        raise TypeError(f"Unsupported filter: {flt!r}")
