"""Conversation listing, search, detail, and message paging."""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog

from commgraph_analytics.communications import conversation_title, normalize_conversation_type
from commgraph_analytics.db import GraphDB
from commgraph_analytics.errors import ConversationNotFoundError
from commgraph_analytics.models import (
    ConversationDetail,
    ConversationListResponse,
    ConversationMessage,
    ConversationMessagesResponse,
    ConversationSummary,
    PaginationInfo,
    Participant,
)
from commgraph_analytics.pagination import (
    COMMUNICATION_BOUNDS,
    LIST_BOUNDS,
    total_pages,
    validate_pagination,
)
from commgraph_analytics.scalars import format_datetime
from commgraph_analytics.users import like_pattern

logger = structlog.get_logger(__name__)

# Summary columns over a row source aliased ``c``.  Counts are computed on
# read; the CTE alias loses the declared type, hence the column-name hint.
_SUMMARY_COLUMNS = """
    c.conversation_id,
    c.title,
    c.type,
    c.priority,
    c.last_message_timestamp AS "last_message_timestamp [timestamp]",
    (SELECT COUNT(*) FROM participates_in p
      WHERE p.conversation_id = c.conversation_id) AS participant_count,
    (SELECT COUNT(*) FROM messages m
      WHERE m.conversation_id = c.conversation_id) AS message_count
"""

_NORMALIZED_TYPE = "CASE WHEN c.type = 'direct' THEN 'direct' ELSE 'group' END"


def _to_summary(row: dict[str, Any]) -> ConversationSummary:
    return ConversationSummary(
        conversation_id=row["conversation_id"],
        title=conversation_title(row["title"]),
        type=normalize_conversation_type(row["type"]),
        priority=row["priority"],
        participant_count=row["participant_count"],
        message_count=row["message_count"],
        last_message_timestamp=row["last_message_timestamp"],
    )


def list_conversations(db: GraphDB, page: Any = None, limit: Any = None) -> ConversationListResponse:
    """Paginated listing of all conversations, most recently active first.

    The page is selected before participant and message counts are
    computed, so counting cost is bounded by the page size.
    """
    window = validate_pagination(page, limit, LIST_BOUNDS)

    total = db.execute(
        "SELECT COUNT(*) AS total FROM conversations",
        operation="count_conversations",
    )[0]["total"]

    rows = db.execute(
        f"""
        WITH c AS (
            SELECT * FROM conversations
            ORDER BY julianday(last_message_timestamp) DESC, conversation_id
            LIMIT :limit OFFSET :skip
        )
        SELECT {_SUMMARY_COLUMNS}
        FROM c
        ORDER BY julianday(c.last_message_timestamp) DESC, c.conversation_id
        """,
        {"limit": window.limit, "skip": window.skip},
        operation="list_conversations",
    )

    return ConversationListResponse(
        conversations=[_to_summary(row) for row in rows],
        pagination=PaginationInfo(
            page=window.page,
            limit=window.limit,
            total=total,
            total_pages=total_pages(total, window.limit),
        ),
    )


def search_conversations(
    db: GraphDB,
    query: str,
    conversation_type: str | None = None,
    priority: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: Any = None,
    limit: Any = None,
) -> tuple[list[ConversationSummary], int]:
    """Case-insensitive search over titles and participant names.

    *conversation_type* matches the normalised type, so ``group`` also
    finds channels.  The date window bounds the last message timestamp.
    Exact title matches rank first, then title prefixes, then any title
    match, then participant-only matches; ties go to the most recent.

    Returns
    -------
    tuple
        ``(results, total)`` where *total* ignores pagination.
    """
    query = (query or "").strip()
    if not query:
        return [], 0

    window = validate_pagination(page, limit, LIST_BOUNDS)
    conditions = [
        """
        (LOWER(COALESCE(c.title, '')) LIKE :pattern ESCAPE '\\'
         OR EXISTS (
             SELECT 1 FROM participates_in p
             JOIN users u ON u.user_id = p.user_id
             WHERE p.conversation_id = c.conversation_id
               AND LOWER(u.name) LIKE :pattern ESCAPE '\\'
         ))
        """
    ]
    params: dict[str, Any] = {"pattern": like_pattern(query), "needle": query.lower()}
    if conversation_type:
        conditions.append(f"{_NORMALIZED_TYPE} = :conversation_type")
        params["conversation_type"] = conversation_type
    if priority:
        conditions.append("c.priority = :priority")
        params["priority"] = priority
    if date_from is not None:
        conditions.append("julianday(c.last_message_timestamp) >= julianday(:date_from)")
        params["date_from"] = format_datetime(date_from)
    if date_to is not None:
        conditions.append("julianday(c.last_message_timestamp) <= julianday(:date_to)")
        params["date_to"] = format_datetime(date_to)
    where = " AND ".join(conditions)

    total = db.execute(
        f"SELECT COUNT(*) AS total FROM conversations c WHERE {where}",
        params,
        operation="count_search_conversations",
    )[0]["total"]
    if total == 0:
        return [], 0

    rows = db.execute(
        f"""
        SELECT {_SUMMARY_COLUMNS}
        FROM conversations c
        WHERE {where}
        ORDER BY
            CASE
                WHEN LOWER(c.title) = :needle THEN 1
                WHEN substr(LOWER(c.title), 1, length(:needle)) = :needle THEN 2
                WHEN LOWER(COALESCE(c.title, '')) LIKE :pattern ESCAPE '\\' THEN 3
                ELSE 4
            END,
            julianday(c.last_message_timestamp) DESC,
            c.conversation_id
        LIMIT :limit OFFSET :skip
        """,
        {**params, "limit": window.limit, "skip": window.skip},
        operation="search_conversations",
    )
    return [_to_summary(row) for row in rows], total


def get_conversation(db: GraphDB, conversation_id: str) -> ConversationDetail | None:
    """Return *conversation_id* with its participants, or None."""
    rows = db.execute(
        f"""
        SELECT {_SUMMARY_COLUMNS}
        FROM conversations c
        WHERE c.conversation_id = :conversation_id
        """,
        {"conversation_id": conversation_id},
        operation="get_conversation",
    )
    if not rows:
        return None

    participants = db.execute(
        """
        SELECT u.user_id, u.name, u.email, u.avatar_url AS avatar
        FROM participates_in p
        JOIN users u ON u.user_id = p.user_id
        WHERE p.conversation_id = :conversation_id
        ORDER BY u.name, u.user_id
        """,
        {"conversation_id": conversation_id},
        operation="get_conversation_participants",
    )
    summary = _to_summary(rows[0])
    return ConversationDetail(
        **summary.model_dump(),
        participants=[Participant(**row) for row in participants],
    )


def conversation_messages(
    db: GraphDB, conversation_id: str, page: Any = None, limit: Any = None
) -> ConversationMessagesResponse:
    """One page of a conversation's messages, oldest first.

    Raises
    ------
    ConversationNotFoundError
        If *conversation_id* does not exist.
    """
    window = validate_pagination(page, limit, COMMUNICATION_BOUNDS)

    exists = db.execute(
        "SELECT 1 AS found FROM conversations WHERE conversation_id = :conversation_id LIMIT 1",
        {"conversation_id": conversation_id},
        operation="check_conversation_exists",
    )
    if not exists:
        logger.info("conversation_not_found", conversation_id=conversation_id)
        raise ConversationNotFoundError(conversation_id)

    params = {"conversation_id": conversation_id}
    total = db.execute(
        "SELECT COUNT(*) AS total FROM messages WHERE conversation_id = :conversation_id",
        params,
        operation="count_conversation_messages",
    )[0]["total"]

    rows = db.execute(
        """
        SELECT m.message_id, m.content, m.sender_id, u.name AS sender_name, m.timestamp
        FROM messages m
        LEFT JOIN users u ON u.user_id = m.sender_id
        WHERE m.conversation_id = :conversation_id
        ORDER BY julianday(m.timestamp) ASC, m.message_id
        LIMIT :limit OFFSET :skip
        """,
        {**params, "limit": window.limit, "skip": window.skip},
        operation="conversation_messages",
    )
    return ConversationMessagesResponse(
        messages=[ConversationMessage(**row) for row in rows],
        pagination=PaginationInfo(
            page=window.page,
            limit=window.limit,
            total=total,
            total_pages=total_pages(total, window.limit),
        ),
    )
