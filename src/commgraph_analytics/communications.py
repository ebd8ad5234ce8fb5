"""Pairwise communication detail.

Given two users, find the conversations they share, aggregate who said how
much, and page through their interleaved message history.  All queries run
against the canonical (sorted) user pair; :func:`get_communication_data`
maps the result back to the caller's order at the end.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any

import structlog

from commgraph_analytics.db import GraphDB, read_or_default
from commgraph_analytics.filters import (
    MessageFilter,
    NoFilter,
    build_message_filter,
    date_range_of,
    render_sql,
)
from commgraph_analytics.models import (
    UNTITLED_CONVERSATION,
    CommunicationData,
    CommunicationStats,
    PaginationInfo,
    Participant,
    SharedConversation,
    TimelineMessage,
    TimelinePage,
)
from commgraph_analytics.pagination import (
    COMMUNICATION_BOUNDS,
    PageRequest,
    total_pages,
    validate_pagination,
)
from commgraph_analytics.pairs import UserPair, normalize_pair, restore_communication_order
from commgraph_analytics.users import get_user_summaries

logger = structlog.get_logger(__name__)

# Conversations both :user1 and :user2 participate in.
SHARED_CONVERSATIONS_CTE = """
    shared AS (
        SELECT p1.conversation_id
        FROM participates_in p1
        JOIN participates_in p2 ON p2.conversation_id = p1.conversation_id
        WHERE p1.user_id = :user1 AND p2.user_id = :user2
    )
"""

# Messages sent by either user inside a shared conversation.
PAIR_MESSAGE_CONDITION = "m.sender_id IN (:user1, :user2)"


def normalize_conversation_type(raw: Any) -> str:
    """Collapse stored conversation types to ``direct`` or ``group``."""
    return "direct" if raw == "direct" else "group"


def conversation_title(raw: Any) -> str:
    return raw or UNTITLED_CONVERSATION


def pair_params(pair: UserPair) -> dict[str, Any]:
    return {"user1": pair.first, "user2": pair.second}


def shared_conversations(
    db: GraphDB, pair: UserPair, cancel: threading.Event | None = None
) -> list[SharedConversation]:
    """Every conversation the pair shares, most recently active first.

    Message totals count all messages in the conversation; the per-user
    split counts only those sent by each user of the pair.
    """
    rows = db.execute(
        f"""
        WITH {SHARED_CONVERSATIONS_CTE}
        SELECT
            c.conversation_id,
            c.title,
            c.type,
            c.last_message_timestamp,
            COUNT(m.message_id) AS message_count,
            COALESCE(SUM(CASE WHEN m.sender_id = :user1 THEN 1 ELSE 0 END), 0)
                AS user1_message_count,
            COALESCE(SUM(CASE WHEN m.sender_id = :user2 THEN 1 ELSE 0 END), 0)
                AS user2_message_count
        FROM shared
        JOIN conversations c ON c.conversation_id = shared.conversation_id
        LEFT JOIN messages m ON m.conversation_id = c.conversation_id
        GROUP BY c.conversation_id
        ORDER BY julianday(c.last_message_timestamp) DESC, c.conversation_id
        """,
        pair_params(pair),
        operation="shared_conversations",
        cancel=cancel,
    )
    if not rows:
        return []

    participants = _participants_by_conversation(db, pair, cancel)
    return [
        SharedConversation(
            conversation_id=row["conversation_id"],
            title=conversation_title(row["title"]),
            type=normalize_conversation_type(row["type"]),
            message_count=row["message_count"],
            user1_message_count=row["user1_message_count"],
            user2_message_count=row["user2_message_count"],
            last_message_timestamp=row["last_message_timestamp"],
            participants=participants.get(row["conversation_id"], []),
        )
        for row in rows
    ]


def _participants_by_conversation(
    db: GraphDB, pair: UserPair, cancel: threading.Event | None
) -> dict[str, list[Participant]]:
    rows = db.execute(
        f"""
        WITH {SHARED_CONVERSATIONS_CTE}
        SELECT
            p.conversation_id,
            u.user_id,
            u.name,
            u.email,
            u.avatar_url AS avatar
        FROM shared
        JOIN participates_in p ON p.conversation_id = shared.conversation_id
        JOIN users u ON u.user_id = p.user_id
        ORDER BY p.conversation_id, u.name
        """,
        pair_params(pair),
        operation="shared_conversation_participants",
        cancel=cancel,
    )
    grouped: dict[str, list[Participant]] = {}
    for row in rows:
        conversation_id = row.pop("conversation_id")
        grouped.setdefault(conversation_id, []).append(Participant(**row))
    return grouped


def communication_stats(
    db: GraphDB,
    pair: UserPair,
    flt: MessageFilter = NoFilter(),
    cancel: threading.Event | None = None,
) -> CommunicationStats:
    """Totals across all shared conversations.

    Only the date window of *flt* applies; the shared-conversation count
    always covers every shared conversation.
    """
    window = date_range_of(flt)
    clause, params = render_sql(window if window is not None else NoFilter())
    # Stored timestamps may differ in precision, so first/last are picked by
    # julianday() rather than MIN/MAX over the text.
    rows = db.execute(
        f"""
        WITH {SHARED_CONVERSATIONS_CTE},
        pair_messages AS (
            SELECT m.message_id, m.sender_id, m.timestamp
            FROM shared
            JOIN messages m ON m.conversation_id = shared.conversation_id
            WHERE {PAIR_MESSAGE_CONDITION}{clause}
        )
        SELECT
            (SELECT COUNT(*) FROM shared) AS total_shared_conversations,
            (SELECT COUNT(*) FROM pair_messages) AS total_messages,
            (SELECT COUNT(*) FROM pair_messages WHERE sender_id = :user1) AS user1_messages,
            (SELECT COUNT(*) FROM pair_messages WHERE sender_id = :user2) AS user2_messages,
            (SELECT timestamp FROM pair_messages
              ORDER BY julianday(timestamp) ASC LIMIT 1) AS "first_interaction [timestamp]",
            (SELECT timestamp FROM pair_messages
              ORDER BY julianday(timestamp) DESC LIMIT 1) AS "last_interaction [timestamp]"
        """,
        {**pair_params(pair), **params},
        operation="communication_stats",
        cancel=cancel,
    )
    return CommunicationStats(**rows[0]) if rows else CommunicationStats()


def message_timeline(
    db: GraphDB,
    pair: UserPair,
    window: PageRequest,
    flt: MessageFilter = NoFilter(),
    cancel: threading.Event | None = None,
) -> TimelinePage:
    """One page of the pair's messages, newest first.

    The total is counted by its own query, independent of the page slice.
    """
    clause, params = render_sql(flt)
    base = f"""
        WITH {SHARED_CONVERSATIONS_CTE}
        SELECT {{columns}}
        FROM shared
        JOIN conversations c ON c.conversation_id = shared.conversation_id
        JOIN messages m ON m.conversation_id = c.conversation_id
        WHERE {PAIR_MESSAGE_CONDITION}{clause}
    """
    query_params = {**pair_params(pair), **params}

    total = db.execute(
        base.format(columns="COUNT(*) AS total"),
        query_params,
        operation="message_timeline_count",
        cancel=cancel,
    )[0]["total"]

    rows = db.execute(
        base.format(
            columns="""
            m.message_id,
            m.content,
            m.sender_id,
            m.timestamp,
            c.conversation_id,
            c.title AS conversation_title
            """
        )
        + " ORDER BY julianday(m.timestamp) DESC, m.message_id DESC LIMIT :limit OFFSET :skip",
        {**query_params, "limit": window.limit, "skip": window.skip},
        operation="message_timeline",
        cancel=cancel,
    )
    messages = [
        TimelineMessage(
            message_id=row["message_id"],
            content=row["content"],
            sender_id=row["sender_id"],
            timestamp=row["timestamp"] or "",
            conversation_id=row["conversation_id"],
            conversation_title=conversation_title(row["conversation_title"]),
        )
        for row in rows
    ]
    return TimelinePage(
        messages=messages,
        total_count=total,
        total_pages=total_pages(total, window.limit),
    )


def get_communication_data(
    db: GraphDB,
    user_id1: str,
    user_id2: str,
    page: Any = None,
    limit: Any = None,
    conversation_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    cancel: threading.Event | None = None,
) -> CommunicationData:
    """Detail view of how *user_id1* and *user_id2* have communicated.

    When either user is missing the result is empty (``user1``/``user2``
    may be None) and no query runs beyond the existence check.  Per-user
    fields follow the caller's argument order; the timeline is always
    newest first regardless of order.
    """
    window = validate_pagination(page, limit, COMMUNICATION_BOUNDS)
    pair = normalize_pair(user_id1, user_id2)

    users = get_user_summaries(db, [pair.first, pair.second])
    user1 = users.get(pair.first)
    user2 = users.get(pair.second)

    if user1 is None or user2 is None:
        logger.info(
            "communication_users_missing",
            user1_found=user1 is not None,
            user2_found=user2 is not None,
        )
        data = CommunicationData(
            user1=user1,
            user2=user2,
            pagination=PaginationInfo(page=window.page, limit=window.limit, total=0, total_pages=0),
        )
        return restore_communication_order(data, pair)

    flt = build_message_filter(conversation_id, date_from, date_to)
    conversations = read_or_default(
        "shared_conversations", [], shared_conversations, db, pair, cancel
    )
    stats = read_or_default(
        "communication_stats", CommunicationStats(), communication_stats, db, pair, flt, cancel
    )
    timeline = read_or_default(
        "message_timeline", TimelinePage(), message_timeline, db, pair, window, flt, cancel
    )

    data = CommunicationData(
        user1=user1,
        user2=user2,
        shared_conversations=conversations,
        communication_stats=stats,
        message_timeline=timeline.messages,
        pagination=PaginationInfo(
            page=window.page,
            limit=window.limit,
            total=timeline.total_count,
            total_pages=timeline.total_pages,
        ),
    )
    return restore_communication_order(data, pair)
