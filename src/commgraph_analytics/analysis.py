"""Charting analytics for a user pair.

Each function takes a :class:`GraphDB` and a canonical :class:`UserPair` and
returns structured results suitable for JSON serialisation.  The five
sub-queries behind :func:`get_aggregated_communication_data` are independent
reads and run concurrently.
"""

from __future__ import annotations

import statistics
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from enum import Enum

import structlog

from commgraph_analytics.communications import (
    PAIR_MESSAGE_CONDITION,
    SHARED_CONVERSATIONS_CTE,
    pair_params,
)
from commgraph_analytics.db import GraphDB, read_or_default
from commgraph_analytics.filters import DateRangeFilter, MessageFilter, NoFilter, render_sql
from commgraph_analytics.models import (
    AggregatedCommunicationData,
    ConversationTypeShare,
    FrequencyPoint,
    Granularity,
    HeatmapPoint,
    MessageDistribution,
    ResponseTimeAnalysis,
    ResponseTimeBucket,
    TalkListenRatio,
)
from commgraph_analytics.pairs import UserPair, normalize_pair, restore_analytics_order

logger = structlog.get_logger(__name__)

HOUR = 3600
DAY = 24 * HOUR

# strftime expression producing the ISO start of each bucket (UTC).
PERIOD_EXPRESSIONS: dict[str, str] = {
    "daily": "strftime('%Y-%m-%dT00:00:00Z', m.timestamp)",
    # 'weekday 0' moves forward to Sunday; six days back is that week's Monday.
    "weekly": "strftime('%Y-%m-%dT00:00:00Z', m.timestamp, 'weekday 0', '-6 days')",
    "monthly": "strftime('%Y-%m-01T00:00:00Z', m.timestamp)",
}

NO_MESSAGES_LABEL = "No messages"


class ResponsePairing(str, Enum):
    """How messages are paired into response latencies.

    ``ALL_PAIRS`` counts every later cross-sender message in the same
    conversation within 24 hours, so one message followed by several replies
    contributes several latencies.  ``NEAREST_REPLY`` only pairs a message
    with the one immediately before it in its conversation.
    """

    ALL_PAIRS = "all_pairs"
    NEAREST_REPLY = "nearest_reply"


def _pair_messages_sql(flt: MessageFilter) -> tuple[str, dict]:
    clause, params = render_sql(flt)
    sql = f"""
        WITH {SHARED_CONVERSATIONS_CTE}
        SELECT {{columns}}
        FROM shared
        JOIN messages m ON m.conversation_id = shared.conversation_id
        WHERE {PAIR_MESSAGE_CONDITION}{clause}
    """
    return sql, params


def message_frequency(
    db: GraphDB,
    pair: UserPair,
    flt: MessageFilter = NoFilter(),
    granularity: Granularity = "daily",
    cancel: threading.Event | None = None,
) -> list[FrequencyPoint]:
    """Per-period message counts, oldest period first.

    Parameters
    ----------
    granularity:
        One of ``"daily"``, ``"weekly"``, or ``"monthly"``.
    """
    period = PERIOD_EXPRESSIONS.get(granularity, PERIOD_EXPRESSIONS["daily"])
    sql, params = _pair_messages_sql(flt)
    rows = db.execute(
        sql.format(
            columns=f"""
            {period} AS period,
            COUNT(*) AS total_messages,
            SUM(CASE WHEN m.sender_id = :user1 THEN 1 ELSE 0 END) AS user1_messages,
            SUM(CASE WHEN m.sender_id = :user2 THEN 1 ELSE 0 END) AS user2_messages
            """
        )
        + " GROUP BY period ORDER BY period ASC",
        {**pair_params(pair), **params},
        operation="message_frequency",
        cancel=cancel,
    )
    return [FrequencyPoint(**row) for row in rows]


def response_latencies(
    db: GraphDB,
    pair: UserPair,
    flt: MessageFilter = NoFilter(),
    pairing: ResponsePairing = ResponsePairing.ALL_PAIRS,
    cancel: threading.Event | None = None,
) -> list[float]:
    """Latencies in seconds between cross-sender messages, under 24 hours.

    The date window of *flt* applies to the earlier message of each pair.
    """
    clause, params = render_sql(flt, alias="m1")
    if pairing is ResponsePairing.NEAREST_REPLY:
        sql = f"""
            WITH {SHARED_CONVERSATIONS_CTE},
            ordered AS (
                SELECT
                    m.sender_id,
                    m.timestamp,
                    LAG(m.sender_id) OVER w AS prev_sender_id,
                    LAG(m.timestamp) OVER w AS prev_timestamp
                FROM shared
                JOIN messages m ON m.conversation_id = shared.conversation_id
                WHERE {PAIR_MESSAGE_CONDITION}
                WINDOW w AS (
                    PARTITION BY m.conversation_id
                    ORDER BY julianday(m.timestamp), m.message_id
                )
            ),
            m1 AS (
                SELECT
                    ordered.prev_timestamp AS timestamp,
                    ROUND((julianday(ordered.timestamp) - julianday(ordered.prev_timestamp)) * 86400.0, 3)
                        AS latency
                FROM ordered
                WHERE prev_sender_id IS NOT NULL AND prev_sender_id <> sender_id
            )
            SELECT m1.latency FROM m1
            WHERE m1.latency > 0 AND m1.latency < {DAY}{clause}
        """
    else:
        sql = f"""
            WITH {SHARED_CONVERSATIONS_CTE}
            SELECT ROUND((julianday(m2.timestamp) - julianday(m1.timestamp)) * 86400.0, 3) AS latency
            FROM shared
            JOIN messages m1 ON m1.conversation_id = shared.conversation_id
            JOIN messages m2 ON m2.conversation_id = m1.conversation_id
            WHERE m1.sender_id IN (:user1, :user2)
              AND m2.sender_id IN (:user1, :user2)
              AND m1.sender_id <> m2.sender_id
              AND julianday(m2.timestamp) > julianday(m1.timestamp)
              AND ROUND((julianday(m2.timestamp) - julianday(m1.timestamp)) * 86400.0, 3) < {DAY}
              {clause}
        """
    rows = db.execute(
        sql,
        {**pair_params(pair), **params},
        operation="response_latencies",
        cancel=cancel,
    )
    return [row["latency"] for row in rows]


def summarize_latencies(latencies: list[float]) -> ResponseTimeAnalysis:
    """Mean, median, and the fixed three-bucket histogram."""
    under_1h = sum(1 for value in latencies if value < HOUR)
    under_6h = sum(1 for value in latencies if HOUR <= value < 6 * HOUR)
    under_24h = sum(1 for value in latencies if 6 * HOUR <= value < DAY)
    return ResponseTimeAnalysis(
        avg_response_time=statistics.fmean(latencies) if latencies else 0.0,
        median_response_time=statistics.median(latencies) if latencies else 0.0,
        total_responses=len(latencies),
        distribution=[
            ResponseTimeBucket(range="<1h", count=under_1h),
            ResponseTimeBucket(range="1-6h", count=under_6h),
            ResponseTimeBucket(range="6-24h", count=under_24h),
        ],
    )


def response_time_analysis(
    db: GraphDB,
    pair: UserPair,
    flt: MessageFilter = NoFilter(),
    pairing: ResponsePairing = ResponsePairing.ALL_PAIRS,
    cancel: threading.Event | None = None,
) -> ResponseTimeAnalysis:
    return summarize_latencies(response_latencies(db, pair, flt, pairing, cancel))


def activity_heatmap(
    db: GraphDB,
    pair: UserPair,
    flt: MessageFilter = NoFilter(),
    cancel: threading.Event | None = None,
) -> list[HeatmapPoint]:
    """Message counts per (UTC hour, ISO weekday); empty cells are omitted."""
    sql, params = _pair_messages_sql(flt)
    # %w is 0 for Sunday; shift to ISO numbering (Monday = 1 ... Sunday = 7).
    rows = db.execute(
        sql.format(
            columns="""
            CAST(strftime('%H', m.timestamp) AS INTEGER) AS hour,
            ((CAST(strftime('%w', m.timestamp) AS INTEGER) + 6) % 7) + 1 AS day_of_week,
            COUNT(*) AS message_count
            """
        )
        + " GROUP BY day_of_week, hour ORDER BY day_of_week, hour",
        {**pair_params(pair), **params},
        operation="activity_heatmap",
        cancel=cancel,
    )
    return [HeatmapPoint(**row) for row in rows]


def talk_listen_ratio(user1_messages: int, user2_messages: int) -> TalkListenRatio:
    """Share of messages per user; 50/50 when neither has spoken.

    The second share is the remainder of the first, so the two always sum
    to exactly 100.
    """
    total = user1_messages + user2_messages
    if total == 0:
        return TalkListenRatio(user1_messages=0, user2_messages=0)
    user1_percentage = user1_messages / total * 100
    return TalkListenRatio(
        user1_messages=user1_messages,
        user2_messages=user2_messages,
        user1_percentage=user1_percentage,
        user2_percentage=100 - user1_percentage,
    )


def talk_to_listen(
    db: GraphDB,
    pair: UserPair,
    flt: MessageFilter = NoFilter(),
    cancel: threading.Event | None = None,
) -> TalkListenRatio:
    sql, params = _pair_messages_sql(flt)
    rows = db.execute(
        sql.format(
            columns="""
            COALESCE(SUM(CASE WHEN m.sender_id = :user1 THEN 1 ELSE 0 END), 0) AS user1_messages,
            COALESCE(SUM(CASE WHEN m.sender_id = :user2 THEN 1 ELSE 0 END), 0) AS user2_messages
            """
        ),
        {**pair_params(pair), **params},
        operation="talk_to_listen",
        cancel=cancel,
    )
    row = rows[0] if rows else {"user1_messages": 0, "user2_messages": 0}
    return talk_listen_ratio(row["user1_messages"], row["user2_messages"])


def conversation_types(
    db: GraphDB, pair: UserPair, cancel: threading.Event | None = None
) -> list[ConversationTypeShare]:
    """Shared conversations counted by normalised type, largest share first."""
    rows = db.execute(
        f"""
        WITH {SHARED_CONVERSATIONS_CTE}
        SELECT
            CASE WHEN c.type = 'direct' THEN 'direct' ELSE 'group' END AS type,
            COUNT(DISTINCT c.conversation_id) AS type_count
        FROM shared
        JOIN conversations c ON c.conversation_id = shared.conversation_id
        GROUP BY 1
        ORDER BY type_count DESC, type
        """,
        pair_params(pair),
        operation="conversation_types",
        cancel=cancel,
    )
    total = sum(row["type_count"] for row in rows)
    shares = []
    allotted = 0.0
    for index, row in enumerate(rows):
        if index == len(rows) - 1:
            # Last share takes the remainder so the list sums to 100.
            percentage = 100 - allotted
        else:
            percentage = row["type_count"] * 100.0 / total
            allotted += percentage
        shares.append(
            ConversationTypeShare(type=row["type"], count=row["type_count"], percentage=percentage)
        )
    return shares


def _round_half_up(value: float) -> int:
    return int(value + 0.5)


def message_distribution(user1_count: int, user2_count: int) -> MessageDistribution:
    """Whole-number message split whose two percentages always sum to 100.

    Independent rounding can land on 99 or 101; the larger share absorbs
    the difference.  A zero total yields the "no messages" sentinel.
    """
    total = user1_count + user2_count
    if total <= 0:
        return MessageDistribution(empty=True, label=NO_MESSAGES_LABEL)

    if user1_count == 0:
        first, second = 0, 100
    elif user2_count == 0:
        first, second = 100, 0
    else:
        first = _round_half_up(user1_count / total * 100)
        second = _round_half_up(user2_count / total * 100)
        drift = 100 - (first + second)
        if drift:
            if first >= second:
                first += drift
            else:
                second += drift

    return MessageDistribution(
        user1_percentage=first,
        user2_percentage=second,
        label=f"{first}% / {second}%",
    )


def get_aggregated_communication_data(
    db: GraphDB,
    user_id1: str,
    user_id2: str,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    granularity: Granularity = "daily",
    pairing: ResponsePairing = ResponsePairing.ALL_PAIRS,
    cancel: threading.Event | None = None,
    timeout: float | None = None,
) -> AggregatedCommunicationData:
    """Run the five analytics sub-queries concurrently and assemble them.

    A cancelled sub-query contributes its empty default instead of failing
    the whole request.  When *timeout* is given, outstanding sub-queries
    are cancelled once it elapses.
    """
    pair = normalize_pair(user_id1, user_id2)
    flt: MessageFilter = NoFilter()
    if date_from is not None or date_to is not None:
        flt = DateRangeFilter(date_from, date_to)

    cancel = cancel or threading.Event()
    timer: threading.Timer | None = None
    if timeout is not None:
        timer = threading.Timer(timeout, cancel.set)
        timer.daemon = True
        timer.start()

    try:
        with ThreadPoolExecutor(max_workers=5, thread_name_prefix="analytics") as pool:
            frequency = pool.submit(
                read_or_default, "message_frequency", [],
                message_frequency, db, pair, flt, granularity, cancel,
            )
            response_time = pool.submit(
                read_or_default, "response_time", summarize_latencies([]),
                response_time_analysis, db, pair, flt, pairing, cancel,
            )
            heatmap = pool.submit(
                read_or_default, "activity_heatmap", [],
                activity_heatmap, db, pair, flt, cancel,
            )
            ratio = pool.submit(
                read_or_default, "talk_to_listen", TalkListenRatio(),
                talk_to_listen, db, pair, flt, cancel,
            )
            types = pool.submit(
                read_or_default, "conversation_types", [],
                conversation_types, db, pair, cancel,
            )
            data = AggregatedCommunicationData(
                frequency=frequency.result(),
                response_time=response_time.result(),
                activity_heatmap=heatmap.result(),
                talk_to_listen_ratio=ratio.result(),
                conversation_types=types.result(),
            )
    finally:
        if timer is not None:
            timer.cancel()

    return restore_analytics_order(data, pair)
