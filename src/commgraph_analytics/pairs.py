"""Canonical ordering of user pairs.

Pair statistics are always computed with the lexicographically smaller user
ID as "user 1".  When the caller asked in the other order, the per-user
fields are swapped back for presentation.  Message timelines are ordered by
time, not by user, and are never touched.
"""

from __future__ import annotations

from dataclasses import dataclass

from commgraph_analytics.models import (
    AggregatedCommunicationData,
    CommunicationData,
)


@dataclass(frozen=True)
class UserPair:
    """An unordered user pair in canonical order."""

    first: str
    second: str
    swapped: bool


def normalize_pair(user_id1: str, user_id2: str) -> UserPair:
    """Sort two user IDs; ``swapped`` is True when *user_id1* is not first."""
    first, second = sorted((user_id1, user_id2))
    return UserPair(first=first, second=second, swapped=user_id1 != first)


def restore_communication_order(data: CommunicationData, pair: UserPair) -> CommunicationData:
    """Return *data* re-mapped to the caller's user order."""
    if not pair.swapped:
        return data

    stats = data.communication_stats
    return data.model_copy(
        update={
            "user1": data.user2,
            "user2": data.user1,
            "communication_stats": stats.model_copy(
                update={
                    "user1_messages": stats.user2_messages,
                    "user2_messages": stats.user1_messages,
                }
            ),
            "shared_conversations": [
                conv.model_copy(
                    update={
                        "user1_message_count": conv.user2_message_count,
                        "user2_message_count": conv.user1_message_count,
                    }
                )
                for conv in data.shared_conversations
            ],
        }
    )


def restore_analytics_order(
    data: AggregatedCommunicationData, pair: UserPair
) -> AggregatedCommunicationData:
    """Swap per-user analytics fields back to the caller's order."""
    if not pair.swapped:
        return data

    ratio = data.talk_to_listen_ratio
    return data.model_copy(
        update={
            "frequency": [
                point.model_copy(
                    update={
                        "user1_messages": point.user2_messages,
                        "user2_messages": point.user1_messages,
                    }
                )
                for point in data.frequency
            ],
            "talk_to_listen_ratio": ratio.model_copy(
                update={
                    "user1_messages": ratio.user2_messages,
                    "user2_messages": ratio.user1_messages,
                    "user1_percentage": ratio.user2_percentage,
                    "user2_percentage": ratio.user1_percentage,
                }
            ),
        }
    )
