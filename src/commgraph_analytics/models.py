"""Pydantic models for engine results and API responses.

Attributes are snake_case in Python and serialise with camelCase aliases
(``user1_message_count`` -> ``user1MessageCount``).
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

UNTITLED_CONVERSATION = "Untitled Conversation"

ConversationType = Literal["direct", "group"]
Granularity = Literal["daily", "weekly", "monthly"]


class CamelModel(BaseModel):
    """Base model emitting camelCase JSON keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserSummary(CamelModel):
    """User with derived activity counts."""

    user_id: str
    name: str
    email: str | None = None
    avatar: str | None = None
    conversation_count: int = 0
    message_count: int = 0
    last_active_timestamp: str | None = None


class User(CamelModel):
    """Full user profile."""

    user_id: str
    name: str
    email: str | None = None
    username: str | None = None
    avatar_url: str | None = None
    status: str | None = None
    role: str | None = None
    bio: str | None = None
    department: str | None = None
    location: str | None = None
    last_seen: str | None = None


class ContactStats(CamelModel):
    """How a contact has communicated with the queried user."""

    shared_conversation_count: int = 0
    total_message_count: int = 0
    first_interaction: str | None = None
    last_interaction: str | None = None


class UserContact(User):
    """A user sharing at least one conversation with the queried user."""

    communication_stats: ContactStats


class Participant(CamelModel):
    """Conversation participant as listed on a shared conversation."""

    user_id: str
    name: str
    email: str | None = None
    avatar: str | None = None


# ---------------------------------------------------------------------------
# Communication detail
# ---------------------------------------------------------------------------


class SharedConversation(CamelModel):
    """A conversation both users participate in."""

    conversation_id: str
    title: str = UNTITLED_CONVERSATION
    type: ConversationType
    message_count: int = 0
    user1_message_count: int = 0
    user2_message_count: int = 0
    last_message_timestamp: str | None = None
    participants: list[Participant] = Field(default_factory=list)


class CommunicationStats(CamelModel):
    """Totals across all shared conversations."""

    total_shared_conversations: int = 0
    total_messages: int = 0
    user1_messages: int = 0
    user2_messages: int = 0
    first_interaction: str | None = None
    last_interaction: str | None = None


class TimelineMessage(CamelModel):
    """One message of the interleaved timeline."""

    message_id: str
    content: str | None = None
    sender_id: str
    timestamp: str
    conversation_id: str
    conversation_title: str = UNTITLED_CONVERSATION


class PaginationInfo(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class TimelinePage(CamelModel):
    """A page of the message timeline plus its independent total."""

    messages: list[TimelineMessage] = Field(default_factory=list)
    total_count: int = 0
    total_pages: int = 0


class CommunicationData(CamelModel):
    """Detail view of how two users have communicated."""

    user1: UserSummary | None = None
    user2: UserSummary | None = None
    shared_conversations: list[SharedConversation] = Field(default_factory=list)
    communication_stats: CommunicationStats = Field(default_factory=CommunicationStats)
    message_timeline: list[TimelineMessage] = Field(default_factory=list)
    pagination: PaginationInfo


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------


class FrequencyPoint(CamelModel):
    """Message counts for one time bucket."""

    period: str = Field(description="ISO-8601 UTC start of the bucket")
    total_messages: int = 0
    user1_messages: int = 0
    user2_messages: int = 0


class ResponseTimeBucket(CamelModel):
    range: Literal["<1h", "1-6h", "6-24h"]
    count: int = 0


class ResponseTimeAnalysis(CamelModel):
    """Response latency summary, in seconds."""

    avg_response_time: float = Field(0.0, description="Mean response latency in seconds")
    median_response_time: float = Field(0.0, description="Median response latency in seconds")
    total_responses: int = 0
    distribution: list[ResponseTimeBucket] = Field(default_factory=list)


class HeatmapPoint(CamelModel):
    """Message count for one (hour, ISO weekday) cell."""

    hour: int = Field(ge=0, le=23)
    day_of_week: int = Field(ge=1, le=7, description="1 = Monday ... 7 = Sunday")
    message_count: int


class TalkListenRatio(CamelModel):
    user1_messages: int = 0
    user2_messages: int = 0
    user1_percentage: float = 50.0
    user2_percentage: float = 50.0


class ConversationTypeShare(CamelModel):
    type: ConversationType
    count: int
    percentage: float


class AggregatedCommunicationData(CamelModel):
    """Charting analytics for a user pair."""

    frequency: list[FrequencyPoint] = Field(default_factory=list)
    response_time: ResponseTimeAnalysis = Field(default_factory=ResponseTimeAnalysis)
    activity_heatmap: list[HeatmapPoint] = Field(default_factory=list)
    talk_to_listen_ratio: TalkListenRatio = Field(default_factory=TalkListenRatio)
    conversation_types: list[ConversationTypeShare] = Field(default_factory=list)


class MessageDistribution(CamelModel):
    """Rounded message split between two users.

    When there are no messages ``empty`` is set, both percentages are None
    and ``label`` holds the sentinel text.
    """

    user1_percentage: int | None = None
    user2_percentage: int | None = None
    empty: bool = False
    label: str


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------


class ConversationSummary(CamelModel):
    conversation_id: str
    title: str = UNTITLED_CONVERSATION
    type: ConversationType
    priority: str | None = None
    participant_count: int = 0
    message_count: int = 0
    last_message_timestamp: str | None = None


class UserListResponse(CamelModel):
    users: list[UserSummary]
    pagination: PaginationInfo


class ConversationListResponse(CamelModel):
    conversations: list[ConversationSummary]
    pagination: PaginationInfo


class ConversationSearchResponse(CamelModel):
    results: list[ConversationSummary]
    total: int
    query: str = ""


class ConversationDetail(ConversationSummary):
    """A single conversation with its participants, ordered by name."""

    participants: list[Participant] = Field(default_factory=list)


class ConversationMessage(CamelModel):
    message_id: str
    content: str | None = None
    sender_id: str
    sender_name: str | None = None
    timestamp: str


class ConversationMessagesResponse(CamelModel):
    """A page of one conversation's messages, oldest first."""

    messages: list[ConversationMessage]
    pagination: PaginationInfo


class UserSearchResponse(CamelModel):
    results: list[User]
    total: int
    query: str = ""


class ContactListResponse(CamelModel):
    results: list[UserContact]
    total: int
    page: int
    limit: int
    total_pages: int


class HealthResponse(CamelModel):
    """Health-check response."""

    status: str = "ok"
    version: str
    database: str = "unknown"
