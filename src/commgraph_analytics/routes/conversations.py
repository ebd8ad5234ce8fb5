"""Conversation routes -- listing, search, detail, and messages."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from commgraph_analytics import conversations
from commgraph_analytics.db import GraphDB
from commgraph_analytics.dependencies import get_db
from commgraph_analytics.errors import (
    ConversationNotFoundError,
    InvalidParameterError,
    QueryError,
)
from commgraph_analytics.models import (
    ConversationDetail,
    ConversationListResponse,
    ConversationMessagesResponse,
    ConversationSearchResponse,
)
from commgraph_analytics.validation import (
    parse_iso_date,
    validate_conversation_type,
    validate_date_range,
    validate_search_query,
)

router = APIRouter(prefix="/conversations", tags=["conversations"])
logger = structlog.get_logger(__name__)


@router.get("", response_model=ConversationListResponse)
def list_conversations(
    page: str | None = Query(None, description="1-based page number"),
    limit: str | None = Query(None, description="Conversations per page (default 20, max 100)"),
    db: GraphDB = Depends(get_db),
) -> ConversationListResponse:
    """All conversations, most recently active first."""
    try:
        return conversations.list_conversations(db, page=page, limit=limit)
    except QueryError as exc:
        logger.error("list_conversations_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to fetch conversations") from exc


@router.get("/search", response_model=ConversationSearchResponse)
def search_conversations(
    query: str = Query("", description="Substring of the title or a participant's name"),
    type_: str | None = Query(None, alias="type", description="group or direct"),
    priority: str | None = Query(None),
    date_from: str | None = Query(None, alias="dateFrom"),
    date_to: str | None = Query(None, alias="dateTo"),
    page: str | None = Query(None),
    limit: str | None = Query(None, description="Results per page (default 20, max 100)"),
    db: GraphDB = Depends(get_db),
) -> ConversationSearchResponse:
    """Search conversations by title or participant name."""
    if not db.ping():
        raise HTTPException(status_code=503, detail="Database connection failed")

    try:
        query = validate_search_query(query)
        conversation_type = validate_conversation_type(type_)
        start = parse_iso_date(date_from, "dateFrom")
        end = parse_iso_date(date_to, "dateTo", end_of_day=True)
        validate_date_range(start, end)
    except InvalidParameterError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        results, total = conversations.search_conversations(
            db,
            query,
            conversation_type=conversation_type,
            priority=priority or None,
            date_from=start,
            date_to=end,
            page=page,
            limit=limit,
        )
    except QueryError as exc:
        logger.error("search_conversations_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to search conversations") from exc
    return ConversationSearchResponse(results=results, total=total, query=query)


@router.get("/{conversation_id}", response_model=ConversationDetail)
def get_conversation(conversation_id: str, db: GraphDB = Depends(get_db)) -> ConversationDetail:
    """A single conversation with its participants."""
    try:
        conversation = conversations.get_conversation(db, conversation_id)
    except QueryError as exc:
        logger.error("get_conversation_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to fetch conversation") from exc
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation


@router.get("/{conversation_id}/messages", response_model=ConversationMessagesResponse)
def conversation_messages(
    conversation_id: str,
    page: str | None = Query(None),
    limit: str | None = Query(None, description="Messages per page (default 50, max 100)"),
    db: GraphDB = Depends(get_db),
) -> ConversationMessagesResponse:
    """One page of a conversation's messages, oldest first."""
    try:
        return conversations.conversation_messages(db, conversation_id, page=page, limit=limit)
    except ConversationNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except QueryError as exc:
        logger.error("conversation_messages_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to fetch messages") from exc
