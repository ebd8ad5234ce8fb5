"""Communication routes -- pairwise detail and analytics."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from commgraph_analytics import analysis, communications
from commgraph_analytics.analysis import ResponsePairing
from commgraph_analytics.config import Settings
from commgraph_analytics.db import GraphDB
from commgraph_analytics.dependencies import get_app_settings, get_db
from commgraph_analytics.errors import InvalidParameterError, QueryError
from commgraph_analytics.models import AggregatedCommunicationData, CommunicationData
from commgraph_analytics.validation import (
    parse_iso_date,
    validate_granularity,
    validate_user_id,
)

router = APIRouter(prefix="/users/communications", tags=["communications"])
logger = structlog.get_logger(__name__)


@router.get("/{user_id1}/{user_id2}", response_model=CommunicationData)
def communication_detail(
    user_id1: str,
    user_id2: str,
    page: str | None = Query(None, description="1-based page number"),
    limit: str | None = Query(None, description="Messages per page (default 50, max 100)"),
    conversation_id: str | None = Query(None, alias="conversationId"),
    date_from: str | None = Query(None, alias="dateFrom", description="ISO 8601 lower bound"),
    date_to: str | None = Query(None, alias="dateTo", description="ISO 8601 upper bound"),
    db: GraphDB = Depends(get_db),
) -> CommunicationData:
    """Shared conversations, totals, and a page of the message timeline."""
    try:
        validate_user_id(user_id1, "userId1")
        validate_user_id(user_id2, "userId2")
        start = parse_iso_date(date_from, "dateFrom")
        end = parse_iso_date(date_to, "dateTo", end_of_day=True)
    except InvalidParameterError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        data = communications.get_communication_data(
            db,
            user_id1,
            user_id2,
            page=page,
            limit=limit,
            conversation_id=conversation_id or None,
            date_from=start,
            date_to=end,
        )
    except QueryError as exc:
        logger.error("communication_detail_failed", operation=exc.operation, error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to fetch communication data") from exc

    if data.user1 is None or data.user2 is None:
        raise HTTPException(status_code=404, detail="One or both users not found")
    return data


@router.get("/{user_id1}/{user_id2}/analytics", response_model=AggregatedCommunicationData)
def communication_analytics(
    user_id1: str,
    user_id2: str,
    date_from: str | None = Query(None, alias="dateFrom", description="ISO 8601 lower bound"),
    date_to: str | None = Query(None, alias="dateTo", description="ISO 8601 upper bound"),
    granularity: str | None = Query(None, description="daily, weekly, or monthly"),
    pairing: ResponsePairing = Query(
        ResponsePairing.ALL_PAIRS,
        description="Response-latency pairing: all_pairs or nearest_reply",
    ),
    db: GraphDB = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
) -> AggregatedCommunicationData:
    """Frequency, response times, heatmap, talk/listen ratio, and conversation types."""
    try:
        validate_user_id(user_id1, "userId1")
        validate_user_id(user_id2, "userId2")
        start = parse_iso_date(date_from, "dateFrom")
        end = parse_iso_date(date_to, "dateTo", end_of_day=True)
        bucket = validate_granularity(granularity)
    except InvalidParameterError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        return analysis.get_aggregated_communication_data(
            db,
            user_id1,
            user_id2,
            date_from=start,
            date_to=end,
            granularity=bucket,
            pairing=pairing,
            timeout=settings.analytics_timeout_seconds,
        )
    except QueryError as exc:
        logger.error("communication_analytics_failed", operation=exc.operation, error=str(exc))
        raise HTTPException(
            status_code=500, detail="Failed to fetch aggregated communication data"
        ) from exc
