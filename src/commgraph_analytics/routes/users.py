"""User routes -- listing, search, profiles, and contacts."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query

from commgraph_analytics import users
from commgraph_analytics.db import GraphDB
from commgraph_analytics.dependencies import get_db
from commgraph_analytics.errors import InvalidParameterError, QueryError, UserNotFoundError
from commgraph_analytics.models import (
    ContactListResponse,
    User,
    UserListResponse,
    UserSearchResponse,
)
from commgraph_analytics.pagination import CONTACTS_BOUNDS, total_pages, validate_pagination
from commgraph_analytics.validation import validate_user_id

router = APIRouter(prefix="/users", tags=["users"])
logger = structlog.get_logger(__name__)


def _checked_user_id(user_id: str) -> str:
    try:
        return validate_user_id(user_id, "userId")
    except InvalidParameterError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("", response_model=UserListResponse)
def list_users(
    page: str | None = Query(None, description="1-based page number"),
    limit: str | None = Query(None, description="Users per page (default 20, max 100)"),
    db: GraphDB = Depends(get_db),
) -> UserListResponse:
    """All users ordered by name, with conversation and message counts."""
    try:
        return users.list_users(db, page=page, limit=limit)
    except QueryError as exc:
        logger.error("list_users_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to fetch users") from exc


@router.get("/search", response_model=UserSearchResponse)
def search_users(
    query: str = Query("", description="Substring of name, email, or username"),
    exclude_user_id: str | None = Query(None, alias="excludeUserId"),
    page: str | None = Query(None),
    limit: str | None = Query(None, description="Results per page (default 10, max 50)"),
    db: GraphDB = Depends(get_db),
) -> UserSearchResponse:
    """Search users by name, email, or username."""
    if not db.ping():
        raise HTTPException(status_code=503, detail="Database connection failed")

    query = query.strip()
    try:
        results, total = users.search_users(
            db, query, exclude_user_id=exclude_user_id, page=page, limit=limit
        )
    except QueryError as exc:
        logger.error("search_users_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to search users") from exc
    return UserSearchResponse(results=results, total=total, query=query)


@router.get("/{user_id}", response_model=User)
def get_user(user_id: str, db: GraphDB = Depends(get_db)) -> User:
    """Full profile for a single user."""
    _checked_user_id(user_id)
    try:
        user = users.get_user(db, user_id)
    except QueryError as exc:
        logger.error("get_user_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to fetch user") from exc
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get("/{user_id}/contacts", response_model=ContactListResponse)
def get_user_contacts(
    user_id: str,
    query: str = Query("", description="Optional filter on contact name, email, or username"),
    page: str | None = Query(None),
    limit: str | None = Query(None, description="Contacts per page (default 20, max 1000)"),
    db: GraphDB = Depends(get_db),
) -> ContactListResponse:
    """Users who share at least one conversation with *user_id*."""
    _checked_user_id(user_id)
    window = validate_pagination(page, limit, CONTACTS_BOUNDS)
    try:
        results, total = users.get_user_contacts(
            db, user_id, query=query, page=window.page, limit=window.limit
        )
    except UserNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except QueryError as exc:
        logger.error("get_user_contacts_failed", error=str(exc))
        raise HTTPException(status_code=500, detail="Failed to fetch user contacts") from exc

    return ContactListResponse(
        results=results,
        total=total,
        page=window.page,
        limit=window.limit,
        total_pages=total_pages(total, window.limit),
    )
