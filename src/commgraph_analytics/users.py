"""User lookups: summaries, listing, search, and contacts."""

from __future__ import annotations

from typing import Any

from commgraph_analytics.db import GraphDB
from commgraph_analytics.errors import UserNotFoundError
from commgraph_analytics.models import (
    ContactStats,
    PaginationInfo,
    User,
    UserContact,
    UserListResponse,
    UserSummary,
)
from commgraph_analytics.pagination import (
    CONTACTS_BOUNDS,
    LIST_BOUNDS,
    SEARCH_BOUNDS,
    total_pages,
    validate_pagination,
)

_USER_COLUMNS = """
    u.user_id, u.name, u.email, u.username, u.avatar_url, u.status, u.role,
    u.bio, u.department, u.location, u.last_seen
"""

# Derived counts are computed on read, never stored.
_SUMMARY_SELECT = """
    SELECT
        u.user_id,
        u.name,
        u.email,
        u.avatar_url AS avatar,
        u.last_seen  AS last_active_timestamp,
        (SELECT COUNT(*) FROM participates_in p WHERE p.user_id = u.user_id)
            AS conversation_count,
        (SELECT COUNT(*) FROM messages m WHERE m.sender_id = u.user_id)
            AS message_count
    FROM users u
"""

_SEARCH_CONDITION = """
    (LOWER(u.name) LIKE :pattern ESCAPE '\\'
     OR LOWER(COALESCE(u.email, '')) LIKE :pattern ESCAPE '\\'
     OR LOWER(COALESCE(u.username, '')) LIKE :pattern ESCAPE '\\')
"""


def like_pattern(query: str) -> str:
    """Lower-cased LIKE pattern matching *query* anywhere, wildcards escaped."""
    escaped = query.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _to_user(row: dict[str, Any]) -> User:
    return User(**row)


def get_user(db: GraphDB, user_id: str) -> User | None:
    """Return the full profile for *user_id*, or None."""
    rows = db.execute(
        f"SELECT {_USER_COLUMNS} FROM users u WHERE u.user_id = :user_id",
        {"user_id": user_id},
        operation="get_user",
    )
    return _to_user(rows[0]) if rows else None


def get_user_summaries(db: GraphDB, user_ids: list[str]) -> dict[str, UserSummary]:
    """Batch-fetch summaries keyed by user ID; unknown IDs are absent."""
    if not user_ids:
        return {}
    params = {f"id{i}": user_id for i, user_id in enumerate(user_ids)}
    placeholders = ", ".join(f":{name}" for name in params)
    rows = db.execute(
        f"{_SUMMARY_SELECT} WHERE u.user_id IN ({placeholders})",
        params,
        operation="get_user_summaries",
    )
    return {row["user_id"]: UserSummary(**row) for row in rows}


def list_users(db: GraphDB, page: Any = None, limit: Any = None) -> UserListResponse:
    """Paginated listing of all users ordered by name."""
    window = validate_pagination(page, limit, LIST_BOUNDS)

    total = db.execute("SELECT COUNT(*) AS total FROM users", operation="count_users")[0]["total"]
    rows = db.execute(
        f"{_SUMMARY_SELECT} ORDER BY u.name, u.user_id LIMIT :limit OFFSET :skip",
        {"limit": window.limit, "skip": window.skip},
        operation="list_users",
    )
    return UserListResponse(
        users=[UserSummary(**row) for row in rows],
        pagination=PaginationInfo(
            page=window.page,
            limit=window.limit,
            total=total,
            total_pages=total_pages(total, window.limit),
        ),
    )


def search_users(
    db: GraphDB,
    query: str,
    exclude_user_id: str | None = None,
    page: Any = None,
    limit: Any = None,
) -> tuple[list[User], int]:
    """Case-insensitive substring search over name, email and username.

    Results are ranked by where the query matches first (name prefix, then
    email prefix, then username prefix, then anywhere), then by name.

    Returns
    -------
    tuple
        ``(results, total)`` where *total* ignores pagination.
    """
    query = (query or "").strip()
    if not query:
        return [], 0

    window = validate_pagination(page, limit, SEARCH_BOUNDS)
    params: dict[str, Any] = {
        "pattern": like_pattern(query),
        "prefix": query.lower(),
    }
    where = _SEARCH_CONDITION
    if exclude_user_id:
        where += " AND u.user_id <> :exclude_user_id"
        params["exclude_user_id"] = exclude_user_id

    total = db.execute(
        f"SELECT COUNT(*) AS total FROM users u WHERE {where}",
        params,
        operation="count_search_users",
    )[0]["total"]
    if total == 0:
        return [], 0

    rows = db.execute(
        f"""
        SELECT {_USER_COLUMNS}
        FROM users u
        WHERE {where}
        ORDER BY
            CASE
                WHEN substr(LOWER(u.name), 1, length(:prefix)) = :prefix THEN 1
                WHEN substr(LOWER(COALESCE(u.email, '')), 1, length(:prefix)) = :prefix THEN 2
                WHEN substr(LOWER(COALESCE(u.username, '')), 1, length(:prefix)) = :prefix THEN 3
                ELSE 4
            END,
            u.name
        LIMIT :limit OFFSET :skip
        """,
        {**params, "limit": window.limit, "skip": window.skip},
        operation="search_users",
    )
    return [_to_user(row) for row in rows], total


def get_user_contacts(
    db: GraphDB,
    user_id: str,
    query: str = "",
    page: Any = None,
    limit: Any = None,
) -> tuple[list[UserContact], int]:
    """Users who share at least one conversation with *user_id*.

    Raises
    ------
    UserNotFoundError
        If *user_id* does not exist.
    """
    window = validate_pagination(page, limit, CONTACTS_BOUNDS)

    exists = db.execute(
        "SELECT 1 AS found FROM users WHERE user_id = :user_id LIMIT 1",
        {"user_id": user_id},
        operation="check_user_exists",
    )
    if not exists:
        raise UserNotFoundError(user_id)

    params: dict[str, Any] = {"user_id": user_id}
    search = ""
    query = (query or "").strip()
    if query:
        search = f"AND {_SEARCH_CONDITION}"
        params["pattern"] = like_pattern(query)

    contacts_cte = f"""
        WITH contacts AS (
            SELECT DISTINCT u.user_id
            FROM participates_in p1
            JOIN participates_in p2
              ON p2.conversation_id = p1.conversation_id
             AND p2.user_id <> p1.user_id
            JOIN users u ON u.user_id = p2.user_id
            WHERE p1.user_id = :user_id {search}
        )
    """

    total = db.execute(
        f"{contacts_cte} SELECT COUNT(*) AS total FROM contacts",
        params,
        operation="count_user_contacts",
    )[0]["total"]
    if total == 0:
        return [], 0

    rows = db.execute(
        f"""
        {contacts_cte},
        shared AS (
            SELECT p2.user_id AS contact_id, p1.conversation_id
            FROM participates_in p1
            JOIN participates_in p2 ON p2.conversation_id = p1.conversation_id
            WHERE p1.user_id = :user_id
              AND p2.user_id IN (SELECT user_id FROM contacts)
        )
        SELECT
            {_USER_COLUMNS},
            (SELECT COUNT(*) FROM shared s WHERE s.contact_id = u.user_id)
                AS shared_conversation_count,
            (SELECT COUNT(*) FROM messages m
              JOIN shared s ON s.conversation_id = m.conversation_id
             WHERE s.contact_id = u.user_id
               AND m.sender_id IN (:user_id, u.user_id)) AS total_message_count,
            (SELECT m.timestamp FROM messages m
              JOIN shared s ON s.conversation_id = m.conversation_id
             WHERE s.contact_id = u.user_id
               AND m.sender_id IN (:user_id, u.user_id)
             ORDER BY julianday(m.timestamp) ASC LIMIT 1) AS "first_interaction [timestamp]",
            (SELECT m.timestamp FROM messages m
              JOIN shared s ON s.conversation_id = m.conversation_id
             WHERE s.contact_id = u.user_id
               AND m.sender_id IN (:user_id, u.user_id)
             ORDER BY julianday(m.timestamp) DESC LIMIT 1) AS "last_interaction [timestamp]"
        FROM users u
        JOIN contacts ON contacts.user_id = u.user_id
        ORDER BY u.name, u.user_id
        LIMIT :limit OFFSET :skip
        """,
        {**params, "limit": window.limit, "skip": window.skip},
        operation="get_user_contacts",
    )

    results = []
    for row in rows:
        stats = ContactStats(
            shared_conversation_count=row.pop("shared_conversation_count"),
            total_message_count=row.pop("total_message_count"),
            first_interaction=row.pop("first_interaction"),
            last_interaction=row.pop("last_interaction"),
        )
        results.append(UserContact(**row, communication_stats=stats))
    return results, total
