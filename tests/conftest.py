"""Shared pytest fixtures for the commgraph analytics test suite.

Builds a temporary SQLite graph store with the service schema and a small,
deterministic population of users, conversations, and messages.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from commgraph_analytics.config import Settings
from commgraph_analytics.db import SCHEMA, GraphDB
from commgraph_analytics.main import create_app

# ---------------------------------------------------------------------------
# Sample graph
#
# 2024-06-10 and 2024-07-01 are Mondays.  Conversations conv-1..conv-3 are
# shared by user-001 and user-002; user-003 joins conv-2 and conv-3; conv-4
# belongs to user-003 and user-004 only.  user-005 has no conversations.
# ---------------------------------------------------------------------------

USERS = [
    # (user_id, name, email, username, avatar_url, status, role, department, location, last_seen)
    ("user-001", "Alice Anderson", "alice@example.com", "alice",
     "https://cdn.example.com/a.png", "online", "Engineer", "Platform", "Sydney",
     "2024-07-03T12:00:00Z"),
    ("user-002", "Bob Brown", "bob@example.com", "bob",
     None, "away", "Designer", "Product", "Melbourne", "2024-07-03T10:00:00Z"),
    ("user-003", "Carol Chen", "carol@example.com", "carol",
     None, "offline", "Manager", "Platform", "Brisbane", "2024-06-15T12:00:00Z"),
    ("user-004", "Dan Diaz", "dan@example.com", "dan",
     None, "offline", "Analyst", "Finance", "Perth", "2024-06-15T12:01:00Z"),
    ("user-005", "Eve Evans", "eve@example.com", "eve",
     None, "offline", "Intern", "Finance", "Hobart", None),
]

CONVERSATIONS = [
    # (conversation_id, title, type, priority, last_message_timestamp)
    ("conv-1", "Alice & Bob", "direct", "high", "2024-06-11T08:00:00Z"),
    ("conv-2", None, "group", "normal", "2024-06-12T15:10:00Z"),
    ("conv-3", "Announcements", "channel", "low", "2024-07-03T10:00:00Z"),
    ("conv-4", "Carol & Dan", "direct", "normal", "2024-06-15T12:01:00Z"),
]

PARTICIPANTS = [
    ("user-001", "conv-1"), ("user-002", "conv-1"),
    ("user-001", "conv-2"), ("user-002", "conv-2"), ("user-003", "conv-2"),
    ("user-001", "conv-3"), ("user-002", "conv-3"), ("user-003", "conv-3"),
    ("user-003", "conv-4"), ("user-004", "conv-4"),
]

MESSAGES = [
    # (message_id, content, sender_id, timestamp, conversation_id)
    ("m01", "Morning Bob", "user-001", "2024-06-10T09:00:00Z", "conv-1"),
    ("m02", "Morning!", "user-002", "2024-06-10T09:30:00Z", "conv-1"),
    ("m03", "Lunch later?", "user-001", "2024-06-10T11:30:00Z", "conv-1"),
    ("m04", "Sorry, missed this", "user-002", "2024-06-11T08:00:00Z", "conv-1"),
    ("m05", "Kickoff notes attached", "user-002", "2024-06-12T14:00:00Z", "conv-2"),
    ("m06", "Thanks Bob", "user-003", "2024-06-12T14:05:00Z", "conv-2"),
    ("m07", "Reviewed, looks good", "user-001", "2024-06-12T15:00:00Z", "conv-2"),
    ("m08", "One small comment", "user-001", "2024-06-12T15:10:00Z", "conv-2"),
    ("m09", "Quarterly update is out", "user-001", "2024-07-01T10:00:00Z", "conv-3"),
    ("m10", "Great work everyone", "user-002", "2024-07-03T10:00:00Z", "conv-3"),
    ("m11", "Budget call?", "user-003", "2024-06-15T12:00:00Z", "conv-4"),
    ("m12", "Sure", "user-004", "2024-06-15T12:01:00Z", "conv-4"),
]


def _populate(conn: sqlite3.Connection) -> None:
    """Insert deterministic sample rows."""
    conn.executemany(
        "INSERT INTO users (user_id, name, email, username, avatar_url, status, role, "
        "department, location, last_seen) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        USERS,
    )
    conn.executemany(
        "INSERT INTO conversations (conversation_id, title, type, priority, "
        "last_message_timestamp) VALUES (?, ?, ?, ?, ?)",
        CONVERSATIONS,
    )
    conn.executemany(
        "INSERT INTO participates_in (user_id, conversation_id) VALUES (?, ?)",
        PARTICIPANTS,
    )
    conn.executemany(
        "INSERT INTO messages (message_id, content, sender_id, timestamp, conversation_id) "
        "VALUES (?, ?, ?, ?, ?)",
        MESSAGES,
    )
    conn.commit()


def _create_store(path: Path, populate: bool = True) -> Path:
    conn = sqlite3.connect(str(path))
    conn.executescript(SCHEMA)
    if populate:
        _populate(conn)
    conn.close()
    return path


@pytest.fixture()
def sample_db_path(tmp_path: Path) -> Path:
    """Filesystem path to a populated graph store."""
    return _create_store(tmp_path / "graph.db")


@pytest.fixture()
def sample_db(sample_db_path: Path) -> Iterator[GraphDB]:
    """An open GraphDB over the sample graph."""
    db = GraphDB(sample_db_path).open()
    yield db
    db.close()


@pytest.fixture()
def empty_db(tmp_path: Path) -> Iterator[GraphDB]:
    """An open GraphDB over a store with the schema but no rows."""
    db = GraphDB(_create_store(tmp_path / "empty.db", populate=False)).open()
    yield db
    db.close()


@pytest.fixture()
def client(sample_db_path: Path) -> Iterator[TestClient]:
    """Test client whose lifespan opens the sample graph store."""
    app = create_app(Settings(database_path=sample_db_path))
    with TestClient(app) as test_client:
        yield test_client


# Same instants at different fractional-second precision.  As text,
# "09:00:00.500Z" sorts before "09:00:00Z" and "10:00:00.250Z" before
# "10:00:00Z", the reverse of their real order.
MIXED_PRECISION_MESSAGES = [
    ("p1", "first", "user-001", "2024-06-10T09:00:00Z", "conv-1"),
    ("p2", "second", "user-002", "2024-06-10T09:00:00.500Z", "conv-1"),
    ("p3", "third", "user-001", "2024-06-10T10:00:00Z", "conv-1"),
    ("p4", "fourth", "user-002", "2024-06-10T10:00:00.250Z", "conv-1"),
]


@pytest.fixture()
def mixed_precision_db(tmp_path: Path) -> Iterator[GraphDB]:
    """Two users in one direct conversation with mixed-precision timestamps."""
    path = _create_store(tmp_path / "mixed.db", populate=False)
    conn = sqlite3.connect(str(path))
    conn.executemany(
        "INSERT INTO users (user_id, name, email, username, avatar_url, status, role, "
        "department, location, last_seen) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        USERS[:2],
    )
    conn.execute(
        "INSERT INTO conversations (conversation_id, title, type, priority, "
        "last_message_timestamp) VALUES (?, ?, ?, ?, ?)",
        ("conv-1", "Alice & Bob", "direct", "high", "2024-06-10T10:00:00.250Z"),
    )
    conn.executemany(
        "INSERT INTO participates_in (user_id, conversation_id) VALUES (?, ?)",
        [("user-001", "conv-1"), ("user-002", "conv-1")],
    )
    conn.executemany(
        "INSERT INTO messages (message_id, content, sender_id, timestamp, conversation_id) "
        "VALUES (?, ?, ?, ?, ?)",
        MIXED_PRECISION_MESSAGES,
    )
    conn.commit()
    conn.close()
    db = GraphDB(path).open()
    yield db
    db.close()
