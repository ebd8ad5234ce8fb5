"""Read-only graph store accessor.

The communication graph lives in a SQLite file laid out as node tables
(``users``, ``conversations``, ``messages``) and a ``participates_in``
relationship table.  :class:`GraphDB` owns a small pool of read-only
connections and exposes a single :meth:`GraphDB.execute` entry point that the
query modules build on.  Every row it returns has already been passed
through :func:`commgraph_analytics.scalars.normalize`.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

import structlog
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.pool import PoolProxiedConnection, QueuePool

from commgraph_analytics.errors import QueryCancelledError, QueryError
from commgraph_analytics.scalars import normalize

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Node and relationship tables.  Timestamps are ISO-8601 UTC text; the
# TIMESTAMP declared type routes them through _convert_timestamp on read.
SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    username TEXT,
    avatar_url TEXT,
    status TEXT,
    role TEXT,
    bio TEXT,
    department TEXT,
    location TEXT,
    last_seen TIMESTAMP
);

CREATE TABLE IF NOT EXISTS conversations (
    conversation_id TEXT PRIMARY KEY,
    title TEXT,
    type TEXT,
    priority TEXT,
    last_message_timestamp TIMESTAMP
);

CREATE TABLE IF NOT EXISTS participates_in (
    user_id TEXT NOT NULL REFERENCES users (user_id),
    conversation_id TEXT NOT NULL REFERENCES conversations (conversation_id),
    PRIMARY KEY (user_id, conversation_id)
);

CREATE TABLE IF NOT EXISTS messages (
    message_id TEXT PRIMARY KEY,
    content TEXT,
    sender_id TEXT NOT NULL REFERENCES users (user_id),
    timestamp TIMESTAMP NOT NULL,
    conversation_id TEXT NOT NULL REFERENCES conversations (conversation_id)
);

CREATE INDEX IF NOT EXISTS participates_in_conversation_idx
    ON participates_in (conversation_id);
CREATE INDEX IF NOT EXISTS messages_conversation_idx
    ON messages (conversation_id, timestamp);
CREATE INDEX IF NOT EXISTS messages_sender_idx ON messages (sender_id);
"""

# The progress handler runs every N SQLite VM instructions.
_PROGRESS_INTERVAL = 1000


def _convert_timestamp(raw: bytes) -> datetime | None:
    """Decode a stored ISO-8601 timestamp into an aware UTC datetime."""
    text = raw.decode("utf-8").strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


sqlite3.register_converter("timestamp", _convert_timestamp)


class GraphDB:
    """Pooled, read-only accessor for the communication graph.

    Parameters
    ----------
    db_path:
        Path to the SQLite file.  Opened through a ``mode=ro`` URI so the
        graph is never modified.
    max_pool_size:
        Upper bound on simultaneously open connections.
    acquisition_timeout:
        Seconds to wait for a free connection before giving up.
    """

    def __init__(
        self,
        db_path: str | Path,
        max_pool_size: int = 10,
        acquisition_timeout: float = 30.0,
    ) -> None:
        self._path = Path(db_path)
        self._max_pool_size = max_pool_size
        self._acquisition_timeout = acquisition_timeout
        self._pool: QueuePool | None = None
        self._lock = threading.Lock()
        self._open = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._open

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> GraphDB:
        """Create the pool.  Connections are made lazily on first use."""
        with self._lock:
            if self._open:
                return self
            if not self._path.is_file():
                raise FileNotFoundError(f"Database file not found: {self._path}")
            self._pool = QueuePool(
                self._new_connection,
                pool_size=self._max_pool_size,
                max_overflow=0,
                timeout=self._acquisition_timeout,
                use_lifo=True,
            )
            self._open = True
        logger.info("graph_db_opened", path=str(self._path), max_pool_size=self._max_pool_size)
        return self

    def close(self) -> None:
        """Close idle connections and refuse new work.  Safe to call repeatedly.

        Connections still checked out are closed when they are released.
        """
        with self._lock:
            if not self._open:
                return
            self._open = False
            pool = self._pool
            idle = pool.checkedin()
            pool.dispose()
        logger.info("graph_db_closed", path=str(self._path), connections_closed=idle)

    def __enter__(self) -> GraphDB:
        return self.open()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Connection pool
    # ------------------------------------------------------------------

    def _new_connection(self) -> sqlite3.Connection:
        uri = f"file:{self._path}?mode=ro"
        conn = sqlite3.connect(
            uri,
            uri=True,
            detect_types=sqlite3.PARSE_DECLTYPES | sqlite3.PARSE_COLNAMES,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        return conn

    def _acquire(self, operation: str) -> tuple[QueuePool, PoolProxiedConnection]:
        with self._lock:
            if not self._open:
                raise QueryError(operation, "connection pool is closed")
            pool = self._pool
        try:
            return pool, pool.connect()
        except PoolTimeoutError as exc:
            raise QueryError(
                operation,
                f"no connection available within {self._acquisition_timeout}s",
            ) from exc
        except sqlite3.Error as exc:
            raise QueryError(operation, str(exc)) from exc

    def _release(self, pool: QueuePool, proxied: PoolProxiedConnection) -> None:
        # close() flips _open and disposes under the same lock; a reopen
        # replaces the pool, so only the current one takes connections back.
        with self._lock:
            if self._open and pool is self._pool:
                proxied.close()
            else:
                proxied.invalidate()

    @contextmanager
    def _connect(self, operation: str = "query") -> Iterator[sqlite3.Connection]:
        """Yield a pooled read-only connection, returning it on every exit path."""
        pool, proxied = self._acquire(operation)
        try:
            yield proxied.dbapi_connection
        finally:
            self._release(pool, proxied)

    # ------------------------------------------------------------------
    # Query execution
    # ------------------------------------------------------------------

    def execute(
        self,
        sql: str,
        params: dict[str, Any] | list[Any] | None = None,
        *,
        operation: str = "query",
        cancel: threading.Event | None = None,
    ) -> list[dict[str, Any]]:
        """Execute read-only SQL and return normalised rows as dicts.

        Raises
        ------
        QueryCancelledError
            If *cancel* is set before or while the statement runs.
        QueryError
            For any store-side failure.
        """
        if cancel is not None and cancel.is_set():
            raise QueryCancelledError(operation)

        with self._connect(operation) as conn:
            if cancel is not None:
                conn.set_progress_handler(lambda: 1 if cancel.is_set() else 0, _PROGRESS_INTERVAL)
            try:
                rows = conn.execute(sql, params or []).fetchall()
            except sqlite3.OperationalError as exc:
                if cancel is not None and cancel.is_set():
                    logger.warning("query_cancelled", operation=operation)
                    raise QueryCancelledError(operation) from exc
                logger.error("query_failed", operation=operation, error=str(exc))
                raise QueryError(operation, str(exc)) from exc
            except sqlite3.Error as exc:
                logger.error("query_failed", operation=operation, error=str(exc))
                raise QueryError(operation, str(exc)) from exc
            finally:
                if cancel is not None:
                    conn.set_progress_handler(None, 0)

        return [normalize(dict(row)) for row in rows]

    def ping(self) -> bool:
        """Return True when a trivial query succeeds."""
        try:
            self.execute("SELECT 1 AS ok", operation="ping")
        except QueryError:
            return False
        return True


def read_or_default(operation: str, default: T, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a read-path call, substituting *default* when it is cancelled.

    Cancellation of a read is not an error for aggregate views; any other
    exception propagates unchanged.
    """
    try:
        return fn(*args, **kwargs)
    except QueryCancelledError:
        logger.warning("read_cancelled_using_default", operation=operation)
        return default
