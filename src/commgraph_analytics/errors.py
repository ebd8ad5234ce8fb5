"""Exception hierarchy for the communication analytics engine."""

from __future__ import annotations


class CommGraphError(Exception):
    """Base class for all errors raised by the engine."""


class InvalidParameterError(CommGraphError, ValueError):
    """Raised when a caller-supplied parameter fails validation.

    Raised before any query executes; the HTTP layer maps it to a 400.
    """

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(message)


class QueryError(CommGraphError):
    """Raised when a graph query fails to execute.

    The message carries the store's error text but never the query itself.
    """

    def __init__(self, operation: str, cause: str) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Database query failed: {cause}")


class QueryCancelledError(CommGraphError):
    """Raised when a running query is aborted through its cancel event."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Query cancelled: {operation}")


class UserNotFoundError(CommGraphError):
    """Raised when an operation requires a user that does not exist."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__("User not found")


class ConversationNotFoundError(CommGraphError):
    """Raised when an operation requires a conversation that does not exist."""

    def __init__(self, conversation_id: str) -> None:
        self.conversation_id = conversation_id
        super().__init__("Conversation not found")
