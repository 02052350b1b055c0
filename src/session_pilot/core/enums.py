"""Shared enums for session-pilot."""

from enum import Enum


class SessionStatus(str, Enum):
    """Effective status of a session.

    The persisted value is only a snapshot; reconciliation against the
    multiplexer decides the status reported to callers.
    """

    ACTIVE = "active"
    INACTIVE = "inactive"
    CONNECTED = "connected"
    ERROR = "error"


class MessageRole(str, Enum):
    """Author of a message in a session's history."""

    USER = "user"
    ASSISTANT = "assistant"
