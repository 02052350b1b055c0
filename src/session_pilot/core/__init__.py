"""Core session models, service and client."""

from .enums import MessageRole, SessionStatus
from .models import Message, NameIndex, Session

__all__ = [
    "Message",
    "MessageRole",
    "NameIndex",
    "Session",
    "SessionStatus",
]
