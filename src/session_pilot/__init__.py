"""session-pilot: manage named, persistent terminal multiplexer sessions."""

__version__ = "0.1.0"
__author__ = "session-pilot Team"

from .core.client import SessionClient
from .core.models import Message, Session
from .core.enums import SessionStatus

__all__ = ["SessionClient", "Session", "Message", "SessionStatus", "__version__"]
