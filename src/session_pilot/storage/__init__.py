"""Durable storage for session records."""

from .locking import ReadWriteLock
from .repository import FileSessionRepository

__all__ = ["FileSessionRepository", "ReadWriteLock"]
