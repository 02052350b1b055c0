"""Persisted session records."""

import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from .enums import MessageRole, SessionStatus


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_session_id() -> str:
    """Generate a new, permanent session ID."""
    return str(uuid.uuid4())


class Message(BaseModel):
    """One entry of a session's conversation history."""

    id: str = Field(default_factory=new_session_id)
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utc_now)

    @field_validator("role", mode="before")
    @classmethod
    def validate_role(cls, value):
        """Accept role names in any case."""
        if isinstance(value, str):
            return value.lower()
        return value


class Session(BaseModel):
    """A session record owned by session-pilot.

    ``pane_count`` is recomputed on every read and never written to disk.
    """

    id: str = Field(default_factory=new_session_id)
    name: str
    status: SessionStatus = SessionStatus.ACTIVE
    backend: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    last_active: datetime = Field(default_factory=utc_now)
    project_path: str = ""
    description: str = ""
    messages: list[Message] = Field(default_factory=list)
    pane_count: int = Field(default=0, exclude=True)

    def touch(self) -> None:
        """Bump ``last_active`` to now."""
        self.last_active = utc_now()

    def to_json(self) -> str:
        """Serialize the persisted fields."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str | bytes) -> "Session":
        """Deserialize a record, raising ``pydantic.ValidationError`` if it is invalid."""
        return cls.model_validate_json(data)


class NameIndex(BaseModel):
    """Name to ID cache persisted beside the records."""

    name_to_id: dict[str, str] = Field(default_factory=dict)
