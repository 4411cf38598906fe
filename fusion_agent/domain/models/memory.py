from typing import List
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime, timezone
from enum import Enum
import uuid


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """Author of a conversation message"""
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """One immutable conversation message"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique message identifier")
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utc_now)


class Session(BaseModel):
    """Bounded rolling message log for one conversation"""
    session_id: str = Field(description="Opaque session key")
    messages: List[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    last_accessed: datetime = Field(default_factory=utc_now)
    max_messages: int = Field(ge=1, description="Maximum retained messages")


class MemorySummary(BaseModel):
    """Read-only view over the tail of a session"""
    last_messages: List[Message] = Field(default_factory=list)
    total_messages: int = 0
    session_age_minutes: int = 0


class MemoryStats(BaseModel):
    session_count: int = 0
    total_message_count: int = 0
