"""Message models for the SwipeMatch engine."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from swipematch.utils.helpers import to_naive_utc, utcnow


class Message(BaseModel):
    """
    Message model.

    Messages are append-only and immutable. `sequence` is assigned per match
    and breaks ties between messages that share a timestamp.
    """

    id: str
    match_id: str
    sender: str
    content: str
    sequence: int = Field(..., ge=1)
    at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)

    @field_validator("at")
    @classmethod
    def as_naive_utc(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @property
    def order_key(self) -> tuple[datetime, int]:
        return (self.at, self.sequence)


class EventType(str, Enum):
    """Event types published to the notification dispatcher."""

    MUTUAL_LIKE = "mutual_like"
    MESSAGE_SENT = "message_sent"


class Event(BaseModel):
    """A fire-and-forget notification event."""

    type: EventType
    recipients: list[str]
    payload: Dict[str, Any] = Field(default_factory=dict)
    at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)

    @field_validator("at")
    @classmethod
    def as_naive_utc(cls, v: datetime) -> datetime:
        return to_naive_utc(v)
