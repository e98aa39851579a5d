"""Match model for the SwipeMatch engine."""

from datetime import datetime
from typing import FrozenSet, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from swipematch.custom_types import PairKey, pair_key
from swipematch.models.conversation import Message
from swipematch.models.decision import Decision
from swipematch.models.profile import Profile
from swipematch.utils.helpers import to_naive_utc, utcnow


class Match(BaseModel):
    """
    Match model.

    A system-derived confirmation that two users liked each other. Matches
    are immutable and exactly one exists per unordered pair.
    """

    id: str
    participants: FrozenSet[str]
    created_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)

    @field_validator("participants")
    @classmethod
    def check_participants(cls, v: FrozenSet[str]) -> FrozenSet[str]:
        """
        Validate the participant pair.

        Raises:
            ValueError: Unless there are exactly two distinct participants.
        """
        if len(v) != 2:
            raise ValueError("A match needs exactly two distinct participants")
        return v

    @field_validator("created_at")
    @classmethod
    def as_naive_utc(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @property
    def pair(self) -> PairKey:
        """Canonical (low, high) ordering of the participants."""
        user_a, user_b = self.participants
        return pair_key(user_a, user_b)

    def involves(self, user_id: str) -> bool:
        return user_id in self.participants

    def counterpart(self, user_id: str) -> str:
        """
        Return the other participant.

        Raises:
            ValueError: If `user_id` is not part of this match.
        """
        if user_id not in self.participants:
            raise ValueError(f"{user_id} is not part of match {self.id}")
        return next(p for p in self.participants if p != user_id)


class SwipeOutcome(BaseModel):
    """Result of the full swipe flow: the recorded decision and any resulting match."""

    decision: Decision
    mutual_like: bool = False
    match: Optional[Match] = None


class MatchView(BaseModel):
    """
    User match view model.

    A presentation-friendly summary of a match from one participant's side:
    the partner's profile, the latest message and the unread count.
    """

    match: Match
    partner: Profile
    common_interests: list[str] = Field(default_factory=list)
    last_message: Optional[Message] = None
    unread_count: int = 0

