"""Decision models for the SwipeMatch engine."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from swipematch.utils.helpers import to_naive_utc, utcnow


class DecisionKind(str, Enum):
    """One-directional decision a user makes about another user's profile."""

    LIKE = "like"
    PASS = "pass"


class PairState(str, Enum):
    """
    Decision state of an unordered pair of users.

    `FIRST_DECIDED` and `SECOND_DECIDED` refer to the canonical ordering of
    the pair (lower id first).
    """

    UNDECIDED = "undecided"
    FIRST_DECIDED = "first_decided"
    SECOND_DECIDED = "second_decided"
    BOTH_DECIDED = "both_decided"


class Decision(BaseModel):
    """Represents a Like or Pass from one user toward another."""

    actor: str = Field(..., description="ID of the user making the decision.")
    target: str = Field(..., description="ID of the user being decided on.")
    kind: DecisionKind
    at: datetime = Field(default_factory=utcnow, description="Timestamp when the decision was made.")

    @model_validator(mode="before")
    @classmethod
    def check_self_decision(cls, values: Dict[str, Any]) -> Dict[str, Any]:
        if isinstance(values, dict):
            actor = values.get("actor")
            target = values.get("target")
            if actor and target and actor == target:
                raise ValueError("Actor and target cannot be the same user.")
        return values

    @field_validator("actor", "target")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("User IDs cannot be empty")
        return v

    @field_validator("at")
    @classmethod
    def as_naive_utc(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def is_like(self) -> bool:
        return self.kind == DecisionKind.LIKE


class DecisionResult(BaseModel):
    """Outcome of recording a decision."""

    decision: Decision
    mutual_like: bool = False

    model_config = ConfigDict(frozen=True)
