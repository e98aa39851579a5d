"""Profile model for the SwipeMatch engine."""

from datetime import datetime, timedelta
from typing import FrozenSet, Iterable, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from swipematch.utils.helpers import to_naive_utc, utcnow

MIN_AGE = 18
MAX_AGE = 120


def normalize_interests(v: Optional[Iterable[str]]) -> FrozenSet[str]:
    """
    Normalize interests to lowercase with surrounding whitespace removed.

    Args:
        v (Optional[Iterable[str]]): Raw interests.

    Returns:
        FrozenSet[str]: Normalized, de-duplicated interests without blanks.
    """
    if v is None:
        return frozenset()
    if isinstance(v, str):
        v = [v]
    return frozenset(item.strip().lower() for item in v if item and item.strip())


def normalize_gender(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    return v.strip().lower() or None


class Profile(BaseModel):
    """
    User profile model.

    Represents the public record of a user shown during discovery and in
    match lists. `is_active=False` marks a soft-deleted profile: it stays
    readable because matches may still reference it, but it is never
    offered as a candidate.
    """

    id: str = Field(..., description="Opaque user id supplied by the identity provider")
    display_name: str = Field(..., min_length=1, max_length=100)
    age: int = Field(..., ge=MIN_AGE, le=MAX_AGE)
    bio: str = ""
    interests: FrozenSet[str] = Field(default_factory=frozenset)
    avatar_ref: Optional[str] = Field(default=None, description="Opaque image reference, never interpreted")
    gender: Optional[str] = None
    is_active: bool = True
    last_active_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("interests", mode="before")
    @classmethod
    def clean_interests(cls, v: Optional[Iterable[str]]) -> FrozenSet[str]:
        return normalize_interests(v)

    @field_validator("gender")
    @classmethod
    def clean_gender(cls, v: Optional[str]) -> Optional[str]:
        return normalize_gender(v)

    @field_validator("last_active_at", "created_at", "updated_at")
    @classmethod
    def as_naive_utc(cls, v: datetime) -> datetime:
        """Store timestamps as naive UTC, converting offset-aware input."""
        return to_naive_utc(v)

    def shared_interests(self, other: "Profile") -> FrozenSet[str]:
        """Return the interests this profile has in common with another."""
        return self.interests & other.interests


class DiscoveryFilters(BaseModel):
    """
    Discovery filter predicates.

    All fields are optional; an unset field does not constrain the pool.
    """

    min_age: Optional[int] = Field(default=None, ge=MIN_AGE, le=MAX_AGE)
    max_age: Optional[int] = Field(default=None, ge=MIN_AGE, le=MAX_AGE)
    interests: FrozenSet[str] = Field(default_factory=frozenset)
    min_shared_interests: int = Field(default=1, ge=1)
    gender: Optional[str] = None
    active_within_days: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(frozen=True)

    @field_validator("interests", mode="before")
    @classmethod
    def clean_interests(cls, v: Optional[Iterable[str]]) -> FrozenSet[str]:
        return normalize_interests(v)

    @field_validator("gender")
    @classmethod
    def clean_gender(cls, v: Optional[str]) -> Optional[str]:
        return normalize_gender(v)

    @model_validator(mode="after")
    def check_age_range(self) -> "DiscoveryFilters":
        """Ensure min_age is not greater than max_age."""
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError("min_age must be less than or equal to max_age")
        return self

    def matches(self, profile: Profile, now: Optional[datetime] = None) -> bool:
        """
        Check whether a profile satisfies every configured predicate.

        Args:
            profile (Profile): Candidate profile.
            now (Optional[datetime]): Reference time for the recency check.

        Returns:
            bool: True if the profile passes all filters.
        """
        if self.min_age is not None and profile.age < self.min_age:
            return False
        if self.max_age is not None and profile.age > self.max_age:
            return False
        if self.gender is not None and profile.gender != self.gender:
            return False
        if self.interests and len(self.interests & profile.interests) < self.min_shared_interests:
            return False
        if self.active_within_days is not None:
            reference = now or utcnow()
            if profile.last_active_at < reference - timedelta(days=self.active_within_days):
                return False
        return True


class DiscoveryBatch(BaseModel):
    """
    A batch of discovery candidates.

    `exhausted` is the terminal-but-normal signal that the pool has no
    candidates left for the given filters; the UI shows its empty state.
    """

    profiles: list[Profile] = Field(default_factory=list)
    exhausted: bool = False
    next_cursor: Optional[str] = None
