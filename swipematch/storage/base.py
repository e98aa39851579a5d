"""Storage interface shared by every backend."""

from abc import ABC, abstractmethod
from typing import List, Optional, Set, Tuple

from swipematch.models.conversation import Message
from swipematch.models.decision import Decision
from swipematch.models.match import Match
from swipematch.models.profile import Profile


class Storage(ABC):
    """
    Abstract repository used by all engine components.

    Implementations only persist and query records. Validation, locking and
    business rules live in the services, which receive a storage instance
    at construction time.
    """

    # Profiles

    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[Profile]:
        """Return the profile with this id, or None."""

    @abstractmethod
    async def save_profile(self, profile: Profile) -> Profile:
        """Insert or replace a profile by id."""

    @abstractmethod
    async def list_profiles(self, after: Optional[str], limit: int) -> List[Profile]:
        """Return up to `limit` profiles ordered by id, strictly after `after` when given."""

    # Decisions

    @abstractmethod
    async def get_decision(self, actor: str, target: str) -> Optional[Decision]:
        """Return the decision `actor` made about `target`, or None."""

    @abstractmethod
    async def save_decision(self, decision: Decision) -> Tuple[Optional[Decision], Optional[Decision]]:
        """
        Upsert the decision for its (actor, target) pair in one atomic step.

        Returns the decision it replaced and the reverse (target, actor)
        decision as read after the write. Backends shared between processes
        must serialise writers of the same pair so that two crossing likes
        cannot both miss each other.
        """

    @abstractmethod
    async def decided_targets(self, actor: str) -> Set[str]:
        """Return every user `actor` has a decision for."""

    # Matches

    @abstractmethod
    async def get_match(self, match_id: str) -> Optional[Match]:
        """Return the match with this id, or None."""

    @abstractmethod
    async def get_match_by_pair(self, user_a: str, user_b: str) -> Optional[Match]:
        """Return the match for an unordered pair, or None."""

    @abstractmethod
    async def insert_match(self, match: Match) -> Tuple[Match, bool]:
        """
        Insert a match unless one already exists for its pair.

        Returns:
            Tuple[Match, bool]: The stored match and whether it was created by this call.
        """

    @abstractmethod
    async def matches_for(self, user_id: str) -> List[Match]:
        """Return the user's matches, newest first."""

    # Messages

    @abstractmethod
    async def insert_message(self, message: Message) -> Message:
        """
        Append a message.

        Raises:
            ConflictError: If the (match_id, sequence) slot is already taken.
        """

    @abstractmethod
    async def last_message(self, match_id: str) -> Optional[Message]:
        """Return the latest message of a match, or None."""

    @abstractmethod
    async def list_messages(
        self, match_id: str, after_sequence: Optional[int] = None, limit: Optional[int] = None
    ) -> List[Message]:
        """Return messages ordered by (at, sequence) ascending."""

    @abstractmethod
    async def count_unread(self, match_id: str, reader: str, after_sequence: int) -> int:
        """Count messages past `after_sequence` that were not sent by `reader`."""

    # Read cursors

    @abstractmethod
    async def get_read_cursor(self, match_id: str, user_id: str) -> int:
        """Return the highest sequence the user has read (0 if none)."""

    @abstractmethod
    async def set_read_cursor(self, match_id: str, user_id: str, sequence: int) -> int:
        """Store the read cursor and return it."""

    async def close(self) -> None:
        """Release backend resources."""
        return None
