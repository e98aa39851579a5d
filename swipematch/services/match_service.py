"""Match registry: materializes confirmed matches and answers match lookups."""

from typing import List, Optional

import sentry_sdk

from swipematch.custom_types import pair_key
from swipematch.models.conversation import Event, EventType
from swipematch.models.match import Match
from swipematch.services.events import EventDispatcher
from swipematch.storage.base import Storage
from swipematch.utils.errors import MatchNotFoundError, MutualLikeRequiredError
from swipematch.utils.helpers import new_id, utcnow
from swipematch.utils.identity import IdentityGuard, identity_guard
from swipematch.utils.locks import KeyedLocks
from swipematch.utils.logging import get_logger

logger = get_logger(__name__)


class MatchRegistry:
    """
    Registry of confirmed matches.

    Matches are immutable and unique per unordered pair. A match is only
    created while both directional likes exist; once created it is never
    retracted, even if a participant later changes a like to a pass.
    """

    def __init__(
        self,
        storage: Storage,
        guard: IdentityGuard = identity_guard,
        locks: Optional[KeyedLocks] = None,
        events: Optional[EventDispatcher] = None,
    ) -> None:
        self.storage = storage
        self.guard = guard
        self.locks = locks if locks is not None else KeyedLocks()
        self.events = events

    async def materialize(self, user_a: str, user_b: str) -> Match:
        """
        Create the match for a pair, or return the existing one.

        Args:
            user_a (str): One participant.
            user_b (str): The other participant.

        Returns:
            Match: The match for this unordered pair. Repeated calls return the same match.

        Raises:
            InvalidIdentifierError: If either id is malformed.
            SelfReferenceNotAllowedError: If both ids are the same user.
            MutualLikeRequiredError: If no match exists yet and the pair has not liked each other.
        """
        user_a, user_b = self.guard.validate_pair(user_a, user_b)
        key = pair_key(user_a, user_b)

        with sentry_sdk.start_span(op="match.materialize", name=f"{key[0]} <-> {key[1]}") as span:
            async with self.locks.hold(key):
                existing = await self.storage.get_match_by_pair(*key)
                if existing is not None:
                    logger.debug("Match already exists", match_id=existing.id)
                    span.set_data("action", "existing")
                    return existing

                forward = await self.storage.get_decision(key[0], key[1])
                backward = await self.storage.get_decision(key[1], key[0])
                if not (forward and forward.is_like and backward and backward.is_like):
                    logger.warning("Refused match without mutual like", user_a=key[0], user_b=key[1])
                    span.set_status("failed_precondition")
                    raise MutualLikeRequiredError(
                        "Both users must like each other before a match is created",
                        details={"participants": list(key)},
                    )

                match, created = await self.storage.insert_match(
                    Match(id=new_id(), participants=frozenset(key), created_at=utcnow())
                )

            span.set_data("action", "created" if created else "existing")
            if created:
                logger.info("Match created", match_id=match.id, user1_id=key[0], user2_id=key[1])
                if self.events is not None:
                    self.events.publish(
                        Event(
                            type=EventType.MUTUAL_LIKE,
                            recipients=list(key),
                            payload={"match_id": match.id},
                        )
                    )
            return match

    async def get(self, match_id: str) -> Match:
        """
        Get a match by ID.

        Raises:
            InvalidIdentifierError: If the id is malformed.
            MatchNotFoundError: If the match is not found.
        """
        match_id = self.guard.validate_match_id(match_id)
        match = await self.storage.get_match(match_id)
        if match is None:
            logger.warning("Match not found", match_id=match_id)
            raise MatchNotFoundError(f"Match not found: {match_id}", details={"match_id": match_id})
        return match

    async def find_by_participant(self, user_id: str) -> List[Match]:
        """Return the user's matches, newest first. Empty when there are none."""
        user_id = self.guard.validate(user_id)
        matches = await self.storage.matches_for(user_id)
        logger.debug("User matches retrieved", user_id=user_id, count=len(matches))
        return matches

    async def find_by_pair(self, user_a: str, user_b: str) -> Optional[Match]:
        user_a, user_b = self.guard.validate_pair(user_a, user_b)
        return await self.storage.get_match_by_pair(user_a, user_b)

    def counterpart(self, match: Match, user_id: str) -> str:
        """Return the participant of `match` who is not `user_id`."""
        return match.counterpart(self.guard.validate(user_id))
