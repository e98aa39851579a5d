"""Discovery planner: selects the next batch of candidate profiles."""

from contextlib import aclosing
from typing import List, Optional

import sentry_sdk

from swipematch.config import settings
from swipematch.models.profile import DiscoveryBatch, DiscoveryFilters, Profile
from swipematch.services.decision_service import DecisionLedger
from swipematch.services.profile_service import ProfileDirectory
from swipematch.utils.errors import ValidationError
from swipematch.utils.logging import get_logger

logger = get_logger(__name__)


class DiscoveryPlanner:
    """Composes the profile directory and decision ledger into discovery batches."""

    def __init__(self, profiles: ProfileDirectory, ledger: DecisionLedger) -> None:
        self.profiles = profiles
        self.ledger = ledger

    async def next_batch(
        self,
        user_id: str,
        filters: Optional[DiscoveryFilters] = None,
        batch_size: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> DiscoveryBatch:
        """
        Get the next candidates to show a user.

        Excludes the user, everyone the user has already liked or passed, and
        deactivated profiles. An empty batch is flagged `exhausted`, the
        normal signal for the UI to show its empty state.

        Args:
            user_id (str): User asking for candidates.
            filters (Optional[DiscoveryFilters]): Optional filter predicates.
            batch_size (Optional[int]): Maximum number of profiles. Defaults to `DISCOVERY_BATCH_SIZE`.
            cursor (Optional[str]): Resume after this profile id (from a previous `next_cursor`).

        Returns:
            DiscoveryBatch: Candidates in deterministic order.

        Raises:
            InvalidIdentifierError: If the id is malformed.
            NotFoundError: If the requesting user has no profile.
            ValidationError: If batch_size is out of range.
        """
        size = batch_size if batch_size is not None else settings.DISCOVERY_BATCH_SIZE
        if size < 1 or size > settings.MAX_DISCOVERY_BATCH_SIZE:
            raise ValidationError(
                "batch_size out of range",
                details={"batch_size": size, "max": settings.MAX_DISCOVERY_BATCH_SIZE},
            )

        with sentry_sdk.start_span(op="discovery.next_batch", name=str(user_id)) as span:
            requester = await self.profiles.get(user_id)
            if cursor is not None:
                cursor = self.profiles.guard.validate(cursor, "cursor")
            excluding = {requester.id} | await self.ledger.decided_targets(requester.id)

            candidates: List[Profile] = []
            async with aclosing(self.profiles.candidate_pool(excluding, filters, cursor=cursor)) as pool:
                async for profile in pool:
                    candidates.append(profile)
                    if len(candidates) >= size:
                        break

            exhausted = not candidates
            span.set_data("count", len(candidates))
            span.set_data("excluded", len(excluding))

            if exhausted:
                logger.info("Candidate pool exhausted", user_id=requester.id)
            else:
                logger.debug("Discovery batch built", user_id=requester.id, count=len(candidates))

            return DiscoveryBatch(
                profiles=candidates,
                exhausted=exhausted,
                next_cursor=candidates[-1].id if candidates else None,
            )
