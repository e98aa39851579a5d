"""Engine facade wiring storage, identity checks and services together."""

from typing import List, Optional

import sentry_sdk

from swipematch.config import Settings, settings
from swipematch.models.decision import DecisionKind
from swipematch.models.match import MatchView, SwipeOutcome
from swipematch.services.conversation_service import ConversationStore
from swipematch.services.decision_service import DecisionLedger
from swipematch.services.discovery_service import DiscoveryPlanner
from swipematch.services.events import EventDispatcher
from swipematch.services.match_service import MatchRegistry
from swipematch.services.profile_service import ProfileDirectory
from swipematch.storage import create_storage
from swipematch.storage.base import Storage
from swipematch.storage.memory import InMemoryStorage
from swipematch.utils.errors import MutualLikeRequiredError, NotFoundError
from swipematch.utils.identity import IdentityGuard
from swipematch.utils.locks import KeyedLocks
from swipematch.utils.logging import get_logger

logger = get_logger(__name__)


class MatchEngine:
    """Matching and conversation engine."""

    def __init__(self, storage: Storage, events: Optional[EventDispatcher] = None) -> None:
        """Build every component on top of one storage backend.

        Args:
            storage: Storage backend shared by all components
            events: Dispatcher receiving MutualLike and MessageSent events
        """
        self.storage = storage
        self.events = events or EventDispatcher()
        self.guard = IdentityGuard()
        pair_locks = KeyedLocks()

        self.profiles = ProfileDirectory(storage, self.guard)
        self.ledger = DecisionLedger(storage, self.profiles, self.guard, locks=pair_locks)
        self.matches = MatchRegistry(storage, self.guard, locks=pair_locks, events=self.events)
        self.conversations = ConversationStore(storage, self.matches, self.guard, events=self.events)
        self.discovery = DiscoveryPlanner(self.profiles, self.ledger)

        logger.info("Match engine initialized", storage=type(storage).__name__)

    @classmethod
    def in_memory(cls) -> "MatchEngine":
        return cls(InMemoryStorage())

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "MatchEngine":
        return cls(create_storage(config))

    async def swipe(self, actor: str, target: str, kind: DecisionKind | str) -> SwipeOutcome:
        """Record a decision and materialize the match when it completes a mutual like.

        Args:
            actor: User swiping
            target: User being swiped on
            kind: Like or pass

        Returns:
            The decision, the mutual-like flag and the match if one exists now
        """
        with sentry_sdk.start_span(op="engine.swipe", name=f"{actor} -> {target}"):
            result = await self.ledger.record_decision(actor, target, kind)
            match = None
            if result.mutual_like:
                try:
                    match = await self.matches.materialize(result.decision.actor, result.decision.target)
                except MutualLikeRequiredError:
                    # The other side switched to pass between the two steps
                    logger.info("Mutual like withdrawn before match creation", actor=actor, target=target)
            return SwipeOutcome(decision=result.decision, mutual_like=result.mutual_like, match=match)

    async def match_views(self, user_id: str) -> List[MatchView]:
        """Get user-friendly views of a user's matches, newest first.

        Matches whose partner profile is missing are skipped with a warning.

        Raises:
            NotFoundError: If the user has no profile
        """
        me = await self.profiles.get(user_id)
        views = []
        for match in await self.matches.find_by_participant(user_id):
            partner_id = match.counterpart(user_id)
            try:
                partner = await self.profiles.get(partner_id)
            except NotFoundError as e:
                logger.warning("Failed to create match view", match_id=match.id, user_id=user_id, error=str(e))
                continue
            views.append(
                MatchView(
                    match=match,
                    partner=partner,
                    common_interests=sorted(me.shared_interests(partner)),
                    last_message=await self.storage.last_message(match.id),
                    unread_count=await self.conversations.unread_count(match.id, user_id),
                )
            )
        return views

    async def close(self) -> None:
        """Close subscriptions, flush pending events and release storage."""
        self.conversations.close_all()
        await self.events.drain()
        await self.storage.close()
        logger.info("Match engine closed")
