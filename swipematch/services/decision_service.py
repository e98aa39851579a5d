"""Decision ledger: records Like/Pass decisions and detects mutual likes."""

from typing import Optional, Set

import sentry_sdk

from swipematch.custom_types import pair_key
from swipematch.models.decision import Decision, DecisionKind, DecisionResult, PairState
from swipematch.services.profile_service import ProfileDirectory
from swipematch.storage.base import Storage
from swipematch.utils.errors import NotFoundError, ValidationError
from swipematch.utils.helpers import utcnow
from swipematch.utils.identity import IdentityGuard, identity_guard
from swipematch.utils.locks import KeyedLocks
from swipematch.utils.logging import get_logger

logger = get_logger(__name__)


class DecisionLedger:
    """
    One-directional decision ledger.

    Each unordered pair moves through `PairState`: undecided, one side
    decided, both decided. Only both sides liking reports a mutual like.
    Recording a decision never creates a match; the caller materializes it.
    """

    def __init__(
        self,
        storage: Storage,
        profiles: ProfileDirectory,
        guard: IdentityGuard = identity_guard,
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        self.storage = storage
        self.profiles = profiles
        self.guard = guard
        # Shared with MatchRegistry so both serialise on the same pair key
        self.locks = locks if locks is not None else KeyedLocks()

    async def record_decision(self, actor: str, target: str, kind: DecisionKind | str) -> DecisionResult:
        """
        Record (or overwrite) the decision `actor` made about `target`.

        The write and the reverse lookup are one storage step taken under the
        pair lock, so when both users like each other concurrently exactly
        one call sees the mutual like. Shared SQL backends also lock the pair
        across processes.

        Args:
            actor (str): User making the decision.
            target (str): User being decided on.
            kind (DecisionKind | str): Like or pass.

        Returns:
            DecisionResult: The stored decision and whether it completed a mutual like.

        Raises:
            InvalidIdentifierError: If either id is malformed.
            SelfReferenceNotAllowedError: If actor and target are the same.
            NotFoundError: If either profile does not exist.
        """
        actor_id, target_id = self.guard.validate_pair(actor, target)
        try:
            kind = DecisionKind(kind)
        except ValueError as e:
            raise ValidationError(f"Unknown decision kind: {kind}", details={"kind": str(kind)}) from e

        with sentry_sdk.start_span(op="decision.record", name=f"{actor_id} -> {target_id}") as span:
            for user_id in (actor_id, target_id):
                if not await self.profiles.exists(user_id):
                    logger.warning("Decision references unknown profile", user_id=user_id)
                    span.set_status("not_found")
                    raise NotFoundError(f"Profile not found: {user_id}", details={"user_id": user_id})

            async with self.locks.hold(pair_key(actor_id, target_id)):
                decision = Decision(actor=actor_id, target=target_id, kind=kind, at=utcnow())
                previous, reverse = await self.storage.save_decision(decision)

            mutual_like = decision.is_like and reverse is not None and reverse.is_like
            span.set_data("kind", kind.value)
            span.set_data("mutual_like", mutual_like)

            logger.info(
                "Decision recorded",
                actor=actor_id,
                target=target_id,
                kind=kind.value,
                previous=previous.kind.value if previous else None,
                mutual_like=mutual_like,
            )
            return DecisionResult(decision=decision, mutual_like=mutual_like)

    async def get_decision(self, actor: str, target: str) -> Optional[Decision]:
        actor_id, target_id = self.guard.validate_pair(actor, target)
        return await self.storage.get_decision(actor_id, target_id)

    async def decided_targets(self, actor: str) -> Set[str]:
        """Return every user the actor has liked or passed."""
        return await self.storage.decided_targets(self.guard.validate(actor, "actor"))

    async def pair_state(self, user_a: str, user_b: str) -> PairState:
        """
        Return the decision state of an unordered pair.

        `FIRST_DECIDED` means only the lower id of the pair has decided.
        """
        user_a, user_b = self.guard.validate_pair(user_a, user_b)
        low, high = pair_key(user_a, user_b)
        low_decided = await self.storage.get_decision(low, high) is not None
        high_decided = await self.storage.get_decision(high, low) is not None
        if low_decided and high_decided:
            return PairState.BOTH_DECIDED
        if low_decided:
            return PairState.FIRST_DECIDED
        if high_decided:
            return PairState.SECOND_DECIDED
        return PairState.UNDECIDED
