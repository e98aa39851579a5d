"""Profile directory service for the SwipeMatch engine."""

from typing import Any, AsyncIterator, Optional, Set

import sentry_sdk

from swipematch.config import settings
from swipematch.models.profile import DiscoveryFilters, Profile
from swipematch.storage.base import Storage
from swipematch.utils.errors import NotFoundError, ProfileOwnershipError, ValidationError
from swipematch.utils.helpers import utcnow
from swipematch.utils.identity import IdentityGuard, identity_guard
from swipematch.utils.logging import get_logger

logger = get_logger(__name__)

# Fields an owner may never change through update_profile
IMMUTABLE_FIELDS = {"id", "created_at"}


class ProfileDirectory:
    """Stores and retrieves profiles and supplies candidate pools for discovery."""

    def __init__(
        self,
        storage: Storage,
        guard: IdentityGuard = identity_guard,
        page_size: Optional[int] = None,
    ) -> None:
        self.storage = storage
        self.guard = guard
        self.page_size = page_size or settings.CANDIDATE_PAGE_SIZE

    async def get(self, user_id: str) -> Profile:
        """Get a profile by ID.

        Args:
            user_id: User ID

        Returns:
            Profile object

        Raises:
            InvalidIdentifierError: If the id is malformed
            NotFoundError: If profile not found
        """
        user_id = self.guard.validate(user_id)
        with sentry_sdk.start_span(op="profile.get", name=user_id) as span:
            profile = await self.storage.get_profile(user_id)
            if profile is None:
                logger.warning("Profile not found", user_id=user_id)
                span.set_status("not_found")
                raise NotFoundError(f"Profile not found: {user_id}", details={"user_id": user_id})
            return profile

    async def exists(self, user_id: str) -> bool:
        user_id = self.guard.validate(user_id)
        return await self.storage.get_profile(user_id) is not None

    async def upsert(self, profile: Profile) -> Profile:
        """Create or replace a profile, idempotent by id.

        An existing record keeps its original `created_at`.

        Args:
            profile: Profile to store

        Returns:
            Stored profile
        """
        self.guard.validate(profile.id)
        with sentry_sdk.start_span(op="profile.upsert", name=profile.id):
            existing = await self.storage.get_profile(profile.id)
            now = utcnow()
            if existing is not None:
                profile = profile.model_copy(update={"created_at": existing.created_at, "updated_at": now})
                logger.debug("Profile replaced", user_id=profile.id)
            else:
                logger.info("Profile created", user_id=profile.id)
            return await self.storage.save_profile(profile)

    async def update_profile(self, actor: str, user_id: str, **changes: Any) -> Profile:
        """Update fields of a profile on behalf of its owner.

        Args:
            actor: User performing the update
            user_id: Profile to update
            **changes: Field values to change

        Returns:
            Updated profile

        Raises:
            ProfileOwnershipError: If actor is not the profile owner
            ValidationError: If an immutable or unknown field is changed, or a value is invalid
            NotFoundError: If profile not found
        """
        actor = self.guard.validate(actor, "actor")
        user_id = self.guard.validate(user_id)
        if actor != user_id:
            logger.warning("Rejected profile update by non-owner", actor=actor, user_id=user_id)
            raise ProfileOwnershipError(
                "Only the owner can modify a profile", details={"actor": actor, "user_id": user_id}
            )

        forbidden = IMMUTABLE_FIELDS.intersection(changes)
        unknown = set(changes) - set(Profile.model_fields)
        if forbidden or unknown:
            raise ValidationError(
                "Invalid profile fields",
                details={"immutable": sorted(forbidden), "unknown": sorted(unknown)},
            )

        profile = await self.get(user_id)
        data = profile.model_dump()
        data.update(changes)
        data["updated_at"] = utcnow()
        try:
            updated = Profile.model_validate(data)
        except ValueError as e:
            raise ValidationError("Invalid profile update", details={"error": str(e)}) from e

        logger.info("Profile updated", user_id=user_id, fields=sorted(changes))
        return await self.storage.save_profile(updated)

    async def deactivate(self, actor: str, user_id: str) -> Profile:
        """Soft-delete a profile. It stays readable but leaves the candidate pool."""
        profile = await self.update_profile(actor, user_id, is_active=False)
        logger.info("Profile deactivated", user_id=user_id)
        return profile

    async def touch(self, user_id: str) -> Profile:
        """Record that the user was active just now."""
        profile = await self.get(user_id)
        now = utcnow()
        return await self.storage.save_profile(profile.model_copy(update={"last_active_at": now}))

    async def candidate_pool(
        self,
        excluding: Set[str],
        filters: Optional[DiscoveryFilters] = None,
        cursor: Optional[str] = None,
    ) -> AsyncIterator[Profile]:
        """Lazily yield profiles eligible for discovery.

        Profiles come in ascending id order, which is deterministic for a
        fixed snapshot. Every call re-reads current state; pass `cursor` (the
        last id already seen) to resume after it instead.

        Args:
            excluding: User ids that must not be yielded
            filters: Optional filter predicates
            cursor: Resume strictly after this profile id

        Yields:
            Active profiles not in `excluding` that satisfy `filters`
        """
        filters = filters or DiscoveryFilters()
        now = utcnow()
        after = cursor
        while True:
            page = await self.storage.list_profiles(after=after, limit=self.page_size)
            if not page:
                return
            for profile in page:
                if profile.id in excluding or not profile.is_active:
                    continue
                if filters.matches(profile, now=now):
                    yield profile
            if len(page) < self.page_size:
                return
            after = page[-1].id
