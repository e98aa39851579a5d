import pytest

from swipematch.models import DiscoveryFilters
from swipematch.services.profile_service import ProfileDirectory
from swipematch.utils.errors import (
    InvalidIdentifierError,
    NotFoundError,
    ProfileOwnershipError,
    ValidationError,
)
from tests.conftest import make_profile


@pytest.mark.asyncio
async def test_upsert_and_get(engine):
    stored = await engine.profiles.upsert(make_profile("u1", bio="hello"))

    assert await engine.profiles.get("u1") == stored
    assert await engine.profiles.exists("u1")
    assert not await engine.profiles.exists("u2")


@pytest.mark.asyncio
async def test_upsert_is_idempotent_and_keeps_created_at(engine):
    first = await engine.profiles.upsert(make_profile("u1"))
    second = await engine.profiles.upsert(make_profile("u1", display_name="Renamed"))

    assert second.created_at == first.created_at
    assert second.updated_at >= first.updated_at
    assert (await engine.profiles.get("u1")).display_name == "Renamed"


@pytest.mark.asyncio
async def test_get_missing_profile(engine):
    with pytest.raises(NotFoundError) as exc_info:
        await engine.profiles.get("u404")
    assert exc_info.value.details == {"user_id": "u404"}


@pytest.mark.asyncio
async def test_get_malformed_id(engine):
    with pytest.raises(InvalidIdentifierError):
        await engine.profiles.get("not valid")


class TestUpdateProfile:
    @pytest.mark.asyncio
    async def test_owner_can_update(self, engine, seed):
        await seed("u1")

        updated = await engine.profiles.update_profile("u1", "u1", bio="new bio", interests=["Chess"])

        assert updated.bio == "new bio"
        assert updated.interests == frozenset({"chess"})
        assert await engine.profiles.get("u1") == updated

    @pytest.mark.asyncio
    async def test_non_owner_rejected(self, engine, seed):
        await seed("u1", "u2")

        with pytest.raises(ProfileOwnershipError):
            await engine.profiles.update_profile("u2", "u1", bio="hacked")

        assert (await engine.profiles.get("u1")).bio == ""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("field", ["id", "created_at", "password"])
    async def test_immutable_or_unknown_fields_rejected(self, engine, seed, field):
        await seed("u1")

        with pytest.raises(ValidationError):
            await engine.profiles.update_profile("u1", "u1", **{field: "x"})

    @pytest.mark.asyncio
    async def test_invalid_value_rejected(self, engine, seed):
        await seed("u1")

        with pytest.raises(ValidationError):
            await engine.profiles.update_profile("u1", "u1", age=12)

    @pytest.mark.asyncio
    async def test_deactivate(self, engine, seed):
        await seed("u1")

        profile = await engine.profiles.deactivate("u1", "u1")

        assert profile.is_active is False
        assert (await engine.profiles.get("u1")).is_active is False


@pytest.mark.asyncio
async def test_touch_updates_last_active(engine, seed):
    (before,) = await seed("u1")

    after = await engine.profiles.touch("u1")

    assert after.last_active_at >= before.last_active_at


class TestCandidatePool:
    @pytest.mark.asyncio
    async def test_yields_in_id_order_across_pages(self, storage):
        directory = ProfileDirectory(storage, page_size=2)
        for uid in ["u5", "u1", "u4", "u2", "u3"]:
            await directory.upsert(make_profile(uid))

        ids = [p.id async for p in directory.candidate_pool(excluding={"u2"})]

        assert ids == ["u1", "u3", "u4", "u5"]

    @pytest.mark.asyncio
    async def test_skips_inactive_and_filtered(self, storage):
        directory = ProfileDirectory(storage, page_size=2)
        await directory.upsert(make_profile("u1", age=30))
        await directory.upsert(make_profile("u2", age=50))
        await directory.upsert(make_profile("u3", age=31, is_active=False))

        pool = directory.candidate_pool(excluding=set(), filters=DiscoveryFilters(max_age=40))

        assert [p.id async for p in pool] == ["u1"]

    @pytest.mark.asyncio
    async def test_resumes_after_cursor(self, storage):
        directory = ProfileDirectory(storage)
        for uid in ["u1", "u2", "u3"]:
            await directory.upsert(make_profile(uid))

        ids = [p.id async for p in directory.candidate_pool(excluding=set(), cursor="u1")]

        assert ids == ["u2", "u3"]
