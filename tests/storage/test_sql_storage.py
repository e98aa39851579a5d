from datetime import timedelta
from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy.exc import IntegrityError, OperationalError

from swipematch.config import Settings
from swipematch.engine import MatchEngine
from swipematch.models import Decision, DecisionKind, Match, Message
from swipematch.storage import create_storage
from swipematch.storage.sql import SqlStorage
from swipematch.utils.errors import ConflictError, StorageUnavailableError
from swipematch.utils.helpers import utcnow
from tests.conftest import make_profile


@pytest_asyncio.fixture
async def sql_storage():
    storage = SqlStorage.from_url("sqlite://")
    yield storage
    await storage.close()


@pytest_asyncio.fixture
async def sql_engine(sql_storage):
    engine = MatchEngine(sql_storage)
    yield engine
    await engine.close()


@pytest.mark.asyncio
async def test_profile_round_trip(sql_storage):
    profile = make_profile("u1", interests=["chess", "art"], gender="female", avatar_ref="img/1")

    await sql_storage.save_profile(profile)

    assert await sql_storage.get_profile("u1") == profile
    assert await sql_storage.get_profile("u2") is None


@pytest.mark.asyncio
async def test_list_profiles_paged_by_id(sql_storage):
    for uid in ["u3", "u1", "u2"]:
        await sql_storage.save_profile(make_profile(uid))

    assert [p.id for p in await sql_storage.list_profiles(after=None, limit=2)] == ["u1", "u2"]
    assert [p.id for p in await sql_storage.list_profiles(after="u2", limit=2)] == ["u3"]


@pytest.mark.asyncio
async def test_decision_overwrite(sql_storage):
    for uid in ["u1", "u2"]:
        await sql_storage.save_profile(make_profile(uid))

    assert await sql_storage.save_decision(Decision(actor="u1", target="u2", kind=DecisionKind.LIKE)) == (None, None)
    previous, reverse = await sql_storage.save_decision(Decision(actor="u1", target="u2", kind=DecisionKind.PASS))

    assert previous.kind == DecisionKind.LIKE
    assert reverse is None
    assert (await sql_storage.get_decision("u1", "u2")).kind == DecisionKind.PASS
    assert await sql_storage.decided_targets("u1") == {"u2"}


@pytest.mark.asyncio
async def test_decision_write_returns_reverse(sql_storage):
    for uid in ["u1", "u2"]:
        await sql_storage.save_profile(make_profile(uid))
    await sql_storage.save_decision(Decision(actor="u1", target="u2", kind=DecisionKind.LIKE))

    previous, reverse = await sql_storage.save_decision(Decision(actor="u2", target="u1", kind=DecisionKind.LIKE))

    assert previous is None
    assert (reverse.actor, reverse.kind) == ("u1", DecisionKind.LIKE)


@pytest.mark.asyncio
async def test_insert_match_is_unique_per_pair(sql_storage):
    first, created = await sql_storage.insert_match(Match(id="m1", participants=frozenset({"u1", "u2"})))
    second, created_again = await sql_storage.insert_match(Match(id="m2", participants=frozenset({"u2", "u1"})))

    assert created is True
    assert created_again is False
    assert second.id == first.id == "m1"
    assert await sql_storage.get_match_by_pair("u2", "u1") == first
    assert await sql_storage.get_match("m2") is None


@pytest.mark.asyncio
async def test_matches_for_newest_first(sql_storage):
    now = utcnow()
    await sql_storage.insert_match(
        Match(id="m-old", participants=frozenset({"u1", "u2"}), created_at=now - timedelta(hours=1))
    )
    await sql_storage.insert_match(Match(id="m-new", participants=frozenset({"u3", "u1"}), created_at=now))

    assert [m.id for m in await sql_storage.matches_for("u1")] == ["m-new", "m-old"]
    assert [m.id for m in await sql_storage.matches_for("u3")] == ["m-new"]


@pytest.mark.asyncio
async def test_duplicate_message_sequence_conflicts(sql_storage):
    await sql_storage.insert_match(Match(id="m1", participants=frozenset({"u1", "u2"})))
    await sql_storage.insert_message(Message(id="a", match_id="m1", sender="u1", content="hi", sequence=1))

    with pytest.raises(ConflictError):
        await sql_storage.insert_message(Message(id="b", match_id="m1", sender="u2", content="yo", sequence=1))

    assert [m.id for m in await sql_storage.list_messages("m1")] == ["a"]


@pytest.mark.asyncio
async def test_read_cursor_defaults_to_zero(sql_storage):
    assert await sql_storage.get_read_cursor("m1", "u1") == 0

    await sql_storage.set_read_cursor("m1", "u1", 4)

    assert await sql_storage.get_read_cursor("m1", "u1") == 4


@pytest.mark.asyncio
async def test_driver_errors_become_storage_unavailable(sql_storage):
    with patch.object(
        sql_storage.database,
        "session",
        side_effect=OperationalError("SELECT 1", {}, Exception("database is locked")),
    ):
        with pytest.raises(StorageUnavailableError) as exc_info:
            await sql_storage.get_profile("u1")

    assert exc_info.value.details["operation"] == "profiles.get"


@pytest.mark.asyncio
async def test_engine_flow_on_sql(sql_engine):
    for uid in ["u1", "u2", "u3"]:
        await sql_engine.profiles.upsert(make_profile(uid))

    await sql_engine.swipe("u1", "u2", "like")
    outcome = await sql_engine.swipe("u2", "u1", "like")
    await sql_engine.conversations.send(outcome.match.id, "u1", "hi")
    await sql_engine.conversations.send(outcome.match.id, "u2", "hello")

    history = await sql_engine.conversations.history(outcome.match.id, "u1")
    assert [m.sequence for m in history] == [1, 2]
    assert await sql_engine.conversations.unread_count(outcome.match.id, "u1") == 1
    assert await sql_engine.conversations.mark_read(outcome.match.id, "u1") == 2

    batch = await sql_engine.discovery.next_batch("u1")
    assert [p.id for p in batch.profiles] == ["u3"]

    (view,) = await sql_engine.match_views("u2")
    assert view.partner.id == "u1"
    assert view.last_message.content == "hello"


def test_create_storage_selects_sql_backend():
    storage = create_storage(Settings(DATABASE_URL="sqlite://"))

    assert isinstance(storage, SqlStorage)
    storage.database.dispose()


@pytest.mark.asyncio
async def test_unique_violations_become_conflicts(sql_storage):
    error = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

    with patch("sqlalchemy.orm.Session.merge", side_effect=error):
        with pytest.raises(ConflictError) as profile_exc:
            await sql_storage.save_profile(make_profile("u1"))
        with pytest.raises(ConflictError) as cursor_exc:
            await sql_storage.set_read_cursor("m1", "u1", 2)

    assert profile_exc.value.status_code == 409
    assert profile_exc.value.details["operation"] == "profiles.save"
    assert cursor_exc.value.details["operation"] == "read_cursors.set"
    assert await sql_storage.get_profile("u1") is None
