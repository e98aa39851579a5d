import asyncio
from datetime import timedelta

import pytest

from swipematch.models import EventType, Match
from swipematch.utils.errors import (
    InvalidIdentifierError,
    MatchNotFoundError,
    MutualLikeRequiredError,
    SelfReferenceNotAllowedError,
)
from swipematch.utils.helpers import utcnow


async def mutual_like(engine, a: str, b: str) -> None:
    await engine.ledger.record_decision(a, b, "like")
    await engine.ledger.record_decision(b, a, "like")


@pytest.mark.asyncio
async def test_materialize_creates_match_once(engine, seed, events, received_events):
    await seed("u1", "u2")
    await mutual_like(engine, "u1", "u2")

    first = await engine.matches.materialize("u1", "u2")
    second = await engine.matches.materialize("u2", "u1")
    await events.drain()

    assert first == second
    assert first.participants == frozenset({"u1", "u2"})
    assert [e.type for e in received_events] == [EventType.MUTUAL_LIKE]
    assert sorted(received_events[0].recipients) == ["u1", "u2"]
    assert received_events[0].payload == {"match_id": first.id}


@pytest.mark.asyncio
async def test_materialize_requires_mutual_like(engine, storage, seed):
    await seed("u1", "u2")
    await engine.ledger.record_decision("u1", "u2", "like")

    with pytest.raises(MutualLikeRequiredError):
        await engine.matches.materialize("u1", "u2")

    assert storage.matches == {}


@pytest.mark.asyncio
async def test_existing_match_survives_later_pass(engine, seed):
    await seed("u1", "u2")
    await mutual_like(engine, "u1", "u2")
    created = await engine.matches.materialize("u1", "u2")

    await engine.ledger.record_decision("u1", "u2", "pass")

    assert await engine.matches.materialize("u1", "u2") == created
    assert await engine.matches.find_by_pair("u2", "u1") == created


@pytest.mark.asyncio
async def test_materialize_validates_ids(engine):
    with pytest.raises(SelfReferenceNotAllowedError):
        await engine.matches.materialize("u1", "u1")
    with pytest.raises(InvalidIdentifierError):
        await engine.matches.materialize("u1", "bad id")


@pytest.mark.asyncio
async def test_concurrent_materialize_yields_one_match(engine, storage, seed):
    await seed("u1", "u2")
    await mutual_like(engine, "u1", "u2")

    results = await asyncio.gather(*(engine.matches.materialize("u1", "u2") for _ in range(5)))

    assert len({m.id for m in results}) == 1
    assert len(storage.matches) == 1


@pytest.mark.asyncio
async def test_get_unknown_match(engine):
    with pytest.raises(MatchNotFoundError):
        await engine.matches.get("missing")


@pytest.mark.asyncio
async def test_find_by_participant_newest_first(engine, storage):
    now = utcnow()
    older = Match(id="m-old", participants=frozenset({"u1", "u2"}), created_at=now - timedelta(minutes=5))
    newer = Match(id="m-new", participants=frozenset({"u1", "u3"}), created_at=now)
    await storage.insert_match(older)
    await storage.insert_match(newer)

    assert [m.id for m in await engine.matches.find_by_participant("u1")] == ["m-new", "m-old"]
    assert await engine.matches.find_by_participant("u2") == [older]
    assert await engine.matches.find_by_participant("nobody") == []


@pytest.mark.asyncio
async def test_counterpart(engine, match):
    assert engine.matches.counterpart(match, "u1") == "u2"
    with pytest.raises(ValueError):
        engine.matches.counterpart(match, "u3")
