"""pytest configuration and fixtures."""

from typing import Any, Awaitable, Callable, List

import pytest
import pytest_asyncio

from swipematch.engine import MatchEngine
from swipematch.models import Event, Profile
from swipematch.services.events import EventDispatcher
from swipematch.storage.memory import InMemoryStorage


def make_profile(user_id: str, **overrides: Any) -> Profile:
    """Build a valid profile with sensible defaults."""
    data: dict[str, Any] = {
        "id": user_id,
        "display_name": user_id.upper(),
        "age": 25,
        "interests": ["music", "hiking"],
    }
    data.update(overrides)
    return Profile(**data)


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def events() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture
def received_events(events: EventDispatcher) -> List[Event]:
    """Collect every event published on the `events` dispatcher."""
    received: List[Event] = []

    async def handler(event: Event) -> None:
        received.append(event)

    events.subscribe(handler)
    return received


@pytest_asyncio.fixture
async def engine(storage: InMemoryStorage, events: EventDispatcher):
    engine = MatchEngine(storage, events=events)
    yield engine
    await engine.close()


@pytest.fixture
def seed(engine: MatchEngine) -> Callable[..., Awaitable[List[Profile]]]:
    """Store one default profile per id and return them."""

    async def _seed(*user_ids: str, **overrides: Any) -> List[Profile]:
        return [await engine.profiles.upsert(make_profile(uid, **overrides)) for uid in user_ids]

    return _seed


@pytest_asyncio.fixture
async def match(engine: MatchEngine, seed):
    """A confirmed match between u1 and u2."""
    await seed("u1", "u2")
    await engine.swipe("u1", "u2", "like")
    outcome = await engine.swipe("u2", "u1", "like")
    return outcome.match
