"""Small shared helpers."""

import uuid
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Get current UTC time (naive) so values compare cleanly with database columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC. Naive values are already taken as UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    """Generate a fresh opaque record id."""
    return str(uuid.uuid4())
