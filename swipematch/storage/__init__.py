"""Storage backends for the SwipeMatch engine."""

from swipematch.config import Settings, settings
from swipematch.storage.base import Storage
from swipematch.storage.memory import InMemoryStorage
from swipematch.utils.logging import get_logger

logger = get_logger(__name__)


def create_storage(config: Settings = settings) -> Storage:
    """
    Build the storage backend selected by configuration.

    An empty `DATABASE_URL` selects the in-memory backend.

    Args:
        config (Settings): Settings to read `DATABASE_URL` from.

    Returns:
        Storage: The configured backend.
    """
    if not config.DATABASE_URL:
        logger.info("Using in-memory storage")
        return InMemoryStorage()

    from swipematch.storage.sql import SqlStorage

    logger.info("Using SQL storage")
    return SqlStorage.from_url(config.DATABASE_URL, echo=config.DEBUG and config.LOG_LEVEL.upper() == "DEBUG")


__all__ = ["InMemoryStorage", "Storage", "create_storage"]
