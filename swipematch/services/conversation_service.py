"""Conversation service: append-only message log scoped to a match."""

import asyncio
from typing import Dict, List, Optional, Set

import sentry_sdk

from swipematch.config import settings
from swipematch.models.conversation import Event, EventType, Message
from swipematch.models.match import Match
from swipematch.services.events import EventDispatcher
from swipematch.services.match_service import MatchRegistry
from swipematch.storage.base import Storage
from swipematch.utils.errors import (
    ContentTooLongError,
    EmptyContentError,
    NotAMatchParticipantError,
    ValidationError,
)
from swipematch.utils.helpers import new_id, utcnow
from swipematch.utils.identity import IdentityGuard, identity_guard
from swipematch.utils.locks import KeyedLocks
from swipematch.utils.logging import get_logger

logger = get_logger(__name__)

_CLOSED = object()


class MessageSubscription:
    """
    Live feed of new messages in one match.

    Iterate with `async for`; the loop ends once `unsubscribe()` is called.
    Also usable as an async context manager that unsubscribes on exit.
    """

    def __init__(self, store: "ConversationStore", match_id: str, subscriber: str, max_queue: int) -> None:
        self.match_id = match_id
        self.subscriber = subscriber
        self._store = store
        self._queue: asyncio.Queue[object] = asyncio.Queue(maxsize=max_queue + 1)
        self._max_queue = max_queue
        self.closed = False

    def _deliver(self, message: Message) -> None:
        if self.closed:
            return
        if self._queue.qsize() >= self._max_queue:
            # Slow consumer: drop the oldest message, history() can backfill it
            self._queue.get_nowait()
            logger.warning(
                "Subscription queue full, dropped oldest message",
                match_id=self.match_id,
                subscriber=self.subscriber,
            )
        self._queue.put_nowait(message)

    def unsubscribe(self) -> None:
        """Stop delivery. Pending and future messages are discarded."""
        if self.closed:
            return
        self.closed = True
        self._store._remove_subscription(self)
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)
        logger.debug("Subscription closed", match_id=self.match_id, subscriber=self.subscriber)

    def __aiter__(self) -> "MessageSubscription":
        return self

    async def __anext__(self) -> Message:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self.closed:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]

    async def __aenter__(self) -> "MessageSubscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.unsubscribe()


class ConversationStore:
    """
    Append-only message log per match.

    Only the two participants of a match may send or read its messages.
    Sequence numbers are assigned under a per-match lock, and timestamps are
    kept non-decreasing, so `(at, sequence)` order always equals send order.
    """

    def __init__(
        self,
        storage: Storage,
        matches: MatchRegistry,
        guard: IdentityGuard = identity_guard,
        events: Optional[EventDispatcher] = None,
        max_length: Optional[int] = None,
        max_queue: Optional[int] = None,
    ) -> None:
        self.storage = storage
        self.matches = matches
        self.guard = guard
        self.events = events
        self.max_length = max_length or settings.MAX_MESSAGE_LENGTH
        self.max_queue = max_queue or settings.SUBSCRIPTION_QUEUE_SIZE
        self.locks = KeyedLocks()
        self._subscriptions: Dict[str, Set[MessageSubscription]] = {}

    def _check_content(self, content: str) -> None:
        if not isinstance(content, str):
            raise ValidationError("Message content must be a string")
        trimmed = content.strip()
        if not trimmed:
            raise EmptyContentError("Message content cannot be empty")
        if len(trimmed) > self.max_length:
            raise ContentTooLongError(
                f"Message content exceeds {self.max_length} characters",
                details={"length": len(trimmed), "max_length": self.max_length},
            )

    async def _participant_match(self, match_id: str, user_id: str, label: str) -> Match:
        user_id = self.guard.validate(user_id, label)
        match = await self.matches.get(match_id)
        if not match.involves(user_id):
            logger.warning("User not part of match", match_id=match.id, user_id=user_id)
            raise NotAMatchParticipantError(
                "User is not a participant of this match",
                details={"match_id": match.id, "user_id": user_id},
            )
        return match

    async def send(self, match_id: str, sender: str, content: str) -> Message:
        """Send a message within a match.

        Args:
            match_id: Match ID
            sender: Sending user, must be a participant
            content: Message text, 1..max_length characters after trimming; stored as given

        Returns:
            The appended message

        Raises:
            EmptyContentError: If content is blank
            ContentTooLongError: If content is too long
            MatchNotFoundError: If match not found
            NotAMatchParticipantError: If sender is not in the match
        """
        self._check_content(content)
        match = await self._participant_match(match_id, sender, "sender")

        with sentry_sdk.start_span(op="message.send", name=match.id) as span:
            async with self.locks.hold(match.id):
                last = await self.storage.last_message(match.id)
                now = utcnow()
                message = Message(
                    id=new_id(),
                    match_id=match.id,
                    sender=sender,
                    content=content,
                    sequence=last.sequence + 1 if last else 1,
                    at=max(now, last.at) if last else now,
                )
                message = await self.storage.insert_message(message)
                for subscription in list(self._subscriptions.get(match.id, ())):
                    subscription._deliver(message)

            span.set_data("sequence", message.sequence)

        logger.info("Message sent", match_id=match.id, sender=sender, sequence=message.sequence)
        if self.events is not None:
            self.events.publish(
                Event(
                    type=EventType.MESSAGE_SENT,
                    recipients=[match.counterpart(sender)],
                    payload={"match_id": match.id, "message_id": message.id, "sender": sender},
                )
            )
        return message

    async def history(
        self,
        match_id: str,
        requester: str,
        after_sequence: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Message]:
        """Get the messages of a match in chronological order.

        Args:
            match_id: Match ID
            requester: Reading user, must be a participant
            after_sequence: Only return messages with a higher sequence
            limit: Maximum number of messages

        Returns:
            Messages ordered by timestamp, then sequence

        Raises:
            MatchNotFoundError: If match not found
            NotAMatchParticipantError: If requester is not in the match
        """
        match = await self._participant_match(match_id, requester, "requester")
        return await self.storage.list_messages(match.id, after_sequence=after_sequence, limit=limit)

    async def stream_new(self, match_id: str, requester: str) -> MessageSubscription:
        """Subscribe to messages sent in a match from now on.

        Raises:
            MatchNotFoundError: If match not found
            NotAMatchParticipantError: If requester is not in the match
        """
        match = await self._participant_match(match_id, requester, "requester")
        subscription = MessageSubscription(self, match.id, requester, self.max_queue)
        self._subscriptions.setdefault(match.id, set()).add(subscription)
        logger.debug("Subscription opened", match_id=match.id, subscriber=requester)
        return subscription

    def _remove_subscription(self, subscription: MessageSubscription) -> None:
        subscribers = self._subscriptions.get(subscription.match_id)
        if not subscribers:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscriptions[subscription.match_id]

    def subscriber_count(self, match_id: Optional[str] = None) -> int:
        if match_id is not None:
            return len(self._subscriptions.get(match_id, ()))
        return sum(len(subs) for subs in self._subscriptions.values())

    def close_all(self) -> None:
        """Unsubscribe every open subscription. Used on shutdown."""
        for subscribers in list(self._subscriptions.values()):
            for subscription in list(subscribers):
                subscription.unsubscribe()

    async def last_message(self, match_id: str, requester: str) -> Optional[Message]:
        match = await self._participant_match(match_id, requester, "requester")
        return await self.storage.last_message(match.id)

    async def mark_read(self, match_id: str, reader: str, up_to_sequence: Optional[int] = None) -> int:
        """Advance the reader's read cursor.

        The cursor never moves backwards and never passes the latest message.

        Returns:
            The stored cursor value
        """
        match = await self._participant_match(match_id, reader, "reader")
        async with self.locks.hold(match.id):
            last = await self.storage.last_message(match.id)
            latest = last.sequence if last else 0
            target = latest if up_to_sequence is None else min(up_to_sequence, latest)
            current = await self.storage.get_read_cursor(match.id, reader)
            if target <= current:
                return current
            return await self.storage.set_read_cursor(match.id, reader, target)

    async def unread_count(self, match_id: str, reader: str) -> int:
        """Count messages from the other participant past the reader's cursor."""
        match = await self._participant_match(match_id, reader, "reader")
        cursor = await self.storage.get_read_cursor(match.id, reader)
        return await self.storage.count_unread(match.id, reader, cursor)
