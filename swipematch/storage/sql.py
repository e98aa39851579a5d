"""SQLAlchemy storage backend."""

import asyncio
from typing import Any, Callable, List, Optional, Set, Tuple, TypeVar

import sentry_sdk
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from swipematch.custom_types import pair_key
from swipematch.models.conversation import Message
from swipematch.models.decision import Decision, DecisionKind
from swipematch.models.match import Match
from swipematch.models.profile import Profile
from swipematch.storage.base import Storage
from swipematch.utils.database import Database, DecisionDB, MatchDB, MessageDB, ProfileDB, ReadCursorDB
from swipematch.utils.errors import ConflictError, StorageUnavailableError
from swipematch.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _profile_from_row(row: ProfileDB) -> Profile:
    return Profile(
        id=row.id,
        display_name=row.display_name,
        age=row.age,
        bio=row.bio or "",
        interests=row.interests or [],
        avatar_ref=row.avatar_ref,
        gender=row.gender,
        is_active=row.is_active,
        last_active_at=row.last_active_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _decision_from_row(row: DecisionDB) -> Decision:
    return Decision(actor=row.actor, target=row.target, kind=DecisionKind(row.kind), at=row.at)


def _match_from_row(row: MatchDB) -> Match:
    return Match(id=row.id, participants=frozenset({row.user_low, row.user_high}), created_at=row.created_at)


def _message_from_row(row: MessageDB) -> Message:
    return Message(
        id=row.id,
        match_id=row.match_id,
        sender=row.sender,
        content=row.content,
        sequence=row.sequence,
        at=row.at,
    )


class SqlStorage(Storage):
    """
    Storage backed by a relational database through SQLAlchemy.

    Sessions are synchronous; every public method runs its session work in a
    worker thread with `asyncio.to_thread` so the event loop never blocks on
    database I/O. Unique constraints back the pair and sequence invariants
    across processes, and a decision write locks both profile rows so the
    write and the reverse lookup see a consistent pair. Unique-key
    violations surface as `ConflictError`, other driver failures as
    `StorageUnavailableError`.
    """

    def __init__(self, database: Database) -> None:
        self.database = database

    @classmethod
    def from_url(cls, database_url: str, create_tables: bool = True, echo: bool = False) -> "SqlStorage":
        database = Database(database_url, echo=echo)
        if create_tables:
            database.create_tables()
        return cls(database)

    async def _run(self, operation: str, fn: Callable[[Session], T]) -> T:
        """Run `fn` inside a session on a worker thread, mapping driver errors."""

        def work() -> T:
            with sentry_sdk.start_span(op="db.query", name=operation):
                with self.database.session() as session:
                    try:
                        result = fn(session)
                        session.commit()
                        return result
                    except Exception:
                        session.rollback()
                        raise

        try:
            return await asyncio.to_thread(work)
        except IntegrityError as e:
            logger.warning("Concurrent write conflict", operation=operation, error=str(e.orig))
            raise ConflictError(
                "Concurrent write conflict", details={"operation": operation, "error": str(e.orig)}
            ) from e
        except SQLAlchemyError as e:
            logger.error("Database operation failed", operation=operation, error=str(e))
            raise StorageUnavailableError(
                "Storage backend unavailable", details={"operation": operation, "error": str(e)}
            ) from e

    # Profiles

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        def fn(session: Session) -> Optional[Profile]:
            row = session.get(ProfileDB, user_id)
            return _profile_from_row(row) if row else None

        return await self._run("profiles.get", fn)

    async def save_profile(self, profile: Profile) -> Profile:
        def fn(session: Session) -> Profile:
            data: dict[str, Any] = profile.model_dump()
            data["interests"] = sorted(profile.interests)
            session.merge(ProfileDB(**data))
            return profile

        return await self._run("profiles.save", fn)

    async def list_profiles(self, after: Optional[str], limit: int) -> List[Profile]:
        def fn(session: Session) -> List[Profile]:
            stmt = select(ProfileDB).order_by(ProfileDB.id.asc()).limit(limit)
            if after is not None:
                stmt = stmt.where(ProfileDB.id > after)
            return [_profile_from_row(row) for row in session.scalars(stmt)]

        return await self._run("profiles.list", fn)

    # Decisions

    async def get_decision(self, actor: str, target: str) -> Optional[Decision]:
        def fn(session: Session) -> Optional[Decision]:
            row = session.get(DecisionDB, (actor, target))
            return _decision_from_row(row) if row else None

        return await self._run("decisions.get", fn)

    async def save_decision(self, decision: Decision) -> Tuple[Optional[Decision], Optional[Decision]]:
        low, high = pair_key(decision.actor, decision.target)

        def fn(session: Session) -> Tuple[Optional[Decision], Optional[Decision]]:
            # Row locks in id order serialise writers of the same pair
            session.scalars(
                select(ProfileDB.id).where(ProfileDB.id.in_([low, high])).order_by(ProfileDB.id).with_for_update()
            ).all()
            row = session.get(DecisionDB, (decision.actor, decision.target))
            previous = _decision_from_row(row) if row else None
            session.merge(
                DecisionDB(actor=decision.actor, target=decision.target, kind=decision.kind.value, at=decision.at)
            )
            session.flush()
            reverse = session.get(DecisionDB, (decision.target, decision.actor))
            return previous, _decision_from_row(reverse) if reverse else None

        return await self._run("decisions.save", fn)

    async def decided_targets(self, actor: str) -> Set[str]:
        def fn(session: Session) -> Set[str]:
            return set(session.scalars(select(DecisionDB.target).where(DecisionDB.actor == actor)))

        return await self._run("decisions.targets", fn)

    # Matches

    async def get_match(self, match_id: str) -> Optional[Match]:
        def fn(session: Session) -> Optional[Match]:
            row = session.get(MatchDB, match_id)
            return _match_from_row(row) if row else None

        return await self._run("matches.get", fn)

    def _select_pair(self, session: Session, user_a: str, user_b: str) -> Optional[MatchDB]:
        low, high = pair_key(user_a, user_b)
        return session.scalars(select(MatchDB).where(MatchDB.user_low == low, MatchDB.user_high == high)).first()

    async def get_match_by_pair(self, user_a: str, user_b: str) -> Optional[Match]:
        def fn(session: Session) -> Optional[Match]:
            row = self._select_pair(session, user_a, user_b)
            return _match_from_row(row) if row else None

        return await self._run("matches.get_by_pair", fn)

    async def insert_match(self, match: Match) -> Tuple[Match, bool]:
        low, high = match.pair

        def fn(session: Session) -> Tuple[Match, bool]:
            existing = self._select_pair(session, low, high)
            if existing is not None:
                return _match_from_row(existing), False
            session.add(MatchDB(id=match.id, user_low=low, user_high=high, created_at=match.created_at))
            session.flush()
            return match, True

        try:
            return await self._run("matches.insert", fn)
        except ConflictError:
            # Another process created the pair first; return its row
            stored = await self.get_match_by_pair(low, high)
            if stored is None:
                raise ConflictError("Match insert raced and lost", details={"pair": [low, high]})
            return stored, False

    async def matches_for(self, user_id: str) -> List[Match]:
        def fn(session: Session) -> List[Match]:
            stmt = (
                select(MatchDB)
                .where(or_(MatchDB.user_low == user_id, MatchDB.user_high == user_id))
                .order_by(MatchDB.created_at.desc(), MatchDB.id.desc())
            )
            return [_match_from_row(row) for row in session.scalars(stmt)]

        return await self._run("matches.for_user", fn)

    # Messages

    async def insert_message(self, message: Message) -> Message:
        def fn(session: Session) -> Message:
            session.add(MessageDB(**message.model_dump()))
            session.flush()
            return message

        try:
            return await self._run("messages.insert", fn)
        except ConflictError as e:
            raise ConflictError(
                "Message sequence already taken",
                details={"match_id": message.match_id, "sequence": message.sequence},
            ) from e

    async def last_message(self, match_id: str) -> Optional[Message]:
        def fn(session: Session) -> Optional[Message]:
            stmt = select(MessageDB).where(MessageDB.match_id == match_id).order_by(MessageDB.sequence.desc()).limit(1)
            row = session.scalars(stmt).first()
            return _message_from_row(row) if row else None

        return await self._run("messages.last", fn)

    async def list_messages(
        self, match_id: str, after_sequence: Optional[int] = None, limit: Optional[int] = None
    ) -> List[Message]:
        def fn(session: Session) -> List[Message]:
            stmt = select(MessageDB).where(MessageDB.match_id == match_id)
            if after_sequence is not None:
                stmt = stmt.where(MessageDB.sequence > after_sequence)
            stmt = stmt.order_by(MessageDB.at.asc(), MessageDB.sequence.asc())
            if limit is not None:
                stmt = stmt.limit(limit)
            return [_message_from_row(row) for row in session.scalars(stmt)]

        return await self._run("messages.list", fn)

    async def count_unread(self, match_id: str, reader: str, after_sequence: int) -> int:
        def fn(session: Session) -> int:
            stmt = (
                select(func.count())
                .select_from(MessageDB)
                .where(
                    MessageDB.match_id == match_id,
                    MessageDB.sequence > after_sequence,
                    MessageDB.sender != reader,
                )
            )
            return int(session.scalar(stmt) or 0)

        return await self._run("messages.count_unread", fn)

    # Read cursors

    async def get_read_cursor(self, match_id: str, user_id: str) -> int:
        def fn(session: Session) -> int:
            row = session.get(ReadCursorDB, (match_id, user_id))
            return row.sequence if row else 0

        return await self._run("read_cursors.get", fn)

    async def set_read_cursor(self, match_id: str, user_id: str, sequence: int) -> int:
        def fn(session: Session) -> int:
            session.merge(ReadCursorDB(match_id=match_id, user_id=user_id, sequence=sequence))
            return sequence

        return await self._run("read_cursors.set", fn)

    async def close(self) -> None:
        await asyncio.to_thread(self.database.dispose)
