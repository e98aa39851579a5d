"""SQLAlchemy models and connection management for the SwipeMatch engine."""

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from swipematch.utils.errors import ConfigurationError, StorageUnavailableError
from swipematch.utils.helpers import utcnow
from swipematch.utils.logging import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class ProfileDB(Base):
    """Profile database model."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100))
    age: Mapped[int] = mapped_column(Integer)
    bio: Mapped[str] = mapped_column(Text, default="")
    interests: Mapped[List[str]] = mapped_column(JSON, default=list)
    avatar_ref: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_active_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class DecisionDB(Base):
    """Decision database model. One row per directional pair."""

    __tablename__ = "decisions"

    actor: Mapped[str] = mapped_column(String(128), ForeignKey("profiles.id"), primary_key=True)
    target: Mapped[str] = mapped_column(String(128), ForeignKey("profiles.id"), primary_key=True)
    kind: Mapped[str] = mapped_column(String(10))
    at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class MatchDB(Base):
    """Match database model. The participant pair is stored in canonical order."""

    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("user_low", "user_high", name="uq_matches_pair"),
        Index("ix_matches_user_high", "user_high"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_low: Mapped[str] = mapped_column(String(128), ForeignKey("profiles.id"))
    user_high: Mapped[str] = mapped_column(String(128), ForeignKey("profiles.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class MessageDB(Base):
    """Message database model."""

    __tablename__ = "messages"
    __table_args__ = (UniqueConstraint("match_id", "sequence", name="uq_messages_sequence"),)

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    match_id: Mapped[str] = mapped_column(String(128), ForeignKey("matches.id"), index=True)
    sender: Mapped[str] = mapped_column(String(128), ForeignKey("profiles.id"))
    content: Mapped[str] = mapped_column(Text)
    sequence: Mapped[int] = mapped_column(Integer)
    at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class ReadCursorDB(Base):
    """Highest message sequence each participant has read."""

    __tablename__ = "read_cursors"

    match_id: Mapped[str] = mapped_column(String(128), ForeignKey("matches.id"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), ForeignKey("profiles.id"), primary_key=True)
    sequence: Mapped[int] = mapped_column(Integer, default=0)


def _redact_url(database_url: str) -> str:
    """Hide the password part of a database URL for logging."""
    if "@" not in database_url:
        return database_url
    try:
        part1, part2 = database_url.rsplit("@", 1)
        if ":" in part1:
            scheme_user, _ = part1.rsplit(":", 1)
            return f"{scheme_user}:***@{part2}"
    except ValueError:
        return "REDACTED_MALFORMED_URL"
    return database_url


class Database:
    """Connection manager owning one engine and its session factory."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        if not database_url:
            raise ConfigurationError("DATABASE_URL is not configured")

        # SQLAlchemy 1.4+ requires postgresql:// instead of postgres://
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)

        self.url = database_url
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker[Session]] = None
        self._echo = echo

    @property
    def engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            kwargs: dict[str, Any] = {"echo": self._echo}
            if self.url.startswith("sqlite"):
                # Sessions run in worker threads; in-memory databases must share one connection
                kwargs["connect_args"] = {"check_same_thread": False}
                if self.url in ("sqlite://", "sqlite:///:memory:"):
                    kwargs["poolclass"] = StaticPool
            else:
                kwargs.update(pool_recycle=300, pool_pre_ping=True)
            try:
                self._engine = create_engine(self.url, **kwargs)
                logger.info("Database engine created", url=_redact_url(self.url))
            except Exception as e:
                safe_url = _redact_url(self.url)
                logger.error("Failed to create database engine", error=str(e), url=safe_url)
                raise StorageUnavailableError(
                    "Failed to connect to database", details={"error": str(e), "url": safe_url}
                ) from e
        return self._engine

    def session(self) -> Session:
        """Get a new database session."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        return self._session_factory()

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)
        logger.info("Database tables created")

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
