from __future__ import annotations

import enum
import logging
import os
import threading
from typing import Any, Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import ReviewProgress, VocabularyEntry

logger = logging.getLogger(__name__)

DEBUG_MODE = os.getenv("LLM_VOCAB_DEBUG", "0") == "1"

MEMORY_PATH = ":memory:"
DEFAULT_TIMEOUT = 5.0


def default_db_path() -> str:
    """Store location: ``$LLM_VOCAB_DB`` or ``~/.easydict/vocabulary.db``."""
    override = os.environ.get("LLM_VOCAB_DB")
    if override:
        return override
    return os.path.join(os.path.expanduser("~"), ".easydict", "vocabulary.db")


class Base(DeclarativeBase):
    pass


# Words compare case-insensitively everywhere (unique index, lookups,
# progress join) through a collation registered on every connection, so
# "Apple"/"apple" and "Ärger"/"ärger" are the same key.
WORD_COLLATION = "unicode_nocase"
WORD_TYPE = String(collation=WORD_COLLATION)


def fold_case(text: Optional[str]) -> Optional[str]:
    return None if text is None else text.casefold()


def _compare_folded(left: str, right: str) -> int:
    left, right = left.casefold(), right.casefold()
    return (left > right) - (left < right)


class Vocabulary(Base):
    __tablename__ = "vocabulary"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    word: Mapped[str] = mapped_column(WORD_TYPE, nullable=False)
    translation: Mapped[Optional[str]] = mapped_column(Text)
    phonetic: Mapped[Optional[str]] = mapped_column(String)
    from_language: Mapped[Optional[str]] = mapped_column(String)
    to_language: Mapped[Optional[str]] = mapped_column(String)
    note: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_vocabulary_word", "word", unique=True),
        Index("idx_vocabulary_created_at", "created_at"),
    )

    def to_entry(self) -> VocabularyEntry:
        return VocabularyEntry(
            word=self.word,
            translation=self.translation,
            phonetic=self.phonetic,
            from_language=self.from_language,
            to_language=self.to_language,
            note=self.note,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class VocabularyProgress(Base):
    __tablename__ = "vocabulary_progress"
    word: Mapped[str] = mapped_column(
        WORD_TYPE,
        ForeignKey("vocabulary.word", ondelete="CASCADE"),
        primary_key=True,
    )
    proficiency: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    fail_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_reviewed_at: Mapped[Optional[int]] = mapped_column(Integer)
    next_review_at: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        Index("idx_vocabulary_progress_next_review", "next_review_at"),
    )

    def to_progress(self) -> ReviewProgress:
        return ReviewProgress(
            word=self.word,
            proficiency=self.proficiency,
            review_count=self.review_count,
            success_count=self.success_count,
            fail_count=self.fail_count,
            last_reviewed_at=self.last_reviewed_at,
            next_review_at=self.next_review_at,
        )


def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
    dbapi_connection.create_collation(WORD_COLLATION, _compare_folded)
    dbapi_connection.create_function("casefold", 1, fold_case, deterministic=True)
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_store_engine(path: str, timeout: float = DEFAULT_TIMEOUT) -> Engine:
    """Engine for a SQLite file (or ``:memory:``) with foreign keys enforced
    and the word collation installed on every connection."""
    if path == MEMORY_PATH:
        # One shared connection, otherwise every session would see its own empty database.
        engine = create_engine(
            "sqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False, "timeout": timeout},
        )
    else:
        engine = create_engine(
            f"sqlite:///{path}",
            connect_args={"check_same_thread": False, "timeout": timeout},
        )
    event.listen(engine, "connect", _on_connect)
    return engine


class StoreState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FAILED = "failed"


class VocabularyStore:
    """Handle on the vocabulary database.

    The schema is created lazily by :meth:`ensure_initialized`, at most once
    per store. A failed initialization is logged and leaves the store in
    ``StoreState.FAILED``; every operation built on top of the store then
    reads as empty and reports writes as failed instead of raising.

    Writes are serialized through :attr:`write_lock`. Reads are not locked.
    """

    def __init__(self, path: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.path: str = path if path is not None else default_db_path()
        self.timeout = timeout
        self.state = StoreState.UNINITIALIZED
        self.failure_reason: Optional[str] = None
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker[Session]] = None
        self.write_lock = threading.RLock()
        self._init_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<VocabularyStore path={self.path!r} state={self.state.value}>"

    def ensure_initialized(self) -> bool:
        """Create tables and indices if needed. Returns True when the store is usable."""
        if self.state is StoreState.UNINITIALIZED:
            with self._init_lock:
                if self.state is StoreState.UNINITIALIZED:
                    self._initialize()
        return self.state is StoreState.READY

    def _initialize(self) -> None:
        engine: Optional[Engine] = None
        try:
            if self.path != MEMORY_PATH:
                directory = os.path.dirname(os.path.abspath(self.path))
                os.makedirs(directory, exist_ok=True)
            engine = create_store_engine(self.path, self.timeout)
            Base.metadata.create_all(bind=engine)
        except (OSError, SQLAlchemyError) as e:
            if engine is not None:
                engine.dispose()
            self.state = StoreState.FAILED
            self.failure_reason = f"{type(e).__name__}: {e}"
            logger.error("Failed to initialize vocabulary database at %s: %s", self.path, self.failure_reason)
            return

        self.engine = engine
        # Keep returned rows readable after commit
        self.SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)
        self.state = StoreState.READY
        logger.debug("Vocabulary database ready at %s", self.path)

    def is_healthy(self) -> bool:
        return self.ensure_initialized()

    def get_session(self) -> Session:
        if self.SessionLocal is None:
            raise RuntimeError(f"Vocabulary store is not ready ({self.state.value})")
        return self.SessionLocal()

    def get_store_path(self) -> str:
        return self.path

    def reset(self) -> None:
        """Dispose the engine and return to ``UNINITIALIZED`` so the next call retries."""
        with self._init_lock:
            if self.engine is not None:
                self.engine.dispose()
            self.engine = None
            self.SessionLocal = None
            self.failure_reason = None
            self.state = StoreState.UNINITIALIZED

    def close(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
