"""Reads and writes of vocabulary entries and their review progress.

Every function takes the :class:`~llm_vocabulary_book.db.VocabularyStore`
it works on. Storage errors never escape: writes report ``False`` (or
``None``) and reads come back empty, with the error logged.
"""
from __future__ import annotations

import logging
from typing import List, Optional, Union

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from .db import Vocabulary, VocabularyProgress, VocabularyStore
from .models import ReviewProgress, ReviewResult, VocabularyEntry
from .scheduler import MAX_PROFICIENCY, new_progress, next_progress, now_ms

logger = logging.getLogger(__name__)

DUPLICATE_POLICIES = ("reject", "replace")


def add_vocabulary(
    store: VocabularyStore,
    entry: VocabularyEntry,
    on_duplicate: str = "reject",
    reset_created_at: bool = True,
    now: Optional[int] = None,
) -> bool:
    """Save a new word.

    Returns False without touching the store when the word (compared
    case-insensitively) already exists, unless ``on_duplicate="replace"``:
    then translation, phonetic, languages and note are overwritten in place,
    ``updated_at`` is bumped and ``created_at`` is reset only when
    ``reset_created_at`` is set. Review progress survives a replace.
    """
    if on_duplicate not in DUPLICATE_POLICIES:
        raise ValueError(f"on_duplicate must be one of {DUPLICATE_POLICIES}, got {on_duplicate!r}")
    if not entry.word or not entry.word.strip():
        raise ValueError("word must not be empty")
    if not store.ensure_initialized():
        logger.debug("Store unavailable, not adding %r", entry.word)
        return False
    if now is None:
        now = now_ms()

    try:
        with store.write_lock, store.get_session() as session, session.begin():
            existing = session.execute(
                select(Vocabulary).where(Vocabulary.word == entry.word)
            ).scalar_one_or_none()

            if existing is None:
                session.add(Vocabulary(
                    word=entry.word,
                    translation=entry.translation,
                    phonetic=entry.phonetic,
                    from_language=entry.from_language,
                    to_language=entry.to_language,
                    note=entry.note,
                    created_at=now,
                    updated_at=now,
                ))
                return True

            if on_duplicate == "reject":
                return False

            existing.translation = entry.translation
            existing.phonetic = entry.phonetic
            existing.from_language = entry.from_language
            existing.to_language = entry.to_language
            existing.note = entry.note
            existing.updated_at = now
            if reset_created_at:
                existing.created_at = now
            return True
    except (SQLAlchemyError, OverflowError):
        logger.exception("Failed to add vocabulary %r", entry.word)
        return False


def remove_vocabulary(store: VocabularyStore, word: str) -> bool:
    """Delete a word and, through the cascade, its progress.

    Deleting a word that is not stored still succeeds.
    """
    if not store.ensure_initialized():
        return False
    try:
        with store.write_lock, store.get_session() as session, session.begin():
            result = session.execute(delete(Vocabulary).where(Vocabulary.word == word))
            logger.debug("Removed %d row(s) for %r", result.rowcount, word)
        return True
    except SQLAlchemyError:
        logger.exception("Failed to remove vocabulary %r", word)
        return False


def vocabulary_exists(store: VocabularyStore, word: str) -> bool:
    if not store.ensure_initialized():
        return False
    try:
        with store.get_session() as session:
            found = session.execute(
                select(Vocabulary.id).where(Vocabulary.word == word).limit(1)
            ).first()
        return found is not None
    except SQLAlchemyError:
        logger.exception("Failed to check vocabulary %r", word)
        return False


def get_vocabulary(store: VocabularyStore, word: str) -> Optional[VocabularyEntry]:
    if not store.ensure_initialized():
        return None
    try:
        with store.get_session() as session:
            row = session.execute(
                select(Vocabulary).where(Vocabulary.word == word)
            ).scalar_one_or_none()
            return row.to_entry() if row is not None else None
    except SQLAlchemyError:
        logger.exception("Failed to load vocabulary %r", word)
        return None


def count_vocabulary(store: VocabularyStore) -> int:
    if not store.ensure_initialized():
        return 0
    try:
        with store.get_session() as session:
            return session.scalar(select(func.count()).select_from(Vocabulary)) or 0
    except SQLAlchemyError:
        logger.exception("Failed to count vocabulary")
        return 0


def clear_vocabulary(store: VocabularyStore) -> bool:
    """Delete every word and all review progress."""
    if not store.ensure_initialized():
        return False
    try:
        with store.write_lock, store.get_session() as session, session.begin():
            session.execute(delete(VocabularyProgress))
            session.execute(delete(Vocabulary))
        return True
    except SQLAlchemyError:
        logger.exception("Failed to clear vocabulary")
        return False


def list_vocabulary(store: VocabularyStore) -> List[VocabularyEntry]:
    """All words, newest first."""
    if not store.ensure_initialized():
        return []
    try:
        with store.get_session() as session:
            rows = session.execute(
                select(Vocabulary).order_by(Vocabulary.created_at.desc(), Vocabulary.id.desc())
            ).scalars().all()
            return [row.to_entry() for row in rows]
    except SQLAlchemyError:
        logger.exception("Failed to list vocabulary")
        return []


# ----------------------------------------------------------------------
# Review progress
# ----------------------------------------------------------------------

def get_progress(store: VocabularyStore, word: str) -> Optional[ReviewProgress]:
    """Stored progress for ``word``; None when the word was never reviewed."""
    if not store.ensure_initialized():
        return None
    try:
        with store.get_session() as session:
            row = session.execute(
                select(VocabularyProgress)
                .join(Vocabulary, Vocabulary.word == VocabularyProgress.word)
                .where(VocabularyProgress.word == word)
            ).scalar_one_or_none()
            return row.to_progress() if row is not None else None
    except SQLAlchemyError:
        logger.exception("Failed to load review progress for %r", word)
        return None


def _upsert_progress_statement(progress: ReviewProgress):  # type: ignore[no-untyped-def]
    if not 0 <= progress.proficiency <= MAX_PROFICIENCY:
        raise ValueError(f"proficiency out of range: {progress.proficiency}")
    values = {
        "word": progress.word,
        "proficiency": progress.proficiency,
        "review_count": progress.review_count,
        "success_count": progress.success_count,
        "fail_count": progress.fail_count,
        "last_reviewed_at": progress.last_reviewed_at,
        "next_review_at": progress.next_review_at,
    }
    stmt = sqlite_insert(VocabularyProgress).values(**values)
    return stmt.on_conflict_do_update(
        index_elements=[VocabularyProgress.word],
        set_={key: stmt.excluded[key] for key in values if key != "word"},
    )


def apply_review_result(
    store: VocabularyStore,
    word: str,
    outcome: Union[ReviewResult, str],
    now: Optional[int] = None,
) -> Optional[ReviewProgress]:
    """Record one review of ``word`` and return the new progress.

    Reading the current progress, computing the next state and writing it
    back happen in one transaction under the store's write lock, so two
    reviews of the same word cannot overwrite each other. Returns None when
    the word is unknown or the write failed.
    """
    outcome = ReviewResult(outcome)
    if not store.ensure_initialized():
        return None
    try:
        with store.write_lock, store.get_session() as session, session.begin():
            stored_word = session.execute(
                select(Vocabulary.word).where(Vocabulary.word == word)
            ).scalar_one_or_none()
            if stored_word is None:
                logger.debug("Review of unknown word %r ignored", word)
                return None

            row = session.execute(
                select(VocabularyProgress).where(VocabularyProgress.word == stored_word)
            ).scalar_one_or_none()
            current = row.to_progress() if row is not None else new_progress(stored_word)
            updated = next_progress(current, outcome, now=now)
            session.execute(_upsert_progress_statement(updated))
        return updated
    except (SQLAlchemyError, OverflowError):
        logger.exception("Failed to apply review result %s for %r", outcome.value, word)
        return None


def clear_progress(store: VocabularyStore, word: Optional[str] = None) -> bool:
    """Forget review progress of one word, or of every word when ``word`` is None."""
    if not store.ensure_initialized():
        return False
    try:
        with store.write_lock, store.get_session() as session, session.begin():
            stmt = delete(VocabularyProgress)
            if word is not None:
                stmt = stmt.where(VocabularyProgress.word == word)
            session.execute(stmt)
        return True
    except SQLAlchemyError:
        logger.exception("Failed to clear review progress for %r", word)
        return False
