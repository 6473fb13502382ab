from __future__ import annotations

import logging
import math
from typing import Any, List, Optional

from sqlalchemy import Text, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql.elements import ColumnElement

from .db import Vocabulary, VocabularyProgress, VocabularyStore
from .models import ReviewItem, VocabularyEntry
from .repository import list_vocabulary
from .scheduler import new_progress, now_ms

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_LIMIT = 20
MAX_QUEUE_LIMIT = 200


def clamp_limit(limit: Any) -> int:
    """Clamp a queue size to 1..200; anything that is not a finite number means 20."""
    if isinstance(limit, bool) or not isinstance(limit, (int, float)):
        return DEFAULT_QUEUE_LIMIT
    if isinstance(limit, float):
        if not math.isfinite(limit):
            return DEFAULT_QUEUE_LIMIT
        limit = math.floor(limit)
    return max(1, min(int(limit), MAX_QUEUE_LIMIT))


def due_condition(now: int) -> ColumnElement[bool]:
    """Rows never reviewed, or whose next review time has passed.

    Meant for a ``vocabulary LEFT JOIN vocabulary_progress`` select.
    """
    return or_(
        VocabularyProgress.next_review_at.is_(None),
        VocabularyProgress.next_review_at <= now,
    )


def review_queue(
    store: VocabularyStore,
    limit: Any = DEFAULT_QUEUE_LIMIT,
    only_due: bool = True,
    now: Optional[int] = None,
) -> List[ReviewItem]:
    """
    Words to study next.

    Every word is returned with its progress, or with fresh-progress defaults
    when it was never reviewed. Items are ordered by the time they became
    due (next review time, falling back to creation time), newest entries
    first among equal times.
    """
    if not store.ensure_initialized():
        return []
    if now is None:
        now = now_ms()

    effective_time = func.coalesce(VocabularyProgress.next_review_at, Vocabulary.created_at)
    stmt = (
        select(Vocabulary, VocabularyProgress)
        .outerjoin(VocabularyProgress, VocabularyProgress.word == Vocabulary.word)
        .order_by(effective_time.asc(), Vocabulary.created_at.desc())
        .limit(clamp_limit(limit))
    )
    if only_due:
        stmt = stmt.where(due_condition(now))

    try:
        with store.get_session() as session:
            rows = session.execute(stmt).all()
            return [
                ReviewItem(
                    entry=vocab.to_entry(),
                    progress=progress.to_progress() if progress is not None else new_progress(vocab.word),
                )
                for vocab, progress in rows
            ]
    except SQLAlchemyError:
        logger.exception("Failed to build review queue")
        return []


def search_vocabulary(store: VocabularyStore, text: str, case_sensitive: bool = False) -> List[VocabularyEntry]:
    """Words whose spelling or translation contains ``text``, newest first.

    By default letter case is ignored with the same Unicode case folding
    the word key uses. ``case_sensitive=True`` switches to an exact
    substring match. ``%`` and ``_`` in ``text`` match literally.
    """
    if not text:
        return list_vocabulary(store)
    if not store.ensure_initialized():
        return []

    if case_sensitive:
        condition = or_(
            func.instr(Vocabulary.word, text) > 0,
            func.instr(Vocabulary.translation, text) > 0,
        )
    else:
        folded = text.casefold()
        condition = or_(
            func.casefold(Vocabulary.word, type_=Text).contains(folded, autoescape=True),
            func.casefold(Vocabulary.translation, type_=Text).contains(folded, autoescape=True),
        )

    try:
        with store.get_session() as session:
            rows = session.execute(
                select(Vocabulary)
                .where(condition)
                .order_by(Vocabulary.created_at.desc(), Vocabulary.id.desc())
            ).scalars().all()
            return [row.to_entry() for row in rows]
    except SQLAlchemyError:
        logger.exception("Failed to search vocabulary for %r", text)
        return []
