from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from .db import Vocabulary, VocabularyProgress, VocabularyStore
from .models import ReviewStatistics
from .queries import due_condition
from .scheduler import MAX_PROFICIENCY, now_ms

logger = logging.getLogger(__name__)


def _count(store: VocabularyStore, stmt: Any, label: str) -> int:
    try:
        with store.get_session() as session:
            return int(session.scalar(stmt) or 0)
    except SQLAlchemyError:
        logger.exception("Failed to count %s words", label)
        return 0


def get_review_statistics(store: VocabularyStore, now: Optional[int] = None) -> ReviewStatistics:
    """
    Totals for the review screen.

    ``total``    – every saved word
    ``due``      – words never reviewed or past their next review time
    ``mastered`` – words at the top proficiency level

    The three numbers come from separate reads, not one snapshot: a write
    landing between them can make them disagree by one word.
    """
    if not store.ensure_initialized():
        return ReviewStatistics()
    if now is None:
        now = now_ms()

    total = _count(store, select(func.count()).select_from(Vocabulary), "total")
    due = _count(
        store,
        select(func.count())
        .select_from(Vocabulary)
        .outerjoin(VocabularyProgress, VocabularyProgress.word == Vocabulary.word)
        .where(due_condition(now)),
        "due",
    )
    mastered = _count(
        store,
        select(func.count())
        .select_from(VocabularyProgress)
        .join(Vocabulary, Vocabulary.word == VocabularyProgress.word)
        .where(VocabularyProgress.proficiency >= MAX_PROFICIENCY),
        "mastered",
    )
    return ReviewStatistics(total=total, due=due, mastered=mastered)
