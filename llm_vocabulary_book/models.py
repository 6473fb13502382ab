"""Value types passed between the store, the scheduler and callers.

All timestamps are integer epoch milliseconds.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional


class ReviewResult(str, enum.Enum):
    REMEMBER = "remember"
    HARD = "hard"
    FORGET = "forget"


@dataclass(frozen=True)
class VocabularyEntry:
    """A saved word. ``word`` is the natural key."""
    word: str
    translation: Optional[str] = None
    phonetic: Optional[str] = None
    from_language: Optional[str] = None
    to_language: Optional[str] = None
    note: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "word": self.word,
            "translation": self.translation,
            "phonetic": self.phonetic,
            "fromLanguage": self.from_language,
            "toLanguage": self.to_language,
            "note": self.note,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class ReviewProgress:
    """Review state of one word.

    ``next_review_at`` of ``None`` means the word was never reviewed and is
    due immediately.
    """
    word: str
    proficiency: int = 0
    review_count: int = 0
    success_count: int = 0
    fail_count: int = 0
    last_reviewed_at: Optional[int] = None
    next_review_at: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "word": self.word,
            "proficiency": self.proficiency,
            "reviewCount": self.review_count,
            "successCount": self.success_count,
            "failCount": self.fail_count,
            "lastReviewedAt": self.last_reviewed_at,
            "nextReviewAt": self.next_review_at,
        }


@dataclass(frozen=True)
class ReviewItem:
    """A vocabulary entry joined with its progress (or progress defaults)."""
    entry: VocabularyEntry
    progress: ReviewProgress

    @property
    def word(self) -> str:
        return self.entry.word

    @property
    def proficiency(self) -> int:
        return self.progress.proficiency

    @property
    def next_review_at(self) -> Optional[int]:
        return self.progress.next_review_at

    def effective_review_at(self) -> int:
        """Time the item becomes due; unreviewed items fall back to creation time."""
        if self.progress.next_review_at is None:
            return self.entry.created_at
        return self.progress.next_review_at

    def is_due(self, now: int) -> bool:
        return self.progress.next_review_at is None or self.progress.next_review_at <= now

    def to_dict(self) -> Dict[str, Any]:
        data = self.entry.to_dict()
        data.update(self.progress.to_dict())
        return data


@dataclass(frozen=True)
class ReviewStatistics:
    total: int = 0
    due: int = 0
    mastered: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"total": self.total, "due": self.due, "mastered": self.mastered}
