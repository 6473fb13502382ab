from __future__ import annotations

import json
import logging
import math
import os
from typing import Any, List, Optional, Union

from . import queries, repository, stats
from .db import VocabularyStore
from .models import ReviewItem, ReviewProgress, ReviewResult, ReviewStatistics, VocabularyEntry

logger = logging.getLogger(__name__)


def default_legacy_wordbook_path() -> str:
    return os.path.join(os.path.expanduser("~"), ".easydict", "word.txt")


MAX_TIMESTAMP = 2 ** 63


def _legacy_timestamp(value: Any) -> Optional[int]:
    """Epoch ms from a legacy line, or None when missing or unusable."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or (
        isinstance(value, float) and not math.isfinite(value)
    ):
        logger.warning("Ignoring unusable wordbook timestamp %r", value)
        return None
    if not 0 <= value < MAX_TIMESTAMP:
        logger.warning("Ignoring out-of-range wordbook timestamp %r", value)
        return None
    return int(value)


def import_legacy_wordbook(store: VocabularyStore, path: Optional[str] = None) -> int:
    """Import the old one-JSON-object-per-line word file. Skips existing words.
    Returns the number of newly imported words."""
    if path is None:
        path = default_legacy_wordbook_path()

    try:
        with open(path, "r", encoding="utf-8") as f:
            lines = f.read().splitlines()
    except OSError as e:
        logger.error("Failed to read legacy wordbook %s: %s", path, e)
        return 0

    imported = 0
    for line in lines:
        if not line.strip():
            continue
        try:
            item: Any = json.loads(line)
        except json.JSONDecodeError:
            logger.warning("Skipping unparsable wordbook line: %s", line)
            continue
        if not isinstance(item, dict) or not isinstance(item.get("word"), str) or not item["word"].strip():
            logger.warning("Skipping wordbook line without a word: %s", line)
            continue

        entry = VocabularyEntry(
            word=item["word"],
            translation=item.get("translation"),
            phonetic=item.get("phonetic"),
            from_language=item.get("fromLanguage"),
            to_language=item.get("toLanguage"),
            note=item.get("note"),
        )
        created = _legacy_timestamp(item.get("timestamp"))
        if repository.add_vocabulary(store, entry, now=created):
            imported += 1

    logger.info("Imported %d word(s) from %s", imported, path)
    return imported


class VocabularyManager:
    """Everything a UI needs from the vocabulary book, bound to one store.

    Construct it once and pass it around; nothing here is global.
    """

    def __init__(
        self,
        store: Optional[VocabularyStore] = None,
        on_duplicate: str = "reject",
        reset_created_at: bool = True,
    ) -> None:
        if on_duplicate not in repository.DUPLICATE_POLICIES:
            raise ValueError(f"on_duplicate must be one of {repository.DUPLICATE_POLICIES}, got {on_duplicate!r}")
        self.store = store if store is not None else VocabularyStore()
        self.on_duplicate = on_duplicate
        self.reset_created_at = reset_created_at

    def add(self, entry: VocabularyEntry, now: Optional[int] = None) -> bool:
        return repository.add_vocabulary(
            self.store,
            entry,
            on_duplicate=self.on_duplicate,
            reset_created_at=self.reset_created_at,
            now=now,
        )

    def remove(self, word: str) -> bool:
        return repository.remove_vocabulary(self.store, word)

    def exists(self, word: str) -> bool:
        return repository.vocabulary_exists(self.store, word)

    def get(self, word: str) -> Optional[VocabularyEntry]:
        return repository.get_vocabulary(self.store, word)

    def count(self) -> int:
        return repository.count_vocabulary(self.store)

    def clear_all(self) -> bool:
        return repository.clear_vocabulary(self.store)

    def list(self) -> List[VocabularyEntry]:
        return repository.list_vocabulary(self.store)

    def search(self, text: str, case_sensitive: bool = False) -> List[VocabularyEntry]:
        return queries.search_vocabulary(self.store, text, case_sensitive=case_sensitive)

    def review_queue(self, limit: Any = queries.DEFAULT_QUEUE_LIMIT, only_due: bool = True,
                     now: Optional[int] = None) -> List[ReviewItem]:
        return queries.review_queue(self.store, limit=limit, only_due=only_due, now=now)

    def get_progress(self, word: str) -> Optional[ReviewProgress]:
        return repository.get_progress(self.store, word)

    def apply_review_result(self, word: str, outcome: Union[ReviewResult, str],
                            now: Optional[int] = None) -> Optional[ReviewProgress]:
        return repository.apply_review_result(self.store, word, outcome, now=now)

    def clear_progress(self, word: Optional[str] = None) -> bool:
        return repository.clear_progress(self.store, word)

    def statistics(self, now: Optional[int] = None) -> ReviewStatistics:
        return stats.get_review_statistics(self.store, now=now)

    def import_legacy_wordbook(self, path: Optional[str] = None) -> int:
        return import_legacy_wordbook(self.store, path)

    def get_store_path(self) -> str:
        return self.store.get_store_path()
