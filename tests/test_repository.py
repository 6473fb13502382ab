import threading

import pytest
from sqlalchemy import func, select

from llm_vocabulary_book import repository
from llm_vocabulary_book.db import Vocabulary, VocabularyProgress, VocabularyStore
from llm_vocabulary_book.models import ReviewResult, VocabularyEntry
from llm_vocabulary_book.scheduler import HOUR_MS, MINUTE_MS

NOW = 1_700_000_000_000


@pytest.fixture
def store(tmp_path):
    store = VocabularyStore(str(tmp_path / "vocabulary.db"))
    yield store
    store.close()


def add(store: VocabularyStore, word: str, now: int = NOW, **fields) -> bool:
    return repository.add_vocabulary(store, VocabularyEntry(word=word, **fields), now=now)


def progress_rows(store: VocabularyStore) -> int:
    with store.get_session() as session:
        return session.scalar(select(func.count()).select_from(VocabularyProgress))


# ── add / exists ─────────────────────────────────────────────────────

def test_add_then_exists(store: VocabularyStore) -> None:
    assert add(store, "apple", translation="苹果", phonetic="ˈæpəl", from_language="en", to_language="zh")
    assert repository.vocabulary_exists(store, "apple")
    entry = repository.get_vocabulary(store, "apple")
    assert entry.translation == "苹果"
    assert entry.phonetic == "ˈæpəl"
    assert entry.from_language == "en"
    assert entry.to_language == "zh"
    assert entry.created_at == entry.updated_at == NOW


def test_add_does_not_create_progress(store: VocabularyStore) -> None:
    add(store, "apple")
    assert repository.get_progress(store, "apple") is None
    assert progress_rows(store) == 0


def test_duplicate_add_rejected(store: VocabularyStore) -> None:
    assert add(store, "apple", translation="first")
    assert add(store, "apple", now=NOW + 1000, translation="second") is False
    entry = repository.get_vocabulary(store, "apple")
    assert entry.translation == "first"
    assert entry.created_at == NOW
    assert entry.updated_at == NOW
    assert repository.count_vocabulary(store) == 1


def test_words_are_case_insensitive(store: VocabularyStore) -> None:
    assert add(store, "Apple")
    assert add(store, "APPLE") is False
    assert add(store, "apple") is False
    assert repository.vocabulary_exists(store, "aPPle")
    assert repository.count_vocabulary(store) == 1
    # The first spelling is kept
    assert repository.get_vocabulary(store, "apple").word == "Apple"


@pytest.mark.parametrize("first,other", [
    ("Привет", "привет"),
    ("Ärger", "ÄRGER"),
    ("Éclair", "éclair"),
    ("Straße", "STRASSE"),
])
def test_non_ascii_words_are_case_insensitive(store: VocabularyStore, first: str, other: str) -> None:
    assert add(store, first)
    assert add(store, other) is False
    assert repository.vocabulary_exists(store, other)
    assert repository.count_vocabulary(store) == 1
    assert repository.get_vocabulary(store, other).word == first


def test_non_ascii_word_key_reaches_progress(store: VocabularyStore) -> None:
    add(store, "Привет")
    progress = repository.apply_review_result(store, "ПРИВЕТ", "remember", now=NOW)
    assert progress.word == "Привет"
    assert repository.get_progress(store, "привет").proficiency == 1
    assert repository.remove_vocabulary(store, "привет")
    assert progress_rows(store) == 0


def test_replace_on_duplicate_resets_created_at(store: VocabularyStore) -> None:
    add(store, "apple", translation="first", note="old")
    assert repository.add_vocabulary(
        store,
        VocabularyEntry(word="apple", translation="second"),
        on_duplicate="replace",
        now=NOW + 5000,
    )
    entry = repository.get_vocabulary(store, "apple")
    assert entry.translation == "second"
    assert entry.note is None
    assert entry.created_at == NOW + 5000
    assert entry.updated_at == NOW + 5000


def test_replace_on_duplicate_can_keep_created_at(store: VocabularyStore) -> None:
    add(store, "apple", translation="first")
    assert repository.add_vocabulary(
        store,
        VocabularyEntry(word="APPLE", translation="second"),
        on_duplicate="replace",
        reset_created_at=False,
        now=NOW + 5000,
    )
    entry = repository.get_vocabulary(store, "apple")
    assert entry.word == "apple"
    assert entry.translation == "second"
    assert entry.created_at == NOW
    assert entry.updated_at == NOW + 5000


def test_replace_keeps_progress(store: VocabularyStore) -> None:
    add(store, "apple")
    repository.apply_review_result(store, "apple", ReviewResult.REMEMBER, now=NOW)
    repository.add_vocabulary(store, VocabularyEntry(word="apple", translation="x"), on_duplicate="replace")
    progress = repository.get_progress(store, "apple")
    assert progress is not None
    assert progress.proficiency == 1


def test_invalid_arguments(store: VocabularyStore) -> None:
    with pytest.raises(ValueError):
        repository.add_vocabulary(store, VocabularyEntry(word="apple"), on_duplicate="merge")
    with pytest.raises(ValueError):
        repository.add_vocabulary(store, VocabularyEntry(word="   "))
    with pytest.raises(ValueError):
        repository.apply_review_result(store, "apple", "easy")


@pytest.mark.parametrize("word", ["it's", "\"quoted\"", "100%_done", "naïve", "日本語", "a'); DROP TABLE vocabulary; --", "tab\tnew\nline"])
def test_awkward_words_round_trip(store: VocabularyStore, word: str) -> None:
    assert add(store, word, translation=word)
    assert repository.vocabulary_exists(store, word)
    assert repository.get_vocabulary(store, word).translation == word
    assert repository.remove_vocabulary(store, word)
    assert not repository.vocabulary_exists(store, word)
    assert repository.count_vocabulary(store) == 0


# ── remove / clear ───────────────────────────────────────────────────

def test_remove_missing_word_succeeds(store: VocabularyStore) -> None:
    assert repository.remove_vocabulary(store, "ghost") is True
    add(store, "apple")
    assert repository.remove_vocabulary(store, "ghost") is True
    assert repository.count_vocabulary(store) == 1


def test_remove_ignores_case(store: VocabularyStore) -> None:
    add(store, "apple")
    assert repository.remove_vocabulary(store, "APPLE")
    assert not repository.vocabulary_exists(store, "apple")


def test_remove_cascades_to_progress(store: VocabularyStore) -> None:
    add(store, "apple")
    add(store, "pear")
    repository.apply_review_result(store, "apple", "remember", now=NOW)
    repository.apply_review_result(store, "pear", "forget", now=NOW)
    assert progress_rows(store) == 2

    assert repository.remove_vocabulary(store, "apple")
    assert repository.get_progress(store, "apple") is None
    assert progress_rows(store) == 1
    assert repository.get_progress(store, "pear") is not None

    # Re-adding the word starts from scratch
    add(store, "apple")
    assert repository.get_progress(store, "apple") is None


def test_clear_all_removes_everything(store: VocabularyStore) -> None:
    for i, word in enumerate(["a", "b", "c"]):
        add(store, word, now=NOW + i)
        repository.apply_review_result(store, word, "hard", now=NOW)
    assert repository.clear_vocabulary(store)
    assert repository.count_vocabulary(store) == 0
    assert repository.list_vocabulary(store) == []
    assert progress_rows(store) == 0


def test_list_newest_first(store: VocabularyStore) -> None:
    add(store, "old", now=NOW)
    add(store, "middle", now=NOW + 10)
    add(store, "new", now=NOW + 20)
    assert [entry.word for entry in repository.list_vocabulary(store)] == ["new", "middle", "old"]
    assert repository.count_vocabulary(store) == 3


# ── review progress ──────────────────────────────────────────────────

def test_apply_review_creates_then_updates_progress(store: VocabularyStore) -> None:
    add(store, "apple")
    first = repository.apply_review_result(store, "apple", ReviewResult.REMEMBER, now=NOW)
    assert first.proficiency == 1
    assert first.next_review_at == NOW + 12 * HOUR_MS
    assert repository.get_progress(store, "apple") == first

    second = repository.apply_review_result(store, "apple", "forget", now=NOW + HOUR_MS)
    assert second.proficiency == 0
    assert second.next_review_at == NOW + HOUR_MS + 5 * MINUTE_MS
    stored = repository.get_progress(store, "apple")
    assert stored == second
    assert (stored.review_count, stored.success_count, stored.fail_count) == (2, 1, 1)
    assert progress_rows(store) == 1


def test_apply_review_uses_stored_spelling(store: VocabularyStore) -> None:
    add(store, "Apple")
    progress = repository.apply_review_result(store, "APPLE", "remember", now=NOW)
    assert progress.word == "Apple"
    assert repository.get_progress(store, "apple").word == "Apple"


def test_apply_review_unknown_word(store: VocabularyStore) -> None:
    assert repository.apply_review_result(store, "ghost", "remember", now=NOW) is None
    assert progress_rows(store) == 0


def test_clear_progress_single_word(store: VocabularyStore) -> None:
    add(store, "apple")
    add(store, "pear")
    repository.apply_review_result(store, "apple", "remember", now=NOW)
    repository.apply_review_result(store, "pear", "remember", now=NOW)

    assert repository.clear_progress(store, "apple")
    assert repository.get_progress(store, "apple") is None
    assert repository.get_progress(store, "pear") is not None
    # Entries stay
    assert repository.count_vocabulary(store) == 2


def test_clear_progress_all(store: VocabularyStore) -> None:
    add(store, "apple")
    add(store, "pear")
    repository.apply_review_result(store, "apple", "remember", now=NOW)
    repository.apply_review_result(store, "pear", "remember", now=NOW)
    assert repository.clear_progress(store)
    assert progress_rows(store) == 0
    assert repository.clear_progress(store, "ghost")


def test_concurrent_reviews_are_not_lost(store: VocabularyStore) -> None:
    add(store, "apple")
    errors = []

    def worker() -> None:
        for _ in range(5):
            if repository.apply_review_result(store, "apple", "remember", now=NOW) is None:
                errors.append("failed")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    progress = repository.get_progress(store, "apple")
    assert progress.review_count == 40
    assert progress.success_count == 40
    assert progress.proficiency == 5


def test_orphan_progress_is_never_visible(store: VocabularyStore) -> None:
    add(store, "apple")
    repository.apply_review_result(store, "apple", "remember", now=NOW)
    # Delete the entry on a connection without foreign key enforcement
    raw = store.engine.raw_connection()
    try:
        cursor = raw.cursor()
        cursor.execute("PRAGMA foreign_keys=OFF")
        cursor.execute("DELETE FROM vocabulary WHERE word = 'apple'")
        raw.commit()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
    finally:
        raw.close()
    assert progress_rows(store) == 1
    assert repository.get_progress(store, "apple") is None
