import datetime
import logging
from typing import Any, Optional

import click
import llm  # type: ignore

from . import db
from .models import ReviewItem, ReviewResult, VocabularyEntry
from .scheduler import MAX_PROFICIENCY, PROFICIENCY_LABELS
from .wordbook import VocabularyManager


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.DEBUG if db.DEBUG_MODE else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _manager(**kwargs: Any) -> VocabularyManager:
    _configure_logging()
    return VocabularyManager(db.VocabularyStore(), **kwargs)


def _format_time(timestamp: Optional[int]) -> str:
    if not timestamp:
        return "--"
    return datetime.datetime.fromtimestamp(timestamp / 1000).strftime("%Y-%m-%d %H:%M")


def _proficiency_text(level: int) -> str:
    return f"{level}/{MAX_PROFICIENCY} {PROFICIENCY_LABELS[level]}"


def _echo_entry(entry: VocabularyEntry) -> None:
    line = entry.word
    if entry.phonetic:
        line += f" /{entry.phonetic}/"
    if entry.translation:
        line += f" - {entry.translation}"
    click.echo(f"{line}  ({_format_time(entry.created_at)})")


@llm.hookimpl  # type: ignore[misc]
def register_commands(cli: Any) -> None:

    @cli.command("vocab-init-db")  # type: ignore[misc]
    def init_db() -> None:
        """Create the vocabulary database if it does not exist."""
        manager = _manager()
        if manager.store.ensure_initialized():
            click.echo(f"Vocabulary database ready at {manager.get_store_path()}")
        else:
            click.echo(f"Could not initialize {manager.get_store_path()}: {manager.store.failure_reason}")

    @cli.command("vocab-add")  # type: ignore[misc]
    @click.argument("word")
    @click.option("--translation", default=None, help="Translation or meaning")
    @click.option("--phonetic", default=None, help="Pronunciation")
    @click.option("--from", "from_language", default=None, help="Source language code")
    @click.option("--to", "to_language", default=None, help="Target language code")
    @click.option("--note", default=None, help="Free-form note")
    @click.option("--replace", is_flag=True, help="Overwrite the word if it is already saved")
    @click.option("--keep-created-at", is_flag=True, help="With --replace, keep the original creation time")
    def add(word: str, translation: Optional[str], phonetic: Optional[str], from_language: Optional[str],
            to_language: Optional[str], note: Optional[str], replace: bool, keep_created_at: bool) -> None:
        """Save a word to the vocabulary book."""
        if not word.strip():
            raise click.BadParameter("word must not be empty", param_hint="WORD")
        manager = _manager(
            on_duplicate="replace" if replace else "reject",
            reset_created_at=not keep_created_at,
        )
        entry = VocabularyEntry(
            word=word,
            translation=translation,
            phonetic=phonetic,
            from_language=from_language,
            to_language=to_language,
            note=note,
        )
        existed = manager.exists(word)
        if manager.add(entry):
            click.echo(f"'{word}' {'updated' if existed else 'added'}.")
        elif existed:
            click.echo(f"'{word}' already exists (skipped).")
        else:
            click.echo(f"Failed to add '{word}'.")

    @cli.command("vocab-remove")  # type: ignore[misc]
    @click.argument("word")
    def remove(word: str) -> None:
        """Remove a word and its review progress."""
        if _manager().remove(word):
            click.echo(f"'{word}' removed.")
        else:
            click.echo(f"Failed to remove '{word}'.")

    @cli.command("vocab-list")  # type: ignore[misc]
    def list_words() -> None:
        """List saved words, newest first."""
        entries = _manager().list()
        if not entries:
            click.echo("Your vocabulary book is empty.")
            return
        for entry in entries:
            _echo_entry(entry)

    @cli.command("vocab-search")  # type: ignore[misc]
    @click.argument("text")
    @click.option("--case-sensitive", is_flag=True, help="Match letter case exactly")
    def search(text: str, case_sensitive: bool) -> None:
        """Find words whose spelling or translation contains TEXT."""
        entries = _manager().search(text, case_sensitive=case_sensitive)
        if not entries:
            click.echo("No vocabulary matches your search.")
            return
        for entry in entries:
            _echo_entry(entry)

    @cli.command("vocab-review")  # type: ignore[misc]
    @click.option("--limit", default=20, type=int, help="Maximum number of words to review")
    @click.option("--all", "include_all", is_flag=True, help="Include words that are not due yet")
    def review(limit: int, include_all: bool) -> None:
        """Review due words: reveal the answer, then grade yourself."""
        manager = _manager()
        queue = manager.review_queue(limit=limit, only_due=not include_all)
        if not queue:
            click.echo("🎉 No words are due for review! All caught up!")
            return

        statistics = manager.statistics()
        click.echo(f"Due: {statistics.due}  Total: {statistics.total}  Mastered: {statistics.mastered}")
        for index, item in enumerate(queue, 1):
            if not _review_item(manager, item, index, len(queue)):
                break

    @cli.command("vocab-progress")  # type: ignore[misc]
    @click.argument("word")
    def show_progress(word: str) -> None:
        """Show the review progress of a word."""
        progress = _manager().get_progress(word)
        if progress is None:
            click.echo(f"'{word}' has not been reviewed yet.")
            return
        click.echo(f"Progress for {progress.word}:")
        click.echo(f"  Proficiency: {_proficiency_text(progress.proficiency)}")
        click.echo(f"  Reviews: {progress.review_count} ({progress.success_count} remembered, {progress.fail_count} forgotten)")
        click.echo(f"  Last review: {_format_time(progress.last_reviewed_at)}")
        click.echo(f"  Next review: {_format_time(progress.next_review_at)}")

    @cli.command("vocab-clear-progress")  # type: ignore[misc]
    @click.argument("word", required=False)
    def clear_progress(word: Optional[str]) -> None:
        """Reset review progress of WORD, or of every word."""
        if _manager().clear_progress(word):
            click.echo(f"Review progress cleared for {repr(word) if word else 'all words'}.")
        else:
            click.echo("Failed to clear review progress.")

    @cli.command("vocab-clear")  # type: ignore[misc]
    @click.option("--yes", is_flag=True, help="Do not ask for confirmation")
    def clear(yes: bool) -> None:
        """Delete every saved word."""
        if not yes and not click.confirm("Delete all vocabulary and review progress?"):
            click.echo("Aborted.")
            return
        if _manager().clear_all():
            click.echo("All vocabulary has been removed.")
        else:
            click.echo("Failed to clear vocabulary.")

    @cli.command("vocab-stats")  # type: ignore[misc]
    def show_stats() -> None:
        """Show how many words are saved, due and mastered."""
        statistics = _manager().statistics()
        click.echo(f"Total words: {statistics.total}")
        click.echo(f"Due for review: {statistics.due}")
        click.echo(f"Mastered: {statistics.mastered}")

    @cli.command("vocab-path")  # type: ignore[misc]
    def show_path() -> None:
        """Print the location of the vocabulary database."""
        click.echo(_manager().get_store_path())

    @cli.command("vocab-import")  # type: ignore[misc]
    @click.argument("path", required=False)
    def import_wordbook(path: Optional[str]) -> None:
        """Import words from an old line-per-word JSON wordbook file."""
        count = _manager().import_legacy_wordbook(path)
        if count == 0:
            click.echo("No new words imported.")
        else:
            click.echo(f"Imported {count} word(s).")


def _review_item(manager: VocabularyManager, item: ReviewItem, index: int, total: int) -> bool:
    """Run one card of an interactive review. Returns False when the user quits."""
    entry = item.entry
    click.echo("")
    click.echo(f"[{index}/{total}] {entry.word}" + (f" /{entry.phonetic}/" if entry.phonetic else ""))
    click.echo(f"  Proficiency: {_proficiency_text(item.proficiency)}")
    click.prompt("Press Enter to show the answer", default="", show_default=False)
    click.echo(f"  {entry.translation or 'No translation'}")
    if entry.note:
        click.echo(f"  > {entry.note}")

    choice = click.prompt(
        "Result",
        type=click.Choice(["remember", "hard", "forget", "skip", "quit"]),
        default="skip",
    )
    if choice == "quit":
        return False
    if choice == "skip":
        return True

    updated = manager.apply_review_result(entry.word, ReviewResult(choice))
    if updated is None:
        click.echo("⚠️  Could not save the review result.")
    elif choice == "forget":
        click.echo(f"🔄 Will be reviewed again soon ({_format_time(updated.next_review_at)}).")
    else:
        click.echo(f"📅 Next review {_format_time(updated.next_review_at)} (level {_proficiency_text(updated.proficiency)}).")
    return True
