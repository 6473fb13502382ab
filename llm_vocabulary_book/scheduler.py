import time
from typing import Optional, Tuple, Union

from .models import ReviewProgress, ReviewResult

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS

# Waiting time before the next review, indexed by proficiency level.
REVIEW_INTERVALS_MS: Tuple[int, ...] = (
    5 * MINUTE_MS,
    12 * HOUR_MS,
    1 * DAY_MS,
    3 * DAY_MS,
    7 * DAY_MS,
    30 * DAY_MS,
)

MAX_PROFICIENCY = len(REVIEW_INTERVALS_MS) - 1

PROFICIENCY_LABELS: Tuple[str, ...] = (
    "New",
    "Seen",
    "Learning",
    "Familiar",
    "Known",
    "Mastered",
)


def now_ms() -> int:
    return int(time.time() * 1000)


def interval_for(proficiency: int) -> int:
    """Interval (ms) for a proficiency level, clamped to the ladder."""
    index = max(0, min(proficiency, MAX_PROFICIENCY))
    return REVIEW_INTERVALS_MS[index]


def new_progress(word: str) -> ReviewProgress:
    """Progress of a word that has never been reviewed."""
    return ReviewProgress(word=word)


def next_progress(
    progress: ReviewProgress,
    outcome: Union[ReviewResult, str],
    now: Optional[int] = None,
) -> ReviewProgress:
    """
    Compute the progress that follows one review.

    Proficiency moves along a fixed ladder of six levels (0-5):
      remember – one level up
      hard     – one level up (same step as remember)
      forget   – one level down

    The next review is scheduled from the interval of the new level, except
    after ``forget`` which always uses the shortest interval (5 minutes).
    Counters only grow: every review bumps ``review_count`` and exactly one
    of ``success_count`` / ``fail_count``.

    The input is never modified; a new value is returned and the caller is
    responsible for persisting it in a single write.
    """
    outcome = ReviewResult(outcome)
    if now is None:
        now = now_ms()

    current = max(0, min(progress.proficiency, MAX_PROFICIENCY))
    if outcome is ReviewResult.FORGET:
        proficiency = max(current - 1, 0)
        interval = REVIEW_INTERVALS_MS[0]
    else:
        proficiency = min(current + 1, MAX_PROFICIENCY)
        interval = interval_for(proficiency)

    failed = outcome is ReviewResult.FORGET
    return ReviewProgress(
        word=progress.word,
        proficiency=proficiency,
        review_count=progress.review_count + 1,
        success_count=progress.success_count + (0 if failed else 1),
        fail_count=progress.fail_count + (1 if failed else 0),
        last_reviewed_at=now,
        next_review_at=now + interval,
    )
