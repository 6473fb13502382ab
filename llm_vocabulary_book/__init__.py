"""
LLM Vocabulary Book Plugin

Save unknown words met during lookups and study them again on a
spaced-repetition schedule.
"""

from . import db
from . import models
from . import scheduler
from . import repository
from . import queries
from . import stats
from . import wordbook

from .db import StoreState, VocabularyStore
from .models import ReviewItem, ReviewProgress, ReviewResult, ReviewStatistics, VocabularyEntry
from .scheduler import MAX_PROFICIENCY, REVIEW_INTERVALS_MS
from .wordbook import VocabularyManager

__version__ = "0.1.0"
__all__ = [
    "db", "models", "scheduler", "repository", "queries", "stats", "wordbook",
    "StoreState", "VocabularyStore", "VocabularyManager",
    "VocabularyEntry", "ReviewProgress", "ReviewItem", "ReviewResult", "ReviewStatistics",
    "MAX_PROFICIENCY", "REVIEW_INTERVALS_MS",
]
