"""Vocabulary proficiency tracking with an SM-2 style review schedule."""

import logging
import math
from datetime import datetime, timedelta
from typing import Callable

from .config import (
    MIN_SEVERITY, MAX_SEVERITY,
    MIN_EASE_FACTOR, MAX_EASE_FACTOR, EASE_BONUS, EASE_PENALTY,
    INITIAL_INTERVAL_HOURS, PROMOTION_WINDOW_HOURS
)
from .interfaces import VocabularyStore
from .models import WordRecord, ProficientRecord, ReviewWord, ScheduledReview, UtteranceOutcome
from .utils import tokenize, utcnow, hours_between, KeyedLock

logger = logging.getLogger(__name__)

CorrectnessOracle = Callable[[WordRecord, str], bool]


def is_used_correctly(record: WordRecord, text: str) -> bool:
    """Minimal oracle: the word appears in the utterance."""
    return record.word.lower() in text.lower()


def apply_correct_use(record: WordRecord, now: datetime) -> bool:
    """Update a record after a correct use.

    Returns True when the word qualifies for promotion. In that case the
    schedule fields are left untouched because the record is about to be
    removed.
    """
    record.severity = max(MIN_SEVERITY, record.severity - 1)
    if record.severity == MIN_SEVERITY and \
            hours_between(record.last_reviewed_at, now) <= PROMOTION_WINDOW_HOURS:
        return True

    record.ease_factor = min(MAX_EASE_FACTOR, record.ease_factor + EASE_BONUS)
    record.current_interval_hours = max(
        INITIAL_INTERVAL_HOURS,
        math.floor(record.current_interval_hours * record.ease_factor)
    )
    record.next_review_at = now + timedelta(hours=record.current_interval_hours)
    record.last_reviewed_at = now
    return False


def apply_incorrect_use(record: WordRecord, now: datetime) -> None:
    """Update a record after an incorrect use: harder, and due again in an hour."""
    record.severity = min(MAX_SEVERITY, record.severity + 1)
    record.retries_needed += 1
    record.ease_factor = max(MIN_EASE_FACTOR, record.ease_factor * EASE_PENALTY)
    record.current_interval_hours = INITIAL_INTERVAL_HOURS
    record.next_review_at = now + timedelta(hours=INITIAL_INTERVAL_HOURS)
    record.last_reviewed_at = now


class VocabularyTracker:
    """Tracks struggling and proficient words for a learner."""

    def __init__(self, store: VocabularyStore, oracle: CorrectnessOracle = None):
        self.store = store
        self.oracle = oracle or is_used_correctly
        self._locks = KeyedLock()

    def process_utterance(self, text: str, target_language: str,
                          is_used_correctly: CorrectnessOracle = None,
                          now: datetime = None) -> UtteranceOutcome:
        """Score every struggling word in an utterance and update its schedule.

        Each distinct token is scored once. Tokens that are not struggling
        words are ignored. Raises VocabularyStoreError if the store fails.
        """
        oracle = is_used_correctly or self.oracle
        now = now or utcnow()
        outcome = UtteranceOutcome()

        seen = set()
        for word in tokenize(text):
            if word in seen:
                continue
            seen.add(word)

            with self._locks.hold((word, target_language)):
                record = self.store.find_struggling(word, target_language)
                if record is None:
                    continue

                if oracle(record, text):
                    if apply_correct_use(record, now):
                        self.store.promote(record, ProficientRecord(word, target_language, now))
                        logger.info(f"Promoted '{word}' ({target_language}) to proficient")
                        outcome.add_corrected_word(word, record.severity, promoted=True)
                    else:
                        self.store.save_struggling(record)
                        outcome.add_corrected_word(word, record.severity)
                else:
                    apply_incorrect_use(record, now)
                    self.store.save_struggling(record)
                    outcome.add_struggling_word(word, record.severity)

        return outcome

    def mark_struggling(self, word: str, language: str, now: datetime = None) -> WordRecord:
        """Record an incorrect use, creating the struggling record if needed."""
        tokens = tokenize(word)
        if len(tokens) != 1:
            raise ValueError(f"Expected a single word, got {word!r}")
        word = tokens[0]
        now = now or utcnow()

        with self._locks.hold((word, language)):
            record = self.store.find_struggling(word, language)
            if record is None:
                record = WordRecord.first_miss(word, language, now)
                logger.info(f"New struggling word '{word}' ({language})")
            else:
                apply_incorrect_use(record, now)
            self.store.save_struggling(record)
        return record

    def get_review_words(self, now: datetime = None, language: str = None) -> list[ReviewWord]:
        """Words due for review, oldest due first (ties by word, then language)."""
        now = now or utcnow()
        due = sorted(
            self.store.list_due(now, language),
            key=lambda r: (r.next_review_at, r.word, r.language)
        )
        return [ReviewWord(r.word, r.language) for r in due]

    def get_scheduled_reviews(self, language: str, now: datetime = None) -> list[ScheduledReview]:
        """Every struggling word of a language with the seconds until it is due."""
        now = now or utcnow()
        reviews = []
        for record in self.store.list_struggling(language):
            delay = int((record.next_review_at - now).total_seconds()) if record.next_review_at else 0
            reviews.append(ScheduledReview(record.word, record.language, max(0, delay)))
        return reviews

    def get_struggling_words(self, language: str) -> list[WordRecord]:
        return sorted(self.store.list_struggling(language), key=lambda r: r.word)

    def get_proficient_words(self, language: str) -> list[ProficientRecord]:
        return self.store.list_proficient(language)
