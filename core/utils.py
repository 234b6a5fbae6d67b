"""Utility functions for parla application."""

import re
import threading
from contextlib import contextmanager
from datetime import datetime, timezone

TOKEN_SEPARATORS = re.compile(r'[\s,.;:!?¿¡"\'()\[\]{}]+')


def tokenize(text: str) -> list[str]:
    """Split an utterance into lowercase word tokens."""
    if not text:
        return []
    tokens = []
    for token in TOKEN_SEPARATORS.split(text):
        token = token.strip().lower()
        if token:
            tokens.append(token)
    return tokens


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def hours_between(start: datetime, end: datetime) -> int:
    """Whole hours elapsed from start to end (truncated toward zero)."""
    return int((end - start).total_seconds() / 3600)


def to_iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def from_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp, assuming UTC when no offset is given."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class KeyedLock:
    """One lock per key, alive only while some thread holds or waits on it."""

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks = {}

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]
