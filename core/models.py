"""Domain models for parla application."""

from datetime import datetime, timedelta

from .config import (
    INITIAL_SEVERITY, INITIAL_INTERVAL_HOURS, MAX_EASE_FACTOR,
    CONTEXT_WINDOW_SIZE, FALLBACK_FAILURE_THRESHOLD, ESCALATION_LEVELS,
    MAX_CONSECUTIVE_FAILURES, DEFAULT_TARGET_LANGUAGE, DEFAULT_NATIVE_LANGUAGE
)
from .utils import to_iso, from_iso


class WordRecord:
    """A struggling word and its spaced-repetition schedule."""

    def __init__(self, word: str, language: str, severity: int = INITIAL_SEVERITY,
                 retries_needed: int = 1, ease_factor: float = MAX_EASE_FACTOR,
                 current_interval_hours: int = INITIAL_INTERVAL_HOURS,
                 next_review_at: datetime = None, last_reviewed_at: datetime = None):
        self.word = word
        self.language = language
        self.severity = severity
        self.retries_needed = retries_needed
        self.ease_factor = ease_factor
        self.current_interval_hours = current_interval_hours
        self.next_review_at = next_review_at
        self.last_reviewed_at = last_reviewed_at

    @classmethod
    def first_miss(cls, word: str, language: str, now: datetime) -> 'WordRecord':
        """Create the record for a word's first incorrect use."""
        return cls(
            word, language,
            next_review_at=now + timedelta(hours=INITIAL_INTERVAL_HOURS),
            last_reviewed_at=now
        )

    @property
    def key(self) -> tuple[str, str]:
        return (self.word, self.language)

    def to_dict(self) -> dict:
        return {
            'word': self.word,
            'language': self.language,
            'severity': self.severity,
            'retries_needed': self.retries_needed,
            'ease_factor': self.ease_factor,
            'current_interval_hours': self.current_interval_hours,
            'next_review_at': to_iso(self.next_review_at),
            'last_reviewed_at': to_iso(self.last_reviewed_at)
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'WordRecord':
        return cls(
            data['word'], data['language'],
            severity=data.get('severity', INITIAL_SEVERITY),
            retries_needed=data.get('retries_needed', 1),
            ease_factor=data.get('ease_factor', MAX_EASE_FACTOR),
            current_interval_hours=data.get('current_interval_hours', INITIAL_INTERVAL_HOURS),
            next_review_at=from_iso(data.get('next_review_at')),
            last_reviewed_at=from_iso(data.get('last_reviewed_at'))
        )

    def __repr__(self) -> str:
        return (f"WordRecord({self.word!r}, {self.language!r}, severity={self.severity}, "
                f"ease={self.ease_factor}, interval={self.current_interval_hours}h)")


class ProficientRecord:
    """A mastered word. Written once on promotion, never changed."""

    def __init__(self, word: str, language: str, mastered_at: datetime):
        self.word = word
        self.language = language
        self.mastered_at = mastered_at

    def to_dict(self) -> dict:
        return {
            'word': self.word,
            'language': self.language,
            'mastered_at': to_iso(self.mastered_at)
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ProficientRecord':
        return cls(data['word'], data['language'], from_iso(data.get('mastered_at')))


class ReviewWord:
    """Word/language pair returned by review queries."""

    def __init__(self, word: str, language: str):
        self.word = word
        self.language = language

    def __eq__(self, other) -> bool:
        if not isinstance(other, ReviewWord):
            return NotImplemented
        return (self.word, self.language) == (other.word, other.language)

    def __hash__(self) -> int:
        return hash((self.word, self.language))

    def __repr__(self) -> str:
        return f"ReviewWord({self.word!r}, {self.language!r})"

    def to_dict(self) -> dict:
        return {'word': self.word, 'language': self.language}


class ScheduledReview:
    """A struggling word and the seconds left until it is due."""

    def __init__(self, word: str, language: str, delay_seconds: int):
        self.word = word
        self.language = language
        self.delay_seconds = delay_seconds

    def payload(self) -> dict:
        return {'word': self.word, 'language': self.language}


class UtteranceOutcome:
    """Per-word results of scoring one utterance."""

    def __init__(self):
        self.corrected = []   # [{word, severity, promoted}]
        self.struggling = []  # [{word, severity}]

    def add_corrected_word(self, word: str, severity: int, promoted: bool = False) -> None:
        self.corrected.append({'word': word, 'severity': severity, 'promoted': promoted})

    def add_struggling_word(self, word: str, severity: int) -> None:
        self.struggling.append({'word': word, 'severity': severity})

    @property
    def promoted_words(self) -> list[str]:
        return [c['word'] for c in self.corrected if c['promoted']]

    def is_empty(self) -> bool:
        return not self.corrected and not self.struggling

    def describe(self) -> str:
        """Vocabulary insight for the tutor prompt. Empty when nothing matched."""
        parts = []
        if self.corrected:
            words = ', '.join(
                f"{c['word']} (mastered)" if c['promoted'] else f"{c['word']} (severity {c['severity']})"
                for c in self.corrected
            )
            parts.append(f"Used correctly: {words}.")
        if self.struggling:
            words = ', '.join(f"{s['word']} (severity {s['severity']})" for s in self.struggling)
            parts.append(f"Still struggling with: {words}.")
        return ' '.join(parts)

    def to_dict(self) -> dict:
        return {
            'corrected': list(self.corrected),
            'struggling': list(self.struggling)
        }


class Contact:
    """Persona the learner is calling."""

    def __init__(self, name: str, personality: str = '', hometown: str = '',
                 interests: list = None):
        self.name = name
        self.personality = personality
        self.hometown = hometown
        self.interests = interests or []

    @classmethod
    def from_dict(cls, data: dict) -> 'Contact':
        return cls(
            data['name'],
            personality=data.get('personality', ''),
            hometown=data.get('hometown', ''),
            interests=data.get('interests', [])
        )


class ConversationState:
    """Mutable state of one active call. Owned by a single conversation."""

    def __init__(self, conversation_id: str = None,
                 target_language: str = DEFAULT_TARGET_LANGUAGE,
                 native_language: str = DEFAULT_NATIVE_LANGUAGE,
                 context_window_size: int = CONTEXT_WINDOW_SIZE,
                 system_prompt: str = None):
        self.conversation_id = conversation_id
        self.target_language = target_language
        self.native_language = native_language
        self.context_window_size = context_window_size
        self.system_prompt = system_prompt
        self.history = []
        self.consecutive_failures = 0

    @property
    def max_history(self) -> int:
        return self.context_window_size * 2

    @property
    def fallback_active(self) -> bool:
        return self.consecutive_failures >= FALLBACK_FAILURE_THRESHOLD

    @property
    def escalation_level(self) -> str:
        return ESCALATION_LEVELS[min(self.consecutive_failures, MAX_CONSECUTIVE_FAILURES)]

    def add_entry(self, entry: str) -> None:
        """Append a history entry, evicting the oldest beyond capacity."""
        self.history.append(entry)
        if len(self.history) > self.max_history:
            self.history = self.history[-self.max_history:]

    def clear(self) -> None:
        self.history = []
        self.consecutive_failures = 0

    def to_dict(self) -> dict:
        return {
            'conversation_id': self.conversation_id,
            'target_language': self.target_language,
            'native_language': self.native_language,
            'history': list(self.history),
            'consecutive_failures': self.consecutive_failures,
            'fallback_active': self.fallback_active,
            'escalation_level': self.escalation_level
        }


class EscalationAction:
    """What to say after a failed turn, and in which language."""

    def __init__(self, level: str, message: str, language: str = None):
        self.level = level
        self.message = message
        self.language = language  # None means the default voice

    def __repr__(self) -> str:
        return f"EscalationAction({self.level!r}, {self.message!r}, {self.language!r})"


class TurnResult:
    """Result of processing one user turn."""

    def __init__(self, transcript: str = None, response: str = None,
                 outcome: UtteranceOutcome = None, escalation: EscalationAction = None):
        self.transcript = transcript
        self.response = response
        self.outcome = outcome or UtteranceOutcome()
        self.escalation = escalation

    @property
    def failed(self) -> bool:
        return self.escalation is not None

    def to_dict(self) -> dict:
        return {
            'transcript': self.transcript,
            'response': self.response,
            'failed': self.failed,
            'escalation_message': self.escalation.message if self.escalation else None,
            'vocabulary': self.outcome.to_dict()
        }
