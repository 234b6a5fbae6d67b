"""Abstract base classes for dependency injection."""

from abc import ABC, abstractmethod
from datetime import datetime

from .models import WordRecord, ProficientRecord


class VocabularyStoreError(Exception):
    """A vocabulary store read or write failed. The caller may retry."""


class SpeechRecognizer(ABC):
    """Abstract base class for speech-to-text."""

    @abstractmethod
    def transcribe(self, audio: bytes) -> str | None:
        """Transcribe audio. Returns text, or None when nothing was understood."""
        pass

    @abstractmethod
    def suggest_correction(self) -> str | None:
        """Best guess for the last utterance that could not be transcribed."""
        pass


class Tutor(ABC):
    """Abstract base class for the tutoring response generator."""

    @abstractmethod
    def respond(self, context: str) -> str:
        """Reply to the conversation context in the target language."""
        pass

    @abstractmethod
    def respond_in_native_language(self, context: str, native_language: str) -> str:
        """Reply to the conversation context in the learner's native language."""
        pass


class SpeechSynthesizer(ABC):
    """Abstract base class for text-to-speech. Fire-and-forget."""

    @abstractmethod
    def speak(self, text: str) -> None:
        pass

    @abstractmethod
    def speak_in_language(self, text: str, language: str) -> None:
        pass


class VocabularyStore(ABC):
    """Abstract base class for struggling/proficient vocabulary storage.

    Implementations raise VocabularyStoreError on any read or write failure.
    """

    @abstractmethod
    def find_struggling(self, word: str, language: str) -> WordRecord | None:
        """Get the struggling record for (word, language), or None."""
        pass

    @abstractmethod
    def save_struggling(self, record: WordRecord) -> None:
        """Insert or update a struggling record."""
        pass

    @abstractmethod
    def promote(self, record: WordRecord, proficient: ProficientRecord) -> None:
        """Remove the struggling record and add the proficient one, atomically."""
        pass

    @abstractmethod
    def list_struggling(self, language: str) -> list[WordRecord]:
        """All struggling records for a language."""
        pass

    @abstractmethod
    def list_due(self, now: datetime, language: str = None) -> list[WordRecord]:
        """Struggling records with next_review_at <= now, optionally for one language."""
        pass

    @abstractmethod
    def list_proficient(self, language: str) -> list[ProficientRecord]:
        """All proficient records for a language."""
        pass


class ReviewScheduler(ABC):
    """Abstract base class for timed vocabulary review jobs."""

    @abstractmethod
    def enqueue_unique_review(self, word: str, delay_seconds: int, payload: dict) -> None:
        """Schedule a review for a word, replacing any pending review of the same word."""
        pass
