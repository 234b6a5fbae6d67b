"""Text-to-speech adapter that hands utterances to the HTTP client."""

import threading

from core.interfaces import SpeechSynthesizer


class QueuedSpeechSynthesizer(SpeechSynthesizer):
    """Collects what should be spoken; the client does the actual synthesis.

    language None means the voice of the conversation's target language.
    """

    def __init__(self):
        self._queue = []
        self._lock = threading.Lock()

    def speak(self, text: str) -> None:
        with self._lock:
            self._queue.append({'text': text, 'language': None})

    def speak_in_language(self, text: str, language: str) -> None:
        with self._lock:
            self._queue.append({'text': text, 'language': language})

    def drain(self) -> list[dict]:
        """Return and clear everything queued so far."""
        with self._lock:
            items, self._queue = self._queue, []
        return items
