"""Stub AI services with predictable responses, for development and tests."""

from core.interfaces import SpeechRecognizer, Tutor


class StubSpeechRecognizer(SpeechRecognizer):
    """Treats short audio as silence."""

    def __init__(self, transcript: str = 'test utterance', min_audio_bytes: int = 1000,
                 correction: str = None):
        self.transcript = transcript
        self.min_audio_bytes = min_audio_bytes
        self.correction = correction

    def transcribe(self, audio: bytes) -> str | None:
        return self.transcript if len(audio) > self.min_audio_bytes else None

    def suggest_correction(self) -> str | None:
        return self.correction


class StubTutor(Tutor):
    """Answers with a fixed phrase; context mentioning "fail" gets a retry prompt."""

    def respond(self, context: str) -> str:
        if 'fail' in context.lower():
            return "I didn't understand. Let's try again."
        return "That's great!"

    def respond_in_native_language(self, context: str, native_language: str) -> str:
        return f"[{native_language}] Let's keep it simple. Try again when you're ready."
