"""Gemini AI provider implementations."""

import ast
import logging
import time
import google.generativeai as genai

from core.interfaces import Tutor, SpeechRecognizer
from core.config import language_name

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

TUTOR_INSTRUCTIONS = """
    You are a friendly conversation partner on a phone call with a language learner.
    Stay in character, keep replies to one to three short spoken sentences,
    and never use markdown, lists or emoji: your reply will be read aloud.
    If a VocabularyContext is given, gently reuse the words the learner struggles with.
"""


class GeminiProvider:
    """Shared Gemini plumbing: model setup, timing and usage stats."""

    def __init__(self, api_key: str, model_name: str = 'gemini-2.0-flash'):
        genai.configure(api_key=api_key)
        self.model = genai.GenerativeModel(model_name)
        self.model_name = model_name
        self.stats = {'calls': 0, 'errors': 0, 'total_ms': 0}

    def _execute(self, contents) -> tuple[str, int]:
        start_time = time.time()
        try:
            response = self.model.generate_content(contents)
            text = response.text
        except Exception:
            self.stats['errors'] += 1
            raise
        end_time = time.time()
        ms = int((end_time - start_time) * 1000)
        self._record_stats(ms)
        return (text, ms)

    def _record_stats(self, ms: int) -> None:
        self.stats['calls'] += 1
        self.stats['total_ms'] += ms

    def get_stats(self) -> dict:
        calls = self.stats['calls']
        return {
            'model': self.model_name,
            'calls': calls,
            'errors': self.stats['errors'],
            'avg_ms': int(self.stats['total_ms'] / calls) if calls else 0
        }


class GeminiTutor(GeminiProvider, Tutor):
    """Tutor backed by a Gemini text model."""

    def respond(self, context: str) -> str:
        prompt = f"""
            {TUTOR_INSTRUCTIONS}

            Conversation so far:
            {context}

            Write only your next spoken reply.
        """
        response, ms = self._execute(prompt)
        logger.info(f"Tutor reply in {ms}ms ({len(response)} chars)")
        return response.strip()

    def respond_in_native_language(self, context: str, native_language: str) -> str:
        native = language_name(native_language)
        prompt = f"""
            {TUTOR_INSTRUCTIONS}

            The learner is having trouble. Reply in {native}, not in the practice language.
            Explain simply, then encourage the learner to try again.

            Conversation so far:
            {context}

            Write only your next spoken reply, in {native}.
        """
        response, ms = self._execute(prompt)
        logger.info(f"Tutor native-language ({native_language}) reply in {ms}ms")
        return response.strip()


class GeminiSpeechRecognizer(GeminiProvider, SpeechRecognizer):
    """Speech-to-text using Gemini's audio input.

    The model returns both a confident transcript (or None) and a best
    guess, which is kept for suggest_correction().
    """

    def __init__(self, api_key: str, model_name: str = 'gemini-2.0-flash',
                 language: str = 'es', mime_type: str = 'audio/wav'):
        super().__init__(api_key, model_name)
        self.language = language
        self.mime_type = mime_type
        self._last_guess = None

    def _sanitize_transcription(self, response: str) -> str:
        s = response[response.find('{'):response.rfind('}')+1]
        s = s.replace('null', 'None')
        s = s.replace('false', 'False')
        s = s.replace('true', 'True')
        return s

    def transcribe(self, audio: bytes) -> str | None:
        self._last_guess = None
        if not audio:
            return None

        prompt = f"""
            Transcribe this recording of a learner speaking {language_name(self.language)}.

            Respond with ONLY a Python dictionary:
            {{
                'transcript': the exact words spoken, or None if the speech is unclear or silent,
                'best_guess': your best guess of what the learner meant, or None
            }}

            Return ONLY the dictionary, no other text, no markdown formatting.
        """
        try:
            response, ms = self._execute([prompt, {'mime_type': self.mime_type, 'data': audio}])
        except Exception as e:
            logger.error(f"Transcription request failed: {e}")
            return None

        sanitized = self._sanitize_transcription(response)
        try:
            result = ast.literal_eval(sanitized)
        except (SyntaxError, ValueError) as e:
            logger.error(f"Failed to parse transcription: {e}")
            logger.error(f"Raw response:\n{response}")
            return None

        if not isinstance(result, dict):
            logger.warning(f"Transcription response is not a dict: {type(result)}")
            return None

        guess = result.get('best_guess')
        self._last_guess = guess.strip() if isinstance(guess, str) and guess.strip() else None

        transcript = result.get('transcript')
        if not isinstance(transcript, str) or not transcript.strip():
            logger.info(f"No confident transcript ({ms}ms), best guess: {self._last_guess}")
            return None
        return transcript.strip()

    def suggest_correction(self) -> str | None:
        return self._last_guess
