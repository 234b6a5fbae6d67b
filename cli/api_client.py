"""REST API client for parla server."""

import base64

import requests


class ParlaAPIClient:
    """Client for communicating with the parla REST API."""

    def __init__(self, base_url: str = "http://localhost:8000"):
        self.base_url = base_url.rstrip('/')
        self.session = requests.Session()

    def _get(self, endpoint: str, params: dict = None) -> dict:
        """Make a GET request."""
        response = self.session.get(f"{self.base_url}{endpoint}", params=params or {})
        response.raise_for_status()
        return response.json()

    def _post(self, endpoint: str, data: dict) -> dict:
        """Make a POST request."""
        response = self.session.post(f"{self.base_url}{endpoint}", json=data)
        response.raise_for_status()
        return response.json()

    def _delete(self, endpoint: str) -> dict:
        """Make a DELETE request."""
        response = self.session.delete(f"{self.base_url}{endpoint}")
        response.raise_for_status()
        return response.json()

    def health_check(self) -> dict:
        """Check if the server is running."""
        return self._get("/")

    def start_conversation(self, contact: dict = None, target_language: str = None,
                           native_language: str = None) -> dict:
        """Start a call, optionally with a contact persona."""
        return self._post("/api/conversations", {
            'contact': contact,
            'target_language': target_language,
            'native_language': native_language
        })

    def send_text(self, conversation_id: str, text: str) -> dict:
        """Send a typed utterance."""
        return self._post(f"/api/conversations/{conversation_id}/text", {'text': text})

    def send_audio(self, conversation_id: str, audio: bytes) -> dict:
        """Send recorded audio."""
        return self._post(f"/api/conversations/{conversation_id}/speech", {
            'audio_base64': base64.b64encode(audio).decode('ascii')
        })

    def end_conversation(self, conversation_id: str) -> dict:
        """Hang up."""
        return self._delete(f"/api/conversations/{conversation_id}")

    def get_review_words(self, language: str = None) -> dict:
        """Get words due for review."""
        return self._get("/api/reviews", {'language': language} if language else None)

    def get_reminders(self) -> dict:
        """Get review reminders fired since the last call."""
        return self._get("/api/reviews/reminders")

    def mark_struggling(self, word: str, language: str = None) -> dict:
        """Record an incorrect use of a word."""
        return self._post("/api/vocabulary/struggling", {'word': word, 'language': language})

    def get_struggling_words(self, language: str = None) -> dict:
        return self._get("/api/vocabulary/struggling", {'language': language} if language else None)

    def get_proficient_words(self, language: str = None) -> dict:
        return self._get("/api/vocabulary/proficient", {'language': language} if language else None)
