"""FastAPI server for parla application."""

import asyncio
import base64
import binascii
import json
import logging
import os
import time
from collections import deque
from pathlib import Path

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel
from typing import Optional

logger = logging.getLogger(__name__)

from core.config import DEFAULT_TARGET_LANGUAGE, DEFAULT_NATIVE_LANGUAGE
from core.conversation import ConversationOrchestrator
from core.escalation import EscalationController
from core.interfaces import SpeechRecognizer, Tutor, VocabularyStore, VocabularyStoreError
from core.models import Contact, ConversationState
from core.vocabulary import VocabularyTracker

from server.file_storage import FileStorage
from server.postgres_storage import PostgresStorage
from server.review_scheduler import AsyncioReviewScheduler
from server.speech import QueuedSpeechSynthesizer
from server.stubs import StubSpeechRecognizer, StubTutor

CONFIG_FILE = Path.home() / '.config' / 'parla' / 'config.json'
MAX_REMINDERS = 200
# Conversations without a turn for this long are hung up
SESSION_IDLE_TIMEOUT = int(os.environ.get('PARLA_SESSION_TIMEOUT', 1800))
SESSION_SWEEP_INTERVAL = 60


# Pydantic models for API
class ContactModel(BaseModel):
    name: str
    personality: str = ''
    hometown: str = ''
    interests: list[str] = []


class StartConversationRequest(BaseModel):
    contact: Optional[ContactModel] = None
    target_language: Optional[str] = None
    native_language: Optional[str] = None


class SpeechRequest(BaseModel):
    audio_base64: str


class TextRequest(BaseModel):
    text: str


class StruggleRequest(BaseModel):
    word: str
    language: Optional[str] = None


class SpokenItem(BaseModel):
    text: str
    language: Optional[str]


class ConversationResponse(BaseModel):
    conversation_id: str
    target_language: str
    native_language: str
    consecutive_failures: int
    fallback_active: bool
    escalation_level: str
    history: list[str]


class TurnResponse(BaseModel):
    conversation_id: str
    transcript: Optional[str]
    response: Optional[str]
    failed: bool
    escalation_message: Optional[str] = None
    escalation_level: str
    consecutive_failures: int
    fallback_active: bool
    spoken: list[SpokenItem]
    vocabulary: dict  # {corrected: [...], struggling: [...]}


class ConversationSession:
    """One active call: its state, its voice queue and its turn lock."""

    def __init__(self, state: ConversationState, orchestrator: ConversationOrchestrator,
                 synthesizer: QueuedSpeechSynthesizer):
        self.state = state
        self.orchestrator = orchestrator
        self.synthesizer = synthesizer
        self.lock = asyncio.Lock()
        self.closed = False
        self.last_active = time.monotonic()

    def idle_seconds(self) -> float:
        return time.monotonic() - self.last_active


# Global state (in production, use proper DI)
storage: VocabularyStore = None
tracker: VocabularyTracker = None
speech_recognizer: SpeechRecognizer = None
tutor: Tutor = None
scheduler: AsyncioReviewScheduler = None
session_sweeper: asyncio.Task = None
escalation = EscalationController()
conversations: dict[str, ConversationSession] = {}
review_reminders: deque = deque(maxlen=MAX_REMINDERS)

target_language = os.environ.get('PARLA_TARGET_LANGUAGE', DEFAULT_TARGET_LANGUAGE)
native_language = os.environ.get('PARLA_NATIVE_LANGUAGE', DEFAULT_NATIVE_LANGUAGE)


def get_api_key() -> str | None:
    """Get API key from env or config file."""
    api_key = os.environ.get('GEMINI_API_KEY')
    if not api_key and CONFIG_FILE.exists():
        config = json.loads(CONFIG_FILE.read_text())
        api_key = config.get('gemini_api_key')
    return api_key


def on_review_due(payload: dict) -> None:
    """Scheduler callback: remember the reminder until a client fetches it."""
    logger.info(f"Review reminder for '{payload.get('word')}' ({payload.get('language')})")
    review_reminders.append(payload)


def new_session(state_kwargs: dict) -> ConversationSession:
    synthesizer = QueuedSpeechSynthesizer()
    orchestrator = ConversationOrchestrator(
        speech_recognizer, tutor, synthesizer, tracker,
        scheduler=scheduler, escalation=escalation,
        target_language=target_language, native_language=native_language
    )
    state = orchestrator.start_conversation(**state_kwargs)
    session = ConversationSession(state, orchestrator, synthesizer)
    conversations[state.conversation_id] = session
    return session


def get_session(conversation_id: str) -> ConversationSession:
    session = conversations.get(conversation_id)
    if session is None or session.closed:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return session


def close_session(session: ConversationSession) -> None:
    """Hang up a session. Caller holds session.lock or has seen it free."""
    session.closed = True
    session.orchestrator.end_conversation(session.state)
    conversations.pop(session.state.conversation_id, None)


def evict_idle_sessions(max_idle: float = SESSION_IDLE_TIMEOUT) -> list[str]:
    """Hang up conversations with no turn for max_idle seconds. Busy ones are skipped."""
    evicted = []
    for conversation_id, session in list(conversations.items()):
        if session.lock.locked() or session.idle_seconds() < max_idle:
            continue
        # No await between locked() and here, so no turn can start in between
        close_session(session)
        evicted.append(conversation_id)
    if evicted:
        logger.info(f"Evicted {len(evicted)} idle conversation(s): {', '.join(evicted)}")
    return evicted


async def sweep_idle_sessions() -> None:
    while True:
        await asyncio.sleep(SESSION_SWEEP_INTERVAL)
        evict_idle_sessions()


def conversation_response(state: ConversationState) -> ConversationResponse:
    return ConversationResponse(**state.to_dict())


async def run_turn(session: ConversationSession, turn, *args) -> TurnResponse:
    """Run one blocking turn in the executor, one at a time per conversation."""
    async with session.lock:
        if session.closed:
            raise HTTPException(status_code=404, detail="Conversation not found")
        session.last_active = time.monotonic()
        loop = asyncio.get_event_loop()
        result = await loop.run_in_executor(None, lambda: turn(session.state, *args))
        spoken = session.synthesizer.drain()
        session.last_active = time.monotonic()
    state = session.state
    return TurnResponse(
        conversation_id=state.conversation_id,
        escalation_level=state.escalation_level,
        consecutive_failures=state.consecutive_failures,
        fallback_active=state.fallback_active,
        spoken=[SpokenItem(**item) for item in spoken],
        **result.to_dict()
    )


app = FastAPI(title="Parla API", description="Conversational language tutoring API")


@app.on_event("startup")
async def startup():
    """Initialize storage, AI services and the review scheduler on startup."""
    global storage, tracker, speech_recognizer, tutor, scheduler, session_sweeper

    # Use PostgreSQL by default, set PARLA_STORAGE=file to use file storage
    storage_type = os.environ.get('PARLA_STORAGE', 'postgres')
    if storage_type == 'file':
        storage = FileStorage()
        print("Using file storage")
    else:
        storage = PostgresStorage()
        print("Using PostgreSQL storage")
    tracker = VocabularyTracker(storage)

    # PARLA_AI=stub runs without any model, for development
    if os.environ.get('PARLA_AI', 'gemini') == 'stub':
        speech_recognizer = StubSpeechRecognizer()
        tutor = StubTutor()
        print("AI services: stubs")
    else:
        from server.gemini_provider import GeminiTutor, GeminiSpeechRecognizer

        api_key = get_api_key()
        if not api_key:
            raise RuntimeError(
                "GEMINI_API_KEY environment variable not set and config file not found. "
                f"Set GEMINI_API_KEY or create {CONFIG_FILE}"
            )
        tutor = GeminiTutor(api_key, model_name='gemini-2.0-flash')
        speech_recognizer = GeminiSpeechRecognizer(api_key, model_name='gemini-2.0-flash',
                                                   language=target_language)
        print("AI services initialized: gemini-2.0-flash (tutor, speech recognition)")

    scheduler = AsyncioReviewScheduler(asyncio.get_running_loop(), on_review_due)
    session_sweeper = asyncio.create_task(sweep_idle_sessions())


@app.on_event("shutdown")
async def shutdown():
    if session_sweeper:
        session_sweeper.cancel()
    if scheduler:
        scheduler.cancel_all()
    if isinstance(storage, PostgresStorage):
        storage.close()


@app.get("/")
async def root():
    """Health check."""
    return {"service": "parla", "status": "ok", "active_conversations": len(conversations)}


# Conversation Endpoints
@app.post("/api/conversations", response_model=ConversationResponse)
async def start_conversation(request: StartConversationRequest):
    """Start a call with a contact."""
    contact = Contact.from_dict(request.contact.model_dump()) if request.contact else None
    session = new_session({
        'contact': contact,
        'target_language': request.target_language,
        'native_language': request.native_language
    })
    return conversation_response(session.state)


@app.get("/api/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(conversation_id: str):
    return conversation_response(get_session(conversation_id).state)


@app.post("/api/conversations/{conversation_id}/speech", response_model=TurnResponse)
async def post_speech(conversation_id: str, request: SpeechRequest):
    """Run a turn from recorded audio."""
    session = get_session(conversation_id)
    try:
        audio = base64.b64decode(request.audio_base64, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=400, detail="audio_base64 is not valid base64")
    return await run_turn(session, session.orchestrator.handle_user_speech, audio)


@app.post("/api/conversations/{conversation_id}/text", response_model=TurnResponse)
async def post_text(conversation_id: str, request: TextRequest):
    """Run a turn from typed text, skipping speech recognition."""
    session = get_session(conversation_id)
    return await run_turn(session, session.orchestrator.handle_user_text, request.text)


@app.delete("/api/conversations/{conversation_id}")
async def end_conversation(conversation_id: str):
    """Hang up. The conversation state is discarded."""
    session = get_session(conversation_id)
    async with session.lock:
        if session.closed:
            raise HTTPException(status_code=404, detail="Conversation not found")
        close_session(session)
    logger.info(f"Conversation {conversation_id} closed, {len(conversations)} still active")
    return {"success": True}


# Vocabulary Endpoints
@app.get("/api/reviews")
async def get_reviews(language: Optional[str] = None):
    """Words due for review, oldest first."""
    loop = asyncio.get_event_loop()
    try:
        words = await loop.run_in_executor(None, lambda: tracker.get_review_words(language=language))
    except VocabularyStoreError as e:
        raise HTTPException(status_code=503, detail=f"Vocabulary store unavailable: {e}")
    return {"words": [w.to_dict() for w in words]}


@app.get("/api/reviews/reminders")
async def get_reminders():
    """Review reminders fired since the last call."""
    reminders = list(review_reminders)
    review_reminders.clear()
    return {"reminders": reminders, "pending": scheduler.pending() if scheduler else []}


@app.post("/api/vocabulary/struggling")
async def mark_struggling(request: StruggleRequest):
    """Record an incorrect use of a word."""
    language = request.language or target_language
    loop = asyncio.get_event_loop()
    try:
        record = await loop.run_in_executor(None, lambda: tracker.mark_struggling(request.word, language))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except VocabularyStoreError as e:
        raise HTTPException(status_code=503, detail=f"Vocabulary store unavailable: {e}")
    return record.to_dict()


@app.get("/api/vocabulary/struggling")
async def get_struggling(language: Optional[str] = None):
    loop = asyncio.get_event_loop()
    try:
        records = await loop.run_in_executor(
            None, lambda: tracker.get_struggling_words(language or target_language)
        )
    except VocabularyStoreError as e:
        raise HTTPException(status_code=503, detail=f"Vocabulary store unavailable: {e}")
    return {"words": [r.to_dict() for r in records]}


@app.get("/api/vocabulary/proficient")
async def get_proficient(language: Optional[str] = None):
    loop = asyncio.get_event_loop()
    try:
        records = await loop.run_in_executor(
            None, lambda: tracker.get_proficient_words(language or target_language)
        )
    except VocabularyStoreError as e:
        raise HTTPException(status_code=503, detail=f"Vocabulary store unavailable: {e}")
    return {"words": [r.to_dict() for r in records]}
