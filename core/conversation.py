"""Per-turn control flow of a tutoring call."""

import logging
import uuid

from .config import DEFAULT_TARGET_LANGUAGE, DEFAULT_NATIVE_LANGUAGE, REVIEW_JOB_PREFIX, language_name
from .escalation import EscalationController
from .interfaces import (
    SpeechRecognizer, Tutor, SpeechSynthesizer, ReviewScheduler, VocabularyStoreError
)
from .models import Contact, ConversationState, TurnResult, UtteranceOutcome
from .vocabulary import VocabularyTracker

logger = logging.getLogger(__name__)


def build_persona_prompt(contact: Contact, target_language: str) -> str:
    """System prompt that makes the tutor play the contact."""
    prompt = f"You are {contact.name}"
    if contact.personality:
        prompt += f", a {contact.personality} person"
    if contact.hometown:
        prompt += f" from {contact.hometown}"
    prompt += ". "
    if contact.interests:
        prompt += f"You are interested in {', '.join(contact.interests)}. "
    prompt += f"Engage the user in natural conversation to practice {language_name(target_language)}."
    return prompt


class ConversationOrchestrator:
    """Wires ASR, vocabulary tracking, escalation, tutor and TTS into turns.

    One orchestrator may serve many conversations; each turn reads and
    writes only the ConversationState passed to it. Callers must not run
    two turns of the same conversation at once.
    """

    def __init__(self, speech_recognizer: SpeechRecognizer, tutor: Tutor,
                 speech_synthesizer: SpeechSynthesizer, tracker: VocabularyTracker,
                 scheduler: ReviewScheduler = None, escalation: EscalationController = None,
                 target_language: str = DEFAULT_TARGET_LANGUAGE,
                 native_language: str = DEFAULT_NATIVE_LANGUAGE):
        self.speech_recognizer = speech_recognizer
        self.tutor = tutor
        self.speech_synthesizer = speech_synthesizer
        self.tracker = tracker
        self.scheduler = scheduler
        self.escalation = escalation or EscalationController()
        self.target_language = target_language
        self.native_language = native_language

    def start_conversation(self, contact: Contact = None, target_language: str = None,
                           native_language: str = None,
                           conversation_id: str = None) -> ConversationState:
        target_language = target_language or self.target_language
        system_prompt = build_persona_prompt(contact, target_language) if contact else None
        state = self.escalation.new_state(
            conversation_id=conversation_id or str(uuid.uuid4())[:8],
            target_language=target_language,
            native_language=native_language or self.native_language,
            system_prompt=system_prompt
        )
        logger.info(f"Started conversation {state.conversation_id} "
                    f"({state.target_language} -> {state.native_language})")
        return state

    def end_conversation(self, state: ConversationState) -> None:
        logger.info(f"Ended conversation {state.conversation_id} after "
                    f"{len(state.history)} history entries")
        state.clear()

    def handle_user_speech(self, state: ConversationState, audio: bytes) -> TurnResult:
        """Transcribe the audio and run a turn. No transcript is a failed turn."""
        try:
            text = self.speech_recognizer.transcribe(audio)
        except Exception as e:
            logger.error(f"Speech recognition failed: {e}")
            text = None

        return self.handle_user_text(state, text)

    def handle_user_text(self, state: ConversationState, text: str) -> TurnResult:
        """Run a turn for an already transcribed utterance."""
        text = (text or '').strip()
        if not text:
            return TurnResult(escalation=self._fail(state))

        outcome = self._score_vocabulary(state, text)
        context = self.escalation.build_context(state.history, outcome.describe(), state.system_prompt)

        fallback = state.fallback_active
        try:
            if fallback:
                context = f"{context}\n{self.escalation.fallback_prompt(state, text)}"
                response = self.tutor.respond_in_native_language(context, state.native_language)
            else:
                response = self.tutor.respond(context)
        except Exception as e:
            logger.error(f"Tutor failed in conversation {state.conversation_id}: {e}")
            response = ''
        response = (response or '').strip()

        self.escalation.append_exchange(state, text, response)

        result = TurnResult(transcript=text, response=response, outcome=outcome)
        if response:
            if fallback:
                self.speech_synthesizer.speak_in_language(response, state.native_language)
            else:
                self.speech_synthesizer.speak(response)
            self.escalation.record_success(state)
        else:
            result.escalation = self._fail(state)

        self._schedule_reviews(state)
        return result

    def _suggest_correction(self) -> str | None:
        try:
            return self.speech_recognizer.suggest_correction()
        except Exception as e:
            logger.error(f"Correction suggestion failed: {e}")
            return None

    def _fail(self, state: ConversationState):
        action = self.escalation.record_failure(state, self._suggest_correction)
        if action.language:
            self.speech_synthesizer.speak_in_language(action.message, action.language)
        else:
            self.speech_synthesizer.speak(action.message)
        return action

    def _score_vocabulary(self, state: ConversationState, text: str) -> UtteranceOutcome:
        try:
            return self.tracker.process_utterance(text, state.target_language)
        except VocabularyStoreError as e:
            logger.warning(f"Vocabulary store unavailable, continuing without insight: {e}")
            return UtteranceOutcome()

    def _schedule_reviews(self, state: ConversationState) -> None:
        if self.scheduler is None:
            return
        try:
            reviews = self.tracker.get_scheduled_reviews(state.target_language)
        except VocabularyStoreError as e:
            logger.warning(f"Could not load reviews to schedule: {e}")
            return
        for review in reviews:
            try:
                self.scheduler.enqueue_unique_review(review.word, review.delay_seconds, review.payload())
            except Exception as e:
                logger.error(f"Failed to schedule {REVIEW_JOB_PREFIX}{review.word}: {e}")
