"""Failure-driven escalation of the tutoring dialogue."""

import logging
from typing import Callable

from .config import (
    CONTEXT_WINDOW_SIZE, MAX_CONSECUTIVE_FAILURES,
    LEVEL_CLARIFY, LEVEL_REPHRASE, LEVEL_NATIVE_FALLBACK,
    language_name
)
from .models import ConversationState, EscalationAction

logger = logging.getLogger(__name__)


class EscalationController:
    """Chooses what to say after failed turns and builds the tutor context.

    Failures walk the conversation through clarify, rephrase and finally a
    native-language fallback. The counter saturates at the fallback level;
    any successful spoken response resets it.
    """

    def __init__(self, context_window_size: int = CONTEXT_WINDOW_SIZE):
        self.context_window_size = context_window_size

    def new_state(self, conversation_id: str = None, target_language: str = None,
                  native_language: str = None, system_prompt: str = None) -> ConversationState:
        kwargs = {}
        if target_language:
            kwargs['target_language'] = target_language
        if native_language:
            kwargs['native_language'] = native_language
        return ConversationState(
            conversation_id=conversation_id,
            context_window_size=self.context_window_size,
            system_prompt=system_prompt,
            **kwargs
        )

    def record_failure(self, state: ConversationState,
                       suggest_correction: Callable[[], str | None] = None) -> EscalationAction:
        """Register a failed turn and return the message to speak."""
        state.consecutive_failures = min(MAX_CONSECUTIVE_FAILURES, state.consecutive_failures + 1)
        level = state.escalation_level

        if level == LEVEL_CLARIFY:
            candidate = suggest_correction() if suggest_correction else None
            if candidate and candidate.strip():
                message = f"I didn't understand. Did you mean '{candidate.strip()}'?"
            else:
                message = "I didn't catch that. Could you rephrase?"
            action = EscalationAction(level, message)
        elif level == LEVEL_REPHRASE:
            message = ("Let's try again. Please speak clearly. "
                       f"Use simple {language_name(state.target_language)} phrases.")
            action = EscalationAction(level, message)
        else:
            message = (f"Let me switch to {language_name(state.native_language)} to help. "
                       "How would you say the phrase in your own words?")
            action = EscalationAction(LEVEL_NATIVE_FALLBACK, message, state.native_language)

        logger.info(f"Conversation {state.conversation_id}: failure "
                    f"{state.consecutive_failures}, escalating to {action.level}")
        state.add_entry(f"AI: {message}")
        return action

    def record_success(self, state: ConversationState) -> None:
        if state.consecutive_failures:
            logger.info(f"Conversation {state.conversation_id}: recovered after "
                        f"{state.consecutive_failures} failure(s)")
        state.consecutive_failures = 0

    def append_exchange(self, state: ConversationState, user_text: str, response: str) -> None:
        state.add_entry(f"User: {user_text}")
        state.add_entry(f"AI: {response}")

    def build_context(self, history: list[str], vocabulary_insight: str,
                      system_prompt: str = None) -> str:
        """Recent history plus an optional vocabulary note for the tutor."""
        context = '\n'.join(history[-self.context_window_size * 2:])
        if system_prompt:
            context = f"System: {system_prompt}\n{context}" if context else f"System: {system_prompt}"
        if vocabulary_insight and vocabulary_insight.strip():
            context = f"{context}\n\nVocabularyContext: {vocabulary_insight}"
        return context

    def fallback_prompt(self, state: ConversationState, user_text: str) -> str:
        """Extra instruction for the tutor while the fallback is active."""
        target = language_name(state.target_language)
        native = language_name(state.native_language)
        if state.escalation_level == LEVEL_NATIVE_FALLBACK:
            return (f"The learner said '{user_text}'. Now responding in {native} for clarity. "
                    f"Please try to answer in {target} when ready.")
        return (f"The learner said '{user_text}'. Rephrase in {target}: "
                "Use simple words to express your thought.")
