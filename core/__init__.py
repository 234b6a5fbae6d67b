from .models import (
    WordRecord, ProficientRecord, ReviewWord, ScheduledReview, UtteranceOutcome,
    Contact, ConversationState, EscalationAction, TurnResult
)
from .interfaces import (
    SpeechRecognizer, Tutor, SpeechSynthesizer, VocabularyStore, ReviewScheduler,
    VocabularyStoreError
)
from .utils import tokenize
from .vocabulary import VocabularyTracker
from .escalation import EscalationController
from .conversation import ConversationOrchestrator
from .config import (
    MIN_SEVERITY, MAX_SEVERITY, MIN_EASE_FACTOR, MAX_EASE_FACTOR,
    PROMOTION_WINDOW_HOURS, CONTEXT_WINDOW_SIZE,
    DEFAULT_TARGET_LANGUAGE, DEFAULT_NATIVE_LANGUAGE
)

__all__ = [
    'WordRecord', 'ProficientRecord', 'ReviewWord', 'ScheduledReview', 'UtteranceOutcome',
    'Contact', 'ConversationState', 'EscalationAction', 'TurnResult',
    'SpeechRecognizer', 'Tutor', 'SpeechSynthesizer', 'VocabularyStore', 'ReviewScheduler',
    'VocabularyStoreError',
    'tokenize',
    'VocabularyTracker', 'EscalationController', 'ConversationOrchestrator',
    'MIN_SEVERITY', 'MAX_SEVERITY', 'MIN_EASE_FACTOR', 'MAX_EASE_FACTOR',
    'PROMOTION_WINDOW_HOURS', 'CONTEXT_WINDOW_SIZE',
    'DEFAULT_TARGET_LANGUAGE', 'DEFAULT_NATIVE_LANGUAGE'
]
