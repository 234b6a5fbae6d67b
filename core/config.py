"""Configuration constants for parla application."""

DEFAULT_TARGET_LANGUAGE = 'es'
DEFAULT_NATIVE_LANGUAGE = 'en'

LANGUAGE_NAMES = {
    'es': 'Spanish',
    'en': 'English',
    'fr': 'French',
    'de': 'German',
    'it': 'Italian',
    'pt': 'Portuguese',
    'sr-latn': 'Serbian',
}

# Severity tiers
MIN_SEVERITY = 0
MAX_SEVERITY = 3
INITIAL_SEVERITY = 1          # Severity of a word on its first incorrect use

# Ease factor (SM-2 style)
MIN_EASE_FACTOR = 1.3
MAX_EASE_FACTOR = 2.5
EASE_BONUS = 0.1              # Added on correct use
EASE_PENALTY = 0.8            # Multiplied on incorrect use

# Review intervals
INITIAL_INTERVAL_HOURS = 1    # Interval after a new or incorrect use
PROMOTION_WINDOW_HOURS = 24   # Correct use must follow the last review within this window

# Conversation
CONTEXT_WINDOW_SIZE = 10      # Number of recent exchanges kept in context

# Escalation levels, indexed by consecutive failures
LEVEL_NORMAL = 'normal'
LEVEL_CLARIFY = 'clarify'
LEVEL_REPHRASE = 'rephrase'
LEVEL_NATIVE_FALLBACK = 'native_fallback'
ESCALATION_LEVELS = [LEVEL_NORMAL, LEVEL_CLARIFY, LEVEL_REPHRASE, LEVEL_NATIVE_FALLBACK]
MAX_CONSECUTIVE_FAILURES = len(ESCALATION_LEVELS) - 1
FALLBACK_FAILURE_THRESHOLD = 2  # Tutor answers in the native language from here on

# Review jobs
REVIEW_JOB_PREFIX = 'review_'


def language_name(tag: str) -> str:
    """Display name for a language tag, falling back to the tag itself."""
    return LANGUAGE_NAMES.get(tag.lower(), tag) if tag else tag
