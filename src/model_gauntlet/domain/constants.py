"""
Domain Constants

Centrally manages constants shared across the evaluation pipeline.
"""

# Qualification thresholds
INSTRUCTION_PASS_THRESHOLD = 0.8
REASONING_MIN_SCORE = 7.0

# Judging
HIGH_QUALITY_THRESHOLD = 7.5
AUTO_JUDGE_COUNT = 2
RATING_MIN = 1
RATING_MAX = 10

# Base judge composite weights (reasoning is scored 1-10, instruction is a rate)
COMPOSITE_REASONING_WEIGHT = 0.6
COMPOSITE_INSTRUCTION_WEIGHT = 0.4

# Instruction probe validation kinds
VALIDATION_KINDS = ("exact", "words", "lines", "json", "numeric", "boolean")

# Cross-vocabulary boolean equivalents
TRUE_VALUES = frozenset({"true", "yes", "1", "correct", "affirmative"})
FALSE_VALUES = frozenset({"false", "no", "0", "incorrect", "negative"})

# Context window probing: fractions of the test budget, in probe order
PROBE_FRACTIONS = (0.25, 0.5, 0.75, 1.0)

FILLER_TYPES = ("code", "prose", "technical", "mixed")

# Context window intensity levels -> token multiplier
CONTEXT_WINDOW_LEVELS = {
    "shallow": 0.1,
    "standard": 0.5,
    "deep": 1.0,
}

# Degradation thresholds (average max reliable tokens, exclusive lower bounds)
DEGRADATION_THRESHOLDS = {
    "graceful": 100_000,
    "moderate": 60_000,
    "sudden": 30_000,
}
DEGRADATION_PATTERNS = ("graceful", "moderate", "sudden", "catastrophic")

# Checkpoint failure kinds
FAILURE_NONE = "none"
FAILURE_FORGOT = "forgot"
FAILURE_HALLUCINATED = "hallucinated"
FAILURE_CONFUSED = "confused"

# Phrases used when classifying a missed checkpoint
REFUSAL_PHRASES = ("don't remember", "can't")
HEDGING_PHRASES = ("remember", "sure")

# Length of the secret prefix supplied as a recall hint
SECRET_HINT_LENGTH = 12

# Markers expected in a summary when the default (pirate) directive was followed
DEFAULT_DIRECTIVE_MARKERS = ("arr", "matey")
