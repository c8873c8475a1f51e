"""
Domain Layer

Defines constants, entities, and value objects that form the core of the business logic.
Has no dependencies on external libraries.
"""

from model_gauntlet.domain.entities import (
    Checkpoint,
    CheckpointVerdict,
    ContextProbeResult,
    ContextWindowResult,
    ContextWindowSummary,
    ContextWindowTest,
    GenerationResult,
    HealthCheckResult,
    InstructionResult,
    JudgeValidation,
    ReasoningResult,
    ReasoningSummary,
    StageEvent,
)
from model_gauntlet.domain.value_objects import (
    GatewayError,
    ModelResponse,
    PerfMetrics,
    Rating,
    RatingParseError,
    SamplingParams,
    ValidationOutcome,
)

__all__ = [
    # entities
    "Checkpoint",
    "CheckpointVerdict",
    "ContextProbeResult",
    "ContextWindowResult",
    "ContextWindowSummary",
    "ContextWindowTest",
    "GenerationResult",
    "HealthCheckResult",
    "InstructionResult",
    "JudgeValidation",
    "ReasoningResult",
    "ReasoningSummary",
    "StageEvent",
    # value objects
    "GatewayError",
    "ModelResponse",
    "PerfMetrics",
    "Rating",
    "RatingParseError",
    "SamplingParams",
    "ValidationOutcome",
]
