"""
Domain Value Objects

Defines immutable data structures representing values such as performance
metrics, model responses, judge ratings and probe validation outcomes.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class PerfMetrics:
    """Performance of a single model interaction"""
    total_latency_ms: float
    first_token_latency_ms: float | None = None
    tokens_per_second: float | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None

    def __post_init__(self):
        if self.total_latency_ms < 0:
            raise ValueError("total_latency_ms must be non-negative")


@dataclass(frozen=True)
class SamplingParams:
    """Sampling parameters sent with a completion request"""
    temperature: float = 0.0
    top_p: float = 1.0
    max_tokens: int = 512


@dataclass(frozen=True)
class ModelResponse:
    """Model response"""
    output: str
    model_name: str
    perf: PerfMetrics


@dataclass(frozen=True)
class GatewayError:
    """Typed failure returned by the gateway in place of a response"""
    model_name: str
    kind: str  # timeout / transport / empty_response / flagged
    message: str = ""


@dataclass(frozen=True)
class Rating:
    """A judge's rating of one response (scores are on a 1-10 scale)"""
    overall: float
    rater: str
    justification: str = ""
    correctness: float | None = None
    logical_steps: float | None = None
    clarity: float | None = None
    judging_pass: str = "base"


@dataclass(frozen=True)
class RatingParseError:
    """Judge output that could not be turned into a Rating"""
    rater: str
    message: str
    raw: str = ""


@dataclass(frozen=True)
class ValidationOutcome:
    """Outcome of validating one instruction probe response"""
    verdict: str  # strict / lenient / fail
    reason: str = ""

    def __post_init__(self):
        if self.verdict not in ("strict", "lenient", "fail"):
            raise ValueError(f"Unknown verdict: {self.verdict}")

    @property
    def strict_pass(self) -> bool:
        return self.verdict == "strict"

    @property
    def lenient_pass(self) -> bool:
        return self.verdict == "lenient"

    @property
    def passed(self) -> bool:
        return self.verdict != "fail"

    @classmethod
    def strict(cls) -> "ValidationOutcome":
        return cls("strict")

    @classmethod
    def lenient(cls, reason: str) -> "ValidationOutcome":
        return cls("lenient", reason)

    @classmethod
    def fail(cls, reason: str) -> "ValidationOutcome":
        return cls("fail", reason)
