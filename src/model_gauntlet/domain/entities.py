"""
Domain Entities

Defines the primary data structures produced by one pipeline run.
"""

from dataclasses import dataclass, field

from model_gauntlet.domain.constants import FAILURE_NONE
from model_gauntlet.domain.value_objects import PerfMetrics, Rating, SamplingParams


@dataclass
class InstructionResult:
    """Instruction probe tallies for one model"""
    model_name: str
    total: int = 0
    strict_passes: int = 0
    lenient_passes: int = 0
    avg_tokens_per_second: float = 0.0
    avg_latency_ms: float = 0.0
    failure_details: list[str] = field(default_factory=list)

    @property
    def pass_rate(self) -> float:
        if self.total == 0:
            return 0.0
        return (self.strict_passes + self.lenient_passes) / self.total


@dataclass
class ReasoningResult:
    """Response to one reasoning probe, with the judge's rating if one parsed"""
    model_name: str
    category: str
    prompt: str
    reference_answer: str
    response: str
    perf: PerfMetrics
    rating: Rating | None = None


@dataclass
class ReasoningSummary:
    """Aggregated reasoning scores for one model"""
    model_name: str
    avg_overall: float
    avg_correctness: float
    avg_logical_steps: float
    avg_clarity: float
    avg_tokens_per_second: float
    avg_latency_ms: float
    rated_count: int
    category_scores: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class Checkpoint:
    """A secret planted in a context-window document"""
    position: int
    secret: str
    carrier: str


@dataclass
class ContextWindowTest:
    """A concrete context-window test with resolved token budget and checkpoints"""
    name: str
    filler_type: str
    token_budget: int
    checkpoints: list[Checkpoint]
    buried_directive: str | None = None
    directive_markers: tuple[str, ...] = ()


@dataclass
class CheckpointVerdict:
    """Recall verdict for one checkpoint at one probe point"""
    secret: str
    expected_position: int
    correct: bool
    model_said: str
    failure_kind: str = FAILURE_NONE


@dataclass
class ContextProbeResult:
    """Outcome of probing a model at one fraction of the test budget"""
    approx_tokens: int
    verdicts: list[CheckpointVerdict] = field(default_factory=list)
    followed_buried_directive: bool | None = None
    skipped_checkpoints: int = 0

    @property
    def reliable(self) -> bool:
        """All checkpoints answered correctly and the directive (if any) honoured"""
        if self.skipped_checkpoints:
            return False
        if self.followed_buried_directive is False:
            return False
        return all(v.correct for v in self.verdicts)


@dataclass
class ContextWindowResult:
    """Result of one context-window test against one model"""
    model_name: str
    test_name: str
    token_budget: int
    probes: list[ContextProbeResult]
    max_reliable_tokens: int
    checkpoint_accuracy: float
    first_hallucination_at: int | None = None
    avg_tokens_per_second: float = 0.0
    avg_latency_ms: float = 0.0
    autopsy: str = ""


@dataclass
class ContextWindowSummary:
    """Per-model summary across all context-window tests"""
    model_name: str
    avg_max_reliable_tokens: float
    avg_checkpoint_accuracy: float
    degradation_pattern: str
    test_reliability: dict[str, int] = field(default_factory=dict)


@dataclass
class GenerationResult:
    """A model's response to a seed prompt, plus the ratings it accumulates"""
    id: int
    seed_prompt: str
    category: str
    model_name: str
    response: str
    params: SamplingParams
    perf: PerfMetrics
    ratings: list[Rating] = field(default_factory=list)

    def add_rating(self, rating: Rating) -> None:
        """Attach a rating; a rater may only rate once per judging pass"""
        for existing in self.ratings:
            if existing.rater == rating.rater and existing.judging_pass == rating.judging_pass:
                raise ValueError(
                    f"Result {self.id} was already rated by {rating.rater} "
                    f"in the {rating.judging_pass} pass"
                )
        self.ratings.append(rating)

    def has_rating_from(self, rater: str, judging_pass: str) -> bool:
        return any(r.rater == rater and r.judging_pass == judging_pass for r in self.ratings)

    @property
    def avg_score(self) -> float:
        if not self.ratings:
            return 0.0
        return sum(r.overall for r in self.ratings) / len(self.ratings)

    def is_high_quality(self, threshold: float) -> bool:
        return bool(self.ratings) and self.avg_score >= threshold


@dataclass
class JudgeValidation:
    """Peer-validation outcome for one selected judge"""
    judge: str
    base_score: float | None
    peer_score: float | None
    rated_responses: int

    @property
    def delta(self) -> float | None:
        if self.base_score is None or self.peer_score is None:
            return None
        return self.peer_score - self.base_score

    @property
    def verdict(self) -> str:
        delta = self.delta
        if delta is None:
            return "unverified"
        return "validated" if delta >= 0 else "overrated"


@dataclass
class StageEvent:
    """One entry in the ordered stage-transition log"""
    stage: str
    timestamp: str
    outcome: str
    detail: str = ""


@dataclass
class HealthCheckResult:
    """Health check result"""
    model_name: str
    success: bool
    latency_ms: int | None
    error: str | None
