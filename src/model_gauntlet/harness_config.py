"""
Evaluation Harness Configuration

Manages loading from environment variables, JSON settings files and default values.
"""

import json
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path

from model_gauntlet.domain.constants import (
    AUTO_JUDGE_COUNT,
    CONTEXT_WINDOW_LEVELS,
    DEGRADATION_THRESHOLDS,
    HIGH_QUALITY_THRESHOLD,
    INSTRUCTION_PASS_THRESHOLD,
    REASONING_MIN_SCORE,
)
from model_gauntlet.domain.value_objects import SamplingParams


def _env_bool(key: str, default: bool) -> bool:
    """Convert an environment variable to bool"""
    val = os.environ.get(key)
    if val is None:
        return default
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int) -> int:
    """Convert an environment variable to int"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to an integer.")


def _env_float(key: str, default: float) -> float:
    """Convert an environment variable to float"""
    val = os.environ.get(key)
    if val is None:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"The value '{val}' of environment variable '{key}' cannot be converted to a number.")


def _env_str(key: str, default: str) -> str:
    """Get an environment variable as a string"""
    return os.environ.get(key, default)


def _env_str_list(key: str, default: list[str]) -> list[str]:
    """Convert an environment variable to a comma-separated list of strings"""
    val = os.environ.get(key)
    if val is None:
        return default
    return [x.strip() for x in val.split(",") if x.strip()]


@dataclass
class SamplingConfig:
    """Sampling parameters for one kind of request"""
    temperature: float = 0.5
    top_p: float = 0.9
    max_tokens: int = 512

    def to_params(self) -> SamplingParams:
        return SamplingParams(
            temperature=self.temperature,
            top_p=self.top_p,
            max_tokens=self.max_tokens,
        )


@dataclass
class GatewayConfig:
    """OpenAI-compatible endpoint and per-model error budget"""
    base_url: str = "http://localhost:1234/v1"
    api_key: str = "lm-studio"
    timeout_seconds: int = 600
    max_retries: int = 1
    retry_delay_seconds: float = 1.0
    max_consecutive_errors: int = 3
    target_models: list[str] = field(default_factory=list)
    exclude_models: list[str] = field(default_factory=list)


@dataclass
class QualificationConfig:
    """Instruction and reasoning gate configuration"""
    instruction_pass_threshold: float = INSTRUCTION_PASS_THRESHOLD
    reasoning_min_score: float = REASONING_MIN_SCORE
    instruction_sampling: SamplingConfig = field(
        default_factory=lambda: SamplingConfig(temperature=0.0, top_p=0.8, max_tokens=300)
    )
    reasoning_sampling: SamplingConfig = field(
        default_factory=lambda: SamplingConfig(temperature=0.3, top_p=0.9, max_tokens=600)
    )
    max_probes_per_category: int = 5
    instruction_category_limits: dict[str, int] = field(default_factory=dict)
    reasoning_category_limits: dict[str, int] = field(default_factory=dict)


@dataclass
class JudgingConfig:
    """Multi-judge scoring configuration"""
    high_quality_threshold: float = HIGH_QUALITY_THRESHOLD
    auto_judge_count: int = AUTO_JUDGE_COUNT
    judge_sampling: SamplingConfig = field(
        default_factory=lambda: SamplingConfig(temperature=0.3, top_p=0.9, max_tokens=300)
    )
    reasoning_judge_max_tokens: int = 400
    override_base_judge: str = ""
    override_auto_judges: list[str] = field(default_factory=list)


@dataclass
class ContextWindowConfig:
    """Context-window degradation engine configuration"""
    level: str = "shallow"
    levels: dict[str, float] = field(default_factory=lambda: dict(CONTEXT_WINDOW_LEVELS))
    max_tests: int = 5
    graceful_threshold: int = DEGRADATION_THRESHOLDS["graceful"]
    moderate_threshold: int = DEGRADATION_THRESHOLDS["moderate"]
    sudden_threshold: int = DEGRADATION_THRESHOLDS["sudden"]
    checkpoint_margin_fraction: float = 0.01
    recall_max_tokens: int = 64
    summary_max_tokens: int = 256
    encoding_name: str = "cl100k_base"
    seed: int = 42

    @property
    def multiplier(self) -> float:
        """Token multiplier of the configured level (unknown levels run at full size)"""
        return self.levels.get(self.level, 1.0)


@dataclass
class GenerationConfig:
    """Seed prompt generation configuration"""
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    target_seed_count: int = 0
    category_weights: dict[str, float] = field(default_factory=dict)


@dataclass
class PerformanceConfig:
    """Concurrency budget"""
    max_parallel_requests: int = 1


@dataclass
class SuitesConfig:
    """Which suites run"""
    run_qualification: bool = True
    run_context_window: bool = False
    run_prompt_tests: bool = True


@dataclass
class HarnessConfig:
    """Overall evaluation harness configuration"""
    gateway: GatewayConfig = field(default_factory=GatewayConfig)
    qualification: QualificationConfig = field(default_factory=QualificationConfig)
    judging: JudgingConfig = field(default_factory=JudgingConfig)
    context_window: ContextWindowConfig = field(default_factory=ContextWindowConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    suites: SuitesConfig = field(default_factory=SuitesConfig)

    def to_dict(self) -> dict:
        """Convert to dictionary format"""
        return {"harness_config": asdict(self)}

    @classmethod
    def from_dict(cls, data: dict) -> "HarnessConfig":
        """Create from dictionary (handles presence/absence of harness_config key)"""
        config_data = data.get("harness_config", data)

        qualification_data = dict(config_data.get("qualification", {}))
        for key in ("instruction_sampling", "reasoning_sampling"):
            if key in qualification_data:
                qualification_data[key] = SamplingConfig(**qualification_data[key])

        judging_data = dict(config_data.get("judging", {}))
        if "judge_sampling" in judging_data:
            judging_data["judge_sampling"] = SamplingConfig(**judging_data["judge_sampling"])

        generation_data = dict(config_data.get("generation", {}))
        if "sampling" in generation_data:
            generation_data["sampling"] = SamplingConfig(**generation_data["sampling"])

        return cls(
            gateway=GatewayConfig(**config_data.get("gateway", {})),
            qualification=QualificationConfig(**qualification_data),
            judging=JudgingConfig(**judging_data),
            context_window=ContextWindowConfig(**config_data.get("context_window", {})),
            generation=GenerationConfig(**generation_data),
            performance=PerformanceConfig(**config_data.get("performance", {})),
            suites=SuitesConfig(**config_data.get("suites", {})),
        )


def load_config(path: str | Path | None = None) -> HarnessConfig:
    """
    Load configuration

    With a path, reads a JSON settings file. Otherwise reads environment
    variables, using default values for anything not set.

    Args:
        path: Optional JSON settings file

    Returns:
        HarnessConfig
    """
    if path is not None:
        with open(path, "r", encoding="utf-8") as f:
            return HarnessConfig.from_dict(json.load(f))

    gateway = GatewayConfig(
        base_url=_env_str("GAUNTLET_BASE_URL", "http://localhost:1234/v1"),
        api_key=_env_str("GAUNTLET_API_KEY", "lm-studio"),
        timeout_seconds=_env_int("GAUNTLET_TIMEOUT_SECONDS", 600),
        max_retries=_env_int("GAUNTLET_MAX_RETRIES", 1),
        retry_delay_seconds=_env_float("GAUNTLET_RETRY_DELAY_SECONDS", 1.0),
        max_consecutive_errors=_env_int("GAUNTLET_MAX_CONSECUTIVE_ERRORS", 3),
        target_models=_env_str_list("GAUNTLET_TARGET_MODELS", []),
        exclude_models=_env_str_list("GAUNTLET_EXCLUDE_MODELS", []),
    )
    qualification = QualificationConfig(
        instruction_pass_threshold=_env_float("GAUNTLET_INSTRUCTION_PASS_THRESHOLD", INSTRUCTION_PASS_THRESHOLD),
        reasoning_min_score=_env_float("GAUNTLET_REASONING_MIN_SCORE", REASONING_MIN_SCORE),
        max_probes_per_category=_env_int("GAUNTLET_MAX_PROBES_PER_CATEGORY", 5),
    )
    judging = JudgingConfig(
        high_quality_threshold=_env_float("GAUNTLET_HIGH_QUALITY_THRESHOLD", HIGH_QUALITY_THRESHOLD),
        auto_judge_count=_env_int("GAUNTLET_AUTO_JUDGE_COUNT", AUTO_JUDGE_COUNT),
        override_base_judge=_env_str("GAUNTLET_BASE_JUDGE", ""),
        override_auto_judges=_env_str_list("GAUNTLET_AUTO_JUDGES", []),
    )
    context_window = ContextWindowConfig(
        level=_env_str("GAUNTLET_CONTEXT_LEVEL", "shallow"),
        max_tests=_env_int("GAUNTLET_CONTEXT_MAX_TESTS", 5),
        graceful_threshold=_env_int("GAUNTLET_GRACEFUL_THRESHOLD", DEGRADATION_THRESHOLDS["graceful"]),
        moderate_threshold=_env_int("GAUNTLET_MODERATE_THRESHOLD", DEGRADATION_THRESHOLDS["moderate"]),
        sudden_threshold=_env_int("GAUNTLET_SUDDEN_THRESHOLD", DEGRADATION_THRESHOLDS["sudden"]),
        checkpoint_margin_fraction=_env_float("GAUNTLET_CHECKPOINT_MARGIN_FRACTION", 0.01),
        encoding_name=_env_str("GAUNTLET_ENCODING", "cl100k_base"),
        seed=_env_int("GAUNTLET_SEED", 42),
    )
    generation = GenerationConfig(
        target_seed_count=_env_int("GAUNTLET_TARGET_SEED_COUNT", 0),
    )
    performance = PerformanceConfig(
        max_parallel_requests=_env_int("GAUNTLET_MAX_PARALLEL_REQUESTS", 1),
    )
    suites = SuitesConfig(
        run_qualification=_env_bool("GAUNTLET_RUN_QUALIFICATION", True),
        run_context_window=_env_bool("GAUNTLET_RUN_CONTEXT_WINDOW", False),
        run_prompt_tests=_env_bool("GAUNTLET_RUN_PROMPT_TESTS", True),
    )
    return HarnessConfig(
        gateway=gateway,
        qualification=qualification,
        judging=judging,
        context_window=context_window,
        generation=generation,
        performance=performance,
        suites=suites,
    )
