"""
Scoring sub-package

Provides instruction probe validation, score aggregation and LLM judge parsing.
"""

from model_gauntlet.scoring.aggregation import classify_threshold, compute_quotas, mean
from model_gauntlet.scoring.instruction_validators import clean_response, validate_response
from model_gauntlet.scoring.llm_judge import (
    build_generation_prompt,
    build_reasoning_prompt,
    parse_generation_rating,
    parse_reasoning_rating,
)

__all__ = [
    # aggregation
    "classify_threshold",
    "compute_quotas",
    "mean",
    # instruction validators
    "clean_response",
    "validate_response",
    # llm judge
    "build_generation_prompt",
    "build_reasoning_prompt",
    "parse_generation_rating",
    "parse_reasoning_rating",
]
