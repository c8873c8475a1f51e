"""
Use Cases Layer

Aggregates business logic and provides use cases called from the runner.
"""

from model_gauntlet.use_cases.concurrency import map_models
from model_gauntlet.use_cases.context_window import (
    build_context_document,
    classify_degradation,
    generate_autopsy,
    generate_tests,
    run_context_suite,
    run_context_test,
    summarize_context_results,
)
from model_gauntlet.use_cases.generation import (
    run_generation,
    select_seeds,
)
from model_gauntlet.use_cases.health_check import (
    health_check_model,
    warm_up_models,
)
from model_gauntlet.use_cases.judge_selection import (
    JudgeSelection,
    composite_score,
    select_auto_judges,
    select_base_judge,
)
from model_gauntlet.use_cases.judging import (
    auto_judge_results,
    extract_high_quality,
    score_with_judge,
    validate_peer_review,
)
from model_gauntlet.use_cases.pipeline import (
    PipelineAborted,
    PipelineDriver,
    PipelineRun,
    PipelineStage,
    Suites,
)
from model_gauntlet.use_cases.qualification import (
    qualified_models,
    run_instruction_probes,
    run_reasoning_probes,
    score_reasoning_results,
    select_reasoning_judge,
    summarize_reasoning,
)

__all__ = [
    # concurrency
    "map_models",
    # context_window
    "build_context_document",
    "classify_degradation",
    "generate_autopsy",
    "generate_tests",
    "run_context_suite",
    "run_context_test",
    "summarize_context_results",
    # generation
    "run_generation",
    "select_seeds",
    # health_check
    "health_check_model",
    "warm_up_models",
    # judge_selection
    "JudgeSelection",
    "composite_score",
    "select_auto_judges",
    "select_base_judge",
    # judging
    "auto_judge_results",
    "extract_high_quality",
    "score_with_judge",
    "validate_peer_review",
    # pipeline
    "PipelineAborted",
    "PipelineDriver",
    "PipelineRun",
    "PipelineStage",
    "Suites",
    # qualification
    "qualified_models",
    "run_instruction_probes",
    "run_reasoning_probes",
    "score_reasoning_results",
    "select_reasoning_judge",
    "summarize_reasoning",
]
