"""
Judge Selection

Elects the base judge from the qualification results and, once generation
results are scored, the auto-judges.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass

from model_gauntlet.domain.constants import (
    AUTO_JUDGE_COUNT,
    COMPOSITE_INSTRUCTION_WEIGHT,
    COMPOSITE_REASONING_WEIGHT,
    INSTRUCTION_PASS_THRESHOLD,
    REASONING_MIN_SCORE,
)
from model_gauntlet.domain.entities import GenerationResult, InstructionResult, ReasoningSummary
from model_gauntlet.scoring.aggregation import mean

logger = logging.getLogger(__name__)


@dataclass
class JudgeSelection:
    """Outcome of base judge election"""
    judge: str
    score: float
    degraded: bool
    reason: str


def composite_score(reasoning_score: float, pass_rate: float) -> float:
    """Blend of reasoning quality (1-10) and instruction compliance (0-1)"""
    return (
        COMPOSITE_REASONING_WEIGHT * (reasoning_score / 10.0)
        + COMPOSITE_INSTRUCTION_WEIGHT * pass_rate
    )


def select_base_judge(
    instruction_results: dict[str, InstructionResult],
    reasoning_summaries: dict[str, ReasoningSummary] | None = None,
    instruction_threshold: float = INSTRUCTION_PASS_THRESHOLD,
    reasoning_min_score: float = REASONING_MIN_SCORE,
) -> JudgeSelection | None:
    """
    Elect the base judge

    Primary path: models clearing both the instruction and reasoning
    thresholds, ranked by composite score then throughput. When no model
    clears both, falls back to instruction pass rate then throughput over
    every model with an instruction result. Input order breaks exact ties.

    Returns:
        The selection, or None only when there are no instruction results
    """
    if not instruction_results:
        return None

    summaries = reasoning_summaries or {}
    eligible = [
        (r, summaries[name])
        for name, r in instruction_results.items()
        if r.pass_rate >= instruction_threshold
        and name in summaries
        and summaries[name].rated_count > 0
        and summaries[name].avg_overall >= reasoning_min_score
    ]
    if eligible:
        ranked = sorted(
            eligible,
            key=lambda pair: (
                -composite_score(pair[1].avg_overall, pair[0].pass_rate),
                -pair[0].avg_tokens_per_second,
            ),
        )
        best, summary = ranked[0]
        score = composite_score(summary.avg_overall, best.pass_rate)
        logger.info("Base judge: %s (composite %.3f)", best.model_name, score)
        return JudgeSelection(
            judge=best.model_name,
            score=score,
            degraded=False,
            reason=f"reasoning {summary.avg_overall:.1f}/10, instruction {best.pass_rate:.0%}",
        )

    ranked_fallback = sorted(
        instruction_results.values(),
        key=lambda r: (-r.pass_rate, -r.avg_tokens_per_second),
    )
    best = ranked_fallback[0]
    logger.warning(
        "No model cleared both qualification thresholds; falling back to instruction-only "
        "ranking. Base judge: %s", best.model_name,
    )
    return JudgeSelection(
        judge=best.model_name,
        score=best.pass_rate,
        degraded=True,
        reason=f"instruction-only fallback ({best.pass_rate:.0%})",
    )


def select_auto_judges(
    results: list[GenerationResult],
    candidates: list[str],
    top_n: int = AUTO_JUDGE_COUNT,
) -> list[str]:
    """
    Rank candidates by the mean avg_score of their own responses, then by
    throughput, and take the top N. Candidates without responses are skipped.
    """
    by_model: dict[str, list[GenerationResult]] = defaultdict(list)
    for r in results:
        by_model[r.model_name].append(r)

    ranked = sorted(
        (m for m in candidates if by_model.get(m)),
        key=lambda m: (
            -mean(r.avg_score for r in by_model[m]),
            -mean(r.perf.tokens_per_second for r in by_model[m]),
        ),
    )
    return ranked[:top_n]
