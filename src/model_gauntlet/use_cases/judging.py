"""
Multi-Judge Scoring & Peer Validation

The base judge rates every generated response; each auto-judge then rates
every response again. Peer validation compares how a judge's own responses
were rated before and after the auto-judge passes.
"""

from __future__ import annotations

import logging

from model_gauntlet.domain.entities import GenerationResult, JudgeValidation
from model_gauntlet.domain.value_objects import GatewayError, RatingParseError, SamplingParams
from model_gauntlet.infrastructure.gateway import ModelGateway
from model_gauntlet.scoring.aggregation import mean
from model_gauntlet.scoring.llm_judge import (
    GENERATION_JUDGE_SYSTEM_PROMPT,
    build_generation_prompt,
    parse_generation_rating,
)

logger = logging.getLogger(__name__)

BASE_PASS = "base"
AUTO_PASS = "auto"


def score_with_judge(
    judge: str,
    results: list[GenerationResult],
    gateway: ModelGateway,
    params: SamplingParams,
    judging_pass: str = BASE_PASS,
) -> int:
    """
    Attach one rating from the judge to every result

    Results already rated by this judge in this pass are left alone. When the
    request fails or the output cannot be parsed the result simply gets no
    rating from this judge.

    Returns:
        Number of ratings attached
    """
    attached = 0
    failures = 0
    for result in results:
        if result.has_rating_from(judge, judging_pass):
            continue
        if not gateway.is_usable(judge):
            logger.warning("Judge %s flagged unusable; stopping its %s pass", judge, judging_pass)
            break
        response = gateway.complete(
            judge, GENERATION_JUDGE_SYSTEM_PROMPT, build_generation_prompt(result), params
        )
        if isinstance(response, GatewayError):
            failures += 1
            continue
        rating = parse_generation_rating(response.output, judge, judging_pass)
        if isinstance(rating, RatingParseError):
            failures += 1
            logger.warning("Unparseable rating from %s for result %d: %s", judge, result.id, rating.message)
            continue
        result.add_rating(rating)
        attached += 1
    logger.info("%s pass by %s: %d rated, %d without rating", judging_pass, judge, attached, failures)
    return attached


def auto_judge_results(
    judges: list[str],
    results: list[GenerationResult],
    gateway: ModelGateway,
    params: SamplingParams,
) -> dict[str, int]:
    """Re-score every result with each auto-judge in turn"""
    return {
        judge: score_with_judge(judge, results, gateway, params, judging_pass=AUTO_PASS)
        for judge in judges
    }


def base_score(judge: str, results: list[GenerationResult]) -> float | None:
    """
    Mean of the first base-pass rating (chronologically) from a rater other
    than the judge itself, over the judge's own responses

    Peer ratings from the auto pass never stand in for a missing base rating.
    """
    scores = []
    for r in results:
        if r.model_name != judge:
            continue
        first = next(
            (rating for rating in r.ratings if rating.judging_pass == BASE_PASS and rating.rater != judge),
            None,
        )
        if first is not None:
            scores.append(first.overall)
    return mean(scores) if scores else None


def peer_score(judge: str, results: list[GenerationResult]) -> float | None:
    """Mean avg_score over the judge's own rated responses"""
    scores = [r.avg_score for r in results if r.model_name == judge and r.ratings]
    return mean(scores) if scores else None


def validate_peer_review(
    judges: list[str],
    results: list[GenerationResult],
) -> list[JudgeValidation]:
    """
    Compare each judge's solo base score with its peer score

    Diagnostic only: nothing is removed or re-scored.
    """
    validations = []
    for judge in judges:
        own = [r for r in results if r.model_name == judge]
        validation = JudgeValidation(
            judge=judge,
            base_score=base_score(judge, results),
            peer_score=peer_score(judge, results),
            rated_responses=sum(1 for r in own if r.ratings),
        )
        if validation.verdict == "overrated":
            logger.warning(
                "Judge %s looks overrated: base %.2f, peer %.2f",
                judge, validation.base_score, validation.peer_score,
            )
        validations.append(validation)
    validations.sort(key=lambda v: -(v.peer_score or 0.0))
    return validations


def extract_high_quality(results: list[GenerationResult], threshold: float) -> list[GenerationResult]:
    """Rated results whose average score reaches the threshold"""
    return [r for r in results if r.is_high_quality(threshold)]
