"""
Qualification Gate

Runs the fixed instruction probes against every candidate, then reasoning
probes against the instruction-qualified models only, and rates the
reasoning answers with a temporary judge.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from model_gauntlet.domain.constants import INSTRUCTION_PASS_THRESHOLD
from model_gauntlet.domain.entities import InstructionResult, ReasoningResult, ReasoningSummary
from model_gauntlet.domain.value_objects import GatewayError, RatingParseError, SamplingParams
from model_gauntlet.infrastructure.gateway import ModelGateway
from model_gauntlet.instruction_probes import INSTRUCTION_SYSTEM_PROMPT
from model_gauntlet.scoring.aggregation import mean
from model_gauntlet.scoring.instruction_validators import validate_response
from model_gauntlet.scoring.llm_judge import (
    REASONING_JUDGE_SYSTEM_PROMPT,
    build_reasoning_prompt,
    parse_reasoning_rating,
)
from model_gauntlet.suite_loader import InstructionProbe, ReasoningProbe
from model_gauntlet.use_cases.concurrency import map_models

logger = logging.getLogger(__name__)

REASONING_SYSTEM_PROMPT = "You are a helpful assistant that thinks through problems step by step."


def _truncate(text: str, max_len: int) -> str:
    return text if len(text) <= max_len else text[:max_len] + "..."


def run_model_instruction_probes(
    model_name: str,
    gateway: ModelGateway,
    probes: list[InstructionProbe],
    params: SamplingParams,
) -> InstructionResult | None:
    """
    Run every instruction probe against one model, in order

    Probes that get no response are left out of the tallies.

    Returns:
        The tallies, or None if warm-up failed or no probe got a response
    """
    if not gateway.warm_up(model_name):
        logger.warning("Failed to warm up %s; skipping instruction probes", model_name)
        return None

    result = InstructionResult(model_name=model_name)
    tps_values: list[float | None] = []
    latencies: list[float] = []

    for probe in probes:
        response = gateway.complete(model_name, INSTRUCTION_SYSTEM_PROMPT, probe.prompt, params)
        if isinstance(response, GatewayError):
            result.failure_details.append(
                f"{response.kind} error on probe: {_truncate(probe.prompt, 50)}"
            )
            continue

        tps_values.append(response.perf.tokens_per_second)
        latencies.append(response.perf.total_latency_ms)
        result.total += 1

        outcome = validate_response(
            response.output, probe.expected_result, probe.validation_kind, probe.strict_order
        )
        if outcome.strict_pass:
            result.strict_passes += 1
        elif outcome.lenient_pass:
            result.lenient_passes += 1
        else:
            result.failure_details.append(
                f"Expected: {probe.expected_result}, Got: {_truncate(response.output, 100)} - {outcome.reason}"
            )

    if result.total == 0:
        logger.warning("No instruction probe answered by %s", model_name)
        return None

    result.avg_tokens_per_second = mean(tps_values)
    result.avg_latency_ms = mean(latencies)
    logger.info(
        "%s: instruction pass rate %.0f%% (%d strict, %d lenient, %d answered)",
        model_name, result.pass_rate * 100, result.strict_passes, result.lenient_passes, result.total,
    )
    return result


def run_instruction_probes(
    models: list[str],
    gateway: ModelGateway,
    probes: list[InstructionProbe],
    params: SamplingParams,
    max_parallel_requests: int = 1,
) -> dict[str, InstructionResult]:
    """
    Run instruction probes for all models

    Returns:
        Model name -> InstructionResult, in input order. Models that could not
        be warmed up or answered nothing are absent.
    """
    outcomes = map_models(
        models,
        lambda model: run_model_instruction_probes(model, gateway, probes, params),
        max_parallel_requests,
    )
    return {model: result for model, result in zip(models, outcomes) if result is not None}


def qualified_models(
    instruction_results: dict[str, InstructionResult],
    threshold: float = INSTRUCTION_PASS_THRESHOLD,
) -> list[str]:
    """Models whose instruction pass rate reaches the threshold, in input order"""
    return [name for name, r in instruction_results.items() if r.pass_rate >= threshold]


def select_reasoning_judge(
    instruction_results: dict[str, InstructionResult],
    candidates: list[str],
) -> str | None:
    """
    Pick the temporary judge that rates reasoning answers

    The best instruction follower among the candidates (pass rate, then
    throughput; input order breaks exact ties).
    """
    ranked = sorted(
        (instruction_results[m] for m in candidates if m in instruction_results),
        key=lambda r: (-r.pass_rate, -r.avg_tokens_per_second),
    )
    return ranked[0].model_name if ranked else None


def run_model_reasoning_probes(
    model_name: str,
    gateway: ModelGateway,
    probes: list[ReasoningProbe],
    params: SamplingParams,
) -> list[ReasoningResult]:
    if not gateway.warm_up(model_name):
        logger.warning("Failed to warm up %s; skipping reasoning probes", model_name)
        return []

    results: list[ReasoningResult] = []
    for probe in probes:
        response = gateway.complete(model_name, REASONING_SYSTEM_PROMPT, probe.prompt, params)
        if isinstance(response, GatewayError):
            continue
        results.append(
            ReasoningResult(
                model_name=model_name,
                category=probe.category,
                prompt=probe.prompt,
                reference_answer=probe.reference_answer,
                response=response.output,
                perf=response.perf,
            )
        )
    return results


def run_reasoning_probes(
    models: list[str],
    gateway: ModelGateway,
    probes: list[ReasoningProbe],
    params: SamplingParams,
    max_parallel_requests: int = 1,
) -> list[ReasoningResult]:
    """Run reasoning probes for the qualified models (model order, then probe order)"""
    per_model = map_models(
        models,
        lambda model: run_model_reasoning_probes(model, gateway, probes, params),
        max_parallel_requests,
    )
    return [r for results in per_model for r in results]


def score_reasoning_results(
    judge: str,
    results: list[ReasoningResult],
    gateway: ModelGateway,
    params: SamplingParams,
) -> int:
    """
    Rate every reasoning answer with the judge

    Answers whose rating could not be obtained keep rating=None.

    Returns:
        Number of answers rated
    """
    rated = 0
    for result in results:
        response = gateway.complete(
            judge, REASONING_JUDGE_SYSTEM_PROMPT, build_reasoning_prompt(result), params
        )
        if isinstance(response, GatewayError):
            continue
        rating = parse_reasoning_rating(response.output, judge)
        if isinstance(rating, RatingParseError):
            logger.warning(
                "Unparseable reasoning rating from %s for %s: %s",
                judge, result.model_name, rating.message,
            )
            continue
        result.rating = rating
        rated += 1
    return rated


def summarize_reasoning(results: list[ReasoningResult]) -> dict[str, ReasoningSummary]:
    """Per-model averages over the rated reasoning answers"""
    by_model: dict[str, list[ReasoningResult]] = defaultdict(list)
    for r in results:
        by_model[r.model_name].append(r)

    summaries: dict[str, ReasoningSummary] = {}
    for model, model_results in by_model.items():
        rated = [r for r in model_results if r.rating is not None]
        by_category: dict[str, list[float]] = defaultdict(list)
        for r in rated:
            by_category[r.category].append(r.rating.overall)
        summaries[model] = ReasoningSummary(
            model_name=model,
            avg_overall=mean(r.rating.overall for r in rated),
            avg_correctness=mean(r.rating.correctness for r in rated),
            avg_logical_steps=mean(r.rating.logical_steps for r in rated),
            avg_clarity=mean(r.rating.clarity for r in rated),
            avg_tokens_per_second=mean(r.perf.tokens_per_second for r in model_results),
            avg_latency_ms=mean(r.perf.total_latency_ms for r in model_results),
            rated_count=len(rated),
            category_scores={c: mean(scores) for c, scores in by_category.items()},
        )
    return summaries
