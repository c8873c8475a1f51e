"""
Generation

Selects seed prompts and collects every active model's response to them.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict

from model_gauntlet.domain.entities import GenerationResult
from model_gauntlet.domain.value_objects import GatewayError, SamplingParams
from model_gauntlet.infrastructure.gateway import ModelGateway
from model_gauntlet.scoring.aggregation import compute_quotas
from model_gauntlet.suite_loader import SeedPrompt, SeedSet
from model_gauntlet.use_cases.concurrency import map_models

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


def select_seeds(
    seed_set: SeedSet,
    target_count: int = 0,
    category_weights: dict[str, float] | None = None,
) -> list[SeedPrompt]:
    """
    Pick seeds across categories in proportion to their weights

    A target of 0 (or at least the number of seeds) keeps every seed.
    Categories without a weight get weight 1. Quota a category cannot fill
    from its own seeds is shared out again among the categories that still
    have seeds left, so the target is met whenever enough weighted seeds
    exist. Input order is preserved.
    """
    seeds = seed_set.seeds
    if target_count <= 0 or target_count >= len(seeds):
        return list(seeds)

    categories = list(dict.fromkeys(s.category for s in seeds))
    weights = {c: (category_weights or {}).get(c, 1.0) for c in categories}
    available = Counter(s.category for s in seeds)

    quotas = dict.fromkeys(categories, 0)
    remaining = target_count
    while remaining > 0:
        open_weights = {c: weights[c] for c in categories if quotas[c] < available[c]}
        if remaining < target_count and not any(w > 0 for w in open_weights.values()):
            break
        for category, share in compute_quotas(open_weights, remaining).items():
            granted = min(share, available[category] - quotas[category])
            quotas[category] += granted
            remaining -= granted

    taken: dict[str, int] = defaultdict(int)
    selected: list[SeedPrompt] = []
    for seed in seeds:
        if taken[seed.category] < quotas[seed.category]:
            selected.append(seed)
            taken[seed.category] += 1
    return selected


def sampling_for(seed_set: SeedSet, category: str, default: SamplingParams) -> SamplingParams:
    settings = seed_set.settings_for(category)
    return SamplingParams(
        temperature=default.temperature if settings.temperature is None else settings.temperature,
        top_p=default.top_p if settings.top_p is None else settings.top_p,
        max_tokens=default.max_tokens if settings.max_tokens is None else settings.max_tokens,
    )


def run_generation(
    models: list[str],
    seeds: list[SeedPrompt],
    seed_set: SeedSet,
    gateway: ModelGateway,
    default_params: SamplingParams,
    max_parallel_requests: int = 1,
) -> list[GenerationResult]:
    """
    Collect each model's response to each seed

    Seeds that got no response are left out. Result ids are assigned after
    collection, in model then seed order.
    """

    def run_model(model_name: str) -> list[GenerationResult]:
        if not gateway.warm_up(model_name):
            logger.warning("Failed to warm up %s; skipping generation", model_name)
            return []
        results = []
        for seed in seeds:
            system_prompt = seed_set.settings_for(seed.category).system_prompt or DEFAULT_SYSTEM_PROMPT
            params = sampling_for(seed_set, seed.category, default_params)
            response = gateway.complete(model_name, system_prompt, seed.prompt, params)
            if isinstance(response, GatewayError):
                continue
            results.append(
                GenerationResult(
                    id=0,
                    seed_prompt=seed.prompt,
                    category=seed.category,
                    model_name=model_name,
                    response=response.output,
                    params=params,
                    perf=response.perf,
                )
            )
        return results

    per_model = map_models(models, run_model, max_parallel_requests)
    results = [r for model_results in per_model for r in model_results]
    for index, result in enumerate(results, start=1):
        result.id = index
    logger.info("Generated %d responses from %d models", len(results), len(models))
    return results
