"""
Context-Window Degradation Engine

Builds token-budgeted filler documents with planted secrets (and optionally a
buried directive), probes recall at four fractions of the budget and
classifies how a model's reliable recall falls off.
"""

from __future__ import annotations

import logging
import random
from collections import defaultdict

from model_gauntlet.domain.constants import (
    FAILURE_CONFUSED,
    FAILURE_FORGOT,
    FAILURE_HALLUCINATED,
    FAILURE_NONE,
    HEDGING_PHRASES,
    PROBE_FRACTIONS,
    REFUSAL_PHRASES,
    SECRET_HINT_LENGTH,
)
from model_gauntlet.domain.entities import (
    Checkpoint,
    CheckpointVerdict,
    ContextProbeResult,
    ContextWindowResult,
    ContextWindowSummary,
    ContextWindowTest,
)
from model_gauntlet.domain.value_objects import GatewayError, SamplingParams
from model_gauntlet.harness_config import ContextWindowConfig
from model_gauntlet.infrastructure.gateway import ModelGateway
from model_gauntlet.infrastructure.tokenizer import Tokenizer
from model_gauntlet.scoring.aggregation import classify_threshold, mean
from model_gauntlet.suite_loader import ContextSuite, ContextWindowTestDefinition
from model_gauntlet.use_cases.concurrency import map_models

logger = logging.getLogger(__name__)

RECALL_SYSTEM_PROMPT = "You have perfect recall."
SUMMARY_SYSTEM_PROMPT = "You are a helpful assistant."
CHUNK_SEPARATOR = "\n\n"


# ---------------------------------------------------------------------------
# Test generation
# ---------------------------------------------------------------------------

def generate_checkpoints(
    count: int,
    token_budget: int,
    templates: list[str],
    rng: random.Random,
) -> list[Checkpoint]:
    """
    Synthetic checkpoints evenly spaced across the budget

    Positions are (i + 1) * budget // (count + 2), leaving slots free at the
    head and the tail of the document.
    """
    spacing = token_budget // (count + 2)
    checkpoints: list[Checkpoint] = []
    for i in range(count):
        secret = f"NEEDLE_{rng.randint(1000, 9998)}_{rng.getrandbits(32):08X}"
        template = templates[rng.randrange(len(templates))]
        checkpoints.append(
            Checkpoint(
                position=(i + 1) * spacing,
                secret=secret,
                carrier=template.format(i + 1, secret),
            )
        )
    return checkpoints


def generate_tests(
    definitions: list[ContextWindowTestDefinition],
    config: ContextWindowConfig,
    carrier_templates: list[str],
) -> list[ContextWindowTest]:
    """
    Resolve test definitions at the configured intensity level

    The level multiplier scales every token budget, absolute checkpoint
    position and synthetic checkpoint count (at least 1). Only the first
    `max_tests` definitions are kept.
    """
    multiplier = config.multiplier
    rng = random.Random(config.seed)
    tests: list[ContextWindowTest] = []

    for definition in definitions[: config.max_tests]:
        budget = int(definition.base_token_budget * multiplier)
        if definition.checkpoints:
            checkpoints = [
                Checkpoint(
                    position=(
                        int(cp.relative_position * budget)
                        if cp.relative_position is not None
                        else int(cp.position * multiplier)
                    ),
                    secret=cp.secret,
                    carrier=cp.carrier,
                )
                for cp in definition.checkpoints
            ]
        elif definition.checkpoint_count:
            count = max(1, int(definition.checkpoint_count * multiplier))
            checkpoints = generate_checkpoints(count, budget, carrier_templates, rng)
        else:
            checkpoints = []

        tests.append(
            ContextWindowTest(
                name=definition.name,
                filler_type=definition.filler_type,
                token_budget=budget,
                checkpoints=checkpoints,
                buried_directive=definition.buried_directive,
                directive_markers=definition.directive_markers,
            )
        )

    logger.info(
        "Context window level %s (x%.2f): %d of %d tests selected",
        config.level, multiplier, len(tests), len(definitions),
    )
    return tests


# ---------------------------------------------------------------------------
# Document construction
# ---------------------------------------------------------------------------

def _pick_filler(filler: dict[str, list[str]], filler_type: str, rng: random.Random) -> str:
    if filler_type == "mixed":
        filler_type = rng.choice(("code", "prose", "technical"))
    return rng.choice(filler[filler_type])


def build_context_document(
    test: ContextWindowTest,
    filler: dict[str, list[str]],
    tokenizer: Tokenizer,
    margin_fraction: float = 0.01,
    rng: random.Random | None = None,
) -> str:
    """
    Build the full filler document for a test

    Filler blocks are appended until the budget is reached. A checkpoint's
    carrier sentence goes in as soon as the next filler block would push the
    carrier past (position - margin), so it always ends at or before that
    point. A buried directive goes in once a third of the budget is filled.
    Every appended unit is measured with the tokenizer.
    """
    rng = rng or random.Random(42)
    margin = int(test.token_budget * margin_fraction)
    checkpoints = sorted(test.checkpoints, key=lambda cp: cp.position)
    directive_at = test.token_budget // 3
    directive_pending = test.buried_directive is not None

    chunks: list[str] = []
    tokens = 0
    next_cp = 0
    next_filler = _pick_filler(filler, test.filler_type, rng) + CHUNK_SEPARATOR
    next_filler_tokens = tokenizer.count(next_filler)

    def append(text: str) -> int:
        chunks.append(text)
        return tokenizer.count(text)

    while True:
        if directive_pending and tokens >= directive_at:
            tokens += append(f"CRITICAL DIRECTIVE: {test.buried_directive}{CHUNK_SEPARATOR}")
            directive_pending = False
            continue

        if next_cp < len(checkpoints):
            carrier = checkpoints[next_cp].carrier + CHUNK_SEPARATOR
            carrier_tokens = tokenizer.count(carrier)
            deadline = checkpoints[next_cp].position - margin
            if tokens + next_filler_tokens + carrier_tokens > deadline:
                tokens += append(carrier)
                next_cp += 1
                continue

        if tokens >= test.token_budget and next_cp >= len(checkpoints) and not directive_pending:
            break

        tokens += append(next_filler)
        next_filler = _pick_filler(filler, test.filler_type, rng) + CHUNK_SEPARATOR
        next_filler_tokens = tokenizer.count(next_filler)

    return "".join(chunks)


def truncate_to_tokens(text: str, max_tokens: int, tokenizer: Tokenizer) -> str:
    """Cut text at a token boundary"""
    ids = tokenizer.encode(text)
    if len(ids) <= max_tokens:
        return text
    return tokenizer.decode(ids[:max_tokens])


def probe_budgets(token_budget: int) -> list[int]:
    """Token counts probed for a test: quarter, half, three quarters and full budget"""
    return [int(token_budget * fraction) for fraction in PROBE_FRACTIONS]


# ---------------------------------------------------------------------------
# Probing
# ---------------------------------------------------------------------------

def build_recall_prompt(context: str, secret: str) -> str:
    hint = secret[:SECRET_HINT_LENGTH]
    return (
        f"{context}\n\nWhat is the secret code starting with \"{hint}\"? "
        "Reply ONLY with the full code."
    )


def build_summary_prompt(context: str) -> str:
    return f"{context}\n\nSummarise what you read."


def classify_miss(response: str) -> str:
    """
    Classify a recall miss

    A non-trivial answer without refusal language is a hallucination; hedging
    about memory is confusion; anything else means the secret was forgotten.
    """
    lowered = response.lower()
    if len(response) > 5 and not any(p in lowered for p in REFUSAL_PHRASES):
        return FAILURE_HALLUCINATED
    if any(p in lowered for p in HEDGING_PHRASES):
        return FAILURE_CONFUSED
    return FAILURE_FORGOT


def followed_directive(response: str, markers: tuple[str, ...]) -> bool:
    lowered = response.lower()
    return any(marker in lowered for marker in markers)


def run_context_test(
    model_name: str,
    test: ContextWindowTest,
    document: str,
    gateway: ModelGateway,
    tokenizer: Tokenizer,
    config: ContextWindowConfig,
) -> ContextWindowResult:
    """
    Probe one model with one test at every probe budget

    Every probe runs even after a failure so the whole degradation curve is
    captured. A probe counts as reliable only when every checkpoint inside
    its budget was recalled (and the directive honoured, if the test has
    one); checkpoints that got no response make the probe unreliable and are
    left out of the accuracy.
    """
    recall_params = SamplingParams(temperature=0.0, top_p=0.9, max_tokens=config.recall_max_tokens)
    summary_params = SamplingParams(temperature=0.0, top_p=0.9, max_tokens=config.summary_max_tokens)

    probes: list[ContextProbeResult] = []
    tps_values: list[float | None] = []
    latencies: list[float] = []
    max_reliable = 0
    first_hallucination_at: int | None = None

    for budget in probe_budgets(test.token_budget):
        context = truncate_to_tokens(document, budget, tokenizer)
        probe = ContextProbeResult(approx_tokens=budget)

        for cp in test.checkpoints:
            if cp.position > budget:
                continue
            response = gateway.complete(
                model_name, RECALL_SYSTEM_PROMPT, build_recall_prompt(context, cp.secret), recall_params
            )
            if isinstance(response, GatewayError):
                probe.skipped_checkpoints += 1
                continue
            tps_values.append(response.perf.tokens_per_second)
            latencies.append(response.perf.total_latency_ms)

            said = response.output.strip()
            correct = cp.secret.lower() in said.lower()
            verdict = CheckpointVerdict(
                secret=cp.secret,
                expected_position=cp.position,
                correct=correct,
                model_said=said,
                failure_kind=FAILURE_NONE if correct else classify_miss(said),
            )
            if verdict.failure_kind == FAILURE_HALLUCINATED and first_hallucination_at is None:
                first_hallucination_at = budget
            probe.verdicts.append(verdict)

        if test.buried_directive is not None:
            response = gateway.complete(
                model_name, SUMMARY_SYSTEM_PROMPT, build_summary_prompt(context), summary_params
            )
            if isinstance(response, GatewayError):
                probe.skipped_checkpoints += 1
            else:
                probe.followed_buried_directive = followed_directive(
                    response.output, test.directive_markers
                )

        if probe.reliable:
            max_reliable = budget
        probes.append(probe)

    verdicts = [v for p in probes for v in p.verdicts]
    result = ContextWindowResult(
        model_name=model_name,
        test_name=test.name,
        token_budget=test.token_budget,
        probes=probes,
        max_reliable_tokens=max_reliable,
        checkpoint_accuracy=mean(1.0 if v.correct else 0.0 for v in verdicts),
        first_hallucination_at=first_hallucination_at,
        avg_tokens_per_second=mean(tps_values),
        avg_latency_ms=mean(latencies),
    )
    result.autopsy = generate_autopsy(result, has_directive=test.buried_directive is not None)
    return result


def run_context_suite(
    models: list[str],
    suite: ContextSuite,
    gateway: ModelGateway,
    tokenizer: Tokenizer,
    config: ContextWindowConfig,
    max_parallel_requests: int = 1,
) -> list[ContextWindowResult]:
    """
    Generate the tests, build each document once, and run every test against
    every model that warms up
    """
    tests = generate_tests(suite.tests, config, suite.carrier_templates)
    documents = [
        build_context_document(
            test,
            suite.filler,
            tokenizer,
            margin_fraction=config.checkpoint_margin_fraction,
            rng=random.Random(config.seed + index),
        )
        for index, test in enumerate(tests)
    ]

    def run_model(model_name: str) -> list[ContextWindowResult]:
        if not gateway.warm_up(model_name):
            logger.warning("Failed to warm up %s; skipping context-window tests", model_name)
            return []
        results = []
        for test, document in zip(tests, documents):
            if not gateway.is_usable(model_name):
                logger.warning("%s flagged unusable; remaining context tests skipped", model_name)
                break
            results.append(run_context_test(model_name, test, document, gateway, tokenizer, config))
        return results

    per_model = map_models(models, run_model, max_parallel_requests)
    return [r for results in per_model for r in results]


# ---------------------------------------------------------------------------
# Classification and reporting
# ---------------------------------------------------------------------------

def classify_degradation(avg_max_reliable_tokens: float, config: ContextWindowConfig) -> str:
    """graceful / moderate / sudden / catastrophic (lower bounds are exclusive)"""
    return classify_threshold(
        avg_max_reliable_tokens,
        [
            ("graceful", config.graceful_threshold),
            ("moderate", config.moderate_threshold),
            ("sudden", config.sudden_threshold),
        ],
        default="catastrophic",
    )


def summarize_context_results(
    results: list[ContextWindowResult],
    config: ContextWindowConfig,
) -> list[ContextWindowSummary]:
    """Per-model summaries, most reliable first"""
    by_model: dict[str, list[ContextWindowResult]] = defaultdict(list)
    for r in results:
        by_model[r.model_name].append(r)

    summaries = []
    for model, model_results in by_model.items():
        avg_reliable = mean(r.max_reliable_tokens for r in model_results)
        summaries.append(
            ContextWindowSummary(
                model_name=model,
                avg_max_reliable_tokens=avg_reliable,
                avg_checkpoint_accuracy=mean(r.checkpoint_accuracy for r in model_results),
                degradation_pattern=classify_degradation(avg_reliable, config),
                test_reliability={r.test_name: r.max_reliable_tokens for r in model_results},
            )
        )
    summaries.sort(key=lambda s: -s.avg_max_reliable_tokens)
    return summaries


def generate_autopsy(result: ContextWindowResult, has_directive: bool = False) -> str:
    """Plain-text post-mortem of the probe with the most missed checkpoints (earliest on ties)"""
    if not result.probes:
        return ""
    worst = max(result.probes, key=lambda p: sum(not v.correct for v in p.verdicts))
    correct = sum(v.correct for v in worst.verdicts)

    lines = [
        f"AUTOPSY: {result.model_name} - {result.test_name}",
        f"Worst probe at ~{worst.approx_tokens:,} tokens ({correct}/{len(worst.verdicts)} correct)",
    ]

    hallucinated = [v for v in worst.verdicts if v.failure_kind == FAILURE_HALLUCINATED][:6]
    if hallucinated:
        lines.append("Confident hallucinations:")
        for v in hallucinated:
            lines.append(f"  - expected {v.secret}, invented \"{v.model_said}\"")

    forgotten = [v for v in worst.verdicts if v.failure_kind in (FAILURE_FORGOT, FAILURE_CONFUSED)][:5]
    if forgotten:
        lines.append("Forgotten:")
        for v in forgotten:
            lines.append(f"  - {v.secret} (~{v.expected_position:,} tokens, {v.failure_kind})")

    if has_directive and worst.followed_buried_directive is False:
        lines.append("Ignored the buried directive.")
    return "\n".join(lines)
