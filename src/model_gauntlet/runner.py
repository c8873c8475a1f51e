"""
model-gauntlet CLI Runner

Runs the full pipeline (qualification, judge selection, context-window stress,
generation and multi-judge scoring) against an OpenAI-compatible endpoint.

Usage:
    python -m model_gauntlet.runner --seeds seeds.json
    python -m model_gauntlet.runner --seeds seeds.json --models qwen2.5-7b-instruct,llama-3.1-8b-instruct
    python -m model_gauntlet.runner --context-tests context_tests.json --level deep

Re-score a previous run's responses:
    python -m model_gauntlet.runner --score-only results/generation_results_20260101_120000.json
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from functools import partial

from dotenv import load_dotenv

from model_gauntlet.harness_config import load_config
from model_gauntlet.infrastructure.gateway import ModelGateway, RunContext
from model_gauntlet.infrastructure.model_clients import (
    ModelClientError,
    create_client,
    list_endpoint_models,
)
from model_gauntlet.infrastructure.tokenizer import TiktokenTokenizer
from model_gauntlet.instruction_probes import INSTRUCTION_PROBES
from model_gauntlet.reporting import (
    ResultWriter,
    context_summary_frame,
    instruction_frame,
    judge_validation_frame,
    load_generation_results,
    model_summary_frame,
    reasoning_frame,
)
from model_gauntlet.suite_loader import (
    DEFAULT_REASONING_PROBES,
    SeedSet,
    default_context_suite,
    load_context_suite,
    load_reasoning_probes,
    load_seed_set,
)
from model_gauntlet.use_cases.pipeline import PipelineDriver, PipelineRun, Suites


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="model-gauntlet: Qualify, stress and rank local LLMs",
    )
    parser.add_argument(
        "--models",
        default=None,
        help="Comma-separated list of model names (default: GAUNTLET_TARGET_MODELS, then every model the endpoint serves)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a JSON settings file (default: read GAUNTLET_* environment variables)",
    )
    parser.add_argument(
        "--output-dir",
        default="results",
        help="Output directory (default: results)",
    )
    parser.add_argument(
        "--run-id",
        default=None,
        help="Run ID used to name output files (default: current timestamp)",
    )
    parser.add_argument(
        "--level",
        default=None,
        help="Context-window intensity level (overrides the configured level)",
    )
    parser.add_argument(
        "--score-only",
        default=None,
        metavar="GENERATION_RESULTS",
        help="Skip generation and re-score a saved generation_results_*.json file",
    )
    parser.add_argument(
        "--reasoning-probes",
        default=None,
        help="Path to a reasoning probe JSON file (default: built-in probes)",
    )
    parser.add_argument(
        "--context-tests",
        default=None,
        help="Path to a context-window test JSON file (default: built-in tests)",
    )
    parser.add_argument(
        "--seeds",
        default=None,
        help="Path to a seed prompt JSON file (prompt tests are skipped without one)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def _discover_models(args: argparse.Namespace, config) -> list[str]:
    if args.models:
        return [m.strip() for m in args.models.split(",") if m.strip()]
    if config.gateway.target_models:
        return list(config.gateway.target_models)
    try:
        return list_endpoint_models(
            config.gateway.base_url,
            config.gateway.api_key,
            exclude=config.gateway.exclude_models,
        )
    except ModelClientError as e:
        print(f"ERROR: Could not list models at {config.gateway.base_url}: {e.message}")
        return []


def _load_suites(args: argparse.Namespace) -> Suites:
    reasoning = load_reasoning_probes(args.reasoning_probes) if args.reasoning_probes else list(DEFAULT_REASONING_PROBES)
    context = load_context_suite(args.context_tests) if args.context_tests else default_context_suite()
    seeds = load_seed_set(args.seeds) if args.seeds else SeedSet(seeds=[])
    return Suites(
        instruction_probes=list(INSTRUCTION_PROBES),
        reasoning_probes=reasoning,
        context=context,
        seeds=seeds,
    )


def _print_frame(title: str, df) -> None:
    if df.empty:
        return
    print(f"=== {title} ===\n")
    print(df.to_string(index=False, float_format=lambda v: f"{v:.2f}"))
    print()


def _print_run(run: PipelineRun, threshold: float) -> None:
    _print_frame("Instruction Probes", instruction_frame(run.instruction_results))
    if run.qualified:
        print(f"  Qualified: {', '.join(run.qualified)}\n")
    _print_frame("Reasoning", reasoning_frame(run.reasoning_summaries))

    if run.base_judge is not None:
        print("=== Judges ===\n")
        label = " (DEGRADED)" if run.base_judge.degraded else ""
        print(f"  Base judge: {run.base_judge.judge}{label} - {run.base_judge.reason}")
        print(f"  Auto-judges: {', '.join(run.auto_judges) or 'none'}")
        print()

    _print_frame("Context Window", context_summary_frame(run.context_summaries))
    for result in run.context_results:
        if result.autopsy:
            print(result.autopsy)
            print()

    _print_frame("Model Summary", model_summary_frame(run.generation_results, threshold))
    _print_frame("Judge Validation", judge_validation_frame(run.judge_validations))

    if run.flagged_models:
        print("=== Flagged Models (WARNING) ===\n")
        for model in run.flagged_models:
            print(f"  {model}")
        print()


def main(argv: list[str] | None = None) -> None:
    load_dotenv()
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)
    if args.level:
        config.context_window.level = args.level
    run_id = args.run_id or datetime.now().strftime("%Y%m%d_%H%M%S")
    threshold = config.judging.high_quality_threshold

    gateway = ModelGateway(
        partial(create_client, config=config),
        RunContext(config.gateway.max_consecutive_errors),
    )
    writer = ResultWriter(args.output_dir, run_id, threshold)
    suites = _load_suites(args)
    tokenizer = TiktokenTokenizer(config.context_window.encoding_name) if config.suites.run_context_window else None
    driver = PipelineDriver(gateway, config, suites, tokenizer=tokenizer, writer=writer)

    if args.score_only:
        results = load_generation_results(args.score_only)
        print(f"\n=== Score-only: {len(results)} responses from {args.score_only} ===\n")
        run = driver.score_only(results, run_id)
    else:
        models = _discover_models(args, config)
        if not models:
            print("ERROR: No models available. Exiting.")
            sys.exit(1)
        print(f"\n=== Run {run_id} ===\n")
        print(f"  Endpoint: {config.gateway.base_url}")
        print(f"  Models: {models}")
        print(f"  Context level: {config.context_window.level}")
        print()
        run = driver.run(models, run_id)

    _print_run(run, threshold)

    print("=== Output ===\n")
    for path in writer.written:
        print(f"  {path}")
    print()

    if not run.succeeded:
        print(f"ERROR: Run aborted: {run.abort_reason}")
        sys.exit(1)


if __name__ == "__main__":
    main()
