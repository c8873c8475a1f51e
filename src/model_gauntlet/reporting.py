"""
Reporting

Turns run results into pandas DataFrames and persists a run to disk as
CSV / JSON / JSONL. Nothing here is read back during the run that wrote it.
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from dataclasses import asdict
from pathlib import Path
from typing import TYPE_CHECKING

import pandas as pd

from model_gauntlet.domain.constants import HIGH_QUALITY_THRESHOLD
from model_gauntlet.domain.entities import (
    ContextWindowResult,
    ContextWindowSummary,
    GenerationResult,
    InstructionResult,
    JudgeValidation,
    ReasoningSummary,
    StageEvent,
)
from model_gauntlet.domain.value_objects import PerfMetrics, Rating, SamplingParams
from model_gauntlet.scoring.aggregation import mean

if TYPE_CHECKING:
    from model_gauntlet.use_cases.pipeline import PipelineRun

logger = logging.getLogger(__name__)


def instruction_frame(results: dict[str, InstructionResult]) -> pd.DataFrame:
    rows = [
        {
            "model_name": r.model_name,
            "pass_rate": r.pass_rate,
            "strict_passes": r.strict_passes,
            "lenient_passes": r.lenient_passes,
            "total": r.total,
            "avg_tokens_per_second": r.avg_tokens_per_second,
            "avg_latency_ms": r.avg_latency_ms,
        }
        for r in results.values()
    ]
    df = pd.DataFrame(rows)
    if not df.empty:
        df = df.sort_values(["pass_rate", "avg_tokens_per_second"], ascending=False, kind="stable")
    return df


def reasoning_frame(summaries: dict[str, ReasoningSummary]) -> pd.DataFrame:
    rows = [
        {
            "model_name": s.model_name,
            "avg_overall": s.avg_overall,
            "avg_correctness": s.avg_correctness,
            "avg_logical_steps": s.avg_logical_steps,
            "avg_clarity": s.avg_clarity,
            "rated_count": s.rated_count,
            "avg_tokens_per_second": s.avg_tokens_per_second,
            "avg_latency_ms": s.avg_latency_ms,
        }
        for s in summaries.values()
    ]
    df = pd.DataFrame(rows)
    if not df.empty:
        df = df.sort_values("avg_overall", ascending=False, kind="stable")
    return df


def context_frame(results: list[ContextWindowResult]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "model_name": r.model_name,
                "test_name": r.test_name,
                "token_budget": r.token_budget,
                "max_reliable_tokens": r.max_reliable_tokens,
                "checkpoint_accuracy": r.checkpoint_accuracy,
                "first_hallucination_at": r.first_hallucination_at,
                "avg_tokens_per_second": r.avg_tokens_per_second,
            }
            for r in results
        ]
    )


def context_summary_frame(summaries: list[ContextWindowSummary]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "model_name": s.model_name,
                "avg_max_reliable_tokens": s.avg_max_reliable_tokens,
                "avg_checkpoint_accuracy": s.avg_checkpoint_accuracy,
                "degradation_pattern": s.degradation_pattern,
            }
            for s in summaries
        ]
    )


def generation_frame(results: list[GenerationResult], threshold: float) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "id": r.id,
                "model_name": r.model_name,
                "category": r.category,
                "avg_score": r.avg_score,
                "ratings": len(r.ratings),
                "high_quality": r.is_high_quality(threshold),
                "tokens_per_second": r.perf.tokens_per_second,
                "total_latency_ms": r.perf.total_latency_ms,
            }
            for r in results
        ]
    )


def model_summary_frame(results: list[GenerationResult], threshold: float) -> pd.DataFrame:
    """
    One row per generating model

    best_category is the category with the model's highest mean avg_score.
    """
    by_model: dict[str, list[GenerationResult]] = defaultdict(list)
    for r in results:
        by_model[r.model_name].append(r)

    rows = []
    for model, model_results in by_model.items():
        by_category: dict[str, list[float]] = defaultdict(list)
        for r in model_results:
            by_category[r.category].append(r.avg_score)
        category_means = {c: mean(scores) for c, scores in by_category.items()}
        rows.append(
            {
                "model_name": model,
                "responses": len(model_results),
                "avg_score": mean(r.avg_score for r in model_results),
                "high_quality_count": sum(r.is_high_quality(threshold) for r in model_results),
                "avg_tokens_per_second": mean(r.perf.tokens_per_second for r in model_results),
                "avg_latency_ms": mean(r.perf.total_latency_ms for r in model_results),
                "best_category": max(category_means, key=category_means.get),
            }
        )
    df = pd.DataFrame(rows)
    if not df.empty:
        df = df.sort_values(["avg_score", "avg_tokens_per_second"], ascending=False, kind="stable")
    return df


def category_summary_frame(results: list[GenerationResult], threshold: float) -> pd.DataFrame:
    """One row per category with its best model"""
    df = generation_frame(results, threshold)
    if df.empty:
        return df
    grouped = df.groupby("category", sort=True)
    summary = grouped.agg(
        responses=("id", "count"),
        avg_score=("avg_score", "mean"),
        high_quality_count=("high_quality", "sum"),
    ).reset_index()
    per_model = df.groupby(["category", "model_name"], sort=False)["avg_score"].mean().reset_index()
    best = per_model.sort_values("avg_score", ascending=False, kind="stable").drop_duplicates("category")
    summary["best_model"] = summary["category"].map(best.set_index("category")["model_name"])
    return summary


def judge_validation_frame(validations: list[JudgeValidation]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "judge": v.judge,
                "base_score": v.base_score,
                "peer_score": v.peer_score,
                "delta": v.delta,
                "rated_responses": v.rated_responses,
                "verdict": v.verdict,
            }
            for v in validations
        ]
    )


def events_frame(events: list[StageEvent]) -> pd.DataFrame:
    return pd.DataFrame([asdict(e) for e in events])


def generation_result_from_dict(data: dict) -> GenerationResult:
    """Rebuild a GenerationResult saved by ResultWriter"""
    return GenerationResult(
        id=data["id"],
        seed_prompt=data["seed_prompt"],
        category=data["category"],
        model_name=data["model_name"],
        response=data["response"],
        params=SamplingParams(**data["params"]),
        perf=PerfMetrics(**data["perf"]),
        ratings=[Rating(**r) for r in data.get("ratings", [])],
    )


def load_generation_results(file_path: str | Path, drop_ratings: bool = True) -> list[GenerationResult]:
    """
    Load generation results for re-scoring

    Args:
        file_path: generation_results_*.json written by a previous run
        drop_ratings: Start from unrated results
    """
    with open(file_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    results = [generation_result_from_dict(d) for d in data]
    if drop_ratings:
        for r in results:
            r.ratings = []
    return results


def high_quality_record(result: GenerationResult) -> dict:
    return {
        "prompt": result.seed_prompt,
        "response": result.response,
        "category": result.category,
        "model": result.model_name,
        "avg_score": result.avg_score,
        "perf": asdict(result.perf),
    }


class ResultWriter:
    """Writes one run's outputs under output_dir, suffixed with the run id"""

    def __init__(
        self,
        output_dir: str | Path,
        run_id: str,
        high_quality_threshold: float = HIGH_QUALITY_THRESHOLD,
    ):
        self.output_dir = Path(output_dir)
        self.run_id = run_id
        self.high_quality_threshold = high_quality_threshold
        self.written: list[Path] = []

    def path(self, stem: str, suffix: str) -> Path:
        return self.output_dir / f"{stem}_{self.run_id}.{suffix}"

    def _write_json(self, stem: str, data) -> None:
        path = self.path(stem, "json")
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2, default=str)
        self.written.append(path)

    def _write_csv(self, stem: str, df: pd.DataFrame) -> None:
        if df.empty:
            return
        path = self.path(stem, "csv")
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(path, index=False)
        self.written.append(path)

    def write_high_quality(self, results: list[GenerationResult]) -> Path | None:
        if not results:
            logger.warning("No high-quality results to export")
            return None
        path = self.path("high_quality", "jsonl")
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            for r in results:
                f.write(json.dumps(high_quality_record(r), ensure_ascii=False) + "\n")
        self.written.append(path)
        return path

    def write_results(self, run: PipelineRun) -> None:
        """Persist every non-empty result collection of the run"""
        self._write_csv("instruction_results", instruction_frame(run.instruction_results))
        if run.reasoning_results:
            self._write_json("reasoning_results", [asdict(r) for r in run.reasoning_results])
            self._write_csv("reasoning_summary", reasoning_frame(run.reasoning_summaries))
        if run.context_results:
            self._write_json("context_results", [asdict(r) for r in run.context_results])
            self._write_csv("context_summary", context_summary_frame(run.context_summaries))
        if run.generation_results:
            self._write_json("generation_results", [asdict(r) for r in run.generation_results])
            self._write_csv("judge_validation", judge_validation_frame(run.judge_validations))
            self.write_high_quality(run.high_quality)
            self.write_summaries(run)

    def write_summaries(self, run: PipelineRun) -> None:
        threshold = self.high_quality_threshold
        self._write_csv("model_summary", model_summary_frame(run.generation_results, threshold))
        self._write_csv("category_summary", category_summary_frame(run.generation_results, threshold))

    def write_events(self, run: PipelineRun) -> None:
        self._write_json(
            "events",
            {
                "run_id": run.run_id,
                "stage": run.stage.value,
                "abort_reason": run.abort_reason,
                "base_judge": run.base_judge.judge if run.base_judge else None,
                "auto_judges": run.auto_judges,
                "flagged_models": run.flagged_models,
                "events": [asdict(e) for e in run.events],
            },
        )

    def write_run(self, run: PipelineRun) -> None:
        self.write_results(run)
        self.write_events(run)
