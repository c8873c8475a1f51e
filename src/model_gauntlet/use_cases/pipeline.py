"""
Pipeline Driver

Sequences the stages of one run as an explicit state machine:

    IDLE -> QUALIFYING -> JUDGE_SELECTION -> CONTEXT_STRESS -> SCORING -> REPORTING -> COMPLETED

Any stage may move to ABORTED when one of the guard checks below fails. The
guards are plain functions so each abort condition can be tested on its own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from model_gauntlet.domain.entities import (
    ContextWindowResult,
    ContextWindowSummary,
    GenerationResult,
    HealthCheckResult,
    InstructionResult,
    JudgeValidation,
    ReasoningResult,
    ReasoningSummary,
    StageEvent,
)
from model_gauntlet.domain.value_objects import SamplingParams
from model_gauntlet.harness_config import HarnessConfig
from model_gauntlet.infrastructure.gateway import ModelGateway
from model_gauntlet.infrastructure.tokenizer import Tokenizer
from model_gauntlet.suite_loader import (
    ContextSuite,
    InstructionProbe,
    ReasoningProbe,
    SeedSet,
    filter_by_category,
)
from model_gauntlet.use_cases.context_window import run_context_suite, summarize_context_results
from model_gauntlet.use_cases.generation import run_generation, select_seeds
from model_gauntlet.use_cases.health_check import warm_up_models
from model_gauntlet.use_cases.judge_selection import (
    JudgeSelection,
    select_auto_judges,
    select_base_judge,
)
from model_gauntlet.use_cases.judging import (
    auto_judge_results,
    extract_high_quality,
    score_with_judge,
    validate_peer_review,
)
from model_gauntlet.use_cases.qualification import (
    qualified_models,
    run_instruction_probes,
    run_reasoning_probes,
    score_reasoning_results,
    select_reasoning_judge,
    summarize_reasoning,
)

if TYPE_CHECKING:
    from model_gauntlet.reporting import ResultWriter

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    IDLE = "idle"
    QUALIFYING = "qualifying"
    JUDGE_SELECTION = "judge_selection"
    CONTEXT_STRESS = "context_stress"
    SCORING = "scoring"
    REPORTING = "reporting"
    ABORTED = "aborted"
    COMPLETED = "completed"


class PipelineAborted(Exception):
    """Raised inside the driver when a guard fails"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


# ---------------------------------------------------------------------------
# Guards: each returns an abort reason, or None when the run may continue
# ---------------------------------------------------------------------------

def guard_models_available(models: list[str]) -> str | None:
    if not models:
        return "no models available"
    return None


def guard_probes_configured(probes: list[InstructionProbe]) -> str | None:
    if not probes:
        return "no instruction probes configured"
    return None


def guard_instruction_results(results: dict[str, InstructionResult]) -> str | None:
    if not results:
        return "no model produced any instruction probe result"
    return None


def guard_qualified(qualified: list[str], threshold: float) -> str | None:
    if not qualified:
        return f"no model reached the instruction pass threshold ({threshold:.0%})"
    return None


def guard_active_models(models: list[str]) -> str | None:
    if not models:
        return "no usable model left for scoring"
    return None


def guard_base_judge(selection: JudgeSelection | None) -> str | None:
    if selection is None:
        return "no base judge could be selected"
    return None


@dataclass
class Suites:
    """Everything the models are run against"""
    instruction_probes: list[InstructionProbe]
    reasoning_probes: list[ReasoningProbe]
    context: ContextSuite
    seeds: SeedSet


@dataclass
class PipelineRun:
    """Append-only record of one run"""
    run_id: str
    models: list[str]
    stage: PipelineStage = PipelineStage.IDLE
    abort_reason: str | None = None
    events: list[StageEvent] = field(default_factory=list)
    health_checks: list[HealthCheckResult] = field(default_factory=list)
    instruction_results: dict[str, InstructionResult] = field(default_factory=dict)
    qualified: list[str] = field(default_factory=list)
    reasoning_judge: str | None = None
    reasoning_results: list[ReasoningResult] = field(default_factory=list)
    reasoning_summaries: dict[str, ReasoningSummary] = field(default_factory=dict)
    base_judge: JudgeSelection | None = None
    context_results: list[ContextWindowResult] = field(default_factory=list)
    context_summaries: list[ContextWindowSummary] = field(default_factory=list)
    generation_results: list[GenerationResult] = field(default_factory=list)
    auto_judges: list[str] = field(default_factory=list)
    judge_validations: list[JudgeValidation] = field(default_factory=list)
    high_quality: list[GenerationResult] = field(default_factory=list)
    flagged_models: list[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.stage == PipelineStage.COMPLETED


class PipelineDriver:
    """Runs the stages in order against one gateway and one configuration"""

    def __init__(
        self,
        gateway: ModelGateway,
        config: HarnessConfig,
        suites: Suites,
        tokenizer: Tokenizer | None = None,
        writer: ResultWriter | None = None,
    ):
        self.gateway = gateway
        self.config = config
        self.suites = suites
        self.tokenizer = tokenizer
        self.writer = writer

    # -- state transitions --------------------------------------------------

    def _transition(self, run: PipelineRun, stage: PipelineStage, outcome: str = "entered", detail: str = "") -> None:
        run.stage = stage
        run.events.append(
            StageEvent(
                stage=stage.value,
                timestamp=datetime.now().isoformat(timespec="seconds"),
                outcome=outcome,
                detail=detail,
            )
        )
        logger.info("Stage %s: %s %s", stage.value, outcome, detail)

    def _note(self, run: PipelineRun, outcome: str, detail: str = "") -> None:
        """Log an outcome for the current stage without changing it"""
        self._transition(run, run.stage, outcome, detail)

    @staticmethod
    def _check(reason: str | None) -> None:
        if reason is not None:
            raise PipelineAborted(reason)

    @property
    def _parallel(self) -> int:
        return self.config.performance.max_parallel_requests

    # -- entry points -------------------------------------------------------

    def run(self, models: list[str], run_id: str | None = None) -> PipelineRun:
        """Execute a full run over the candidate models"""
        run = PipelineRun(run_id=run_id or datetime.now().strftime("%Y%m%d_%H%M%S"), models=list(models))
        self._transition(run, PipelineStage.IDLE, "started", f"{len(models)} candidate models")
        try:
            self._check(guard_models_available(models))
            self._qualify(run)
            self._select_judge(run)
            self._stress_context(run)
            self._score(run)
        except PipelineAborted as e:
            return self._abort(run, e.reason)
        return self._report(run)

    def score_only(self, results: list[GenerationResult], run_id: str | None = None) -> PipelineRun:
        """
        Re-score previously generated results

        Requires an explicit base judge; auto-judges come from the override
        list or are elected from the models that generated the results.
        """
        models = list(dict.fromkeys(r.model_name for r in results))
        run = PipelineRun(run_id=run_id or datetime.now().strftime("%Y%m%d_%H%M%S"), models=models)
        run.generation_results = results
        self._transition(run, PipelineStage.IDLE, "started", f"score-only, {len(results)} results")
        try:
            judge = self.config.judging.override_base_judge
            if not judge:
                raise PipelineAborted("score-only mode needs a base judge override")
            if not results:
                raise PipelineAborted("no generation results to score")
            run.base_judge = JudgeSelection(judge=judge, score=0.0, degraded=False, reason="override")
            self._transition(run, PipelineStage.SCORING)
            self._judge_results(run, [m for m in models if self.gateway.is_usable(m)])
        except PipelineAborted as e:
            return self._abort(run, e.reason)
        return self._report(run)

    # -- stages -------------------------------------------------------------

    def _qualify(self, run: PipelineRun) -> None:
        qualification = self.config.qualification
        self._transition(run, PipelineStage.QUALIFYING)

        if not self.config.suites.run_qualification:
            available, checks = warm_up_models(run.models, self.gateway, self._parallel)
            run.health_checks = checks
            run.qualified = available
            self._check(guard_qualified(run.qualified, qualification.instruction_pass_threshold))
            self._note(run, "skipped", "qualification disabled; all responsive models qualify")
            return

        probes = filter_by_category(
            self.suites.instruction_probes,
            lambda p: p.category,
            qualification.max_probes_per_category,
            qualification.instruction_category_limits,
        )
        self._check(guard_probes_configured(probes))

        run.instruction_results = run_instruction_probes(
            run.models,
            self.gateway,
            probes,
            qualification.instruction_sampling.to_params(),
            self._parallel,
        )
        self._check(guard_instruction_results(run.instruction_results))

        run.qualified = qualified_models(run.instruction_results, qualification.instruction_pass_threshold)
        self._check(guard_qualified(run.qualified, qualification.instruction_pass_threshold))
        self._note(run, "instruction gate passed", f"{len(run.qualified)}/{len(run.models)} qualified")

        active = [m for m in run.qualified if self.gateway.is_usable(m)]
        self._check(guard_active_models(active))

        reasoning_probes = filter_by_category(
            self.suites.reasoning_probes,
            lambda p: p.category,
            qualification.max_probes_per_category,
            qualification.reasoning_category_limits,
        )
        if not reasoning_probes:
            self._note(run, "reasoning skipped", "no reasoning probes configured")
            return

        run.reasoning_results = run_reasoning_probes(
            active,
            self.gateway,
            reasoning_probes,
            qualification.reasoning_sampling.to_params(),
            self._parallel,
        )
        run.reasoning_judge = select_reasoning_judge(run.instruction_results, active)
        if run.reasoning_judge is not None and run.reasoning_results:
            judge_params = self.config.judging.judge_sampling.to_params()
            params = SamplingParams(
                temperature=judge_params.temperature,
                top_p=judge_params.top_p,
                max_tokens=self.config.judging.reasoning_judge_max_tokens,
            )
            rated = score_reasoning_results(run.reasoning_judge, run.reasoning_results, self.gateway, params)
            self._note(run, "reasoning rated", f"{rated}/{len(run.reasoning_results)} by {run.reasoning_judge}")
        run.reasoning_summaries = summarize_reasoning(run.reasoning_results)

    def _select_judge(self, run: PipelineRun) -> None:
        self._transition(run, PipelineStage.JUDGE_SELECTION)
        override = self.config.judging.override_base_judge
        if override:
            run.base_judge = JudgeSelection(judge=override, score=0.0, degraded=False, reason="override")
        else:
            candidates = {
                m: run.instruction_results[m]
                for m in run.qualified
                if m in run.instruction_results and self.gateway.is_usable(m)
            }
            self._check(guard_active_models(list(candidates)))
            run.base_judge = select_base_judge(
                candidates,
                run.reasoning_summaries,
                self.config.qualification.instruction_pass_threshold,
                self.config.qualification.reasoning_min_score,
            )
        self._check(guard_base_judge(run.base_judge))
        outcome = "degraded selection" if run.base_judge.degraded else "selected"
        self._note(run, outcome, f"{run.base_judge.judge} ({run.base_judge.reason})")

    def _stress_context(self, run: PipelineRun) -> None:
        self._transition(run, PipelineStage.CONTEXT_STRESS)
        if not self.config.suites.run_context_window:
            self._note(run, "skipped", "context-window suite disabled")
            return
        if not self.suites.context.tests:
            self._note(run, "skipped", "no context-window tests configured")
            return
        if self.tokenizer is None:
            raise PipelineAborted("context-window suite enabled without a tokenizer")

        active = [m for m in run.qualified if self.gateway.is_usable(m)]
        run.context_results = run_context_suite(
            active,
            self.suites.context,
            self.gateway,
            self.tokenizer,
            self.config.context_window,
            self._parallel,
        )
        run.context_summaries = summarize_context_results(run.context_results, self.config.context_window)
        self._note(run, "completed", f"{len(run.context_results)} test results")

    def _score(self, run: PipelineRun) -> None:
        self._transition(run, PipelineStage.SCORING)
        if not self.config.suites.run_prompt_tests:
            self._note(run, "skipped", "prompt tests disabled")
            return
        seeds = select_seeds(
            self.suites.seeds,
            self.config.generation.target_seed_count,
            self.config.generation.category_weights,
        )
        if not seeds:
            self._note(run, "skipped", "no seed prompts configured")
            return

        active = [m for m in run.qualified if self.gateway.is_usable(m)]
        self._check(guard_active_models(active))

        run.generation_results = run_generation(
            active,
            seeds,
            self.suites.seeds,
            self.gateway,
            self.config.generation.sampling.to_params(),
            self._parallel,
        )
        self._judge_results(run, active)

    def _judge_results(self, run: PipelineRun, candidates: list[str]) -> None:
        judging = self.config.judging
        params = judging.judge_sampling.to_params()
        base = run.base_judge.judge

        score_with_judge(base, run.generation_results, self.gateway, params)

        if judging.override_auto_judges:
            run.auto_judges = list(judging.override_auto_judges)
        else:
            run.auto_judges = select_auto_judges(
                run.generation_results, candidates, judging.auto_judge_count
            )
        self._note(run, "auto-judges selected", ", ".join(run.auto_judges) or "none")

        auto_judge_results(run.auto_judges, run.generation_results, self.gateway, params)

        selected = list(dict.fromkeys([base, *run.auto_judges]))
        run.judge_validations = validate_peer_review(selected, run.generation_results)
        run.high_quality = extract_high_quality(run.generation_results, judging.high_quality_threshold)
        self._note(
            run,
            "completed",
            f"{len(run.generation_results)} responses, {len(run.high_quality)} high quality",
        )

    def _abort(self, run: PipelineRun, reason: str) -> PipelineRun:
        logger.error("Run %s aborted: %s", run.run_id, reason)
        run.abort_reason = reason
        run.flagged_models = self.gateway.context.flagged_models
        self._transition(run, PipelineStage.ABORTED, "aborted", reason)
        if self.writer is not None:
            self.writer.write_run(run)
        return run

    def _report(self, run: PipelineRun) -> PipelineRun:
        run.flagged_models = self.gateway.context.flagged_models
        self._transition(run, PipelineStage.REPORTING)
        if self.writer is not None:
            self.writer.write_results(run)
        self._transition(run, PipelineStage.COMPLETED, "completed")
        if self.writer is not None:
            self.writer.write_events(run)
        return run
