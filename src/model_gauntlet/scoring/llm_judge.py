"""
LLM Judge scoring logic

Builds judge prompts for generated responses and reasoning answers, and turns
judge output into a Rating. Judge output is untrusted: parsing never raises and
never invents a score; anything unusable comes back as a RatingParseError.
"""

from __future__ import annotations

import json
import logging
import re

from model_gauntlet.domain.constants import RATING_MAX, RATING_MIN
from model_gauntlet.domain.entities import GenerationResult, ReasoningResult
from model_gauntlet.domain.value_objects import Rating, RatingParseError

logger = logging.getLogger(__name__)

GENERATION_JUDGE_SYSTEM_PROMPT = (
    "You are an expert evaluator of AI responses. "
    "You score responses objectively based on quality, accuracy, and usefulness."
)
REASONING_JUDGE_SYSTEM_PROMPT = (
    "You are an expert evaluator of reasoning and problem-solving. "
    "You score responses objectively based on correctness, logic, and clarity."
)

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def build_generation_prompt(result: GenerationResult) -> str:
    """Prompt asking a judge to rate one generated response"""
    tps = result.perf.tokens_per_second or 0.0
    parts: list[str] = [
        "Evaluate this AI response:",
        "",
        f"Category: {result.category}",
        f"Prompt: {result.seed_prompt}",
        "",
        "Response:",
        result.response,
        "",
        "Performance:",
        f"- Tokens/sec: {tps:.1f}",
        f"- Latency: {result.perf.total_latency_ms:.0f}ms",
        "",
        "Rate this response from 1-10 considering:",
        "- Accuracy and correctness",
        "- Code quality (if applicable)",
        "- Clarity of reasoning",
        "- Response speed and efficiency",
        "",
        "Respond in this exact JSON format:",
        '{"score": <1-10>, "reasoning": "<brief explanation>"}',
    ]
    return "\n".join(parts)


def build_reasoning_prompt(result: ReasoningResult) -> str:
    """Prompt asking a judge to rate one reasoning answer against its reference"""
    parts: list[str] = [
        "Evaluate this reasoning response:",
        "",
        f"Question: {result.prompt}",
        "",
        f"Correct Answer (for reference): {result.reference_answer}",
        "",
        "Model's Response:",
        result.response,
        "",
        "Rate this response from 1-10 on these dimensions:",
        "1. Correct Answer (did they get the right answer?)",
        "2. Logical Steps (did they show their reasoning/work?)",
        "3. Clarity (was the explanation clear and easy to follow?)",
        "",
        "Respond in this exact JSON format:",
        "{",
        '  "overall_score": <1-10>,',
        '  "correct_answer": <1-10>,',
        '  "logical_steps": <1-10>,',
        '  "clarity": <1-10>,',
        '  "reasoning": "<brief explanation of overall score>"',
        "}",
    ]
    return "\n".join(parts)


def _load_object(raw: str) -> dict | None:
    """Strip code fences and parse the JSON object, falling back to the outermost {...} span"""
    text = _FENCE_RE.sub("", raw).strip()
    candidates = [text]
    match = _OBJECT_RE.search(text)
    if match:
        candidates.append(match.group(0))
    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def _score_field(data: dict, key: str) -> float:
    """
    Read a 1-10 score

    Raises:
        ValueError: Missing, non-numeric or out of range
    """
    if key not in data:
        raise ValueError(f"missing field '{key}'")
    value = data[key]
    if isinstance(value, bool):
        raise ValueError(f"field '{key}' is not a number")
    if isinstance(value, str):
        value = value.strip()
    try:
        score = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"field '{key}' is not a number")
    if not RATING_MIN <= score <= RATING_MAX:
        raise ValueError(f"field '{key}' out of range: {score}")
    return score


def parse_generation_rating(raw: str, rater: str, judging_pass: str = "base") -> Rating | RatingParseError:
    """Parse {"score", "reasoning"} judge output"""
    data = _load_object(raw)
    if data is None:
        return RatingParseError(rater, "no JSON object in judge output", raw)
    try:
        overall = _score_field(data, "score")
    except ValueError as e:
        return RatingParseError(rater, str(e), raw)
    return Rating(
        overall=overall,
        rater=rater,
        justification=str(data.get("reasoning", "")),
        judging_pass=judging_pass,
    )


def parse_reasoning_rating(raw: str, rater: str) -> Rating | RatingParseError:
    """Parse {"overall_score", "correct_answer", "logical_steps", "clarity", "reasoning"} judge output"""
    data = _load_object(raw)
    if data is None:
        return RatingParseError(rater, "no JSON object in judge output", raw)
    try:
        overall = _score_field(data, "overall_score")
        correctness = _score_field(data, "correct_answer")
        logical_steps = _score_field(data, "logical_steps")
        clarity = _score_field(data, "clarity")
    except ValueError as e:
        return RatingParseError(rater, str(e), raw)
    return Rating(
        overall=overall,
        rater=rater,
        justification=str(data.get("reasoning", "")),
        correctness=correctness,
        logical_steps=logical_steps,
        clarity=clarity,
        judging_pass="reasoning",
    )
