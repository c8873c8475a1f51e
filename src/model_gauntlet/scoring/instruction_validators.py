"""
Instruction probe validators

Each validator compares a cleaned model response with the expected result and
returns exactly one verdict: strict pass, lenient pass (content correct but
deviating in an enumerated, tolerated way) or fail.
"""

from __future__ import annotations

import json
import re
from collections import Counter

from model_gauntlet.domain.constants import FALSE_VALUES, TRUE_VALUES
from model_gauntlet.domain.value_objects import ValidationOutcome

_WORD_SPLIT_RE = re.compile(r"[\s,]+")
_LIST_MARKER_RE = re.compile(r"^[\d.\-*•→]+\s*")
_JSON_SPAN_RE = re.compile(r"[\{\[].*[\}\]]", re.DOTALL)
_NUMBER_RE = re.compile(r"-?\d+\.?\d*")


def clean_response(response: str | None) -> str:
    """
    Strip common model quirks before validation

    - Remove markdown code fences
    - Remove surrounding quotes
    - Remove trailing '.', '!' and ';'
    - Normalize whitespace and line endings
    """
    if response is None or not response.strip():
        return ""

    text = response.strip()
    text = re.sub(r"^```(?:json)?\s*", "", text, flags=re.IGNORECASE | re.MULTILINE)
    text = re.sub(r"\s*```$", "", text, flags=re.IGNORECASE | re.MULTILINE)

    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        text = text[1:-1]

    text = text.rstrip(".!;")

    text = re.sub(r"[\u00a0\ufeff]", " ", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\r\n|\r", "\n", text)
    text = re.sub(r"\n{2,}", "\n", text)
    return text.strip()


def _normalize(text: str) -> str:
    return text.strip().replace("\r\n", "\n").replace("\r", "\n")


def validate_exact(response: str, expected: str) -> ValidationOutcome:
    actual = _normalize(response)
    target = _normalize(expected)
    if actual == target:
        return ValidationOutcome.strict()
    if actual.lower() == target.lower():
        return ValidationOutcome.lenient("case difference")
    return ValidationOutcome.fail("content mismatch")


def _compare_sequences(
    actual: list[str],
    expected: list[str],
    strict_order: bool,
    unit: str,
) -> ValidationOutcome | None:
    """Shared order/multiset logic for word and line validation (case-insensitive)"""
    lowered_actual = [a.lower() for a in actual]
    lowered_expected = [e.lower() for e in expected]

    if lowered_actual == lowered_expected:
        return ValidationOutcome.strict()

    actual_counts = Counter(lowered_actual)
    expected_counts = Counter(lowered_expected)
    if actual_counts == expected_counts:
        if strict_order:
            return ValidationOutcome.lenient(f"correct {unit}, wrong order")
        return ValidationOutcome.strict()

    if len(actual) > len(expected) and not (expected_counts - actual_counts):
        return ValidationOutcome.lenient(f"extra {unit} added")

    return None


def extract_words(text: str) -> list[str]:
    return [w for w in _WORD_SPLIT_RE.split(text) if w.strip()]


def validate_words(response: str, expected: str, strict_order: bool = True) -> ValidationOutcome:
    actual = extract_words(response)
    target = extract_words(expected)
    outcome = _compare_sequences(actual, target, strict_order, "words")
    if outcome is not None:
        return outcome
    return ValidationOutcome.fail(f"word mismatch: expected {len(target)}, got {len(actual)}")


def _split_lines(text: str) -> list[str]:
    return [line.strip() for line in text.split("\n") if line.strip()]


def validate_lines(response: str, expected: str, strict_order: bool = True) -> ValidationOutcome:
    actual = _split_lines(response)
    target = _split_lines(expected)
    outcome = _compare_sequences(actual, target, strict_order, "lines")
    if outcome is not None:
        return outcome

    # Bullets and numbering around otherwise correct content
    stripped = [_LIST_MARKER_RE.sub("", line).strip() for line in actual]
    stripped = [line for line in stripped if line]
    if Counter(s.lower() for s in stripped) == Counter(t.lower() for t in target):
        return ValidationOutcome.lenient("correct content with formatting")

    return ValidationOutcome.fail(f"line mismatch: expected {len(target)}, got {len(actual)}")


def _json_kind(value) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    return "object"


def _json_text(value) -> str:
    """String form used when comparing values of different kinds"""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


def json_equal(a, b, strict: bool) -> bool:
    """
    Structural JSON comparison

    Strict mode requires equal kinds throughout. Lenient mode compares values
    of differing kinds by their case-insensitive string form (25 vs "25").
    """
    kind_a = _json_kind(a)
    kind_b = _json_kind(b)
    if kind_a != kind_b:
        if strict:
            return False
        return _json_text(a).lower() == _json_text(b).lower()

    if kind_a == "object":
        if a.keys() != b.keys():
            return False
        return all(json_equal(a[k], b[k], strict) for k in a)
    if kind_a == "array":
        if len(a) != len(b):
            return False
        return all(json_equal(x, y, strict) for x, y in zip(a, b))
    if kind_a == "string":
        return a == b if strict else a.lower() == b.lower()
    return a == b


def validate_json(response: str, expected: str) -> ValidationOutcome:
    match = _JSON_SPAN_RE.search(response)
    candidate = match.group(0) if match else response
    try:
        actual = json.loads(candidate)
        target = json.loads(expected)
    except json.JSONDecodeError:
        return ValidationOutcome.fail("invalid JSON")

    if json_equal(actual, target, strict=True):
        return ValidationOutcome.strict()
    if json_equal(actual, target, strict=False):
        return ValidationOutcome.lenient("JSON structure matches with type coercion")
    return ValidationOutcome.fail("JSON content mismatch")


def validate_numeric(response: str, expected: str) -> ValidationOutcome:
    match = _NUMBER_RE.search(response)
    if not match:
        return ValidationOutcome.fail("no number found")
    try:
        target = float(expected)
    except ValueError:
        return ValidationOutcome.fail("invalid expected value")

    actual = float(match.group(0))
    diff = abs(actual - target)
    if diff < 1e-9:
        return ValidationOutcome.strict()
    if diff < 0.01:
        return ValidationOutcome.lenient("minor numeric difference")
    return ValidationOutcome.fail(f"expected {target}, got {actual}")


def validate_boolean(response: str, expected: str) -> ValidationOutcome:
    actual = response.strip().lower()
    target = expected.strip().lower()
    if actual == target:
        return ValidationOutcome.strict()

    expected_true = target in TRUE_VALUES
    if (actual in TRUE_VALUES and expected_true) or (actual in FALSE_VALUES and not expected_true):
        return ValidationOutcome.lenient("boolean equivalent")
    return ValidationOutcome.fail("boolean mismatch")


_VALIDATORS = {
    "exact": lambda r, e, o: validate_exact(r, e),
    "words": validate_words,
    "lines": validate_lines,
    "json": lambda r, e, o: validate_json(r, e),
    "numeric": lambda r, e, o: validate_numeric(r, e),
    "boolean": lambda r, e, o: validate_boolean(r, e),
}


def validate_response(
    response: str,
    expected: str,
    validation_kind: str,
    strict_order: bool = False,
) -> ValidationOutcome:
    """
    Clean the response and dispatch to the validator for its kind

    Raises:
        ValueError: Unknown validation kind
    """
    validator = _VALIDATORS.get(validation_kind)
    if validator is None:
        raise ValueError(f"Unknown validation kind: {validation_kind}")
    return validator(clean_response(response), expected, strict_order)
