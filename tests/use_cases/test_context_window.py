"""
コンテキストウィンドウ劣化エンジンのテスト

文書構築（チェックポイント位置・指令の埋め込み）、プローブ、劣化分類を確認する。
トークナイザは空白区切りの1語=1トークンを使う。
"""

import random
import re

import pytest

from model_gauntlet.domain.constants import (
    FAILURE_CONFUSED,
    FAILURE_FORGOT,
    FAILURE_HALLUCINATED,
)
from model_gauntlet.domain.entities import Checkpoint, ContextWindowResult, ContextWindowTest
from model_gauntlet.harness_config import ContextWindowConfig
from model_gauntlet.infrastructure.model_clients.base import ModelClientError
from model_gauntlet.suite_loader import (
    CheckpointDefinition,
    ContextSuite,
    ContextWindowTestDefinition,
)
from model_gauntlet.use_cases.context_window import (
    build_context_document,
    build_recall_prompt,
    classify_degradation,
    classify_miss,
    generate_autopsy,
    generate_checkpoints,
    generate_tests,
    probe_budgets,
    run_context_suite,
    run_context_test,
    summarize_context_results,
    truncate_to_tokens,
)

FILLER = {
    "code": ["x = 1 ; y = 2 ; z = 3 ; w = 4 ; v = 5"],
    "prose": ["the quick brown fox jumps over the lazy dog again"],
    "technical": ["the service retries requests with exponential backoff and jitter"],
}
TEMPLATES = ["Remember the code {1} for phase {0}"]

SECRET_A = "ALPHA-1111-XRAY"
SECRET_B = "BRAVO-2222-YANK"


def _test(budget=200, checkpoints=None, directive=None):
    if checkpoints is None:
        checkpoints = [
            Checkpoint(position=60, secret=SECRET_A, carrier=f"Remember the code {SECRET_A} now"),
            Checkpoint(position=160, secret=SECRET_B, carrier=f"Remember the code {SECRET_B} now"),
        ]
    return ContextWindowTest(
        name="needles",
        filler_type="prose",
        token_budget=budget,
        checkpoints=checkpoints,
        buried_directive=directive,
        directive_markers=("arr", "matey") if directive else (),
    )


def _recalling_model(summary="Arr matey, it was about a fox"):
    """Answers from the context it was given, like a model with perfect recall"""

    def responder(system_prompt, user_prompt, params):
        if user_prompt.endswith("Summarise what you read."):
            return summary
        hint = re.search(r'starting with "([^"]+)"', user_prompt).group(1)
        context = user_prompt.split("\n\nWhat is the secret code")[0]
        for word in context.split():
            if word.startswith(hint):
                return word
        return "I can't find it"

    return responder


class TestGenerateCheckpoints:
    def test_even_spacing(self):
        checkpoints = generate_checkpoints(3, 500, TEMPLATES, random.Random(1))
        assert [cp.position for cp in checkpoints] == [100, 200, 300]

    def test_secret_format_and_carrier(self):
        for i, cp in enumerate(generate_checkpoints(4, 1000, TEMPLATES, random.Random(7)), start=1):
            assert re.fullmatch(r"NEEDLE_\d{4}_[0-9A-F]{8}", cp.secret)
            assert cp.carrier == f"Remember the code {cp.secret} for phase {i}"

    def test_deterministic_for_seed(self):
        first = generate_checkpoints(3, 500, TEMPLATES, random.Random(42))
        second = generate_checkpoints(3, 500, TEMPLATES, random.Random(42))
        assert first == second


class TestGenerateTests:
    def test_level_scales_budget_and_count(self):
        definitions = [ContextWindowTestDefinition("spread", "prose", 10_000, checkpoint_count=8)]
        tests = generate_tests(definitions, ContextWindowConfig(level="standard"), TEMPLATES)
        assert tests[0].token_budget == 5_000
        assert len(tests[0].checkpoints) == 4

    def test_count_never_below_one(self):
        definitions = [ContextWindowTestDefinition("spread", "prose", 10_000, checkpoint_count=2)]
        tests = generate_tests(definitions, ContextWindowConfig(level="shallow"), TEMPLATES)
        assert len(tests[0].checkpoints) == 1

    def test_explicit_checkpoints(self):
        definitions = [
            ContextWindowTestDefinition(
                "edges",
                "mixed",
                10_000,
                checkpoints=[
                    CheckpointDefinition(SECRET_A, f"code {SECRET_A}", relative_position=0.5),
                    CheckpointDefinition(SECRET_B, f"code {SECRET_B}", position=8_000),
                ],
            )
        ]
        tests = generate_tests(definitions, ContextWindowConfig(level="standard"), TEMPLATES)
        assert [cp.position for cp in tests[0].checkpoints] == [2_500, 4_000]
        assert tests[0].checkpoints[0].secret == SECRET_A

    def test_max_tests(self):
        definitions = [ContextWindowTestDefinition(f"t{i}", "prose", 1_000, checkpoint_count=1) for i in range(4)]
        tests = generate_tests(definitions, ContextWindowConfig(level="deep", max_tests=2), TEMPLATES)
        assert [t.name for t in tests] == ["t0", "t1"]

    def test_deterministic_secrets(self):
        definitions = [ContextWindowTestDefinition("spread", "prose", 10_000, checkpoint_count=3)]
        first = generate_tests(definitions, ContextWindowConfig(level="deep", seed=3), TEMPLATES)
        second = generate_tests(definitions, ContextWindowConfig(level="deep", seed=3), TEMPLATES)
        assert first[0].checkpoints == second[0].checkpoints


class TestBuildContextDocument:
    def test_reaches_budget(self, tokenizer):
        document = build_context_document(_test(), FILLER, tokenizer)
        assert tokenizer.count(document) >= 200

    def test_checkpoints_end_before_position_minus_margin(self, tokenizer):
        """キャリア文はposition - margin以前に収まる"""
        test = _test(budget=1_000, checkpoints=[
            Checkpoint(position=300, secret=SECRET_A, carrier=f"Remember the code {SECRET_A} now"),
            Checkpoint(position=700, secret=SECRET_B, carrier=f"Remember the code {SECRET_B} now"),
        ])
        words = build_context_document(test, FILLER, tokenizer, margin_fraction=0.01).split()
        margin = 10
        assert words.index(SECRET_A) + 2 <= 300 - margin
        assert words.index(SECRET_B) + 2 <= 700 - margin
        assert words.index(SECRET_A) < words.index(SECRET_B)

    def test_checkpoints_placed_near_their_position(self, tokenizer):
        test = _test(budget=1_000, checkpoints=[
            Checkpoint(position=500, secret=SECRET_A, carrier=f"Remember the code {SECRET_A} now"),
        ])
        words = build_context_document(test, FILLER, tokenizer).split()
        # At most one filler block (10 words) plus the carrier before the deadline
        assert words.index(SECRET_A) >= 500 - 10 - 10 - 5

    def test_checkpoint_beyond_budget_is_still_placed(self, tokenizer):
        test = _test(budget=100, checkpoints=[
            Checkpoint(position=150, secret=SECRET_A, carrier=f"Remember the code {SECRET_A} now"),
        ])
        assert SECRET_A in build_context_document(test, FILLER, tokenizer)

    def test_directive_buried_after_a_third(self, tokenizer):
        test = _test(budget=300, directive="Speak like a pirate")
        words = build_context_document(test, FILLER, tokenizer).split()
        index = words.index("DIRECTIVE:")
        assert index >= 100
        assert index < 100 + 20

    def test_deterministic_for_rng(self, tokenizer):
        test = _test()
        mixed = ContextWindowTest(**{**test.__dict__, "filler_type": "mixed"})
        first = build_context_document(mixed, FILLER, tokenizer, rng=random.Random(5))
        second = build_context_document(mixed, FILLER, tokenizer, rng=random.Random(5))
        assert first == second


class TestHelpers:
    def test_probe_budgets(self):
        assert probe_budgets(1_000) == [250, 500, 750, 1_000]

    def test_truncate_to_tokens(self, tokenizer):
        assert truncate_to_tokens("a b c d e", 3, tokenizer) == "a b c"
        assert truncate_to_tokens("a b", 3, tokenizer) == "a b"

    def test_budget_contexts_are_nested_prefixes(self, tokenizer):
        """短い予算の文脈は常に長い予算の文脈の先頭部分になる"""
        test = _test(budget=400)
        document = build_context_document(test, FILLER, tokenizer)
        contexts = [truncate_to_tokens(document, n, tokenizer) for n in probe_budgets(test.token_budget)]

        for shorter, longer in zip(contexts, contexts[1:]):
            ids = tokenizer.encode(shorter)
            assert tokenizer.encode(longer)[:len(ids)] == ids
        for budget, context in zip(probe_budgets(test.token_budget), contexts):
            assert truncate_to_tokens(context, budget, tokenizer) == context

    def test_recall_prompt_hint(self):
        prompt = build_recall_prompt("context", "NEEDLE_1234_ABCDEF01")
        assert 'starting with "NEEDLE_1234_"' in prompt
        assert "NEEDLE_1234_ABCDEF01" not in prompt

    @pytest.mark.parametrize(
        "response,expected",
        [
            ("NEEDLE_9999_DEADBEEF", FAILURE_HALLUCINATED),
            ("I don't remember that", FAILURE_CONFUSED),
            ("I can't find it", FAILURE_FORGOT),
            ("none", FAILURE_FORGOT),
            ("", FAILURE_FORGOT),
        ],
    )
    def test_classify_miss(self, response, expected):
        assert classify_miss(response) == expected


class TestRunContextTest:
    def _config(self):
        return ContextWindowConfig(level="deep")

    def test_perfect_recall(self, make_gateway, tokenizer):
        test = _test()
        document = build_context_document(test, FILLER, tokenizer)
        gateway = make_gateway({"m": _recalling_model()})

        result = run_context_test("m", test, document, gateway, tokenizer, self._config())

        assert [p.approx_tokens for p in result.probes] == [50, 100, 150, 200]
        assert result.max_reliable_tokens == 200
        assert result.checkpoint_accuracy == 1.0
        assert result.first_hallucination_at is None
        # cp at 60 is probed from the 100-token budget on, cp at 160 only at 200
        assert [len(p.verdicts) for p in result.probes] == [0, 1, 1, 2]

    def test_hallucinating_model(self, make_gateway, tokenizer):
        test = _test()
        document = build_context_document(test, FILLER, tokenizer)
        gateway = make_gateway({"m": "NEEDLE_4242_CAFEBABE"})

        result = run_context_test("m", test, document, gateway, tokenizer, self._config())

        assert result.first_hallucination_at == 100
        assert result.max_reliable_tokens == 50
        assert result.checkpoint_accuracy == 0.0
        assert result.probes[1].verdicts[0].failure_kind == FAILURE_HALLUCINATED
        assert "Confident hallucinations:" in result.autopsy

    def test_every_probe_runs_after_a_failure(self, make_gateway, tokenizer):
        """途中で失敗しても全プローブを実行して劣化曲線を記録する"""
        test = _test()
        document = build_context_document(test, FILLER, tokenizer)
        gateway = make_gateway({"m": "I can't find it"})
        result = run_context_test("m", test, document, gateway, tokenizer, self._config())
        assert len(result.probes) == 4
        assert sum(len(p.verdicts) for p in result.probes) == 4

    def test_ignored_directive_makes_probes_unreliable(self, make_gateway, tokenizer):
        test = _test(directive="Speak like a pirate")
        document = build_context_document(test, FILLER, tokenizer)
        gateway = make_gateway({"m": _recalling_model(summary="It was about a fox.")})

        result = run_context_test("m", test, document, gateway, tokenizer, self._config())

        assert result.checkpoint_accuracy == 1.0
        assert result.max_reliable_tokens == 0
        assert all(p.followed_buried_directive is False for p in result.probes)
        assert "Ignored the buried directive." in result.autopsy

    def test_followed_directive(self, make_gateway, tokenizer):
        test = _test(directive="Speak like a pirate")
        document = build_context_document(test, FILLER, tokenizer)
        gateway = make_gateway({"m": _recalling_model()})
        result = run_context_test("m", test, document, gateway, tokenizer, self._config())
        assert result.max_reliable_tokens == 200
        assert all(p.followed_buried_directive for p in result.probes)

    def test_gateway_errors_are_skipped_not_scored(self, make_gateway, tokenizer):
        """ゲートウェイエラーは誤答として数えず、そのプローブを信頼不可にする"""
        recall = _recalling_model()

        def flaky(system_prompt, user_prompt, params):
            if f'"{SECRET_B[:12]}"' in user_prompt:
                raise ModelClientError("m", "timeout")
            return recall(system_prompt, user_prompt, params)

        test = _test()
        document = build_context_document(test, FILLER, tokenizer)
        gateway = make_gateway({"m": flaky}, max_consecutive_errors=10)

        result = run_context_test("m", test, document, gateway, tokenizer, self._config())

        assert result.probes[3].skipped_checkpoints == 1
        assert result.checkpoint_accuracy == 1.0
        assert result.max_reliable_tokens == 150


class TestRunContextSuite:
    def test_runs_every_test_for_every_model(self, make_gateway, tokenizer):
        suite = ContextSuite(
            tests=[
                ContextWindowTestDefinition("one", "prose", 300, checkpoint_count=2),
                ContextWindowTestDefinition("two", "technical", 400, checkpoint_count=3),
            ],
            filler=FILLER,
            carrier_templates=TEMPLATES,
        )
        gateway = make_gateway({"a": _recalling_model(), "b": _recalling_model(), "cold": "x"},
                               warm_up_failures={"cold"})

        results = run_context_suite(["a", "cold", "b"], suite, gateway, tokenizer, ContextWindowConfig(level="deep"))

        assert [(r.model_name, r.test_name) for r in results] == [
            ("a", "one"), ("a", "two"), ("b", "one"), ("b", "two"),
        ]
        assert all(r.checkpoint_accuracy == 1.0 for r in results)

    def test_flagged_model_stops(self, make_gateway, failing_responder, tokenizer):
        suite = ContextSuite(
            tests=[
                ContextWindowTestDefinition("one", "prose", 300, checkpoint_count=2),
                ContextWindowTestDefinition("two", "prose", 300, checkpoint_count=2),
            ],
            filler=FILLER,
            carrier_templates=TEMPLATES,
        )
        gateway = make_gateway({"down": failing_responder}, max_consecutive_errors=2)
        results = run_context_suite(["down"], suite, gateway, tokenizer, ContextWindowConfig(level="deep"))
        assert [r.test_name for r in results] == ["one"]
        assert results[0].max_reliable_tokens == 0
        assert results[0].checkpoint_accuracy == 0.0


def _result(model, test_name, max_reliable, accuracy=1.0):
    return ContextWindowResult(
        model_name=model,
        test_name=test_name,
        token_budget=128_000,
        probes=[],
        max_reliable_tokens=max_reliable,
        checkpoint_accuracy=accuracy,
    )


class TestClassification:
    @pytest.mark.parametrize(
        "tokens,pattern",
        [
            (128_000, "graceful"),
            (100_001, "graceful"),
            (100_000, "moderate"),
            (60_001, "moderate"),
            (60_000, "sudden"),
            (30_001, "sudden"),
            (30_000, "catastrophic"),
            (29_999, "catastrophic"),
        ],
    )
    def test_classify_degradation(self, tokens, pattern):
        assert classify_degradation(tokens, ContextWindowConfig()) == pattern

    def test_summaries_sorted_by_reliability(self):
        results = [
            _result("a", "t1", 32_000), _result("a", "t2", 16_000, accuracy=0.5),
            _result("b", "t1", 128_000), _result("b", "t2", 96_000),
        ]
        summaries = summarize_context_results(results, ContextWindowConfig())
        assert [s.model_name for s in summaries] == ["b", "a"]
        assert summaries[0].avg_max_reliable_tokens == 112_000
        assert summaries[0].degradation_pattern == "graceful"
        assert summaries[1].degradation_pattern == "catastrophic"
        assert summaries[1].avg_checkpoint_accuracy == 0.75
        assert summaries[1].test_reliability == {"t1": 32_000, "t2": 16_000}

    def test_autopsy_empty_without_probes(self):
        assert generate_autopsy(_result("a", "t", 0)) == ""
