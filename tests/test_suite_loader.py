"""スイート定義の読み込みと検証のテスト"""

import json

import pytest

from model_gauntlet.suite_loader import (
    DEFAULT_CARRIER_TEMPLATES,
    DEFAULT_FILLER,
    CheckpointDefinition,
    ContextWindowTestDefinition,
    InstructionProbe,
    default_context_suite,
    filter_by_category,
    load_context_suite,
    load_reasoning_probes,
    load_seed_set,
)


def _write(tmp_path, name, data):
    path = tmp_path / name
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestDefinitions:
    def test_invalid_validation_kind(self):
        with pytest.raises(ValueError, match="Invalid validation kind"):
            InstructionProbe("p", "x", "regex")

    def test_checkpoint_needs_position(self):
        with pytest.raises(ValueError, match="needs a position"):
            CheckpointDefinition("S-1", "code S-1")

    def test_checkpoint_relative_position_range(self):
        with pytest.raises(ValueError, match="relative_position"):
            CheckpointDefinition("S-1", "code S-1", relative_position=1.5)

    def test_carrier_must_contain_secret(self):
        with pytest.raises(ValueError, match="must contain its secret"):
            CheckpointDefinition("S-1", "no secret here", position=10)

    def test_invalid_filler_type(self):
        with pytest.raises(ValueError, match="Invalid filler type"):
            ContextWindowTestDefinition("t", "poetry", 1_000)

    def test_budget_must_be_positive(self):
        with pytest.raises(ValueError, match="positive"):
            ContextWindowTestDefinition("t", "prose", 0)

    def test_directive_needs_markers(self):
        with pytest.raises(ValueError, match="no markers"):
            ContextWindowTestDefinition("t", "prose", 1_000, buried_directive="Be a pirate", directive_markers=())

    def test_markers_lowercased(self):
        definition = ContextWindowTestDefinition("t", "prose", 1_000, directive_markers=("ARR", "Matey"))
        assert definition.directive_markers == ("arr", "matey")


class TestFilterByCategory:
    def test_default_limit_preserves_order(self):
        items = ["a1", "b1", "a2", "a3", "b2"]
        assert filter_by_category(items, lambda s: s[0], 2) == ["a1", "b1", "a2", "b2"]

    def test_category_limits(self):
        items = ["a1", "b1", "a2", "b2"]
        assert filter_by_category(items, lambda s: s[0], 2, {"b": 0}) == ["a1", "a2"]


class TestLoadReasoningProbes:
    def test_list_format(self, tmp_path):
        path = _write(tmp_path, "reasoning.json", [
            {"category": "math", "prompt": "2+2?", "reference_answer": "4"},
        ])
        probes = load_reasoning_probes(path)
        assert probes[0].reference_answer == "4"
        assert probes[0].description == ""

    def test_wrapped_format(self, tmp_path):
        path = _write(tmp_path, "reasoning.json", {
            "tests": [{"category": "logic", "prompt": "p", "reference_answer": "r", "description": "d"}],
        })
        assert load_reasoning_probes(path)[0].description == "d"

    def test_missing_field(self, tmp_path):
        path = _write(tmp_path, "reasoning.json", [{"category": "math", "prompt": "2+2?"}])
        with pytest.raises(KeyError):
            load_reasoning_probes(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_reasoning_probes(tmp_path / "nope.json")


class TestLoadContextSuite:
    def test_tests_and_defaults(self, tmp_path):
        path = _write(tmp_path, "context.json", {
            "tests": [
                {"name": "spread", "base_token_budget": 8_000, "checkpoint_count": 4},
                {
                    "name": "edges",
                    "filler_type": "code",
                    "base_token_budget": 8_000,
                    "checkpoints": [{"secret": "K-1", "carrier": "key K-1", "relative_position": 0.1}],
                    "buried_directive": "Answer in French",
                    "directive_markers": ["Le", "La"],
                },
            ],
            "filler": {"prose": ["custom prose"]},
        })

        suite = load_context_suite(path)

        assert [t.name for t in suite.tests] == ["spread", "edges"]
        assert suite.tests[0].filler_type == "mixed"
        assert suite.tests[1].checkpoints[0].relative_position == 0.1
        assert suite.tests[1].directive_markers == ("le", "la")
        assert suite.filler["prose"] == ["custom prose"]
        assert suite.filler["code"] == DEFAULT_FILLER["code"]
        assert suite.carrier_templates == DEFAULT_CARRIER_TEMPLATES

    def test_tests_required(self, tmp_path):
        path = _write(tmp_path, "context.json", {"filler": {}})
        with pytest.raises(KeyError, match="tests"):
            load_context_suite(path)

    def test_unknown_filler_type(self, tmp_path):
        path = _write(tmp_path, "context.json", {"tests": [], "filler": {"poetry": ["roses"]}})
        with pytest.raises(ValueError, match="Invalid filler type"):
            load_context_suite(path)

    def test_default_suite_is_independent_copy(self):
        suite = default_context_suite()
        suite.filler["prose"].append("extra")
        assert "extra" not in default_context_suite().filler["prose"]


class TestLoadSeedSet:
    def test_seeds_and_categories(self, tmp_path):
        path = _write(tmp_path, "seeds.json", {
            "categories": {"code": {"system_prompt": "You write Python.", "temperature": 0.2}},
            "seeds": [{"category": "code", "prompt": "Write fizzbuzz"}, {"category": "chat", "prompt": "Hi there"}],
        })

        seed_set = load_seed_set(path)

        assert [s.prompt for s in seed_set.seeds] == ["Write fizzbuzz", "Hi there"]
        assert seed_set.settings_for("code").temperature == 0.2
        assert seed_set.settings_for("chat").system_prompt == ""

    def test_seeds_required(self, tmp_path):
        path = _write(tmp_path, "seeds.json", {"categories": {}})
        with pytest.raises(KeyError, match="seeds"):
            load_seed_set(path)
