"""ウォームアップ（ヘルスチェック）のテスト"""

from model_gauntlet.use_cases.health_check import health_check_model, warm_up_models


def test_healthy_model(make_gateway):
    result = health_check_model("a", make_gateway({"a": "ok"}))
    assert result.success is True
    assert result.latency_ms is not None
    assert result.error is None


def test_failed_warm_up(make_gateway):
    result = health_check_model("a", make_gateway({"a": "ok"}, warm_up_failures={"a"}))
    assert result.success is False
    assert result.latency_ms is None
    assert result.error == "warm-up request failed"


def test_flagged_model_is_not_contacted(make_gateway, failing_responder, params):
    gateway = make_gateway({"a": failing_responder}, max_consecutive_errors=1)
    gateway.complete("a", "", "question", params)
    calls_before = len(gateway.clients["a"].calls)

    result = health_check_model("a", gateway)

    assert result.success is False
    assert "flagged" in result.error
    assert len(gateway.clients["a"].calls) == calls_before


def test_warm_up_models_keeps_input_order(make_gateway):
    gateway = make_gateway({"a": "ok", "b": "ok", "c": "ok"}, warm_up_failures={"b"})
    available, checks = warm_up_models(["c", "b", "a"], gateway, max_parallel_requests=3)
    assert available == ["c", "a"]
    assert [c.model_name for c in checks] == ["c", "b", "a"]


def test_warm_up_failure_does_not_count_as_error(make_gateway):
    gateway = make_gateway({"a": "ok"}, max_consecutive_errors=1, warm_up_failures={"a"})
    warm_up_models(["a"], gateway)
    assert gateway.is_usable("a")
