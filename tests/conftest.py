"""
共通フィクスチャ

スクリプト化したモデルクライアントと空白区切りトークナイザを提供する。
"""

from typing import Callable

import pytest

from model_gauntlet.domain.value_objects import ModelResponse, PerfMetrics, SamplingParams
from model_gauntlet.infrastructure.gateway import WARM_UP_PROMPT, ModelGateway, RunContext
from model_gauntlet.infrastructure.model_clients.base import ModelClient, ModelClientError


class ScriptedClient(ModelClient):
    """
    Answers from a responder callable (or a fixed string)

    Warm-up requests are answered with "ok" unless warm_up_fails is set.
    Every call is recorded in self.calls as (system_prompt, user_prompt, params).
    """

    def __init__(self, model_name, responder, warm_up_fails=False, tokens_per_second=10.0):
        self.model_name = model_name
        self.responder = responder
        self.warm_up_fails = warm_up_fails
        self.tokens_per_second = tokens_per_second
        self.calls = []

    def complete(self, system_prompt, user_prompt, params):
        self.calls.append((system_prompt, user_prompt, params))
        if user_prompt == WARM_UP_PROMPT:
            if self.warm_up_fails:
                raise ModelClientError(self.model_name, "model not loaded")
            return self._response("ok")
        if isinstance(self.responder, str):
            output = self.responder
        else:
            output = self.responder(system_prompt, user_prompt, params)
        return self._response(output)

    def _response(self, output):
        return ModelResponse(
            output=output,
            model_name=self.model_name,
            perf=PerfMetrics(total_latency_ms=100.0, tokens_per_second=self.tokens_per_second),
        )

    @property
    def prompts(self):
        return [user for _, user, _ in self.calls if user != WARM_UP_PROMPT]


class WhitespaceTokenizer:
    """One token per whitespace-separated word"""

    def encode(self, text):
        return text.split()

    def decode(self, tokens):
        return " ".join(tokens)

    def count(self, text):
        return len(text.split())


@pytest.fixture
def failing_responder():
    """Responder whose every request fails with a transport error"""

    def responder(system_prompt, user_prompt, params):
        raise ModelClientError("model", "connection refused")

    return responder


@pytest.fixture
def make_gateway() -> Callable[..., ModelGateway]:
    """
    Build a ModelGateway over ScriptedClients

    Usage: make_gateway({"model-a": "answer", "model-b": responder_fn}, warm_up_failures={"model-b"})
    The clients are reachable through gateway.clients[model_name].
    """

    def factory(responders, max_consecutive_errors=3, warm_up_failures=(), tokens_per_second=None):
        tps = tokens_per_second or {}
        clients = {
            name: ScriptedClient(
                name,
                responder,
                warm_up_fails=name in warm_up_failures,
                tokens_per_second=tps.get(name, 10.0),
            )
            for name, responder in responders.items()
        }
        gateway = ModelGateway(lambda name: clients[name], RunContext(max_consecutive_errors))
        gateway.clients = clients
        return gateway

    return factory


@pytest.fixture
def tokenizer():
    return WhitespaceTokenizer()


@pytest.fixture
def params():
    return SamplingParams(temperature=0.0, top_p=1.0, max_tokens=64)
