"""
モデルクライアントのテスト

RetryMixin._with_retry() のリトライ動作、
OpenAICompatibleClient のエラー変換、create_client() のファクトリをテストする。
"""

import itertools
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import httpx
import openai
import pytest

from model_gauntlet.domain.value_objects import SamplingParams
from model_gauntlet.harness_config import GatewayConfig, HarnessConfig
from model_gauntlet.infrastructure.model_clients.base import (
    EmptyResponseError,
    ModelTimeoutError,
    ModelTransportError,
    RetryMixin,
)
from model_gauntlet.infrastructure.model_clients.factory import create_client
from model_gauntlet.infrastructure.model_clients.openai_compatible import (
    OpenAICompatibleClient,
    list_endpoint_models,
)

_REQUEST = httpx.Request("POST", "http://localhost:1234/v1/chat/completions")


def _completion(content="hello", completion_tokens=20, prompt_tokens=5):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def _client(create_side_effect, max_retries=1):
    api = MagicMock()
    api.chat.completions.create.side_effect = create_side_effect
    client = OpenAICompatibleClient(
        "qwen2.5-7b-instruct",
        max_retries=max_retries,
        retry_delay_seconds=1.0,
        client=api,
    )
    return client, api


class TestRetryMixin:
    """RetryMixin._with_retry() のテスト"""

    def _make_mixin(self, max_retries=3, retry_delay_seconds=1.0):
        mixin = RetryMixin()
        mixin.max_retries = max_retries
        mixin.retry_delay_seconds = retry_delay_seconds
        return mixin

    @patch("model_gauntlet.infrastructure.model_clients.base.time.sleep")
    def test_success_on_first_attempt(self, mock_sleep):
        """初回で成功する場合、リトライなしで値を返す"""
        mixin = self._make_mixin()
        fn = MagicMock(return_value="ok")

        assert mixin._with_retry(fn) == "ok"
        fn.assert_called_once()
        mock_sleep.assert_not_called()

    @patch("model_gauntlet.infrastructure.model_clients.base.time.sleep")
    def test_success_after_two_failures(self, mock_sleep):
        """2回失敗後、3回目で成功する場合"""
        mixin = self._make_mixin(max_retries=3, retry_delay_seconds=0.5)
        fn = MagicMock(side_effect=[ValueError("1"), ValueError("2"), "ok"])

        assert mixin._with_retry(fn) == "ok"
        assert fn.call_count == 3
        # 指数バックオフ: 0.5 * 2**0, 0.5 * 2**1
        mock_sleep.assert_any_call(0.5)
        mock_sleep.assert_any_call(1.0)

    @patch("model_gauntlet.infrastructure.model_clients.base.time.sleep")
    def test_raises_after_all_retries_exhausted(self, mock_sleep):
        """全リトライ失敗時、最後の例外をraiseする"""
        mixin = self._make_mixin(max_retries=2)
        fn = MagicMock(side_effect=[ValueError("1"), ValueError("final")])

        with pytest.raises(ValueError, match="final"):
            mixin._with_retry(fn)
        assert fn.call_count == 2
        assert mock_sleep.call_count == 1

    def test_max_retries_zero_raises_value_error(self):
        """max_retries=0 の場合、ValueError を即座にraiseする"""
        mixin = self._make_mixin(max_retries=0)
        fn = MagicMock(return_value="ok")

        with pytest.raises(ValueError, match="max_retries must be at least 1"):
            mixin._with_retry(fn)
        fn.assert_not_called()

    @patch("model_gauntlet.infrastructure.model_clients.base.time.sleep")
    def test_retryable_exceptions_filter(self, mock_sleep):
        """retryable_exceptions に含まれない例外は即座にraiseされる"""
        mixin = self._make_mixin(max_retries=3)
        fn = MagicMock(side_effect=TypeError("not retryable"))

        with pytest.raises(TypeError, match="not retryable"):
            mixin._with_retry(fn, retryable_exceptions=(ValueError,))
        fn.assert_called_once()
        mock_sleep.assert_not_called()


class TestOpenAICompatibleClient:
    """OpenAICompatibleClient.complete() のテスト"""

    @patch("model_gauntlet.infrastructure.model_clients.openai_compatible.time.time")
    def test_successful_completion(self, mock_time):
        """応答本文と性能指標を返す"""
        mock_time.side_effect = itertools.count(0.0, 0.5)
        client, api = _client([_completion("  Red Blue Green  ", completion_tokens=20)])

        response = client.complete("Be terse.", "Say three colours", SamplingParams(0.0, 0.8, 300))

        assert response.output == "Red Blue Green"
        assert response.model_name == "qwen2.5-7b-instruct"
        assert response.perf.total_latency_ms == pytest.approx(500.0)
        assert response.perf.tokens_per_second == pytest.approx(40.0)
        assert response.perf.completion_tokens == 20
        kwargs = api.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "Be terse."}
        assert kwargs["max_tokens"] == 300
        assert kwargs["top_p"] == 0.8

    def test_empty_system_prompt_is_omitted(self):
        client, api = _client([_completion()])
        client.complete("", "Hi", SamplingParams())
        messages = api.chat.completions.create.call_args.kwargs["messages"]
        assert messages == [{"role": "user", "content": "Hi"}]

    def test_missing_content_raises_empty_response(self):
        """contentがNoneの場合、EmptyResponseErrorになる"""
        client, _ = _client([_completion(content=None)])
        with pytest.raises(EmptyResponseError) as exc:
            client.complete("", "Hi", SamplingParams())
        assert exc.value.kind == "empty_response"

    def test_no_choices_raises_empty_response(self):
        client, _ = _client([SimpleNamespace(choices=[], usage=None)])
        with pytest.raises(EmptyResponseError):
            client.complete("", "Hi", SamplingParams())

    @patch("model_gauntlet.infrastructure.model_clients.base.time.sleep")
    def test_timeout_maps_to_timeout_error(self, mock_sleep):
        client, _ = _client(openai.APITimeoutError(request=_REQUEST), max_retries=2)
        with pytest.raises(ModelTimeoutError) as exc:
            client.complete("", "Hi", SamplingParams())
        assert exc.value.kind == "timeout"

    @patch("model_gauntlet.infrastructure.model_clients.base.time.sleep")
    def test_connection_error_retried_then_succeeds(self, mock_sleep):
        """接続エラーはリトライされる"""
        client, api = _client(
            [openai.APIConnectionError(request=_REQUEST), _completion("ok")],
            max_retries=2,
        )
        assert client.complete("", "Hi", SamplingParams()).output == "ok"
        assert api.chat.completions.create.call_count == 2

    def test_bad_request_is_not_retried(self):
        """4xxエラーはリトライせずModelTransportErrorになる"""
        error = openai.BadRequestError(
            "model not found",
            response=httpx.Response(400, request=_REQUEST),
            body=None,
        )
        client, api = _client(error, max_retries=3)
        with pytest.raises(ModelTransportError) as exc:
            client.complete("", "Hi", SamplingParams())
        assert exc.value.kind == "transport"
        assert api.chat.completions.create.call_count == 1


class TestListEndpointModels:
    def test_excludes_models(self):
        api = MagicMock()
        api.models.list.return_value = [
            SimpleNamespace(id="qwen2.5-7b-instruct"),
            SimpleNamespace(id="text-embedding-nomic"),
            SimpleNamespace(id="llama-3.1-8b-instruct"),
        ]
        models = list_endpoint_models(
            "http://localhost:1234/v1", exclude=["text-embedding-nomic"], client=api
        )
        assert models == ["qwen2.5-7b-instruct", "llama-3.1-8b-instruct"]

    def test_unreachable_endpoint_raises_transport_error(self):
        api = MagicMock()
        api.models.list.side_effect = openai.APIConnectionError(request=_REQUEST)
        with pytest.raises(ModelTransportError):
            list_endpoint_models("http://localhost:1234/v1", client=api)


class TestCreateClient:
    """create_client() ファクトリのテスト"""

    def test_returns_openai_compatible_client(self):
        config = HarnessConfig(
            gateway=GatewayConfig(base_url="http://gpu-box:8000/v1", max_retries=2, retry_delay_seconds=0.5)
        )
        client = create_client("llama-3.1-8b-instruct", config=config)
        assert isinstance(client, OpenAICompatibleClient)
        assert client.model_name == "llama-3.1-8b-instruct"
        assert client.base_url == "http://gpu-box:8000/v1"
        assert client.max_retries == 2
        assert client.retry_delay_seconds == 0.5
