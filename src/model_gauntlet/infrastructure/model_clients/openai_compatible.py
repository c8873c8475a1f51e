"""
OpenAI-compatible API model client (LM Studio, vLLM, llama.cpp server, ...)
"""

import logging
import time

import openai
from openai import OpenAI

from model_gauntlet.domain.value_objects import ModelResponse, PerfMetrics, SamplingParams
from model_gauntlet.infrastructure.model_clients.base import (
    EmptyResponseError,
    ModelClient,
    ModelTimeoutError,
    ModelTransportError,
    RetryMixin,
)

logger = logging.getLogger(__name__)

_RETRYABLE = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class OpenAICompatibleClient(RetryMixin, ModelClient):
    """Client for a model served behind an OpenAI-compatible chat completions endpoint"""

    def __init__(
        self,
        model_name: str,
        base_url: str = "http://localhost:1234/v1",
        api_key: str = "lm-studio",
        timeout_seconds: float = 600,
        max_retries: int = 1,
        retry_delay_seconds: float = 1.0,
        client: OpenAI | None = None,
    ):
        """
        Args:
            model_name: Model identifier as listed by the endpoint
            base_url: API endpoint
            api_key: API key (usually ignored by local servers)
            timeout_seconds: Per-request timeout
            max_retries: Attempts per request, including the first one
            retry_delay_seconds: Base delay for exponential backoff
            client: Pre-built OpenAI client (tests inject a mock here)
        """
        self.model_name = model_name
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.base_url = base_url
        # Retries are handled by RetryMixin so the error budget sees one failure per request
        self.client = client or OpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout_seconds,
            max_retries=0,
        )

    def complete(self, system_prompt: str, user_prompt: str, params: SamplingParams) -> ModelResponse:
        """
        Send a system + user prompt and retrieve the response

        Returns:
            ModelResponse: The model's response

        Raises:
            ModelTimeoutError: The request timed out
            ModelTransportError: Connection or API failure after retries
            EmptyResponseError: The endpoint returned no content
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        def _call():
            start_time = time.time()
            response = self.client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=params.temperature,
                top_p=params.top_p,
                max_tokens=params.max_tokens,
            )
            elapsed = time.time() - start_time
            return response, elapsed

        try:
            response, elapsed = self._with_retry(_call, retryable_exceptions=_RETRYABLE)
        except openai.APITimeoutError as e:
            raise ModelTimeoutError(self.model_name, str(e)) from e
        except openai.OpenAIError as e:
            raise ModelTransportError(self.model_name, str(e)) from e

        if not response.choices or response.choices[0].message.content is None:
            raise EmptyResponseError(self.model_name, "no content in completion")
        output = response.choices[0].message.content.strip()

        prompt_tokens = None
        completion_tokens = None
        if response.usage:
            prompt_tokens = response.usage.prompt_tokens
            completion_tokens = response.usage.completion_tokens

        tokens_per_second = None
        if completion_tokens and elapsed > 0:
            tokens_per_second = completion_tokens / elapsed

        return ModelResponse(
            output=output,
            model_name=self.model_name,
            perf=PerfMetrics(
                total_latency_ms=elapsed * 1000,
                tokens_per_second=tokens_per_second,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
            ),
        )


def list_endpoint_models(
    base_url: str,
    api_key: str = "lm-studio",
    exclude: list[str] | None = None,
    client: OpenAI | None = None,
) -> list[str]:
    """
    List the model identifiers served by the endpoint (`GET /models`)

    Args:
        base_url: API endpoint
        api_key: API key
        exclude: Identifiers to leave out (embedding models, for instance)
        client: Pre-built OpenAI client

    Returns:
        Model identifiers in the order the endpoint reports them

    Raises:
        ModelTransportError: If the endpoint cannot be reached
    """
    client = client or OpenAI(base_url=base_url, api_key=api_key, max_retries=0)
    excluded = set(exclude or [])
    try:
        models = [m.id for m in client.models.list()]
    except openai.OpenAIError as e:
        raise ModelTransportError("<endpoint>", str(e)) from e
    available = [m for m in models if m not in excluded]
    logger.info("Endpoint %s serves %d models (%d excluded)", base_url, len(models), len(models) - len(available))
    return available
