"""
Model client base class and retry mixin

Defines the abstract base class inherited by all model clients,
the RetryMixin that consolidates shared retry logic, and the
exceptions clients raise once retries are exhausted.
"""

import time
from abc import ABC, abstractmethod

from model_gauntlet.domain.value_objects import ModelResponse, SamplingParams


class ModelClientError(Exception):
    """Base class for failures raised by a model client"""

    kind = "transport"

    def __init__(self, model_name: str, message: str):
        super().__init__(f"{model_name}: {message}")
        self.model_name = model_name
        self.message = message


class ModelTimeoutError(ModelClientError):
    """The request exceeded the configured timeout"""

    kind = "timeout"


class ModelTransportError(ModelClientError):
    """Connection, HTTP status or protocol failure"""

    kind = "transport"


class EmptyResponseError(ModelClientError):
    """The endpoint answered but returned no content"""

    kind = "empty_response"


class RetryMixin:
    """Exponential backoff retry. Subclasses set self.max_retries."""

    max_retries: int = 3
    retry_delay_seconds: float = 1.0

    def _with_retry(self, fn, retryable_exceptions=(Exception,)):
        """
        Execute with exponential backoff retry.

        Args:
            fn: The function to retry (a callable with no arguments)
            retryable_exceptions: Tuple of exception types eligible for retry

        Returns:
            The return value of fn()

        Raises:
            ValueError: If max_retries is less than 1
            Exception: The last exception if max retries are exceeded
        """
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1.")

        last_exception: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                return fn()
            except retryable_exceptions as e:
                last_exception = e
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_delay_seconds * 2 ** attempt)

        assert last_exception is not None
        raise last_exception


class ModelClient(ABC):
    """Abstract base class for model clients"""

    model_name: str

    @abstractmethod
    def complete(self, system_prompt: str, user_prompt: str, params: SamplingParams) -> ModelResponse:
        """
        Submit one chat completion

        Raises:
            ModelClientError: If the request ultimately failed
        """
        pass
