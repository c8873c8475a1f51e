"""
Model Gateway

The single boundary between the pipeline and model endpoints. Failures never
propagate past it: they come back as GatewayError values and are counted
against the model's per-run error budget.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

from model_gauntlet.domain.value_objects import GatewayError, ModelResponse, SamplingParams
from model_gauntlet.infrastructure.model_clients.base import ModelClient, ModelClientError

logger = logging.getLogger(__name__)

WARM_UP_PROMPT = "Hi"
WARM_UP_PARAMS = SamplingParams(temperature=0.1, top_p=1.0, max_tokens=5)


class RunContext:
    """
    Run-scoped model state: consecutive error counts and sticky unusable flags

    One instance per pipeline run. Safe to share between worker threads.
    """

    def __init__(self, max_consecutive_errors: int = 3):
        if max_consecutive_errors < 1:
            raise ValueError("max_consecutive_errors must be at least 1.")
        self.max_consecutive_errors = max_consecutive_errors
        self._lock = threading.Lock()
        self._errors: dict[str, int] = {}
        self._flagged: set[str] = set()

    def record_success(self, model_name: str) -> None:
        with self._lock:
            self._errors[model_name] = 0

    def record_error(self, model_name: str) -> bool:
        """Count one failure; returns True if this failure flagged the model"""
        with self._lock:
            count = self._errors.get(model_name, 0) + 1
            self._errors[model_name] = count
            if count >= self.max_consecutive_errors and model_name not in self._flagged:
                self._flagged.add(model_name)
                return True
            return False

    def error_count(self, model_name: str) -> int:
        with self._lock:
            return self._errors.get(model_name, 0)

    def is_flagged(self, model_name: str) -> bool:
        with self._lock:
            return model_name in self._flagged

    @property
    def flagged_models(self) -> list[str]:
        with self._lock:
            return sorted(self._flagged)


class ModelGateway:
    """Completion and warm-up calls with per-model error accounting"""

    def __init__(
        self,
        client_factory: Callable[[str], ModelClient],
        context: RunContext,
    ):
        """
        Args:
            client_factory: Builds a client for a model identifier
            context: Run-scoped error counters
        """
        self.client_factory = client_factory
        self.context = context
        self._clients: dict[str, ModelClient] = {}
        self._clients_lock = threading.Lock()

    def _client(self, model_name: str) -> ModelClient:
        with self._clients_lock:
            client = self._clients.get(model_name)
            if client is None:
                client = self.client_factory(model_name)
                self._clients[model_name] = client
            return client

    def is_usable(self, model_name: str) -> bool:
        return not self.context.is_flagged(model_name)

    def complete(
        self,
        model_name: str,
        system_prompt: str,
        user_prompt: str,
        params: SamplingParams,
    ) -> ModelResponse | GatewayError:
        """
        Submit one completion

        Returns:
            The response, or a GatewayError describing why there is none.
            Flagged models are not contacted.
        """
        if self.context.is_flagged(model_name):
            return GatewayError(model_name, "flagged", "model exceeded its error budget")

        try:
            response = self._client(model_name).complete(system_prompt, user_prompt, params)
        except ModelClientError as e:
            if self.context.record_error(model_name):
                logger.warning(
                    "Model %s flagged unusable after %d consecutive errors",
                    model_name, self.context.max_consecutive_errors,
                )
            logger.warning("Request to %s failed (%s): %s", model_name, e.kind, e.message)
            return GatewayError(model_name, e.kind, e.message)

        self.context.record_success(model_name)
        return response

    def warm_up(self, model_name: str) -> bool:
        """
        Minimal request confirming the model is loaded

        A failed warm-up does not count against the error budget.
        """
        if self.context.is_flagged(model_name):
            return False
        try:
            self._client(model_name).complete("", WARM_UP_PROMPT, WARM_UP_PARAMS)
        except ModelClientError as e:
            logger.warning("Warm-up of %s failed: %s", model_name, e.message)
            return False
        return True
