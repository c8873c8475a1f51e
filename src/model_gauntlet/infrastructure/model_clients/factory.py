"""
Model client factory

Creates the client instance for a model identifier.
"""

from __future__ import annotations

from model_gauntlet.harness_config import HarnessConfig, load_config
from model_gauntlet.infrastructure.model_clients.base import ModelClient
from model_gauntlet.infrastructure.model_clients.openai_compatible import OpenAICompatibleClient


def create_client(model_name: str, config: HarnessConfig | None = None) -> ModelClient:
    """
    Create a client for the model

    Args:
        model_name: Model identifier
        config: HarnessConfig (loads from env if not provided)

    Returns:
        ModelClient: The client instance
    """
    if config is None:
        config = load_config()

    gateway = config.gateway
    return OpenAICompatibleClient(
        model_name,
        base_url=gateway.base_url,
        api_key=gateway.api_key,
        timeout_seconds=gateway.timeout_seconds,
        max_retries=gateway.max_retries,
        retry_delay_seconds=gateway.retry_delay_seconds,
    )
