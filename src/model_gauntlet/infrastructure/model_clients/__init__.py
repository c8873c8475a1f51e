"""
Model client package

Provides a unified interface to OpenAI-compatible model endpoints.
"""

from model_gauntlet.infrastructure.model_clients.base import (
    EmptyResponseError,
    ModelClient,
    ModelClientError,
    ModelTimeoutError,
    ModelTransportError,
)
from model_gauntlet.infrastructure.model_clients.factory import create_client
from model_gauntlet.infrastructure.model_clients.openai_compatible import (
    OpenAICompatibleClient,
    list_endpoint_models,
)

__all__ = [
    "EmptyResponseError",
    "ModelClient",
    "ModelClientError",
    "ModelTimeoutError",
    "ModelTransportError",
    "OpenAICompatibleClient",
    "create_client",
    "list_endpoint_models",
]
