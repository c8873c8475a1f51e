"""
Health Check

Warms models up before a stage commits to a full probe run.
"""

import logging
import time

from model_gauntlet.domain.entities import HealthCheckResult
from model_gauntlet.infrastructure.gateway import ModelGateway
from model_gauntlet.use_cases.concurrency import map_models

logger = logging.getLogger(__name__)


def health_check_model(model_name: str, gateway: ModelGateway) -> HealthCheckResult:
    """
    Warm up a single model.

    Args:
        model_name: Name of the model to check
        gateway: Model gateway

    Returns:
        HealthCheckResult: Health check result
    """
    if not gateway.is_usable(model_name):
        return HealthCheckResult(
            model_name=model_name,
            success=False,
            latency_ms=None,
            error="flagged unusable for this run",
        )
    start_time = time.time()
    ok = gateway.warm_up(model_name)
    latency_ms = int((time.time() - start_time) * 1000)
    return HealthCheckResult(
        model_name=model_name,
        success=ok,
        latency_ms=latency_ms if ok else None,
        error=None if ok else "warm-up request failed",
    )


def warm_up_models(
    models: list[str],
    gateway: ModelGateway,
    max_parallel_requests: int = 1,
) -> tuple[list[str], list[HealthCheckResult]]:
    """
    Warm up all models.

    Returns:
        tuple: (list of available models in input order, list of all check results)
    """
    results = map_models(
        models,
        lambda model: health_check_model(model, gateway),
        max_parallel_requests,
    )
    available = [r.model_name for r in results if r.success]
    for r in results:
        if not r.success:
            logger.warning("Skipping %s for this stage: %s", r.model_name, r.error)
    return available, results
