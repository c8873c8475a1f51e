"""
Per-model fan-out

Runs one callable per model, at most `max_parallel_requests` at a time, and
returns the results in the models' input order.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, TypeVar

R = TypeVar("R")


def map_models(
    models: list[str],
    fn: Callable[[str], R],
    max_parallel_requests: int = 1,
) -> list[R]:
    """
    Apply fn to every model

    With max_parallel_requests == 1 models run one after another in the
    calling thread. Exceptions raised by fn propagate.
    """
    if max_parallel_requests <= 1 or len(models) <= 1:
        return [fn(model) for model in models]

    results: dict[str, R] = {}
    with ThreadPoolExecutor(max_workers=min(max_parallel_requests, len(models))) as executor:
        futures = {executor.submit(fn, model): model for model in models}
        for future in as_completed(futures):
            results[futures[future]] = future.result()
    return [results[model] for model in models]
