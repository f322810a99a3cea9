"""
A sync shim around the `runner` module.
"""

__all__ = ['run_benchmark']

import asyncio
from typing import Optional

from . import runner as a
from .adapter import ClientAdapter
from .profile import ConnectionProfile
from .query import QuerySpec
from .stats import BenchmarkResult


def run_benchmark(
        adapter: ClientAdapter,
        profile: ConnectionProfile,
        query: QuerySpec,
        iterations: int,
        warmup: int = 0,
        on_iteration: Optional[a.ProgressCallback] = None) -> BenchmarkResult:
    """
    Benchmark ``query`` on one backend, blocking until the run ends.

    See `runner.run_benchmark`.
    """
    coro = a.run_benchmark(adapter, profile, query, iterations, warmup, on_iteration)
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None
    if loop is None:
        return asyncio.run(coro)
    else:
        return loop.run_until_complete(coro)
