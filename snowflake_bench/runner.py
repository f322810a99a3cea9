"""
Async benchmark runner.

One connection per run. Its setup time is measured apart from the query
iterations so login and TLS costs don't drown out per-query latency
differences between backends.
"""

__all__ = ['BenchmarkRunner', 'run_benchmark']

import asyncio
import logging
import time
from typing import Callable, Optional

from .adapter import ClientAdapter
from .errors import ConfigError, ConfigErrorKind, ExecError, ExecErrorKind, RunError
from .profile import ConnectionProfile
from .query import QuerySpec
from .stats import BenchmarkResult, RunState, Stats

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, Stats], None]


class BenchmarkRunner:
    """
    Drives one adapter through ``warmup`` unmeasured and ``iterations``
    measured executions of one query, strictly in order.

    ``state`` walks IDLE -> CONNECTING -> WARMING -> ITERATING ->
    AGGREGATING -> DONE, or ends in ABORTED.
    """

    def __init__(
            self,
            adapter: ClientAdapter,
            profile: ConnectionProfile,
            query: QuerySpec,
            iterations: int,
            warmup: int = 0,
            on_iteration: Optional[ProgressCallback] = None):
        self.adapter = adapter
        self.profile = profile
        self.query = query
        self.iterations = iterations
        self.warmup = warmup
        self.on_iteration = on_iteration
        self.state = RunState.IDLE
        self._samples = []
        self._connect_ns = None
        self._row_count = None
        self._byte_count = 0
        self._current = (0, False)

    def _validate(self):
        if isinstance(self.iterations, bool) or not isinstance(self.iterations, int) \
                or self.iterations < 1:
            raise ConfigError(
                f'Iterations must be a positive integer, got {self.iterations!r}',
                ConfigErrorKind.INVALID_ITERATIONS,
                self.adapter.name)
        if not isinstance(self.warmup, int) or self.warmup < 0:
            raise ConfigError(
                f'Warm-up iterations must be zero or more, got {self.warmup!r}',
                ConfigErrorKind.INVALID_ITERATIONS,
                self.adapter.name)
        self.adapter.check_shape(self.query)

    async def _execute(self, conn, index: int, warmup: bool = False):
        self._current = (index, warmup)
        try:
            return await self.adapter.execute(conn, self.query)
        except ExecError as e:
            if e.backend is None:
                e.backend = self.adapter.name
            e.iteration = index
            e.warmup = warmup
            raise

    async def _iterate(self, conn):
        if self.warmup:
            self.state = RunState.WARMING
            for index in range(self.warmup):
                rowset = await self._execute(conn, index, warmup=True)
                del rowset
            logger.debug('[%s] %d warm-up iterations done', self.adapter.name, self.warmup)

        self.state = RunState.ITERATING
        for index in range(self.iterations):
            start_ns = time.perf_counter_ns()
            rowset = await self._execute(conn, index)
            duration_ns = time.perf_counter_ns() - start_ns
            self._samples.append(duration_ns)
            self._row_count = rowset.row_count
            self._byte_count += rowset.byte_count
            stats = Stats(duration_ns, rowset.row_count, rowset.byte_count)
            del rowset
            logger.debug('[%s] iteration %d: %s', self.adapter.name, index + 1, repr(stats))
            if self.on_iteration is not None:
                self.on_iteration(index, stats)

    async def run(self) -> BenchmarkResult:
        """
        Run the benchmark.

        Invalid settings, a shape mismatch and connection failures raise.
        Once connected, an execution failure or a cancellation ends the run
        early and is reported on the (partial) result instead.
        """
        self._validate()
        error = None
        self.state = RunState.CONNECTING
        connect_start_ns = time.perf_counter_ns()
        try:
            async with self.adapter.session(self.profile) as conn:
                self._connect_ns = time.perf_counter_ns() - connect_start_ns
                logger.debug(
                    '[%s] connected in %.2fms',
                    self.adapter.name, self._connect_ns / 1e6)
                await self._iterate(conn)
        except ExecError as e:
            error = e
        except (asyncio.CancelledError, KeyboardInterrupt):
            error = ExecError(
                'Run interrupted',
                ExecErrorKind.CANCELLED,
                backend=self.adapter.name,
                query=self.query.sql_text,
                iteration=self._current[0],
                warmup=self._current[1])
        except RunError as e:
            if self._connect_ns is None:
                self.state = RunState.ABORTED
                raise
            # Closing failed after the iterations finished.
            error = e

        if error is not None:
            self.state = RunState.ABORTED
            logger.warning('%s', error)
        else:
            self.state = RunState.AGGREGATING
        result = BenchmarkResult(
            backend_kind=self.adapter.name,
            iterations=self.iterations,
            samples=self._samples,
            connect_ns=self._connect_ns,
            warmup=self.warmup,
            row_count=self._row_count,
            byte_count=self._byte_count,
            error=error,
            state=RunState.ABORTED if error is not None else RunState.DONE)
        if error is None:
            self.state = RunState.DONE
        return result


async def run_benchmark(
        adapter: ClientAdapter,
        profile: ConnectionProfile,
        query: QuerySpec,
        iterations: int,
        warmup: int = 0,
        on_iteration: Optional[ProgressCallback] = None) -> BenchmarkResult:
    """
    Benchmark ``query`` on one backend.

    :param iterations: Measured executions, at least 1.
    :param warmup: Unmeasured executions run first, defaults to 0.
    :param on_iteration: Called with the iteration index and its `Stats`
        after each measured execution.
    """
    runner = BenchmarkRunner(adapter, profile, query, iterations, warmup, on_iteration)
    return await runner.run()
