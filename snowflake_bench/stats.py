__all__ = ['RunState', 'Stats', 'BenchmarkResult']

from enum import Enum
from typing import Optional, Sequence

import numpy as np

from .errors import RunError

NS_IN_S = 1e9
NS_IN_MS = 1e6

STATS_TEMPLATE = '''Duration: {duration_s:.3f}s
Rows: {line_count}
Rows/s: {throughput_rps:.3f}
MiB: {byte_count_mib:.3f}
MiB/s: {throughput_mbs:.3f}'''

RESULT_TEMPLATE = '''=== Benchmark Results: {backend_kind} ===
Iterations: {completed}/{iterations}
Warm-up iterations: {warmup}
Rows per iteration: {row_count}
Connect time: {connect_ms:.2f}ms
Total time: {total_ms:.2f}ms
Average time: {mean_ms:.2f}ms
Std deviation: {stddev_ms:.2f}ms
Min time: {min_ms:.2f}ms
Max time: {max_ms:.2f}ms
MiB/s: {throughput_mbs:.3f}'''


class RunState(Enum):
    IDLE = 'idle'
    CONNECTING = 'connecting'
    WARMING = 'warming'
    ITERATING = 'iterating'
    AGGREGATING = 'aggregating'
    DONE = 'done'
    ABORTED = 'aborted'


class Stats:
    """Timing of a single query execution."""

    def __init__(self, duration_ns: int, line_count: int, byte_count: int):
        self.duration_ns = duration_ns
        self.line_count = line_count
        self.byte_count = byte_count

    @property
    def duration_s(self) -> float:
        """
        How long the query took in seconds.
        """
        return self.duration_ns / NS_IN_S

    @property
    def throughput_mbs(self) -> float:
        """
        How many MiB/s were downloaded and decoded.
        """
        if not self.duration_ns:
            return 0.0
        return self.byte_count / self.duration_ns * NS_IN_S / 1024 / 1024

    @property
    def throughput_rps(self) -> float:
        """
        How many rows per second were decoded.
        """
        if not self.duration_ns:
            return 0.0
        return self.line_count / self.duration_ns * NS_IN_S

    def __repr__(self) -> str:
        return (f'Stats(duration_s={self.duration_s}, '
                f'line_count={self.line_count}, '
                f'byte_count={self.byte_count}, '
                f'throughput_mbs={self.throughput_mbs}, '
                f'throughput_rps={self.throughput_rps})')

    def __str__(self):
        return STATS_TEMPLATE.format(
            duration_s=self.duration_s,
            line_count=self.line_count,
            throughput_rps=self.throughput_rps,
            byte_count_mib=self.byte_count / 1024 / 1024,
            throughput_mbs=self.throughput_mbs)


class BenchmarkResult:
    """
    The outcome of one benchmark run against one backend.

    ``samples`` holds per-iteration wall-clock durations in nanoseconds, in
    the order the iterations ran. Connection setup is kept apart in
    ``connect_ns``. Statistics are population statistics over ``samples``
    and are ``None`` when no iteration completed.
    """

    def __init__(
            self,
            backend_kind: str,
            iterations: int,
            samples: Sequence[int] = (),
            connect_ns: Optional[int] = None,
            warmup: int = 0,
            row_count: Optional[int] = None,
            byte_count: int = 0,
            error: Optional[RunError] = None,
            state: RunState = RunState.DONE):
        self._backend_kind = backend_kind
        self._iterations = iterations
        self._samples = tuple(samples)
        self._connect_ns = connect_ns
        self._warmup = warmup
        self._row_count = row_count
        self._byte_count = byte_count
        self._error = error
        self._state = state
        self._arr = np.asarray(self._samples, dtype=np.int64)

    backend_kind = property(lambda self: self._backend_kind)
    iterations = property(lambda self: self._iterations)
    samples = property(lambda self: self._samples)
    connect_ns = property(lambda self: self._connect_ns)
    warmup = property(lambda self: self._warmup)
    row_count = property(lambda self: self._row_count)
    byte_count = property(lambda self: self._byte_count)
    error = property(lambda self: self._error)
    state = property(lambda self: self._state)

    @property
    def completed(self) -> int:
        return len(self._samples)

    @property
    def ok(self) -> bool:
        return self._error is None and self.completed == self._iterations

    @property
    def total_ns(self) -> int:
        return int(self._arr.sum())

    @property
    def mean_ns(self) -> Optional[float]:
        if not self._samples:
            return None
        return float(np.mean(self._arr))

    @property
    def stddev_ns(self) -> Optional[float]:
        """Population standard deviation."""
        if not self._samples:
            return None
        return float(np.std(self._arr, ddof=0))

    @property
    def min_ns(self) -> Optional[int]:
        if not self._samples:
            return None
        return int(self._arr.min())

    @property
    def max_ns(self) -> Optional[int]:
        if not self._samples:
            return None
        return int(self._arr.max())

    @property
    def throughput_mbs(self) -> float:
        """Mean MiB/s over the completed iterations."""
        total = self.total_ns
        if not total:
            return 0.0
        return self._byte_count / total * NS_IN_S / 1024 / 1024

    def __repr__(self) -> str:
        return (f'BenchmarkResult(backend_kind={self.backend_kind!r}, '
                f'iterations={self.iterations}, '
                f'completed={self.completed}, '
                f'state={self.state.value}, '
                f'mean_ns={self.mean_ns}, '
                f'stddev_ns={self.stddev_ns}, '
                f'error={self.error!r})')

    def __str__(self):
        def ms(value):
            return (value or 0) / NS_IN_MS
        return RESULT_TEMPLATE.format(
            backend_kind=self.backend_kind,
            completed=self.completed,
            iterations=self.iterations,
            warmup=self.warmup,
            row_count=self.row_count if self.row_count is not None else '-',
            connect_ms=ms(self.connect_ns),
            total_ms=ms(self.total_ns),
            mean_ms=ms(self.mean_ns),
            stddev_ms=ms(self.stddev_ns),
            min_ms=ms(self.min_ns),
            max_ms=ms(self.max_ns),
            throughput_mbs=self.throughput_mbs)
