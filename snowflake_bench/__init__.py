"""
Benchmark Snowflake client backends against each other.

Three interchangeable adapters (the ADBC driver, and a REST client consuming
either Arrow or JSON payloads) are driven through the same runner, which
times query iterations separately from connection setup.
"""

__version__ = '0.1.0'

from .errors import (
    RunError, ConfigError, ConfigErrorKind, ProfileNotFound,
    ConnectError, ConnectErrorKind, ExecError, ExecErrorKind)
from .profile import (
    ConnectionProfile, PasswordAuth, PrivateKeyAuth, ProfileStore, load_profiles)
from .query import QuerySpec, ResultShape
from .rowset import NormalizedRowSet
from .stats import BenchmarkResult, RunState, Stats
from .adapter import ClientAdapter
from .clients import ADAPTERS, make_adapter
from .synchronous import run_benchmark
from .session import QuerySession, run_once, repl
