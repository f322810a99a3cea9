"""
Benchmarking tool

From the command line, run as::

    python3 -m snowflake_bench.tool --help

Run a single query or an interactive session::

    snowflake-bench --config profiles.yaml --profile prod --query 'SELECT 1'

Benchmark one backend::

    snowflake-bench --config profiles.yaml benchmark \\
        --query 'SELECT 1 AS test' --client rest-arrow --iterations 10

"""

import logging
import os
import sys

from .clients import ADAPTERS, make_adapter
from .errors import ConfigError, ConfigErrorKind, ConnectError, ExecError, ExecErrorKind
from .formatter import format_iteration, format_result, format_rowset
from .profile import DEFAULT_PROFILE, load_profiles
from .query import QuerySpec, ResultShape
from .session import repl, run_once
from .synchronous import run_benchmark

EXIT_OK = 0
EXIT_CONFIG = 2
EXIT_CONNECT = 3
EXIT_EXEC = 4
EXIT_INTERRUPTED = 130

LOG_LEVEL_ENV = 'SNOWFLAKE_BENCH_LOG_LEVEL'
LOG_FORMAT = '%(asctime)s | %(name)-28s | %(levelname)-8s | %(message)s'


def _parse_args(argv=None):
    import argparse
    shapes = [shape.value for shape in ResultShape]
    parser = argparse.ArgumentParser(
        prog='snowflake-bench',
        description='Run queries against Snowflake and compare client backends.')
    parser.add_argument('-c', '--config', type=str, required=True,
                        help='YAML file of connection profiles')
    parser.add_argument('-p', '--profile', type=str, default=DEFAULT_PROFILE)
    parser.add_argument('-q', '--query', type=str,
                        help='Run one query; omit for interactive mode')
    parser.add_argument('--client', type=str, default='adbc', choices=list(ADAPTERS))
    parser.add_argument('--shape', type=str, choices=shapes,
                        help='Expected result shape; inferred from the SQL if omitted')
    parser.add_argument('--log-level', type=str,
                        default=os.environ.get(LOG_LEVEL_ENV, 'WARNING').upper(),
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    commands = parser.add_subparsers(dest='command')
    bench = commands.add_parser('benchmark', help='Time repeated executions of a query')
    bench.add_argument('-q', '--query', type=str, required=True)
    bench.add_argument('--client', type=str, default=argparse.SUPPRESS, choices=list(ADAPTERS))
    bench.add_argument('-i', '--iterations', type=int, default=1)
    bench.add_argument('-w', '--warmup', type=int, default=0,
                       help='Unmeasured executions before timing starts')
    bench.add_argument('-p', '--profile', type=str, default=argparse.SUPPRESS)
    bench.add_argument('--shape', type=str, choices=shapes, default=argparse.SUPPRESS)
    return parser.parse_args(argv)


def _configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format=LOG_FORMAT,
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr)


def _query_spec(sql_text, shape):
    try:
        return QuerySpec(sql_text, shape)
    except ValueError as e:
        raise ConfigError(str(e), ConfigErrorKind.INVALID_QUERY) from None


def _benchmark(args, profile, adapter) -> int:
    query = _query_spec(args.query, args.shape)
    print(f'Running benchmark with client: {adapter.name}')
    print(f'Query: {query.sql_text}')
    print(f'Iterations: {args.iterations}')
    print()
    result = run_benchmark(
        adapter,
        profile,
        query,
        args.iterations,
        warmup=args.warmup,
        on_iteration=lambda index, stats: print(format_iteration(index, stats)))
    print()
    print(format_result(result))
    if result.error is None:
        return EXIT_OK
    if result.error.kind is ExecErrorKind.CANCELLED:
        return EXIT_INTERRUPTED
    # A result exists, so connecting worked; a failed close counts as an
    # execution failure.
    return EXIT_EXEC


def main(argv=None) -> int:
    args = _parse_args(argv)
    _configure_logging(args.log_level)
    try:
        profile = load_profiles(args.config).resolve(args.profile)
        adapter = make_adapter(args.client)
        if args.command == 'benchmark':
            return _benchmark(args, profile, adapter)
        if args.query:
            rowset = run_once(adapter, profile, _query_spec(args.query, args.shape))
            print(format_rowset(rowset))
        else:
            repl(adapter, profile, shape=args.shape)
        return EXIT_OK
    except ConfigError as e:
        print(f'Error: {e}', file=sys.stderr)
        return EXIT_CONFIG
    except ConnectError as e:
        print(f'Error: {e}', file=sys.stderr)
        return EXIT_CONNECT
    except ExecError as e:
        print(f'Error: {e}', file=sys.stderr)
        return EXIT_EXEC
    except KeyboardInterrupt:
        print('Interrupted', file=sys.stderr)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    sys.exit(main())
