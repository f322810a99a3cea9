"""
Single-shot and interactive query execution over one long-lived connection.
"""

__all__ = ['QuerySession', 'run_once', 'repl', 'EXIT_COMMANDS']

import asyncio
import logging
from typing import Callable, Optional

from .adapter import ClientAdapter
from .errors import RunError
from .formatter import format_rowset
from .profile import ConnectionProfile
from .query import QuerySpec
from .rowset import NormalizedRowSet

logger = logging.getLogger(__name__)

EXIT_COMMANDS = ('exit', 'quit')


class QuerySession:
    """
    A blocking session over one connection.

    Owns a private event loop so queries can be issued one at a time from
    synchronous code (such as a prompt loop) while the adapter's connection
    stays bound to a single loop. The connection is closed exactly once, on
    exit from the ``with`` block.
    """

    def __init__(self, adapter: ClientAdapter, profile: ConnectionProfile):
        self.adapter = adapter
        self.profile = profile
        self._loop = None
        self._conn = None
        self.query_count = 0

    def _run(self, coro):
        return self._loop.run_until_complete(coro)

    def __enter__(self):
        self._loop = asyncio.new_event_loop()
        try:
            self._conn = self._run(self.adapter.connect(self.profile))
        except BaseException:
            self._loop.close()
            self._loop = None
            raise
        return self

    def execute(self, query: QuerySpec) -> NormalizedRowSet:
        if self._conn is None:
            raise RuntimeError('QuerySession is not open')
        self.adapter.check_shape(query)
        self.query_count += 1
        return self._run(self.adapter.execute(self._conn, query))

    def __exit__(self, exc_type, exc_value, traceback):
        conn, self._conn = self._conn, None
        try:
            if conn is not None:
                # An interrupted query leaves its task behind.
                pending = asyncio.all_tasks(self._loop)
                for task in pending:
                    task.cancel()
                if pending:
                    self._run(asyncio.gather(*pending, return_exceptions=True))
                try:
                    self._run(self.adapter.close(conn))
                except Exception as e:
                    if exc_type is None:
                        raise
                    logger.warning('[%s] close failed after an earlier error: %s', self.adapter.name, e)
        finally:
            self._loop.close()
            self._loop = None


def run_once(
        adapter: ClientAdapter,
        profile: ConnectionProfile,
        query: QuerySpec) -> NormalizedRowSet:
    """Connect, run one query, disconnect."""
    adapter.check_shape(query)
    with QuerySession(adapter, profile) as session:
        return session.execute(query)


def repl(
        adapter: ClientAdapter,
        profile: ConnectionProfile,
        read_line: Callable[[str], str] = input,
        write: Callable[[str], None] = print,
        shape: Optional[str] = None) -> int:
    """
    Read queries until ``exit``/``quit``, end of input or an interrupt,
    printing each result. Query failures are reported and the loop goes on.

    Returns how many queries were issued.
    """
    prompt = f'{adapter.name}> '
    with QuerySession(adapter, profile) as session:
        write(f'{adapter.name} - Interactive Mode')
        write("Enter SQL queries (or 'exit' to quit):\n")
        while True:
            try:
                line = read_line(prompt)
            except (EOFError, KeyboardInterrupt):
                write('')
                break
            text = line.strip()
            if not text:
                continue
            if text.lower() in EXIT_COMMANDS:
                break
            try:
                rowset = session.execute(QuerySpec(text, shape))
            except RunError as e:
                write(f'Error: {e}')
                continue
            except KeyboardInterrupt:
                write('Query interrupted')
                break
            write(format_rowset(rowset))
        return session.query_count
