"""
The client adapter interface.

Backends disagree on how results come back (Arrow record batches from the
driver, Arrow or JSON payloads from the REST endpoints) so the shared
boundary is "execute a query and hand back a `NormalizedRowSet`". Native
decoding stays private to each adapter.
"""

__all__ = ['ClientAdapter']

import abc
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, FrozenSet

from .errors import ExecError, ExecErrorKind
from .profile import ConnectionProfile
from .query import QuerySpec, ResultShape
from .rowset import NormalizedRowSet

logger = logging.getLogger(__name__)


class ClientAdapter(abc.ABC):
    """
    One backend. ``connect`` returns an opaque connection handle that the
    other two operations take back; each handle must be closed exactly once.
    """
    name: str = None
    supported_shapes: FrozenSet[ResultShape] = frozenset()

    @abc.abstractmethod
    async def connect(self, profile: ConnectionProfile):
        """Open a session, raising `ConnectError` on failure."""

    @abc.abstractmethod
    async def execute(self, conn, query: QuerySpec) -> NormalizedRowSet:
        """Run ``query``, raising `ExecError` on failure."""

    @abc.abstractmethod
    async def close(self, conn) -> None:
        """Release the session."""

    def supports(self, query: QuerySpec) -> bool:
        return query.expected_result_shape in self.supported_shapes

    def check_shape(self, query: QuerySpec) -> None:
        """Reject a query this backend can't return, before any connection exists."""
        if not self.supports(query):
            supported = ', '.join(sorted(s.value for s in self.supported_shapes))
            raise ExecError(
                f'{self.name} only handles {supported} queries, '
                f'got a {query.expected_result_shape.value} query',
                ExecErrorKind.SHAPE_MISMATCH,
                backend=self.name,
                query=query.sql_text)

    @asynccontextmanager
    async def session(self, profile: ConnectionProfile) -> AsyncIterator[object]:
        """
        Scoped connection: ``close`` runs on every exit path, including
        errors and cancellation. A failing ``close`` never hides an error
        raised by the body.
        """
        conn = await self.connect(profile)
        failed = False
        try:
            yield conn
        except BaseException:
            failed = True
            raise
        finally:
            try:
                await self.close(conn)
            except Exception as e:
                if not failed:
                    raise
                logger.warning('[%s] close failed after an earlier error: %s', self.name, e)

    def __repr__(self):
        return f'{type(self).__name__}()'
