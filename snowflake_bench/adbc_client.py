"""
Snowflake through the ADBC driver (Arrow record batches over the driver's
native protocol).

The driver is blocking, so every call runs on a single worker thread owned by
the connection; one thread keeps the DBAPI connection on the thread that
opened it.
"""

__all__ = ['AdbcConnection', 'AdbcAdapter', 'db_kwargs_for']

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor

import adbc_driver_manager

from .adapter import ClientAdapter
from .auth import load_private_key, pkcs8_pem
from .errors import ConnectError, ConnectErrorKind, ExecError, ExecErrorKind
from .profile import ConnectionProfile, PrivateKeyAuth
from .query import QuerySpec, ResultShape
from .rowset import NormalizedRowSet, from_arrow_table

logger = logging.getLogger(__name__)

_OPT = 'adbc.snowflake.sql.'
_CLIENT_OPT = _OPT + 'client_option.'


def db_kwargs_for(profile: ConnectionProfile) -> dict[str, str]:
    """
    Driver database options for ``profile``.

    Key-pair profiles are validated here, before the driver sees them, and
    handed over as unencrypted PKCS#8 PEM.
    """
    kwargs = {
        _OPT + 'account': profile.account,
        'username': profile.user,
        _OPT + 'uri.host': profile.host,
        _OPT + 'uri.port': str(profile.port),
        _OPT + 'uri.protocol': profile.protocol,
        _CLIENT_OPT + 'keep_session_alive': 'true' if profile.keep_alive else 'false'}
    if isinstance(profile.auth, PrivateKeyAuth):
        key = load_private_key(profile.auth, AdbcAdapter.name)
        kwargs[_OPT + 'auth_type'] = 'auth_jwt'
        kwargs[_CLIENT_OPT + 'jwt_private_key_pkcs8_value'] = pkcs8_pem(key)
    else:
        kwargs['password'] = profile.auth.secret
    for key, value in (
            ('role', profile.role),
            ('warehouse', profile.warehouse),
            ('db', profile.database),
            ('schema', profile.schema)):
        if value:
            kwargs[_OPT + key] = value
    if profile.connect_timeout:
        kwargs[_CLIENT_OPT + 'login_timeout'] = f'{profile.connect_timeout}s'
    return kwargs


def _dbapi_connect(db_kwargs: dict):
    from adbc_driver_snowflake import dbapi
    return dbapi.connect(db_kwargs=db_kwargs)


def _status_name(exc: Exception) -> str:
    return getattr(getattr(exc, 'status_code', None), 'name', '') or ''


def _connect_kind(exc: Exception) -> ConnectErrorKind:
    status = _status_name(exc)
    if status in ('UNAUTHENTICATED', 'UNAUTHORIZED'):
        return ConnectErrorKind.AUTHENTICATION
    if status in ('IO', 'TIMEOUT') or isinstance(exc, adbc_driver_manager.OperationalError):
        return ConnectErrorKind.NETWORK
    return ConnectErrorKind.DRIVER


def _exec_kind(exc: Exception) -> ExecErrorKind:
    status = _status_name(exc)
    if status in ('UNAUTHENTICATED', 'UNAUTHORIZED'):
        return ExecErrorKind.AUTHENTICATION
    if status == 'TIMEOUT':
        return ExecErrorKind.TIMEOUT
    if status == 'IO':
        return ExecErrorKind.NETWORK
    if status == 'CANCELLED':
        return ExecErrorKind.CANCELLED
    if ((getattr(exc, 'sqlstate', None) or '').startswith('42')
            or isinstance(exc, adbc_driver_manager.ProgrammingError)):
        return ExecErrorKind.COMPILATION
    if isinstance(exc, adbc_driver_manager.OperationalError):
        return ExecErrorKind.NETWORK
    return ExecErrorKind.RUNTIME


class AdbcConnection:
    """A DBAPI connection plus the worker thread that drives it."""

    def __init__(self, dbapi_conn, executor: ThreadPoolExecutor):
        self.dbapi_conn = dbapi_conn
        self.executor = executor

    def __repr__(self):
        return f'AdbcConnection({self.dbapi_conn!r})'


def _fetch_table(dbapi_conn, sql_text: str):
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute(sql_text)
        return cursor.fetch_arrow_table()
    finally:
        cursor.close()


class AdbcAdapter(ClientAdapter):
    """ADBC Snowflake driver, consuming Arrow record batches."""
    name = 'adbc'
    supported_shapes = frozenset({ResultShape.TABULAR})

    async def connect(self, profile: ConnectionProfile) -> AdbcConnection:
        db_kwargs = db_kwargs_for(profile)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix='adbc')
        loop = asyncio.get_running_loop()
        try:
            dbapi_conn = await loop.run_in_executor(executor, _dbapi_connect, db_kwargs)
        except ImportError as e:
            executor.shutdown(wait=False)
            raise ConnectError(
                f'Failed to load Snowflake driver: {e}',
                ConnectErrorKind.DRIVER,
                self.name) from None
        except adbc_driver_manager.Error as e:
            executor.shutdown(wait=False)
            raise ConnectError(
                f'Failed to create connection: {e}',
                _connect_kind(e),
                self.name) from None
        except BaseException:
            executor.shutdown(wait=False)
            raise
        logger.debug('[%s] Connected to %s as %s', self.name, profile.host, profile.user)
        return AdbcConnection(dbapi_conn, executor)

    async def execute(self, conn: AdbcConnection, query: QuerySpec) -> NormalizedRowSet:
        loop = asyncio.get_running_loop()
        try:
            table = await loop.run_in_executor(
                conn.executor, _fetch_table, conn.dbapi_conn, query.sql_text)
        except adbc_driver_manager.Error as e:
            raise ExecError(
                str(e),
                _exec_kind(e),
                backend=self.name,
                query=query.sql_text,
                sql_state=getattr(e, 'sqlstate', None)) from None
        return from_arrow_table(table)

    async def close(self, conn: AdbcConnection) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(conn.executor, conn.dbapi_conn.close)
        except adbc_driver_manager.Error as e:
            raise ConnectError(
                f'Failed to close connection: {e}',
                _connect_kind(e),
                self.name,
                phase='close') from None
        finally:
            conn.executor.shutdown(wait=False)
        logger.debug('[%s] Connection closed', self.name)
