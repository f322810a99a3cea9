"""
Snowflake over its REST session and query endpoints, via aiohttp.

The same client backs two adapters that differ only in the result payload
they consume: Arrow IPC streams (``rest-arrow``) or JSON rowsets
(``rest-json``).
"""

__all__ = ['RestConnection', 'RestArrowAdapter', 'RestJsonAdapter']

import abc
import asyncio
import base64
import json
import logging
import platform
import sys
import time
import uuid
from typing import Optional

import aiohttp
import pyarrow as pa

from . import __version__
from .adapter import ClientAdapter
from .auth import SnowflakeTokenAuth, generate_jwt
from .errors import ConnectError, ConnectErrorKind, ExecError, ExecErrorKind
from .profile import ConnectionProfile, PrivateKeyAuth
from .query import QuerySpec, ResultShape
from .rowset import NormalizedRowSet, from_arrow_ipc, from_json_rowset

logger = logging.getLogger(__name__)

CLIENT_APP_ID = 'snowflake-bench'

# Query still running server side; poll `getResultUrl`.
_IN_PROGRESS_CODES = {'333333', '333334'}
_POLL_INTERVAL_S = 0.25


class RestConnection:
    """A logged-in REST session."""

    def __init__(
            self,
            http: aiohttp.ClientSession,
            base_url: str,
            auth: SnowflakeTokenAuth,
            session_id: Optional[str] = None):
        self.http = http
        self.base_url = base_url
        self.auth = auth
        self.session_id = session_id
        self.sequence_id = 0

    @property
    def headers(self) -> dict:
        return {
            'Authorization': self.auth.encode(),
            'Accept': 'application/snowflake',
            'Content-Type': 'application/json'}

    def __repr__(self):
        return f'RestConnection(base_url={self.base_url!r}, session_id={self.session_id!r})'


def _new_session(profile: ConnectionProfile, timeout: int = None) -> aiohttp.ClientSession:
    timeout = aiohttp.ClientTimeout(
        total=timeout or 300,
        connect=profile.connect_timeout)
    return aiohttp.ClientSession(
        headers={'User-Agent': f'{CLIENT_APP_ID}/{__version__}'},
        read_bufsize=4 * 1024 * 1024,
        timeout=timeout)


def _login_body(profile: ConnectionProfile, result_format: str, jwt_token: str = None) -> dict:
    data = {
        'CLIENT_APP_ID': CLIENT_APP_ID,
        'CLIENT_APP_VERSION': __version__,
        'ACCOUNT_NAME': profile.account.split('.', 1)[0],
        'LOGIN_NAME': profile.user,
        'CLIENT_ENVIRONMENT': {
            'APPLICATION': CLIENT_APP_ID,
            'OS': platform.system(),
            'OS_VERSION': platform.release(),
            'PYTHON_VERSION': platform.python_version(),
            'PYTHON_RUNTIME': sys.implementation.name},
        'SESSION_PARAMETERS': {
            'CLIENT_SESSION_KEEP_ALIVE': profile.keep_alive,
            'QUERY_RESULT_FORMAT': result_format.upper()}}
    if jwt_token is not None:
        data['AUTHENTICATOR'] = 'SNOWFLAKE_JWT'
        data['TOKEN'] = jwt_token
    else:
        data['PASSWORD'] = profile.auth.secret
    return {'data': data}


def _login_params(profile: ConnectionProfile) -> list[tuple[str, str]]:
    params = [('requestId', str(uuid.uuid4()))]
    for key, value in (
            ('warehouse', profile.warehouse),
            ('databaseName', profile.database),
            ('schemaName', profile.schema),
            ('roleName', profile.role)):
        if value:
            params.append((key, value))
    return params


async def _login(
        session: aiohttp.ClientSession,
        profile: ConnectionProfile,
        result_format: str,
        backend: str) -> tuple[str, Optional[str]]:
    jwt_token = None
    if isinstance(profile.auth, PrivateKeyAuth):
        jwt_token = generate_jwt(profile, backend=backend)
    url = f'{profile.url}/session/v1/login-request'
    body = _login_body(profile, result_format, jwt_token)
    headers = {'Accept': 'application/json', 'Content-Type': 'application/json'}
    try:
        async with session.post(url=url, params=_login_params(profile), json=body, headers=headers) as resp:
            if resp.status in (401, 403):
                raise ConnectError(
                    f'Login rejected with HTTP {resp.status}',
                    ConnectErrorKind.AUTHENTICATION,
                    backend)
            if resp.status != 200:
                raise ConnectError(
                    f'Login failed with HTTP {resp.status}',
                    ConnectErrorKind.NETWORK,
                    backend)
            result = await resp.json(content_type=None)
    except asyncio.TimeoutError:
        raise ConnectError(
            f'Timed out connecting to {profile.host}',
            ConnectErrorKind.NETWORK,
            backend) from None
    except aiohttp.ClientError as e:
        raise ConnectError(
            f'Failed to connect to {profile.host}: {e}',
            ConnectErrorKind.NETWORK,
            backend) from None
    except ValueError:
        raise ConnectError(
            'Login response is not valid JSON',
            ConnectErrorKind.NETWORK,
            backend) from None
    if not result.get('success'):
        message = result.get('message') or 'Login failed'
        code = result.get('code')
        if code:
            message = f'{message} [code {code}]'
        raise ConnectError(message, ConnectErrorKind.AUTHENTICATION, backend)
    data = result.get('data') or {}
    token = data.get('token')
    if not token:
        raise ConnectError(
            'Login response carried no session token',
            ConnectErrorKind.AUTHENTICATION,
            backend)
    session_id = data.get('sessionId')
    return token, str(session_id) if session_id is not None else None


def _chunk_headers(data: dict) -> dict:
    headers = data.get('chunkHeaders')
    if headers:
        return dict(headers)
    qrmk = data.get('qrmk')
    if qrmk:
        return {
            'x-amz-server-side-encryption-customer-algorithm': 'AES256',
            'x-amz-server-side-encryption-customer-key': qrmk}
    return {}


async def _download_chunks(conn: RestConnection, data: dict) -> list[bytes]:
    """Fetch the result chunks the server parked in cloud storage, in order."""
    chunks = data.get('chunks') or []
    if not chunks:
        return []
    headers = _chunk_headers(data)
    payloads = []
    for chunk in chunks:
        async with conn.http.get(url=chunk['url'], headers=headers) as resp:
            if resp.status != 200:
                raise aiohttp.ClientResponseError(
                    resp.request_info,
                    resp.history,
                    status=resp.status,
                    message='Failed to download result chunk')
            payloads.append(await resp.read())
    logger.debug('Downloaded %d result chunks', len(payloads))
    return payloads


async def _query(
        conn: RestConnection,
        query: QuerySpec,
        backend: str) -> tuple[dict, int]:
    """Submit ``query`` and return the response's ``data`` and the body size."""
    conn.sequence_id += 1
    url = f'{conn.base_url}/queries/v1/query-request'
    params = [('requestId', str(uuid.uuid4()))]
    body = {
        'sqlText': query.sql_text,
        'asyncExec': False,
        'sequenceId': conn.sequence_id,
        'querySubmissionTime': int(time.time() * 1000),
        'isInternal': False}
    async with conn.http.post(url=url, params=params, json=body, headers=conn.headers) as resp:
        raw = await resp.read()
        status = resp.status
    byte_count = len(raw)
    result = _decode_response(raw, status, query, backend)
    while str(result.get('code')) in _IN_PROGRESS_CODES:
        result_url = (result.get('data') or {}).get('getResultUrl')
        if not result_url:
            break
        await asyncio.sleep(_POLL_INTERVAL_S)
        async with conn.http.get(url=f'{conn.base_url}{result_url}', headers=conn.headers) as resp:
            raw = await resp.read()
            status = resp.status
        byte_count += len(raw)
        result = _decode_response(raw, status, query, backend)
    if not result.get('success'):
        raise ExecError.from_json(result, backend=backend, query=query.sql_text)
    return result.get('data') or {}, byte_count


def _decode_response(raw: bytes, status: int, query: QuerySpec, backend: str) -> dict:
    if status in (401, 403):
        raise ExecError(
            f'Session rejected with HTTP {status}',
            ExecErrorKind.AUTHENTICATION,
            backend=backend,
            query=query.sql_text)
    if status != 200:
        raise ExecError(
            f'Query request failed with HTTP {status}',
            ExecErrorKind.NETWORK,
            backend=backend,
            query=query.sql_text)
    try:
        return json.loads(raw)
    except ValueError:
        raise ExecError(
            'Query response is not valid JSON',
            ExecErrorKind.RUNTIME,
            backend=backend,
            query=query.sql_text) from None


class _RestAdapter(ClientAdapter):
    result_format: str = None

    def __init__(self, timeout: int = None):
        """
        :param timeout: The total timeout in seconds for each HTTP request,
            defaults to None (300 seconds).
        """
        self.timeout = timeout

    async def connect(self, profile: ConnectionProfile) -> RestConnection:
        http = _new_session(profile, self.timeout)
        try:
            token, session_id = await _login(http, profile, self.result_format, self.name)
        except BaseException:
            await http.close()
            raise
        logger.debug('[%s] Logged in to %s as %s', self.name, profile.host, profile.user)
        return RestConnection(http, profile.url, SnowflakeTokenAuth(token), session_id)

    async def execute(self, conn: RestConnection, query: QuerySpec) -> NormalizedRowSet:
        try:
            data, byte_count = await _query(conn, query, self.name)
            chunks = await _download_chunks(conn, data)
        except asyncio.TimeoutError:
            raise ExecError(
                'Query timed out',
                ExecErrorKind.TIMEOUT,
                backend=self.name,
                query=query.sql_text) from None
        except aiohttp.ClientError as e:
            raise ExecError(
                f'Transport failure: {e}',
                ExecErrorKind.NETWORK,
                backend=self.name,
                query=query.sql_text) from None
        return self._normalize(data, chunks, byte_count, query)

    @abc.abstractmethod
    def _normalize(
            self,
            data: dict,
            chunks: list[bytes],
            byte_count: int,
            query: QuerySpec) -> NormalizedRowSet:
        """Turn the response data and downloaded chunks into a row-set."""

    def _has_rows(self, data: dict) -> bool:
        return bool(data.get('rowset') or data.get('rowsetBase64') or data.get('chunks'))

    def _format_mismatch(self, data: dict, query: QuerySpec, hint: str) -> ExecError:
        return ExecError(
            f'Expected {self.result_format.upper()} result but got '
            f'{str(data.get("queryResultFormat")).upper()}. {hint}',
            ExecErrorKind.SHAPE_MISMATCH,
            backend=self.name,
            query=query.sql_text,
            query_id=data.get('queryId'))

    async def close(self, conn: RestConnection) -> None:
        url = f'{conn.base_url}/session'
        params = [('delete', 'true'), ('requestId', str(uuid.uuid4()))]
        try:
            async with conn.http.post(url=url, params=params, headers=conn.headers) as resp:
                if resp.status != 200:
                    raise ConnectError(
                        f'Logout failed with HTTP {resp.status}',
                        ConnectErrorKind.NETWORK,
                        self.name,
                        phase='close')
        except (asyncio.TimeoutError, aiohttp.ClientError) as e:
            raise ConnectError(
                f'Logout failed: {e!r}',
                ConnectErrorKind.NETWORK,
                self.name,
                phase='close') from None
        finally:
            await conn.http.close()
        logger.debug('[%s] Logged out', self.name)


class RestArrowAdapter(_RestAdapter):
    """REST client consuming Arrow IPC result payloads."""
    name = 'rest-arrow'
    result_format = 'arrow'
    supported_shapes = frozenset({ResultShape.TABULAR})

    def _normalize(self, data, chunks, byte_count, query):
        column_names = [col['name'] for col in data.get('rowtype') or []]
        if not self._has_rows(data):
            return NormalizedRowSet(column_names, (), byte_count)
        if data.get('queryResultFormat') != 'arrow':
            raise self._format_mismatch(
                data, query,
                'Use rest-json for JSON results, or run a SELECT query.')
        payloads = []
        if data.get('rowsetBase64'):
            payloads.append(base64.b64decode(data['rowsetBase64']))
        payloads.extend(chunks)
        try:
            rowset = from_arrow_ipc(payloads, column_names)
        except (pa.ArrowException, ValueError) as e:
            raise ExecError(
                f'Failed to decode Arrow payload: {e}',
                ExecErrorKind.RUNTIME,
                backend=self.name,
                query=query.sql_text,
                query_id=data.get('queryId')) from None
        rowset.byte_count = byte_count + sum(len(chunk) for chunk in chunks)
        return rowset


class RestJsonAdapter(_RestAdapter):
    """REST client consuming JSON result payloads."""
    name = 'rest-json'
    result_format = 'json'
    supported_shapes = frozenset({ResultShape.STATUS})

    def _normalize(self, data, chunks, byte_count, query):
        rowtype = data.get('rowtype') or []
        if not self._has_rows(data):
            return NormalizedRowSet([col['name'] for col in rowtype], (), byte_count)
        if data.get('queryResultFormat') != 'json':
            raise self._format_mismatch(
                data, query,
                'Use rest-arrow for Arrow results, or run a SHOW/DESCRIBE query.')
        rows = list(data.get('rowset') or [])
        try:
            for chunk in chunks:
                # Chunks hold the rows without the enclosing brackets.
                rows.extend(json.loads(b'[' + chunk + b']'))
        except ValueError:
            raise ExecError(
                'Failed to decode JSON result chunk',
                ExecErrorKind.RUNTIME,
                backend=self.name,
                query=query.sql_text,
                query_id=data.get('queryId')) from None
        byte_count += sum(len(chunk) for chunk in chunks)
        return from_json_rowset(rowtype, rows, byte_count)
