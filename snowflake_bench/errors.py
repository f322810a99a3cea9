__all__ = [
    'RunError', 'ConfigError', 'ConfigErrorKind', 'ProfileNotFound',
    'ConnectError', 'ConnectErrorKind', 'ExecError', 'ExecErrorKind']

from enum import Enum
from typing import Optional


class ConfigErrorKind(Enum):
    MISSING_AUTH = 'missing_auth'
    AMBIGUOUS_AUTH = 'ambiguous_auth'
    INVALID_ITERATIONS = 'invalid_iterations'
    PROFILE_NOT_FOUND = 'profile_not_found'
    INVALID_PROFILE = 'invalid_profile'
    CONFIG_FILE = 'config_file'
    UNKNOWN_CLIENT = 'unknown_client'
    INVALID_QUERY = 'invalid_query'


class ConnectErrorKind(Enum):
    NETWORK = 'network'
    AUTHENTICATION = 'authentication'
    MALFORMED_CREDENTIAL = 'malformed_credential'
    DRIVER = 'driver'


class ExecErrorKind(Enum):
    COMPILATION = 'compilation'
    RUNTIME = 'runtime'
    SHAPE_MISMATCH = 'shape_mismatch'
    NETWORK = 'network'
    TIMEOUT = 'timeout'
    AUTHENTICATION = 'authentication'
    CANCELLED = 'cancelled'


# Snowflake session/token failures.
_AUTH_CODES = {'390100', '390112', '390114', '390144', '390318'}


class RunError(Exception):
    """
    Base of every error raised while configuring or running a backend.

    Carries the backend name and the phase (config, connect, execute or close)
    so a failure can be attributed to a stage without re-running.
    """
    phase = 'run'

    def __init__(self, message: str, kind, backend: Optional[str] = None, phase: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.backend = backend
        if phase:
            self.phase = phase

    def __str__(self):
        prefix = f'[{self.backend}] ' if self.backend else ''
        return f'{prefix}{self.phase}: {self.message}'


class ConfigError(RunError):
    phase = 'config'

    def __init__(self, message: str, kind: ConfigErrorKind, backend: Optional[str] = None):
        super().__init__(message, kind, backend)


class ProfileNotFound(ConfigError):
    def __init__(self, name: str):
        super().__init__(
            f'Profile {name!r} not found in config',
            ConfigErrorKind.PROFILE_NOT_FOUND)
        self.name = name


class ConnectError(RunError):
    phase = 'connect'

    def __init__(
            self,
            message: str,
            kind: ConnectErrorKind,
            backend: Optional[str] = None,
            phase: Optional[str] = None):
        super().__init__(message, kind, backend, phase)


class ExecError(RunError):
    phase = 'execute'

    def __init__(
            self,
            message: str,
            kind: ExecErrorKind,
            backend: Optional[str] = None,
            query: Optional[str] = None,
            code: Optional[str] = None,
            sql_state: Optional[str] = None,
            query_id: Optional[str] = None,
            iteration: Optional[int] = None,
            warmup: bool = False):
        super().__init__(message, kind, backend)
        self.query = query
        self.code = code
        self.sql_state = sql_state
        self.query_id = query_id
        self.iteration = iteration
        self.warmup = warmup

    @property
    def retryable(self) -> bool:
        """
        Whether re-running could plausibly succeed (transport trouble rather
        than a rejected credential or bad SQL).
        """
        return self.kind in (ExecErrorKind.NETWORK, ExecErrorKind.TIMEOUT)

    def __str__(self):
        text = super().__str__()
        if self.iteration is not None:
            stage = 'warm-up' if self.warmup else 'iteration'
            text += f' ({stage} {self.iteration + 1})'
        if self.code:
            text += f' [code {self.code}]'
        return text

    @classmethod
    def from_json(cls, json: dict, backend: Optional[str] = None, query: Optional[str] = None):
        """Build an error from a failed Snowflake query-request response."""
        data = json.get('data') or {}
        message = json.get('message')
        if not message:
            message = json.get('error') or 'Query failed'
        code = json.get('code')
        code = str(code) if code is not None else None
        sql_state = data.get('sqlState')
        if code in _AUTH_CODES:
            kind = ExecErrorKind.AUTHENTICATION
        elif (sql_state or '').startswith('42') or code == '001003':
            kind = ExecErrorKind.COMPILATION
        else:
            kind = ExecErrorKind.RUNTIME
        return cls(
            message=message,
            kind=kind,
            backend=backend,
            query=query,
            code=code,
            sql_state=sql_state,
            query_id=data.get('queryId'))
