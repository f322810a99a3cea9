__all__ = [
    'PasswordAuth', 'PrivateKeyAuth', 'ConnectionProfile', 'ProfileStore',
    'load_profiles', 'DEFAULT_PROFILE']

import logging
from collections import namedtuple
from pathlib import Path
from typing import Optional, Union

import yaml

from .errors import ConfigError, ConfigErrorKind, ProfileNotFound

logger = logging.getLogger(__name__)

DEFAULT_PROFILE = 'prod'

# Keys dbt profiles carry that have no bearing on a single benchmark run.
_IGNORED_KEYS = {
    'threads', 'connect_retries', 'retry_on_database_errors', 'retry_all',
    'reuse_connections', 'authenticator', 'query_tag'}

_KNOWN_KEYS = {
    'type', 'account', 'user', 'password', 'private_key', 'private_key_path',
    'private_key_passphrase', 'role', 'warehouse', 'database', 'schema',
    'client_session_keep_alive', 'connect_timeout', 'host', 'port', 'protocol'}


class PasswordAuth(namedtuple('PasswordAuth', ['secret'])):
    """Password authentication."""

    def __repr__(self):
        return 'PasswordAuth(secret=***)'


class PrivateKeyAuth(namedtuple('PrivateKeyAuth', ['pem', 'passphrase'])):
    """Key-pair authentication: a PEM private key, optionally encrypted."""

    def __new__(cls, pem: str, passphrase: Optional[str] = None) -> 'PrivateKeyAuth':
        return super().__new__(cls, pem, passphrase)

    def __repr__(self):
        passphrase = '***' if self.passphrase else None
        return f'PrivateKeyAuth(pem=***, passphrase={passphrase})'


Auth = Union[PasswordAuth, PrivateKeyAuth]


_PROFILE_FIELDS = [
    'account', 'user', 'auth', 'name', 'backend_kind', 'role', 'warehouse',
    'database', 'schema', 'keep_alive', 'connect_timeout', 'host', 'port',
    'protocol']


class ConnectionProfile(namedtuple('ConnectionProfile', _PROFILE_FIELDS)):
    """
    Resolved Snowflake connection parameters.

    Read-only once built; adapters borrow it for the duration of a run.
    """
    __slots__ = ()

    def __new__(
            cls,
            account: str,
            user: str,
            auth: Auth,
            name: str = DEFAULT_PROFILE,
            backend_kind: str = 'snowflake',
            role: Optional[str] = None,
            warehouse: Optional[str] = None,
            database: Optional[str] = None,
            schema: Optional[str] = None,
            keep_alive: bool = False,
            connect_timeout: Optional[int] = None,
            host: Optional[str] = None,
            port: Optional[int] = None,
            protocol: str = 'https') -> 'ConnectionProfile':
        if not isinstance(auth, (PasswordAuth, PrivateKeyAuth)):
            raise TypeError(f'Unsupported auth: {type(auth).__name__}')
        if protocol not in ('http', 'https'):
            raise ValueError(f'Unsupported protocol: {protocol!r}')
        return super().__new__(
            cls,
            account=account,
            user=user,
            auth=auth,
            name=name,
            backend_kind=backend_kind,
            role=role,
            warehouse=warehouse,
            database=database,
            schema=schema,
            keep_alive=bool(keep_alive),
            connect_timeout=connect_timeout,
            host=host or f'{account}.snowflakecomputing.com',
            port=port or (443 if protocol == 'https' else 80),
            protocol=protocol)

    @property
    def url(self):
        return f'{self.protocol}://{self.host}:{self.port}'

    def __repr__(self):
        return (f'ConnectionProfile(name={self.name!r}, '
                f'account={self.account!r}, '
                f'user={self.user!r}, '
                f'auth={self.auth!r}, '
                f'role={self.role!r}, '
                f'warehouse={self.warehouse!r}, '
                f'database={self.database!r}, '
                f'schema={self.schema!r}, '
                f'keep_alive={self.keep_alive})')

    @classmethod
    def from_dict(cls, name: str, raw: dict, base_dir: Optional[Path] = None) -> 'ConnectionProfile':
        """
        Validate one raw profile mapping.

        Exactly one authentication method must be present: ``password``, or a
        private key given inline (``private_key``) or as a file
        (``private_key_path``).
        """
        if not isinstance(raw, dict):
            raise ConfigError(
                f'Profile {name!r} must be a mapping',
                ConfigErrorKind.INVALID_PROFILE)
        for key in raw:
            if key in _IGNORED_KEYS:
                logger.debug('Profile %r: ignoring key %r', name, key)
            elif key not in _KNOWN_KEYS:
                logger.warning('Profile %r: unknown key %r', name, key)

        for required in ('account', 'user'):
            if not raw.get(required):
                raise ConfigError(
                    f'Profile {name!r} is missing {required!r}',
                    ConfigErrorKind.INVALID_PROFILE)

        password = raw.get('password')
        private_key = raw.get('private_key')
        private_key_path = raw.get('private_key_path')
        if private_key and private_key_path:
            raise ConfigError(
                f'Profile {name!r} sets both private_key and private_key_path',
                ConfigErrorKind.AMBIGUOUS_AUTH)
        has_key = bool(private_key or private_key_path)
        if password and has_key:
            raise ConfigError(
                f'Profile {name!r} sets both a password and a private key',
                ConfigErrorKind.AMBIGUOUS_AUTH)
        if not password and not has_key:
            raise ConfigError(
                f'Profile {name!r} needs either a password or a private key',
                ConfigErrorKind.MISSING_AUTH)

        if password:
            auth = PasswordAuth(str(password))
        else:
            if private_key_path:
                key_path = Path(private_key_path).expanduser()
                if base_dir is not None and not key_path.is_absolute():
                    key_path = base_dir / key_path
                try:
                    private_key = key_path.read_text()
                except OSError as e:
                    raise ConfigError(
                        f'Profile {name!r}: cannot read private key file {str(key_path)!r}: {e.strerror}',
                        ConfigErrorKind.INVALID_PROFILE) from None
            passphrase = raw.get('private_key_passphrase')
            auth = PrivateKeyAuth(
                str(private_key).strip(),
                str(passphrase) if passphrase else None)

        timeout = raw.get('connect_timeout')
        port = raw.get('port')
        try:
            timeout = int(timeout) if timeout is not None else None
            port = int(port) if port is not None else None
        except (TypeError, ValueError):
            raise ConfigError(
                f'Profile {name!r}: connect_timeout and port must be integers',
                ConfigErrorKind.INVALID_PROFILE) from None

        try:
            return cls(
                name=name,
                backend_kind=raw.get('type', 'snowflake'),
                account=str(raw['account']),
                user=str(raw['user']),
                auth=auth,
                role=raw.get('role'),
                warehouse=raw.get('warehouse'),
                database=raw.get('database'),
                schema=raw.get('schema'),
                keep_alive=raw.get('client_session_keep_alive', False),
                connect_timeout=timeout,
                host=raw.get('host'),
                port=port,
                protocol=raw.get('protocol', 'https'))
        except ValueError as e:
            raise ConfigError(
                f'Profile {name!r}: {e}',
                ConfigErrorKind.INVALID_PROFILE) from None


class ProfileStore:
    """Named raw profiles, validated on resolution."""

    def __init__(self, raw_profiles: dict, base_dir: Optional[Path] = None):
        self._raw = dict(raw_profiles)
        self._base_dir = base_dir

    @property
    def names(self) -> list[str]:
        return sorted(self._raw)

    def resolve(self, name: Optional[str] = None) -> ConnectionProfile:
        name = name or DEFAULT_PROFILE
        try:
            raw = self._raw[name]
        except KeyError:
            raise ProfileNotFound(name) from None
        profile = ConnectionProfile.from_dict(name, raw, self._base_dir)
        logger.debug('Resolved %r', profile)
        return profile


def load_profiles(path) -> ProfileStore:
    """Read a YAML file mapping profile names to connection settings."""
    path = Path(path)
    try:
        content = path.read_text(encoding='utf-8')
    except OSError as e:
        raise ConfigError(
            f'Failed to read config file {str(path)!r}: {e.strerror}',
            ConfigErrorKind.CONFIG_FILE) from None
    try:
        raw = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f'Failed to parse config file {str(path)!r}: {e}',
            ConfigErrorKind.CONFIG_FILE) from None
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(
            f'Config file {str(path)!r} must map profile names to settings',
            ConfigErrorKind.CONFIG_FILE)
    return ProfileStore(raw, base_dir=path.resolve().parent)
