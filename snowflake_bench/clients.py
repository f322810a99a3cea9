__all__ = ['ADAPTERS', 'make_adapter']

from .adapter import ClientAdapter
from .adbc_client import AdbcAdapter
from .errors import ConfigError, ConfigErrorKind
from .rest_client import RestArrowAdapter, RestJsonAdapter

ADAPTERS = {
    cls.name: cls
    for cls in (AdbcAdapter, RestArrowAdapter, RestJsonAdapter)}


def make_adapter(name: str) -> ClientAdapter:
    try:
        cls = ADAPTERS[name]
    except KeyError:
        raise ConfigError(
            f'Unknown client: {name}. Supported clients: {", ".join(ADAPTERS)}',
            ConfigErrorKind.UNKNOWN_CLIENT) from None
    return cls()
