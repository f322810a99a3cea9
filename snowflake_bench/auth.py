"""
Key-pair authentication helpers.

Snowflake accepts an RS256 JWT in place of a password. The token's issuer
embeds the SHA-256 fingerprint of the public half of the user's key, so the
token has to be derived from the PEM material for every new connection.
"""

__all__ = [
    'load_private_key', 'pkcs8_pem', 'public_key_fingerprint',
    'snowflake_account_identifier', 'generate_jwt', 'SnowflakeTokenAuth']

import base64
import hashlib
import logging
import time
from collections import namedtuple

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt, JWTError

from .errors import ConnectError, ConnectErrorKind
from .profile import ConnectionProfile, PrivateKeyAuth

logger = logging.getLogger(__name__)

# Snowflake rejects tokens that live longer than an hour.
JWT_LIFETIME_S = 59 * 60
JWT_ALGORITHM = 'RS256'


def load_private_key(auth: PrivateKeyAuth, backend: str = None) -> rsa.RSAPrivateKey:
    """
    Parse and validate the PEM block of a key-pair profile.

    Fails with ``ConnectError(MALFORMED_CREDENTIAL)`` without touching the
    network. The error message never includes the key material.
    """
    pem = (auth.pem or '').strip()
    if '-----BEGIN' not in pem or 'PRIVATE KEY-----' not in pem:
        raise ConnectError(
            'Private key is not a PEM encoded private key',
            ConnectErrorKind.MALFORMED_CREDENTIAL,
            backend)
    passphrase = auth.passphrase.encode('utf-8') if auth.passphrase else None
    try:
        key = serialization.load_pem_private_key(pem.encode('utf-8'), password=passphrase)
    except TypeError:
        # Encrypted key without passphrase, or a passphrase for a plain key.
        raise ConnectError(
            'Private key passphrase does not match the key encryption',
            ConnectErrorKind.MALFORMED_CREDENTIAL,
            backend) from None
    except (ValueError, UnsupportedAlgorithm):
        raise ConnectError(
            'Private key could not be decoded (bad PEM data or wrong passphrase)',
            ConnectErrorKind.MALFORMED_CREDENTIAL,
            backend) from None
    if not isinstance(key, rsa.RSAPrivateKey):
        raise ConnectError(
            'Private key must be an RSA key',
            ConnectErrorKind.MALFORMED_CREDENTIAL,
            backend)
    return key


def pkcs8_pem(key: rsa.RSAPrivateKey) -> str:
    """Unencrypted PKCS#8 PEM text for ``key``."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()).decode('ascii')


def public_key_fingerprint(key: rsa.RSAPrivateKey) -> str:
    """``SHA256:<base64>`` digest of the DER encoded public key."""
    der = key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo)
    digest = hashlib.sha256(der).digest()
    return 'SHA256:' + base64.b64encode(digest).decode('ascii')


def snowflake_account_identifier(account: str) -> str:
    """
    The account name as it appears in JWT claims.

    Region and cloud suffixes (``xy12345.us-east-2.aws``) are dropped and the
    result is upper-cased.
    """
    account = account.strip()
    if '.global' not in account:
        account = account.split('.', 1)[0]
    else:
        account = account.split('-', 1)[0]
    return account.upper()


def generate_jwt(
        profile: ConnectionProfile,
        now: float = None,
        lifetime_s: int = JWT_LIFETIME_S,
        backend: str = None) -> str:
    """
    Sign a fresh login token for a key-pair profile.

    Tokens are never cached: each connection signs its own so a long run
    can't present an expired one.
    """
    if not isinstance(profile.auth, PrivateKeyAuth):
        raise TypeError('generate_jwt requires a key-pair profile')
    key = load_private_key(profile.auth, backend)
    account = snowflake_account_identifier(profile.account)
    user = profile.user.upper()
    qualified_user = f'{account}.{user}'
    issued_at = int(now if now is not None else time.time())
    claims = {
        'iss': f'{qualified_user}.{public_key_fingerprint(key)}',
        'sub': qualified_user,
        'iat': issued_at,
        'exp': issued_at + lifetime_s}
    try:
        token = jwt.encode(claims, pkcs8_pem(key), algorithm=JWT_ALGORITHM)
    except JWTError as e:
        raise ConnectError(
            f'Failed to sign login token: {type(e).__name__}',
            ConnectErrorKind.MALFORMED_CREDENTIAL,
            backend) from None
    logger.debug('Signed login token for %s (expires %d)', qualified_user, claims['exp'])
    return token


class SnowflakeTokenAuth(namedtuple('SnowflakeTokenAuth', ['token'])):
    """Session token authentication helper for aiohttp requests."""

    def __new__(cls, token: str) -> 'SnowflakeTokenAuth':
        if not token:
            raise ValueError('An empty session token is not allowed')
        return super().__new__(cls, token)

    def encode(self) -> str:
        """Encode credentials."""
        return f'Snowflake Token="{self.token}"'

    def __repr__(self):
        return 'SnowflakeTokenAuth(token=***)'
