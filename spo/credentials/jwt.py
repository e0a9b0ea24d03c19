"""
Generation of the project signing key and the API tokens derived from it.

The signing key is 32 random bytes in standard base64. Tokens are HS256 JWTs signed with
the decoded key bytes, which is what GoTrue, PostgREST and the other components expect.
"""

import base64
import binascii
import logging
import secrets
import time

import jwt

from spo.core.errors import CredentialGenerationError

logger = logging.getLogger(__name__)

KEY_BYTES = 32
ISSUER = "supabase"
ANON_ROLE = "anon"
SERVICE_ROLE = "service_role"
TOKEN_LIFETIME_SECONDS = 10 * 365 * 24 * 60 * 60


def _random_key() -> str:
    try:
        return base64.b64encode(secrets.token_bytes(KEY_BYTES)).decode("ascii")
    except (OSError, NotImplementedError) as e:
        raise CredentialGenerationError(f"failed to generate random bytes: {e}") from e


def generate_jwt_secret() -> str:
    """Generate a new signing key."""
    return _random_key()


def generate_pg_meta_crypto_key() -> str:
    """Generate the symmetric key postgres-meta uses to encrypt stored connection strings."""
    return _random_key()


def generate_role_key(jwt_secret: str, role: str, now: int | None = None) -> str:
    """
    Sign a long-lived token for a database role.

    Args:
        jwt_secret: Base64 encoded signing key
        role: Role claim, 'anon' or 'service_role'
        now: Issued-at time in seconds since the epoch, defaults to the current time

    Returns:
        The encoded JWT

    Raises:
        CredentialGenerationError: If the signing key is empty or not valid base64
    """
    if not jwt_secret:
        raise CredentialGenerationError("jwt secret cannot be empty")

    try:
        key = base64.b64decode(jwt_secret, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CredentialGenerationError(f"failed to decode jwt secret: {e}") from e

    issued_at = int(time.time()) if now is None else now
    claims = {
        "role": role,
        "iss": ISSUER,
        "iat": issued_at,
        "exp": issued_at + TOKEN_LIFETIME_SECONDS,
    }
    logger.debug(f"Signing {role} token")
    return jwt.encode(claims, key, algorithm="HS256")


def generate_anon_key(jwt_secret: str, now: int | None = None) -> str:
    return generate_role_key(jwt_secret, ANON_ROLE, now)


def generate_service_role_key(jwt_secret: str, now: int | None = None) -> str:
    return generate_role_key(jwt_secret, SERVICE_ROLE, now)
