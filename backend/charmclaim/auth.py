"""
Session tokens identifying the caller of claim endpoints.

Tokens are HS256 JWTs signed with ``SESSION_SECRET``; the ``sub`` claim is
the opaque user id. Issuing sessions for real users belongs to the identity
provider in front of this service.
"""

from datetime import UTC, datetime, timedelta

import jwt
import jwt.exceptions
from fastapi import Header

from charmclaim.config import settings
from charmclaim.errors import ConfigurationError, Unauthenticated

JWT_ALGORITHM = "HS256"
JWT_SUBJECT_CLAIM = "sub"
JWT_ISSUED_AT_CLAIM = "iat"
JWT_EXPIRATION_TIME_CLAIM = "exp"


def _session_secret() -> str:
    if not settings.session_secret:
        raise ConfigurationError("SESSION_SECRET is not configured")
    return settings.session_secret


def create_session_token(user_id: str, ttl: timedelta | None = None) -> tuple[str, datetime]:
    """Return a signed token for ``user_id`` and its expiry time."""
    issued_at = datetime.now(UTC)
    expires_at = issued_at + (ttl or timedelta(minutes=settings.session_ttl_minutes))
    payload = {
        JWT_SUBJECT_CLAIM: user_id,
        JWT_ISSUED_AT_CLAIM: int(issued_at.timestamp()),
        JWT_EXPIRATION_TIME_CLAIM: int(expires_at.timestamp()),
    }
    token = jwt.encode(payload, _session_secret(), algorithm=JWT_ALGORITHM)
    return token, expires_at


def decode_session_token(token: str) -> str:
    """Return the user id carried by ``token``, or raise Unauthenticated."""
    try:
        payload = jwt.decode(
            token,
            _session_secret(),
            algorithms=[JWT_ALGORITHM],
            options={"require": [JWT_SUBJECT_CLAIM, JWT_EXPIRATION_TIME_CLAIM]},
        )
    except jwt.exceptions.ExpiredSignatureError:
        raise Unauthenticated("Session expired")
    except jwt.exceptions.PyJWTError:
        raise Unauthenticated("Invalid session token")

    user_id = payload.get(JWT_SUBJECT_CLAIM)
    if not isinstance(user_id, str) or not user_id:
        raise Unauthenticated("Invalid session token")
    return user_id


def extract_bearer_token(authorization: str) -> str:
    """Extract token from Authorization header."""
    if not authorization.startswith("Bearer "):
        raise Unauthenticated("Invalid authorization header format")
    return authorization[7:].strip()


def get_current_user_id(authorization: str | None = Header(None)) -> str:
    """Dependency: the authenticated caller. Missing credentials are rejected."""
    if not authorization:
        raise Unauthenticated()
    return decode_session_token(extract_bearer_token(authorization))


def get_optional_user_id(authorization: str | None = Header(None)) -> str | None:
    """Dependency: the caller if credentials were sent. Bad credentials are still rejected."""
    if not authorization:
        return None
    return decode_session_token(extract_bearer_token(authorization))
