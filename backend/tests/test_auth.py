"""Tests for session tokens."""

from datetime import UTC, datetime, timedelta

import jwt
import pytest

from charmclaim.auth import (
    JWT_ALGORITHM,
    create_session_token,
    decode_session_token,
    extract_bearer_token,
    get_optional_user_id,
)
from charmclaim.config import settings
from charmclaim.errors import ConfigurationError, Unauthenticated


def test_round_trip():
    token, expires_at = create_session_token("user-42")

    assert decode_session_token(token) == "user-42"
    assert expires_at > datetime.now(UTC)


def test_expired_token():
    token, _ = create_session_token("user-42", ttl=timedelta(seconds=-10))

    with pytest.raises(Unauthenticated, match="expired"):
        decode_session_token(token)


def test_token_signed_with_other_secret():
    token = jwt.encode(
        {"sub": "user-42", "exp": int((datetime.now(UTC) + timedelta(minutes=5)).timestamp())},
        "someone-elses-secret",
        algorithm=JWT_ALGORITHM,
    )

    with pytest.raises(Unauthenticated):
        decode_session_token(token)


def test_token_without_subject():
    token = jwt.encode(
        {"exp": int((datetime.now(UTC) + timedelta(minutes=5)).timestamp())},
        settings.session_secret,
        algorithm=JWT_ALGORITHM,
    )

    with pytest.raises(Unauthenticated):
        decode_session_token(token)


def test_malformed_token():
    with pytest.raises(Unauthenticated):
        decode_session_token("not.a.jwt")


def test_extract_bearer_token():
    assert extract_bearer_token("Bearer abc") == "abc"
    with pytest.raises(Unauthenticated):
        extract_bearer_token("Basic abc")


def test_optional_user_without_header():
    assert get_optional_user_id(None) is None


def test_missing_session_secret(monkeypatch):
    monkeypatch.setattr(settings, "session_secret", None)

    with pytest.raises(ConfigurationError):
        create_session_token("user-42")
