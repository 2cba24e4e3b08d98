"""Password hashing, access tokens and password-change invalidation."""

from datetime import date, datetime, timedelta

import pytest
from jose import jwt

from smartlab.config import settings
from smartlab.core.security import (
    ExpiredTokenError,
    TokenError,
    create_access_token,
    decode_access_token,
    get_password_hash,
    hash_token,
    timestamp_millis,
    truncate_to_millis,
    verify_password,
)
from smartlab.features.auth.models import Patient


def _patient(**fields) -> Patient:
    return Patient(
        first_name="Alice",
        last_name="Patient",
        email="alice@example.com",
        password_hash="x",
        date_of_birth=date(1990, 4, 12),
        gender="Female",
        **fields,
    )


def test_password_hash_round_trip():
    """A hash verifies its own password and nothing else."""
    hashed = get_password_hash("Str0ng!Pass")

    assert hashed != "Str0ng!Pass"
    assert verify_password("Str0ng!Pass", hashed)
    assert not verify_password("str0ng!pass", hashed)


def test_token_carries_subject_and_millisecond_iat():
    issued = datetime.utcnow() - timedelta(minutes=1)
    token, expires_at = create_access_token("abc123", issued_at=issued)

    payload = decode_access_token(token)
    assert payload.sub == "abc123"
    assert payload.iat == pytest.approx(timestamp_millis(truncate_to_millis(issued)))
    assert expires_at == truncate_to_millis(issued) + timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)


def test_expired_token_is_rejected():
    token, _ = create_access_token(
        "abc123",
        expires_delta=timedelta(seconds=1),
        issued_at=datetime.utcnow() - timedelta(minutes=5),
    )

    with pytest.raises(ExpiredTokenError) as exc:
        decode_access_token(token)
    assert exc.value.kind == "EXPIRED_TOKEN"


def test_tampered_token_is_rejected():
    token, _ = create_access_token("abc123")
    forged = jwt.encode({"sub": "abc123", "iat": 1, "exp": 9999999999}, "wrong-secret", algorithm="HS256")

    with pytest.raises(TokenError) as exc:
        decode_access_token(forged)
    assert exc.value.kind == "INVALID_TOKEN"

    with pytest.raises(TokenError):
        decode_access_token(token[:-4] + "abcd")


def test_token_without_subject_is_rejected():
    token = jwt.encode({"iat": 1, "exp": 9999999999}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    with pytest.raises(TokenError):
        decode_access_token(token)


def test_changed_password_after():
    """Tokens issued at or before the change are stale; later ones are not."""
    changed_at = datetime(2024, 5, 1, 12, 0, 0, 500000)
    user = _patient(password_changed_at=changed_at)

    assert user.changed_password_after(timestamp_millis(changed_at - timedelta(seconds=1)))
    assert user.changed_password_after(timestamp_millis(changed_at))
    assert not user.changed_password_after(timestamp_millis(changed_at + timedelta(milliseconds=1)))


def test_never_changed_password_accepts_any_token():
    assert not _patient().changed_password_after(0.0)


def test_one_time_tokens_are_stored_hashed():
    digest = hash_token("reset-me")

    assert digest != "reset-me"
    assert len(digest) == 64
    assert digest == hash_token("reset-me")
