from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple
import hashlib
import math
import secrets

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from starlette.concurrency import run_in_threadpool

from smartlab.config import settings


# Password hashing context
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


# ============== Passwords ==============

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


async def hash_password_async(password: str) -> str:
    """Hash a password on the worker pool so the event loop keeps serving."""
    return await run_in_threadpool(get_password_hash, password)


async def verify_password_async(plain_password: str, hashed_password: str) -> bool:
    return await run_in_threadpool(verify_password, plain_password, hashed_password)


# ============== Access tokens ==============

class TokenError(Exception):
    """Raised when a bearer token cannot be accepted."""

    kind = "INVALID_TOKEN"


class ExpiredTokenError(TokenError):
    kind = "EXPIRED_TOKEN"


@dataclass(frozen=True)
class TokenPayload:
    sub: str
    iat: float


def truncate_to_millis(moment: datetime) -> datetime:
    """MongoDB keeps millisecond precision; drop the rest so stored and in-memory values agree."""
    return moment.replace(microsecond=(moment.microsecond // 1000) * 1000)


def timestamp_millis(moment: datetime) -> float:
    """Seconds since epoch for a naive UTC datetime, floored to the millisecond."""
    return ((moment - datetime(1970, 1, 1)) // timedelta(milliseconds=1)) / 1000


def create_access_token(
    subject: str,
    expires_delta: Optional[timedelta] = None,
    issued_at: Optional[datetime] = None,
) -> Tuple[str, datetime]:
    """
    Create a signed JWT access token.

    The ``iat`` claim keeps millisecond precision so that a token issued right
    after a password change is distinguishable from one issued right before it.

    Returns:
        Tuple of (token, expiry instant in UTC)
    """
    issued_at = truncate_to_millis(issued_at or datetime.utcnow())
    expire = issued_at + (expires_delta or timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS))

    to_encode = {
        "sub": str(subject),
        "iat": timestamp_millis(issued_at),
        "exp": math.floor(timestamp_millis(expire)),
    }
    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    return encoded_jwt, expire


def decode_access_token(token: str) -> TokenPayload:
    """
    Decode and verify a JWT access token.

    Raises:
        ExpiredTokenError: If the token is past its ``exp``
        TokenError: On a bad signature or malformed claims
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        raise ExpiredTokenError(str(e)) from e
    except JWTError as e:
        raise TokenError(str(e)) from e

    sub = payload.get("sub")
    iat = payload.get("iat")
    if not sub or iat is None:
        raise TokenError("Token is missing required claims")

    return TokenPayload(sub=sub, iat=float(iat))


# ============== One-time tokens ==============

def generate_reset_token() -> str:
    """Generate a secure random token for password reset or e-mail verification."""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """One-time tokens are stored as their sha256 digest."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
