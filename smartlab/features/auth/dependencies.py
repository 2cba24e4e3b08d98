from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from smartlab.core.security import TokenError, decode_access_token
from smartlab.features.auth.models import User
from smartlab.features.auth.service import AuthService
from smartlab.shared.exceptions import CredentialsException


# HTTP Bearer security scheme; the cookie fallback means a missing header is not an error here
security = HTTPBearer(auto_error=False)

TOKEN_COOKIE = "jwt"


def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    cookie = request.cookies.get(TOKEN_COOKIE)
    if cookie and cookie != "loggedout":
        return cookie
    return None


async def _resolve_user(token: Optional[str]) -> User:
    if not token:
        raise CredentialsException("You are not logged in. Please log in to get access.")

    try:
        payload = decode_access_token(token)
    except TokenError as e:
        if e.kind == "EXPIRED_TOKEN":
            raise CredentialsException("Your token has expired. Please log in again.")
        raise CredentialsException("Invalid token. Please log in again.")

    user = await AuthService.get_user_by_id(payload.sub)
    if user is None:
        raise CredentialsException("The user belonging to this token no longer exists.")

    if user.changed_password_after(payload.iat):
        raise CredentialsException("User recently changed password. Please log in again.")

    if not user.is_active:
        raise CredentialsException("Your account has been deactivated. Please contact support.")

    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> User:
    """
    Dependency to get current authenticated user.

    The token comes from the ``Authorization: Bearer`` header, else from the
    ``jwt`` cookie. The principal is rejected if it no longer exists, if its
    password changed after the token was issued, or if it is deactivated.

    Raises:
        CredentialsException: If any of the checks fail
    """
    user = await _resolve_user(_extract_token(request, credentials))
    request.state.user = user
    return user


async def get_optional_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[User]:
    """
    Dependency to get current user if a valid token is provided.

    Same checks as ``get_current_user``; any failure yields ``None`` instead of an error.
    """
    try:
        user = await _resolve_user(_extract_token(request, credentials))
    except CredentialsException:
        return None
    request.state.user = user
    return user
