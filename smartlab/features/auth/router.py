# Authentication Feature - Router

from datetime import datetime
from typing import Optional

from beanie import PydanticObjectId
from fastapi import APIRouter, Depends, Query, Request, Response, status

from smartlab.config import settings
from smartlab.core.audit import log_user_logout
from smartlab.core.rate_limit import rate_limit
from smartlab.dependencies import get_client_ip, get_pagination
from smartlab.features.auth.dependencies import TOKEN_COOKIE, get_current_user, get_optional_current_user
from smartlab.features.auth.models import Role, User
from smartlab.features.auth.permissions import require_superadmin
from smartlab.features.auth.schemas import (
    AuthResponse,
    ChangePasswordRequest,
    CreateUserRequest,
    ForgotPasswordRequest,
    LoginRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdateProfileRequest,
    UpdateUserStatusRequest,
    UserListResponse,
    UserResponse,
)
from smartlab.features.auth.service import AuthService
from smartlab.shared.schemas import MessageResponse, Pagination, page_fields


router = APIRouter(prefix="/auth", tags=["Authentication"])


def _set_token_cookie(response: Response, token: str, expires_at: datetime) -> None:
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        max_age=int((expires_at - datetime.utcnow()).total_seconds()),
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
    )


def _auth_response(response: Response, user: User, token: str, expires_at: datetime) -> AuthResponse:
    _set_token_cookie(response, token, expires_at)
    return AuthResponse(
        token=token,
        expires_at=expires_at,
        user=AuthService.user_to_response(user),
    )


# ============== Public Endpoints ==============

@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("auth"))],
)
async def register(
    request: RegisterRequest,
    response: Response,
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Register a new patient account.

    - **firstName**, **lastName**: Letters and spaces, 2-50 chars
    - **email**: Unique e-mail address
    - **password**: Min 8 chars with upper, lower, digit and special character
    - **dateOfBirth**, **gender**: Required for patients
    """
    user, token, expires_at = await AuthService.register(request, request.role, ip)
    return _auth_response(response, user, token, expires_at)


@router.post("/login", response_model=AuthResponse, dependencies=[Depends(rate_limit("auth"))])
async def login(
    request: LoginRequest,
    response: Response,
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Authenticate user and return access token.

    The token is also set as an HTTP-only ``jwt`` cookie.

    - **email**: User's email address
    - **password**: User's password
    """
    user, token, expires_at = await AuthService.login(request, ip)
    return _auth_response(response, user, token, expires_at)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    response: Response,
    current_user: Optional[User] = Depends(get_optional_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Logout current user by overwriting the token cookie.

    Bearer tokens held by the client stay valid until they expire.
    """
    response.set_cookie(TOKEN_COOKIE, "loggedout", max_age=10, httponly=True, secure=settings.COOKIE_SECURE)
    if current_user is not None:
        log_user_logout(current_user, ip)
    return MessageResponse(message="Logged out successfully")


@router.post("/forgot-password", response_model=MessageResponse, dependencies=[Depends(rate_limit("auth"))])
async def forgot_password(
    request: ForgotPasswordRequest,
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Create a password reset token for the account.

    - **email**: User's email address
    """
    await AuthService.forgot_password(request.email, ip)

    return MessageResponse(message="If the email exists, a password reset token has been issued")


@router.patch("/reset-password/{token}", response_model=AuthResponse, dependencies=[Depends(rate_limit("auth"))])
async def reset_password(
    token: str,
    request: ResetPasswordRequest,
    response: Response,
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Reset password using a reset token. Returns a fresh access token.

    - **password**: New password
    - **confirmPassword**: Must match password
    """
    user, access_token, expires_at = await AuthService.reset_password(token, request, ip)
    return _auth_response(response, user, access_token, expires_at)


@router.get("/verify-email/{token}", response_model=MessageResponse)
async def verify_email(token: str):
    """Mark the account's e-mail address as verified."""
    await AuthService.verify_email(token)
    return MessageResponse(message="Email verified successfully")


# ============== Authenticated Endpoints ==============

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """
    Get current authenticated user's information.

    Requires authentication.
    """
    return AuthService.user_to_response(current_user)


@router.patch("/update-profile", response_model=UserResponse)
async def update_profile(
    update_data: UpdateProfileRequest,
    current_user: User = Depends(get_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Update current user's profile information.

    Requires authentication. Patients may update contact, address, emergency
    contact, insurance and medical lists; staff may update contact and department.
    """
    updated_user = await AuthService.update_profile(current_user, update_data, ip)
    return AuthService.user_to_response(updated_user)


@router.patch("/change-password", response_model=AuthResponse)
async def change_password(
    request: ChangePasswordRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Change current user's password.

    Every token issued before the change stops working; the response carries a new one.

    - **currentPassword**: Current password
    - **newPassword**: New password
    - **confirmPassword**: Must match newPassword
    """
    token, expires_at = await AuthService.change_password(current_user, request, ip)
    user = await AuthService.get_user_or_404(current_user.id)
    return _auth_response(response, user, token, expires_at)


# ============== Super-admin Endpoints ==============

@router.get("/users", response_model=UserListResponse)
async def list_users(
    role: Optional[Role] = None,
    is_active: Optional[bool] = Query(None, alias="isActive"),
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_superadmin),
):
    """
    List all users.

    - **role**: Filter by role
    - **isActive**: Filter by active flag
    """
    users, total = await AuthService.list_users(pagination, role=role, is_active=is_active)

    return UserListResponse(
        users=[AuthService.user_to_response(u) for u in users],
        **page_fields(pagination, total),
    )


@router.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    request: CreateUserRequest,
    current_user: User = Depends(require_superadmin),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Create an account of any role.

    - **role**: superadmin, receptionist or patient
    - **department**, **employeeId**: Required for staff
    - **dateOfBirth**, **gender**: Required for patients
    """
    user = await AuthService.create_user(request, request.role, request.is_active, current_user, ip)
    return AuthService.user_to_response(user)


@router.patch("/users/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    user_id: PydanticObjectId,
    request: UpdateUserStatusRequest,
    current_user: User = Depends(require_superadmin),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Activate or deactivate an account."""
    user = await AuthService.set_user_status(user_id, request.is_active, current_user, ip)
    return AuthService.user_to_response(user)


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: PydanticObjectId,
    current_user: User = Depends(require_superadmin),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Permanently delete an account.

    Prefer deactivation; this cannot be undone.
    """
    await AuthService.delete_user(user_id, current_user, ip)
    return MessageResponse(message="User deleted successfully")
