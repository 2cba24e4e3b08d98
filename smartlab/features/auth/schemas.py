# Authentication Feature - Schemas

from datetime import date, datetime
from typing import List, Optional

from pydantic import EmailStr, Field

from smartlab.features.auth.models import Gender, Role
from smartlab.shared.schemas import (
    AddressSchema,
    AddressView,
    CamelModel,
    FreeText,
    NAME_PATTERN,
    PHONE_PATTERN,
    PageMeta,
    StrongPassword,
)


# ============== Value objects ==============

class EmergencyContactSchema(CamelModel):
    name: Optional[FreeText] = Field(None, max_length=100)
    relationship: Optional[FreeText] = Field(None, max_length=50)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)


class InsuranceInfoSchema(CamelModel):
    provider: Optional[FreeText] = Field(None, max_length=100)
    policy_number: Optional[str] = Field(None, max_length=50)
    group_number: Optional[str] = Field(None, max_length=50)


class EmergencyContactView(CamelModel):
    name: Optional[str] = None
    relationship: Optional[str] = None
    phone: Optional[str] = None


class InsuranceInfoView(CamelModel):
    provider: Optional[str] = None
    policy_number: Optional[str] = None
    group_number: Optional[str] = None


# ============== Registration / user creation ==============

class PrincipalFields(CamelModel):
    """Fields accepted when creating any principal; role-specific ones are checked per role."""
    first_name: str = Field(..., min_length=2, max_length=50, pattern=NAME_PATTERN)
    last_name: str = Field(..., min_length=2, max_length=50, pattern=NAME_PATTERN)
    email: EmailStr
    password: StrongPassword = Field(..., max_length=72)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)

    # Patient
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    address: Optional[AddressSchema] = None
    emergency_contact: Optional[EmergencyContactSchema] = None
    medical_history: Optional[List[FreeText]] = None
    allergies: Optional[List[FreeText]] = None
    medications: Optional[List[FreeText]] = None
    insurance_info: Optional[InsuranceInfoSchema] = None

    # Staff
    department: Optional[FreeText] = Field(None, max_length=100)
    employee_id: Optional[str] = Field(None, min_length=1, max_length=20)


class RegisterRequest(PrincipalFields):
    """Public self-registration. Anything but a patient account needs a super-admin."""
    role: Optional[Role] = None


class CreateUserRequest(PrincipalFields):
    """Super-admin account creation for any role."""
    role: Role
    is_active: bool = True


class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


# ============== Profile & password ==============

class UpdateProfileRequest(CamelModel):
    """Self-service profile update. Which fields apply depends on the caller's role."""
    first_name: Optional[str] = Field(None, min_length=2, max_length=50, pattern=NAME_PATTERN)
    last_name: Optional[str] = Field(None, min_length=2, max_length=50, pattern=NAME_PATTERN)
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)

    # Patient
    address: Optional[AddressSchema] = None
    emergency_contact: Optional[EmergencyContactSchema] = None
    insurance_info: Optional[InsuranceInfoSchema] = None
    medical_history: Optional[List[FreeText]] = None
    allergies: Optional[List[FreeText]] = None
    medications: Optional[List[FreeText]] = None

    # Staff
    department: Optional[FreeText] = Field(None, max_length=100)


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: StrongPassword = Field(..., max_length=72)
    confirm_password: str = Field(..., min_length=1, max_length=72)


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    password: StrongPassword = Field(..., max_length=72)
    confirm_password: str = Field(..., min_length=1, max_length=72)


class UpdateUserStatusRequest(CamelModel):
    is_active: bool


# ============== Responses ==============

class UserResponse(CamelModel):
    """Public view of a principal. The password hash and one-time tokens never leave the server."""
    id: str
    first_name: str
    last_name: str
    full_name: str
    email: str
    phone: Optional[str] = None
    role: Role
    is_active: bool
    is_email_verified: bool
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    # Patient
    date_of_birth: Optional[date] = None
    age: Optional[int] = None
    gender: Optional[Gender] = None
    address: Optional[AddressView] = None
    emergency_contact: Optional[EmergencyContactView] = None
    medical_history: Optional[List[str]] = None
    allergies: Optional[List[str]] = None
    medications: Optional[List[str]] = None
    insurance_info: Optional[InsuranceInfoView] = None

    # Staff
    department: Optional[str] = None
    employee_id: Optional[str] = None


class AuthResponse(CamelModel):
    status: str = "success"
    token: str
    expires_at: datetime
    user: UserResponse


class UserListResponse(PageMeta):
    users: List[UserResponse]
