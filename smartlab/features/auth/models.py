# Authentication Feature - Models

from datetime import date, datetime, timedelta
from enum import Enum
from typing import List, Optional

from beanie import Document, Indexed
from pydantic import BaseModel, EmailStr, Field, field_validator
from pymongo import IndexModel

from smartlab.shared.models import Address, TimestampMixin


class Role(str, Enum):
    SUPERADMIN = "superadmin"
    RECEPTIONIST = "receptionist"
    PATIENT = "patient"


STAFF_ROLES = frozenset({Role.SUPERADMIN, Role.RECEPTIONIST})


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class EmergencyContact(BaseModel):
    name: Optional[str] = None
    relationship: Optional[str] = None
    phone: Optional[str] = None


class InsuranceInfo(BaseModel):
    provider: Optional[str] = None
    policy_number: Optional[str] = None
    group_number: Optional[str] = None


class User(Document, TimestampMixin):
    """
    Principal document model.

    Stored in a single ``users`` collection; the concrete variant
    (SuperAdmin, Receptionist or Patient) is restored from Beanie's class tag,
    so role-specific fields exist only on the variant that owns them.
    """

    first_name: str = Field(..., max_length=50)
    last_name: str = Field(..., max_length=50)
    email: Indexed(EmailStr, unique=True)
    password_hash: str
    phone: Optional[str] = None
    role: Role

    # Account state
    is_active: bool = True
    is_email_verified: bool = False
    last_login: Optional[datetime] = None
    password_changed_at: Optional[datetime] = None

    # One-time tokens, stored as sha256 digests
    password_reset_token: Optional[str] = None
    password_reset_expires: Optional[datetime] = None
    email_verification_token: Optional[str] = None
    email_verification_expires: Optional[datetime] = None

    @field_validator("email", mode="before")
    @classmethod
    def lowercase_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_superadmin(self) -> bool:
        return self.role == Role.SUPERADMIN

    def changed_password_after(self, issued_at: float) -> bool:
        """
        True if the password changed at or after the ``iat`` of a token.

        Both sides are compared in whole milliseconds; a token minted in the
        same millisecond as the change counts as older than it.
        """
        if self.password_changed_at is None:
            return False
        changed_ms = (self.password_changed_at - datetime(1970, 1, 1)) // timedelta(milliseconds=1)
        return changed_ms >= round(issued_at * 1000)

    class Settings:
        name = "users"
        is_root = True
        use_state_management = True
        indexes = [
            IndexModel([("role", 1)]),
            IndexModel([("is_active", 1)]),
            IndexModel([("employee_id", 1)], unique=True, sparse=True),
        ]


class Staff(User):
    """Fields shared by super-admins and receptionists."""

    department: str = Field(..., max_length=100)
    employee_id: str = Field(..., max_length=20)


class SuperAdmin(Staff):
    role: Role = Role.SUPERADMIN


class Receptionist(Staff):
    role: Role = Role.RECEPTIONIST


class Patient(User):
    role: Role = Role.PATIENT

    date_of_birth: date
    gender: Gender
    address: Optional[Address] = None
    emergency_contact: Optional[EmergencyContact] = None
    medical_history: List[str] = Field(default_factory=list)
    allergies: List[str] = Field(default_factory=list)
    medications: List[str] = Field(default_factory=list)
    insurance_info: Optional[InsuranceInfo] = None

    @property
    def age(self) -> int:
        today = date.today()
        years = today.year - self.date_of_birth.year
        if (today.month, today.day) < (self.date_of_birth.month, self.date_of_birth.day):
            years -= 1
        return years


PRINCIPAL_CLASSES = {
    Role.SUPERADMIN: SuperAdmin,
    Role.RECEPTIONIST: Receptionist,
    Role.PATIENT: Patient,
}
