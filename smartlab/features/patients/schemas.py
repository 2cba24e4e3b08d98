# Patient Management Feature - Schemas

from datetime import date
from typing import List, Optional

from pydantic import EmailStr, Field

from smartlab.features.auth.models import Gender
from smartlab.features.auth.schemas import (
    EmergencyContactSchema,
    InsuranceInfoSchema,
    PrincipalFields,
    UserResponse,
)
from smartlab.shared.schemas import (
    AddressSchema,
    CamelModel,
    FreeText,
    NAME_PATTERN,
    PHONE_PATTERN,
    PageMeta,
)


# ============== Create Patient ==============

class CreatePatientRequest(PrincipalFields):
    """Request schema for staff creating a patient account."""


# ============== Update Patient ==============

class UpdatePatientRequest(CamelModel):
    """Request schema for staff updating a patient record."""
    first_name: Optional[str] = Field(None, min_length=2, max_length=50, pattern=NAME_PATTERN)
    last_name: Optional[str] = Field(None, min_length=2, max_length=50, pattern=NAME_PATTERN)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    address: Optional[AddressSchema] = None
    emergency_contact: Optional[EmergencyContactSchema] = None
    medical_history: Optional[List[FreeText]] = None
    allergies: Optional[List[FreeText]] = None
    medications: Optional[List[FreeText]] = None
    insurance_info: Optional[InsuranceInfoSchema] = None
    is_active: Optional[bool] = None


# ============== Patient Responses ==============

class PatientListResponse(PageMeta):
    """Response schema for a page of patients."""
    patients: List[UserResponse]
