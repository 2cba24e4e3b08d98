# Patient Management Feature - Router

from typing import Optional

from beanie import PydanticObjectId
from fastapi import APIRouter, Depends, Query, status

from smartlab.core.audit import log_read
from smartlab.dependencies import get_client_ip, get_pagination
from smartlab.features.appointments.models import AppointmentStatus
from smartlab.features.appointments.schemas import AppointmentListResponse
from smartlab.features.appointments.service import AppointmentService
from smartlab.features.auth.models import User
from smartlab.features.auth.permissions import can_manage_patients, require_patient, require_superadmin
from smartlab.features.auth.schemas import UpdateProfileRequest, UserResponse
from smartlab.features.auth.service import AuthService
from smartlab.features.patients.schemas import (
    CreatePatientRequest,
    PatientListResponse,
    UpdatePatientRequest,
)
from smartlab.features.patients.service import PatientService
from smartlab.shared.schemas import MessageResponse, Pagination, page_fields


router = APIRouter(prefix="/patients", tags=["Patients"])


# ============== Patient Self-service Endpoints ==============
# Static paths are declared before /{patient_id} so they are matched first

@router.get("/me", response_model=UserResponse)
async def get_my_record(current_user: User = Depends(require_patient)):
    """Get the calling patient's own record."""
    return AuthService.user_to_response(current_user)


@router.patch("/me", response_model=UserResponse)
async def update_my_record(
    request: UpdateProfileRequest,
    current_user: User = Depends(require_patient),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Update the calling patient's contact, address, emergency contact, insurance and medical lists."""
    patient = await AuthService.update_profile(current_user, request, ip)
    return AuthService.user_to_response(patient)


@router.get("/me/appointments", response_model=AppointmentListResponse)
async def get_my_appointments(
    appointment_status: Optional[AppointmentStatus] = Query(None, alias="status"),
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_patient),
):
    """The calling patient's appointments."""
    appointments, total = await AppointmentService.list_appointments(
        pagination, patient_id=current_user.id, status=appointment_status
    )
    return AppointmentListResponse(
        appointments=[AppointmentService.to_response(a) for a in appointments],
        **page_fields(pagination, total),
    )


# ============== Staff Endpoints ==============

@router.get("", response_model=PatientListResponse)
async def list_patients(
    search: Optional[str] = Query(None, max_length=100),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(can_manage_patients),
):
    """
    List patients.

    - **search**: Matches first name, last name or e-mail (case-insensitive)
    - **isActive**: Filter by active flag
    """
    patients, total = await PatientService.list_patients(pagination, search=search, is_active=is_active)

    return PatientListResponse(
        patients=[AuthService.user_to_response(p) for p in patients],
        **page_fields(pagination, total),
    )


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_patient(
    request: CreatePatientRequest,
    current_user: User = Depends(can_manage_patients),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Create a patient account.

    - **dateOfBirth**, **gender**: Required
    - **password**: Initial password for the patient
    """
    patient = await PatientService.create_patient(request, current_user, ip)
    return AuthService.user_to_response(patient)


@router.get("/{patient_id}", response_model=UserResponse)
async def get_patient(
    patient_id: PydanticObjectId,
    current_user: User = Depends(can_manage_patients),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Get a specific patient."""
    patient = await PatientService.get_patient(patient_id)
    log_read(current_user, "patient", patient_id, ip)
    return AuthService.user_to_response(patient)


@router.put("/{patient_id}", response_model=UserResponse)
async def update_patient(
    patient_id: PydanticObjectId,
    request: UpdatePatientRequest,
    current_user: User = Depends(can_manage_patients),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Update a patient's information."""
    patient = await PatientService.update_patient(patient_id, request, current_user, ip)
    return AuthService.user_to_response(patient)


@router.delete("/{patient_id}", response_model=MessageResponse)
async def delete_patient(
    patient_id: PydanticObjectId,
    current_user: User = Depends(require_superadmin),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Permanently delete a patient account (super-admin only).

    WARNING: This action cannot be undone. Prefer deactivation.
    """
    await PatientService.delete_patient(patient_id, current_user, ip)
    return MessageResponse(message="Patient deleted successfully")


@router.get("/{patient_id}/appointments", response_model=AppointmentListResponse)
async def get_patient_appointments(
    patient_id: PydanticObjectId,
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(can_manage_patients),
):
    """All appointments of one patient."""
    await PatientService.get_patient(patient_id)
    appointments, total = await AppointmentService.list_appointments(pagination, patient_id=patient_id)
    return AppointmentListResponse(
        appointments=[AppointmentService.to_response(a) for a in appointments],
        **page_fields(pagination, total),
    )
