# Appointments Feature - Router

from datetime import date
from typing import Optional

from beanie import PydanticObjectId
from fastapi import APIRouter, Depends, Query, status

from smartlab.core.audit import log_read
from smartlab.core.rate_limit import rate_limit
from smartlab.dependencies import get_client_ip, get_pagination
from smartlab.features.appointments.models import AppointmentStatus
from smartlab.features.appointments.schemas import (
    AppointmentListResponse,
    AppointmentResponse,
    ApproveAppointmentRequest,
    ApproveHomeCollectionRequest,
    CreateAppointmentRequest,
    HomeCollectionRequest,
    RejectAppointmentRequest,
    UpdateAppointmentRequest,
    UpdateAppointmentStatusRequest,
)
from smartlab.features.appointments.service import AppointmentService
from smartlab.features.auth.dependencies import get_current_user
from smartlab.features.auth.models import User
from smartlab.features.auth.permissions import can_approve, require_patient, require_staff
from smartlab.shared.schemas import MessageResponse, Pagination, page_fields


router = APIRouter(prefix="/appointments", tags=["Appointments"])


def _page(appointments, total: int, pagination: Pagination) -> AppointmentListResponse:
    return AppointmentListResponse(
        appointments=[AppointmentService.to_response(a) for a in appointments],
        **page_fields(pagination, total),
    )


# ============== Lists ==============

@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    patient_id: Optional[PydanticObjectId] = Query(None, alias="patientId"),
    receptionist_id: Optional[PydanticObjectId] = Query(None, alias="receptionistId"),
    appointment_status: Optional[AppointmentStatus] = Query(None, alias="status"),
    on_date: Optional[date] = Query(None, alias="date"),
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_staff),
):
    """
    List all appointments (staff only).

    - **patientId**, **receptionistId**: Filter by principal
    - **status**: Filter by status
    - **date**: Appointments on this day (YYYY-MM-DD)
    """
    appointments, total = await AppointmentService.list_appointments(
        pagination,
        patient_id=patient_id,
        receptionist_id=receptionist_id,
        status=appointment_status,
        on_date=on_date,
    )
    return _page(appointments, total, pagination)


@router.get("/my", response_model=AppointmentListResponse)
async def list_my_appointments(
    appointment_status: Optional[AppointmentStatus] = Query(None, alias="status"),
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(get_current_user),
):
    """
    Appointments relevant to the caller.

    Patients get their bookings; receptionists the appointments they approved or rejected.
    """
    appointments, total = await AppointmentService.list_mine(current_user, pagination, appointment_status)
    return _page(appointments, total, pagination)


@router.get("/pending", response_model=AppointmentListResponse)
async def list_pending_appointments(
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_staff),
):
    """Appointments awaiting approval, earliest first."""
    appointments, total = await AppointmentService.list_pending(pagination)
    return _page(appointments, total, pagination)


@router.get("/upcoming/{receptionist_id}", response_model=AppointmentListResponse)
async def list_upcoming_appointments(
    receptionist_id: PydanticObjectId,
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_staff),
):
    """Approved appointments from today on for one receptionist."""
    appointments, total = await AppointmentService.list_upcoming(receptionist_id, pagination)
    return _page(appointments, total, pagination)


# ============== Single appointment ==============

@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: PydanticObjectId,
    current_user: User = Depends(get_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Get one appointment.

    Patients can only read their own appointments.
    """
    appointment = await AppointmentService.get_for(appointment_id, current_user)
    log_read(current_user, "appointment", appointment_id, ip)
    return AppointmentService.to_response(appointment)


@router.post(
    "",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("patient"))],
)
async def create_appointment(
    request: CreateAppointmentRequest,
    current_user: User = Depends(require_patient),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Book an appointment (patients only, for themselves).

    - **appointmentDate**: Day of the appointment
    - **appointmentTime**: HH:MM
    - **type**: Blood Test, Urine Test, X-Ray, CT Scan, MRI, Ultrasound or Other
    - **reason**: 10-500 characters
    """
    appointment = await AppointmentService.create_appointment(request, current_user, ip)
    return AppointmentService.to_response(appointment)


@router.put("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: PydanticObjectId,
    request: UpdateAppointmentRequest,
    current_user: User = Depends(get_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Edit an appointment.

    Patients: own appointments, only while pending, scheduling fields only.
    Staff: any appointment, including test results and payment summary.
    """
    appointment = await AppointmentService.update_appointment(appointment_id, request, current_user, ip)
    return AppointmentService.to_response(appointment)


@router.delete("/{appointment_id}", response_model=MessageResponse)
async def delete_appointment(
    appointment_id: PydanticObjectId,
    current_user: User = Depends(get_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Delete an appointment. Patients can only delete their own pending appointments."""
    await AppointmentService.delete_appointment(appointment_id, current_user, ip)
    return MessageResponse(message="Appointment deleted successfully")


# ============== Workflow transitions ==============

@router.post("/{appointment_id}/approve", response_model=AppointmentResponse)
async def approve_appointment(
    appointment_id: PydanticObjectId,
    request: Optional[ApproveAppointmentRequest] = None,
    current_user: User = Depends(can_approve),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Approve a pending appointment.

    - **approvalNotes**: Optional note for the patient (max 500 chars)
    """
    notes = request.approval_notes if request else None
    appointment = await AppointmentService.approve(appointment_id, notes, current_user, ip)
    return AppointmentService.to_response(appointment)


@router.post("/{appointment_id}/reject", response_model=AppointmentResponse)
async def reject_appointment(
    appointment_id: PydanticObjectId,
    request: RejectAppointmentRequest,
    current_user: User = Depends(can_approve),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Reject a pending appointment.

    - **rejectionReason**: Required, max 500 chars
    """
    appointment = await AppointmentService.reject(appointment_id, request.rejection_reason, current_user, ip)
    return AppointmentService.to_response(appointment)


@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: PydanticObjectId,
    request: UpdateAppointmentStatusRequest,
    current_user: User = Depends(require_staff),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Record the outcome of an approved appointment.

    - **status**: Completed, Cancelled or No Show
    """
    appointment = await AppointmentService.set_status(appointment_id, request.status, current_user, ip)
    return AppointmentService.to_response(appointment)


@router.post(
    "/{appointment_id}/home-collection",
    response_model=AppointmentResponse,
    dependencies=[Depends(rate_limit("patient"))],
)
async def request_home_collection(
    appointment_id: PydanticObjectId,
    request: HomeCollectionRequest,
    current_user: User = Depends(require_patient),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Ask for a sample collector to visit (approved appointments only).

    - **collectionAddress**: Where to collect
    - **collectionDate**, **collectionTime**: When to collect
    """
    appointment = await AppointmentService.request_home_collection(appointment_id, request, current_user, ip)
    return AppointmentService.to_response(appointment)


@router.patch("/{appointment_id}/home-collection/approve", response_model=AppointmentResponse)
async def approve_home_collection(
    appointment_id: PydanticObjectId,
    request: ApproveHomeCollectionRequest,
    current_user: User = Depends(can_approve),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Approve a requested home collection and assign the collector.

    - **collectorId**: Staff member who will collect the sample
    """
    appointment = await AppointmentService.approve_home_collection(
        appointment_id, request.collector_id, current_user, ip
    )
    return AppointmentService.to_response(appointment)
