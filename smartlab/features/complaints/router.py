# Complaints Feature - Router

from datetime import date
from typing import Optional

from beanie import PydanticObjectId
from fastapi import APIRouter, Depends, Query, status

from smartlab.core.audit import log_read
from smartlab.core.rate_limit import rate_limit
from smartlab.dependencies import get_client_ip, get_pagination
from smartlab.features.auth.dependencies import get_current_user
from smartlab.features.auth.models import User
from smartlab.features.auth.permissions import require_patient, require_staff
from smartlab.features.complaints.models import ComplaintPriority, ComplaintStatus
from smartlab.features.complaints.schemas import (
    AddCommentRequest,
    AssignComplaintRequest,
    ComplaintListResponse,
    ComplaintResponse,
    ComplaintStatsResponse,
    CreateComplaintRequest,
    EscalateComplaintRequest,
    ResolveComplaintRequest,
    UpdateComplaintRequest,
    UpdatePriorityRequest,
)
from smartlab.features.complaints.service import ComplaintService
from smartlab.shared.schemas import MessageResponse, Pagination, page_fields


router = APIRouter(prefix="/complaints", tags=["Complaints"])


def _page(complaints, total: int, pagination: Pagination) -> ComplaintListResponse:
    return ComplaintListResponse(
        complaints=[ComplaintService.to_response(c) for c in complaints],
        **page_fields(pagination, total),
    )


# ============== Lists ==============

@router.get("", response_model=ComplaintListResponse)
async def list_complaints(
    patient_id: Optional[PydanticObjectId] = Query(None, alias="patientId"),
    complaint_status: Optional[ComplaintStatus] = Query(None, alias="status"),
    priority: Optional[ComplaintPriority] = Query(None),
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_staff),
):
    """
    List all complaints (staff only).

    - **patientId**: Filter by patient
    - **status**, **priority**: Filter by enum value
    """
    complaints, total = await ComplaintService.list_complaints(
        pagination, patient_id=patient_id, status=complaint_status, priority=priority
    )
    return _page(complaints, total, pagination)


@router.get("/my", response_model=ComplaintListResponse)
async def list_my_complaints(
    complaint_status: Optional[ComplaintStatus] = Query(None, alias="status"),
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(get_current_user),
):
    """Patients get their own complaints; receptionists the ones assigned to them."""
    complaints, total = await ComplaintService.list_mine(current_user, pagination, complaint_status)
    return _page(complaints, total, pagination)


@router.get("/pending", response_model=ComplaintListResponse)
async def list_pending_complaints(
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_staff),
):
    """Open complaints nobody has picked up yet."""
    complaints, total = await ComplaintService.list_pending(pagination)
    return _page(complaints, total, pagination)


@router.get("/overdue", response_model=ComplaintListResponse)
async def list_overdue_complaints(
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_staff),
):
    """Open or assigned complaints older than seven days."""
    complaints, total = await ComplaintService.list_overdue(pagination)
    return _page(complaints, total, pagination)


@router.get("/stats/summary", response_model=ComplaintStatsResponse)
async def get_complaint_stats(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: User = Depends(require_staff),
):
    """
    Complaint statistics.

    - **startDate**, **endDate**: Restrict to complaints created in this range (both required)
    """
    return await ComplaintService.get_stats(start_date, end_date)


# ============== Single complaint ==============

@router.get("/{complaint_id}", response_model=ComplaintResponse)
async def get_complaint(
    complaint_id: PydanticObjectId,
    current_user: User = Depends(get_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Get one complaint. Patients can only read their own."""
    complaint = await ComplaintService.get_for(complaint_id, current_user)
    log_read(current_user, "complaint", complaint_id, ip)
    return ComplaintService.to_response(complaint)


@router.post(
    "",
    response_model=ComplaintResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("patient"))],
)
async def create_complaint(
    request: CreateComplaintRequest,
    current_user: User = Depends(require_patient),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    File a complaint (patients only).

    - **subject**: 5-200 characters
    - **description**: At least 10 characters
    - **category**, **priority**, **contactMethod**: Optional enum values
    """
    complaint = await ComplaintService.create_complaint(request, current_user, ip)
    return ComplaintService.to_response(complaint)


@router.put("/{complaint_id}", response_model=ComplaintResponse)
async def update_complaint(
    complaint_id: PydanticObjectId,
    request: UpdateComplaintRequest,
    current_user: User = Depends(get_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Edit a complaint. Patients can only edit their own open complaints."""
    complaint = await ComplaintService.update_complaint(complaint_id, request, current_user, ip)
    return ComplaintService.to_response(complaint)


@router.delete("/{complaint_id}", response_model=MessageResponse)
async def delete_complaint(
    complaint_id: PydanticObjectId,
    current_user: User = Depends(get_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Delete a complaint. Patients can only delete their own open complaints."""
    await ComplaintService.delete_complaint(complaint_id, current_user, ip)
    return MessageResponse(message="Complaint deleted successfully")


# ============== Workflow ==============

@router.patch("/{complaint_id}/assign", response_model=ComplaintResponse)
async def assign_complaint(
    complaint_id: PydanticObjectId,
    request: AssignComplaintRequest,
    current_user: User = Depends(require_staff),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Assign a complaint to a receptionist.

    - **assignedTo**: Id of an active receptionist
    """
    complaint = await ComplaintService.assign(complaint_id, request.assigned_to, current_user, ip)
    return ComplaintService.to_response(complaint)


@router.patch("/{complaint_id}/resolve", response_model=ComplaintResponse)
async def resolve_complaint(
    complaint_id: PydanticObjectId,
    request: ResolveComplaintRequest,
    current_user: User = Depends(require_staff),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Resolve or close a complaint.

    - **resolution**: Required
    - **status**: Resolved (default) or Closed
    """
    complaint = await ComplaintService.resolve(
        complaint_id, request.status, request.resolution, request.resolution_notes, current_user, ip
    )
    return ComplaintService.to_response(complaint)


@router.patch("/{complaint_id}/priority", response_model=ComplaintResponse)
async def update_complaint_priority(
    complaint_id: PydanticObjectId,
    request: UpdatePriorityRequest,
    current_user: User = Depends(require_staff),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Change the priority: Low, Medium, High or Urgent."""
    complaint = await ComplaintService.set_priority(complaint_id, request.priority, current_user, ip)
    return ComplaintService.to_response(complaint)


@router.post("/{complaint_id}/comments", response_model=ComplaintResponse)
async def add_complaint_comment(
    complaint_id: PydanticObjectId,
    request: AddCommentRequest,
    current_user: User = Depends(get_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Add a comment to a complaint the caller can read."""
    complaint = await ComplaintService.add_comment(complaint_id, request.text, current_user, ip)
    return ComplaintService.to_response(complaint)


@router.post("/{complaint_id}/escalate", response_model=ComplaintResponse)
async def escalate_complaint(
    complaint_id: PydanticObjectId,
    request: Optional[EscalateComplaintRequest] = None,
    current_user: User = Depends(require_staff),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Raise the escalation level by one (at most 3)."""
    reason = request.reason if request else None
    complaint = await ComplaintService.escalate(complaint_id, reason, current_user, ip)
    return ComplaintService.to_response(complaint)
