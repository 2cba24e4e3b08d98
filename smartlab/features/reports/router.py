# Reports Feature - Router

from typing import Optional

from beanie import PydanticObjectId
from fastapi import APIRouter, Depends, Query, status

from smartlab.core.audit import log_read
from smartlab.dependencies import get_client_ip, get_pagination
from smartlab.features.auth.dependencies import get_current_user
from smartlab.features.auth.models import User
from smartlab.features.auth.permissions import require_patient, require_staff, require_superadmin
from smartlab.features.reports.models import ReportPriority, ReportStatus, ReportType
from smartlab.features.reports.schemas import (
    CreateReportRequest,
    ReportDownloadResponse,
    ReportListResponse,
    ReportResponse,
    UpdateReportRequest,
    UpdateReportStatusRequest,
)
from smartlab.features.reports.service import ReportService
from smartlab.shared.schemas import AttachmentSchema, MessageResponse, Pagination, page_fields


router = APIRouter(prefix="/reports", tags=["Reports"])


def _page(reports, total: int, pagination: Pagination) -> ReportListResponse:
    return ReportListResponse(
        reports=[ReportService.to_response(r) for r in reports],
        **page_fields(pagination, total),
    )


# ============== Lists ==============

@router.get("", response_model=ReportListResponse)
async def list_reports(
    patient_id: Optional[PydanticObjectId] = Query(None, alias="patientId"),
    report_status: Optional[ReportStatus] = Query(None, alias="status"),
    report_type: Optional[ReportType] = Query(None, alias="reportType"),
    priority: Optional[ReportPriority] = Query(None),
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_staff),
):
    """
    List all reports (staff only).

    - **patientId**: Filter by patient
    - **status**, **reportType**, **priority**: Filter by enum value
    """
    reports, total = await ReportService.list_reports(
        pagination,
        patient_id=patient_id,
        status=report_status,
        report_type=report_type,
        priority=priority,
    )
    return _page(reports, total, pagination)


@router.get("/my", response_model=ReportListResponse)
async def list_my_reports(
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(get_current_user),
):
    """Reports the caller created or reviewed; for patients, their approved reports."""
    reports, total = await ReportService.list_mine(current_user, pagination)
    return _page(reports, total, pagination)


@router.get("/pending", response_model=ReportListResponse)
async def list_pending_reports(
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_staff),
):
    """Reports waiting for review."""
    reports, total = await ReportService.list_pending(pagination)
    return _page(reports, total, pagination)


@router.get("/patient/me", response_model=ReportListResponse)
async def list_patient_own_reports(
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_patient),
):
    """The calling patient's approved reports."""
    reports, total = await ReportService.list_for_patient(current_user.id, pagination, approved_only=True)
    return _page(reports, total, pagination)


@router.get("/patient/{patient_id}", response_model=ReportListResponse)
async def list_patient_reports(
    patient_id: PydanticObjectId,
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_staff),
):
    """All reports of one patient (staff only)."""
    reports, total = await ReportService.list_for_patient(patient_id, pagination)
    return _page(reports, total, pagination)


# ============== Single report ==============

@router.get("/{report_id}", response_model=ReportResponse)
async def get_report(
    report_id: PydanticObjectId,
    current_user: User = Depends(get_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Get one report.

    Patients can only read their own approved reports.
    """
    report = await ReportService.get_for(report_id, current_user)
    log_read(current_user, "report", report_id, ip)
    return ReportService.to_response(report)


@router.post("", response_model=ReportResponse, status_code=status.HTTP_201_CREATED)
async def create_report(
    request: CreateReportRequest,
    current_user: User = Depends(require_staff),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Create a report in Draft status.

    - **patientId**, **appointmentId**: The appointment must belong to the patient
    - **title**: 5-200 characters
    - **description**: 10-2000 characters
    """
    report = await ReportService.create_report(request, current_user, ip)
    return ReportService.to_response(report)


@router.put("/{report_id}", response_model=ReportResponse)
async def update_report(
    report_id: PydanticObjectId,
    request: UpdateReportRequest,
    current_user: User = Depends(require_staff),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Edit report content (creator or super-admin). Approved reports are frozen."""
    report = await ReportService.update_report(report_id, request, current_user, ip)
    return ReportService.to_response(report)


@router.delete("/{report_id}", response_model=MessageResponse)
async def delete_report(
    report_id: PydanticObjectId,
    current_user: User = Depends(require_superadmin),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Delete a report (super-admin only)."""
    await ReportService.delete_report(report_id, current_user, ip)
    return MessageResponse(message="Report deleted successfully")


# ============== Workflow ==============

@router.patch("/{report_id}/status", response_model=ReportResponse)
async def update_report_status(
    report_id: PydanticObjectId,
    request: UpdateReportStatusRequest,
    current_user: User = Depends(require_staff),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Change the review status.

    - **status**: Draft, Pending Review, Approved or Rejected
    - **reviewNotes**: Optional notes kept with an approval or rejection
    """
    report = await ReportService.set_status(report_id, request.status, request.review_notes, current_user, ip)
    return ReportService.to_response(report)


@router.post("/{report_id}/attachments", response_model=ReportResponse)
async def add_report_attachment(
    report_id: PydanticObjectId,
    request: AttachmentSchema,
    current_user: User = Depends(require_staff),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Attach file metadata to a report."""
    report = await ReportService.add_attachment(report_id, request, current_user, ip)
    return ReportService.to_response(report)


@router.get("/{report_id}/download", response_model=ReportDownloadResponse)
async def download_report(
    report_id: PydanticObjectId,
    current_user: User = Depends(get_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Download an approved report (owning patient, creator or super-admin)."""
    return await ReportService.download(report_id, current_user, ip)
