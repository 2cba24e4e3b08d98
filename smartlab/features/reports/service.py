# Reports Feature - Service

from datetime import date, datetime, time
from typing import List, Optional, Tuple

from beanie import PydanticObjectId
from beanie.operators import Or

from smartlab.core import audit
from smartlab.core.logging import logger
from smartlab.features.appointments.models import Appointment
from smartlab.features.auth.models import Patient, Role, User
from smartlab.features.auth.permissions import is_owner, is_staff, is_superadmin
from smartlab.features.reports import workflow
from smartlab.features.reports.models import (
    Finding,
    Report,
    ReportPriority,
    ReportStatus,
    ReportType,
)
from smartlab.features.reports.schemas import (
    CreateReportRequest,
    ReportDownloadResponse,
    ReportResponse,
    UpdateReportRequest,
)
from smartlab.shared.exceptions import (
    ForbiddenException,
    NotFoundException,
    StateConflictException,
    ValidationFailedException,
)
from smartlab.shared.models import Attachment
from smartlab.shared.schemas import AttachmentSchema, Pagination
from smartlab.shared.store import conditional_update, get_or_404


LABEL = "Report"


def _as_datetime(value: Optional[date]) -> Optional[datetime]:
    return datetime.combine(value, time.min) if value is not None else None


async def _page(query, pagination: Pagination) -> Tuple[List[Report], int]:
    total = await query.count()
    reports = await (
        query.sort(-Report.created_at)
        .skip(pagination.skip)
        .limit(pagination.limit)
        .to_list()
    )
    return reports, total


class ReportService:
    """Service class for diagnostic reports and their review workflow."""

    # ============== Reads ==============

    @staticmethod
    async def get_for(report_id: PydanticObjectId, user: User) -> Report:
        """
        Load a report the caller may see.

        Staff see every report. A patient sees only their own approved reports;
        anything else is reported as missing.
        """
        report = await get_or_404(Report, report_id, LABEL)
        if is_staff(user):
            return report
        if not is_owner(user, report.patient_id) or report.status != ReportStatus.APPROVED:
            raise NotFoundException(f"{LABEL} not found")
        return report

    @staticmethod
    async def list_reports(
        pagination: Pagination,
        patient_id: Optional[PydanticObjectId] = None,
        status: Optional[ReportStatus] = None,
        report_type: Optional[ReportType] = None,
        priority: Optional[ReportPriority] = None,
    ) -> Tuple[List[Report], int]:
        query = Report.find()
        if patient_id is not None:
            query = query.find(Report.patient_id == patient_id)
        if status is not None:
            query = query.find(Report.status == status)
        if report_type is not None:
            query = query.find(Report.report_type == report_type)
        if priority is not None:
            query = query.find(Report.priority == priority)
        return await _page(query, pagination)

    @staticmethod
    async def list_mine(user: User, pagination: Pagination) -> Tuple[List[Report], int]:
        """Patients get their approved reports; staff the reports they created or reviewed."""
        if user.role == Role.PATIENT:
            return await ReportService.list_for_patient(user.id, pagination, approved_only=True)
        query = Report.find(Or(Report.created_by == user.id, Report.reviewed_by == user.id))
        return await _page(query, pagination)

    @staticmethod
    async def list_pending(pagination: Pagination) -> Tuple[List[Report], int]:
        return await ReportService.list_reports(pagination, status=ReportStatus.PENDING_REVIEW)

    @staticmethod
    async def list_for_patient(
        patient_id: PydanticObjectId,
        pagination: Pagination,
        approved_only: bool = False,
    ) -> Tuple[List[Report], int]:
        query = Report.find(Report.patient_id == patient_id)
        if approved_only:
            query = query.find(Report.status == ReportStatus.APPROVED)
        return await _page(query, pagination)

    # ============== Mutations ==============

    @staticmethod
    async def create_report(request: CreateReportRequest, user: User, ip: Optional[str] = None) -> Report:
        """Create a DRAFT report for an existing appointment of an existing patient."""
        patient = await Patient.get(request.patient_id)
        if patient is None:
            raise ValidationFailedException.for_field("patientId", "Patient not found", str(request.patient_id))

        appointment = await Appointment.get(request.appointment_id)
        if appointment is None:
            raise ValidationFailedException.for_field("appointmentId", "Appointment not found", str(request.appointment_id))
        if appointment.patient_id != patient.id:
            raise ValidationFailedException.for_field(
                "appointmentId", "Appointment does not belong to this patient", str(request.appointment_id)
            )

        data = request.model_dump(exclude={"findings", "follow_up_date"})
        report = Report(
            **data,
            findings=[Finding(**f.model_dump()) for f in request.findings],
            follow_up_date=_as_datetime(request.follow_up_date),
            created_by=user.id,
        )
        await report.insert()

        audit.log_create(user, "report", report.id, ip)
        logger.info(f"Report {report.id} created for patient {patient.id} by {user.email}")
        return report

    @staticmethod
    async def update_report(
        report_id: PydanticObjectId,
        request: UpdateReportRequest,
        user: User,
        ip: Optional[str] = None,
    ) -> Report:
        """Edit report content. Approved reports are frozen for everyone but the super-admin."""
        report = await get_or_404(Report, report_id, LABEL)
        workflow.ensure_author(user, report)
        workflow.ensure_editable(user, report)

        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        if "follow_up_date" in changes:
            changes["follow_up_date"] = _as_datetime(changes["follow_up_date"])
        if not changes:
            return report

        conditions = [{"revision": report.revision}]
        if not is_superadmin(user):
            conditions.append({"status": {"$ne": ReportStatus.APPROVED.value}})

        updated = await conditional_update(
            Report,
            report.id,
            *conditions,
            update={"$set": changes},
            label=LABEL,
            conflict_message="Report was changed by another request",
        )
        audit.log_update(user, "report", report.id, changes.keys(), ip)
        return updated

    @staticmethod
    async def delete_report(report_id: PydanticObjectId, user: User, ip: Optional[str] = None) -> None:
        report = await get_or_404(Report, report_id, LABEL)
        await report.delete()
        audit.log_delete(user, "report", report.id, ip)

    @staticmethod
    async def set_status(
        report_id: PydanticObjectId,
        target: ReportStatus,
        review_notes: Optional[str],
        user: User,
        ip: Optional[str] = None,
    ) -> Report:
        """Move a report through review. Only its creator or a super-admin may do this."""
        report = await get_or_404(Report, report_id, LABEL)
        workflow.ensure_author(user, report)
        workflow.report_machine.ensure(report.status, target)

        update = workflow.transition(target, user.id, review_notes, datetime.utcnow())
        updated = await conditional_update(
            Report,
            report.id,
            {"status": report.status.value},
            update=update,
            label=LABEL,
            conflict_message=f"Report is no longer {report.status.value.lower()}",
        )
        audit.log_update(user, "report", report.id, update["$set"].keys(), ip)
        logger.info(f"Report {report.id}: {report.status.value} -> {target.value} by {user.email}")
        return updated

    @staticmethod
    async def add_attachment(
        report_id: PydanticObjectId,
        request: AttachmentSchema,
        user: User,
        ip: Optional[str] = None,
    ) -> Report:
        """Record attachment metadata. No file is stored."""
        report = await get_or_404(Report, report_id, LABEL)
        workflow.ensure_author(user, report)
        workflow.ensure_editable(user, report)

        attachment = Attachment(**request.model_dump(exclude_none=True))
        conditions = [] if is_superadmin(user) else [{"status": {"$ne": ReportStatus.APPROVED.value}}]
        updated = await conditional_update(
            Report,
            report.id,
            *conditions,
            update={"$push": {"attachments": attachment.model_dump()}},
            label=LABEL,
            conflict_message="Approved reports are frozen and can only be changed by a super administrator",
        )
        audit.log_update(user, "report", report.id, ["attachments"], ip)
        return updated

    @staticmethod
    async def download(report_id: PydanticObjectId, user: User, ip: Optional[str] = None) -> ReportDownloadResponse:
        """
        Download placeholder.

        Allowed for the owning patient, the creator and the super-admin, and
        only once the report is approved.
        """
        report = await get_or_404(Report, report_id, LABEL)
        allowed = is_superadmin(user) or is_owner(user, report.created_by) or is_owner(user, report.patient_id)
        if not allowed:
            raise ForbiddenException("You do not have permission to download this report")
        if report.status != ReportStatus.APPROVED:
            raise StateConflictException("Only approved reports can be downloaded")

        audit.log_read(user, "report", report.id, ip)
        return ReportDownloadResponse(
            message="Report download is not available yet; file generation is handled elsewhere",
            report_id=str(report.id),
            file_name=f"{report.title}_{report.id}.pdf",
        )

    # ============== Response shaping ==============

    @staticmethod
    def to_response(report: Report) -> ReportResponse:
        return ReportResponse(
            id=str(report.id),
            patient_id=str(report.patient_id),
            appointment_id=str(report.appointment_id),
            created_by=str(report.created_by),
            reviewed_by=str(report.reviewed_by) if report.reviewed_by else None,
            reviewed_at=report.reviewed_at,
            review_notes=report.review_notes,
            report_type=report.report_type,
            title=report.title,
            description=report.description,
            findings=[f.model_dump() for f in report.findings],
            diagnosis=report.diagnosis,
            recommendations=report.recommendations,
            follow_up_required=report.follow_up_required,
            follow_up_date=report.follow_up_date,
            attachments=[a.model_dump() for a in report.attachments],
            status=report.status,
            priority=report.priority,
            is_confidential=report.is_confidential,
            created_at=report.created_at,
            updated_at=report.updated_at,
        )
