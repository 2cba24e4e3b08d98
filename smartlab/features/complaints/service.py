# Complaints Feature - Service

from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from beanie import PydanticObjectId
from beanie.operators import In

from smartlab.core import audit
from smartlab.core.logging import logger
from smartlab.features.auth.models import Receptionist, Role, User
from smartlab.features.auth.permissions import ensure_patient_access, is_staff
from smartlab.features.complaints import workflow
from smartlab.features.complaints.models import (
    Comment,
    Complaint,
    ComplaintPriority,
    ComplaintStatus,
    Escalation,
)
from smartlab.features.complaints.schemas import (
    ComplaintResponse,
    ComplaintStatsResponse,
    CreateComplaintRequest,
    UpdateComplaintRequest,
)
from smartlab.shared.exceptions import ForbiddenException, StateConflictException, ValidationFailedException
from smartlab.shared.models import Attachment
from smartlab.shared.schemas import Pagination
from smartlab.shared.store import conditional_delete, conditional_update, get_or_404


LABEL = "Complaint"


async def _page(query, pagination: Pagination) -> Tuple[List[Complaint], int]:
    total = await query.count()
    complaints = await (
        query.sort(-Complaint.created_at)
        .skip(pagination.skip)
        .limit(pagination.limit)
        .to_list()
    )
    return complaints, total


class ComplaintService:
    """Service class for patient complaints."""

    # ============== Reads ==============

    @staticmethod
    async def get_for(complaint_id: PydanticObjectId, user: User) -> Complaint:
        complaint = await get_or_404(Complaint, complaint_id, LABEL)
        ensure_patient_access(user, complaint.patient_id, "You can only access your own complaints")
        return complaint

    @staticmethod
    async def list_complaints(
        pagination: Pagination,
        patient_id: Optional[PydanticObjectId] = None,
        assigned_to: Optional[PydanticObjectId] = None,
        status: Optional[ComplaintStatus] = None,
        priority: Optional[ComplaintPriority] = None,
    ) -> Tuple[List[Complaint], int]:
        query = Complaint.find()
        if patient_id is not None:
            query = query.find(Complaint.patient_id == patient_id)
        if assigned_to is not None:
            query = query.find(Complaint.assigned_to == assigned_to)
        if status is not None:
            query = query.find(Complaint.status == status)
        if priority is not None:
            query = query.find(Complaint.priority == priority)
        return await _page(query, pagination)

    @staticmethod
    async def list_mine(
        user: User,
        pagination: Pagination,
        status: Optional[ComplaintStatus] = None,
    ) -> Tuple[List[Complaint], int]:
        """Patients see their complaints, receptionists the ones assigned to them, super-admins all."""
        if user.role == Role.PATIENT:
            return await ComplaintService.list_complaints(pagination, patient_id=user.id, status=status)
        if user.role == Role.RECEPTIONIST:
            return await ComplaintService.list_complaints(pagination, assigned_to=user.id, status=status)
        return await ComplaintService.list_complaints(pagination, status=status)

    @staticmethod
    async def list_pending(pagination: Pagination) -> Tuple[List[Complaint], int]:
        return await ComplaintService.list_complaints(pagination, status=ComplaintStatus.OPEN)

    @staticmethod
    async def list_overdue(pagination: Pagination) -> Tuple[List[Complaint], int]:
        """Open or assigned complaints older than seven days."""
        query = Complaint.find(
            In(Complaint.status, [s.value for s in workflow.OVERDUE_STATUSES]),
            Complaint.created_at < workflow.overdue_cutoff(datetime.utcnow()),
        )
        return await _page(query, pagination)

    @staticmethod
    async def get_stats(start_date: Optional[date] = None, end_date: Optional[date] = None) -> ComplaintStatsResponse:
        """Counts by status and priority plus the mean time to resolution."""
        window = []
        if start_date is not None and end_date is not None:
            window = [
                Complaint.created_at >= datetime.combine(start_date, time.min),
                Complaint.created_at < datetime.combine(end_date, time.min) + timedelta(days=1),
            ]

        status_breakdown = []
        for complaint_status in ComplaintStatus:
            count = await Complaint.find(*window, Complaint.status == complaint_status).count()
            if count:
                status_breakdown.append({"status": complaint_status, "count": count})

        priority_breakdown = []
        for priority in ComplaintPriority:
            count = await Complaint.find(*window, Complaint.priority == priority).count()
            if count:
                priority_breakdown.append({"priority": priority, "count": count})

        resolved = await Complaint.find(*window, Complaint.resolved_at != None).to_list()  # noqa: E711
        hours = [(c.resolved_at - c.created_at).total_seconds() / 3600 for c in resolved]

        return ComplaintStatsResponse(
            status_breakdown=status_breakdown,
            priority_breakdown=priority_breakdown,
            total_complaints=await Complaint.find(*window).count(),
            avg_resolution_time_hours=sum(hours) / len(hours) if hours else 0,
        )

    # ============== Patient actions ==============

    @staticmethod
    async def create_complaint(request: CreateComplaintRequest, user: User, ip: Optional[str] = None) -> Complaint:
        """File a complaint for the calling patient. It starts out OPEN."""
        if request.patient_id is not None and request.patient_id != user.id:
            raise ForbiddenException("You can only create complaints for yourself")

        complaint = Complaint(
            **request.model_dump(exclude={"patient_id", "attachments"}),
            patient_id=user.id,
            attachments=[Attachment(**a.model_dump(exclude_none=True)) for a in request.attachments],
        )
        await complaint.insert()

        audit.log_create(user, "complaint", complaint.id, ip)
        logger.info(f"Complaint {complaint.id} filed by patient {user.id}")
        return complaint

    @staticmethod
    async def update_complaint(
        complaint_id: PydanticObjectId,
        request: UpdateComplaintRequest,
        user: User,
        ip: Optional[str] = None,
    ) -> Complaint:
        """
        Edit complaint content.

        A patient may edit their own complaint only while it is OPEN.
        Staff edits are guarded by the revision they read.
        """
        complaint = await ComplaintService.get_for(complaint_id, user)
        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return complaint
        changes["last_activity_at"] = datetime.utcnow()

        if is_staff(user):
            precondition = {"revision": complaint.revision}
            conflict = "Complaint was changed by another request"
        else:
            precondition = {"status": ComplaintStatus.OPEN.value}
            conflict = "You can only modify open complaints"

        updated = await conditional_update(
            Complaint,
            complaint.id,
            precondition,
            update={"$set": changes},
            label=LABEL,
            conflict_message=conflict,
        )
        audit.log_update(user, "complaint", complaint.id, changes.keys(), ip)
        return updated

    @staticmethod
    async def delete_complaint(complaint_id: PydanticObjectId, user: User, ip: Optional[str] = None) -> None:
        complaint = await ComplaintService.get_for(complaint_id, user)

        if is_staff(user):
            await conditional_delete(Complaint, complaint.id, label=LABEL)
        else:
            await conditional_delete(
                Complaint,
                complaint.id,
                {"status": ComplaintStatus.OPEN.value},
                label=LABEL,
                conflict_message="You can only delete open complaints",
            )

        audit.log_delete(user, "complaint", complaint.id, ip)

    @staticmethod
    async def add_comment(complaint_id: PydanticObjectId, text: str, user: User, ip: Optional[str] = None) -> Complaint:
        """Append a comment. Anyone who can read the complaint can comment on it."""
        complaint = await ComplaintService.get_for(complaint_id, user)
        now = datetime.utcnow()
        comment = Comment(text=text, author=user.id, at=now)

        updated = await conditional_update(
            Complaint,
            complaint.id,
            update={
                "$push": {"comments": comment.model_dump()},
                "$set": {"last_activity_at": now},
            },
            label=LABEL,
        )
        audit.log_update(user, "complaint", complaint.id, ["comments"], ip)
        return updated

    # ============== Staff actions ==============

    @staticmethod
    async def assign(
        complaint_id: PydanticObjectId,
        assignee_id: PydanticObjectId,
        actor: User,
        ip: Optional[str] = None,
    ) -> Complaint:
        """Hand the complaint to an active receptionist; it moves to IN_PROGRESS."""
        assignee = await Receptionist.get(assignee_id)
        if assignee is None or not assignee.is_active:
            raise ValidationFailedException.for_field(
                "assignedTo", "Assignee must be an active receptionist", str(assignee_id)
            )

        complaint = await get_or_404(Complaint, complaint_id, LABEL)
        if complaint.status not in workflow.ASSIGNABLE_STATUSES:
            raise StateConflictException(f"A complaint that is {complaint.status.value.lower()} cannot be assigned")

        changes = workflow.assign(assignee.id, actor.id, datetime.utcnow())
        updated = await conditional_update(
            Complaint,
            complaint.id,
            In(Complaint.status, [s.value for s in workflow.ASSIGNABLE_STATUSES]),
            update={"$set": changes},
            label=LABEL,
            conflict_message="Complaint can no longer be assigned",
        )
        audit.log_update(actor, "complaint", complaint.id, changes.keys(), ip)
        logger.info(f"Complaint {complaint.id} assigned to {assignee.email} by {actor.email}")
        return updated

    @staticmethod
    async def resolve(
        complaint_id: PydanticObjectId,
        target: ComplaintStatus,
        resolution: str,
        notes: Optional[str],
        actor: User,
        ip: Optional[str] = None,
    ) -> Complaint:
        changes = workflow.resolve(target, resolution, notes, actor.id, datetime.utcnow())

        complaint = await get_or_404(Complaint, complaint_id, LABEL)
        workflow.complaint_machine.ensure(complaint.status, target)

        updated = await conditional_update(
            Complaint,
            complaint.id,
            {"status": complaint.status.value},
            update={"$set": changes},
            label=LABEL,
            conflict_message=f"Complaint is no longer {complaint.status.value.lower()}",
        )
        audit.log_update(actor, "complaint", complaint.id, changes.keys(), ip)
        logger.info(f"Complaint {complaint.id}: {complaint.status.value} -> {target.value} by {actor.email}")
        return updated

    @staticmethod
    async def set_priority(
        complaint_id: PydanticObjectId,
        priority: ComplaintPriority,
        actor: User,
        ip: Optional[str] = None,
    ) -> Complaint:
        complaint = await get_or_404(Complaint, complaint_id, LABEL)
        changes = {"priority": priority, "last_activity_at": datetime.utcnow()}

        updated = await conditional_update(Complaint, complaint.id, update={"$set": changes}, label=LABEL)
        audit.log_update(actor, "complaint", complaint.id, changes.keys(), ip)
        return updated

    @staticmethod
    async def escalate(
        complaint_id: PydanticObjectId,
        reason: Optional[str],
        actor: User,
        ip: Optional[str] = None,
    ) -> Complaint:
        """
        Raise the escalation level by one, capped at 3.

        The level read is the precondition, so two concurrent escalations
        cannot both land on the same level.
        """
        complaint = await get_or_404(Complaint, complaint_id, LABEL)
        now = datetime.utcnow()
        level = workflow.next_escalation_level(complaint.escalation_level)
        record = Escalation(level=level, escalated_by=actor.id, escalated_at=now, reason=reason)

        updated = await conditional_update(
            Complaint,
            complaint.id,
            {"escalation_level": complaint.escalation_level},
            update={
                "$set": {"escalation_level": level, "last_activity_at": now},
                "$push": {"escalation_history": record.model_dump()},
            },
            label=LABEL,
            conflict_message="Complaint was escalated by another request",
        )
        audit.log_update(actor, "complaint", complaint.id, ["escalation_level", "escalation_history"], ip)
        logger.warning(f"Complaint {complaint.id} escalated to level {level} by {actor.email}")
        return updated

    # ============== Response shaping ==============

    @staticmethod
    def to_response(complaint: Complaint) -> ComplaintResponse:
        def oid(value):
            return str(value) if value else None

        return ComplaintResponse(
            id=str(complaint.id),
            patient_id=str(complaint.patient_id),
            subject=complaint.subject,
            description=complaint.description,
            category=complaint.category,
            priority=complaint.priority,
            status=complaint.status,
            assigned_to=oid(complaint.assigned_to),
            assigned_at=complaint.assigned_at,
            assigned_by=oid(complaint.assigned_by),
            resolved_by=oid(complaint.resolved_by),
            resolved_at=complaint.resolved_at,
            resolution=complaint.resolution,
            resolution_notes=complaint.resolution_notes,
            contact_method=complaint.contact_method,
            preferred_contact_time=complaint.preferred_contact_time,
            attachments=[a.model_dump() for a in complaint.attachments],
            comments=[{**c.model_dump(), "author": str(c.author)} for c in complaint.comments],
            escalation_level=complaint.escalation_level,
            escalation_history=[
                {**e.model_dump(), "escalated_by": str(e.escalated_by)} for e in complaint.escalation_history
            ],
            last_activity_at=complaint.last_activity_at,
            age_in_days=complaint.age_in_days,
            created_at=complaint.created_at,
            updated_at=complaint.updated_at,
        )
