# Appointments Feature - Service

from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from beanie import PydanticObjectId
from beanie.operators import In

from smartlab.core import audit
from smartlab.core.logging import logger
from smartlab.features.appointments import workflow
from smartlab.features.appointments.models import Appointment, AppointmentStatus
from smartlab.features.appointments.schemas import (
    AppointmentResponse,
    CreateAppointmentRequest,
    HomeCollectionRequest,
    UpdateAppointmentRequest,
)
from smartlab.features.auth.models import Role, Staff, User
from smartlab.features.auth.permissions import ensure_patient_access, is_staff
from smartlab.shared.exceptions import ForbiddenException, ValidationFailedException
from smartlab.shared.schemas import Pagination
from smartlab.shared.store import conditional_delete, conditional_update, get_or_404


PATIENT_EDITABLE = {"appointment_date", "appointment_time", "appointment_type", "reason"}
LABEL = "Appointment"


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min)


class AppointmentService:
    """Service class for appointment booking and the approval workflow."""

    # ============== Reads ==============

    @staticmethod
    async def get_for(appointment_id: PydanticObjectId, user: User) -> Appointment:
        """Load an appointment the caller may see: staff see all, patients only their own."""
        appointment = await get_or_404(Appointment, appointment_id, LABEL)
        ensure_patient_access(user, appointment.patient_id, "You can only access your own appointments")
        return appointment

    @staticmethod
    async def list_appointments(
        pagination: Pagination,
        patient_id: Optional[PydanticObjectId] = None,
        receptionist_id: Optional[PydanticObjectId] = None,
        status: Optional[AppointmentStatus] = None,
        on_date: Optional[date] = None,
    ) -> Tuple[List[Appointment], int]:
        query = Appointment.find()
        if patient_id is not None:
            query = query.find(Appointment.patient_id == patient_id)
        if receptionist_id is not None:
            query = query.find(Appointment.receptionist_id == receptionist_id)
        if status is not None:
            query = query.find(Appointment.status == status)
        if on_date is not None:
            start = _day_start(on_date)
            query = query.find(
                Appointment.appointment_date >= start,
                Appointment.appointment_date < start + timedelta(days=1),
            )

        total = await query.count()
        appointments = await (
            query.sort(-Appointment.appointment_date)
            .skip(pagination.skip)
            .limit(pagination.limit)
            .to_list()
        )
        return appointments, total

    @staticmethod
    async def list_mine(
        user: User,
        pagination: Pagination,
        status: Optional[AppointmentStatus] = None,
    ) -> Tuple[List[Appointment], int]:
        """Patients see their bookings, receptionists the ones they handled, super-admins all."""
        if user.role == Role.PATIENT:
            return await AppointmentService.list_appointments(pagination, patient_id=user.id, status=status)
        if user.role == Role.RECEPTIONIST:
            return await AppointmentService.list_appointments(pagination, receptionist_id=user.id, status=status)
        return await AppointmentService.list_appointments(pagination, status=status)

    @staticmethod
    async def list_pending(pagination: Pagination) -> Tuple[List[Appointment], int]:
        query = Appointment.find(Appointment.status == AppointmentStatus.PENDING)
        total = await query.count()
        appointments = await (
            query.sort(+Appointment.appointment_date)
            .skip(pagination.skip)
            .limit(pagination.limit)
            .to_list()
        )
        return appointments, total

    @staticmethod
    async def list_upcoming(receptionist_id: PydanticObjectId, pagination: Pagination) -> Tuple[List[Appointment], int]:
        query = Appointment.find(
            Appointment.receptionist_id == receptionist_id,
            Appointment.status == AppointmentStatus.APPROVED,
            Appointment.appointment_date >= _day_start(datetime.utcnow().date()),
        )
        total = await query.count()
        appointments = await (
            query.sort(+Appointment.appointment_date)
            .skip(pagination.skip)
            .limit(pagination.limit)
            .to_list()
        )
        return appointments, total

    # ============== Patient actions ==============

    @staticmethod
    async def create_appointment(request: CreateAppointmentRequest, user: User, ip: Optional[str] = None) -> Appointment:
        """Book an appointment for the calling patient. It starts out PENDING."""
        if request.patient_id is not None and request.patient_id != user.id:
            raise ForbiddenException("Patients can only book appointments for themselves")

        appointment = Appointment(
            patient_id=user.id,
            appointment_date=_day_start(request.appointment_date),
            appointment_time=request.appointment_time,
            appointment_type=request.appointment_type,
            reason=request.reason,
        )
        await appointment.insert()

        audit.log_create(user, "appointment", appointment.id, ip)
        logger.info(f"Appointment {appointment.id} booked by patient {user.id}")
        return appointment

    @staticmethod
    async def update_appointment(
        appointment_id: PydanticObjectId,
        request: UpdateAppointmentRequest,
        user: User,
        ip: Optional[str] = None,
    ) -> Appointment:
        """
        Edit an appointment.

        A patient edits only their own appointment and only while it is PENDING.
        Staff may edit at any status; the write is guarded by the revision they read.
        """
        appointment = await AppointmentService.get_for(appointment_id, user)
        changes = request.model_dump(exclude_unset=True, exclude_none=True)

        if not is_staff(user):
            forbidden = set(changes) - PATIENT_EDITABLE
            if forbidden:
                raise ForbiddenException("Patients can only change the date, time, type and reason")

        if "appointment_date" in changes:
            changes["appointment_date"] = _day_start(changes["appointment_date"])

        if "payment" in changes:
            payment = {**appointment.payment.model_dump(), **changes.pop("payment")}
            workflow.check_payment_summary(payment["total_amount"], payment["paid_amount"])
            changes["payment"] = payment

        if not changes:
            return appointment

        if is_staff(user):
            precondition = {"revision": appointment.revision}
            conflict = "Appointment was changed by another request"
        else:
            precondition = {"status": AppointmentStatus.PENDING.value}
            conflict = "You can only change an appointment while it is pending"

        updated = await conditional_update(
            Appointment,
            appointment.id,
            precondition,
            update={"$set": changes},
            label=LABEL,
            conflict_message=conflict,
        )
        audit.log_update(user, "appointment", appointment.id, changes.keys(), ip)
        return updated

    @staticmethod
    async def delete_appointment(appointment_id: PydanticObjectId, user: User, ip: Optional[str] = None) -> None:
        """Patients may delete their own PENDING appointments; staff may delete any."""
        appointment = await AppointmentService.get_for(appointment_id, user)

        if is_staff(user):
            await conditional_delete(Appointment, appointment.id, label=LABEL)
        else:
            await conditional_delete(
                Appointment,
                appointment.id,
                {"status": AppointmentStatus.PENDING.value},
                label=LABEL,
                conflict_message="You can only delete an appointment while it is pending",
            )

        audit.log_delete(user, "appointment", appointment.id, ip)

    @staticmethod
    async def request_home_collection(
        appointment_id: PydanticObjectId,
        request: HomeCollectionRequest,
        user: User,
        ip: Optional[str] = None,
    ) -> Appointment:
        """The owning patient asks for a collector visit on an APPROVED appointment."""
        appointment = await get_or_404(Appointment, appointment_id, LABEL)
        if appointment.patient_id != user.id:
            raise ForbiddenException("You can only request home collection for your own appointments")

        changes = workflow.request_home_collection(
            request.collection_address.model_dump(),
            _day_start(request.collection_date),
            request.collection_time,
            datetime.utcnow(),
        )
        updated = await conditional_update(
            Appointment,
            appointment.id,
            {"status": AppointmentStatus.APPROVED.value, "home_collection.approved": False},
            update={"$set": changes},
            label=LABEL,
            conflict_message="Home collection can only be requested for an approved appointment that has no approved collection",
        )
        audit.log_update(user, "appointment", appointment.id, ["home_collection"], ip)
        return updated

    # ============== Staff transitions ==============

    @staticmethod
    async def _transition(
        appointment_id: PydanticObjectId,
        target: AppointmentStatus,
        changes: dict,
        actor: User,
        ip: Optional[str],
    ) -> Appointment:
        appointment = await get_or_404(Appointment, appointment_id, LABEL)
        workflow.appointment_machine.ensure(appointment.status, target)

        # The status observed above is the precondition: a concurrent transition makes this match nothing
        updated = await conditional_update(
            Appointment,
            appointment.id,
            {"status": appointment.status.value},
            update={"$set": changes},
            label=LABEL,
            conflict_message=f"Appointment is no longer {appointment.status.value.lower()}",
        )
        audit.log_update(actor, "appointment", appointment.id, changes.keys(), ip)
        logger.info(f"Appointment {appointment.id}: {appointment.status.value} -> {target.value} by {actor.email}")
        return updated

    @staticmethod
    async def approve(appointment_id: PydanticObjectId, notes: Optional[str], actor: User, ip: Optional[str] = None) -> Appointment:
        changes = workflow.approve(actor.id, notes, datetime.utcnow())
        return await AppointmentService._transition(appointment_id, AppointmentStatus.APPROVED, changes, actor, ip)

    @staticmethod
    async def reject(appointment_id: PydanticObjectId, reason: str, actor: User, ip: Optional[str] = None) -> Appointment:
        changes = workflow.reject(actor.id, reason, datetime.utcnow())
        return await AppointmentService._transition(appointment_id, AppointmentStatus.REJECTED, changes, actor, ip)

    @staticmethod
    async def set_status(appointment_id: PydanticObjectId, target: AppointmentStatus, actor: User, ip: Optional[str] = None) -> Appointment:
        changes = workflow.close(target)
        return await AppointmentService._transition(appointment_id, target, changes, actor, ip)

    @staticmethod
    async def approve_home_collection(
        appointment_id: PydanticObjectId,
        collector_id: PydanticObjectId,
        actor: User,
        ip: Optional[str] = None,
    ) -> Appointment:
        """Assign a collector to a requested home collection."""
        collector = await Staff.get(collector_id, with_children=True)
        if collector is None or not collector.is_active:
            raise ValidationFailedException.for_field("collectorId", "Collector must be an active staff member", str(collector_id))

        changes = workflow.approve_home_collection(collector_id, actor.id, datetime.utcnow())
        updated = await conditional_update(
            Appointment,
            appointment_id,
            {
                "status": AppointmentStatus.APPROVED.value,
                "home_collection.requested": True,
                "home_collection.approved": False,
            },
            update={"$set": changes},
            label=LABEL,
            conflict_message="Home collection must be requested on an approved appointment and not yet approved",
        )
        audit.log_update(actor, "appointment", appointment_id, ["home_collection"], ip)
        return updated

    # ============== Response shaping ==============

    @staticmethod
    def to_response(appointment: Appointment) -> AppointmentResponse:
        home = appointment.home_collection
        return AppointmentResponse(
            id=str(appointment.id),
            patient_id=str(appointment.patient_id),
            receptionist_id=str(appointment.receptionist_id) if appointment.receptionist_id else None,
            appointment_date=appointment.appointment_date,
            appointment_time=appointment.appointment_time,
            appointment_type=appointment.appointment_type,
            reason=appointment.reason,
            status=appointment.status,
            status_display=workflow.STATUS_DISPLAY[appointment.status],
            approval_notes=appointment.approval_notes,
            approved_at=appointment.approved_at,
            rejected_at=appointment.rejected_at,
            rejection_reason=appointment.rejection_reason,
            home_collection={
                **home.model_dump(exclude={"collector_id", "approved_by"}),
                "collector_id": str(home.collector_id) if home.collector_id else None,
            },
            test_results=[r.model_dump() for r in appointment.test_results],
            payment=appointment.payment.model_dump(),
            created_at=appointment.created_at,
            updated_at=appointment.updated_at,
        )
