# Appointments Feature - Workflow
#
# PENDING -> APPROVED | REJECTED
# APPROVED -> COMPLETED | CANCELLED | NO_SHOW

from datetime import datetime
from typing import Any, Dict, Optional

from beanie import PydanticObjectId

from smartlab.features.appointments.models import AppointmentStatus
from smartlab.shared.exceptions import ValidationFailedException
from smartlab.shared.workflow import StateMachine


appointment_machine = StateMachine(
    "appointment",
    {
        AppointmentStatus.PENDING: {AppointmentStatus.APPROVED, AppointmentStatus.REJECTED},
        AppointmentStatus.APPROVED: {
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.NO_SHOW,
        },
    },
)

# Outcomes staff record through the generic status endpoint
CLOSING_STATUSES = frozenset({
    AppointmentStatus.COMPLETED,
    AppointmentStatus.CANCELLED,
    AppointmentStatus.NO_SHOW,
})

STATUS_DISPLAY = {
    AppointmentStatus.PENDING: "Awaiting Approval",
    AppointmentStatus.APPROVED: "Confirmed",
    AppointmentStatus.REJECTED: "Rejected",
    AppointmentStatus.COMPLETED: "Completed",
    AppointmentStatus.CANCELLED: "Cancelled",
    AppointmentStatus.NO_SHOW: "No Show",
}


def approve(actor_id: PydanticObjectId, notes: Optional[str], now: datetime) -> Dict[str, Any]:
    """Changes for PENDING -> APPROVED."""
    changes = {
        "status": AppointmentStatus.APPROVED,
        "receptionist_id": actor_id,
        "approved_at": now,
    }
    if notes is not None:
        changes["approval_notes"] = notes
    return changes


def reject(actor_id: PydanticObjectId, reason: str, now: datetime) -> Dict[str, Any]:
    """Changes for PENDING -> REJECTED. A rejection always carries its reason."""
    if not reason or not reason.strip():
        raise ValidationFailedException.for_field("rejectionReason", "Rejection reason is required", reason)
    return {
        "status": AppointmentStatus.REJECTED,
        "receptionist_id": actor_id,
        "rejected_at": now,
        "rejection_reason": reason,
    }


def close(target: AppointmentStatus) -> Dict[str, Any]:
    """Changes for APPROVED -> COMPLETED / CANCELLED / NO_SHOW."""
    if target not in CLOSING_STATUSES:
        raise ValidationFailedException.for_field(
            "status",
            "Status must be one of: " + ", ".join(s.value for s in sorted(CLOSING_STATUSES, key=lambda s: s.value)),
            target.value,
        )
    return {"status": target}


def request_home_collection(address: Dict[str, Any], collection_date: datetime, collection_time: str, now: datetime) -> Dict[str, Any]:
    return {
        "home_collection.requested": True,
        "home_collection.approved": False,
        "home_collection.collection_address": address,
        "home_collection.collection_date": collection_date,
        "home_collection.collection_time": collection_time,
        "home_collection.requested_at": now,
    }


def approve_home_collection(collector_id: PydanticObjectId, actor_id: PydanticObjectId, now: datetime) -> Dict[str, Any]:
    return {
        "home_collection.approved": True,
        "home_collection.collector_id": collector_id,
        "home_collection.approved_at": now,
        "home_collection.approved_by": actor_id,
    }


def check_payment_summary(total_amount: float, paid_amount: float) -> None:
    if paid_amount > total_amount:
        raise ValidationFailedException.for_field(
            "payment.paidAmount", "Paid amount cannot exceed the total amount", paid_amount
        )
