# Complaints Feature - Workflow
#
# OPEN -> ASSIGNED -> IN_PROGRESS -> RESOLVED -> CLOSED
# Assigning (or re-assigning) always leaves the complaint IN_PROGRESS.

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from beanie import PydanticObjectId

from smartlab.features.complaints.models import MAX_ESCALATION_LEVEL, ComplaintStatus
from smartlab.shared.exceptions import ValidationFailedException
from smartlab.shared.workflow import StateMachine


complaint_machine = StateMachine(
    "complaint",
    {
        ComplaintStatus.OPEN: {ComplaintStatus.ASSIGNED, ComplaintStatus.IN_PROGRESS},
        ComplaintStatus.ASSIGNED: {ComplaintStatus.IN_PROGRESS, ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED},
        ComplaintStatus.IN_PROGRESS: {ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED},
        ComplaintStatus.RESOLVED: {ComplaintStatus.CLOSED},
    },
)

ASSIGNABLE_STATUSES = frozenset(complaint_machine.sources(ComplaintStatus.IN_PROGRESS) | {ComplaintStatus.IN_PROGRESS})
RESOLUTION_STATUSES = frozenset({ComplaintStatus.RESOLVED, ComplaintStatus.CLOSED})
OVERDUE_STATUSES = frozenset({ComplaintStatus.OPEN, ComplaintStatus.ASSIGNED})
OVERDUE_AFTER = timedelta(days=7)


def assign(assignee_id: PydanticObjectId, actor_id: PydanticObjectId, now: datetime) -> Dict[str, Any]:
    return {
        "status": ComplaintStatus.IN_PROGRESS,
        "assigned_to": assignee_id,
        "assigned_by": actor_id,
        "assigned_at": now,
        "last_activity_at": now,
    }


def resolve(
    target: ComplaintStatus,
    resolution: str,
    notes: Optional[str],
    actor_id: PydanticObjectId,
    now: datetime,
) -> Dict[str, Any]:
    """Changes for closing out a complaint. A resolution text is mandatory."""
    if target not in RESOLUTION_STATUSES:
        raise ValidationFailedException.for_field("status", "Status must be Resolved or Closed", target.value)
    if not resolution or not resolution.strip():
        raise ValidationFailedException.for_field("resolution", "Resolution is required", resolution)

    changes = {
        "status": target,
        "resolution": resolution,
        "resolved_by": actor_id,
        "resolved_at": now,
        "last_activity_at": now,
    }
    if notes is not None:
        changes["resolution_notes"] = notes
    return changes


def next_escalation_level(level: int) -> int:
    return min(level + 1, MAX_ESCALATION_LEVEL)


def overdue_cutoff(now: datetime) -> datetime:
    """Complaints created before this instant and still unattended are overdue."""
    return now - OVERDUE_AFTER
