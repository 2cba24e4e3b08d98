# Reports Feature - Workflow
#
# DRAFT -> PENDING_REVIEW -> APPROVED | REJECTED
# PENDING_REVIEW and REJECTED may go back to DRAFT; a REJECTED report may be resubmitted.
# APPROVED is terminal and frozen for everyone but the super-admin.

from datetime import datetime
from typing import Any, Dict, Optional

from beanie import PydanticObjectId

from smartlab.features.auth.models import User
from smartlab.features.auth.permissions import is_owner, is_superadmin
from smartlab.features.reports.models import Report, ReportStatus
from smartlab.shared.exceptions import ForbiddenException, StateConflictException
from smartlab.shared.workflow import StateMachine


report_machine = StateMachine(
    "report",
    {
        ReportStatus.DRAFT: {ReportStatus.PENDING_REVIEW},
        ReportStatus.PENDING_REVIEW: {ReportStatus.APPROVED, ReportStatus.REJECTED, ReportStatus.DRAFT},
        ReportStatus.REJECTED: {ReportStatus.DRAFT, ReportStatus.PENDING_REVIEW},
    },
)

REVIEWED_STATUSES = frozenset({ReportStatus.APPROVED, ReportStatus.REJECTED})


def ensure_author(user: User, report: Report) -> None:
    """Only the creator or a super-admin may change a report."""
    if not (is_superadmin(user) or is_owner(user, report.created_by)):
        raise ForbiddenException("Only the report's creator or a super administrator can modify it")


def ensure_editable(user: User, report: Report) -> None:
    if report.status == ReportStatus.APPROVED and not is_superadmin(user):
        raise StateConflictException("Approved reports are frozen and can only be changed by a super administrator")


def transition(
    target: ReportStatus,
    actor_id: PydanticObjectId,
    review_notes: Optional[str],
    now: datetime,
) -> Dict[str, Any]:
    """
    Update document for a status change.

    Reviewer and review time are set exactly when the report lands in a
    reviewed state, and cleared when it leaves one.
    """
    if target in REVIEWED_STATUSES:
        changes: Dict[str, Any] = {
            "status": target,
            "reviewed_by": actor_id,
            "reviewed_at": now,
        }
        if review_notes is not None:
            changes["review_notes"] = review_notes
        return {"$set": changes}

    return {
        "$set": {"status": target},
        "$unset": {"reviewed_by": "", "reviewed_at": ""},
    }
