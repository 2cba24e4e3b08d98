# Complaints Feature - Schemas

from datetime import datetime
from typing import List, Optional

from beanie import PydanticObjectId
from pydantic import Field

from smartlab.features.complaints.models import (
    ComplaintCategory,
    ComplaintPriority,
    ComplaintStatus,
    ContactMethod,
)
from smartlab.shared.schemas import AttachmentSchema, AttachmentView, CamelModel, FreeText, PageMeta


# ============== Requests ==============

class CreateComplaintRequest(CamelModel):
    patient_id: Optional[PydanticObjectId] = None
    subject: FreeText = Field(..., min_length=5, max_length=200)
    description: FreeText = Field(..., min_length=10, max_length=5000)
    category: ComplaintCategory = ComplaintCategory.GENERAL
    priority: ComplaintPriority = ComplaintPriority.MEDIUM
    contact_method: ContactMethod = ContactMethod.EMAIL
    preferred_contact_time: Optional[FreeText] = Field(None, max_length=100)
    attachments: List[AttachmentSchema] = Field(default_factory=list)


class UpdateComplaintRequest(CamelModel):
    subject: Optional[FreeText] = Field(None, min_length=5, max_length=200)
    description: Optional[FreeText] = Field(None, min_length=10, max_length=5000)
    category: Optional[ComplaintCategory] = None
    contact_method: Optional[ContactMethod] = None
    preferred_contact_time: Optional[FreeText] = Field(None, max_length=100)


class AssignComplaintRequest(CamelModel):
    assigned_to: PydanticObjectId


class ResolveComplaintRequest(CamelModel):
    resolution: FreeText = Field(..., min_length=1, max_length=2000)
    resolution_notes: Optional[FreeText] = Field(None, max_length=2000)
    status: ComplaintStatus = ComplaintStatus.RESOLVED


class UpdatePriorityRequest(CamelModel):
    priority: ComplaintPriority


class AddCommentRequest(CamelModel):
    text: FreeText = Field(..., min_length=1, max_length=1000)


class EscalateComplaintRequest(CamelModel):
    reason: Optional[FreeText] = Field(None, max_length=500)


# ============== Responses ==============

class CommentView(CamelModel):
    text: str
    author: str
    at: datetime


class EscalationView(CamelModel):
    level: int
    escalated_by: str
    escalated_at: datetime
    reason: Optional[str] = None


class ComplaintResponse(CamelModel):
    id: str
    patient_id: str
    subject: str
    description: str
    category: ComplaintCategory
    priority: ComplaintPriority
    status: ComplaintStatus
    assigned_to: Optional[str] = None
    assigned_at: Optional[datetime] = None
    assigned_by: Optional[str] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution: Optional[str] = None
    resolution_notes: Optional[str] = None
    contact_method: ContactMethod
    preferred_contact_time: Optional[str] = None
    attachments: List[AttachmentView] = []
    comments: List[CommentView] = []
    escalation_level: int
    escalation_history: List[EscalationView] = []
    last_activity_at: datetime
    age_in_days: int
    created_at: datetime
    updated_at: datetime


class ComplaintListResponse(PageMeta):
    complaints: List[ComplaintResponse]


class StatusCount(CamelModel):
    status: ComplaintStatus
    count: int


class PriorityCount(CamelModel):
    priority: ComplaintPriority
    count: int


class ComplaintStatsResponse(CamelModel):
    status_breakdown: List[StatusCount]
    priority_breakdown: List[PriorityCount]
    total_complaints: int
    avg_resolution_time_hours: float
