# Complaints Feature - Models

from datetime import datetime
from enum import Enum
from typing import List, Optional

from beanie import Document, PydanticObjectId
from pydantic import BaseModel, Field
from pymongo import IndexModel

from smartlab.shared.models import Attachment, RevisionMixin, TimestampMixin


MAX_ESCALATION_LEVEL = 3


class ComplaintCategory(str, Enum):
    GENERAL = "General"
    SERVICE_QUALITY = "Service Quality"
    BILLING = "Billing"
    APPOINTMENT = "Appointment"
    STAFF_BEHAVIOR = "Staff Behavior"
    FACILITY = "Facility"
    TEST_RESULTS = "Test Results"
    PRIVACY = "Privacy"
    OTHER = "Other"


class ComplaintPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


class ComplaintStatus(str, Enum):
    OPEN = "Open"
    ASSIGNED = "Assigned"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    CLOSED = "Closed"


class ContactMethod(str, Enum):
    EMAIL = "Email"
    PHONE = "Phone"
    IN_PERSON = "In Person"
    MAIL = "Mail"


class Comment(BaseModel):
    text: str
    author: PydanticObjectId
    at: datetime = Field(default_factory=datetime.utcnow)


class Escalation(BaseModel):
    level: int
    escalated_by: PydanticObjectId
    escalated_at: datetime = Field(default_factory=datetime.utcnow)
    reason: Optional[str] = None


class Complaint(Document, TimestampMixin, RevisionMixin):
    """Patient complaint, worked by staff from Open through to Closed."""

    patient_id: PydanticObjectId
    subject: str
    description: str
    category: ComplaintCategory = ComplaintCategory.GENERAL
    priority: ComplaintPriority = ComplaintPriority.MEDIUM
    status: ComplaintStatus = ComplaintStatus.OPEN

    # Assignment
    assigned_to: Optional[PydanticObjectId] = None
    assigned_at: Optional[datetime] = None
    assigned_by: Optional[PydanticObjectId] = None

    # Resolution
    resolved_by: Optional[PydanticObjectId] = None
    resolved_at: Optional[datetime] = None
    resolution: Optional[str] = None
    resolution_notes: Optional[str] = None

    contact_method: ContactMethod = ContactMethod.EMAIL
    preferred_contact_time: Optional[str] = None
    attachments: List[Attachment] = Field(default_factory=list)
    comments: List[Comment] = Field(default_factory=list)

    escalation_level: int = Field(default=0, ge=0, le=MAX_ESCALATION_LEVEL)
    escalation_history: List[Escalation] = Field(default_factory=list)
    last_activity_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def age_in_days(self) -> int:
        return (datetime.utcnow() - self.created_at).days

    class Settings:
        name = "complaints"
        use_state_management = True
        indexes = [
            IndexModel([("patient_id", 1), ("created_at", -1)]),
            IndexModel([("status", 1), ("priority", 1)]),
            IndexModel([("assigned_to", 1), ("status", 1)]),
        ]
