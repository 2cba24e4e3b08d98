# Reports Feature - Models

from datetime import datetime
from enum import Enum
from typing import List, Optional

from beanie import Document, PydanticObjectId
from pydantic import BaseModel, Field
from pymongo import IndexModel

from smartlab.shared.models import Attachment, RevisionMixin, TimestampMixin


class ReportType(str, Enum):
    BLOOD_TEST = "Blood Test"
    URINE_TEST = "Urine Test"
    X_RAY = "X-Ray"
    CT_SCAN = "CT Scan"
    MRI = "MRI"
    ULTRASOUND = "Ultrasound"
    ECG = "ECG"
    PATHOLOGY = "Pathology"
    GENERAL = "General"


class ReportStatus(str, Enum):
    DRAFT = "Draft"
    PENDING_REVIEW = "Pending Review"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class ReportPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class FindingStatus(str, Enum):
    NORMAL = "Normal"
    ABNORMAL = "Abnormal"
    CRITICAL = "Critical"
    PENDING = "Pending"


class Finding(BaseModel):
    test_name: str
    result: str
    normal_range: Optional[str] = None
    unit: Optional[str] = None
    status: FindingStatus = FindingStatus.PENDING


class Report(Document, TimestampMixin, RevisionMixin):
    """Diagnostic report written by staff for one appointment of one patient."""

    patient_id: PydanticObjectId
    appointment_id: PydanticObjectId
    created_by: PydanticObjectId
    reviewed_by: Optional[PydanticObjectId] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None

    report_type: ReportType
    title: str
    description: str
    findings: List[Finding] = Field(default_factory=list)
    diagnosis: Optional[str] = None
    recommendations: List[str] = Field(default_factory=list)
    follow_up_required: bool = False
    follow_up_date: Optional[datetime] = None
    attachments: List[Attachment] = Field(default_factory=list)

    status: ReportStatus = ReportStatus.DRAFT
    priority: ReportPriority = ReportPriority.MEDIUM
    is_confidential: bool = False

    class Settings:
        name = "reports"
        use_state_management = True
        indexes = [
            IndexModel([("patient_id", 1), ("created_at", -1)]),
            IndexModel([("status", 1), ("priority", 1)]),
        ]
