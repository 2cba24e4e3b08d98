# Appointments Feature - Models

from datetime import datetime
from enum import Enum
from typing import List, Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import BaseModel, Field
from pymongo import IndexModel

from smartlab.shared.models import Address, RevisionMixin, TimestampMixin


class AppointmentType(str, Enum):
    BLOOD_TEST = "Blood Test"
    URINE_TEST = "Urine Test"
    X_RAY = "X-Ray"
    CT_SCAN = "CT Scan"
    MRI = "MRI"
    ULTRASOUND = "Ultrasound"
    OTHER = "Other"


class AppointmentStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "No Show"


class TestResultStatus(str, Enum):
    NORMAL = "Normal"
    ABNORMAL = "Abnormal"
    CRITICAL = "Critical"


class BillingStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    PARTIAL = "Partial"
    REFUNDED = "Refunded"


class HomeCollection(BaseModel):
    """Home sample collection sub-flow. Approval implies a request on an approved appointment."""
    requested: bool = False
    approved: bool = False
    collection_address: Optional[Address] = None
    collection_date: Optional[datetime] = None
    collection_time: Optional[str] = None
    collector_id: Optional[PydanticObjectId] = None
    requested_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[PydanticObjectId] = None


class TestResult(BaseModel):
    test_name: str
    result: str
    normal_range: Optional[str] = None
    status: TestResultStatus = TestResultStatus.NORMAL
    notes: Optional[str] = None


class PaymentSummary(BaseModel):
    status: BillingStatus = BillingStatus.PENDING
    total_amount: float = 0
    paid_amount: float = 0


class Appointment(Document, TimestampMixin, RevisionMixin):
    """Diagnostic appointment requested by a patient and approved or rejected by staff."""

    patient_id: Indexed(PydanticObjectId)
    receptionist_id: Optional[PydanticObjectId] = None

    appointment_date: datetime
    appointment_time: str
    appointment_type: AppointmentType
    reason: str

    status: AppointmentStatus = AppointmentStatus.PENDING
    approval_notes: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    home_collection: HomeCollection = Field(default_factory=HomeCollection)
    test_results: List[TestResult] = Field(default_factory=list)
    payment: PaymentSummary = Field(default_factory=PaymentSummary)

    class Settings:
        name = "appointments"
        use_state_management = True
        indexes = [
            IndexModel([("receptionist_id", 1)]),
            IndexModel([("appointment_date", 1)]),
            IndexModel([("status", 1)]),
        ]
