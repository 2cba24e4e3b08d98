# Appointments Feature - Schemas

from datetime import date, datetime
from typing import List, Optional

from beanie import PydanticObjectId
from pydantic import Field

from smartlab.features.appointments.models import (
    AppointmentStatus,
    AppointmentType,
    BillingStatus,
    TestResultStatus,
)
from smartlab.shared.schemas import (
    AddressSchema,
    AddressView,
    CamelModel,
    FreeText,
    PageMeta,
    TIME_PATTERN,
)


# ============== Embedded values ==============

class TestResultSchema(CamelModel):
    test_name: FreeText = Field(..., min_length=1, max_length=200)
    result: FreeText = Field(..., min_length=1, max_length=500)
    normal_range: Optional[FreeText] = Field(None, max_length=200)
    status: TestResultStatus = TestResultStatus.NORMAL
    notes: Optional[FreeText] = Field(None, max_length=1000)


class PaymentSummarySchema(CamelModel):
    status: Optional[BillingStatus] = None
    total_amount: Optional[float] = Field(None, ge=0)
    paid_amount: Optional[float] = Field(None, ge=0)


# ============== Requests ==============

class CreateAppointmentRequest(CamelModel):
    """Request schema for a patient booking an appointment."""
    patient_id: Optional[PydanticObjectId] = None
    appointment_date: date
    appointment_time: str = Field(..., pattern=TIME_PATTERN)
    appointment_type: AppointmentType = Field(..., alias="type")
    reason: FreeText = Field(..., min_length=10, max_length=500)


class UpdateAppointmentRequest(CamelModel):
    """
    Request schema for editing an appointment.

    Patients may change the scheduling fields while the appointment is pending;
    staff may also record test results and the payment summary.
    """
    appointment_date: Optional[date] = None
    appointment_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    appointment_type: Optional[AppointmentType] = Field(None, alias="type")
    reason: Optional[FreeText] = Field(None, min_length=10, max_length=500)
    test_results: Optional[List[TestResultSchema]] = None
    payment: Optional[PaymentSummarySchema] = None


class ApproveAppointmentRequest(CamelModel):
    approval_notes: Optional[FreeText] = Field(None, max_length=500)


class RejectAppointmentRequest(CamelModel):
    rejection_reason: FreeText = Field(..., min_length=1, max_length=500)


class UpdateAppointmentStatusRequest(CamelModel):
    status: AppointmentStatus


class HomeCollectionRequest(CamelModel):
    collection_address: AddressSchema
    collection_date: date
    collection_time: str = Field(..., pattern=TIME_PATTERN)


class ApproveHomeCollectionRequest(CamelModel):
    collector_id: PydanticObjectId


# ============== Responses ==============

class HomeCollectionView(CamelModel):
    requested: bool = False
    approved: bool = False
    collection_address: Optional[AddressView] = None
    collection_date: Optional[datetime] = None
    collection_time: Optional[str] = None
    collector_id: Optional[str] = None
    requested_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None


class TestResultView(CamelModel):
    test_name: str
    result: str
    normal_range: Optional[str] = None
    status: TestResultStatus
    notes: Optional[str] = None


class PaymentSummaryView(CamelModel):
    status: BillingStatus
    total_amount: float
    paid_amount: float


class AppointmentResponse(CamelModel):
    id: str
    patient_id: str
    receptionist_id: Optional[str] = None
    appointment_date: datetime
    appointment_time: str
    appointment_type: AppointmentType = Field(..., alias="type")
    reason: str
    status: AppointmentStatus
    status_display: str
    approval_notes: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    home_collection: HomeCollectionView
    test_results: List[TestResultView] = []
    payment: PaymentSummaryView
    created_at: datetime
    updated_at: datetime


class AppointmentListResponse(PageMeta):
    appointments: List[AppointmentResponse]
