# Payments Feature - Models

from datetime import datetime
from enum import Enum
from typing import List, Optional

from beanie import Document, Indexed, PydanticObjectId
from pydantic import BaseModel, Field
from pymongo import IndexModel

from smartlab.shared.models import RevisionMixin, TimestampMixin


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CAD = "CAD"
    AUD = "AUD"


class PaymentMethod(str, Enum):
    CASH = "Cash"
    CREDIT_CARD = "Credit Card"
    DEBIT_CARD = "Debit Card"
    BANK_TRANSFER = "Bank Transfer"
    INSURANCE = "Insurance"
    CHECK = "Check"
    ONLINE_PAYMENT = "Online Payment"


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"
    REFUNDED = "Refunded"
    PARTIALLY_PAID = "Partially Paid"


class LineItem(BaseModel):
    description: str
    quantity: int = 1
    unit_price: float
    total_price: float


class InsuranceClaim(BaseModel):
    provider: Optional[str] = None
    policy_number: Optional[str] = None
    claim_number: Optional[str] = None
    coverage_amount: Optional[float] = None
    patient_responsibility: Optional[float] = None


class PaymentDetails(BaseModel):
    transaction_id: Optional[str] = None
    gateway_response: Optional[str] = None
    processor_fee: Optional[float] = None
    net_amount: Optional[float] = None


class RefundInfo(BaseModel):
    refund_amount: float
    refund_date: datetime
    refund_reason: str
    refund_method: str


class Payment(Document, TimestampMixin, RevisionMixin):
    """Invoice for a patient. The system records payments; it never moves money."""

    patient_id: PydanticObjectId
    appointment_id: Optional[PydanticObjectId] = None
    created_by: PydanticObjectId
    invoice_number: Indexed(str, unique=True)

    amount: float = Field(..., ge=0)
    currency: Currency = Currency.USD
    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_date: Optional[datetime] = None
    due_date: datetime
    description: str

    items: List[LineItem] = Field(default_factory=list)
    tax_amount: float = 0
    discount_amount: float = 0
    total_amount: float

    insurance_info: Optional[InsuranceClaim] = None
    payment_details: Optional[PaymentDetails] = None
    refund_info: Optional[RefundInfo] = None
    notes: Optional[str] = None

    class Settings:
        name = "payments"
        use_state_management = True
        indexes = [
            IndexModel([("patient_id", 1), ("created_at", -1)]),
            IndexModel([("appointment_id", 1)]),
            IndexModel([("payment_status", 1)]),
        ]


class Counter(Document):
    """Named monotonically increasing sequence, bumped atomically in the store."""

    id: str
    seq: int = 0

    class Settings:
        name = "counters"
