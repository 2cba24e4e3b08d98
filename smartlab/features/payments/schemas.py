# Payments Feature - Schemas

from datetime import date, datetime
from typing import List, Optional

from beanie import PydanticObjectId
from pydantic import Field

from smartlab.features.payments.models import Currency, PaymentMethod, PaymentStatus
from smartlab.shared.schemas import CamelModel, FreeText, PageMeta


# ============== Embedded values ==============

class LineItemSchema(CamelModel):
    description: FreeText = Field(..., min_length=1, max_length=200)
    quantity: int = Field(1, ge=1)
    unit_price: float = Field(..., ge=0)


class InsuranceClaimSchema(CamelModel):
    provider: Optional[FreeText] = Field(None, max_length=100)
    policy_number: Optional[str] = Field(None, max_length=50)
    claim_number: Optional[str] = Field(None, max_length=50)
    coverage_amount: Optional[float] = Field(None, ge=0)
    patient_responsibility: Optional[float] = Field(None, ge=0)


class PaymentDetailsSchema(CamelModel):
    transaction_id: Optional[str] = Field(None, max_length=100)
    gateway_response: Optional[FreeText] = Field(None, max_length=500)
    processor_fee: Optional[float] = Field(None, ge=0)
    net_amount: Optional[float] = None


# ============== Requests ==============

class CreatePaymentRequest(CamelModel):
    """
    Request schema for raising an invoice.

    The invoice number is generated by the server.
    """
    patient_id: PydanticObjectId
    appointment_id: Optional[PydanticObjectId] = None
    amount: float = Field(..., ge=0)
    currency: Currency = Currency.USD
    payment_method: PaymentMethod
    due_date: date
    description: FreeText = Field(..., min_length=5, max_length=500)
    items: List[LineItemSchema] = Field(default_factory=list)
    tax_amount: float = Field(0, ge=0)
    discount_amount: float = Field(0, ge=0)
    insurance_info: Optional[InsuranceClaimSchema] = None
    payment_details: Optional[PaymentDetailsSchema] = None
    notes: Optional[FreeText] = Field(None, max_length=1000)


class UpdatePaymentRequest(CamelModel):
    """Editable invoice fields. Status moves through the status and refund endpoints."""
    amount: Optional[float] = Field(None, ge=0)
    currency: Optional[Currency] = None
    payment_method: Optional[PaymentMethod] = None
    due_date: Optional[date] = None
    description: Optional[FreeText] = Field(None, min_length=5, max_length=500)
    items: Optional[List[LineItemSchema]] = None
    tax_amount: Optional[float] = Field(None, ge=0)
    discount_amount: Optional[float] = Field(None, ge=0)
    insurance_info: Optional[InsuranceClaimSchema] = None
    payment_details: Optional[PaymentDetailsSchema] = None
    notes: Optional[FreeText] = Field(None, max_length=1000)


class UpdatePaymentStatusRequest(CamelModel):
    payment_status: PaymentStatus


class RefundRequest(CamelModel):
    refund_amount: float = Field(..., gt=0)
    refund_reason: FreeText = Field(..., min_length=1, max_length=500)
    refund_method: FreeText = Field(..., min_length=1, max_length=50)


# ============== Responses ==============

class LineItemView(CamelModel):
    description: str
    quantity: int
    unit_price: float
    total_price: float


class InsuranceClaimView(CamelModel):
    provider: Optional[str] = None
    policy_number: Optional[str] = None
    claim_number: Optional[str] = None
    coverage_amount: Optional[float] = None
    patient_responsibility: Optional[float] = None


class PaymentDetailsView(CamelModel):
    transaction_id: Optional[str] = None
    gateway_response: Optional[str] = None
    processor_fee: Optional[float] = None
    net_amount: Optional[float] = None


class RefundInfoView(CamelModel):
    refund_amount: float
    refund_date: datetime
    refund_reason: str
    refund_method: str


class PaymentResponse(CamelModel):
    id: str
    patient_id: str
    appointment_id: Optional[str] = None
    created_by: str
    invoice_number: str
    amount: float
    currency: Currency
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    payment_date: Optional[datetime] = None
    due_date: datetime
    description: str
    items: List[LineItemView] = []
    tax_amount: float
    discount_amount: float
    total_amount: float
    insurance_info: Optional[InsuranceClaimView] = None
    payment_details: Optional[PaymentDetailsView] = None
    refund_info: Optional[RefundInfoView] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PaymentListResponse(PageMeta):
    payments: List[PaymentResponse]


class StatusTotal(CamelModel):
    status: PaymentStatus
    count: int
    total_amount: float


class PaymentStatsResponse(CamelModel):
    status_breakdown: List[StatusTotal]
    total_payments: int
    total_amount: float
