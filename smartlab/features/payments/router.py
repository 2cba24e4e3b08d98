# Payments Feature - Router

from datetime import date
from typing import Optional

from beanie import PydanticObjectId
from fastapi import APIRouter, Depends, Query, status

from smartlab.core.audit import log_read
from smartlab.dependencies import get_client_ip, get_pagination
from smartlab.features.auth.dependencies import get_current_user
from smartlab.features.auth.models import User
from smartlab.features.auth.permissions import require_patient, require_staff, require_superadmin
from smartlab.features.payments.models import PaymentStatus
from smartlab.features.payments.schemas import (
    CreatePaymentRequest,
    PaymentListResponse,
    PaymentResponse,
    PaymentStatsResponse,
    RefundRequest,
    UpdatePaymentRequest,
    UpdatePaymentStatusRequest,
)
from smartlab.features.payments.service import PaymentService
from smartlab.shared.schemas import MessageResponse, Pagination, page_fields


router = APIRouter(prefix="/payments", tags=["Payments"])


def _page(payments, total: int, pagination: Pagination) -> PaymentListResponse:
    return PaymentListResponse(
        payments=[PaymentService.to_response(p) for p in payments],
        **page_fields(pagination, total),
    )


# ============== Lists ==============

@router.get("", response_model=PaymentListResponse)
async def list_payments(
    patient_id: Optional[PydanticObjectId] = Query(None, alias="patientId"),
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_staff),
):
    """
    List all payments (staff only).

    - **patientId**: Filter by patient
    - **status**: Filter by payment status
    """
    payments, total = await PaymentService.list_payments(pagination, patient_id=patient_id, status=payment_status)
    return _page(payments, total, pagination)


@router.get("/my", response_model=PaymentListResponse)
async def list_my_payments(
    payment_status: Optional[PaymentStatus] = Query(None, alias="status"),
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(get_current_user),
):
    """Patients get their invoices; receptionists the invoices they raised."""
    payments, total = await PaymentService.list_mine(current_user, pagination, payment_status)
    return _page(payments, total, pagination)


@router.get("/overdue", response_model=PaymentListResponse)
async def list_overdue_payments(
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_staff),
):
    """Pending or partially paid invoices past their due date."""
    payments, total = await PaymentService.list_overdue(pagination)
    return _page(payments, total, pagination)


@router.get("/stats/summary", response_model=PaymentStatsResponse)
async def get_payment_stats(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    current_user: User = Depends(require_staff),
):
    """
    Payment statistics grouped by status.

    - **startDate**, **endDate**: Restrict to payments created in this range (both required)
    """
    return await PaymentService.get_stats(start_date, end_date)


@router.get("/patient/me", response_model=PaymentListResponse)
async def list_patient_own_payments(
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_patient),
):
    """The calling patient's invoices."""
    payments, total = await PaymentService.list_payments(pagination, patient_id=current_user.id)
    return _page(payments, total, pagination)


@router.get("/patient/{patient_id}", response_model=PaymentListResponse)
async def list_patient_payments(
    patient_id: PydanticObjectId,
    pagination: Pagination = Depends(get_pagination),
    current_user: User = Depends(require_staff),
):
    """All invoices of one patient (staff only)."""
    payments, total = await PaymentService.list_payments(pagination, patient_id=patient_id)
    return _page(payments, total, pagination)


# ============== Single payment ==============

@router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: PydanticObjectId,
    current_user: User = Depends(get_current_user),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Get one payment. Patients can only read their own."""
    payment = await PaymentService.get_for(payment_id, current_user)
    log_read(current_user, "payment", payment_id, ip)
    return PaymentService.to_response(payment)


@router.post("", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def create_payment(
    request: CreatePaymentRequest,
    current_user: User = Depends(require_staff),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Raise an invoice (staff only).

    - **amount**: Invoice amount
    - **paymentMethod**: Cash, Credit Card, Debit Card, Bank Transfer, Insurance, Check or Online Payment
    - **dueDate**: YYYY-MM-DD
    - **items**: Optional line items; when present the total is their sum plus tax minus discount
    """
    payment = await PaymentService.create_payment(request, current_user, ip)
    return PaymentService.to_response(payment)


@router.put("/{payment_id}", response_model=PaymentResponse)
async def update_payment(
    payment_id: PydanticObjectId,
    request: UpdatePaymentRequest,
    current_user: User = Depends(require_staff),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Edit an invoice (creator or super-admin). Paid invoices are super-admin only."""
    payment = await PaymentService.update_payment(payment_id, request, current_user, ip)
    return PaymentService.to_response(payment)


@router.delete("/{payment_id}", response_model=MessageResponse)
async def delete_payment(
    payment_id: PydanticObjectId,
    current_user: User = Depends(require_superadmin),
    ip: Optional[str] = Depends(get_client_ip),
):
    """Delete a payment record (super-admin only)."""
    await PaymentService.delete_payment(payment_id, current_user, ip)
    return MessageResponse(message="Payment deleted successfully")


# ============== Workflow ==============

@router.patch("/{payment_id}/status", response_model=PaymentResponse)
async def update_payment_status(
    payment_id: PydanticObjectId,
    request: UpdatePaymentStatusRequest,
    current_user: User = Depends(require_staff),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Record a payment outcome.

    - **paymentStatus**: Paid, Partially Paid or Failed
    """
    payment = await PaymentService.set_status(payment_id, request.payment_status, current_user, ip)
    return PaymentService.to_response(payment)


@router.post("/{payment_id}/refund", response_model=PaymentResponse)
async def refund_payment(
    payment_id: PydanticObjectId,
    request: RefundRequest,
    current_user: User = Depends(require_staff),
    ip: Optional[str] = Depends(get_client_ip),
):
    """
    Refund a paid payment.

    - **refundAmount**: Refunds accumulate and may not exceed the payment amount
    - **refundReason**, **refundMethod**: Required
    """
    payment = await PaymentService.refund(payment_id, request, current_user, ip)
    return PaymentService.to_response(payment)
