# Payments Feature - Service

from collections import defaultdict
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Tuple

from beanie import PydanticObjectId
from beanie.operators import In
from pymongo import ReturnDocument

from smartlab.core import audit
from smartlab.core.logging import logger
from smartlab.features.appointments.models import Appointment
from smartlab.features.auth.models import Patient, Role, User
from smartlab.features.auth.permissions import ensure_owner, ensure_patient_access, is_superadmin
from smartlab.features.payments import workflow
from smartlab.features.payments.models import Counter, Payment, PaymentStatus
from smartlab.features.payments.schemas import (
    CreatePaymentRequest,
    PaymentResponse,
    PaymentStatsResponse,
    RefundRequest,
    UpdatePaymentRequest,
)
from smartlab.shared.exceptions import StateConflictException, ValidationFailedException
from smartlab.shared.schemas import Pagination
from smartlab.shared.store import conditional_update, get_or_404


LABEL = "Payment"
INVOICE_COUNTER = "invoice"
REFUND_CONFLICT = "Only paid or partially paid payments can be refunded"
PRICED_FIELDS = {"amount", "items", "tax_amount", "discount_amount"}


def _as_datetime(value: date) -> datetime:
    return datetime.combine(value, time.min)


async def _page(query, pagination: Pagination) -> Tuple[List[Payment], int]:
    total = await query.count()
    payments = await (
        query.sort(-Payment.created_at)
        .skip(pagination.skip)
        .limit(pagination.limit)
        .to_list()
    )
    return payments, total


async def next_invoice_number(now: Optional[datetime] = None) -> str:
    """
    Allocate the next invoice number.

    The sequence lives in the ``counters`` collection and is bumped with a
    single upserting ``find_one_and_update``, so concurrent callers never
    receive the same value.
    """
    counter = await Counter.get_motor_collection().find_one_and_update(
        {"_id": INVOICE_COUNTER},
        {"$inc": {"seq": 1}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return workflow.invoice_number(now or datetime.utcnow(), counter["seq"])


class PaymentService:
    """Service class for invoices, payment status and refunds."""

    # ============== Reads ==============

    @staticmethod
    async def get_for(payment_id: PydanticObjectId, user: User) -> Payment:
        payment = await get_or_404(Payment, payment_id, LABEL)
        ensure_patient_access(user, payment.patient_id, "You can only access your own payments")
        return payment

    @staticmethod
    async def list_payments(
        pagination: Pagination,
        patient_id: Optional[PydanticObjectId] = None,
        created_by: Optional[PydanticObjectId] = None,
        status: Optional[PaymentStatus] = None,
    ) -> Tuple[List[Payment], int]:
        query = Payment.find()
        if patient_id is not None:
            query = query.find(Payment.patient_id == patient_id)
        if created_by is not None:
            query = query.find(Payment.created_by == created_by)
        if status is not None:
            query = query.find(Payment.payment_status == status)
        return await _page(query, pagination)

    @staticmethod
    async def list_mine(
        user: User,
        pagination: Pagination,
        status: Optional[PaymentStatus] = None,
    ) -> Tuple[List[Payment], int]:
        """Patients see their invoices, receptionists the ones they raised, super-admins all."""
        if user.role == Role.PATIENT:
            return await PaymentService.list_payments(pagination, patient_id=user.id, status=status)
        if user.role == Role.RECEPTIONIST:
            return await PaymentService.list_payments(pagination, created_by=user.id, status=status)
        return await PaymentService.list_payments(pagination, status=status)

    @staticmethod
    async def list_overdue(pagination: Pagination) -> Tuple[List[Payment], int]:
        """Unsettled invoices past their due date."""
        query = Payment.find(
            In(Payment.payment_status, [s.value for s in workflow.OPEN_STATUSES]),
            Payment.due_date < datetime.utcnow(),
        )
        return await _page(query, pagination)

    @staticmethod
    async def get_stats(start_date: Optional[date] = None, end_date: Optional[date] = None) -> PaymentStatsResponse:
        query = Payment.find()
        if start_date is not None and end_date is not None:
            query = query.find(
                Payment.created_at >= _as_datetime(start_date),
                Payment.created_at < _as_datetime(end_date) + timedelta(days=1),
            )
        payments = await query.to_list()

        counts = defaultdict(int)
        amounts = defaultdict(float)
        for payment in payments:
            counts[payment.payment_status] += 1
            amounts[payment.payment_status] += payment.total_amount

        return PaymentStatsResponse(
            status_breakdown=[
                {"status": s, "count": counts[s], "total_amount": round(amounts[s], 2)}
                for s in PaymentStatus
                if counts[s]
            ],
            total_payments=len(payments),
            total_amount=round(sum(amounts.values()), 2),
        )

    # ============== Mutations ==============

    @staticmethod
    async def create_payment(request: CreatePaymentRequest, user: User, ip: Optional[str] = None) -> Payment:
        """Raise an invoice for an existing patient. It starts out PENDING."""
        patient = await Patient.get(request.patient_id)
        if patient is None:
            raise ValidationFailedException.for_field("patientId", "Patient not found", str(request.patient_id))

        if request.appointment_id is not None:
            appointment = await Appointment.get(request.appointment_id)
            if appointment is None or appointment.patient_id != patient.id:
                raise ValidationFailedException.for_field(
                    "appointmentId", "Appointment not found for this patient", str(request.appointment_id)
                )

        items = workflow.price_items(i.model_dump() for i in request.items)
        payment = Payment(
            **request.model_dump(exclude={"items", "due_date"}),
            items=items,
            due_date=_as_datetime(request.due_date),
            total_amount=workflow.compute_total(request.amount, items, request.tax_amount, request.discount_amount),
            invoice_number=await next_invoice_number(),
            created_by=user.id,
        )
        await payment.insert()

        audit.log_create(user, "payment", payment.id, ip)
        logger.info(f"Invoice {payment.invoice_number} raised for patient {patient.id} by {user.email}")
        return payment

    @staticmethod
    async def update_payment(
        payment_id: PydanticObjectId,
        request: UpdatePaymentRequest,
        user: User,
        ip: Optional[str] = None,
    ) -> Payment:
        """
        Edit invoice fields.

        Only the super-admin may touch a PAID payment. Once a refund has been
        recorded the priced fields are fixed. The write is guarded by the
        revision read here.
        """
        payment = await get_or_404(Payment, payment_id, LABEL)
        ensure_owner(user, payment.created_by, "Only the payment's creator or a super administrator can modify it")
        if payment.payment_status == PaymentStatus.PAID and not is_superadmin(user):
            raise StateConflictException("Cannot update completed payments")

        changes = request.model_dump(exclude_unset=True, exclude_none=True)
        if not changes:
            return payment

        if "due_date" in changes:
            changes["due_date"] = _as_datetime(changes["due_date"])

        priced = PRICED_FIELDS & changes.keys()
        if priced and payment.refund_info is not None:
            raise StateConflictException("Cannot change the amount of a refunded payment")

        if priced:
            amount = changes.get("amount", payment.amount)
            if "items" in changes:
                items = workflow.price_items(changes["items"])
                changes["items"] = [i.model_dump() for i in items]
            else:
                items = payment.items
            changes["total_amount"] = workflow.compute_total(
                amount,
                items,
                changes.get("tax_amount", payment.tax_amount),
                changes.get("discount_amount", payment.discount_amount),
            )

        conditions = [{"revision": payment.revision}]
        if priced:
            conditions.append({"refund_info": None})
        if not is_superadmin(user):
            conditions.append({"payment_status": {"$ne": PaymentStatus.PAID.value}})

        updated = await conditional_update(
            Payment,
            payment.id,
            *conditions,
            update={"$set": changes},
            label=LABEL,
            conflict_message="Payment was changed by another request",
        )
        audit.log_update(user, "payment", payment.id, changes.keys(), ip)
        return updated

    @staticmethod
    async def delete_payment(payment_id: PydanticObjectId, user: User, ip: Optional[str] = None) -> None:
        payment = await get_or_404(Payment, payment_id, LABEL)
        await payment.delete()
        audit.log_delete(user, "payment", payment.id, ip)

    @staticmethod
    async def set_status(
        payment_id: PydanticObjectId,
        target: PaymentStatus,
        user: User,
        ip: Optional[str] = None,
    ) -> Payment:
        """Record a payment outcome. Only the creator or a super-admin may do this."""
        update = workflow.set_status(target, datetime.utcnow())

        payment = await get_or_404(Payment, payment_id, LABEL)
        ensure_owner(user, payment.created_by, "Only the payment's creator or a super administrator can change its status")
        workflow.payment_machine.ensure(payment.payment_status, target)

        updated = await conditional_update(
            Payment,
            payment.id,
            {"payment_status": payment.payment_status.value},
            update=update,
            label=LABEL,
            conflict_message=f"Payment is no longer {payment.payment_status.value.lower()}",
        )
        audit.log_update(user, "payment", payment.id, update["$set"].keys(), ip)
        logger.info(f"Payment {payment.invoice_number}: {payment.payment_status.value} -> {target.value} by {user.email}")
        return updated

    @staticmethod
    async def refund(
        payment_id: PydanticObjectId,
        request: RefundRequest,
        user: User,
        ip: Optional[str] = None,
    ) -> Payment:
        """
        Refund part or all of a settled payment.

        The refunded total read here is part of the precondition, so two
        concurrent refunds cannot together exceed the original amount.
        """
        payment = await get_or_404(Payment, payment_id, LABEL)
        ensure_owner(user, payment.created_by, "Only the payment's creator or a super administrator can process refunds")
        if payment.payment_status not in workflow.REFUNDABLE_STATUSES:
            raise StateConflictException(REFUND_CONFLICT)

        already = workflow.refunded_so_far(payment.refund_info)
        update = workflow.refund(
            payment.amount,
            already,
            request.refund_amount,
            request.refund_reason,
            request.refund_method,
            datetime.utcnow(),
        )

        if payment.refund_info is None:
            refund_condition = {"refund_info": None}
        else:
            refund_condition = {"refund_info.refund_amount": already}

        updated = await conditional_update(
            Payment,
            payment.id,
            In(Payment.payment_status, [s.value for s in workflow.REFUNDABLE_STATUSES]),
            refund_condition,
            update=update,
            label=LABEL,
            conflict_message=REFUND_CONFLICT,
        )
        audit.log_update(user, "payment", payment.id, ["payment_status", "refund_info"], ip)
        logger.info(f"Refund of {request.refund_amount} on {payment.invoice_number} by {user.email}")
        return updated

    # ============== Response shaping ==============

    @staticmethod
    def to_response(payment: Payment) -> PaymentResponse:
        return PaymentResponse(
            **payment.model_dump(exclude={"id", "patient_id", "appointment_id", "created_by", "revision"}),
            id=str(payment.id),
            patient_id=str(payment.patient_id),
            appointment_id=str(payment.appointment_id) if payment.appointment_id else None,
            created_by=str(payment.created_by),
        )
