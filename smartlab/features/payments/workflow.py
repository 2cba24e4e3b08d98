# Payments Feature - Workflow
#
# PENDING -> PAID | PARTIALLY_PAID | FAILED
# PARTIALLY_PAID -> PAID
# Refunds move PAID or PARTIALLY_PAID to REFUNDED (fully refunded) or PARTIALLY_PAID.

from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from smartlab.features.payments.models import LineItem, PaymentStatus
from smartlab.shared.exceptions import ValidationFailedException
from smartlab.shared.workflow import StateMachine


payment_machine = StateMachine(
    "payment",
    {
        PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.PARTIALLY_PAID, PaymentStatus.FAILED},
        PaymentStatus.PARTIALLY_PAID: {PaymentStatus.PAID},
    },
)

# Targets accepted by the status endpoint; REFUNDED is reached only through a refund
SETTABLE_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.PARTIALLY_PAID, PaymentStatus.FAILED})
REFUNDABLE_STATUSES = frozenset({PaymentStatus.PAID, PaymentStatus.PARTIALLY_PAID})
OPEN_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.PARTIALLY_PAID})


def price_items(items: Iterable[Dict[str, Any]]) -> list:
    """Line items with ``total_price = quantity * unit_price``."""
    return [
        LineItem(**{**item, "total_price": round(item["quantity"] * item["unit_price"], 2)})
        for item in items
    ]


def compute_total(amount: float, items: list, tax_amount: float, discount_amount: float) -> float:
    """
    Invoice total.

    With line items the total is their sum plus tax minus discount; without
    items the invoice amount stands in for the sum.
    """
    subtotal = sum(item.total_price for item in items) if items else amount
    total = round(subtotal + tax_amount - discount_amount, 2)
    if total < 0:
        raise ValidationFailedException.for_field("discountAmount", "Discount cannot exceed the invoice subtotal", discount_amount)
    return total


def set_status(target: PaymentStatus, now: datetime) -> Dict[str, Any]:
    """Update document for a status change. Only a PAID payment carries a payment date."""
    if target not in SETTABLE_STATUSES:
        raise ValidationFailedException.for_field(
            "paymentStatus", "Invalid payment status", target.value
        )
    if target == PaymentStatus.PAID:
        return {"$set": {"payment_status": target, "payment_date": now}}
    return {"$set": {"payment_status": target}, "$unset": {"payment_date": ""}}


def refund(
    amount: float,
    already_refunded: float,
    refund_amount: float,
    reason: str,
    method: str,
    now: datetime,
) -> Dict[str, Any]:
    """
    Update document for a refund.

    Refunds accumulate. The payment is REFUNDED once the refunded total equals
    the original amount, and PARTIALLY_PAID while some of it remains.
    """
    total_refunded = round(already_refunded + refund_amount, 2)
    if refund_amount <= 0:
        raise ValidationFailedException.for_field("refundAmount", "Refund amount must be greater than zero", refund_amount)
    if total_refunded > amount:
        raise ValidationFailedException.for_field(
            "refundAmount", "Refund amount cannot exceed payment amount", refund_amount
        )

    status = PaymentStatus.REFUNDED if total_refunded == amount else PaymentStatus.PARTIALLY_PAID
    return {
        "$set": {
            "payment_status": status,
            "refund_info": {
                "refund_amount": total_refunded,
                "refund_date": now,
                "refund_reason": reason,
                "refund_method": method,
            },
        },
        "$unset": {"payment_date": ""},
    }


def invoice_number(now: datetime, sequence: int) -> str:
    """``INV-<epoch millis>-<sequence, zero-padded to 4>``."""
    millis = int((now - datetime(1970, 1, 1)).total_seconds() * 1000)
    return f"INV-{millis}-{sequence:04d}"


def refunded_so_far(refund_info: Optional[Any]) -> float:
    return refund_info.refund_amount if refund_info is not None else 0.0
