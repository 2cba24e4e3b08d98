"""Conditional writes when another request got there first."""

import pytest
from beanie import PydanticObjectId

from smartlab.features.appointments import service as appointment_service
from smartlab.features.appointments.models import Appointment, AppointmentStatus
from smartlab.features.appointments.service import AppointmentService
from smartlab.features.payments import service as payment_service
from smartlab.features.payments.models import Payment, PaymentStatus
from smartlab.features.payments.schemas import RefundRequest
from smartlab.features.payments.service import PaymentService
from smartlab.shared.exceptions import NotFoundException, StateConflictException
from smartlab.shared.store import conditional_update
from conftest import bearer


async def book(client, patient) -> Appointment:
    response = await client.post(
        "/api/appointments",
        json={
            "type": "Blood Test",
            "appointmentDate": "2025-06-01",
            "appointmentTime": "09:30",
            "reason": "Annual checkup for routine bloodwork",
        },
        headers=bearer(patient["token"]),
    )
    assert response.status_code == 201, response.text
    return await Appointment.get(PydanticObjectId(response.json()["id"]))


def serve_stale(module, monkeypatch, document) -> None:
    """Make the service read ``document`` as it was, whatever the store now holds."""
    async def read_stale(document_cls, document_id, label):
        return document

    monkeypatch.setattr(module, "get_or_404", read_stale)


async def test_conditional_update_bumps_revision(client, patient):
    appointment = await book(client, patient)

    updated = await conditional_update(
        Appointment,
        appointment.id,
        {"revision": appointment.revision},
        update={"$set": {"notes": "fasting required"}},
        label="Appointment",
    )

    assert updated.notes == "fasting required"
    assert updated.revision == appointment.revision + 1
    assert updated.updated_at >= appointment.updated_at


async def test_conditional_update_tells_missing_from_stale(client, patient):
    appointment = await book(client, patient)

    with pytest.raises(NotFoundException):
        await conditional_update(Appointment, PydanticObjectId(), update={"$set": {"notes": "x"}}, label="Appointment")

    with pytest.raises(StateConflictException):
        await conditional_update(
            Appointment,
            appointment.id,
            {"revision": appointment.revision + 1},
            update={"$set": {"notes": "x"}},
            label="Appointment",
        )


async def test_transition_from_a_stale_read_is_a_conflict(client, monkeypatch, patient, receptionist):
    """Approve and reject race on the same PENDING appointment; the reject lands first."""
    stale = await book(client, patient)
    assert stale.status == AppointmentStatus.PENDING

    rejected = await client.post(
        f"/api/appointments/{stale.id}/reject",
        json={"rejectionReason": "slot unavailable"},
        headers=bearer(receptionist["token"]),
    )
    assert rejected.status_code == 200

    serve_stale(appointment_service, monkeypatch, stale)
    with pytest.raises(StateConflictException):
        await AppointmentService.approve(stale.id, None, receptionist["user"])

    current = await Appointment.get(stale.id)
    assert current.status == AppointmentStatus.REJECTED
    assert current.approved_by is None


async def test_concurrent_refunds_cannot_both_apply(client, monkeypatch, patient, receptionist):
    response = await client.post(
        "/api/payments",
        json={
            "patientId": patient["id"],
            "amount": 100,
            "paymentMethod": "Credit Card",
            "dueDate": "2030-01-31",
            "description": "Complete blood count",
        },
        headers=bearer(receptionist["token"]),
    )
    url = f"/api/payments/{response.json()['id']}"
    await client.patch(f"{url}/status", json={"paymentStatus": "Paid"}, headers=bearer(receptionist["token"]))
    stale = await Payment.get(PydanticObjectId(response.json()["id"]))

    first = await client.post(
        f"{url}/refund",
        json={"refundAmount": 40, "refundReason": "Test cancelled", "refundMethod": "Card"},
        headers=bearer(receptionist["token"]),
    )
    assert first.status_code == 200

    serve_stale(payment_service, monkeypatch, stale)
    second = RefundRequest(refund_amount=70, refund_reason="Duplicate charge", refund_method="Card")
    with pytest.raises(StateConflictException):
        await PaymentService.refund(stale.id, second, receptionist["user"])

    current = await Payment.get(stale.id)
    assert current.payment_status == PaymentStatus.PARTIALLY_PAID
    assert current.refund_info.refund_amount == 40
