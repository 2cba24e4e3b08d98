"""Invoices, payment status and refund accounting."""

import re

from conftest import bearer, make_staff


async def raise_invoice(client, staff, patient, **overrides) -> dict:
    payload = {
        "patientId": patient["id"],
        "amount": 100,
        "currency": "USD",
        "paymentMethod": "Credit Card",
        "dueDate": "2030-01-31",
        "description": "Complete blood count",
    }
    payload.update(overrides)
    response = await client.post("/api/payments", json=payload, headers=bearer(staff["token"]))
    assert response.status_code == 201, response.text
    return response.json()


async def mark_paid(client, staff, payment) -> dict:
    response = await client.patch(
        f"/api/payments/{payment['id']}/status",
        json={"paymentStatus": "Paid"},
        headers=bearer(staff["token"]),
    )
    assert response.status_code == 200, response.text
    return response.json()


async def test_refund_accounting(client, patient, receptionist):
    payment = await raise_invoice(client, receptionist, patient)
    assert payment["paymentStatus"] == "Pending"
    assert payment["totalAmount"] == 100

    paid = await mark_paid(client, receptionist, payment)
    assert paid["paymentStatus"] == "Paid"
    assert paid["paymentDate"] is not None

    url = f"/api/payments/{payment['id']}/refund"
    refund = {"refundReason": "Test cancelled", "refundMethod": "Card"}

    partial = await client.post(url, json={**refund, "refundAmount": 40}, headers=bearer(receptionist["token"]))
    assert partial.status_code == 200, partial.text
    assert partial.json()["paymentStatus"] == "Partially Paid"
    assert partial.json()["refundInfo"]["refundAmount"] == 40

    too_much = await client.post(url, json={**refund, "refundAmount": 101}, headers=bearer(receptionist["token"]))
    assert too_much.status_code == 400
    assert too_much.json()["errors"][0]["field"] == "refundAmount"

    rest = await client.post(url, json={**refund, "refundAmount": 60}, headers=bearer(receptionist["token"]))
    assert rest.status_code == 200
    assert rest.json()["paymentStatus"] == "Refunded"
    assert rest.json()["refundInfo"]["refundAmount"] == 100

    again = await client.post(url, json={**refund, "refundAmount": 1}, headers=bearer(receptionist["token"]))
    assert again.status_code == 409


async def test_pending_payment_cannot_be_refunded(client, patient, receptionist):
    payment = await raise_invoice(client, receptionist, patient)

    response = await client.post(
        f"/api/payments/{payment['id']}/refund",
        json={"refundAmount": 10, "refundReason": "Changed mind", "refundMethod": "Cash"},
        headers=bearer(receptionist["token"]),
    )

    assert response.status_code == 409


async def test_invoice_numbers_are_unique(client, patient, receptionist):
    numbers = {(await raise_invoice(client, receptionist, patient))["invoiceNumber"] for _ in range(3)}

    assert len(numbers) == 3
    assert all(re.fullmatch(r"INV-\d+-\d{4}", n) for n in numbers)


async def test_total_from_line_items(client, patient, receptionist):
    payment = await raise_invoice(
        client,
        receptionist,
        patient,
        items=[
            {"description": "CBC", "quantity": 1, "unitPrice": 40},
            {"description": "Lipid panel", "quantity": 2, "unitPrice": 25},
        ],
        taxAmount=9,
        discountAmount=4,
    )

    assert [i["totalPrice"] for i in payment["items"]] == [40, 50]
    assert payment["totalAmount"] == 95


async def test_invoice_for_unknown_patient(client, receptionist):
    response = await client.post(
        "/api/payments",
        json={
            "patientId": "665f1f77bcf86cd799439011",
            "amount": 10,
            "paymentMethod": "Cash",
            "dueDate": "2030-01-31",
            "description": "Consultation",
        },
        headers=bearer(receptionist["token"]),
    )

    assert response.status_code == 400


async def test_status_endpoint_rejects_refunded(client, patient, receptionist):
    payment = await raise_invoice(client, receptionist, patient)

    response = await client.patch(
        f"/api/payments/{payment['id']}/status",
        json={"paymentStatus": "Refunded"},
        headers=bearer(receptionist["token"]),
    )

    assert response.status_code == 400


async def test_failed_payment_is_final(client, patient, receptionist):
    payment = await raise_invoice(client, receptionist, patient)
    url = f"/api/payments/{payment['id']}/status"

    failed = await client.patch(url, json={"paymentStatus": "Failed"}, headers=bearer(receptionist["token"]))
    assert failed.status_code == 200
    assert failed.json()["paymentDate"] is None

    paid = await client.patch(url, json={"paymentStatus": "Paid"}, headers=bearer(receptionist["token"]))
    assert paid.status_code == 409


async def test_only_creator_or_superadmin_changes_status(client, patient, receptionist, superadmin):
    payment = await raise_invoice(client, receptionist, patient)
    colleague = await make_staff(email="colin@example.com", employee_id="EMP002", first_name="Colin")
    url = f"/api/payments/{payment['id']}/status"

    denied = await client.patch(url, json={"paymentStatus": "Paid"}, headers=bearer(colleague["token"]))
    assert denied.status_code == 403

    allowed = await client.patch(url, json={"paymentStatus": "Paid"}, headers=bearer(superadmin["token"]))
    assert allowed.status_code == 200


async def test_paid_payment_is_frozen_for_receptionists(client, patient, receptionist, superadmin):
    payment = await raise_invoice(client, receptionist, patient)
    await mark_paid(client, receptionist, payment)
    url = f"/api/payments/{payment['id']}"

    refused = await client.put(url, json={"notes": "late fee waived"}, headers=bearer(receptionist["token"]))
    assert refused.status_code == 409

    edited = await client.put(url, json={"notes": "late fee waived"}, headers=bearer(superadmin["token"]))
    assert edited.status_code == 200
    assert edited.json()["notes"] == "late fee waived"


async def test_refunded_amount_cannot_be_edited(client, patient, receptionist, superadmin):
    payment = await raise_invoice(client, receptionist, patient)
    await mark_paid(client, receptionist, payment)
    await client.post(
        f"/api/payments/{payment['id']}/refund",
        json={"refundAmount": 100, "refundReason": "Test cancelled", "refundMethod": "Card"},
        headers=bearer(receptionist["token"]),
    )
    url = f"/api/payments/{payment['id']}"

    for staff in (receptionist, superadmin):
        response = await client.put(url, json={"amount": 200}, headers=bearer(staff["token"]))
        assert response.status_code == 409

    notes = await client.put(url, json={"notes": "refunded in full"}, headers=bearer(receptionist["token"]))
    assert notes.status_code == 200

    body = (await client.get(url, headers=bearer(receptionist["token"]))).json()
    assert body["paymentStatus"] == "Refunded"
    assert body["amount"] == 100
    assert body["refundInfo"]["refundAmount"] == 100


async def test_overdue_payments(client, patient, receptionist):
    late = await raise_invoice(client, receptionist, patient, dueDate="2020-01-31")
    settled = await raise_invoice(client, receptionist, patient, dueDate="2020-01-31")
    await mark_paid(client, receptionist, settled)
    await raise_invoice(client, receptionist, patient)

    response = await client.get("/api/payments/overdue", headers=bearer(receptionist["token"]))

    assert response.status_code == 200
    assert [p["id"] for p in response.json()["payments"]] == [late["id"]]
    assert (await client.get("/api/payments/overdue", headers=bearer(patient["token"]))).status_code == 403


async def test_edit_recomputes_total(client, patient, receptionist):
    payment = await raise_invoice(client, receptionist, patient)

    response = await client.put(
        f"/api/payments/{payment['id']}",
        json={"amount": 150, "taxAmount": 15},
        headers=bearer(receptionist["token"]),
    )

    assert response.status_code == 200
    assert response.json()["totalAmount"] == 165


async def test_patient_sees_only_own_payments(client, patient, other_patient, receptionist):
    payment = await raise_invoice(client, receptionist, patient)
    await raise_invoice(client, receptionist, other_patient)

    own = await client.get(f"/api/payments/{payment['id']}", headers=bearer(patient["token"]))
    assert own.status_code == 200

    foreign = await client.get(f"/api/payments/{payment['id']}", headers=bearer(other_patient["token"]))
    assert foreign.status_code == 403

    mine = await client.get("/api/payments/my", headers=bearer(patient["token"]))
    assert [p["id"] for p in mine.json()["payments"]] == [payment["id"]]

    assert (await client.get("/api/payments", headers=bearer(patient["token"]))).status_code == 403
    assert (await client.post(f"/api/payments/{payment['id']}/refund", json={}, headers=bearer(patient["token"]))).status_code == 403


async def test_payment_stats(client, patient, receptionist):
    first = await raise_invoice(client, receptionist, patient)
    await raise_invoice(client, receptionist, patient, amount=50)
    await mark_paid(client, receptionist, first)

    response = await client.get("/api/payments/stats/summary", headers=bearer(receptionist["token"]))

    assert response.status_code == 200
    body = response.json()
    assert body["totalPayments"] == 2
    assert body["totalAmount"] == 150
    breakdown = {row["status"]: row for row in body["statusBreakdown"]}
    assert breakdown["Paid"]["count"] == 1
    assert breakdown["Pending"]["totalAmount"] == 50


async def test_only_superadmin_deletes_payments(client, patient, receptionist, superadmin):
    payment = await raise_invoice(client, receptionist, patient)
    url = f"/api/payments/{payment['id']}"

    assert (await client.delete(url, headers=bearer(receptionist["token"]))).status_code == 403
    assert (await client.delete(url, headers=bearer(superadmin["token"]))).status_code == 200
    assert (await client.get(url, headers=bearer(superadmin["token"]))).status_code == 404
