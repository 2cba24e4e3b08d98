"""Diagnostic reports: authoring, review and patient visibility."""

from conftest import bearer, make_staff


async def draft_report(client, staff, patient, **overrides) -> dict:
    booking = await client.post(
        "/api/appointments",
        json={
            "type": "Blood Test",
            "appointmentDate": "2025-06-01",
            "appointmentTime": "09:30",
            "reason": "Annual checkup for routine bloodwork",
        },
        headers=bearer(patient["token"]),
    )
    assert booking.status_code == 201, booking.text

    payload = {
        "patientId": patient["id"],
        "appointmentId": booking.json()["id"],
        "reportType": "Blood Test",
        "title": "Complete blood count",
        "description": "Routine CBC drawn at the annual checkup.",
        "findings": [{"testName": "Hemoglobin", "result": "14.1", "unit": "g/dL", "status": "Normal"}],
    }
    payload.update(overrides)
    response = await client.post("/api/reports", json=payload, headers=bearer(staff["token"]))
    assert response.status_code == 201, response.text
    return response.json()


async def move(client, staff, report, status, **extra):
    return await client.patch(
        f"/api/reports/{report['id']}/status",
        json={"status": status, **extra},
        headers=bearer(staff["token"]),
    )


async def approve(client, staff, report) -> dict:
    assert (await move(client, staff, report, "Pending Review")).status_code == 200
    response = await move(client, staff, report, "Approved", reviewNotes="Within range")
    assert response.status_code == 200, response.text
    return response.json()


async def test_report_starts_as_draft(client, patient, receptionist):
    report = await draft_report(client, receptionist, patient)

    assert report["status"] == "Draft"
    assert report["createdBy"] == receptionist["id"]
    assert report["findings"][0]["testName"] == "Hemoglobin"
    assert report["reviewedBy"] is None


async def test_report_needs_matching_appointment(client, patient, other_patient, receptionist):
    booking = await client.post(
        "/api/appointments",
        json={
            "type": "MRI",
            "appointmentDate": "2025-06-01",
            "appointmentTime": "10:00",
            "reason": "Follow-up imaging of the knee",
        },
        headers=bearer(other_patient["token"]),
    )

    response = await client.post(
        "/api/reports",
        json={
            "patientId": patient["id"],
            "appointmentId": booking.json()["id"],
            "reportType": "MRI",
            "title": "Knee MRI",
            "description": "Imaging of the left knee.",
        },
        headers=bearer(receptionist["token"]),
    )

    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "appointmentId"


async def test_review_cycle(client, patient, receptionist):
    report = await draft_report(client, receptionist, patient)

    skipped = await move(client, receptionist, report, "Approved")
    assert skipped.status_code == 409

    approved = await approve(client, receptionist, report)
    assert approved["status"] == "Approved"
    assert approved["reviewedBy"] == receptionist["id"]
    assert approved["reviewedAt"] is not None
    assert approved["reviewNotes"] == "Within range"

    back = await move(client, receptionist, report, "Draft")
    assert back.status_code == 409


async def test_rejected_report_returns_to_draft(client, patient, receptionist):
    report = await draft_report(client, receptionist, patient)
    await move(client, receptionist, report, "Pending Review")

    rejected = await move(client, receptionist, report, "Rejected", reviewNotes="Missing units")
    assert rejected.json()["status"] == "Rejected"
    assert rejected.json()["reviewedBy"] == receptionist["id"]

    redraft = await move(client, receptionist, report, "Draft")
    assert redraft.status_code == 200
    assert redraft.json()["reviewedBy"] is None
    assert redraft.json()["reviewedAt"] is None


async def test_only_author_or_superadmin_changes_a_report(client, patient, receptionist, superadmin):
    report = await draft_report(client, receptionist, patient)
    colleague = await make_staff(email="colin@example.com", employee_id="EMP002", first_name="Colin")

    denied = await client.put(
        f"/api/reports/{report['id']}",
        json={"diagnosis": "Mild anaemia"},
        headers=bearer(colleague["token"]),
    )
    assert denied.status_code == 403

    assert (await move(client, colleague, report, "Pending Review")).status_code == 403
    assert (await move(client, superadmin, report, "Pending Review")).status_code == 200


async def test_approved_report_is_frozen(client, patient, receptionist, superadmin):
    report = await draft_report(client, receptionist, patient)
    await approve(client, receptionist, report)
    url = f"/api/reports/{report['id']}"

    frozen = await client.put(url, json={"diagnosis": "Mild anaemia"}, headers=bearer(receptionist["token"]))
    assert frozen.status_code == 409

    attachment = {"fileName": "cbc.pdf", "filePath": "/files/cbc.pdf", "fileType": "application/pdf"}
    refused = await client.post(f"{url}/attachments", json=attachment, headers=bearer(receptionist["token"]))
    assert refused.status_code == 409

    edited = await client.put(url, json={"diagnosis": "Mild anaemia"}, headers=bearer(superadmin["token"]))
    assert edited.status_code == 200
    assert edited.json()["diagnosis"] == "Mild anaemia"
    assert edited.json()["status"] == "Approved"


async def test_attachments_on_a_draft(client, patient, receptionist):
    report = await draft_report(client, receptionist, patient)

    response = await client.post(
        f"/api/reports/{report['id']}/attachments",
        json={"fileName": "cbc.pdf", "filePath": "/files/cbc.pdf"},
        headers=bearer(receptionist["token"]),
    )

    assert response.status_code == 200
    attachments = response.json()["attachments"]
    assert attachments[0]["fileName"] == "cbc.pdf"
    assert attachments[0]["uploadedAt"] is not None


async def test_patient_sees_only_own_approved_reports(client, patient, other_patient, receptionist):
    report = await draft_report(client, receptionist, patient)
    url = f"/api/reports/{report['id']}"

    assert (await client.get(url, headers=bearer(patient["token"]))).status_code == 404
    mine = await client.get("/api/reports/patient/me", headers=bearer(patient["token"]))
    assert mine.json()["total"] == 0

    await approve(client, receptionist, report)

    assert (await client.get(url, headers=bearer(patient["token"]))).status_code == 200
    assert (await client.get(url, headers=bearer(other_patient["token"]))).status_code == 404
    mine = await client.get("/api/reports/my", headers=bearer(patient["token"]))
    assert [r["id"] for r in mine.json()["reports"]] == [report["id"]]

    assert (await client.get(f"/api/reports/patient/{patient['id']}", headers=bearer(patient["token"]))).status_code == 403


async def test_download(client, patient, other_patient, receptionist):
    report = await draft_report(client, receptionist, patient)
    url = f"/api/reports/{report['id']}/download"

    not_yet = await client.get(url, headers=bearer(patient["token"]))
    assert not_yet.status_code == 409

    await approve(client, receptionist, report)

    response = await client.get(url, headers=bearer(patient["token"]))
    assert response.status_code == 200
    assert response.json()["reportId"] == report["id"]
    assert response.json()["fileName"] == f"Complete blood count_{report['id']}.pdf"

    assert (await client.get(url, headers=bearer(other_patient["token"]))).status_code == 403


async def test_pending_and_my_lists_for_staff(client, patient, receptionist, superadmin):
    report = await draft_report(client, receptionist, patient)
    await draft_report(client, receptionist, patient, title="Second blood count")
    await move(client, receptionist, report, "Pending Review")

    pending = await client.get("/api/reports/pending", headers=bearer(superadmin["token"]))
    assert [r["id"] for r in pending.json()["reports"]] == [report["id"]]

    mine = await client.get("/api/reports/my", headers=bearer(receptionist["token"]))
    assert mine.json()["total"] == 2

    filtered = await client.get("/api/reports?status=Draft", headers=bearer(superadmin["token"]))
    assert filtered.json()["total"] == 1


async def test_only_superadmin_deletes_reports(client, patient, receptionist, superadmin):
    report = await draft_report(client, receptionist, patient)
    url = f"/api/reports/{report['id']}"

    assert (await client.delete(url, headers=bearer(receptionist["token"]))).status_code == 403
    assert (await client.delete(url, headers=bearer(superadmin["token"]))).status_code == 200
    assert (await client.get(url, headers=bearer(superadmin["token"]))).status_code == 404
