"""Complaint intake, assignment, resolution and escalation."""

from datetime import datetime, timedelta

from beanie import PydanticObjectId

from smartlab.features.complaints.models import Complaint
from conftest import bearer, make_staff


async def file_complaint(client, patient, **overrides) -> dict:
    payload = {
        "subject": "Long wait at reception",
        "description": "I waited over an hour past my appointment time.",
        "category": "Service Quality",
        "priority": "High",
    }
    payload.update(overrides)
    response = await client.post("/api/complaints", json=payload, headers=bearer(patient["token"]))
    assert response.status_code == 201, response.text
    return response.json()


async def test_patient_files_a_complaint(client, patient):
    complaint = await file_complaint(client, patient)

    assert complaint["status"] == "Open"
    assert complaint["patientId"] == patient["id"]
    assert complaint["escalationLevel"] == 0
    assert complaint["ageInDays"] == 0
    assert complaint["contactMethod"] == "Email"


async def test_staff_cannot_file_complaints(client, receptionist):
    response = await client.post(
        "/api/complaints",
        json={"subject": "Something", "description": "Something went wrong here."},
        headers=bearer(receptionist["token"]),
    )

    assert response.status_code == 403


async def test_assign_then_resolve(client, patient, receptionist, superadmin):
    complaint = await file_complaint(client, patient)
    url = f"/api/complaints/{complaint['id']}"

    assigned = await client.patch(
        f"{url}/assign",
        json={"assignedTo": receptionist["id"]},
        headers=bearer(superadmin["token"]),
    )
    assert assigned.status_code == 200, assigned.text
    assert assigned.json()["status"] == "In Progress"
    assert assigned.json()["assignedTo"] == receptionist["id"]
    assert assigned.json()["assignedBy"] == superadmin["id"]

    resolved = await client.patch(
        f"{url}/resolve",
        json={"resolution": "Apologised and rescheduled", "resolutionNotes": "Offered priority slot"},
        headers=bearer(receptionist["token"]),
    )
    assert resolved.status_code == 200, resolved.text
    assert resolved.json()["status"] == "Resolved"
    assert resolved.json()["resolvedBy"] == receptionist["id"]
    assert resolved.json()["resolvedAt"] is not None

    closed = await client.patch(
        f"{url}/resolve",
        json={"resolution": "Patient confirmed", "status": "Closed"},
        headers=bearer(receptionist["token"]),
    )
    assert closed.status_code == 200
    assert closed.json()["status"] == "Closed"

    reassigned = await client.patch(
        f"{url}/assign",
        json={"assignedTo": receptionist["id"]},
        headers=bearer(superadmin["token"]),
    )
    assert reassigned.status_code == 409


async def test_open_complaint_cannot_be_resolved_directly(client, patient, receptionist):
    complaint = await file_complaint(client, patient)

    response = await client.patch(
        f"/api/complaints/{complaint['id']}/resolve",
        json={"resolution": "Nothing to do"},
        headers=bearer(receptionist["token"]),
    )

    assert response.status_code == 409


async def test_resolution_must_close_out(client, patient, receptionist):
    complaint = await file_complaint(client, patient)

    response = await client.patch(
        f"/api/complaints/{complaint['id']}/resolve",
        json={"resolution": "Looking into it", "status": "In Progress"},
        headers=bearer(receptionist["token"]),
    )

    assert response.status_code == 400


async def test_assignee_must_be_an_active_receptionist(client, patient, other_patient, superadmin):
    complaint = await file_complaint(client, patient)
    inactive = await make_staff(email="ivy@example.com", employee_id="EMP009", is_active=False)
    url = f"/api/complaints/{complaint['id']}/assign"

    for assignee in (other_patient["id"], superadmin["id"], inactive["id"]):
        response = await client.patch(url, json={"assignedTo": assignee}, headers=bearer(superadmin["token"]))
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "assignedTo"


async def test_escalation_is_capped_at_three(client, patient, receptionist):
    complaint = await file_complaint(client, patient)
    url = f"/api/complaints/{complaint['id']}/escalate"

    levels = []
    for _ in range(4):
        response = await client.post(url, json={"reason": "No reply"}, headers=bearer(receptionist["token"]))
        assert response.status_code == 200, response.text
        levels.append(response.json()["escalationLevel"])

    assert levels == [1, 2, 3, 3]
    assert len(response.json()["escalationHistory"]) == 4
    assert response.json()["escalationHistory"][0]["escalatedBy"] == receptionist["id"]


async def test_escalate_without_body(client, patient, receptionist):
    complaint = await file_complaint(client, patient)

    response = await client.post(f"/api/complaints/{complaint['id']}/escalate", headers=bearer(receptionist["token"]))

    assert response.status_code == 200
    assert response.json()["escalationHistory"][0]["reason"] is None


async def test_patient_edits_and_deletes_only_while_open(client, patient, receptionist):
    complaint = await file_complaint(client, patient)
    url = f"/api/complaints/{complaint['id']}"

    edited = await client.put(url, json={"subject": "Very long wait at reception"}, headers=bearer(patient["token"]))
    assert edited.status_code == 200
    assert edited.json()["subject"] == "Very long wait at reception"

    await client.patch(f"{url}/assign", json={"assignedTo": receptionist["id"]}, headers=bearer(receptionist["token"]))

    late_edit = await client.put(url, json={"subject": "Changed my mind"}, headers=bearer(patient["token"]))
    assert late_edit.status_code == 409

    late_delete = await client.delete(url, headers=bearer(patient["token"]))
    assert late_delete.status_code == 409


async def test_comments_from_both_sides(client, patient, receptionist):
    complaint = await file_complaint(client, patient)
    url = f"/api/complaints/{complaint['id']}/comments"

    await client.post(url, json={"text": "We are looking into it"}, headers=bearer(receptionist["token"]))
    response = await client.post(url, json={"text": "Thank you"}, headers=bearer(patient["token"]))

    assert response.status_code == 200
    comments = response.json()["comments"]
    assert [c["text"] for c in comments] == ["We are looking into it", "Thank you"]
    assert [c["author"] for c in comments] == [receptionist["id"], patient["id"]]


async def test_other_patient_cannot_read_or_comment(client, patient, other_patient):
    complaint = await file_complaint(client, patient)
    url = f"/api/complaints/{complaint['id']}"

    assert (await client.get(url, headers=bearer(other_patient["token"]))).status_code == 403
    response = await client.post(f"{url}/comments", json={"text": "Me too"}, headers=bearer(other_patient["token"]))
    assert response.status_code == 403


async def test_priority_is_staff_only(client, patient, receptionist):
    complaint = await file_complaint(client, patient)
    url = f"/api/complaints/{complaint['id']}/priority"

    assert (await client.patch(url, json={"priority": "Urgent"}, headers=bearer(patient["token"]))).status_code == 403

    response = await client.patch(url, json={"priority": "Urgent"}, headers=bearer(receptionist["token"]))
    assert response.status_code == 200
    assert response.json()["priority"] == "Urgent"


async def test_my_complaints_by_role(client, patient, other_patient, receptionist):
    mine = await file_complaint(client, patient)
    await file_complaint(client, other_patient)
    await client.patch(
        f"/api/complaints/{mine['id']}/assign",
        json={"assignedTo": receptionist["id"]},
        headers=bearer(receptionist["token"]),
    )

    as_patient = await client.get("/api/complaints/my", headers=bearer(patient["token"]))
    assert [c["id"] for c in as_patient.json()["complaints"]] == [mine["id"]]

    as_receptionist = await client.get("/api/complaints/my", headers=bearer(receptionist["token"]))
    assert [c["id"] for c in as_receptionist.json()["complaints"]] == [mine["id"]]

    pending = await client.get("/api/complaints/pending", headers=bearer(receptionist["token"]))
    assert pending.json()["total"] == 1


async def test_complaint_stats(client, patient, receptionist):
    first = await file_complaint(client, patient)
    await file_complaint(client, patient, priority="Low")
    url = f"/api/complaints/{first['id']}"
    await client.patch(f"{url}/assign", json={"assignedTo": receptionist["id"]}, headers=bearer(receptionist["token"]))
    await client.patch(f"{url}/resolve", json={"resolution": "Done"}, headers=bearer(receptionist["token"]))

    response = await client.get("/api/complaints/stats/summary", headers=bearer(receptionist["token"]))

    assert response.status_code == 200
    body = response.json()
    assert body["totalComplaints"] == 2
    by_status = {row["status"]: row["count"] for row in body["statusBreakdown"]}
    assert by_status["Open"] == 1
    assert by_status["Resolved"] == 1
    by_priority = {row["priority"]: row["count"] for row in body["priorityBreakdown"]}
    assert by_priority == {"High": 1, "Low": 1}
    assert body["avgResolutionTimeHours"] >= 0


async def backdate(complaint: dict, days: int) -> None:
    document = await Complaint.get(PydanticObjectId(complaint["id"]))
    await document.set({Complaint.created_at: datetime.utcnow() - timedelta(days=days)})


async def test_overdue_complaints(client, patient, receptionist):
    stale = await file_complaint(client, patient)
    handled = await file_complaint(client, patient, subject="Billing mix-up")
    await file_complaint(client, patient, subject="Parking")
    await backdate(stale, 8)
    await backdate(handled, 8)
    await client.patch(
        f"/api/complaints/{handled['id']}/assign",
        json={"assignedTo": receptionist["id"]},
        headers=bearer(receptionist["token"]),
    )

    response = await client.get("/api/complaints/overdue", headers=bearer(receptionist["token"]))

    assert response.status_code == 200
    assert [c["id"] for c in response.json()["complaints"]] == [stale["id"]]
    assert response.json()["complaints"][0]["ageInDays"] == 8
    assert (await client.get("/api/complaints/overdue", headers=bearer(patient["token"]))).status_code == 403
