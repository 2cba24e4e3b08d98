"""Staff-managed patient records and patient self-service."""

from conftest import PASSWORD, bearer, register_patient


async def test_staff_create_and_find_patients(client, receptionist):
    response = await client.post(
        "/api/patients",
        json={
            "firstName": "Carol",
            "lastName": "Walkin",
            "email": "carol@example.com",
            "password": PASSWORD,
            "dateOfBirth": "1975-11-02",
            "gender": "Female",
        },
        headers=bearer(receptionist["token"]),
    )
    assert response.status_code == 201, response.text
    assert response.json()["role"] == "patient"
    assert response.json()["age"] >= 48

    await register_patient(client, "dave@example.com", firstName="Dave")

    found = await client.get("/api/patients?search=carol", headers=bearer(receptionist["token"]))
    assert found.status_code == 200
    assert [p["email"] for p in found.json()["patients"]] == ["carol@example.com"]

    everyone = await client.get("/api/patients", headers=bearer(receptionist["token"]))
    assert everyone.json()["total"] == 2


async def test_search_is_not_a_regex(client, receptionist, patient):
    response = await client.get("/api/patients?search=.*", headers=bearer(receptionist["token"]))

    assert response.status_code == 200
    assert response.json()["total"] == 0


async def test_patients_cannot_list_patients(client, patient):
    response = await client.get("/api/patients", headers=bearer(patient["token"]))

    assert response.status_code == 403


async def test_staff_id_is_not_a_patient(client, receptionist):
    response = await client.get(f"/api/patients/{receptionist['id']}", headers=bearer(receptionist["token"]))

    assert response.status_code == 404


async def test_staff_update_patient(client, patient, other_patient, receptionist):
    url = f"/api/patients/{patient['id']}"

    updated = await client.put(url, json={"medications": ["Metformin"]}, headers=bearer(receptionist["token"]))
    assert updated.status_code == 200
    assert updated.json()["medications"] == ["Metformin"]

    taken = await client.put(url, json={"email": "bob@example.com"}, headers=bearer(receptionist["token"]))
    assert taken.status_code == 400


async def test_staff_update_ignores_nulls(client, patient, receptionist):
    url = f"/api/patients/{patient['id']}"

    response = await client.put(url, json={"email": None, "firstName": None}, headers=bearer(receptionist["token"]))
    assert response.status_code == 200
    assert response.json()["email"] == "alice@example.com"

    again = await client.get(url, headers=bearer(receptionist["token"]))
    assert again.status_code == 200
    assert again.json()["firstName"] == "Alice"


async def test_patient_self_service(client, patient):
    me = await client.get("/api/patients/me", headers=bearer(patient["token"]))
    assert me.status_code == 200
    assert me.json()["id"] == patient["id"]

    updated = await client.patch(
        "/api/patients/me",
        json={"emergencyContact": {"name": "Ann", "relationship": "Sister", "phone": "+15550001111"}},
        headers=bearer(patient["token"]),
    )
    assert updated.status_code == 200
    assert updated.json()["emergencyContact"]["name"] == "Ann"


async def test_patient_appointments_view(client, patient, receptionist):
    await client.post(
        "/api/appointments",
        json={
            "type": "X-Ray",
            "appointmentDate": "2025-06-01",
            "appointmentTime": "14:15",
            "reason": "Chest x-ray after persistent cough",
        },
        headers=bearer(patient["token"]),
    )

    own = await client.get("/api/patients/me/appointments", headers=bearer(patient["token"]))
    assert own.json()["total"] == 1

    by_staff = await client.get(f"/api/patients/{patient['id']}/appointments", headers=bearer(receptionist["token"]))
    assert by_staff.json()["total"] == 1


async def test_only_superadmin_deletes_patients(client, patient, receptionist, superadmin):
    url = f"/api/patients/{patient['id']}"

    assert (await client.delete(url, headers=bearer(receptionist["token"]))).status_code == 403
    assert (await client.delete(url, headers=bearer(superadmin["token"]))).status_code == 200
    assert (await client.get(url, headers=bearer(superadmin["token"]))).status_code == 404
