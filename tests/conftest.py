"""Shared fixtures: an in-memory Mongo, the ASGI app and a few principals."""

import os
import tempfile

# Settings are read at import time
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="smartlab-logs-")
os.environ["LOG_TO_FILE"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_GENERAL"] = "1000"

import pytest
from beanie import init_beanie
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from smartlab.core.rate_limit import reset_limiters
from smartlab.core.security import create_access_token, get_password_hash
from smartlab.database import document_models
from smartlab.features.auth.models import Receptionist, SuperAdmin
from smartlab.main import app


PASSWORD = "Str0ng!Pass"


@pytest.fixture(autouse=True)
async def db():
    """Fresh in-memory database for every test."""
    client = AsyncMongoMockClient()
    database = client["smartlab_test"]
    await init_beanie(database=database, document_models=document_models())
    reset_limiters()
    yield database
    reset_limiters()


@pytest.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def patient_payload(email: str = "alice@example.com", **overrides) -> dict:
    payload = {
        "firstName": "Alice",
        "lastName": "Patient",
        "email": email,
        "password": PASSWORD,
        "phone": "+15551234567",
        "dateOfBirth": "1990-04-12",
        "gender": "Female",
    }
    payload.update(overrides)
    return payload


async def register_patient(client: AsyncClient, email: str = "alice@example.com", **overrides) -> dict:
    """Register through the API and return ``{"token", "id", "user"}``."""
    response = await client.post("/api/auth/register", json=patient_payload(email, **overrides))
    assert response.status_code == 201, response.text
    client.cookies.clear()
    body = response.json()
    return {"token": body["token"], "id": body["user"]["id"], "user": body["user"]}


async def login(client: AsyncClient, email: str, password: str = PASSWORD):
    response = await client.post("/api/auth/login", json={"email": email, "password": password})
    client.cookies.clear()
    return response


async def make_staff(cls=Receptionist, email: str = "rita@example.com", employee_id: str = "EMP001", **fields):
    """Insert a staff principal directly and return ``{"token", "id", "user"}``."""
    user = cls(
        first_name=fields.pop("first_name", "Rita"),
        last_name=fields.pop("last_name", "Desk"),
        email=email,
        password_hash=get_password_hash(PASSWORD),
        department=fields.pop("department", "Front Office"),
        employee_id=employee_id,
        **fields,
    )
    await user.insert()
    token, _ = create_access_token(str(user.id))
    return {"token": token, "id": str(user.id), "user": user}


@pytest.fixture
async def patient(client):
    return await register_patient(client)


@pytest.fixture
async def other_patient(client):
    return await register_patient(client, "bob@example.com", firstName="Bob")


@pytest.fixture
async def receptionist():
    return await make_staff()


@pytest.fixture
async def superadmin():
    return await make_staff(
        SuperAdmin,
        email="sam@example.com",
        employee_id="ADM001",
        first_name="Sam",
        last_name="Admin",
        department="Administration",
    )
