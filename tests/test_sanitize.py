"""Operator-injection scrubbing and free-text escaping."""

from smartlab.core.sanitize import scrub, scrub_query_string
from smartlab.shared.schemas import escape_html
from conftest import bearer


def test_scrub_drops_operator_and_dotted_keys():
    payload = {
        "email": "alice@example.com",
        "password": {"$ne": None},
        "profile.role": "superadmin",
        "nested": [{"$where": "1", "ok": 1}, "plain"],
    }

    assert scrub(payload) == {
        "email": "alice@example.com",
        "password": {},
        "nested": [{"ok": 1}, "plain"],
    }


def test_scrub_query_string_keeps_clean_queries_untouched():
    assert scrub_query_string(b"page=2&limit=5") == b"page=2&limit=5"
    assert scrub_query_string(b"status=Open&%24where=1&a.b=2") == b"status=Open"
    assert scrub_query_string(b"") == b""


def test_escape_html():
    assert escape_html("<script>alert(1)</script>") == "&lt;script&gt;alert(1)&lt;/script&gt;"
    assert escape_html("Fish & chips") == "Fish &amp; chips"


async def test_operator_login_is_not_a_bypass(client, patient):
    """A ``$ne`` password object is scrubbed down to an invalid body, not a login."""
    response = await client.post(
        "/api/auth/login",
        json={"email": "alice@example.com", "password": {"$ne": "x"}},
    )

    assert response.status_code == 400
    assert response.json()["status"] == "error"


async def test_free_text_is_stored_escaped(client, patient):
    response = await client.post(
        "/api/appointments",
        json={
            "appointmentDate": "2030-01-15",
            "appointmentTime": "09:30",
            "type": "Blood Test",
            "reason": "<b>Routine</b> annual check",
        },
        headers=bearer(patient["token"]),
    )

    assert response.status_code == 201, response.text
    assert response.json()["reason"] == "&lt;b&gt;Routine&lt;/b&gt; annual check"
