from unittest.mock import patch

from fastapi.testclient import TestClient

from app.auth.session import get_optional_session
from app.db import leads as leads_db
from app.main import app
from app.routes.wizard import store

client = TestClient(app)


def _walk_to_contact_step():
    wizard = client.post("/wizard").json()
    wizard_id = wizard["id"]
    assert wizard["step"] == 1

    client.put(f"/wizard/{wizard_id}/answers", json={"answers": {"support_type": "mobility"}})
    client.post(f"/wizard/{wizard_id}/forward")
    client.put(f"/wizard/{wizard_id}/answers", json={"answers": {"visit_frequency": "overnight"}})
    for _ in range(3):
        client.post(f"/wizard/{wizard_id}/forward")
    client.put(f"/wizard/{wizard_id}/answers", json={"answers": {"postal_code": "sw1a1aa"}})
    client.post(f"/wizard/{wizard_id}/forward")
    state = client.post(f"/wizard/{wizard_id}/forward").json()
    assert state["step"] == 7
    return wizard_id


def test_invalid_postcode_keeps_wizard_on_step_five():
    wizard_id = client.post("/wizard").json()["id"]
    for _ in range(4):
        client.post(f"/wizard/{wizard_id}/forward")
    client.put(f"/wizard/{wizard_id}/answers", json={"answers": {"postal_code": "12345"}})

    response = client.post(f"/wizard/{wizard_id}/forward")

    assert response.status_code == 422
    assert response.json()["detail"] == "Please enter a valid UK postcode"
    assert client.get(f"/wizard/{wizard_id}").json()["step"] == 5


def test_sample_enquiry_is_submitted_once():
    app.dependency_overrides[get_optional_session] = lambda: None
    try:
        wizard_id = _walk_to_contact_step()
        client.put(
            f"/wizard/{wizard_id}/answers",
            json={"answers": {"contact_name": "Jane Doe", "email": "jane@example.com", "phone": "+44 7123 456789"}},
        )
        with patch.object(leads_db, "create_lead", return_value={"id": "lead-1"}) as create_lead, patch(
            "app.routes.wizard.send_lead_notification"
        ):
            response = client.post(f"/wizard/{wizard_id}/submit")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    assert response.json()["step"] == 8
    create_lead.assert_called_once_with(
        contact_name="Jane Doe",
        contact_email="jane@example.com",
        contact_phone="+44 7123 456789",
        postal_code="sw1a1aa",
        support_type="mobility",
        visit_frequency="overnight",
        care_duration="long-term",
        priority="flexibility",
        created_by=None,
    )


def test_storage_failure_stays_on_contact_step():
    app.dependency_overrides[get_optional_session] = lambda: None
    try:
        wizard_id = _walk_to_contact_step()
        client.put(
            f"/wizard/{wizard_id}/answers",
            json={"answers": {"contact_name": "Jane Doe", "email": "jane@example.com", "phone": "+44 7123 456789"}},
        )
        with patch.object(leads_db, "create_lead", side_effect=RuntimeError("db down")):
            response = client.post(f"/wizard/{wizard_id}/submit")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 500
    state = client.get(f"/wizard/{wizard_id}").json()
    assert state["step"] == 7
    assert state["draft"]["contact_name"] == "Jane Doe"


def test_closed_wizard_is_gone():
    wizard_id = client.post("/wizard").json()["id"]
    assert client.delete(f"/wizard/{wizard_id}").status_code == 204
    assert client.get(f"/wizard/{wizard_id}").status_code == 404


def test_restart_returns_to_defaults():
    wizard_id = client.post("/wizard").json()["id"]
    client.put(f"/wizard/{wizard_id}/answers", json={"answers": {"support_type": "meal"}})
    client.post(f"/wizard/{wizard_id}/forward")

    state = client.post(f"/wizard/{wizard_id}/restart").json()

    assert state["step"] == 1
    assert state["draft"]["support_type"] == "companionship"


def test_draft_being_submitted_refuses_changes():
    wizard_id = _walk_to_contact_step()
    store.get(wizard_id).submitting = True

    app.dependency_overrides[get_optional_session] = lambda: None
    try:
        with patch.object(leads_db, "create_lead") as create_lead:
            submit = client.post(f"/wizard/{wizard_id}/submit")
    finally:
        app.dependency_overrides.clear()
    back = client.post(f"/wizard/{wizard_id}/back")
    restart = client.post(f"/wizard/{wizard_id}/restart")

    assert [r.status_code for r in (submit, back, restart)] == [409, 409, 409]
    create_lead.assert_not_called()
    state = client.get(f"/wizard/{wizard_id}").json()
    assert state["step"] == 7
    assert state["submitting"] is True
    store.get(wizard_id).submitting = False


def test_success_screen_ignores_back():
    app.dependency_overrides[get_optional_session] = lambda: None
    try:
        wizard_id = _walk_to_contact_step()
        client.put(
            f"/wizard/{wizard_id}/answers",
            json={"answers": {"contact_name": "Jane Doe", "email": "jane@example.com", "phone": "+44 7123 456789"}},
        )
        with patch.object(leads_db, "create_lead", return_value={"id": "lead-1"}) as create_lead, patch(
            "app.routes.wizard.send_lead_notification"
        ):
            assert client.post(f"/wizard/{wizard_id}/submit").json()["step"] == 8
            back = client.post(f"/wizard/{wizard_id}/back")
            again = client.post(f"/wizard/{wizard_id}/submit")
    finally:
        app.dependency_overrides.clear()

    assert back.json()["step"] == 8
    assert again.status_code == 400
    create_lead.assert_called_once()
