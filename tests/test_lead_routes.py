from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from app.auth.permissions import Identity, Role
from app.auth.session import SessionContext, get_optional_session, get_verified_session
from app.db import leads as leads_db
from app.db import profiles as profiles_db
from app.main import app

LEAD_ID = "7a1c2c43-5d6e-4f10-9a8b-0c1d2e3f4a5b"
MANAGER_ID = "3f2b1a00-1111-4222-8333-944455556666"
OTHER_MANAGER = "9c8d7e6f-2222-4333-8444-a55566667777"

client = TestClient(app)


def _lead(**overrides):
    lead = {
        "id": LEAD_ID,
        "contact_name": "Jane Doe",
        "contact_email": "jane@example.com",
        "contact_phone": "07123 456789",
        "postal_code": "SW1A 1AA",
        "support_type": "mobility",
        "visit_frequency": "overnight",
        "care_duration": "long-term",
        "priority": "flexibility",
        "status": "new",
        "assigned_manager_id": None,
        "created_by": None,
        "created_at": "2024-03-15T10:00:00+00:00",
        "updated_at": "2024-03-15T10:00:00+00:00",
    }
    lead.update(overrides)
    return lead


@pytest.fixture
def signed_in():
    def _sign_in(role, can_manage_crud=False, user_id=MANAGER_ID):
        identity = Identity(user_id=user_id, role=role, can_manage_crud=can_manage_crud)
        app.dependency_overrides[get_verified_session] = lambda: SessionContext(identity, "sid-1")
        return identity

    yield _sign_in
    app.dependency_overrides.clear()


def test_public_submission_validates_contact():
    app.dependency_overrides[get_optional_session] = lambda: None
    try:
        with patch.object(leads_db, "create_lead") as create_lead:
            response = client.post(
                "/leads/",
                json={"contact_name": "Jane Doe", "email": "jane@", "phone": "07123 456789", "postal_code": "SW1A 1AA"},
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 422
    assert response.json()["detail"] == "Please enter a valid email address"
    create_lead.assert_not_called()


def test_public_submission_stores_one_lead():
    app.dependency_overrides[get_optional_session] = lambda: None
    try:
        with patch.object(leads_db, "create_lead", return_value=_lead()) as create_lead, patch(
            "app.routes.leads.send_lead_notification"
        ) as notify:
            response = client.post(
                "/leads/",
                json={
                    "contact_name": " Jane Doe ",
                    "email": "jane@example.com",
                    "phone": "07123 456789",
                    "postal_code": "SW1A 1AA",
                    "support_type": "mobility",
                },
            )
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 201
    create_lead.assert_called_once()
    assert create_lead.call_args.kwargs["contact_name"] == "Jane Doe"
    assert create_lead.call_args.kwargs["created_by"] is None
    notify.assert_called_once()


def test_manager_list_is_scoped(signed_in):
    signed_in(Role.MANAGER)
    with patch.object(leads_db, "list_leads", return_value=([_lead(assigned_manager_id=MANAGER_ID)], 1)) as list_leads:
        response = client.get("/leads/", params={"status": "all", "assigned_manager": OTHER_MANAGER})

    assert response.status_code == 200
    assert list_leads.call_args.kwargs["manager_id"] == MANAGER_ID
    assert response.json()["meta"]["total"] == 1


def test_manager_cannot_open_unassigned_lead(signed_in):
    signed_in(Role.MANAGER)
    with patch.object(leads_db, "get_lead", return_value=_lead()):
        response = client.get(f"/leads/{LEAD_ID}")
    assert response.status_code == 403
    assert response.json() == {"detail": "Access denied", "action": "view_lead"}


@pytest.mark.parametrize(
    "role, crud",
    [(Role.MANAGER, True), (Role.MANAGER, False), (Role.ADMIN, False)],
)
def test_delete_is_refused(signed_in, role, crud):
    signed_in(role, can_manage_crud=crud)
    with patch.object(leads_db, "get_lead", return_value=_lead(assigned_manager_id=MANAGER_ID)), patch.object(
        leads_db, "delete_lead"
    ) as delete_lead:
        response = client.delete(f"/leads/{LEAD_ID}", params={"confirm": "true"})

    assert response.status_code == 403
    delete_lead.assert_not_called()


def test_delete_requires_confirmation(signed_in):
    signed_in(Role.ADMIN, can_manage_crud=True)
    with patch.object(leads_db, "get_lead", return_value=_lead()), patch.object(
        leads_db, "delete_lead", return_value=True
    ) as delete_lead:
        unconfirmed = client.delete(f"/leads/{LEAD_ID}")
        confirmed = client.delete(f"/leads/{LEAD_ID}", params={"confirm": "true"})

    assert unconfirmed.status_code == 409
    assert confirmed.status_code == 200
    delete_lead.assert_called_once_with(LEAD_ID)


def test_tag_toggle(signed_in):
    signed_in(Role.ADMIN)
    with patch.object(leads_db, "get_lead", return_value=_lead()), patch.object(
        leads_db, "toggle_tag", side_effect=[True, False]
    ):
        added = client.post(f"/leads/{LEAD_ID}/tags/hot").json()
        removed = client.post(f"/leads/{LEAD_ID}/tags/hot").json()

    assert added["active"] is True
    assert removed["active"] is False
    assert removed["notice"]["description"] == "Tag 'hot' removed."


def test_unknown_tag_is_rejected(signed_in):
    signed_in(Role.ADMIN)
    assert client.post(f"/leads/{LEAD_ID}/tags/vip").status_code == 422


def test_status_update_accepts_working(signed_in):
    signed_in(Role.ADMIN)
    with patch.object(leads_db, "get_lead", return_value=_lead()), patch.object(
        leads_db, "update_lead", return_value=_lead(status="in_progress")
    ) as update_lead:
        response = client.patch(f"/leads/{LEAD_ID}", json={"status": "working"})

    assert response.status_code == 200
    update_lead.assert_called_once_with(LEAD_ID, {"status": "in_progress"})
    assert response.json()["notice"]["description"] == "Status updated successfully."


def test_blank_note_is_rejected(signed_in):
    signed_in(Role.ADMIN)
    with patch.object(leads_db, "add_note") as add_note:
        response = client.post(f"/leads/{LEAD_ID}/notes", json={"note": "   "})
    assert response.status_code == 400
    add_note.assert_not_called()


def test_manager_filter_must_be_a_profile_id(signed_in):
    signed_in(Role.ADMIN)
    with patch.object(leads_db, "list_leads") as list_leads:
        response = client.get("/leads/", params={"assigned_manager": "someone-else"})
    assert response.status_code == 422
    list_leads.assert_not_called()


def test_assignment_rejects_malformed_manager_id(signed_in):
    signed_in(Role.ADMIN)
    with patch.object(leads_db, "get_lead", return_value=_lead()), patch.object(
        profiles_db, "get_profile"
    ) as get_profile, patch.object(leads_db, "update_lead") as update_lead:
        response = client.patch(f"/leads/{LEAD_ID}", json={"assigned_manager_id": "not-a-uuid"})

    assert response.status_code == 422
    get_profile.assert_not_called()
    update_lead.assert_not_called()


def test_assignment_lookup_failure_is_reported(signed_in):
    signed_in(Role.ADMIN)
    with patch.object(leads_db, "get_lead", return_value=_lead()), patch.object(
        profiles_db, "get_profile", side_effect=RuntimeError("connection lost")
    ), patch.object(leads_db, "update_lead") as update_lead:
        response = client.patch(f"/leads/{LEAD_ID}", json={"assigned_manager_id": OTHER_MANAGER})

    assert response.status_code == 500
    assert response.json()["detail"] == "Failed to assign manager."
    update_lead.assert_not_called()


def test_assignment_stores_profile_id(signed_in):
    signed_in(Role.ADMIN)
    with patch.object(leads_db, "get_lead", return_value=_lead()), patch.object(
        profiles_db, "get_profile", return_value={"id": OTHER_MANAGER}
    ), patch.object(
        leads_db, "update_lead", return_value=_lead(assigned_manager_id=OTHER_MANAGER)
    ) as update_lead, patch("app.routes.leads._notify_assignment") as notify:
        response = client.patch(f"/leads/{LEAD_ID}", json={"assigned_manager_id": OTHER_MANAGER})

    assert response.status_code == 200
    update_lead.assert_called_once_with(LEAD_ID, {"assigned_manager_id": OTHER_MANAGER})
    assert response.json()["notice"]["description"] == "Manager assigned successfully."
    notify.assert_called_once()


def test_unassign_clears_manager(signed_in):
    signed_in(Role.ADMIN)
    with patch.object(leads_db, "get_lead", return_value=_lead(assigned_manager_id=MANAGER_ID)), patch.object(
        profiles_db, "get_profile"
    ) as get_profile, patch.object(leads_db, "update_lead", return_value=_lead()) as update_lead:
        response = client.patch(f"/leads/{LEAD_ID}", json={"assigned_manager_id": "unassigned"})

    assert response.status_code == 200
    update_lead.assert_called_once_with(LEAD_ID, {"assigned_manager_id": None})
    get_profile.assert_not_called()
