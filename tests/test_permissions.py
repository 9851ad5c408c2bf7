import pytest

from app.auth.permissions import AccessDenied, Action, Identity, Role, authorize, lead_scope, require

SUPERADMIN = Identity(user_id="u-super", role=Role.SUPERADMIN)
ADMIN = Identity(user_id="u-admin", role=Role.ADMIN)
ADMIN_CRUD = Identity(user_id="u-admin-crud", role=Role.ADMIN, can_manage_crud=True)
MANAGER = Identity(user_id="u-manager", role=Role.MANAGER)
MANAGER_CRUD = Identity(user_id="u-manager-crud", role=Role.MANAGER, can_manage_crud=True)
NO_ROLE = Identity(user_id="u-nobody")


@pytest.mark.parametrize("action", list(Action))
def test_identity_without_role_is_denied_everything(action):
    assert authorize(NO_ROLE, action, {"id": "u-nobody", "assigned_manager_id": "u-nobody"}) is False
    assert authorize(None, action) is False


def test_delete_lead():
    lead = {"id": "lead-1", "assigned_manager_id": MANAGER.user_id}
    assert authorize(SUPERADMIN, Action.DELETE_LEAD, lead)
    assert authorize(ADMIN_CRUD, Action.DELETE_LEAD, lead)
    assert not authorize(ADMIN, Action.DELETE_LEAD, lead)
    assert not authorize(MANAGER, Action.DELETE_LEAD, lead)
    assert not authorize(MANAGER_CRUD, Action.DELETE_LEAD, lead)


def test_role_management_is_superadmin_only():
    for action in (Action.ASSIGN_ROLE, Action.TOGGLE_CRUD):
        assert authorize(SUPERADMIN, action)
        assert not authorize(ADMIN_CRUD, action)
        assert not authorize(MANAGER, action)


def test_managers_see_only_assigned_leads():
    own = {"assigned_manager_id": MANAGER.user_id}
    other = {"assigned_manager_id": "someone-else"}
    unassigned = {"assigned_manager_id": None}

    assert authorize(MANAGER, Action.VIEW_LEAD, own)
    assert authorize(MANAGER, Action.ANNOTATE_LEAD, own)
    assert not authorize(MANAGER, Action.VIEW_LEAD, other)
    assert not authorize(MANAGER, Action.VIEW_LEAD, unassigned)
    assert not authorize(MANAGER, Action.EDIT_LEAD, own)
    assert authorize(ADMIN, Action.VIEW_LEAD, other)
    assert authorize(ADMIN, Action.EDIT_LEAD, unassigned)


def test_lead_scope():
    assert lead_scope(MANAGER) == MANAGER.user_id
    assert lead_scope(ADMIN) is None
    assert lead_scope(SUPERADMIN) is None


def test_profile_edits():
    assert authorize(MANAGER, Action.EDIT_PROFILE, {"id": MANAGER.user_id})
    assert not authorize(MANAGER, Action.EDIT_PROFILE, {"id": ADMIN.user_id})
    assert authorize(ADMIN, Action.EDIT_PROFILE, {"id": MANAGER.user_id})


def test_content_management_follows_crud_flag():
    assert authorize(MANAGER_CRUD, Action.MANAGE_CONTENT)
    assert not authorize(SUPERADMIN, Action.MANAGE_CONTENT)
    assert not authorize(ADMIN, Action.MANAGE_CONTENT)


def test_every_role_sees_the_dashboard():
    for identity in (SUPERADMIN, ADMIN, MANAGER):
        assert authorize(identity, Action.VIEW_DASHBOARD)


def test_require_raises_access_denied():
    with pytest.raises(AccessDenied) as exc_info:
        require(MANAGER, Action.MANAGE_USERS)
    assert exc_info.value.action is Action.MANAGE_USERS
