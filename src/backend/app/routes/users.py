from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from app.auth.permissions import Action, require
from app.auth.session import SessionContext, get_verified_session
from app.db import profiles as profiles_db
from app.models.admin import (
    CrudPrivilegeUpdate,
    NotificationSettings,
    NotificationSettingsUpdate,
    ProfileRecord,
    ProfileUpdate,
    RoleAssignment,
    RoleUpdate,
    UserWithRole,
)
from app.utils.logger import get_logger

router = APIRouter(prefix="/users", tags=["users"])
settings_router = APIRouter(prefix="/settings", tags=["settings"])
logger = get_logger(__name__)


@router.get("", response_model=List[UserWithRole], summary="Users and their roles")
def list_users(session: SessionContext = Depends(get_verified_session)):
    require(session.identity, Action.MANAGE_USERS)
    try:
        return profiles_db.list_users_with_roles()
    except Exception:
        logger.exception("Error while listing users")
        raise HTTPException(status_code=500, detail="Unable to fetch users")


@router.put("/{user_id}/role", response_model=RoleAssignment, summary="Assign a role")
def assign_role(
    user_id: UUID,
    payload: RoleUpdate,
    session: SessionContext = Depends(get_verified_session),
):
    require(session.identity, Action.ASSIGN_ROLE)
    if not profiles_db.get_profile(str(user_id)):
        raise HTTPException(status_code=404, detail="User not found.")
    try:
        return profiles_db.set_role(str(user_id), payload.role.value)
    except Exception:
        logger.exception("Error while assigning role to user=%s", user_id)
        raise HTTPException(status_code=500, detail="Failed to update role.")


@router.put("/{user_id}/crud", response_model=RoleAssignment, summary="Grant or revoke CRUD rights")
def toggle_crud(
    user_id: UUID,
    payload: CrudPrivilegeUpdate,
    session: SessionContext = Depends(get_verified_session),
):
    require(session.identity, Action.TOGGLE_CRUD)
    try:
        row = profiles_db.set_can_manage_crud(str(user_id), payload.can_manage_crud)
    except Exception:
        logger.exception("Error while updating CRUD rights for user=%s", user_id)
        raise HTTPException(status_code=500, detail="Failed to update permissions.")
    if not row:
        raise HTTPException(status_code=404, detail="User has no role assigned.")
    return row


@router.delete("/{user_id}/role", summary="Remove a user's role")
def remove_role(user_id: UUID, session: SessionContext = Depends(get_verified_session)):
    """The user keeps their account but loses access to every console action."""
    require(session.identity, Action.ASSIGN_ROLE)
    try:
        removed = profiles_db.remove_role(str(user_id))
    except Exception:
        logger.exception("Error while removing role for user=%s", user_id)
        raise HTTPException(status_code=500, detail="Failed to remove role.")
    if not removed:
        raise HTTPException(status_code=404, detail="User has no role assigned.")
    return {"deleted": True, "user_id": str(user_id)}


@router.patch("/{user_id}/profile", response_model=ProfileRecord, summary="Edit a profile")
def edit_profile(
    user_id: UUID,
    payload: ProfileUpdate,
    session: SessionContext = Depends(get_verified_session),
):
    """
    Apply the edit and return the row as committed. Clients that updated the
    profile optimistically replace their copy with this response, or restore
    the previous copy when the request fails.
    """
    require(session.identity, Action.EDIT_PROFILE, {"id": str(user_id)})
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No editable fields were provided.")
    try:
        row = profiles_db.update_profile(str(user_id), updates)
    except Exception:
        logger.exception("Error while updating profile for user=%s", user_id)
        raise HTTPException(status_code=500, detail="Failed to update profile.")
    if not row:
        raise HTTPException(status_code=404, detail="User not found.")
    return row


@settings_router.get(
    "/notifications", response_model=NotificationSettings, summary="My notification settings"
)
def get_notifications(session: SessionContext = Depends(get_verified_session)):
    return profiles_db.get_notification_settings(session.user_id)


@settings_router.put(
    "/notifications", response_model=NotificationSettings, summary="Update notification settings"
)
def update_notifications(
    payload: NotificationSettingsUpdate,
    session: SessionContext = Depends(get_verified_session),
):
    updates = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    try:
        return profiles_db.update_notification_settings(session.user_id, updates)
    except Exception:
        logger.exception("Error while saving notification settings for user=%s", session.user_id)
        raise HTTPException(status_code=500, detail="Failed to save notification settings.")
