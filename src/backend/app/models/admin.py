from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from app.auth.permissions import Role


class ProfileRecord(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    company_name: Optional[str] = None
    postal_code: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class UserWithRole(ProfileRecord):
    role: Optional[Role] = None
    can_manage_crud: bool = False


class RoleUpdate(BaseModel):
    role: Role


class CrudPrivilegeUpdate(BaseModel):
    can_manage_crud: bool


class RoleAssignment(BaseModel):
    user_id: str
    role: Role
    can_manage_crud: bool


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    company_name: Optional[str] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, max_length=20)


class NotificationSettings(BaseModel):
    email_notifications: bool
    lead_assignment_notifications: bool
    updated_at: Optional[datetime] = None


class NotificationSettingsUpdate(BaseModel):
    email_notifications: Optional[bool] = None
    lead_assignment_notifications: Optional[bool] = None
