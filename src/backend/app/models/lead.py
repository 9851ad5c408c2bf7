from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.utils.text import normalize_search


class LeadStatus(str, Enum):
    NEW = "new"
    CONTACTED = "contacted"
    IN_PROGRESS = "in_progress"
    CONVERTED = "converted"
    CLOSED = "closed"

    @classmethod
    def parse(cls, value: "str | LeadStatus") -> "LeadStatus":
        if isinstance(value, cls):
            return value
        # older rows and clients use "working" for the same state
        if value == "working":
            return cls.IN_PROGRESS
        return cls(value)


class LeadTag(str, Enum):
    HOT = "hot"
    SPAM = "spam"
    CALLED = "called"
    URGENT = "urgent"


class SupportType(str, Enum):
    MOBILITY = "mobility"
    COMPANIONSHIP = "companionship"
    MEAL = "meal"
    MEDICATION = "medication"


class VisitFrequency(str, Enum):
    ONCE_DAILY = "once-daily"
    TWICE_DAILY = "twice-daily"
    OVERNIGHT = "overnight"
    FEW_TIMES = "few-times"


class CareDuration(str, Enum):
    SHORT_TERM = "short-term"
    LONG_TERM = "long-term"
    EMERGENCY = "emergency"
    UNSURE = "unsure"


class CarePriority(str, Enum):
    COMPASSION = "compassion"
    FLEXIBILITY = "flexibility"
    EXPERTISE = "expertise"
    AFFORDABILITY = "affordability"


class Notice(BaseModel):
    """Short user-facing outcome of a mutation."""

    title: str
    description: str
    variant: Literal["default", "destructive"] = "default"


class LeadCreate(BaseModel):
    contact_name: str = ""
    email: str = ""
    phone: str = ""
    postal_code: str = ""
    support_type: Optional[str] = Field(None, max_length=100)
    visit_frequency: Optional[str] = Field(None, max_length=100)
    care_duration: Optional[str] = Field(None, max_length=100)
    priority: Optional[str] = Field(None, max_length=100)


class LeadRecord(BaseModel):
    id: str
    contact_name: str
    contact_email: str
    contact_phone: str
    postal_code: Optional[str]
    support_type: Optional[str]
    visit_frequency: Optional[str]
    care_duration: Optional[str]
    priority: Optional[str]
    status: LeadStatus
    assigned_manager_id: Optional[str]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime
    manager_name: Optional[str] = None
    tags: List[LeadTag] = []


# a profile id, or "unassigned" for leads without a manager
ManagerRef = Union[UUID, Literal["unassigned"]]


class LeadUpdate(BaseModel):
    status: Optional[LeadStatus] = None
    assigned_manager_id: Optional[ManagerRef] = None

    @field_validator("status", mode="before")
    @classmethod
    def _accept_working(cls, value):
        if value is None:
            return value
        return LeadStatus.parse(value)


class LeadFilters(BaseModel):
    search: Optional[str] = None
    status: Optional[LeadStatus] = None
    assigned_manager: Optional[ManagerRef] = None
    tag: Optional[LeadTag] = None

    @field_validator("search", "assigned_manager", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and (not value.strip() or value == "all"):
            return None
        return value

    @field_validator("search")
    @classmethod
    def _normalize_search(cls, value):
        if value is None:
            return None
        return normalize_search(value) or None

    @field_validator("status", "tag", mode="before")
    @classmethod
    def _all_is_none(cls, value):
        if value in ("", "all"):
            return None
        if value == "working":
            return LeadStatus.IN_PROGRESS
        return value


class NoteCreate(BaseModel):
    note: str = Field(..., max_length=5000)


class NoteRecord(BaseModel):
    id: str
    lead_id: str
    note: str
    created_by: str
    author_name: Optional[str] = None
    created_at: datetime


class ManagerOption(BaseModel):
    id: str
    full_name: Optional[str]


class LeadDetail(BaseModel):
    lead: LeadRecord
    notes: List[NoteRecord]
    tags: List[LeadTag]
    managers: List[ManagerOption]
    can_edit: bool
    can_delete: bool


class LeadMutationResponse(BaseModel):
    lead: LeadRecord
    notice: Notice


class NoteMutationResponse(BaseModel):
    note: NoteRecord
    notice: Notice


class TagToggleResponse(BaseModel):
    lead_id: str
    tag: LeadTag
    active: bool
    notice: Notice


class PageMeta(BaseModel):
    total: int
    page: int
    size: int


class PaginatedLeads(BaseModel):
    data: List[LeadRecord]
    meta: PageMeta
