from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class QuestionRecord(BaseModel):
    id: str
    step_number: int
    field_name: str
    question_text: str
    options: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool
    created_at: datetime
    updated_at: datetime


class QuestionCreate(BaseModel):
    step_number: int = Field(ge=1, le=8)
    field_name: str = Field(min_length=1, max_length=100)
    question_text: str = Field(min_length=1)
    options: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True


class QuestionUpdate(BaseModel):
    step_number: Optional[int] = Field(default=None, ge=1, le=8)
    field_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    question_text: Optional[str] = Field(default=None, min_length=1)
    options: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None
