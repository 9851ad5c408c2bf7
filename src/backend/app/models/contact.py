"""Field rules shared by the public lead form and account sign-up."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

import phonenumbers
from email_validator import EmailNotValidError
from email_validator.syntax import validate_email_domain_name, validate_email_local_part
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

POSTAL_CODE_RE = re.compile(r"^[A-Z]{1,2}\d[A-Z\d]?\s?\d[A-Z]{2}$", re.IGNORECASE)
PHONE_RE = re.compile(r"^[\d\s\-\+\(\)]+$")

NAME_MAX = 100
EMAIL_MAX = 255
PHONE_MAX = 20
POSTAL_CODE_MAX = 10

# error locations may carry either the alias or the attribute name
_FIELD_KEYS = {
    "contactName": "contactName",
    "contact_name": "contactName",
    "email": "email",
    "phone": "phone",
    "postalCode": "postalCode",
    "postal_code": "postalCode",
}


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class ContactValidationError(ValueError):
    """One or more contact fields failed validation.

    ``errors`` keeps the evaluation order; ``message`` is the first one, which
    is what the caller shows to the user.
    """

    def __init__(self, errors: List[FieldError]):
        self.errors = errors
        super().__init__(self.message)

    @property
    def message(self) -> str:
        return self.errors[0].message if self.errors else "Invalid contact details"

    def as_dict(self) -> dict:
        return {
            "detail": self.message,
            "errors": [{"field": e.field, "message": e.message} for e in self.errors],
        }


def _fail(message: str):
    raise PydanticCustomError("contact_field", message)


def check_contact_name(value: str) -> str:
    value = (value or "").strip()
    if len(value) < 1:
        _fail("Name is required")
    if len(value) > NAME_MAX:
        _fail("Name must be less than 100 characters")
    return value


def _has_email_shape(value: str) -> bool:
    # parts are checked on their own so the 254-character total limit of
    # validate_email does not pre-empt the 255-character rule below
    local, at, domain = value.rpartition("@")
    if not at or not local or not domain:
        return False
    try:
        validate_email_local_part(local)
        validate_email_domain_name(domain)
    except EmailNotValidError:
        return False
    return True


def check_email(value: str) -> str:
    value = (value or "").strip()
    if not _has_email_shape(value):
        _fail("Please enter a valid email address")
    if len(value) > EMAIL_MAX:
        _fail("Email must be less than 255 characters")
    return value


def check_phone(value: str) -> str:
    value = (value or "").strip()
    if len(value) < 1:
        _fail("Phone number is required")
    if not PHONE_RE.match(value):
        _fail("Please enter a valid phone number")
    if len(value) > PHONE_MAX:
        _fail("Phone number must be less than 20 characters")
    return value


def check_postal_code(value: str) -> str:
    value = (value or "").strip()
    if len(value) < 1:
        _fail("Postcode is required")
    if not POSTAL_CODE_RE.match(value):
        _fail("Please enter a valid UK postcode")
    if len(value) > POSTAL_CODE_MAX:
        _fail("Postcode must be less than 10 characters")
    return value


class ContactDetails(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    contact_name: str = Field("", alias="contactName")
    email: str = ""
    phone: str = ""
    postal_code: str = Field("", alias="postalCode")

    @field_validator("contact_name", "email", "phone", "postal_code", mode="before")
    @classmethod
    def _none_is_blank(cls, value):
        return "" if value is None else value

    @field_validator("contact_name")
    @classmethod
    def _contact_name(cls, value: str) -> str:
        return check_contact_name(value)

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return check_email(value)

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str) -> str:
        return check_phone(value)

    @field_validator("postal_code")
    @classmethod
    def _postal_code(cls, value: str) -> str:
        return check_postal_code(value)


def _field_errors(exc: ValidationError) -> List[FieldError]:
    errors = []
    for err in exc.errors():
        loc = err.get("loc") or ("",)
        key = str(loc[0])
        errors.append(FieldError(field=_FIELD_KEYS.get(key, key), message=err["msg"]))
    return errors


def validate_contact(data: Mapping[str, Any]) -> ContactDetails:
    """Return the trimmed contact record or raise ContactValidationError."""
    try:
        return ContactDetails.model_validate(dict(data))
    except ValidationError as exc:
        raise ContactValidationError(_field_errors(exc)) from exc


def validate_postal_code(value: Optional[str]) -> str:
    try:
        return check_postal_code(value or "")
    except PydanticCustomError as exc:
        raise ContactValidationError([FieldError("postalCode", exc.message())]) from exc


# --- account sign-up ---------------------------------------------------------------------

PASSWORD_MIN = 8


def check_password(value: str) -> str:
    if len(value) < PASSWORD_MIN:
        _fail("Password must be at least 8 characters")
    if not re.search(r"[A-Z]", value):
        _fail("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", value):
        _fail("Password must contain at least one lowercase letter")
    if not re.search(r"[0-9]", value):
        _fail("Password must contain at least one number")
    return value


def check_uk_phone_number(value: str) -> str:
    value = value.strip()
    if len(value) > PHONE_MAX:
        _fail("Phone number must be less than 20 characters")
    try:
        number = phonenumbers.parse(value, "GB")
    except phonenumbers.NumberParseException:
        _fail("Please enter a valid UK phone number (e.g., +44 7123 456789 or 020 1234 5678)")
    if number.country_code != 44 or not phonenumbers.is_valid_number(number):
        _fail("Please enter a valid UK phone number (e.g., +44 7123 456789 or 020 1234 5678)")
    return value


class SignUpPayload(BaseModel):
    email: str
    password: str
    full_name: Optional[str] = None
    phone_number: Optional[str] = None
    company_name: Optional[str] = None
    postal_code: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return check_email(value)

    @field_validator("password")
    @classmethod
    def _password(cls, value: str) -> str:
        return check_password(value)

    @field_validator("full_name", "company_name")
    @classmethod
    def _display_text(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if len(value) < 2:
            _fail("Must be at least 2 characters")
        if len(value) > NAME_MAX:
            _fail("Must be less than 100 characters")
        return value

    @field_validator("phone_number")
    @classmethod
    def _phone_number(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return check_uk_phone_number(value)

    @field_validator("postal_code")
    @classmethod
    def _postal_code(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if len(value) > 20:
            _fail("Postal code must be less than 20 characters")
        return value
