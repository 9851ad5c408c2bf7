"""Eight-step care enquiry wizard.

Steps 1-4 collect preferences, 5 the postcode, 6 is the "matches found"
interstitial, 7 contact details and 8 the success screen. Moving forward out
of 5 and submitting from 7 are gated by the contact field rules.
"""
from __future__ import annotations

import threading
import time
from dataclasses import asdict, dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

from app.models.contact import validate_contact, validate_postal_code
from app.models.lead import CareDuration, CarePriority, SupportType, VisitFrequency
from app.utils.logger import get_logger

logger = get_logger(__name__)


class WizardStep(IntEnum):
    SUPPORT_TYPE = 1
    VISIT_FREQUENCY = 2
    CARE_DURATION = 3
    PRIORITY = 4
    POSTAL_CODE = 5
    MATCHES_FOUND = 6
    CONTACT = 7
    SUCCESS = 8


FIRST_STEP = WizardStep.SUPPORT_TYPE
LAST_STEP = WizardStep.SUCCESS

STEP_FIELDS = {
    WizardStep.SUPPORT_TYPE: ("support_type",),
    WizardStep.VISIT_FREQUENCY: ("visit_frequency",),
    WizardStep.CARE_DURATION: ("care_duration",),
    WizardStep.PRIORITY: ("priority",),
    WizardStep.POSTAL_CODE: ("postal_code",),
    WizardStep.MATCHES_FOUND: (),
    WizardStep.CONTACT: ("contact_name", "email", "phone"),
    WizardStep.SUCCESS: (),
}

CHOICES = {
    "support_type": {c.value for c in SupportType},
    "visit_frequency": {c.value for c in VisitFrequency},
    "care_duration": {c.value for c in CareDuration},
    "priority": {c.value for c in CarePriority},
}


class WizardError(Exception):
    """An action that the current step does not allow."""


class WizardBusy(WizardError):
    """The draft is being written; no other change is accepted meanwhile."""


@dataclass
class WizardDraft:
    support_type: str = SupportType.COMPANIONSHIP.value
    visit_frequency: str = VisitFrequency.TWICE_DAILY.value
    care_duration: str = CareDuration.LONG_TERM.value
    priority: str = CarePriority.FLEXIBILITY.value
    postal_code: str = ""
    contact_name: str = ""
    email: str = ""
    phone: str = ""

    def contact_record(self) -> Dict[str, str]:
        return {
            "contactName": self.contact_name,
            "email": self.email,
            "phone": self.phone,
            "postalCode": self.postal_code,
        }


# create_lead(**fields) -> stored lead row
LeadWriter = Callable[..., Dict[str, Any]]


class LeadWizard:
    def __init__(self):
        self.step = FIRST_STEP
        self.draft = WizardDraft()
        self.lead_id: Optional[str] = None
        self.submitting = False
        # sync routes run in a worker pool, so one draft may see concurrent requests
        self._lock = threading.Lock()

    def _check_idle(self) -> None:
        if self.submitting:
            raise WizardBusy("This enquiry is already being submitted")

    def answer(self, field_name: str, value: str) -> None:
        with self._lock:
            self._check_idle()
            if field_name not in STEP_FIELDS[self.step]:
                raise WizardError(f"'{field_name}' cannot be answered at step {int(self.step)}")
            if field_name in CHOICES and value not in CHOICES[field_name]:
                raise WizardError(f"'{value}' is not a valid choice for {field_name}")
            setattr(self.draft, field_name, value if value is not None else "")

    def back(self) -> WizardStep:
        """One step back; the success screen is terminal and only left through reset()."""
        with self._lock:
            self._check_idle()
            if self.step != LAST_STEP:
                self.step = WizardStep(max(self.step - 1, FIRST_STEP))
            return self.step

    def forward(self) -> WizardStep:
        with self._lock:
            self._check_idle()
            if self.step == WizardStep.CONTACT:
                raise WizardError("Submit the contact details to continue")
            if self.step == LAST_STEP:
                return self.step
            if self.step == WizardStep.POSTAL_CODE:
                # raises ContactValidationError and leaves the step untouched
                self.draft.postal_code = validate_postal_code(self.draft.postal_code)
            self.step = WizardStep(min(self.step + 1, LAST_STEP))
            return self.step

    def submit(self, create_lead: LeadWriter, created_by: Optional[str] = None) -> Dict[str, Any]:
        """Validate and persist the draft as exactly one lead.

        On any failure the wizard stays on the contact step with the draft intact.
        A second submit while the first is still writing is refused.
        """
        with self._lock:
            self._check_idle()
            if self.step != WizardStep.CONTACT or self.lead_id is not None:
                raise WizardError("Contact details are submitted from step 7")
            contact = validate_contact(self.draft.contact_record())
            fields = dict(
                contact_name=contact.contact_name,
                contact_email=contact.email,
                contact_phone=contact.phone,
                postal_code=contact.postal_code,
                support_type=self.draft.support_type,
                visit_frequency=self.draft.visit_frequency,
                care_duration=self.draft.care_duration,
                priority=self.draft.priority,
                created_by=created_by,
            )
            self.submitting = True

        try:
            lead = create_lead(**fields)
        except Exception:
            with self._lock:
                self.submitting = False
            raise

        with self._lock:
            self.lead_id = lead["id"]
            self.step = WizardStep.SUCCESS
            self.submitting = False
        return lead

    def reset(self) -> None:
        with self._lock:
            self._check_idle()
            self.step = FIRST_STEP
            self.draft = WizardDraft()
            self.lead_id = None

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "step": int(self.step),
                "fields": list(STEP_FIELDS[self.step]),
                "draft": asdict(self.draft),
                "lead_id": self.lead_id,
                "submitting": self.submitting,
            }


@dataclass
class _Entry:
    wizard: LeadWizard
    touched: float


class WizardStore:
    """In-process drafts keyed by an opaque id. Expired drafts are dropped, never saved."""

    def __init__(self, ttl_seconds: float):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def open(self) -> tuple[str, LeadWizard]:
        wizard_id = uuid4().hex
        wizard = LeadWizard()
        with self._lock:
            self._purge()
            self._entries[wizard_id] = _Entry(wizard, time.monotonic())
        return wizard_id, wizard

    def get(self, wizard_id: str) -> Optional[LeadWizard]:
        with self._lock:
            self._purge()
            entry = self._entries.get(wizard_id)
            if entry is None:
                return None
            entry.touched = time.monotonic()
            return entry.wizard

    def close(self, wizard_id: str) -> bool:
        with self._lock:
            entry = self._entries.pop(wizard_id, None)
        if entry is not None and not entry.wizard.submitting:
            entry.wizard.reset()
        return entry is not None

    def _purge(self) -> None:
        cutoff = time.monotonic() - self.ttl_seconds
        expired = [key for key, entry in self._entries.items() if entry.touched < cutoff]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Discarded %d expired wizard drafts", len(expired))

    def __len__(self) -> int:
        return len(self._entries)
