import asyncio
from typing import Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel

from app.auth.session import SessionContext, get_optional_session
from app.config import settings
from app.db import leads as leads_db
from app.models.contact import ContactValidationError
from app.services.wizard import LeadWizard, WizardBusy, WizardError, WizardStep, WizardStore
from app.utils.logger import get_logger
from app.utils.mailer import send_lead_notification

router = APIRouter(prefix="/wizard", tags=["wizard"])
logger = get_logger(__name__)

store = WizardStore(ttl_seconds=settings.wizard_session_ttl)


class WizardAnswers(BaseModel):
    answers: Dict[str, str]


def _get_wizard(wizard_id: str) -> LeadWizard:
    wizard = store.get(wizard_id)
    if wizard is None:
        raise HTTPException(status_code=404, detail="This enquiry has expired. Please start again.")
    return wizard


def _state(wizard_id: str, wizard: LeadWizard) -> dict:
    return {"id": wizard_id, **wizard.snapshot()}


def _refused(exc: WizardError) -> HTTPException:
    status_code = 409 if isinstance(exc, WizardBusy) else 400
    return HTTPException(status_code=status_code, detail=str(exc))


@router.post("", status_code=201, summary="Open the enquiry wizard")
def open_wizard() -> dict:
    wizard_id, wizard = store.open()
    logger.debug("Wizard opened id=%s", wizard_id)
    return _state(wizard_id, wizard)


@router.get("/{wizard_id}", summary="Current wizard step and draft")
def get_wizard(wizard_id: str) -> dict:
    return _state(wizard_id, _get_wizard(wizard_id))


@router.put("/{wizard_id}/answers", summary="Answer the questions on the current step")
def answer_wizard(wizard_id: str, payload: WizardAnswers) -> dict:
    wizard = _get_wizard(wizard_id)
    try:
        for field_name, value in payload.answers.items():
            wizard.answer(field_name, value)
    except WizardError as exc:
        raise _refused(exc)
    return _state(wizard_id, wizard)


@router.post("/{wizard_id}/back", summary="Go back one step")
def wizard_back(wizard_id: str) -> dict:
    """No effect on the success screen; restart is the way out of it."""
    wizard = _get_wizard(wizard_id)
    try:
        wizard.back()
    except WizardError as exc:
        raise _refused(exc)
    return _state(wizard_id, wizard)


@router.post("/{wizard_id}/forward", summary="Continue to the next step")
async def wizard_forward(wizard_id: str) -> dict:
    """
    Leaving the postcode step validates the postcode, then waits briefly while
    the client shows the "finding matches" indicator.
    """
    wizard = _get_wizard(wizard_id)
    leaving_postcode = wizard.step == WizardStep.POSTAL_CODE
    try:
        wizard.forward()
    except WizardError as exc:
        raise _refused(exc)
    if leaving_postcode and settings.wizard_matching_delay > 0:
        await asyncio.sleep(settings.wizard_matching_delay)
    return _state(wizard_id, wizard)


@router.post("/{wizard_id}/submit", summary="Submit the enquiry")
def submit_wizard(
    wizard_id: str,
    background_tasks: BackgroundTasks,
    session: Optional[SessionContext] = Depends(get_optional_session),
) -> dict:
    """Store the draft as one lead. Failures keep the wizard on the contact step."""
    wizard = _get_wizard(wizard_id)
    try:
        lead = wizard.submit(
            leads_db.create_lead,
            created_by=session.user_id if session else None,
        )
    except WizardError as exc:
        raise _refused(exc)
    except ContactValidationError:
        raise
    except Exception:
        logger.exception("Failed to persist wizard id=%s", wizard_id)
        raise HTTPException(
            status_code=500,
            detail="There was an error submitting your information. Please try again.",
        )
    logger.info("Wizard id=%s submitted lead id=%s", wizard_id, lead["id"])
    background_tasks.add_task(send_lead_notification, lead)
    return _state(wizard_id, wizard)


@router.post("/{wizard_id}/restart", summary="Return to the start")
def restart_wizard(wizard_id: str) -> dict:
    """Reset the draft to its defaults and go back to step 1."""
    wizard = _get_wizard(wizard_id)
    try:
        wizard.reset()
    except WizardError as exc:
        raise _refused(exc)
    return _state(wizard_id, wizard)


@router.delete("/{wizard_id}", status_code=204, summary="Close the wizard")
def close_wizard(wizard_id: str) -> None:
    """Discard the draft. Nothing is saved."""
    store.close(wizard_id)
