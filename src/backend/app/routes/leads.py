import asyncio
from typing import Optional, Set
from uuid import UUID

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    Path,
    Query,
    WebSocket,
    WebSocketDisconnect,
)
from pydantic import ValidationError

from app.auth.permissions import Action, authorize, lead_scope, require
from app.auth.session import (
    AuthError,
    SessionContext,
    get_optional_session,
    get_verified_session,
    resolve_session,
)
from app.db import leads as leads_db
from app.db import profiles as profiles_db
from app.db.changes import LeadChangeSubscription
from app.models.contact import validate_contact
from app.models.lead import (
    LeadCreate,
    LeadDetail,
    LeadFilters,
    LeadMutationResponse,
    LeadRecord,
    LeadTag,
    LeadUpdate,
    NoteCreate,
    NoteMutationResponse,
    Notice,
    PageMeta,
    PaginatedLeads,
    TagToggleResponse,
)
from app.services.lead_feed import LeadFeed
from app.utils.logger import get_logger
from app.utils.mailer import send_assignment_notification, send_lead_notification
from app.utils.text import clean_note

router = APIRouter(prefix="/leads", tags=["leads"])
logger = get_logger(__name__)

FIELD_NOTICES = {
    "status": ("Status updated successfully.", "Failed to update status."),
    "assigned_manager_id": ("Manager assigned successfully.", "Failed to assign manager."),
}


def _load_lead(lead_id: str) -> dict:
    try:
        lead = leads_db.get_lead(lead_id)
    except Exception:
        logger.exception("Failed to load lead id=%s", lead_id)
        raise HTTPException(status_code=500, detail="Unable to fetch lead data")
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found.")
    return lead


def _notify_assignment(manager_id: str, lead: dict) -> None:
    try:
        contact = profiles_db.get_assignment_contact(manager_id)
    except Exception:
        logger.exception("Could not look up manager %s for assignment email", manager_id)
        return
    if contact:
        send_assignment_notification(contact, lead)


@router.post("/", status_code=201, response_model=LeadRecord, summary="Submit a care enquiry")
def create_lead_endpoint(
    payload: LeadCreate,
    background_tasks: BackgroundTasks,
    session: Optional[SessionContext] = Depends(get_optional_session),
) -> LeadRecord:
    """Validate contact details and store one lead. Anonymous submissions are allowed."""
    contact = validate_contact(
        {
            "contactName": payload.contact_name,
            "email": payload.email,
            "phone": payload.phone,
            "postalCode": payload.postal_code,
        }
    )
    try:
        lead = leads_db.create_lead(
            contact_name=contact.contact_name,
            contact_email=contact.email,
            contact_phone=contact.phone,
            postal_code=contact.postal_code,
            support_type=payload.support_type,
            visit_frequency=payload.visit_frequency,
            care_duration=payload.care_duration,
            priority=payload.priority,
            created_by=session.user_id if session else None,
        )
    except Exception:
        logger.exception("Error while creating lead for email=%s", contact.email)
        raise HTTPException(
            status_code=500,
            detail="There was an error submitting your information. Please try again.",
        )
    background_tasks.add_task(send_lead_notification, lead)
    return lead


@router.get("/", response_model=PaginatedLeads, summary="List leads")
def list_leads_endpoint(
    search: Optional[str] = Query(None, max_length=200),
    status: Optional[str] = Query(None),
    assigned_manager: Optional[str] = Query(None),
    tag: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    size: int = Query(100, ge=1, le=1000),
    session: SessionContext = Depends(get_verified_session),
) -> PaginatedLeads:
    """Newest first. Managers only ever see the leads assigned to them."""
    require(session.identity, Action.VIEW_DASHBOARD)
    try:
        filters = LeadFilters.model_validate(
            {"search": search, "status": status, "assigned_manager": assigned_manager, "tag": tag}
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False))

    try:
        rows, total = leads_db.list_leads(
            filters,
            manager_id=lead_scope(session.identity),
            limit=size,
            offset=(page - 1) * size,
        )
    except Exception:
        logger.exception("Failed to list leads for user=%s", session.user_id)
        raise HTTPException(status_code=500, detail="Unable to fetch leads data")
    return PaginatedLeads(data=rows, meta=PageMeta(total=total, page=page, size=size))


@router.get("/{lead_id}", response_model=LeadDetail, summary="Lead detail panel")
def get_lead_endpoint(
    lead_id: UUID = Path(...),
    session: SessionContext = Depends(get_verified_session),
) -> LeadDetail:
    """Lead attributes with notes (newest first), tags, manager choices and what the caller may do."""
    lead = _load_lead(str(lead_id))
    require(session.identity, Action.VIEW_LEAD, lead)
    try:
        notes = leads_db.list_notes(str(lead_id))
        tags = leads_db.list_tags(str(lead_id))
        managers = profiles_db.list_manager_options()
    except Exception:
        logger.exception("Failed to load detail for lead id=%s", lead_id)
        raise HTTPException(status_code=500, detail="Unable to fetch lead data")
    return LeadDetail(
        lead=lead,
        notes=notes,
        tags=tags,
        managers=managers,
        can_edit=authorize(session.identity, Action.EDIT_LEAD, lead),
        can_delete=authorize(session.identity, Action.DELETE_LEAD, lead),
    )


@router.patch("/{lead_id}", response_model=LeadMutationResponse, summary="Update status or manager")
def update_lead_endpoint(
    payload: LeadUpdate,
    background_tasks: BackgroundTasks,
    lead_id: UUID = Path(...),
    session: SessionContext = Depends(get_verified_session),
) -> LeadMutationResponse:
    """Each provided field is written on its own; a failure leaves earlier fields applied."""
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No editable fields were provided.")

    lead = _load_lead(str(lead_id))
    require(session.identity, Action.EDIT_LEAD, lead)

    if "assigned_manager_id" in updates:
        manager_id = updates["assigned_manager_id"]
        manager_id = None if manager_id in (None, leads_db.UNASSIGNED) else str(manager_id)
        updates["assigned_manager_id"] = manager_id
        if manager_id is not None:
            try:
                manager = profiles_db.get_profile(manager_id)
            except Exception:
                logger.exception("Failed to look up manager id=%s for lead id=%s", manager_id, lead_id)
                raise HTTPException(status_code=500, detail=FIELD_NOTICES["assigned_manager_id"][1])
            if not manager:
                raise HTTPException(status_code=422, detail="Unknown manager.")

    applied = []
    for field, value in updates.items():
        if field == "status":
            if value is None:
                continue
            value = value.value
        try:
            updated = leads_db.update_lead(str(lead_id), {field: value})
        except Exception:
            logger.exception("Failed to update %s for lead id=%s", field, lead_id)
            raise HTTPException(status_code=500, detail=FIELD_NOTICES[field][1])
        if not updated:
            raise HTTPException(status_code=404, detail="Lead not found.")
        lead = updated
        applied.append(field)

    if "assigned_manager_id" in applied and lead.get("assigned_manager_id"):
        background_tasks.add_task(_notify_assignment, lead["assigned_manager_id"], lead)

    description = " ".join(FIELD_NOTICES[field][0] for field in applied) or "Nothing to update."
    return LeadMutationResponse(lead=lead, notice=Notice(title="Success", description=description))


@router.post(
    "/{lead_id}/notes",
    status_code=201,
    response_model=NoteMutationResponse,
    summary="Add a note to a lead",
)
def add_note_endpoint(
    payload: NoteCreate,
    lead_id: UUID = Path(...),
    session: SessionContext = Depends(get_verified_session),
) -> NoteMutationResponse:
    """Notes are append-only; there is no edit or delete."""
    text = clean_note(payload.note)
    if not text:
        raise HTTPException(status_code=400, detail="Note cannot be empty.")

    lead = _load_lead(str(lead_id))
    require(session.identity, Action.ANNOTATE_LEAD, lead)
    try:
        note = leads_db.add_note(str(lead_id), text, session.user_id)
    except Exception:
        logger.exception("Failed to add note to lead id=%s", lead_id)
        raise HTTPException(status_code=500, detail="Failed to add note.")
    return NoteMutationResponse(
        note=note, notice=Notice(title="Success", description="Note added successfully.")
    )


@router.post("/{lead_id}/tags/{tag}", response_model=TagToggleResponse, summary="Toggle a tag")
def toggle_tag_endpoint(
    tag: LeadTag,
    lead_id: UUID = Path(...),
    session: SessionContext = Depends(get_verified_session),
) -> TagToggleResponse:
    """Adds the tag when the lead does not have it, removes it otherwise."""
    lead = _load_lead(str(lead_id))
    require(session.identity, Action.ANNOTATE_LEAD, lead)
    try:
        active = leads_db.toggle_tag(str(lead_id), tag.value)
    except Exception:
        logger.exception("Failed to toggle tag %s on lead id=%s", tag.value, lead_id)
        raise HTTPException(status_code=500, detail="Failed to update tag.")
    description = f"Tag '{tag.value}' added." if active else f"Tag '{tag.value}' removed."
    return TagToggleResponse(
        lead_id=str(lead_id),
        tag=tag,
        active=active,
        notice=Notice(title="Success", description=description),
    )


@router.delete("/{lead_id}", summary="Delete a lead")
def delete_lead_endpoint(
    lead_id: UUID = Path(...),
    confirm: bool = Query(False),
    session: SessionContext = Depends(get_verified_session),
) -> dict:
    """Removes the lead with its notes and tags. Must be repeated with ``confirm=true``."""
    lead = _load_lead(str(lead_id))
    require(session.identity, Action.DELETE_LEAD, lead)
    if not confirm:
        raise HTTPException(
            status_code=409,
            detail="Deleting a lead also removes its notes and tags. Repeat with confirm=true.",
        )
    try:
        deleted = leads_db.delete_lead(str(lead_id))
    except Exception:
        logger.exception("Failed to delete lead id=%s", lead_id)
        raise HTTPException(status_code=500, detail="Failed to delete lead.")
    if not deleted:
        raise HTTPException(status_code=404, detail="Lead not found.")
    return {
        "id": str(lead_id),
        "notice": Notice(title="Lead deleted", description="The lead has been removed.").model_dump(),
    }


# --- live list -----------------------------------------------------------------------------

async def _publish(websocket: WebSocket, feed: LeadFeed) -> None:
    try:
        message = await feed.refresh()
    except Exception:
        logger.exception("Live lead refresh failed for user=%s", feed.identity.user_id)
        await websocket.send_json({"type": "error", "detail": "Unable to fetch leads data"})
        return
    if message is not None:
        await websocket.send_json(message)


@router.websocket("/live")
async def live_leads(websocket: WebSocket, token: str = Query(...)):
    """
    Push the filtered lead list on connect, on every filter message from the
    client and on every change to leads, notes or tags.
    """
    try:
        session = await asyncio.to_thread(resolve_session, token)
    except AuthError as exc:
        await websocket.close(code=4401, reason=exc.detail)
        return
    if not session.fully_authenticated or not authorize(session.identity, Action.VIEW_DASHBOARD):
        await websocket.close(code=4403, reason="Access denied")
        return

    await websocket.accept()
    feed = LeadFeed(session.identity)
    refreshes: Set[asyncio.Task] = set()

    def schedule_refresh() -> None:
        task = asyncio.create_task(_publish(websocket, feed))
        refreshes.add(task)
        task.add_done_callback(refreshes.discard)

    async with LeadChangeSubscription() as changes:
        schedule_refresh()
        receive = asyncio.create_task(websocket.receive_json())
        change = asyncio.create_task(changes.next_change())
        try:
            while True:
                done, _ = await asyncio.wait({receive, change}, return_when=asyncio.FIRST_COMPLETED)
                if receive in done:
                    try:
                        message = receive.result()
                    except ValueError:
                        message = None
                    receive = asyncio.create_task(websocket.receive_json())
                    try:
                        feed.set_filters(LeadFilters.model_validate(message.get("filters") or {}))
                    except (ValidationError, AttributeError):
                        await websocket.send_json({"type": "error", "detail": "Invalid filters"})
                        continue
                    schedule_refresh()
                if change in done:
                    logger.debug("Lead change %s", change.result())
                    change = asyncio.create_task(changes.next_change())
                    schedule_refresh()
        except WebSocketDisconnect:
            logger.info("Live lead list closed for user=%s", session.user_id)
        finally:
            receive.cancel()
            change.cancel()
            for task in list(refreshes):
                task.cancel()
