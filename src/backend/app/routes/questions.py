from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from app.auth.permissions import Action, require
from app.auth.session import SessionContext, get_verified_session
from app.db import questions as questions_db
from app.models.questions import QuestionCreate, QuestionRecord, QuestionUpdate
from app.utils.logger import get_logger

router = APIRouter(prefix="/questions", tags=["content"])
logger = get_logger(__name__)


@router.get("", response_model=List[QuestionRecord], summary="Onboarding questions")
def list_questions():
    """Public: the wizard renders whichever questions are active."""
    try:
        return questions_db.list_questions()
    except Exception:
        logger.exception("Error while listing onboarding questions")
        raise HTTPException(status_code=500, detail="Unable to fetch questions")


@router.post("", status_code=201, response_model=QuestionRecord, summary="Add a question")
def create_question(
    payload: QuestionCreate,
    session: SessionContext = Depends(get_verified_session),
):
    require(session.identity, Action.MANAGE_CONTENT)
    try:
        return questions_db.create_question(payload.model_dump())
    except Exception:
        logger.exception("Error while creating onboarding question")
        raise HTTPException(status_code=500, detail="Failed to create question.")


@router.put("/{question_id}", response_model=QuestionRecord, summary="Edit a question")
def update_question(
    question_id: UUID,
    payload: QuestionUpdate,
    session: SessionContext = Depends(get_verified_session),
):
    require(session.identity, Action.MANAGE_CONTENT)
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=400, detail="No editable fields were provided.")
    try:
        row = questions_db.update_question(str(question_id), updates)
    except Exception:
        logger.exception("Error while updating question id=%s", question_id)
        raise HTTPException(status_code=500, detail="Failed to update question.")
    if not row:
        raise HTTPException(status_code=404, detail="Question not found.")
    return row


@router.delete("/{question_id}", summary="Delete a question")
def delete_question(question_id: UUID, session: SessionContext = Depends(get_verified_session)):
    require(session.identity, Action.MANAGE_CONTENT)
    try:
        deleted = questions_db.delete_question(str(question_id))
    except Exception:
        logger.exception("Error while deleting question id=%s", question_id)
        raise HTTPException(status_code=500, detail="Failed to delete question.")
    if not deleted:
        raise HTTPException(status_code=404, detail="Question not found.")
    return {"deleted": True, "id": str(question_id)}
