from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response

from app.auth import mfa
from app.auth.passwords import hash_password, verify_password
from app.auth.session import SessionContext, get_optional_session, get_session
from app.auth.tokens import (
    TokenError,
    create_access_token,
    create_reset_token,
    decode_reset_token,
    peek_subject,
)
from app.config import settings
from app.db import auth as auth_db
from app.models.auth import (
    MfaCode,
    MfaEnrollment,
    PasswordResetConfirm,
    PasswordResetRequest,
    SessionIdentity,
    SignInPayload,
    TokenResponse,
)
from app.models.contact import SignUpPayload
from app.utils.logger import get_logger
from app.utils.mailer import send_password_reset

router = APIRouter(prefix="/auth", tags=["auth"])
logger = get_logger(__name__)

INVALID_RESET = "This reset link is invalid or has expired."


def _mfa_step(user: dict) -> Optional[str]:
    if not settings.mfa_enabled:
        return None
    return "challenge" if user.get("mfa_verified_at") else "enroll"


def _issue(user_id: str, aal: str, session_id: Optional[str] = None) -> str:
    session_id = session_id or auth_db.create_session(user_id, aal)
    return create_access_token(user_id, session_id, aal)


def _reset_link(token: str) -> str:
    base = settings.auth_reset_redirect_url
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}token={token}"


@router.post("/signup", status_code=201, response_model=TokenResponse, summary="Create an account")
def signup(payload: SignUpPayload) -> TokenResponse:
    """New accounts start as managers without CRUD rights."""
    if auth_db.get_user_by_email(payload.email):
        raise HTTPException(status_code=409, detail="An account with this email already exists.")
    try:
        password_hash = hash_password(payload.password)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    try:
        user_id = auth_db.register_account(
            payload.email,
            password_hash,
            full_name=payload.full_name,
            phone_number=payload.phone_number,
            company_name=payload.company_name,
            postal_code=payload.postal_code,
        )
    except Exception:
        logger.exception("Error while registering account for email=%s", payload.email)
        raise HTTPException(status_code=500, detail="Unable to create account")

    mfa_step = "enroll" if settings.mfa_enabled else None
    return TokenResponse(
        access_token=_issue(user_id, "aal1"),
        user_id=user_id,
        aal="aal1",
        mfa=mfa_step,
    )


@router.post("/signin", response_model=TokenResponse, summary="Sign in with email and password")
def signin(payload: SignInPayload) -> TokenResponse:
    user = auth_db.get_user_by_email(payload.email.strip())
    if not user or not verify_password(payload.password, user["password_hash"]):
        logger.info("Failed sign-in for email=%s", payload.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")

    return TokenResponse(
        access_token=_issue(user["id"], "aal1"),
        user_id=user["id"],
        aal="aal1",
        mfa=_mfa_step(user),
    )


@router.post("/signout", status_code=204, summary="End the current session")
def signout(session: SessionContext = Depends(get_session)) -> Response:
    auth_db.revoke_session(session.session_id)
    logger.info("Session %s signed out", session.session_id)
    return Response(status_code=204)


@router.get("/session", response_model=Optional[SessionIdentity], summary="Who am I")
def current_session(session: Optional[SessionContext] = Depends(get_optional_session)):
    if session is None:
        return None
    identity = session.identity
    return SessionIdentity(
        user_id=identity.user_id,
        email=identity.email,
        role=identity.role,
        can_manage_crud=identity.can_manage_crud,
        aal=session.aal,
        mfa_required=not session.fully_authenticated,
    )


@router.post("/password-reset", status_code=202, summary="Email a password reset link")
def request_password_reset(payload: PasswordResetRequest, background_tasks: BackgroundTasks):
    """Always accepted, so the response does not reveal whether an account exists."""
    user = auth_db.get_user_by_email(payload.email.strip())
    if user:
        token = create_reset_token(user["id"], user["password_hash"])
        background_tasks.add_task(send_password_reset, user["email"], _reset_link(token))
    else:
        logger.debug("Password reset requested for unknown email")
    return {"detail": "If an account exists for this email, a reset link has been sent."}


@router.post("/password-reset/confirm", summary="Set a new password from a reset link")
def confirm_password_reset(payload: PasswordResetConfirm):
    try:
        user = auth_db.get_user(peek_subject(payload.token))
        if not user:
            raise TokenError("Unknown account")
        user_id = decode_reset_token(payload.token, user["password_hash"])
    except TokenError as exc:
        logger.info("Rejected password reset: %s", exc)
        raise HTTPException(status_code=400, detail=INVALID_RESET)

    try:
        password_hash = hash_password(payload.password)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    auth_db.set_password_hash(user_id, password_hash)
    logger.info("Password reset for user=%s", user_id)
    return {"detail": "Your password has been updated. Please sign in again."}


@router.post("/mfa/enroll", response_model=MfaEnrollment, summary="Start authenticator enrolment")
def enroll_mfa(session: SessionContext = Depends(get_session)) -> MfaEnrollment:
    user = auth_db.get_user(session.user_id)
    if not user:
        raise HTTPException(status_code=404, detail="Account not found")
    if user.get("mfa_verified_at") and session.aal != "aal2":
        # replacing a verified factor needs the current one first
        raise HTTPException(status_code=403, detail="Second factor verification required")

    secret = mfa.new_secret()
    auth_db.set_mfa_secret(session.user_id, secret)
    return MfaEnrollment(
        secret=secret,
        otpauth_uri=mfa.provisioning_uri(secret, user["email"]),
    )


@router.post("/mfa/verify", response_model=TokenResponse, summary="Verify a one-time code")
def verify_mfa(payload: MfaCode, session: SessionContext = Depends(get_session)) -> TokenResponse:
    user = auth_db.get_user(session.user_id)
    if not user or not user.get("mfa_secret"):
        raise HTTPException(status_code=400, detail="No authenticator is enrolled")
    if not mfa.verify_code(user["mfa_secret"], payload.code):
        raise HTTPException(status_code=400, detail="Invalid verification code")

    auth_db.mark_mfa_verified(session.user_id)
    auth_db.upgrade_session(session.session_id)
    return TokenResponse(
        access_token=_issue(session.user_id, "aal2", session.session_id),
        user_id=session.user_id,
        aal="aal2",
    )
