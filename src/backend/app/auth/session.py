"""Per-request session context.

Routes receive a :class:`SessionContext` through ``Depends`` instead of
looking the caller up themselves.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.auth.permissions import Identity, Role
from app.auth.tokens import TokenError, decode_access_token
from app.config import settings
from app.db import auth as auth_db
from app.db import profiles as profiles_db
from app.utils.logger import get_logger

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


class AuthError(Exception):
    def __init__(self, detail: str, status_code: int = 401):
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


@dataclass(frozen=True)
class SessionContext:
    identity: Identity
    session_id: str
    aal: str = "aal1"

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def is_superadmin(self) -> bool:
        return self.identity.is_superadmin

    @property
    def is_admin(self) -> bool:
        return self.identity.is_admin

    @property
    def is_manager(self) -> bool:
        return self.identity.is_manager

    @property
    def can_manage_crud(self) -> bool:
        return self.identity.can_manage_crud

    @property
    def has_role(self) -> bool:
        return self.identity.role is not None

    @property
    def fully_authenticated(self) -> bool:
        return not settings.mfa_enabled or self.aal == "aal2"


def load_identity(user_id: str, email: Optional[str]) -> Identity:
    row = profiles_db.get_role(user_id)
    if not row:
        return Identity(user_id=user_id, email=email)
    return Identity(
        user_id=user_id,
        email=email,
        role=Role(row["role"]),
        can_manage_crud=bool(row["can_manage_crud"]),
    )


def resolve_session(token: str) -> SessionContext:
    try:
        claims = decode_access_token(token)
    except TokenError as exc:
        logger.debug("Rejected access token: %s", exc)
        raise AuthError("Invalid or expired session") from exc

    session = auth_db.get_active_session(claims["sid"])
    if not session or session["user_id"] != claims["sub"]:
        raise AuthError("Session has ended")
    identity = load_identity(session["user_id"], session["email"])
    return SessionContext(identity=identity, session_id=session["id"], aal=session["aal"])


def get_optional_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[SessionContext]:
    if credentials is None:
        return None
    try:
        return resolve_session(credentials.credentials)
    except AuthError:
        return None


def get_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> SessionContext:
    """Signed-in caller; the second factor may still be pending."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    try:
        return resolve_session(credentials.credentials)
    except AuthError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail) from exc


def get_verified_session(session: SessionContext = Depends(get_session)) -> SessionContext:
    """Signed-in caller who has completed the second factor when it is enabled."""
    if not session.fully_authenticated:
        raise HTTPException(status_code=403, detail="Second factor verification required")
    return session
