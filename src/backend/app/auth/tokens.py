"""Signed tokens for console sessions and password resets."""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from jwt.exceptions import InvalidTokenError

from app.config import settings

ACCESS = "access"
PASSWORD_RESET = "password_reset"


class TokenError(Exception):
    pass


def _encode(claims: Dict[str, Any], minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {**claims, "iat": now, "exp": now + timedelta(minutes=minutes)}
    return jwt.encode(payload, settings.auth_jwt_secret, algorithm=settings.auth_jwt_algorithm)


def _decode(token: str, purpose: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            settings.auth_jwt_secret,
            algorithms=[settings.auth_jwt_algorithm],
            options={"require": ["exp", "sub", "typ"]},
        )
    except InvalidTokenError as exc:
        raise TokenError(str(exc)) from exc
    if payload.get("typ") != purpose:
        raise TokenError("Unexpected token type")
    return payload


def create_access_token(user_id: str, session_id: str, aal: str) -> str:
    return _encode(
        {"sub": user_id, "sid": session_id, "aal": aal, "typ": ACCESS},
        settings.auth_access_token_minutes,
    )


def decode_access_token(token: str) -> Dict[str, Any]:
    payload = _decode(token, ACCESS)
    if not payload.get("sid"):
        raise TokenError("Token is not bound to a session")
    return payload


def _password_fingerprint(password_hash: str) -> str:
    # changes whenever the password does, so a reset link works once
    return password_hash[-12:]


def create_reset_token(user_id: str, password_hash: str) -> str:
    return _encode(
        {"sub": user_id, "typ": PASSWORD_RESET, "pfp": _password_fingerprint(password_hash)},
        settings.auth_reset_token_minutes,
    )


def decode_reset_token(token: str, current_password_hash: str) -> str:
    payload = _decode(token, PASSWORD_RESET)
    if payload.get("pfp") != _password_fingerprint(current_password_hash):
        raise TokenError("Reset link has already been used")
    return payload["sub"]


def peek_subject(token: str) -> str:
    """Subject of a reset token before its fingerprint can be checked."""
    return _decode(token, PASSWORD_RESET)["sub"]
