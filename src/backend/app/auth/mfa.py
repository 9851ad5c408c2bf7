import re

import pyotp

from app.config import settings

CODE_RE = re.compile(r"^\d{6}$")


def new_secret() -> str:
    return pyotp.random_base32()


def provisioning_uri(secret: str, email: str) -> str:
    """otpauth:// URI that authenticator apps read from a QR code."""
    return pyotp.TOTP(secret).provisioning_uri(name=email, issuer_name=settings.mfa_issuer)


def verify_code(secret: str, code: str) -> bool:
    code = (code or "").strip()
    if not secret or not CODE_RE.match(code):
        return False
    return pyotp.TOTP(secret).verify(code, valid_window=1)
