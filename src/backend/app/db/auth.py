from typing import Any, Dict, Optional

from app.db.postgres import get_cursor
from app.db.profiles import create_profile
from app.utils.logger import get_logger

logger = get_logger(__name__)

USER_COLUMNS = """
    id::TEXT AS id,
    email,
    password_hash,
    mfa_secret,
    mfa_verified_at,
    created_at
"""


def init_auth_tables() -> None:
    sql = """
    CREATE EXTENSION IF NOT EXISTS pgcrypto;

    CREATE TABLE IF NOT EXISTS auth_users (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        email TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        mfa_secret TEXT,
        mfa_verified_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );

    CREATE UNIQUE INDEX IF NOT EXISTS auth_users_email_idx ON auth_users (LOWER(email));

    CREATE TABLE IF NOT EXISTS auth_sessions (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id UUID NOT NULL REFERENCES auth_users (id) ON DELETE CASCADE,
        aal TEXT NOT NULL DEFAULT 'aal1' CHECK (aal IN ('aal1', 'aal2')),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        revoked_at TIMESTAMPTZ
    );

    CREATE INDEX IF NOT EXISTS auth_sessions_user_idx ON auth_sessions (user_id);
    """

    with get_cursor() as (_, cur):
        cur.execute(sql)
        logger.info("auth_users and auth_sessions tables ensured.")


def register_account(
    email: str,
    password_hash: str,
    full_name: Optional[str] = None,
    phone_number: Optional[str] = None,
    company_name: Optional[str] = None,
    postal_code: Optional[str] = None,
) -> str:
    """Create the login, profile, default role and notification rows in one transaction."""
    with get_cursor() as (_, cur):
        cur.execute(
            "INSERT INTO auth_users (email, password_hash) VALUES (%s, %s) RETURNING id::TEXT AS id",
            (email, password_hash),
        )
        user_id = cur.fetchone()["id"]
        create_profile(
            cur,
            user_id,
            email,
            full_name=full_name,
            phone_number=phone_number,
            company_name=company_name,
            postal_code=postal_code,
        )
    logger.info("Account registered id=%s", user_id)
    return user_id


def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    with get_cursor() as (_, cur):
        cur.execute(
            f"SELECT {USER_COLUMNS} FROM auth_users WHERE LOWER(email) = LOWER(%s)",
            (email,),
        )
        return cur.fetchone()


def get_user(user_id: str) -> Optional[Dict[str, Any]]:
    with get_cursor() as (_, cur):
        cur.execute(f"SELECT {USER_COLUMNS} FROM auth_users WHERE id = %s", (user_id,))
        return cur.fetchone()


def set_password_hash(user_id: str, password_hash: str) -> bool:
    with get_cursor() as (_, cur):
        cur.execute(
            "UPDATE auth_users SET password_hash = %s WHERE id = %s",
            (password_hash, user_id),
        )
        updated = cur.rowcount > 0
        # a reset signs the user out everywhere
        cur.execute(
            "UPDATE auth_sessions SET revoked_at = NOW() WHERE user_id = %s AND revoked_at IS NULL",
            (user_id,),
        )
    return updated


def set_mfa_secret(user_id: str, secret: str) -> None:
    with get_cursor() as (_, cur):
        cur.execute(
            "UPDATE auth_users SET mfa_secret = %s, mfa_verified_at = NULL WHERE id = %s",
            (secret, user_id),
        )


def mark_mfa_verified(user_id: str) -> None:
    with get_cursor() as (_, cur):
        cur.execute(
            "UPDATE auth_users SET mfa_verified_at = COALESCE(mfa_verified_at, NOW()) WHERE id = %s",
            (user_id,),
        )


# --- auth_sessions -------------------------------------------------------------------------

def create_session(user_id: str, aal: str = "aal1") -> str:
    with get_cursor() as (_, cur):
        cur.execute(
            "INSERT INTO auth_sessions (user_id, aal) VALUES (%s, %s) RETURNING id::TEXT AS id",
            (user_id, aal),
        )
        return cur.fetchone()["id"]


def get_active_session(session_id: str) -> Optional[Dict[str, Any]]:
    with get_cursor() as (_, cur):
        cur.execute(
            """
            SELECT s.id::TEXT AS id, s.user_id::TEXT AS user_id, s.aal, u.email
            FROM auth_sessions s
            JOIN auth_users u ON u.id = s.user_id
            WHERE s.id = %s AND s.revoked_at IS NULL
            """,
            (session_id,),
        )
        return cur.fetchone()


def upgrade_session(session_id: str) -> None:
    with get_cursor() as (_, cur):
        cur.execute("UPDATE auth_sessions SET aal = 'aal2' WHERE id = %s", (session_id,))


def revoke_session(session_id: str) -> bool:
    with get_cursor() as (_, cur):
        cur.execute(
            "UPDATE auth_sessions SET revoked_at = NOW() WHERE id = %s AND revoked_at IS NULL",
            (session_id,),
        )
        return cur.rowcount > 0
