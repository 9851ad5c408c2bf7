from typing import Any, Dict, List, Optional

from app.db.postgres import get_cursor
from app.utils.logger import get_logger

logger = get_logger(__name__)

PROFILE_FIELDS = {"full_name", "phone_number", "company_name", "postal_code"}
NOTIFICATION_FIELDS = {"email_notifications", "lead_assignment_notifications"}

PROFILE_COLUMNS = """
    p.id::TEXT AS id,
    p.email,
    p.full_name,
    p.phone_number,
    p.company_name,
    p.postal_code,
    p.created_at,
    p.updated_at
"""


def init_profiles_tables() -> None:
    sql = """
    CREATE EXTENSION IF NOT EXISTS pgcrypto;

    CREATE TABLE IF NOT EXISTS profiles (
        id UUID PRIMARY KEY,
        email TEXT,
        full_name TEXT,
        phone_number TEXT,
        company_name TEXT,
        postal_code TEXT,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );

    CREATE TABLE IF NOT EXISTS user_roles (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id UUID NOT NULL UNIQUE REFERENCES profiles (id) ON DELETE CASCADE,
        role TEXT NOT NULL DEFAULT 'manager'
            CHECK (role IN ('superadmin', 'admin', 'manager')),
        can_manage_crud BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );

    CREATE TABLE IF NOT EXISTS user_notification_settings (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        user_id UUID NOT NULL UNIQUE REFERENCES profiles (id) ON DELETE CASCADE,
        email_notifications BOOLEAN NOT NULL DEFAULT TRUE,
        lead_assignment_notifications BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );
    """

    with get_cursor() as (_, cur):
        cur.execute(sql)
        logger.info("profiles, user_roles and user_notification_settings tables ensured.")


def create_profile(
    cur,
    user_id: str,
    email: str,
    full_name: Optional[str] = None,
    phone_number: Optional[str] = None,
    company_name: Optional[str] = None,
    postal_code: Optional[str] = None,
) -> None:
    """Insert the profile, default role and notification rows using an open cursor."""
    cur.execute(
        """
        INSERT INTO profiles (id, email, full_name, phone_number, company_name, postal_code)
        VALUES (%s, %s, %s, %s, %s, %s)
        """,
        (user_id, email, full_name, phone_number, company_name, postal_code),
    )
    cur.execute("INSERT INTO user_roles (user_id) VALUES (%s)", (user_id,))
    cur.execute(
        "INSERT INTO user_notification_settings (user_id) VALUES (%s)",
        (user_id,),
    )


def get_role(user_id: str) -> Optional[Dict[str, Any]]:
    with get_cursor() as (_, cur):
        cur.execute(
            "SELECT role, can_manage_crud FROM user_roles WHERE user_id = %s",
            (user_id,),
        )
        return cur.fetchone()


def list_users_with_roles() -> List[Dict[str, Any]]:
    sql = f"""
        SELECT {PROFILE_COLUMNS}, r.role, COALESCE(r.can_manage_crud, FALSE) AS can_manage_crud
        FROM profiles p
        LEFT JOIN user_roles r ON r.user_id = p.id
        ORDER BY p.created_at DESC;
    """
    with get_cursor() as (_, cur):
        cur.execute(sql)
        return cur.fetchall()


def list_manager_options() -> List[Dict[str, Any]]:
    with get_cursor() as (_, cur):
        cur.execute("SELECT id::TEXT AS id, full_name FROM profiles ORDER BY full_name")
        return cur.fetchall()


def get_profile(user_id: str) -> Optional[Dict[str, Any]]:
    with get_cursor() as (_, cur):
        cur.execute(f"SELECT {PROFILE_COLUMNS} FROM profiles p WHERE p.id = %s", (user_id,))
        return cur.fetchone()


def update_profile(user_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    allowed = {k: v for k, v in updates.items() if k in PROFILE_FIELDS}
    if not allowed:
        return None

    expressions: List[str] = []
    values: List[Any] = []
    for field, value in allowed.items():
        expressions.append(f"{field} = %s")
        values.append(value)
    values.append(user_id)

    with get_cursor() as (_, cur):
        cur.execute(
            f"""
            UPDATE profiles p SET {', '.join(expressions)}, updated_at = NOW()
            WHERE p.id = %s
            RETURNING {PROFILE_COLUMNS}
            """,
            tuple(values),
        )
        return cur.fetchone()


def set_role(user_id: str, role: str) -> Dict[str, Any]:
    with get_cursor() as (_, cur):
        cur.execute(
            """
            INSERT INTO user_roles (user_id, role)
            VALUES (%s, %s)
            ON CONFLICT (user_id) DO UPDATE SET role = EXCLUDED.role
            RETURNING user_id::TEXT AS user_id, role, can_manage_crud
            """,
            (user_id, role),
        )
        row = cur.fetchone()
    logger.info("Role for user=%s set to %s", user_id, role)
    return row


def set_can_manage_crud(user_id: str, value: bool) -> Optional[Dict[str, Any]]:
    with get_cursor() as (_, cur):
        cur.execute(
            """
            UPDATE user_roles SET can_manage_crud = %s
            WHERE user_id = %s
            RETURNING user_id::TEXT AS user_id, role, can_manage_crud
            """,
            (value, user_id),
        )
        return cur.fetchone()


def remove_role(user_id: str) -> bool:
    with get_cursor() as (_, cur):
        cur.execute("DELETE FROM user_roles WHERE user_id = %s", (user_id,))
        return cur.rowcount > 0


# --- user_notification_settings ------------------------------------------------------------

def get_notification_settings(user_id: str) -> Dict[str, Any]:
    with get_cursor() as (_, cur):
        cur.execute(
            """
            INSERT INTO user_notification_settings (user_id)
            VALUES (%s)
            ON CONFLICT (user_id) DO NOTHING
            """,
            (user_id,),
        )
        cur.execute(
            """
            SELECT email_notifications, lead_assignment_notifications, updated_at
            FROM user_notification_settings
            WHERE user_id = %s
            """,
            (user_id,),
        )
        return cur.fetchone()


def update_notification_settings(user_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    allowed = {k: v for k, v in updates.items() if k in NOTIFICATION_FIELDS}
    if not allowed:
        return get_notification_settings(user_id)

    expressions = [f"{field} = %s" for field in allowed]
    values: List[Any] = list(allowed.values())
    values.append(user_id)

    get_notification_settings(user_id)
    with get_cursor() as (_, cur):
        cur.execute(
            f"""
            UPDATE user_notification_settings
            SET {', '.join(expressions)}, updated_at = NOW()
            WHERE user_id = %s
            RETURNING email_notifications, lead_assignment_notifications, updated_at
            """,
            tuple(values),
        )
        return cur.fetchone()


def get_assignment_contact(user_id: str) -> Optional[Dict[str, Any]]:
    """Email and opt-in flags for the manager a lead was just assigned to."""
    with get_cursor() as (_, cur):
        cur.execute(
            """
            SELECT p.email, p.full_name,
                   COALESCE(s.email_notifications, TRUE) AS email_notifications,
                   COALESCE(s.lead_assignment_notifications, TRUE) AS lead_assignment_notifications
            FROM profiles p
            LEFT JOIN user_notification_settings s ON s.user_id = p.id
            WHERE p.id = %s
            """,
            (user_id,),
        )
        return cur.fetchone()
