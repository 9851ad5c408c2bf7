from typing import Any, Dict, List, Optional, Tuple

from app.db.postgres import get_cursor
from app.models.lead import LeadFilters
from app.utils.logger import get_logger

logger = get_logger(__name__)

LEAD_CHANGES_CHANNEL = "lead_changes"
UNASSIGNED = "unassigned"

LEAD_EDITABLE_FIELDS = {"status", "assigned_manager_id"}

LEAD_COLUMNS = """
    l.id::TEXT AS id,
    l.contact_name,
    l.contact_email,
    l.contact_phone,
    l.postal_code,
    l.support_type,
    l.visit_frequency,
    l.care_duration,
    l.priority,
    l.status,
    l.assigned_manager_id::TEXT AS assigned_manager_id,
    l.created_by::TEXT AS created_by,
    l.created_at,
    l.updated_at,
    p.full_name AS manager_name,
    ARRAY(
        SELECT t.tag FROM lead_tags t WHERE t.lead_id = l.id ORDER BY t.tag
    ) AS tags
"""


def init_leads_tables() -> None:
    sql = f"""
    CREATE EXTENSION IF NOT EXISTS pgcrypto;

    CREATE TABLE IF NOT EXISTS leads (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        contact_name TEXT NOT NULL,
        contact_email TEXT NOT NULL,
        contact_phone TEXT NOT NULL,
        postal_code TEXT,
        support_type TEXT,
        visit_frequency TEXT,
        care_duration TEXT,
        priority TEXT,
        status TEXT NOT NULL DEFAULT 'new'
            CHECK (status IN ('new', 'contacted', 'in_progress', 'converted', 'closed')),
        assigned_manager_id UUID REFERENCES profiles (id) ON DELETE SET NULL,
        created_by UUID REFERENCES profiles (id) ON DELETE SET NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );

    CREATE INDEX IF NOT EXISTS leads_created_at_idx ON leads (created_at);
    CREATE INDEX IF NOT EXISTS leads_manager_idx ON leads (assigned_manager_id, created_at);

    CREATE TABLE IF NOT EXISTS lead_notes (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        lead_id UUID NOT NULL REFERENCES leads (id) ON DELETE CASCADE,
        note TEXT NOT NULL,
        created_by UUID NOT NULL REFERENCES profiles (id),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );

    CREATE INDEX IF NOT EXISTS lead_notes_lead_idx ON lead_notes (lead_id, created_at);

    CREATE TABLE IF NOT EXISTS lead_tags (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        lead_id UUID NOT NULL REFERENCES leads (id) ON DELETE CASCADE,
        tag TEXT NOT NULL CHECK (tag IN ('hot', 'spam', 'called', 'urgent')),
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        UNIQUE (lead_id, tag)
    );

    CREATE INDEX IF NOT EXISTS lead_tags_tag_idx ON lead_tags (tag, created_at);

    CREATE OR REPLACE FUNCTION touch_updated_at() RETURNS trigger AS $$
    BEGIN
        NEW.updated_at := NOW();
        RETURN NEW;
    END;
    $$ LANGUAGE plpgsql;

    DROP TRIGGER IF EXISTS leads_touch_updated_at ON leads;
    CREATE TRIGGER leads_touch_updated_at
        BEFORE UPDATE ON leads
        FOR EACH ROW EXECUTE FUNCTION touch_updated_at();

    CREATE OR REPLACE FUNCTION notify_lead_change() RETURNS trigger AS $$
    DECLARE
        row_data RECORD;
        target_lead UUID;
    BEGIN
        IF TG_OP = 'DELETE' THEN
            row_data := OLD;
        ELSE
            row_data := NEW;
        END IF;
        IF TG_TABLE_NAME = 'leads' THEN
            target_lead := row_data.id;
        ELSE
            target_lead := row_data.lead_id;
        END IF;
        PERFORM pg_notify(
            '{LEAD_CHANGES_CHANNEL}',
            json_build_object('table', TG_TABLE_NAME, 'op', TG_OP, 'lead_id', target_lead)::TEXT
        );
        RETURN NULL;
    END;
    $$ LANGUAGE plpgsql;

    DROP TRIGGER IF EXISTS leads_notify ON leads;
    CREATE TRIGGER leads_notify
        AFTER INSERT OR UPDATE OR DELETE ON leads
        FOR EACH ROW EXECUTE FUNCTION notify_lead_change();

    DROP TRIGGER IF EXISTS lead_notes_notify ON lead_notes;
    CREATE TRIGGER lead_notes_notify
        AFTER INSERT OR UPDATE OR DELETE ON lead_notes
        FOR EACH ROW EXECUTE FUNCTION notify_lead_change();

    DROP TRIGGER IF EXISTS lead_tags_notify ON lead_tags;
    CREATE TRIGGER lead_tags_notify
        AFTER INSERT OR UPDATE OR DELETE ON lead_tags
        FOR EACH ROW EXECUTE FUNCTION notify_lead_change();
    """

    with get_cursor() as (_, cur):
        cur.execute(sql)
        logger.info("leads, lead_notes and lead_tags tables ensured.")


# --- leads ---------------------------------------------------------------------------------

def create_lead(
    contact_name: str,
    contact_email: str,
    contact_phone: str,
    postal_code: Optional[str],
    support_type: Optional[str] = None,
    visit_frequency: Optional[str] = None,
    care_duration: Optional[str] = None,
    priority: Optional[str] = None,
    created_by: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Insert a new lead with status 'new' and no assigned manager.
    Returns the stored row.
    """
    sql = """
        INSERT INTO leads (
            contact_name, contact_email, contact_phone, postal_code,
            support_type, visit_frequency, care_duration, priority, created_by
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id::TEXT AS id;
    """

    with get_cursor() as (_, cur):
        cur.execute(
            sql,
            (
                contact_name,
                contact_email,
                contact_phone,
                postal_code,
                support_type,
                visit_frequency,
                care_duration,
                priority,
                created_by,
            ),
        )
        lead_id = cur.fetchone()["id"]
        logger.info("Lead created id=%s created_by=%s", lead_id, created_by)
        cur.execute(_select_lead_sql("WHERE l.id = %s"), (lead_id,))
        return cur.fetchone()


def _select_lead_sql(where: str) -> str:
    return f"""
    SELECT {LEAD_COLUMNS}
    FROM leads l
    LEFT JOIN profiles p ON p.id = l.assigned_manager_id
    {where}
    """


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def build_lead_filter(filters: LeadFilters, manager_id: Optional[str]) -> Tuple[str, List[Any]]:
    """Compose the WHERE clause for the lead list. Every condition is ANDed."""
    clauses: List[str] = []
    values: List[Any] = []

    if manager_id is not None:
        clauses.append("l.assigned_manager_id = %s")
        values.append(manager_id)

    if filters.status is not None:
        clauses.append("l.status = %s")
        values.append(filters.status.value)

    if filters.assigned_manager == UNASSIGNED:
        clauses.append("l.assigned_manager_id IS NULL")
    elif filters.assigned_manager is not None:
        clauses.append("l.assigned_manager_id = %s")
        values.append(str(filters.assigned_manager))

    if filters.search:
        pattern = f"%{_escape_like(filters.search.strip())}%"
        clauses.append(
            "(l.contact_name ILIKE %s ESCAPE '\\' "
            "OR l.contact_email ILIKE %s ESCAPE '\\' "
            "OR l.contact_phone ILIKE %s ESCAPE '\\')"
        )
        values.extend([pattern, pattern, pattern])

    if filters.tag is not None:
        clauses.append(
            "EXISTS (SELECT 1 FROM lead_tags ft WHERE ft.lead_id = l.id AND ft.tag = %s)"
        )
        values.append(filters.tag.value)

    if not clauses:
        return "", values
    return "WHERE " + " AND ".join(clauses), values


def list_leads(
    filters: LeadFilters,
    manager_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> Tuple[List[Dict[str, Any]], int]:
    where, values = build_lead_filter(filters, manager_id)
    sql = _select_lead_sql(where) + " ORDER BY l.created_at DESC LIMIT %s OFFSET %s"
    with get_cursor() as (_, cur):
        cur.execute(sql, tuple(values + [limit, offset]))
        rows = cur.fetchall()
        cur.execute(f"SELECT COUNT(*)::INT AS total FROM leads l {where}", tuple(values))
        total = cur.fetchone()["total"]
    return rows, total


def get_lead(lead_id: str) -> Optional[Dict[str, Any]]:
    with get_cursor() as (_, cur):
        cur.execute(_select_lead_sql("WHERE l.id = %s"), (lead_id,))
        return cur.fetchone()


def update_lead(lead_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    allowed = {k: v for k, v in updates.items() if k in LEAD_EDITABLE_FIELDS}
    if not allowed:
        return None

    expressions: List[str] = []
    values: List[Any] = []
    for field, value in allowed.items():
        expressions.append(f"{field} = %s")
        values.append(value)
    values.append(lead_id)

    with get_cursor() as (_, cur):
        cur.execute(
            f"UPDATE leads SET {', '.join(expressions)} WHERE id = %s RETURNING id",
            tuple(values),
        )
        if cur.fetchone() is None:
            return None
        cur.execute(_select_lead_sql("WHERE l.id = %s"), (lead_id,))
        return cur.fetchone()


def delete_lead(lead_id: str) -> bool:
    """Delete a lead; notes and tags go with it through ON DELETE CASCADE."""
    with get_cursor() as (_, cur):
        cur.execute("DELETE FROM leads WHERE id = %s", (lead_id,))
        deleted = cur.rowcount > 0
    if deleted:
        logger.info("Lead deleted id=%s", lead_id)
    return deleted


# --- lead_notes ----------------------------------------------------------------------------

NOTE_COLUMNS = """
    n.id::TEXT AS id,
    n.lead_id::TEXT AS lead_id,
    n.note,
    n.created_by::TEXT AS created_by,
    a.full_name AS author_name,
    n.created_at
"""


def list_notes(lead_id: str) -> List[Dict[str, Any]]:
    sql = f"""
        SELECT {NOTE_COLUMNS}
        FROM lead_notes n
        LEFT JOIN profiles a ON a.id = n.created_by
        WHERE n.lead_id = %s
        ORDER BY n.created_at DESC;
    """
    with get_cursor() as (_, cur):
        cur.execute(sql, (lead_id,))
        return cur.fetchall()


def add_note(lead_id: str, note: str, created_by: str) -> Dict[str, Any]:
    sql = f"""
        WITH inserted AS (
            INSERT INTO lead_notes (lead_id, note, created_by)
            VALUES (%s, %s, %s)
            RETURNING *
        )
        SELECT {NOTE_COLUMNS}
        FROM inserted n
        LEFT JOIN profiles a ON a.id = n.created_by;
    """
    with get_cursor() as (_, cur):
        cur.execute(sql, (lead_id, note, created_by))
        row = cur.fetchone()
        logger.info("Note added lead=%s by=%s", lead_id, created_by)
        return row


# --- lead_tags -----------------------------------------------------------------------------

def list_tags(lead_id: str) -> List[str]:
    with get_cursor() as (_, cur):
        cur.execute(
            "SELECT tag FROM lead_tags WHERE lead_id = %s ORDER BY tag",
            (lead_id,),
        )
        return [row["tag"] for row in cur.fetchall()]


def toggle_tag(lead_id: str, tag: str) -> bool:
    """
    Remove the tag when present, add it otherwise.
    Returns True when the lead holds the tag afterwards.
    """
    with get_cursor() as (_, cur):
        cur.execute(
            "DELETE FROM lead_tags WHERE lead_id = %s AND tag = %s RETURNING id",
            (lead_id, tag),
        )
        if cur.fetchone() is not None:
            logger.info("Tag removed lead=%s tag=%s", lead_id, tag)
            return False
        cur.execute(
            """
            INSERT INTO lead_tags (lead_id, tag)
            VALUES (%s, %s)
            ON CONFLICT (lead_id, tag) DO NOTHING
            """,
            (lead_id, tag),
        )
        logger.info("Tag added lead=%s tag=%s", lead_id, tag)
        return True
