from datetime import datetime
from typing import Any, List, Optional

from app.db.postgres import get_cursor


def count_leads(
    start: datetime,
    end: datetime,
    manager_id: Optional[str] = None,
    status: Optional[str] = None,
) -> int:
    """Leads created in [start, end), optionally restricted to one manager and status."""
    clauses = ["created_at >= %s", "created_at < %s"]
    values: List[Any] = [start, end]
    if manager_id is not None:
        clauses.append("assigned_manager_id = %s")
        values.append(manager_id)
    if status is not None:
        clauses.append("status = %s")
        values.append(status)

    with get_cursor() as (_, cur):
        cur.execute(
            f"SELECT COUNT(*)::INT AS total FROM leads WHERE {' AND '.join(clauses)}",
            tuple(values),
        )
        return cur.fetchone()["total"]


def count_tagged(
    tag: str,
    start: datetime,
    end: datetime,
    manager_id: Optional[str] = None,
) -> int:
    """Tags of one kind applied in [start, end) to leads visible to the manager."""
    clauses = ["t.tag = %s", "t.created_at >= %s", "t.created_at < %s"]
    values: List[Any] = [tag, start, end]
    if manager_id is not None:
        clauses.append("l.assigned_manager_id = %s")
        values.append(manager_id)

    with get_cursor() as (_, cur):
        cur.execute(
            f"""
            SELECT COUNT(*)::INT AS total
            FROM lead_tags t
            JOIN leads l ON l.id = t.lead_id
            WHERE {' AND '.join(clauses)}
            """,
            tuple(values),
        )
        return cur.fetchone()["total"]
