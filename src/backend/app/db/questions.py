from typing import Any, Dict, List, Optional

from psycopg2.extras import Json

from app.db.postgres import get_cursor
from app.utils.logger import get_logger

logger = get_logger(__name__)

QUESTION_FIELDS = {"step_number", "field_name", "question_text", "options", "is_active"}

QUESTION_COLUMNS = """
    id::TEXT AS id, step_number, field_name, question_text, options, is_active,
    created_at, updated_at
"""


def init_questions_table() -> None:
    sql = """
    CREATE EXTENSION IF NOT EXISTS pgcrypto;

    CREATE TABLE IF NOT EXISTS onboarding_questions (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        step_number INT NOT NULL,
        field_name TEXT NOT NULL,
        question_text TEXT NOT NULL,
        options JSONB NOT NULL DEFAULT '{}'::JSONB,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
    );

    CREATE INDEX IF NOT EXISTS onboarding_questions_step_idx
        ON onboarding_questions (step_number);
    """

    with get_cursor() as (_, cur):
        cur.execute(sql)
        logger.info("onboarding_questions table ensured.")


def _adapt(field: str, value: Any) -> Any:
    return Json(value) if field == "options" else value


def list_questions() -> List[Dict[str, Any]]:
    with get_cursor() as (_, cur):
        cur.execute(
            f"SELECT {QUESTION_COLUMNS} FROM onboarding_questions ORDER BY step_number ASC"
        )
        return cur.fetchall()


def create_question(data: Dict[str, Any]) -> Dict[str, Any]:
    fields = [k for k in data if k in QUESTION_FIELDS]
    placeholders = ", ".join(["%s"] * len(fields))
    with get_cursor() as (_, cur):
        cur.execute(
            f"""
            INSERT INTO onboarding_questions ({', '.join(fields)})
            VALUES ({placeholders})
            RETURNING {QUESTION_COLUMNS}
            """,
            tuple(_adapt(f, data[f]) for f in fields),
        )
        row = cur.fetchone()
    logger.info("Onboarding question created id=%s step=%s", row["id"], row["step_number"])
    return row


def update_question(question_id: str, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    allowed = {k: v for k, v in updates.items() if k in QUESTION_FIELDS}
    if not allowed:
        return None

    expressions: List[str] = []
    values: List[Any] = []
    for field, value in allowed.items():
        expressions.append(f"{field} = %s")
        values.append(_adapt(field, value))
    values.append(question_id)

    with get_cursor() as (_, cur):
        cur.execute(
            f"""
            UPDATE onboarding_questions
            SET {', '.join(expressions)}, updated_at = NOW()
            WHERE id = %s
            RETURNING {QUESTION_COLUMNS}
            """,
            tuple(values),
        )
        return cur.fetchone()


def delete_question(question_id: str) -> bool:
    with get_cursor() as (_, cur):
        cur.execute("DELETE FROM onboarding_questions WHERE id = %s", (question_id,))
        return cur.rowcount > 0
