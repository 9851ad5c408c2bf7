import time
from contextlib import contextmanager
from typing import Generator

import psycopg2
from psycopg2 import OperationalError
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT
from psycopg2.extras import RealDictCursor

from app.config import settings
from app.utils.logger import get_logger

logger = get_logger(__name__)

APPLICATION_NAME = "care-leads-backend"


def _connect_options() -> str:
    options = ["-c client_encoding=UTF8"]
    if settings.db_statement_timeout_ms > 0:
        options.append(f"-c statement_timeout={settings.db_statement_timeout_ms}")
    return " ".join(options)


def get_connection(retries: int | None = None) -> psycopg2.extensions.connection:
    """Open a connection, waiting for Postgres to come up when it is still starting."""
    max_retries = retries or settings.db_conn_retries
    for attempt in range(1, max_retries + 1):
        try:
            return psycopg2.connect(
                host=settings.db_host,
                port=settings.db_port,
                dbname=settings.db_name,
                user=settings.db_user,
                password=settings.db_password,
                connect_timeout=settings.db_connect_timeout,
                application_name=APPLICATION_NAME,
                options=_connect_options(),
            )
        except OperationalError as exc:
            if attempt == max_retries:
                raise
            logger.warning(
                "Postgres not reachable (attempt %d/%d): %s", attempt, max_retries, exc
            )
            time.sleep(settings.db_conn_retry_delay)
    raise RuntimeError("Failed to connect to the database.")


def get_listen_connection() -> psycopg2.extensions.connection:
    """Autocommit connection for LISTEN; NOTIFY payloads arrive on its socket."""
    conn = get_connection()
    conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
    return conn


@contextmanager
def get_cursor(
    cursor_factory=RealDictCursor,
) -> Generator[tuple[psycopg2.extensions.connection, psycopg2.extensions.cursor], None, None]:
    """One connection per unit of work, committed on success and rolled back on error."""
    conn = get_connection()
    cur = conn.cursor(cursor_factory=cursor_factory)
    try:
        yield conn, cur
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cur.close()
        conn.close()


def ping() -> bool:
    """Health check: a single attempt, never raises."""
    try:
        conn = get_connection(retries=1)
    except OperationalError as exc:
        logger.warning("Database ping failed: %s", exc)
        return False
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
            return cur.fetchone()[0] == 1
    except psycopg2.Error as exc:
        logger.warning("Database ping failed: %s", exc)
        return False
    finally:
        conn.close()
