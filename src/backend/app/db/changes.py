"""Push notifications for lead changes over Postgres LISTEN/NOTIFY.

The triggers created in ``app.db.leads`` publish a JSON payload on
``lead_changes`` for every insert, update or delete on leads, notes and tags.
"""
from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Callable, Optional

import psycopg2

from app.db.leads import LEAD_CHANGES_CHANNEL
from app.db.postgres import get_listen_connection
from app.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LeadChange:
    table: str
    op: str
    lead_id: Optional[str]


def parse_change(payload: str) -> LeadChange:
    try:
        data = json.loads(payload)
        return LeadChange(
            table=str(data.get("table", "leads")),
            op=str(data.get("op", "UNKNOWN")),
            lead_id=data.get("lead_id"),
        )
    except (ValueError, AttributeError):
        logger.warning("Unparseable change payload: %r", payload)
        return LeadChange(table="leads", op="UNKNOWN", lead_id=None)


class LeadChangeSubscription:
    """A LISTEN connection owned by one consumer.

    Use as ``async with LeadChangeSubscription() as changes:`` so the
    connection is always released when the consumer goes away.
    """

    def __init__(
        self,
        channel: str = LEAD_CHANGES_CHANNEL,
        connection_factory: Callable[[], psycopg2.extensions.connection] = get_listen_connection,
    ):
        self.channel = channel
        self._connection_factory = connection_factory
        self._conn: Optional[psycopg2.extensions.connection] = None
        self._fileno: Optional[int] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: asyncio.Queue[LeadChange] = asyncio.Queue()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> None:
        if self._conn is not None:
            return
        self._loop = asyncio.get_running_loop()
        conn = await asyncio.to_thread(self._connection_factory)
        with conn.cursor() as cur:
            cur.execute(f"LISTEN {self.channel};")
        self._conn = conn
        self._fileno = conn.fileno()
        self._loop.add_reader(self._fileno, self._drain)
        logger.debug("Subscribed to %s", self.channel)

    def _drain(self) -> None:
        if self._conn is None:
            return
        try:
            self._conn.poll()
        except psycopg2.Error as exc:
            logger.error("LISTEN connection failed on %s: %s", self.channel, exc)
            if self._loop is not None and self._fileno is not None:
                self._loop.remove_reader(self._fileno)
            return
        while self._conn.notifies:
            notify = self._conn.notifies.pop(0)
            self._queue.put_nowait(parse_change(notify.payload))

    async def next_change(self) -> LeadChange:
        return await self._queue.get()

    async def close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        if self._loop is not None and self._fileno is not None:
            self._loop.remove_reader(self._fileno)
        try:
            if not conn.closed:
                with conn.cursor() as cur:
                    cur.execute(f"UNLISTEN {self.channel};")
        except psycopg2.Error as exc:
            logger.warning("UNLISTEN %s failed: %s", self.channel, exc)
        finally:
            conn.close()
            logger.debug("Unsubscribed from %s", self.channel)

    async def __aenter__(self) -> "LeadChangeSubscription":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
