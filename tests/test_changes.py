import asyncio
import socket
from contextlib import contextmanager
from types import SimpleNamespace

import pytest

from app.db.changes import LeadChange, LeadChangeSubscription, parse_change


def test_parse_trigger_payload():
    payload = '{"table": "lead_tags", "op": "INSERT", "lead_id": "lead-1"}'
    assert parse_change(payload) == LeadChange(table="lead_tags", op="INSERT", lead_id="lead-1")


def test_unparseable_payload_still_signals_a_change():
    change = parse_change("not json")
    assert change.table == "leads"
    assert change.lead_id is None


class FakeListenConnection:
    """Stands in for a psycopg2 LISTEN connection; notifications arrive on a socket."""

    def __init__(self):
        self._reader, self._writer = socket.socketpair()
        self._reader.setblocking(False)
        self.executed = []
        self.notifies = []
        self.closed = 0
        self.close_calls = 0

    def fileno(self):
        return self._reader.fileno()

    @contextmanager
    def cursor(self):
        yield SimpleNamespace(execute=self.executed.append)

    def poll(self):
        data = self._reader.recv(4096)
        for payload in data.decode().splitlines():
            self.notifies.append(SimpleNamespace(payload=payload))

    def notify(self, payload):
        self._writer.send(payload.encode() + b"\n")

    def close(self):
        self.closed = 1
        self.close_calls += 1

    def dispose(self):
        self._reader.close()
        self._writer.close()


@pytest.fixture
def conn():
    connection = FakeListenConnection()
    yield connection
    connection.dispose()


def test_subscription_delivers_and_releases(conn):
    async def scenario():
        async with LeadChangeSubscription("lead_changes", lambda: conn) as changes:
            assert changes.is_open
            conn.notify('{"table": "lead_notes", "op": "INSERT", "lead_id": "lead-1"}')
            change = await asyncio.wait_for(changes.next_change(), timeout=2)
        still_watched = asyncio.get_running_loop().remove_reader(conn.fileno())
        return change, still_watched, changes.is_open

    change, still_watched, is_open = asyncio.run(scenario())

    assert change == LeadChange(table="lead_notes", op="INSERT", lead_id="lead-1")
    assert conn.executed == ["LISTEN lead_changes;", "UNLISTEN lead_changes;"]
    assert conn.close_calls == 1
    assert still_watched is False
    assert is_open is False


def test_subscription_is_released_when_consumer_fails(conn):
    async def scenario():
        with pytest.raises(RuntimeError):
            async with LeadChangeSubscription("lead_changes", lambda: conn):
                raise RuntimeError("client went away")
        return asyncio.get_running_loop().remove_reader(conn.fileno())

    assert asyncio.run(scenario()) is False
    assert conn.executed[-1] == "UNLISTEN lead_changes;"
    assert conn.close_calls == 1


def test_dead_connection_is_closed_without_unlisten(conn):
    async def scenario():
        async with LeadChangeSubscription("lead_changes", lambda: conn):
            conn.closed = 2

    asyncio.run(scenario())

    assert conn.executed == ["LISTEN lead_changes;"]
    assert conn.close_calls == 1
