import asyncio

from app.auth.permissions import Identity, Role
from app.models.lead import LeadFilters
from app.services.lead_feed import LeadFeed


def _row(lead_id, name):
    return {
        "id": lead_id,
        "contact_name": name,
        "contact_email": f"{lead_id}@example.com",
        "contact_phone": "07123 456789",
        "postal_code": "SW1A 1AA",
        "support_type": "mobility",
        "visit_frequency": "overnight",
        "care_duration": "long-term",
        "priority": "flexibility",
        "status": "new",
        "assigned_manager_id": None,
        "created_by": None,
        "created_at": "2024-03-15T10:00:00+00:00",
        "updated_at": "2024-03-15T10:00:00+00:00",
    }


def test_manager_feed_is_scoped():
    calls = []

    def fetch(filters, manager_id, limit, offset):
        calls.append(manager_id)
        return [_row("a", "Jane Doe")], 1

    feed = LeadFeed(Identity(user_id="m-1", role=Role.MANAGER), fetch=fetch)
    message = asyncio.run(feed.refresh())

    assert calls == ["m-1"]
    assert message["generation"] == 1
    assert message["meta"]["total"] == 1
    assert message["data"][0]["contact_name"] == "Jane Doe"


def test_stale_refresh_is_dropped():
    async def scenario():
        slow_started = asyncio.Event()
        release_slow = asyncio.Event()
        loop = asyncio.get_running_loop()

        def fetch(filters, manager_id, limit, offset):
            if filters.search == "slow":
                loop.call_soon_threadsafe(slow_started.set)
                asyncio.run_coroutine_threadsafe(release_slow.wait(), loop).result()
                return [_row("old", "Old Result")], 1
            return [_row("new", "New Result")], 1

        feed = LeadFeed(Identity(user_id="a-1", role=Role.ADMIN), fetch=fetch)
        feed.set_filters(LeadFilters(search="slow"))
        slow = asyncio.create_task(feed.refresh())
        await slow_started.wait()

        feed.set_filters(LeadFilters(search="fast"))
        fast = await feed.refresh()
        release_slow.set()
        return await slow, fast

    stale, fresh = asyncio.run(scenario())

    assert stale is None
    assert fresh["generation"] == 2
    assert fresh["data"][0]["contact_name"] == "New Result"
    assert fresh["filters"]["search"] == "fast"
