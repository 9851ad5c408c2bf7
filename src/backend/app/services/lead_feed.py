"""Live lead list for one console connection.

Refreshes may overlap when filters change quickly or several change
notifications arrive together. Each refresh takes a generation number and
only the newest one is published; older results are dropped.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.auth.permissions import Identity, lead_scope
from app.db import leads as leads_db
from app.models.lead import LeadFilters, LeadRecord
from app.utils.logger import get_logger

logger = get_logger(__name__)

LeadFetcher = Callable[[LeadFilters, Optional[str], int, int], Tuple[List[Dict[str, Any]], int]]


class LeadFeed:
    def __init__(
        self,
        identity: Identity,
        fetch: Optional[LeadFetcher] = None,
        page_size: int = 100,
    ):
        self.identity = identity
        self.filters = LeadFilters()
        self.page_size = page_size
        self._fetch = fetch or leads_db.list_leads
        self._issued = 0

    @property
    def latest_generation(self) -> int:
        return self._issued

    def set_filters(self, filters: LeadFilters) -> None:
        self.filters = filters

    async def refresh(self) -> Optional[Dict[str, Any]]:
        """Fetch the list for the current filters; None when a newer refresh was issued meanwhile."""
        self._issued += 1
        generation = self._issued
        filters = self.filters
        rows, total = await asyncio.to_thread(
            self._fetch, filters, lead_scope(self.identity), self.page_size, 0
        )
        if generation != self._issued:
            logger.debug(
                "Dropping stale lead list generation=%d latest=%d", generation, self._issued
            )
            return None
        return {
            "type": "leads",
            "generation": generation,
            "filters": filters.model_dump(mode="json"),
            "data": [LeadRecord.model_validate(row).model_dump(mode="json") for row in rows],
            "meta": {"total": total, "page": 1, "size": self.page_size},
        }
