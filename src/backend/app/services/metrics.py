"""Dashboard counts for a selectable time window.

Every window change recomputes everything from range-filtered count queries;
the queries run concurrently, bounded by ``metrics_max_concurrency``.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo

from app.config import settings
from app.db import metrics as metrics_db
from app.models.lead import LeadStatus, LeadTag
from app.models.metrics import MetricsResponse, MetricsSummary, SeriesPoint
from app.utils.logger import get_logger

logger = get_logger(__name__)

SERIES_STATUSES = (LeadStatus.NEW, LeadStatus.CONTACTED, LeadStatus.CONVERTED)


class TimeWindow(str, Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    LAST_7_DAYS = "last_7_days"
    LAST_14_DAYS = "last_14_days"
    LAST_30_DAYS = "last_30_days"
    LAST_MONTH = "last_month"
    THIS_MONTH = "this_month"
    LAST_6_MONTHS = "last_6_months"
    THIS_YEAR = "this_year"
    LAST_YEAR = "last_year"


class Granularity(str, Enum):
    HOUR = "hour"
    DAY = "day"
    MONTH = "month"


@dataclass(frozen=True)
class WindowRange:
    start: datetime
    end: datetime
    granularity: Granularity


def _add_months(value: datetime, months: int) -> datetime:
    index = value.year * 12 + (value.month - 1) + months
    return value.replace(year=index // 12, month=index % 12 + 1, day=1)


def resolve_window(window: TimeWindow, now: datetime) -> WindowRange:
    """Half-open [start, end) range for the window, in the timezone of ``now``."""
    day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    month = day.replace(day=1)
    year = month.replace(month=1)
    one_day = timedelta(days=1)

    if window is TimeWindow.TODAY:
        return WindowRange(day, day + one_day, Granularity.HOUR)
    if window is TimeWindow.YESTERDAY:
        return WindowRange(day - one_day, day, Granularity.HOUR)
    if window is TimeWindow.LAST_7_DAYS:
        return WindowRange(day - 6 * one_day, day + one_day, Granularity.DAY)
    if window is TimeWindow.LAST_14_DAYS:
        return WindowRange(day - 13 * one_day, day + one_day, Granularity.DAY)
    if window is TimeWindow.LAST_30_DAYS:
        return WindowRange(day - 29 * one_day, day + one_day, Granularity.DAY)
    if window is TimeWindow.THIS_MONTH:
        return WindowRange(month, _add_months(month, 1), Granularity.DAY)
    if window is TimeWindow.LAST_MONTH:
        return WindowRange(_add_months(month, -1), month, Granularity.DAY)
    if window is TimeWindow.LAST_6_MONTHS:
        return WindowRange(_add_months(month, -5), _add_months(month, 1), Granularity.MONTH)
    if window is TimeWindow.THIS_YEAR:
        return WindowRange(year, year.replace(year=year.year + 1), Granularity.MONTH)
    if window is TimeWindow.LAST_YEAR:
        return WindowRange(year.replace(year=year.year - 1), year, Granularity.MONTH)
    raise ValueError(f"Unknown window: {window}")


def _hour_buckets(span: WindowRange) -> List[Tuple[datetime, datetime, str]]:
    # stepped in UTC; a clock-change day has 23 or 25 buckets
    tz = span.start.tzinfo
    cursor = span.start.astimezone(timezone.utc)
    end = span.end.astimezone(timezone.utc)
    result = []
    while cursor < end:
        nxt = min(cursor + timedelta(hours=1), end)
        start = cursor.astimezone(tz)
        result.append((start, nxt.astimezone(tz), start.strftime("%H:00")))
        cursor = nxt
    return result


def buckets(span: WindowRange) -> List[Tuple[datetime, datetime, str]]:
    if span.granularity is Granularity.HOUR:
        return _hour_buckets(span)
    result = []
    cursor = span.start
    while cursor < span.end:
        if span.granularity is Granularity.DAY:
            nxt = cursor + timedelta(days=1)
            label = cursor.strftime("%d %b")
        else:
            nxt = _add_months(cursor, 1)
            label = cursor.strftime("%b %Y")
        result.append((cursor, min(nxt, span.end), label))
        cursor = nxt
    return result


async def _count(limiter: asyncio.Semaphore, fn: Callable[..., int], *args: Any) -> int:
    async with limiter:
        try:
            return await asyncio.to_thread(fn, *args)
        except Exception:
            logger.exception("Metrics query %s%r failed; counting as zero", fn.__name__, args)
            return 0


async def compute_metrics(
    window: TimeWindow,
    manager_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MetricsResponse:
    now = now or datetime.now(ZoneInfo(settings.dashboard_timezone))
    span = resolve_window(window, now)
    limiter = asyncio.Semaphore(max(1, settings.metrics_max_concurrency))

    def count(fn: Callable[..., int], *args: Any) -> Awaitable[int]:
        return _count(limiter, fn, *args)

    summary_jobs = [
        count(metrics_db.count_leads, span.start, span.end, manager_id, None),
        count(metrics_db.count_leads, span.start, span.end, manager_id, LeadStatus.NEW.value),
        count(metrics_db.count_tagged, LeadTag.HOT.value, span.start, span.end, manager_id),
        count(metrics_db.count_tagged, LeadTag.CALLED.value, span.start, span.end, manager_id),
    ]
    slots = buckets(span)
    series_jobs = [
        count(metrics_db.count_leads, start, end, manager_id, status.value)
        for start, end, _ in slots
        for status in SERIES_STATUSES
    ]

    results = await asyncio.gather(*summary_jobs, *series_jobs)
    total, new, hot, called = results[:4]
    per_bucket = results[4:]

    series = []
    width = len(SERIES_STATUSES)
    for index, (start, _, label) in enumerate(slots):
        new_count, contacted, converted = per_bucket[index * width:(index + 1) * width]
        series.append(
            SeriesPoint(
                label=label,
                start=start,
                new=new_count,
                contacted=contacted,
                converted=converted,
            )
        )

    return MetricsResponse(
        window=window.value,
        granularity=span.granularity.value,
        start=span.start,
        end=span.end,
        summary=MetricsSummary(
            total_leads=total,
            new_leads=new,
            hot_leads=hot,
            called_leads=called,
        ),
        series=series,
    )
