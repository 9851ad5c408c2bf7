import asyncio
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from app.db import metrics as metrics_db
from app.services import metrics
from app.services.metrics import Granularity, TimeWindow, buckets, resolve_window

LONDON = ZoneInfo("Europe/London")
NOW = datetime(2024, 3, 15, 14, 30, tzinfo=LONDON)


def test_today_is_hourly():
    span = resolve_window(TimeWindow.TODAY, NOW)
    assert span.start == datetime(2024, 3, 15, tzinfo=LONDON)
    assert span.end == datetime(2024, 3, 16, tzinfo=LONDON)
    assert span.granularity is Granularity.HOUR
    slots = buckets(span)
    assert len(slots) == 24
    assert slots[0][2] == "00:00"


def _hour_slots(day):
    slots = buckets(resolve_window(TimeWindow.TODAY, datetime(2024, *day, 12, tzinfo=LONDON)))
    for (_, end, _), (start, _, _) in zip(slots, slots[1:]):
        assert end.astimezone(timezone.utc) == start.astimezone(timezone.utc)
    for start, end, _ in slots:
        assert end.astimezone(timezone.utc) - start.astimezone(timezone.utc) == timedelta(hours=1)
    return slots


def test_spring_forward_day_has_23_hours():
    slots = _hour_slots((3, 31))
    labels = [label for _, _, label in slots]
    assert len(slots) == 23
    assert "01:00" not in labels
    assert labels[:3] == ["00:00", "02:00", "03:00"]
    assert slots[-1][1].astimezone(timezone.utc) == datetime(2024, 3, 31, 23, tzinfo=timezone.utc)


def test_fall_back_day_has_25_hours():
    slots = _hour_slots((10, 27))
    labels = [label for _, _, label in slots]
    assert len(slots) == 25
    assert labels[:4] == ["00:00", "01:00", "01:00", "02:00"]
    assert slots[-1][1].astimezone(timezone.utc) == datetime(2024, 10, 28, tzinfo=timezone.utc)


def test_last_7_days_includes_today():
    span = resolve_window(TimeWindow.LAST_7_DAYS, NOW)
    assert span.start == datetime(2024, 3, 9, tzinfo=LONDON)
    assert span.granularity is Granularity.DAY
    assert len(buckets(span)) == 7


def test_last_month_crosses_year_boundary():
    span = resolve_window(TimeWindow.LAST_MONTH, datetime(2024, 1, 10, tzinfo=LONDON))
    assert span.start == datetime(2023, 12, 1, tzinfo=LONDON)
    assert span.end == datetime(2024, 1, 1, tzinfo=LONDON)
    assert len(buckets(span)) == 31


def test_last_6_months_is_monthly():
    span = resolve_window(TimeWindow.LAST_6_MONTHS, NOW)
    assert span.start == datetime(2023, 10, 1, tzinfo=LONDON)
    assert span.granularity is Granularity.MONTH
    assert [label for _, _, label in buckets(span)] == [
        "Oct 2023",
        "Nov 2023",
        "Dec 2023",
        "Jan 2024",
        "Feb 2024",
        "Mar 2024",
    ]


def test_compute_metrics_scopes_every_query(monkeypatch):
    seen = []

    def fake_count_leads(start, end, manager_id=None, status=None):
        seen.append(manager_id)
        if status is None:
            return 10
        return {"new": 4, "contacted": 1, "converted": 0}.get(status, 0)

    def fake_count_tagged(tag, start, end, manager_id=None):
        seen.append(manager_id)
        return {"hot": 3, "called": 2}[tag]

    monkeypatch.setattr(metrics_db, "count_leads", fake_count_leads)
    monkeypatch.setattr(metrics_db, "count_tagged", fake_count_tagged)

    result = asyncio.run(metrics.compute_metrics(TimeWindow.LAST_7_DAYS, "manager-1", now=NOW))

    assert result.summary.total_leads == 10
    assert result.summary.new_leads == 4
    assert result.summary.hot_leads == 3
    assert result.summary.called_leads == 2
    assert len(result.series) == 7
    assert result.series[0].new == 4
    assert result.series[0].contacted == 1
    assert set(seen) == {"manager-1"}


def test_failed_query_counts_as_zero(monkeypatch):
    def broken(*args):
        raise RuntimeError("connection refused")

    monkeypatch.setattr(metrics_db, "count_leads", broken)
    monkeypatch.setattr(metrics_db, "count_tagged", lambda *args: 1)

    result = asyncio.run(metrics.compute_metrics(TimeWindow.TODAY, None, now=NOW))

    assert result.summary.total_leads == 0
    assert result.summary.hot_leads == 1
    assert all(point.new == 0 for point in result.series)
