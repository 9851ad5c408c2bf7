from datetime import datetime
from typing import List

from pydantic import BaseModel


class MetricsSummary(BaseModel):
    total_leads: int
    new_leads: int
    hot_leads: int
    called_leads: int


class SeriesPoint(BaseModel):
    label: str
    start: datetime
    new: int
    contacted: int
    converted: int


class MetricsResponse(BaseModel):
    window: str
    granularity: str
    start: datetime
    end: datetime
    summary: MetricsSummary
    series: List[SeriesPoint]
