from fastapi import APIRouter, Depends, Query

from app.auth.permissions import Action, lead_scope, require
from app.auth.session import SessionContext, get_verified_session
from app.models.metrics import MetricsResponse
from app.services.metrics import TimeWindow, compute_metrics

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("", response_model=MetricsResponse, summary="Dashboard summary and trend")
async def get_metrics(
    window: TimeWindow = Query(TimeWindow.LAST_30_DAYS),
    session: SessionContext = Depends(get_verified_session),
) -> MetricsResponse:
    """Counts for the selected window. Managers only see their assigned leads."""
    require(session.identity, Action.VIEW_DASHBOARD)
    return await compute_metrics(window, manager_id=lead_scope(session.identity))
