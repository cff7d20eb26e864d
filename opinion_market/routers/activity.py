"""Activity router — the public feed."""

from fastapi import APIRouter, Depends, Query

from opinion_market.dependencies import get_exchange
from opinion_market.schemas.activity import ActivityEventSnapshot, ActivityHealthResponse
from opinion_market.services.exchange import Exchange

router = APIRouter(prefix="/api/activity", tags=["activity"])


@router.get("", response_model=list[ActivityEventSnapshot])
def list_activity(
    limit: int = Query(100, ge=1, le=500),
    exchange: Exchange = Depends(get_exchange),
):
    """Most recent events first."""
    return exchange.activity.list_recent(limit=limit)


@router.get("/health", response_model=ActivityHealthResponse)
def activity_health(exchange: Exchange = Depends(get_exchange)):
    return exchange.activity.health_check()
