"""Admin router — maintenance jobs and the incident queue."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from opinion_market.dependencies import get_exchange
from opinion_market.middleware.auth import require_admin
from opinion_market.schemas.account import AccountSnapshot, BotOpenRequest
from opinion_market.schemas.admin import IncidentResponse, ReconciliationResult
from opinion_market.schemas.bet import BetResolutionSummary
from opinion_market.services.exchange import Exchange

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/reconcile-prices", response_model=ReconciliationResult)
def reconcile_prices(
    exchange: Exchange = Depends(get_exchange),
    admin_id: str = Depends(require_admin),
):
    """Recompute every asset's price from its counters and fix drift."""
    return exchange.validator.validate_all_prices()


@router.post("/resolve-bets", response_model=BetResolutionSummary)
def resolve_bets(
    exchange: Exchange = Depends(get_exchange),
    admin_id: str = Depends(require_admin),
):
    return exchange.bets.resolve_due_bets()


@router.get("/incidents", response_model=list[IncidentResponse])
def list_incidents(
    status: Optional[str] = Query("open"),
    exchange: Exchange = Depends(get_exchange),
    admin_id: str = Depends(require_admin),
):
    """Partially settled operations awaiting manual review."""
    return exchange.incidents.list_incidents(status=status)


@router.post("/incidents/{incident_id}/resolve", response_model=IncidentResponse)
def resolve_incident(
    incident_id: str,
    exchange: Exchange = Depends(get_exchange),
    admin_id: str = Depends(require_admin),
):
    return exchange.validator.resolve_incident(incident_id)


@router.post("/bots", response_model=AccountSnapshot, status_code=201)
def open_bot_account(
    req: BotOpenRequest,
    exchange: Exchange = Depends(get_exchange),
    admin_id: str = Depends(require_admin),
):
    """Open a bot-flagged account. Only admins may mark accounts as bots."""
    return exchange.accounts.open_account(
        req.account_id, req.username, starting_balance=req.starting_balance, is_bot=True
    )
