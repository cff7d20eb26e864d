"""Bets router — wagers on other accounts' portfolio performance."""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from opinion_market.config import settings
from opinion_market.dependencies import get_exchange
from opinion_market.middleware.auth import get_current_account_id
from opinion_market.middleware.rate_limit import limiter
from opinion_market.schemas.bet import BetCreate, BetSnapshot, BetStatus
from opinion_market.services.exchange import Exchange

router = APIRouter(prefix="/api/bets", tags=["bets"])


@router.post("", response_model=BetSnapshot, status_code=201)
@limiter.limit(settings.TRADE_RATE_LIMIT)
def place_bet(
    request: Request,
    req: BetCreate,
    exchange: Exchange = Depends(get_exchange),
    account_id: str = Depends(get_current_account_id),
):
    return exchange.bets.place_bet(account_id, req)


@router.get("/my", response_model=list[BetSnapshot])
def my_bets(
    status: Optional[BetStatus] = Query(None),
    exchange: Exchange = Depends(get_exchange),
    account_id: str = Depends(get_current_account_id),
):
    return exchange.bets.list_bets(bettor_id=account_id, status=status)


@router.post("/{bet_id}/resolve", response_model=BetSnapshot)
def resolve_bet(
    bet_id: str,
    exchange: Exchange = Depends(get_exchange),
    account_id: str = Depends(get_current_account_id),
):
    """Settle a bet now if it is won or past its expiry; otherwise it stays active."""
    return exchange.bets.resolve_bet(bet_id)
