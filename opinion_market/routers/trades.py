"""Trades router — buy and sell opinion shares."""

from fastapi import APIRouter, Depends, Request

from opinion_market.config import settings
from opinion_market.dependencies import get_exchange
from opinion_market.middleware.auth import get_current_account_id
from opinion_market.middleware.rate_limit import limiter
from opinion_market.schemas.trade import TradeRequest, TradeResult
from opinion_market.services.exchange import Exchange

router = APIRouter(prefix="/api/trades", tags=["trades"])


@router.post("/buy", response_model=TradeResult)
@limiter.limit(settings.TRADE_RATE_LIMIT)
def buy(
    request: Request,
    req: TradeRequest,
    exchange: Exchange = Depends(get_exchange),
    account_id: str = Depends(get_current_account_id),
):
    """Buy shares; the price is the one right after this purchase."""
    return exchange.trades.buy(account_id, req.quantity, asset_id=req.asset_id, text=req.text)


@router.post("/sell", response_model=TradeResult)
@limiter.limit(settings.TRADE_RATE_LIMIT)
def sell(
    request: Request,
    req: TradeRequest,
    exchange: Exchange = Depends(get_exchange),
    account_id: str = Depends(get_current_account_id),
):
    """Sell held shares at the price right after this sale."""
    return exchange.trades.sell(account_id, req.quantity, asset_id=req.asset_id, text=req.text)
