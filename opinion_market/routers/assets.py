"""Assets router — opinion listing, lazy creation and quotes."""

from fastapi import APIRouter, Depends, Query

from opinion_market.dependencies import get_exchange
from opinion_market.middleware.auth import get_current_account_id
from opinion_market.schemas.asset import (
    AssetEnsureRequest,
    AssetListResponse,
    AssetSnapshot,
    QuoteResponse,
    TradeAction,
)
from opinion_market.services.exchange import Exchange

router = APIRouter(prefix="/api/assets", tags=["assets"])


@router.get("", response_model=AssetListResponse)
def list_assets(
    limit: int = Query(100, ge=1, le=1000),
    exchange: Exchange = Depends(get_exchange),
):
    """List assets, most recently traded first."""
    assets = exchange.assets.list_assets(limit=limit)
    return AssetListResponse(assets=assets, total=len(assets))


@router.post("", response_model=AssetSnapshot)
def ensure_asset(
    req: AssetEnsureRequest,
    exchange: Exchange = Depends(get_exchange),
    account_id: str = Depends(get_current_account_id),
):
    """Get the asset for an opinion, creating it at the base price if new."""
    return exchange.assets.get(req.text)


@router.get("/{asset_id}", response_model=AssetSnapshot)
def get_asset(asset_id: str, exchange: Exchange = Depends(get_exchange)):
    return exchange.assets.require(asset_id)


@router.get("/{asset_id}/quote", response_model=QuoteResponse)
def quote_asset(
    asset_id: str,
    action: TradeAction = Query(...),
    quantity: int = Query(1, ge=1),
    exchange: Exchange = Depends(get_exchange),
):
    """Price a prospective trade without executing it."""
    asset = exchange.assets.require(asset_id)
    return exchange.assets.quote(asset, action, quantity)
