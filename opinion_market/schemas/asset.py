"""Asset snapshots and request/response schemas."""

from typing import Literal, Optional

from pydantic import BaseModel

TradeAction = Literal["buy", "sell"]


class PricePoint(BaseModel):
    price: float
    timestamp: int  # epoch ms
    action: str  # create | buy | sell
    quantity: Optional[int] = None


class AssetSnapshot(BaseModel):
    asset_id: str
    text: str
    times_purchased: int
    times_sold: int
    base_price: float
    current_price: float
    price_history: list[PricePoint] = []
    created_at: int
    last_updated: int

    class Config:
        from_attributes = True


class AssetEnsureRequest(BaseModel):
    text: str


class AssetListResponse(BaseModel):
    assets: list[AssetSnapshot]
    total: int


class QuoteResponse(BaseModel):
    asset_id: str
    action: TradeAction
    quantity: int
    current_price: float
    execution_price: float  # price right after the trade, the one charged
    amount: float
