"""Trade request/response schemas."""

from typing import Literal, Optional

from pydantic import BaseModel

from opinion_market.schemas.account import AccountSnapshot
from opinion_market.schemas.activity import ActivityEventSnapshot
from opinion_market.schemas.asset import AssetSnapshot

SettlementState = Literal["validated", "asset_updated", "account_updated", "recorded", "done", "failed"]


class TradeRequest(BaseModel):
    # Either the id of a known asset or the opinion text (created on first trade)
    asset_id: Optional[str] = None
    text: Optional[str] = None
    quantity: int = 1


class TradeResult(BaseModel):
    state: SettlementState
    action: Literal["buy", "sell"]
    quantity: int
    price: float  # execution price, locked at the asset update
    amount: float  # round2(price * quantity)
    account: AccountSnapshot
    asset: AssetSnapshot
    activity: Optional[ActivityEventSnapshot] = None  # None when suppressed as duplicate
