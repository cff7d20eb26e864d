"""Account snapshots and portfolio schemas."""

from typing import Optional

from pydantic import BaseModel


class PositionSnapshot(BaseModel):
    quantity: int
    average_purchase_price: float

    class Config:
        from_attributes = True


class AccountSnapshot(BaseModel):
    account_id: str
    username: str
    balance: float
    total_earnings: float
    total_losses: float
    is_bot: bool = False
    positions: dict[str, PositionSnapshot] = {}  # asset_id -> position


class AccountOpenRequest(BaseModel):
    username: str


class BotOpenRequest(BaseModel):
    account_id: str
    username: str
    starting_balance: Optional[float] = None


class PositionValue(BaseModel):
    asset_id: str
    text: str
    quantity: int
    average_purchase_price: float
    current_price: float
    market_value: float
    pnl: float


class PortfolioResponse(BaseModel):
    account_id: str
    balance: float
    holdings_value: float
    net_worth: float
    positions: list[PositionValue]
