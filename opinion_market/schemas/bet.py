"""Portfolio bet schemas."""

from typing import Literal, Optional

from pydantic import BaseModel

BetDirection = Literal["increase", "decrease"]
BetStatus = Literal["active", "won", "lost", "expired"]


class BetCreate(BaseModel):
    target_account_id: str
    direction: BetDirection
    target_percentage: float
    timeframe_hours: int
    stake: float


class BetSnapshot(BaseModel):
    id: str
    bettor_id: str
    target_account_id: str
    direction: BetDirection
    target_percentage: float
    timeframe_hours: int
    stake: float
    multiplier: float
    potential_payout: float
    starting_value: float
    placed_at: int
    expires_at: int
    status: BetStatus
    final_performance: Optional[float] = None
    resolved_at: Optional[int] = None

    class Config:
        from_attributes = True


class BetResolutionSummary(BaseModel):
    won: int = 0
    lost: int = 0
    expired: int = 0
    active: int = 0
    failed: int = 0
