"""Activity event schemas."""

from typing import Any, Literal, Optional

from pydantic import BaseModel

ActivityType = Literal[
    "buy",
    "sell",
    "bet_place",
    "bet_win",
    "bet_loss",
    "earn",
    "generate",
    "short_place",
    "short_win",
    "short_loss",
]


class ActivityEventCreate(BaseModel):
    type: ActivityType
    account_id: str
    amount: float
    asset_id: Optional[str] = None
    price: Optional[float] = None
    quantity: Optional[int] = None
    target_account_id: Optional[str] = None
    direction: Optional[str] = None
    is_bot: bool = False
    details: Optional[dict[str, Any]] = None


class ActivityEventSnapshot(BaseModel):
    id: str
    type: ActivityType
    account_id: str
    amount: float
    asset_id: Optional[str] = None
    price: Optional[float] = None
    quantity: Optional[int] = None
    target_account_id: Optional[str] = None
    direction: Optional[str] = None
    is_bot: bool = False
    dedup_hash: str
    timestamp: int  # epoch ms
    details: Optional[dict[str, Any]] = None


class ActivityHealthResponse(BaseModel):
    status: Literal["healthy", "unhealthy"]
    dedup_cache_size: int
    message: str
