"""Maintenance job schemas."""

from typing import Optional

from pydantic import BaseModel


class ReconciliationResult(BaseModel):
    fixed: int
    validated: int


class IncidentResponse(BaseModel):
    id: str
    operation: str
    stage: str
    account_id: str
    asset_id: Optional[str] = None
    bet_id: Optional[str] = None
    quantity: Optional[int] = None
    price: Optional[float] = None
    amount: Optional[float] = None
    error: str
    status: str
    created_at: int
    resolved_at: Optional[int] = None

    class Config:
        from_attributes = True
