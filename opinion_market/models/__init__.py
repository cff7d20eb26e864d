"""SQLAlchemy ORM models."""

from opinion_market.models.asset import Asset
from opinion_market.models.account import Account, Position
from opinion_market.models.activity import ActivityEvent
from opinion_market.models.bet import Bet
from opinion_market.models.incident import SettlementIncident

__all__ = [
    "Asset",
    "Account",
    "Position",
    "ActivityEvent",
    "Bet",
    "SettlementIncident",
]
