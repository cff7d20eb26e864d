"""Settlement incident — immutable record of a partially settled trade."""

from sqlalchemy import Column, String, Float, Integer, BigInteger, Text

from opinion_market.database import Base


class SettlementIncident(Base):
    __tablename__ = "settlement_incidents"

    id = Column(String(36), primary_key=True)
    operation = Column(String(20), nullable=False)  # buy | sell | bet_place | bet_resolve
    stage = Column(String(30), nullable=False)  # last state reached before the failure
    account_id = Column(String(128), nullable=False)
    asset_id = Column(String(32), nullable=True)
    bet_id = Column(String(36), nullable=True)
    quantity = Column(Integer, nullable=True)
    price = Column(Float, nullable=True)
    amount = Column(Float, nullable=True)
    error = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="open")  # open | resolved
    created_at = Column(BigInteger, nullable=False)
    resolved_at = Column(BigInteger, nullable=True)
