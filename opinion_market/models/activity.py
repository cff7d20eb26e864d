"""Activity event model — append-only feed of trades, bets and earnings."""

from sqlalchemy import Column, String, Float, Integer, BigInteger, Boolean, Text

from opinion_market.database import Base


class ActivityEvent(Base):
    __tablename__ = "activity_events"

    id = Column(String(36), primary_key=True)
    # buy | sell | bet_place | bet_win | bet_loss | earn | generate | short_place | short_win | short_loss
    type = Column(String(20), nullable=False)
    account_id = Column(String(128), nullable=False, index=True)
    asset_id = Column(String(32), nullable=True, index=True)
    target_account_id = Column(String(128), nullable=True)
    direction = Column(String(20), nullable=True)  # increase | decrease, for bets
    amount = Column(Float, nullable=False)
    price = Column(Float, nullable=True)
    quantity = Column(Integer, nullable=True)
    is_bot = Column(Boolean, nullable=False, default=False)
    dedup_hash = Column(String(64), nullable=False, index=True)
    timestamp = Column(BigInteger, nullable=False, index=True)  # server-assigned, epoch ms
    details = Column(Text, nullable=True)  # JSON string
