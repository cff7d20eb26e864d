"""Portfolio-performance bet model."""

from sqlalchemy import Column, String, Float, Integer, BigInteger, ForeignKey

from opinion_market.database import Base


class Bet(Base):
    __tablename__ = "bets"

    id = Column(String(36), primary_key=True)
    bettor_id = Column(String(128), ForeignKey("accounts.id"), nullable=False, index=True)
    target_account_id = Column(String(128), ForeignKey("accounts.id"), nullable=False)
    direction = Column(String(20), nullable=False)  # increase | decrease
    target_percentage = Column(Float, nullable=False)
    timeframe_hours = Column(Integer, nullable=False)
    stake = Column(Float, nullable=False)
    multiplier = Column(Float, nullable=False)
    potential_payout = Column(Float, nullable=False)
    starting_value = Column(Float, nullable=False)  # target's net worth when placed
    placed_at = Column(BigInteger, nullable=False)
    expires_at = Column(BigInteger, nullable=False, index=True)
    status = Column(String(20), nullable=False, default="active")  # active | won | lost | expired
    final_performance = Column(Float, nullable=True)
    resolved_at = Column(BigInteger, nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
