"""Trading account and its materialized positions."""

from sqlalchemy import Column, String, Float, Integer, BigInteger, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from opinion_market.database import Base


class Account(Base):
    __tablename__ = "accounts"

    id = Column(String(128), primary_key=True)  # principal id from the identity provider
    username = Column(String(255), nullable=False)
    balance = Column(Float, nullable=False, default=10000.0)
    total_earnings = Column(Float, nullable=False, default=0.0)
    total_losses = Column(Float, nullable=False, default=0.0)
    is_bot = Column(Boolean, nullable=False, default=False)
    created_at = Column(BigInteger, nullable=False)
    # Touched by every ledger write so the version check covers position changes too
    updated_at = Column(BigInteger, nullable=False)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    positions = relationship(
        "Position",
        back_populates="account",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class Position(Base):
    __tablename__ = "positions"

    id = Column(String(36), primary_key=True)
    account_id = Column(String(128), ForeignKey("accounts.id"), nullable=False)
    asset_id = Column(String(32), ForeignKey("assets.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    average_purchase_price = Column(Float, nullable=False, default=0.0)

    __table_args__ = (
        UniqueConstraint("account_id", "asset_id", name="uq_account_asset"),
    )

    account = relationship("Account", back_populates="positions")
