"""Asset model — one priced opinion, keyed by its content-addressed id."""

import json

from sqlalchemy import Column, String, Float, Integer, BigInteger, Text

from opinion_market.database import Base


class Asset(Base):
    __tablename__ = "assets"

    id = Column(String(32), primary_key=True)  # asset_id_for(text)
    text = Column(Text, nullable=False)
    times_purchased = Column(Integer, nullable=False, default=0)
    times_sold = Column(Integer, nullable=False, default=0)
    base_price = Column(Float, nullable=False, default=10.0)
    current_price = Column(Float, nullable=False, default=10.0)
    # JSON list of {price, timestamp, action, quantity}, newest last
    price_history = Column(Text, nullable=False, default="[]")
    created_at = Column(BigInteger, nullable=False)  # epoch ms
    last_updated = Column(BigInteger, nullable=False)  # epoch ms
    updated_by = Column(String(128), nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def history(self) -> list[dict]:
        return json.loads(self.price_history or "[]")

    @history.setter
    def history(self, points: list[dict]) -> None:
        self.price_history = json.dumps(points)
