"""Asset ledger — owns each opinion's priced market data.

Every change to an asset goes through `apply_trade`, which increments the
counters, reprices and appends to the bounded history in one store
transaction, so `current_price == price(times_purchased, times_sold,
base_price)` holds after every commit.
"""

import logging
from typing import Callable, Optional

from sqlalchemy.orm import Session

from opinion_market import pricing
from opinion_market.config import settings
from opinion_market.errors import NotFoundError, ValidationError
from opinion_market.models.asset import Asset
from opinion_market.schemas.asset import AssetSnapshot, PricePoint, QuoteResponse
from opinion_market.services.change_feed import ASSETS, ChangeFeed
from opinion_market.store import TransactionalStore
from opinion_market.timeutils import now_ms

logger = logging.getLogger(__name__)

TRADE_ACTIONS = ("buy", "sell")


def validate_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError(f"Quantity must be a whole number >= 1, got {quantity!r}")
    return quantity


def _to_snapshot(asset: Asset) -> AssetSnapshot:
    return AssetSnapshot(
        asset_id=asset.id,
        text=asset.text,
        times_purchased=asset.times_purchased,
        times_sold=asset.times_sold,
        base_price=asset.base_price,
        current_price=asset.current_price,
        price_history=[PricePoint(**p) for p in asset.history],
        created_at=asset.created_at,
        last_updated=asset.last_updated,
    )


class AssetLedger:
    def __init__(
        self,
        store: TransactionalStore,
        feed: Optional[ChangeFeed] = None,
        clock: Callable[[], int] = now_ms,
        base_price: float = settings.DEFAULT_BASE_PRICE,
        ceiling_multiplier: float = settings.PRICE_CEILING_MULTIPLIER,
        history_limit: int = settings.PRICE_HISTORY_LIMIT,
    ):
        self.store = store
        self.feed = feed
        self.clock = clock
        self.base_price = base_price
        self.ceiling_multiplier = ceiling_multiplier
        self.history_limit = history_limit

    # ── Pricing ─────────────────────────────────────────────────────────────

    def price_of(self, times_purchased: int, times_sold: int, base_price: float) -> float:
        return pricing.price(times_purchased, times_sold, base_price, self.ceiling_multiplier)

    def quote(self, asset: AssetSnapshot, action: str, quantity: int) -> QuoteResponse:
        """Price a prospective trade against a snapshot, without mutating anything."""
        if action not in TRADE_ACTIONS:
            raise ValidationError(f"Unknown action {action!r}")
        validate_quantity(quantity)
        execution_price = pricing.quote_price(
            asset.times_purchased,
            asset.times_sold,
            action,
            quantity,
            asset.base_price,
            self.ceiling_multiplier,
        )
        return QuoteResponse(
            asset_id=asset.asset_id,
            action=action,
            quantity=quantity,
            current_price=asset.current_price,
            execution_price=execution_price,
            amount=pricing.trade_amount(execution_price, quantity),
        )

    # ── Reads / lazy creation ───────────────────────────────────────────────

    @staticmethod
    def asset_id(text: str) -> str:
        try:
            return pricing.asset_id_for(text)
        except ValueError as e:
            raise ValidationError(str(e))

    def _baseline(self, asset_id: str, text: str, now: int) -> Asset:
        start_price = self.price_of(0, 0, self.base_price)
        asset = Asset(
            id=asset_id,
            text=text.strip(),
            times_purchased=0,
            times_sold=0,
            base_price=self.base_price,
            current_price=start_price,
            created_at=now,
            last_updated=now,
        )
        asset.history = [{"price": start_price, "timestamp": now, "action": "create"}]
        return asset

    def get(self, text: str) -> AssetSnapshot:
        """Read an opinion's asset, creating the baseline record on first reference.

        Concurrent first readers race on the same primary key; the loser's
        insert fails as a duplicate-key conflict and its retry reads the
        winner's row, so exactly one baseline is ever written.
        """
        asset_id = self.asset_id(text)
        created = []

        def _ensure(db: Session) -> AssetSnapshot:
            created.clear()
            asset = db.get(Asset, asset_id)
            if asset is None:
                asset = self._baseline(asset_id, text, self.clock())
                db.add(asset)
                db.flush()
                created.append(asset_id)
            return _to_snapshot(asset)

        snapshot = self.store.transaction(_ensure, name=f"ensure asset {asset_id[:8]}")
        if created:
            logger.info(f"Created asset {asset_id} at {snapshot.current_price:.2f}")
            self.publish(snapshot)
        return snapshot

    def find(self, asset_id: str) -> Optional[AssetSnapshot]:
        def _find(db: Session) -> Optional[AssetSnapshot]:
            asset = db.get(Asset, asset_id)
            return _to_snapshot(asset) if asset else None

        return self.store.read(_find)

    def require(self, asset_id: str) -> AssetSnapshot:
        asset = self.find(asset_id)
        if asset is None:
            raise NotFoundError(f"Asset {asset_id} not found")
        return asset

    def list_assets(self, limit: Optional[int] = None) -> list[AssetSnapshot]:
        def _list(db: Session) -> list[AssetSnapshot]:
            query = db.query(Asset).order_by(Asset.last_updated.desc())
            if limit:
                query = query.limit(limit)
            return [_to_snapshot(a) for a in query.all()]

        return self.store.read(_list)

    def prices_for(self, asset_ids: list[str]) -> dict[str, AssetSnapshot]:
        if not asset_ids:
            return {}

        def _load(db: Session) -> dict[str, AssetSnapshot]:
            assets = db.query(Asset).filter(Asset.id.in_(asset_ids)).all()
            return {a.id: _to_snapshot(a) for a in assets}

        return self.store.read(_load)

    # ── Writes ──────────────────────────────────────────────────────────────

    def _check_trade(self, action: str, quantity: int) -> None:
        if action not in TRADE_ACTIONS:
            raise ValidationError(f"Unknown action {action!r}")
        validate_quantity(quantity)

    def apply_trade_in(
        self,
        db: Session,
        asset_id: str,
        action: str,
        quantity: int,
        text: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> AssetSnapshot:
        """Apply a buy/sell inside the caller's session; the caller commits and publishes.

        Steps:
        1. Read the asset under lock (baseline if absent and text is given)
        2. Increment times_purchased or times_sold by quantity
        3. Recompute current_price
        4. Append a price point, keep the newest `history_limit`
        5. Flush the whole record (version-checked at flush/commit)
        """
        self._check_trade(action, quantity)
        asset = db.query(Asset).filter(Asset.id == asset_id).with_for_update().first()
        now = self.clock()
        if asset is None:
            if text is None:
                raise NotFoundError(f"Asset {asset_id} not found")
            asset = self._baseline(asset_id, text, now)
            db.add(asset)

        if action == "buy":
            asset.times_purchased += quantity
        else:
            asset.times_sold += quantity
        asset.current_price = self.price_of(asset.times_purchased, asset.times_sold, asset.base_price)

        history = asset.history
        history.append({
            "price": asset.current_price,
            "timestamp": now,
            "action": action,
            "quantity": quantity,
        })
        asset.history = history[-self.history_limit:]
        asset.last_updated = now
        asset.updated_by = actor_id
        db.flush()
        return _to_snapshot(asset)

    def apply_trade(
        self,
        asset_id: str,
        action: str,
        quantity: int,
        text: Optional[str] = None,
        actor_id: Optional[str] = None,
    ) -> AssetSnapshot:
        """Apply a buy/sell to the asset's counters and reprice in one transaction.

        The transaction is rerun from scratch on conflict.
        """
        self._check_trade(action, quantity)
        snapshot = self.store.transaction(
            lambda db: self.apply_trade_in(db, asset_id, action, quantity, text=text, actor_id=actor_id),
            name=f"{action} {quantity} of {asset_id[:8]}",
        )
        logger.debug(
            f"Applied {action} x{quantity} to {asset_id}: price {snapshot.current_price:.2f} "
            f"(purchased={snapshot.times_purchased}, sold={snapshot.times_sold})"
        )
        self.publish(snapshot)
        return snapshot

    def repair_prices(self, tolerance: float) -> tuple[list[AssetSnapshot], int]:
        """Recompute every stored price in one batch; fix the ones that drifted.

        Returns (repaired snapshots, number already correct).
        """

        def _repair(db: Session) -> tuple[list[AssetSnapshot], int]:
            repaired, validated = [], 0
            now = self.clock()
            for asset in db.query(Asset).all():
                expected = self.price_of(asset.times_purchased, asset.times_sold, asset.base_price)
                if abs(expected - asset.current_price) > tolerance:
                    logger.warning(
                        f"Price drift on {asset.id}: stored {asset.current_price:.2f}, expected {expected:.2f}"
                    )
                    asset.current_price = expected
                    asset.last_updated = now
                    repaired.append(asset)
                else:
                    validated += 1
            db.flush()
            return [_to_snapshot(a) for a in repaired], validated

        repaired, validated = self.store.batch(_repair, name="repair prices")
        for snapshot in repaired:
            self.publish(snapshot)
        return repaired, validated

    def publish(self, snapshot: AssetSnapshot) -> None:
        if self.feed is not None:
            self.feed.publish(ASSETS, snapshot)
