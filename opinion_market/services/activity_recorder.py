"""Activity recorder — the append-only feed of trades, bets and earnings.

Identical events (same type, account, amount, asset, target, direction and
bot flag) inside the dedup window are dropped, which absorbs double
submissions and racing bots. Transient store failures are retried with
exponential backoff and jitter; validation errors are not.
"""

import hashlib
import json
import logging
import threading
import time
import uuid
from typing import Callable, Optional

from sqlalchemy.orm import Session

from opinion_market.config import settings
from opinion_market.errors import MarketError
from opinion_market.models.activity import ActivityEvent
from opinion_market.retry import RetryPolicy
from opinion_market.schemas.activity import (
    ActivityEventCreate,
    ActivityEventSnapshot,
    ActivityHealthResponse,
)
from opinion_market.services.change_feed import ACTIVITY, ChangeFeed
from opinion_market.store import TransactionalStore
from opinion_market.timeutils import now_ms

logger = logging.getLogger(__name__)


def dedup_hash(event: ActivityEventCreate) -> str:
    """Stable hash of an event's identity, deliberately excluding time."""
    components = [
        event.type,
        event.account_id,
        f"{event.amount:.2f}",
        event.asset_id or "no-asset",
        event.target_account_id or "",
        event.direction or "",
        "bot" if event.is_bot else "user",
    ]
    return hashlib.sha256("|".join(components).encode("utf-8")).hexdigest()


def _to_snapshot(row: ActivityEvent) -> ActivityEventSnapshot:
    return ActivityEventSnapshot(
        id=row.id,
        type=row.type,
        account_id=row.account_id,
        amount=row.amount,
        asset_id=row.asset_id,
        price=row.price,
        quantity=row.quantity,
        target_account_id=row.target_account_id,
        direction=row.direction,
        is_bot=row.is_bot,
        dedup_hash=row.dedup_hash,
        timestamp=row.timestamp,
        details=json.loads(row.details) if row.details else None,
    )


class ActivityRecorder:
    def __init__(
        self,
        store: TransactionalStore,
        feed: Optional[ChangeFeed] = None,
        retry_policy: Optional[RetryPolicy] = None,
        dedup_window: float = settings.ACTIVITY_DEDUP_WINDOW_SECONDS,
        clock: Callable[[], int] = now_ms,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.feed = feed
        self.retry_policy = retry_policy or RetryPolicy.from_settings(always_jitter=True)
        self.dedup_window = dedup_window
        self.clock = clock
        self.monotonic = monotonic
        self._lock = threading.Lock()
        self._recent: dict[str, float] = {}  # hash -> expiry (monotonic seconds)

    def _claim(self, digest: str) -> bool:
        """Reserve a hash for the window. False if it is already reserved."""
        now = self.monotonic()
        with self._lock:
            for key in [k for k, expiry in self._recent.items() if expiry <= now]:
                del self._recent[key]
            if digest in self._recent:
                return False
            self._recent[digest] = now + self.dedup_window
            return True

    def _release(self, digest: str) -> None:
        with self._lock:
            self._recent.pop(digest, None)

    def record(self, event: ActivityEventCreate) -> Optional[ActivityEventSnapshot]:
        """Persist an event unless an identical one was recorded within the window.

        Returns the stored event, or None when it was suppressed as a duplicate.
        """
        digest = dedup_hash(event)
        if not self._claim(digest):
            logger.debug(
                f"Skipping duplicate activity {event.type} by {event.account_id} "
                f"amount={event.amount} (hash {digest[:12]})"
            )
            return None

        def _insert(db: Session) -> ActivityEventSnapshot:
            row = ActivityEvent(
                id=str(uuid.uuid4()),
                type=event.type,
                account_id=event.account_id,
                asset_id=event.asset_id,
                target_account_id=event.target_account_id,
                direction=event.direction,
                amount=float(event.amount),
                price=event.price,
                quantity=event.quantity,
                is_bot=event.is_bot,
                dedup_hash=digest,
                timestamp=self.clock(),
                details=json.dumps(event.details) if event.details else None,
            )
            db.add(row)
            db.flush()
            return _to_snapshot(row)

        try:
            snapshot = self.store.transaction(
                _insert,
                name=f"record {event.type} by {event.account_id}",
                policy=self.retry_policy,
            )
        except Exception:
            # Let a later legitimate attempt through.
            self._release(digest)
            raise

        logger.info(f"Recorded {event.type} by {event.account_id} amount={event.amount}")
        if self.feed is not None:
            self.feed.publish(ACTIVITY, snapshot)
        return snapshot

    def list_recent(self, limit: int = 100) -> list[ActivityEventSnapshot]:
        def _list(db: Session) -> list[ActivityEventSnapshot]:
            rows = (
                db.query(ActivityEvent)
                .order_by(ActivityEvent.timestamp.desc(), ActivityEvent.id)
                .limit(limit)
                .all()
            )
            return [_to_snapshot(r) for r in rows]

        return self.retry_policy.run(lambda: self.store.read(_list), name="list activity")

    def list_for_account(self, account_id: str, limit: int = 50) -> list[ActivityEventSnapshot]:
        def _list(db: Session) -> list[ActivityEventSnapshot]:
            rows = (
                db.query(ActivityEvent)
                .filter(ActivityEvent.account_id == account_id)
                .order_by(ActivityEvent.timestamp.desc())
                .limit(limit)
                .all()
            )
            return [_to_snapshot(r) for r in rows]

        return self.store.read(_list)

    def dedup_cache_size(self) -> int:
        with self._lock:
            return len(self._recent)

    def health_check(self) -> ActivityHealthResponse:
        try:
            self.store.read(lambda db: db.query(ActivityEvent.id).limit(1).all())
        except MarketError as e:
            return ActivityHealthResponse(
                status="unhealthy",
                dedup_cache_size=self.dedup_cache_size(),
                message=e.message,
            )
        return ActivityHealthResponse(
            status="healthy",
            dedup_cache_size=self.dedup_cache_size(),
            message="Activity store is reachable",
        )
