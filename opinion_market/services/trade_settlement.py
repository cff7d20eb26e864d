"""Trade settlement — orchestrates one buy or sell across both ledgers.

States: validated -> asset_updated -> account_updated -> recorded -> done,
with failed reachable from any of them.

1. Validate quantity, position (sell) and funds (buy) against a quote
2. Apply the trade to the asset; the resulting price is locked for the rest
3. Debit/credit the account and move the position at that locked price
4. Record the activity event
5. Return the new account + asset snapshots

Steps 2 and 3 commit together in one store transaction, and the account
row re-checks funds and position under lock. A rejection or failure up to
step 3 therefore leaves nothing changed. A failure in step 4 is a partial
settlement: it is not compensated, only logged and written to the incident
table for reconciliation.
"""

import logging
import time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from opinion_market.config import settings
from opinion_market.errors import (
    InsufficientFunds,
    InsufficientPosition,
    PartialSettlementInconsistency,
    SettlementTimeout,
    ValidationError,
)
from opinion_market.pricing import asset_id_for, trade_amount
from opinion_market.schemas.account import AccountSnapshot
from opinion_market.schemas.activity import ActivityEventCreate
from opinion_market.schemas.asset import AssetSnapshot
from opinion_market.schemas.trade import TradeResult
from opinion_market.services.account_ledger import AccountLedger
from opinion_market.services.activity_recorder import ActivityRecorder
from opinion_market.services.asset_ledger import AssetLedger, TRADE_ACTIONS, validate_quantity
from opinion_market.services.incidents import IncidentLog

logger = logging.getLogger(__name__)

VALIDATED = "validated"
ASSET_UPDATED = "asset_updated"
ACCOUNT_UPDATED = "account_updated"
RECORDED = "recorded"
DONE = "done"
FAILED = "failed"


class _Progress:
    """Tracks how far one settlement got."""

    def __init__(self, action: str, account_id: str):
        self.action = action
        self.account_id = account_id
        self.state = "pending"

    def advance(self, state: str) -> None:
        logger.debug(f"{self.action} by {self.account_id}: {self.state} -> {state}")
        self.state = state


class TradeSettlement:
    def __init__(
        self,
        assets: AssetLedger,
        accounts: AccountLedger,
        activity: ActivityRecorder,
        incidents: IncidentLog,
        timeout: float = settings.SETTLEMENT_TIMEOUT_SECONDS,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.assets = assets
        self.accounts = accounts
        self.store = assets.store
        self.activity = activity
        self.incidents = incidents
        self.timeout = timeout
        self.monotonic = monotonic

    def buy(self, account_id: str, quantity: int, asset_id: Optional[str] = None, text: Optional[str] = None) -> TradeResult:
        return self.settle("buy", account_id, quantity, asset_id=asset_id, text=text)

    def sell(self, account_id: str, quantity: int, asset_id: Optional[str] = None, text: Optional[str] = None) -> TradeResult:
        return self.settle("sell", account_id, quantity, asset_id=asset_id, text=text)

    def _resolve_asset(self, asset_id: Optional[str], text: Optional[str]) -> AssetSnapshot:
        if text is not None and text.strip():
            derived = asset_id_for(text)
            if asset_id and asset_id != derived:
                raise ValidationError("asset_id does not match the opinion text")
            return self.assets.get(text)
        if asset_id:
            return self.assets.require(asset_id)
        raise ValidationError("Either asset_id or opinion text is required")

    def settle(
        self,
        action: str,
        account_id: str,
        quantity: int,
        asset_id: Optional[str] = None,
        text: Optional[str] = None,
    ) -> TradeResult:
        if action not in TRADE_ACTIONS:
            raise ValidationError(f"Unknown action {action!r}")
        validate_quantity(quantity)
        deadline = self.monotonic() + self.timeout
        progress = _Progress(action, account_id)

        # 1. Validate against a quote of the price this trade will execute at
        account = self.accounts.get(account_id)
        asset = self._resolve_asset(asset_id, text)
        quote = self.assets.quote(asset, action, quantity)
        if action == "buy":
            if account.balance < quote.amount:
                raise InsufficientFunds(
                    f"Insufficient balance: have {account.balance:.2f}, need {quote.amount:.2f}",
                    details={"balance": account.balance, "required": quote.amount},
                )
        else:
            position = account.positions.get(asset.asset_id)
            held = position.quantity if position else 0
            if held < quantity:
                raise InsufficientPosition(
                    f"Cannot sell {quantity} shares, holding {held}",
                    details={"held": held, "requested": quantity},
                )
        progress.advance(VALIDATED)

        if self.monotonic() > deadline:
            progress.advance(FAILED)
            raise SettlementTimeout()

        # 2-3. Asset, then account at the locked price, in one transaction
        target = asset

        def _apply(db: Session) -> tuple[AssetSnapshot, AccountSnapshot]:
            updated = self.assets.apply_trade_in(
                db, target.asset_id, action, quantity, text=target.text, actor_id=account_id
            )
            filled = self.accounts.apply_fill_in(
                db, account_id, updated.asset_id, action, quantity, updated.current_price
            )
            return updated, filled

        try:
            asset, account = self.store.transaction(
                _apply, name=f"{action} {quantity} of {target.asset_id[:8]} by {account_id}"
            )
        except Exception:
            progress.advance(FAILED)
            raise
        progress.advance(ASSET_UPDATED)
        progress.advance(ACCOUNT_UPDATED)
        self.assets.publish(asset)
        price = asset.current_price
        amount = trade_amount(price, quantity)

        # 4. Activity
        try:
            event = self.activity.record(ActivityEventCreate(
                type=action,
                account_id=account_id,
                amount=amount,
                asset_id=asset.asset_id,
                price=price,
                quantity=quantity,
                is_bot=account.is_bot,
            ))
        except Exception as exc:
            raise self._partial(progress, exc, asset.asset_id, quantity, price, amount) from exc
        progress.advance(RECORDED)

        progress.advance(DONE)
        logger.info(f"{account_id} {action} {quantity} x {asset.asset_id} @ {price:.2f} = {amount:.2f}")
        return TradeResult(
            state=DONE,
            action=action,
            quantity=quantity,
            price=price,
            amount=amount,
            account=account,
            asset=asset,
            activity=event,
        )

    def _partial(
        self,
        progress: _Progress,
        exc: Exception,
        asset_id: str,
        quantity: int,
        price: float,
        amount: float,
    ) -> PartialSettlementInconsistency:
        stage = progress.state
        incident_id = self.incidents.open(
            operation=progress.action,
            stage=stage,
            account_id=progress.account_id,
            error=f"{type(exc).__name__}: {exc}",
            asset_id=asset_id,
            quantity=quantity,
            price=price,
            amount=amount,
        )
        progress.advance(FAILED)
        logger.error(
            f"Partial settlement of {progress.action} by {progress.account_id} on {asset_id}: "
            f"stopped after {stage} ({type(exc).__name__}: {exc}), incident {incident_id}"
        )
        return PartialSettlementInconsistency(
            f"{progress.action} committed on the asset but failed after {stage}: {exc}",
            stage=stage,
            incident_id=incident_id,
        )
