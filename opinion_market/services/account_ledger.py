"""Account ledger — balances, earnings/losses and materialized positions.

Each public method is one atomic, version-checked write to a single account
(its positions live with it). There is no cross-account locking: flows that
touch several accounts order their writes instead (debit before credit).
"""

import logging
import uuid
from typing import Callable, Optional

from sqlalchemy.orm import Session

from opinion_market.config import settings
from opinion_market.errors import (
    InsufficientFunds,
    InsufficientPosition,
    NotFoundError,
    ValidationError,
)
from opinion_market.models.account import Account, Position
from opinion_market.pricing import round2, trade_amount
from opinion_market.schemas.account import AccountSnapshot, PositionSnapshot
from opinion_market.store import TransactionalStore
from opinion_market.timeutils import now_ms

logger = logging.getLogger(__name__)


def _to_snapshot(account: Account) -> AccountSnapshot:
    return AccountSnapshot(
        account_id=account.id,
        username=account.username,
        balance=account.balance,
        total_earnings=account.total_earnings,
        total_losses=account.total_losses,
        is_bot=account.is_bot,
        positions={
            p.asset_id: PositionSnapshot(
                quantity=p.quantity,
                average_purchase_price=p.average_purchase_price,
            )
            for p in account.positions
            if p.quantity > 0
        },
    )


def _validate_amount(amount: float) -> float:
    if not isinstance(amount, (int, float)) or isinstance(amount, bool) or not amount > 0:
        raise ValidationError(f"Amount must be positive, got {amount!r}")
    return round2(amount)


class AccountLedger:
    def __init__(self, store: TransactionalStore, clock: Callable[[], int] = now_ms):
        self.store = store
        self.clock = clock

    # ── Internal building blocks (run inside one transaction) ───────────────

    def _load(self, db: Session, account_id: str) -> Account:
        account = db.query(Account).filter(Account.id == account_id).with_for_update().first()
        if not account:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    def _mutate(self, db: Session, account_id: str, mutate: Callable[[Session, Account], None]) -> AccountSnapshot:
        account = self._load(db, account_id)
        mutate(db, account)
        # Always dirty the row so the version check guards position-only changes.
        account.updated_at = self.clock()
        db.flush()
        return _to_snapshot(account)

    def _atomic(self, account_id: str, mutate: Callable[[Session, Account], None], name: str) -> AccountSnapshot:
        return self.store.transaction(lambda db: self._mutate(db, account_id, mutate), name=f"{name} {account_id}")

    @staticmethod
    def _debit(account: Account, amount: float) -> None:
        if account.balance < amount:
            raise InsufficientFunds(
                f"Insufficient balance: have {account.balance:.2f}, need {amount:.2f}",
                details={"balance": account.balance, "required": amount},
            )
        account.balance = round2(account.balance - amount)

    @staticmethod
    def _credit(account: Account, amount: float, earnings: float = 0.0) -> None:
        account.balance = round2(account.balance + amount)
        if earnings > 0:
            account.total_earnings = round2(account.total_earnings + earnings)

    @staticmethod
    def _record_loss(account: Account, amount: float) -> None:
        account.total_losses = round2(account.total_losses + amount)

    @staticmethod
    def _adjust_position(
        db: Session,
        account: Account,
        asset_id: str,
        delta_quantity: int,
        reference_price: float,
    ) -> None:
        position = next((p for p in account.positions if p.asset_id == asset_id), None)
        current = position.quantity if position else 0
        new_quantity = current + delta_quantity
        if new_quantity < 0:
            raise InsufficientPosition(
                f"Position in {asset_id} is {current}, cannot remove {-delta_quantity}",
                details={"held": current, "requested": -delta_quantity},
            )

        if new_quantity == 0:
            if position is not None:
                account.positions.remove(position)
            return

        if position is None:
            position = Position(
                id=str(uuid.uuid4()),
                asset_id=asset_id,
                quantity=0,
                average_purchase_price=0.0,
            )
            account.positions.append(position)

        if delta_quantity > 0:
            # Weighted average cost; sells leave the average unchanged.
            total_cost = position.quantity * position.average_purchase_price + delta_quantity * reference_price
            position.average_purchase_price = round2(total_cost / new_quantity)
        position.quantity = new_quantity

    # ── Lifecycle / reads ───────────────────────────────────────────────────

    def open_account(
        self,
        account_id: str,
        username: str,
        starting_balance: Optional[float] = None,
        is_bot: bool = False,
    ) -> AccountSnapshot:
        """Create the account on signup. Idempotent: an existing account is returned as-is."""
        if not account_id or not username or not username.strip():
            raise ValidationError("Account id and username are required")
        balance = settings.STARTING_BALANCE if starting_balance is None else starting_balance
        if balance < 0:
            raise ValidationError("Starting balance cannot be negative")

        def _open(db: Session) -> AccountSnapshot:
            account = db.get(Account, account_id)
            if account is None:
                now = self.clock()
                account = Account(
                    id=account_id,
                    username=username.strip(),
                    balance=round2(balance),
                    total_earnings=0.0,
                    total_losses=0.0,
                    is_bot=is_bot,
                    created_at=now,
                    updated_at=now,
                )
                db.add(account)
                db.flush()
                logger.info(f"Opened account {account_id} ({username}) with {balance:.2f}")
            return _to_snapshot(account)

        return self.store.transaction(_open, name=f"open account {account_id}")

    def find(self, account_id: str) -> Optional[AccountSnapshot]:
        def _find(db: Session) -> Optional[AccountSnapshot]:
            account = db.get(Account, account_id)
            return _to_snapshot(account) if account else None

        return self.store.read(_find)

    def get(self, account_id: str) -> AccountSnapshot:
        account = self.find(account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    # ── Atomic operations ───────────────────────────────────────────────────

    def debit(self, account_id: str, amount: float) -> AccountSnapshot:
        """Remove `amount` from the balance; InsufficientFunds if it would go negative."""
        amount = _validate_amount(amount)
        return self._atomic(account_id, lambda db, a: self._debit(a, amount), "debit")

    def credit(self, account_id: str, amount: float, earnings: float = 0.0) -> AccountSnapshot:
        """Add `amount` to the balance, counting `earnings` of it towards total_earnings."""
        amount = _validate_amount(amount)
        return self._atomic(account_id, lambda db, a: self._credit(a, amount, earnings), "credit")

    def record_loss(self, account_id: str, amount: float) -> AccountSnapshot:
        amount = _validate_amount(amount)
        return self._atomic(account_id, lambda db, a: self._record_loss(a, amount), "record loss")

    def adjust_position(
        self,
        account_id: str,
        asset_id: str,
        delta_quantity: int,
        reference_price: float,
    ) -> AccountSnapshot:
        """Add (buy) or remove (sell) shares; the entry disappears at zero."""
        if not isinstance(delta_quantity, int) or delta_quantity == 0:
            raise ValidationError("Position change must be a non-zero whole number")
        return self._atomic(
            account_id,
            lambda db, a: self._adjust_position(db, a, asset_id, delta_quantity, reference_price),
            "adjust position",
        )

    def apply_fill(
        self,
        account_id: str,
        asset_id: str,
        action: str,
        quantity: int,
        price: float,
    ) -> AccountSnapshot:
        """Settle the account side of an executed trade in one write.

        buy:  debit round2(price * quantity), add shares at `price`
        sell: remove shares, credit round2(price * quantity), book realized P&L
        """
        return self.store.transaction(
            lambda db: self.apply_fill_in(db, account_id, asset_id, action, quantity, price),
            name=f"{action} fill {account_id}",
        )

    def apply_fill_in(
        self,
        db: Session,
        account_id: str,
        asset_id: str,
        action: str,
        quantity: int,
        price: float,
    ) -> AccountSnapshot:
        """`apply_fill` inside the caller's session. Balance and position are
        re-checked on the locked row, so a rejection rolls back the caller's
        whole transaction."""
        amount = trade_amount(price, quantity)

        def _fill(db: Session, account: Account) -> None:
            if action == "buy":
                self._debit(account, amount)
                self._adjust_position(db, account, asset_id, quantity, price)
            elif action == "sell":
                position = next((p for p in account.positions if p.asset_id == asset_id), None)
                average_cost = position.average_purchase_price if position else 0.0
                self._adjust_position(db, account, asset_id, -quantity, price)
                realized = round2((price - average_cost) * quantity)
                self._credit(account, amount, earnings=max(realized, 0.0))
                if realized < 0:
                    self._record_loss(account, -realized)
            else:
                raise ValidationError(f"Unknown action {action!r}")

        return self._mutate(db, account_id, _fill)
