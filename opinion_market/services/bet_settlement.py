"""Portfolio bets — wagers on another account's net-worth performance.

Placing a bet debits the bettor first, then stores the bet, then records
`bet_place`. Resolving claims the bet (active -> won/lost/expired) in its
own atomic write before any money moves, so two resolvers can never both
pay out.
"""

import logging
import uuid
from typing import Callable, Optional

from sqlalchemy.orm import Session

from opinion_market.config import settings
from opinion_market.errors import (
    InsufficientFunds,
    MarketError,
    NotFoundError,
    PartialSettlementInconsistency,
    ValidationError,
)
from opinion_market.models.bet import Bet
from opinion_market.odds import bet_multiplier, potential_payout
from opinion_market.pricing import round2
from opinion_market.schemas.activity import ActivityEventCreate
from opinion_market.schemas.bet import BetCreate, BetResolutionSummary, BetSnapshot
from opinion_market.services.account_ledger import AccountLedger
from opinion_market.services.activity_recorder import ActivityRecorder
from opinion_market.services.change_feed import BETS, ChangeFeed
from opinion_market.services.incidents import IncidentLog
from opinion_market.services.portfolio import PortfolioService
from opinion_market.store import TransactionalStore
from opinion_market.timeutils import MS_PER_HOUR, now_ms

logger = logging.getLogger(__name__)

DIRECTIONS = ("increase", "decrease")


def performance_percent(starting_value: float, current_value: float) -> float:
    return (current_value - starting_value) / starting_value * 100


def is_winning(direction: str, target_percentage: float, performance: float) -> bool:
    if direction == "increase":
        return performance >= target_percentage
    return performance <= -abs(target_percentage)


class BetSettlement:
    def __init__(
        self,
        store: TransactionalStore,
        accounts: AccountLedger,
        portfolio: PortfolioService,
        activity: ActivityRecorder,
        incidents: IncidentLog,
        feed: Optional[ChangeFeed] = None,
        clock: Callable[[], int] = now_ms,
        min_stake: float = settings.BET_MIN_STAKE,
        max_timeframe_hours: int = settings.BET_MAX_TIMEFRAME_HOURS,
    ):
        self.store = store
        self.accounts = accounts
        self.portfolio = portfolio
        self.activity = activity
        self.incidents = incidents
        self.feed = feed
        self.clock = clock
        self.min_stake = min_stake
        self.max_timeframe_hours = max_timeframe_hours

    def _validate(self, bettor_id: str, req: BetCreate) -> None:
        if req.stake < self.min_stake:
            raise ValidationError(f"Bet amount must be at least {self.min_stake:.2f}")
        if not 1 <= req.target_percentage <= 99:
            raise ValidationError("Target percentage must be between 1% and 99%")
        if not 1 <= req.timeframe_hours <= self.max_timeframe_hours:
            raise ValidationError(f"Timeframe must be between 1 and {self.max_timeframe_hours} hours")
        if req.direction not in DIRECTIONS:
            raise ValidationError(f"Unknown direction {req.direction!r}")
        if req.target_account_id == bettor_id:
            raise ValidationError("Cannot bet on your own portfolio")

    def place_bet(self, bettor_id: str, req: BetCreate) -> BetSnapshot:
        self._validate(bettor_id, req)
        stake = round2(req.stake)
        bettor = self.accounts.get(bettor_id)
        self.accounts.get(req.target_account_id)
        if bettor.balance < stake:
            raise InsufficientFunds(
                f"Insufficient balance: have {bettor.balance:.2f}, need {stake:.2f}",
                details={"balance": bettor.balance, "required": stake},
            )

        starting_value = self.portfolio.net_worth(req.target_account_id)
        multiplier = bet_multiplier(req.target_percentage, req.timeframe_hours)
        payout = potential_payout(stake, req.target_percentage, req.timeframe_hours)

        # Escrow first; nothing is committed if this fails.
        bettor = self.accounts.debit(bettor_id, stake)

        bet_id = str(uuid.uuid4())
        placed_at = self.clock()

        def _insert(db: Session) -> BetSnapshot:
            bet = Bet(
                id=bet_id,
                bettor_id=bettor_id,
                target_account_id=req.target_account_id,
                direction=req.direction,
                target_percentage=req.target_percentage,
                timeframe_hours=req.timeframe_hours,
                stake=stake,
                multiplier=multiplier,
                potential_payout=payout,
                starting_value=starting_value,
                placed_at=placed_at,
                expires_at=placed_at + req.timeframe_hours * MS_PER_HOUR,
                status="active",
            )
            db.add(bet)
            db.flush()
            return BetSnapshot.model_validate(bet)

        try:
            snapshot = self.store.transaction(_insert, name=f"place bet {bet_id}")
        except Exception as exc:
            raise self._partial("bet_place", "account_updated", bettor_id, bet_id, stake, exc) from exc

        try:
            self.activity.record(ActivityEventCreate(
                type="bet_place",
                account_id=bettor_id,
                amount=stake,
                target_account_id=req.target_account_id,
                direction=req.direction,
                is_bot=bettor.is_bot,
                details={
                    "bet_id": bet_id,
                    "target_percentage": req.target_percentage,
                    "timeframe_hours": req.timeframe_hours,
                    "potential_payout": payout,
                },
            ))
        except Exception as exc:
            raise self._partial("bet_place", "bet_stored", bettor_id, bet_id, stake, exc) from exc

        logger.info(
            f"{bettor_id} bet {stake:.2f} that {req.target_account_id} will {req.direction} "
            f"{req.target_percentage}% in {req.timeframe_hours}h (payout {payout:.2f})"
        )
        self._publish(snapshot)
        return snapshot

    def get_bet(self, bet_id: str) -> BetSnapshot:
        def _get(db: Session) -> BetSnapshot:
            bet = db.get(Bet, bet_id)
            if not bet:
                raise NotFoundError(f"Bet {bet_id} not found")
            return BetSnapshot.model_validate(bet)

        return self.store.read(_get)

    def list_bets(self, bettor_id: Optional[str] = None, status: Optional[str] = None) -> list[BetSnapshot]:
        def _list(db: Session) -> list[BetSnapshot]:
            query = db.query(Bet)
            if bettor_id:
                query = query.filter(Bet.bettor_id == bettor_id)
            if status:
                query = query.filter(Bet.status == status)
            return [BetSnapshot.model_validate(b) for b in query.order_by(Bet.placed_at.desc()).all()]

        return self.store.read(_list)

    def _claim(self, bet_id: str, status: str, performance: Optional[float], now: int) -> Optional[BetSnapshot]:
        """Move an active bet to a terminal status. None if someone else already did."""

        def _update(db: Session) -> Optional[BetSnapshot]:
            bet = db.query(Bet).filter(Bet.id == bet_id).with_for_update().first()
            if bet is None or bet.status != "active":
                return None
            bet.status = status
            bet.final_performance = performance
            bet.resolved_at = now
            db.flush()
            return BetSnapshot.model_validate(bet)

        return self.store.transaction(_update, name=f"claim bet {bet_id}")

    def resolve_bet(self, bet_id: str, now: Optional[int] = None) -> BetSnapshot:
        """Settle a bet if its outcome is decided.

        won:     target moved by the target percentage in the bet's direction
        lost:    bet expired without that happening
        expired: target had no starting value, so performance is undefined; refunded
        A bet that is neither won nor past its expiry stays active.
        """
        now = now if now is not None else self.clock()
        bet = self.get_bet(bet_id)
        if bet.status != "active":
            return bet

        performance = None
        if bet.starting_value > 0:
            current_value = self.portfolio.net_worth(bet.target_account_id)
            performance = round2(performance_percent(bet.starting_value, current_value))

        if performance is None:
            status = "expired"
        elif is_winning(bet.direction, bet.target_percentage, performance):
            status = "won"
        elif now >= bet.expires_at:
            status = "lost"
        else:
            return bet

        claimed = self._claim(bet_id, status, performance, now)
        if claimed is None:
            return self.get_bet(bet_id)

        try:
            if status == "won":
                bettor = self.accounts.credit(
                    bet.bettor_id,
                    bet.potential_payout,
                    earnings=round2(bet.potential_payout - bet.stake),
                )
                self.activity.record(ActivityEventCreate(
                    type="bet_win",
                    account_id=bet.bettor_id,
                    amount=bet.potential_payout,
                    target_account_id=bet.target_account_id,
                    direction=bet.direction,
                    is_bot=bettor.is_bot,
                    details={"bet_id": bet_id, "performance": performance},
                ))
            elif status == "lost":
                bettor = self.accounts.record_loss(bet.bettor_id, bet.stake)
                self.activity.record(ActivityEventCreate(
                    type="bet_loss",
                    account_id=bet.bettor_id,
                    amount=bet.stake,
                    target_account_id=bet.target_account_id,
                    direction=bet.direction,
                    is_bot=bettor.is_bot,
                    details={"bet_id": bet_id, "performance": performance},
                ))
            else:
                self.accounts.credit(bet.bettor_id, bet.stake)
        except Exception as exc:
            raise self._partial("bet_resolve", "bet_claimed", bet.bettor_id, bet_id, bet.stake, exc) from exc

        logger.info(f"Bet {bet_id} by {bet.bettor_id} resolved {status} (performance {performance})")
        self._publish(claimed)
        return claimed

    def resolve_due_bets(self, now: Optional[int] = None) -> BetResolutionSummary:
        """Batch job: try to resolve every active bet."""
        now = now if now is not None else self.clock()
        summary = BetResolutionSummary()
        for bet in self.list_bets(status="active"):
            try:
                resolved = self.resolve_bet(bet.id, now=now)
            except MarketError:
                logger.exception(f"Failed to resolve bet {bet.id}")
                summary.failed += 1
                continue
            setattr(summary, resolved.status, getattr(summary, resolved.status) + 1)
        logger.info(f"Bet resolution run: {summary.model_dump()}")
        return summary

    def _partial(
        self,
        operation: str,
        stage: str,
        account_id: str,
        bet_id: str,
        amount: float,
        exc: Exception,
    ) -> PartialSettlementInconsistency:
        incident_id = self.incidents.open(
            operation=operation,
            stage=stage,
            account_id=account_id,
            bet_id=bet_id,
            amount=amount,
            error=f"{type(exc).__name__}: {exc}",
        )
        logger.error(
            f"Partial settlement of {operation} for bet {bet_id} by {account_id}: "
            f"stopped after {stage} ({type(exc).__name__}: {exc}), incident {incident_id}"
        )
        return PartialSettlementInconsistency(
            f"{operation} failed after {stage}: {exc}",
            stage=stage,
            incident_id=incident_id,
        )

    def _publish(self, snapshot: BetSnapshot) -> None:
        if self.feed is not None:
            self.feed.publish(BETS, snapshot)
