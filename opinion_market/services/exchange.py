"""Composition root: every market service, built once and passed around."""

from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import sessionmaker

from opinion_market.database import SessionLocal
from opinion_market.retry import RetryPolicy
from opinion_market.services.account_ledger import AccountLedger
from opinion_market.services.activity_recorder import ActivityRecorder
from opinion_market.services.asset_ledger import AssetLedger
from opinion_market.services.bet_settlement import BetSettlement
from opinion_market.services.change_feed import ChangeFeed
from opinion_market.services.incidents import IncidentLog
from opinion_market.services.portfolio import PortfolioService
from opinion_market.services.reconciliation import PriceValidator
from opinion_market.services.trade_settlement import TradeSettlement
from opinion_market.store import TransactionalStore
from opinion_market.timeutils import now_ms


@dataclass
class Exchange:
    store: TransactionalStore
    feed: ChangeFeed
    assets: AssetLedger
    accounts: AccountLedger
    activity: ActivityRecorder
    incidents: IncidentLog
    portfolio: PortfolioService
    trades: TradeSettlement
    bets: BetSettlement
    validator: PriceValidator


def build_exchange(
    session_factory: Optional[sessionmaker] = None,
    ledger_retry: Optional[RetryPolicy] = None,
    activity_retry: Optional[RetryPolicy] = None,
    clock: Callable[[], int] = now_ms,
    **overrides,
) -> Exchange:
    """Wire the services together.

    `overrides` are passed to the constructors that accept them
    (dedup_window, timeout, history_limit, base_price, ceiling_multiplier,
    monotonic). `monotonic` reaches both the activity dedup window and the
    settlement deadline.
    """
    store = TransactionalStore(session_factory or SessionLocal, ledger_retry or RetryPolicy.from_settings())
    feed = ChangeFeed()

    asset_kwargs = {k: overrides[k] for k in ("base_price", "ceiling_multiplier", "history_limit") if k in overrides}
    assets = AssetLedger(store, feed=feed, clock=clock, **asset_kwargs)
    accounts = AccountLedger(store, clock=clock)

    clock_kwargs = {"monotonic": overrides["monotonic"]} if "monotonic" in overrides else {}
    activity_kwargs = {"dedup_window": overrides["dedup_window"]} if "dedup_window" in overrides else {}
    activity = ActivityRecorder(
        store,
        feed=feed,
        retry_policy=activity_retry or RetryPolicy.from_settings(always_jitter=True),
        clock=clock,
        **activity_kwargs,
        **clock_kwargs,
    )
    incidents = IncidentLog(store, clock=clock)
    portfolio = PortfolioService(assets, accounts)

    settlement_kwargs = {"timeout": overrides["timeout"]} if "timeout" in overrides else {}
    trades = TradeSettlement(assets, accounts, activity, incidents, **settlement_kwargs, **clock_kwargs)
    bets = BetSettlement(store, accounts, portfolio, activity, incidents, feed=feed, clock=clock)
    validator = PriceValidator(assets, incidents)

    return Exchange(
        store=store,
        feed=feed,
        assets=assets,
        accounts=accounts,
        activity=activity,
        incidents=incidents,
        portfolio=portfolio,
        trades=trades,
        bets=bets,
        validator=validator,
    )
