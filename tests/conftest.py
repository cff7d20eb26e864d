"""Shared fixtures: a throwaway SQLite file per test and a wired exchange."""

import os
import sys

import pytest
from sqlalchemy.orm import sessionmaker

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from opinion_market.database import build_engine, init_db
from opinion_market.retry import RetryPolicy
from opinion_market.services.exchange import build_exchange


class FakeClock:
    """Epoch-ms clock that ticks 1 ms per read so event order is stable."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now

    def advance_hours(self, hours: float) -> None:
        self.now += int(hours * 60 * 60 * 1000)


class FakeMonotonic:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'market.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def exchange(session_factory, clock, monotonic):
    # Enough attempts that every thread in the concurrency tests gets through.
    return build_exchange(
        session_factory,
        ledger_retry=RetryPolicy.immediate(max_attempts=100),
        activity_retry=RetryPolicy.immediate(),
        clock=clock,
        monotonic=monotonic,
    )


@pytest.fixture
def alice(exchange):
    return exchange.accounts.open_account("alice", "alice")


@pytest.fixture
def bob(exchange):
    return exchange.accounts.open_account("bob", "bob")
