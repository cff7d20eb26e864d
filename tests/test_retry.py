"""Tests for the retry policy and store error translation."""

import random
import sys
import os

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from opinion_market.errors import (
    InsufficientFunds,
    StoreUnavailable,
    TransactionConflict,
    ValidationError,
)
from opinion_market.retry import RetryPolicy, is_retryable
from opinion_market.store import translate_store_error


class Flaky:
    """Callable that raises the given errors in order, then returns 'ok'."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


def recording_policy(**kwargs):
    sleeps = []
    policy = RetryPolicy(sleep=sleeps.append, rng=random.Random(0), **kwargs)
    return policy, sleeps


class TestRetryPolicy:
    def test_retries_conflicts_until_success(self):
        op = Flaky(TransactionConflict(), TransactionConflict())
        assert RetryPolicy.immediate(max_attempts=3).run(op) == "ok"
        assert op.calls == 3

    def test_gives_up_after_max_attempts(self):
        op = Flaky(*[StoreUnavailable() for _ in range(5)])
        with pytest.raises(StoreUnavailable):
            RetryPolicy.immediate(max_attempts=3).run(op)
        assert op.calls == 3

    def test_business_errors_not_retried(self):
        op = Flaky(InsufficientFunds(), InsufficientFunds())
        with pytest.raises(InsufficientFunds):
            RetryPolicy.immediate(max_attempts=5).run(op)
        assert op.calls == 1

    def test_exponential_backoff(self):
        policy, sleeps = recording_policy(max_attempts=4, base_delay=1.0, max_delay=8.0)
        op = Flaky(TransactionConflict(), TransactionConflict(), TransactionConflict())
        assert policy.run(op) == "ok"
        assert sleeps == [1.0, 2.0, 4.0]

    def test_backoff_capped(self):
        policy, sleeps = recording_policy(max_attempts=6, base_delay=1.0, max_delay=8.0)
        op = Flaky(*[TransactionConflict() for _ in range(5)])
        policy.run(op)
        assert sleeps == [1.0, 2.0, 4.0, 8.0, 8.0]

    def test_duplicate_key_conflicts_get_jitter(self):
        policy, sleeps = recording_policy(max_attempts=2, base_delay=1.0, duplicate_jitter=0.5)
        policy.run(Flaky(TransactionConflict(duplicate_key=True)))
        assert 1.0 <= sleeps[0] <= 1.5

    def test_plain_conflicts_no_jitter_on_ledger_policy(self):
        policy, sleeps = recording_policy(max_attempts=2, base_delay=1.0, duplicate_jitter=0.5)
        policy.run(Flaky(TransactionConflict()))
        assert sleeps == [1.0]

    def test_always_jitter(self):
        policy, sleeps = recording_policy(max_attempts=2, base_delay=1.0, jitter=1.0)
        policy.run(Flaky(StoreUnavailable()))
        assert 1.0 <= sleeps[0] <= 2.0

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)

    def test_is_retryable(self):
        assert is_retryable(TransactionConflict())
        assert is_retryable(StoreUnavailable())
        assert not is_retryable(ValidationError())
        assert not is_retryable(RuntimeError("boom"))


class TestStoreErrorTranslation:
    def test_stale_data_is_conflict(self):
        err = translate_store_error(StaleDataError("expected 1 row"))
        assert isinstance(err, TransactionConflict)
        assert not err.duplicate_key

    def test_unique_violation_is_duplicate_key_conflict(self):
        exc = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: assets.id"))
        err = translate_store_error(exc)
        assert isinstance(err, TransactionConflict)
        assert err.duplicate_key

    def test_other_integrity_error_not_translated(self):
        exc = IntegrityError("INSERT", {}, Exception("NOT NULL constraint failed: assets.text"))
        assert translate_store_error(exc) is None

    def test_locked_database_is_conflict(self):
        exc = OperationalError("UPDATE", {}, Exception("database is locked"))
        assert isinstance(translate_store_error(exc), TransactionConflict)

    def test_other_operational_error_is_unavailable(self):
        exc = OperationalError("SELECT", {}, Exception("unable to open database file"))
        assert isinstance(translate_store_error(exc), StoreUnavailable)
