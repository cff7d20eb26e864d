"""Transactional document store over SQLAlchemy sessions.

Every asset, account and bet row is versioned (`version_id_col`), so a
read-modify-write that lost a race fails with StaleDataError instead of
silently overwriting. This module turns those driver-level failures into
TransactionConflict / StoreUnavailable and reruns the whole unit of work
under a RetryPolicy.
"""

import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from opinion_market.errors import StoreUnavailable, TransactionConflict
from opinion_market.retry import RetryPolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DUPLICATE_KEY_MARKERS = ("unique", "duplicate", "primary key")
_BUSY_MARKERS = ("locked", "busy", "deadlock", "could not serialize")


def translate_store_error(exc: Exception) -> Optional[Exception]:
    """Map a SQLAlchemy failure to the market error taxonomy (None = not ours)."""
    if isinstance(exc, StaleDataError):
        return TransactionConflict(f"Concurrent update: {exc}")
    message = str(exc).lower()
    if isinstance(exc, IntegrityError):
        if any(marker in message for marker in _DUPLICATE_KEY_MARKERS):
            return TransactionConflict(f"Concurrent create: {exc.orig}", duplicate_key=True)
        return None
    if isinstance(exc, OperationalError):
        if any(marker in message for marker in _BUSY_MARKERS):
            return TransactionConflict(f"Store contention: {exc.orig}")
        return StoreUnavailable(f"Store error: {exc.orig}")
    return None


class TransactionalStore:
    def __init__(self, session_factory: sessionmaker, retry_policy: Optional[RetryPolicy] = None):
        self.session_factory = session_factory
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

    def _attempt(self, fn: Callable[[Session], T]) -> T:
        db = self.session_factory()
        try:
            result = fn(db)
            db.commit()
            return result
        except (StaleDataError, IntegrityError, OperationalError) as exc:
            db.rollback()
            translated = translate_store_error(exc)
            if translated is None:
                raise
            raise translated from exc
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def transaction(
        self,
        fn: Callable[[Session], T],
        name: str = "transaction",
        policy: Optional[RetryPolicy] = None,
    ) -> T:
        """Run `fn(session)` atomically, retrying the whole unit on conflict.

        `fn` may run more than once, so it must not have side effects outside
        the session.
        """
        return (policy or self.retry_policy).run(lambda: self._attempt(fn), name=name)

    def batch(self, fn: Callable[[Session], T], name: str = "batch") -> T:
        """Multi-row atomic write. Not retried: batch jobs are rerun instead."""
        return self._attempt(fn)

    def read(self, fn: Callable[[Session], T]) -> T:
        db = self.session_factory()
        try:
            return fn(db)
        except OperationalError as exc:
            raise StoreUnavailable(f"Store error: {exc.orig}") from exc
        finally:
            db.close()
