# Overview: Unit-of-work runner; row locking and retry for store-level write conflicts.

from __future__ import annotations

import logging
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the unit of work opens
    with BEGIN IMMEDIATE instead, and version_id columns catch the rest.
    """
    return query.with_for_update()


def run_with_retry(session, func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Each retry re-runs `func` from scratch;
    any other exception propagates on the first attempt.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Write conflict on attempt %d/%d, retrying: %s", attempt + 1, attempts, exc
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


class UnitOfWork:
    """
    Runs a function as one atomic unit against the shared store.

    Either every write made by the function commits, or the session is
    rolled back and nothing is visible. Conflicts with concurrent writers
    are retried as a whole; domain errors are not retried.
    """

    def __init__(self, session, *, attempts: int = 5, backoff_base: float = 0.05, sqlite_immediate: bool = True):
        self.session = session
        self.attempts = attempts
        self.backoff_base = backoff_base
        self.sqlite_immediate = sqlite_immediate

    def _begin(self):
        bind = self.session.get_bind()
        if self.sqlite_immediate and bind.dialect.name == "sqlite":
            # Units of work start from a clean session; the write lock is taken up front
            self.session.rollback()
            self.session.execute(text("BEGIN IMMEDIATE"))

    def run(self, func):
        def _op():
            try:
                self._begin()
                result = func()
                self.session.commit()
                return result
            except Exception:
                self.session.rollback()
                raise

        return run_with_retry(
            self.session, _op, attempts=self.attempts, backoff_base=self.backoff_base
        )
