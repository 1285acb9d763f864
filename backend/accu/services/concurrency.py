# Overview: Transaction helpers shared by services; row locks and retry on concurrency failures.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import AccuBatch
from ..time_utils import utcnow


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, other DBs will honor it. Writers
    that must not interleave on SQLite also call touch_batch, so the loser of
    a race fails its version check instead.
    """
    return query.with_for_update()


def lock_batch(batch_id: int) -> AccuBatch | None:
    """Load a batch holding its row lock until the surrounding transaction ends."""
    return lock_for_update(db.session.query(AccuBatch).filter_by(id=batch_id)).first()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts on version_id columns). func must redo all
    of its reads, because the session is rolled back between attempts.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after concurrency failure (attempt %s/%s): %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))


def touch_batch(batch: AccuBatch) -> None:
    """
    Force an UPDATE of the batch row in the current flush.

    The UPDATE carries the version_id check, so of two transactions that read
    the same batch version and then both pledge against it, the later one
    raises StaleDataError and is retried against fresh data.
    """
    batch.updated_at = utcnow()
