# Overview: Retry and row-locking helpers for pricing writes (order + lines + audit commit).

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

# Unique keys a concurrent writer can win; the loser recomputes and retries.
# SQLite reports the column list rather than the constraint name.
RETRYABLE_UNIQUE_KEYS = (
    "uq_tax_audits_order_version",
    "tax_calculation_audits.order_id, tax_calculation_audits.version",
)


def lock_for_update(query):
    """
    Row-level lock for read-modify-write on customers and sequences.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def is_retryable_integrity_error(exc: IntegrityError) -> bool:
    message = str(exc.orig) if exc.orig is not None else str(exc)
    return any(key in message for key in RETRYABLE_UNIQUE_KEYS)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a unit of DB work, rolling back and retrying on lock contention.

    Retries OperationalError (deadlocks, busy database), StaleDataError
    (version_id_col conflicts on Customer / Order / FlatTaxRule) and an
    IntegrityError on the audit (order_id, version) key, which means another
    reprice took that version first. Any other exception rolls back and
    propagates unchanged.
    """
    attempts = max(1, int(attempts))
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, IntegrityError) as exc:
            db.session.rollback()
            if isinstance(exc, IntegrityError) and not is_retryable_integrity_error(exc):
                raise
            if attempt >= attempts - 1:
                logger.error("Giving up after %s attempts: %s", attempts, exc)
                raise
            logger.warning("Retrying after concurrency conflict (attempt %s/%s): %s", attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
