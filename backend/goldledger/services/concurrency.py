# Overview: Unit-of-work helpers shared by every ledger write.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConcurrencyConflictError

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Optimistic version_id checks still catch lost updates there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB unit of work with retry on concurrency-related failures.

    The callable must re-read everything it needs: each retry starts from a
    rolled-back session. Retries on OperationalError (deadlocks, locks) and
    StaleDataError (version_id compare-and-swap failed); when attempts are
    exhausted ConcurrencyConflictError is raised. Any other exception rolls
    the session back and propagates unchanged, so no partial writes survive.
    """
    if attempts is None:
        attempts = current_app.config.get("GOLD_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("GOLD_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning("Ledger write gave up after %d attempts: %s", attempts, exc)
                raise ConcurrencyConflictError(
                    "Concurrent update detected; retry the operation",
                    details={"attempts": attempts},
                ) from exc
            logger.info("Ledger write conflict (attempt %d/%d), retrying", attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    raise ConcurrencyConflictError("No attempts were made", details={"attempts": attempts})
