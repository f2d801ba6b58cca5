# Overview: Transaction boundary, row locking and retry helpers shared by every service.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrentModificationError
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id counters on every mutable model still catch the conflict.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Execute one service operation as a single transaction.

    Any exception rolls the session back before propagating, so no operation
    ever partially commits. OperationalError (deadlocks, lock timeouts) and
    StaleDataError (optimistic version conflicts) re-run ``func`` against
    fresh state; a version conflict that survives every attempt surfaces as
    ConcurrentModificationError.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_attempt = attempt >= attempts - 1
            logger.warning(
                "Concurrency conflict (attempt %s/%s): %s", attempt + 1, attempts, exc
            )
            if last_attempt:
                if isinstance(exc, StaleDataError):
                    raise ConcurrentModificationError(
                        "Row was modified by another transaction; reload and retry",
                        details={"attempts": attempts},
                    ) from exc
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise


def check_expected_version(entity: str, row, expected_version: int | None) -> None:
    """Reject a write made against a stale client copy of ``row``."""
    if expected_version is None:
        return
    if row.version_id != expected_version:
        raise ConcurrentModificationError(
            f"{entity} {row.id} was modified concurrently",
            details={
                "entity": entity,
                "entity_id": row.id,
                "expected_version": expected_version,
                "current_version": row.version_id,
            },
        )
