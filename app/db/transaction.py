"""Scoped transactions over a SQLAlchemy session.

``atomic`` is the only place services commit or roll back. Blocks nest: an
inner ``atomic`` joins the outermost one and only flushes, so a multi-step
mutation (approve application + create loan + schedule, payment + ledger row,
approval + balance debit) becomes visible all at once or not at all.
"""
import logging
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from app.core.exceptions import ConcurrentModificationError, InfrastructureError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_DEPTH_KEY = "atomic_depth"


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """Run the block in one transaction: commit on success, roll back on any error.

    Storage errors are translated into domain errors:
    - ``IntegrityError`` (unique/foreign-key violation) -> ``ConcurrentModificationError``
    - ``OperationalError`` / pool timeout -> ``InfrastructureError``

    Both are raised after the rollback, so a failed transaction is never
    partially visible and is safe to retry.
    """
    depth = db.info.get(_DEPTH_KEY, 0)
    db.info[_DEPTH_KEY] = depth + 1
    outermost = depth == 0
    try:
        try:
            yield db
            if outermost:
                db.commit()
            else:
                db.flush()
        except IntegrityError as exc:
            if outermost:
                db.rollback()
            logger.warning("Constraint violation, transaction rolled back: %s", exc.orig)
            raise ConcurrentModificationError(
                "The record was modified concurrently. Reload and try again.",
                code="ConcurrentModification",
            ) from exc
        except (OperationalError, PoolTimeoutError) as exc:
            if outermost:
                db.rollback()
            logger.error("Storage failure, transaction not applied: %s", exc)
            raise InfrastructureError(
                "Storage is unavailable; the operation was not applied and can be retried.",
            ) from exc
        except BaseException:
            if outermost:
                db.rollback()
            raise
    finally:
        db.info[_DEPTH_KEY] = depth


def retry_on_conflict(operation: Callable[[], T], retries: int = 1) -> T:
    """Re-run an idempotent operation when it lost a concurrent insert race."""
    attempt = 0
    while True:
        try:
            return operation()
        except ConcurrentModificationError:
            if attempt >= retries:
                raise
            attempt += 1
            logger.info("Retrying after concurrent modification (attempt %d)", attempt)
