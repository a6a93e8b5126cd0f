import logging
import random
import time
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from models import db
from services.errors import BookingError, StorageUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Lock-order / serialization failures that are safe to replay from scratch.
_DEADLOCK_SNIPPETS = (
    "deadlock detected",
    "could not serialize access",
    "deadlock found when trying to get lock",
    "database is locked",
)
_DEADLOCK_PGCODES = {"40P01", "40001"}


def _is_deadlock_error(exc: OperationalError) -> bool:
    pgcode = getattr(getattr(exc, "orig", None), "pgcode", None)
    if pgcode in _DEADLOCK_PGCODES:
        return True
    message = str(exc).lower()
    return any(snippet in message for snippet in _DEADLOCK_SNIPPETS)


def _retry_delay(attempt: int) -> float:
    base = 0.05 * (2 ** (attempt - 1))
    return base + random.uniform(0, 0.05 * attempt)


def run_in_transaction(op_name: str, func: Callable[[], T], *, max_attempts: int = None) -> T:
    """
    Run ``func`` as one unit of work and commit it.

    Everything ``func`` wrote is rolled back if it raises. Deadlock-class
    failures are replayed up to ``max_attempts`` times; other storage
    failures surface as StorageUnavailableError. Domain errors propagate
    unchanged and are never retried.
    """
    if max_attempts is None:
        max_attempts = current_app.config.get("TX_MAX_ATTEMPTS", 3)

    attempt = 1
    while True:
        try:
            result = func()
            db.session.commit()
            return result
        except BookingError:
            db.session.rollback()
            raise
        except OperationalError as exc:
            db.session.rollback()
            if attempt >= max_attempts or not _is_deadlock_error(exc):
                logger.error("Transaction %s failed: %s", op_name, exc)
                raise StorageUnavailableError("Storage temporarily unavailable, please retry") from exc

            delay = _retry_delay(attempt)
            logger.warning(
                "Deadlock in %s, retrying (attempt %s, delay %.3fs)", op_name, attempt, delay
            )
            time.sleep(delay)
            attempt += 1
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error("Transaction %s failed: %s", op_name, exc)
            raise StorageUnavailableError("Storage temporarily unavailable, please retry") from exc
        except Exception:
            db.session.rollback()
            raise
