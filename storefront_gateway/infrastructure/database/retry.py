"""Bounded retries for idempotent store reads; fail-fast for writes"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from storefront_gateway.config import settings
from storefront_gateway.domain.exceptions import StoreUnavailableError
from storefront_gateway.infrastructure.observability.metrics import store_retry_counter

T = TypeVar("T")

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (OperationalError, PoolTimeoutError)


def retry_read(
    operation: Callable[[], T],
    description: str,
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
) -> T:
    """
    Run an idempotent read, retrying transient store failures.

    Retry strategy:
    - Exponential backoff: base, 2*base, 4*base...
    - Only connection/lock/timeout failures are retried
    - After the last attempt the failure surfaces as StoreUnavailableError

    Args:
        operation: Zero-argument callable performing the read in its own session
        description: Label used in logs and error messages
    """
    retries = settings.store_read_retries if max_retries is None else max_retries
    backoff = settings.store_retry_backoff_base if backoff_base is None else backoff_base

    attempt = 0
    while True:
        try:
            return operation()
        except TRANSIENT_ERRORS as e:
            attempt += 1
            if attempt > retries:
                logger.error(f"Store read failed after {retries} retries: {description}")
                raise StoreUnavailableError(f"Store unavailable during {description}") from e

            store_retry_counter.inc()
            delay = backoff * (2 ** (attempt - 1))
            logger.warning(
                f"Transient store failure during {description}, retrying",
                extra={"attempt": attempt, "backoff_seconds": delay},
            )
            time.sleep(delay)


@contextmanager
def write_guard(description: str) -> Iterator[None]:
    """
    Translate store failures on a state-changing write.

    Writes are never retried: a caller that wants to try again must re-read
    the current state first. Integrity violations pass through untouched so
    callers can treat them as conflicts.
    """
    try:
        yield
    except IntegrityError:
        raise
    except (DBAPIError, PoolTimeoutError) as e:
        logger.error(f"Store write failed: {description}: {e}")
        raise StoreUnavailableError(f"Store unavailable during {description}") from e
