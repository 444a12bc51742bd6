"""
Bounded retry of whole transactions on transient persistence failures.

A transient failure is one where re-running the same request from scratch
in a fresh transaction can succeed: a deadlock victim or a SQLite writer
that timed out waiting for the lock (OperationalError), or a version
counter that moved underneath an UPDATE (StaleDataError).  Anything else,
including every FulfillmentKernelError, propagates on the first attempt.

The callable must open its own transaction; a failed attempt has already
been rolled back by ``session_scope`` when it reaches this module.
"""

import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from fulfillment_kernel.exceptions import ConflictError
from fulfillment_kernel.logging_config import get_logger

logger = get_logger("utils.retry")

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[Exception], ...] = (OperationalError, StaleDataError)


def run_with_retry(
    fn: Callable[[], T],
    *,
    operation: str,
    entity_type: str,
    entity_id: object,
    max_retries: int = 5,
    backoff_seconds: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``fn`` until it succeeds or ``max_retries`` retries are spent.

    Backoff is linear: the n-th retry waits ``backoff_seconds * n``.

    Raises:
        ConflictError: when the last attempt still fails transiently.
    """
    attempt = 0
    while True:
        try:
            return fn()
        except TRANSIENT_ERRORS as exc:
            if attempt >= max_retries:
                logger.warning(
                    "transaction_retries_exhausted",
                    extra={
                        "operation": operation,
                        "attempts": attempt + 1,
                        "error_type": type(exc).__name__,
                    },
                )
                raise ConflictError(
                    entity_type,
                    str(entity_id),
                    reason=f"{operation} failed after {attempt + 1} attempts: "
                    f"{type(exc).__name__}",
                ) from exc
            attempt += 1
            logger.info(
                "transaction_retry",
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "max_retries": max_retries,
                    "error_type": type(exc).__name__,
                },
            )
            sleep(backoff_seconds * attempt)
