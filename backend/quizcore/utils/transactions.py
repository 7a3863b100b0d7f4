"""Transaction boundary with a bounded retry policy.

`run_in_transaction` executes a unit of work against a session and
commits it. Transient storage failures (lock timeouts, dropped
connections, serialization conflicts) roll the session back and re-run
the *whole* body after an exponential backoff; anything else rolls back
and propagates immediately. Bodies must therefore not commit on their
own and must rebuild any per-attempt state they return.
"""

import logging
from typing import Callable, Optional, Tuple, Type, TypeVar

from sqlalchemy import exc as sa_exc
from sqlmodel import Session
from tenacity import Retrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from ..config import settings

logger = logging.getLogger("quizcore.transactions")

T = TypeVar("T")

# PostgreSQL serialization_failure / deadlock_detected
_TRANSIENT_SQLSTATES = {"40001", "40P01"}
_MAX_BACKOFF_SECONDS = 2.0


def is_transient_error(exc: BaseException) -> bool:
    """Return True for storage errors worth retrying."""
    if isinstance(exc, sa_exc.TimeoutError):
        return True
    if not isinstance(exc, sa_exc.DBAPIError):
        return False
    if exc.connection_invalidated or isinstance(exc, sa_exc.OperationalError):
        return True
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    return code in _TRANSIENT_SQLSTATES


def run_in_transaction(
    session: Session,
    body: Callable[[], T],
    *,
    max_attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
    retry_on: Tuple[Type[BaseException], ...] = (),
) -> T:
    """Run `body` and commit, retrying the whole unit on transient errors.

    `retry_on` adds exception types that are retryable for this unit only
    (e.g. a unique-constraint race that the body resolves on re-run).
    """
    attempts = max_attempts or settings.IMPORT_MAX_ATTEMPTS
    backoff = settings.RETRY_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds

    def _retryable(exc: BaseException) -> bool:
        return is_transient_error(exc) or isinstance(exc, retry_on)

    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=backoff, max=_MAX_BACKOFF_SECONDS),
        retry=retry_if_exception(_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    result = None
    for attempt in retrying:
        with attempt:
            try:
                result = body()
                session.commit()
            except Exception:
                session.rollback()
                raise
    return result
