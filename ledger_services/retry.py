"""
ledger_services.retry -- Retried units of work over fresh sessions.

Responsibility:
    Run a callable inside ``session_scope`` (commit on success, rollback on
    error) and retry the whole unit of work when it lost a concurrency
    race: a stale period version, a row-lock deadlock, or a SQLite busy
    timeout.  After the bounded attempts are spent the caller gets
    ``Conflict``.

Architecture position:
    Services -- stateful orchestration over the kernel.  The only place in
    the codebase that commits.

Invariants enforced:
    - Every attempt uses a new session, so no state leaks from a failed
      attempt into the next.
    - Only concurrency failures are retried; domain errors (validation,
      period state, imbalance) propagate unchanged on the first attempt.
    - Backoff is exponential and capped (tenacity).

Failure modes:
    - Conflict after ``RetryPolicy.attempts`` concurrency failures.
    - Any non-retryable exception from ``work`` propagates as is.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ledger_kernel.db.engine import session_scope
from ledger_kernel.exceptions import Conflict
from ledger_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")

_CONTENTION_MARKERS = (
    "database is locked",
    "deadlock detected",
    "could not serialize access",
    "lock timeout",
)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for a unit of work."""

    attempts: int = 4
    initial_wait: float = 0.05
    max_wait: float = 1.0


def is_retryable(exc: BaseException) -> bool:
    """Stale version or lock contention; nothing else is retried."""
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, OperationalError):
        message = str(exc.orig if exc.orig is not None else exc).lower()
        return any(marker in message for marker in _CONTENTION_MARKERS)
    return False


def _log_retry(operation: str, key: str) -> Callable[[RetryCallState], None]:
    def before_sleep(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        logger.warning(
            "unit_of_work_retry",
            extra={
                "operation": operation,
                "key": key,
                "attempt": state.attempt_number,
                "error_type": type(exc).__name__ if exc else None,
            },
        )

    return before_sleep


def run_unit_of_work(
    session_factory: sessionmaker[Session],
    operation: str,
    key: str,
    work: Callable[[Session], T],
    policy: RetryPolicy | None = None,
) -> T:
    """
    Run ``work(session)`` and commit, retrying on concurrency failures.

    Args:
        session_factory: Factory for the per-attempt session.
        operation: Name for logs and the Conflict error (e.g. "period_lock").
        key: Identifies the contended resource (e.g. "acme/2025-01").
        work: The unit of work; it must not commit.
        policy: Attempts and backoff; defaults to RetryPolicy().

    Raises:
        Conflict: Retries exhausted.
    """
    policy = policy or RetryPolicy()
    retrying = Retrying(
        stop=stop_after_attempt(policy.attempts),
        wait=wait_exponential(multiplier=policy.initial_wait, max=policy.max_wait),
        retry=retry_if_exception(is_retryable),
        before_sleep=_log_retry(operation, key),
        reraise=True,
    )
    try:
        for attempt in retrying:
            with attempt:
                with session_scope(session_factory) as session:
                    return work(session)
    except (StaleDataError, OperationalError) as exc:
        if not is_retryable(exc):
            raise
        logger.error(
            "unit_of_work_conflict",
            extra={"operation": operation, "key": key, "attempts": policy.attempts},
        )
        raise Conflict(operation, key, policy.attempts) from exc
    raise AssertionError("unreachable: tenacity either returns or reraises")
