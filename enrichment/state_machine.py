"""
Retry accounting for metadata fetch attempts.

Pure logic, no I/O: given an attempt and the outcome of one try, compute
the row values the ledger should write.

States:
    PENDING -> SUCCESS   fetch, parse and article update all succeeded
    PENDING -> PENDING   a step failed, retry_count < max_retries afterwards
    PENDING -> FAILED    a step failed, retry_count reached max_retries

SUCCESS and FAILED are terminal.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from core.exceptions import StateTransitionError
from models.base import AttemptStatus
from models.enrichment_attempt import EnrichmentAttempt


@dataclass(frozen=True)
class RetryPolicy:
    """
    Retry threshold and fixed (non-exponential) backoff.

    Attributes:
        max_retries: Failures after which an attempt is marked FAILED
        backoff: Delay before a failed attempt becomes due again
    """

    max_retries: int = 3
    backoff: timedelta = timedelta(minutes=5)

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.MAX_RETRIES,
            backoff=timedelta(seconds=settings.RETRY_BACKOFF_SECONDS),
        )

    def is_exhausted(self, retry_count: int) -> bool:
        return retry_count >= self.max_retries

    def next_attempt_at(self, now: datetime) -> datetime:
        return now + self.backoff

    def is_eligible(self, attempt: EnrichmentAttempt, now: datetime) -> bool:
        """Same predicate the ledger uses to list due attempts"""
        return (
            attempt.status == AttemptStatus.PENDING
            and attempt.retry_count <= self.max_retries
            and (attempt.next_attempt_at is None or attempt.next_attempt_at <= now)
        )


@dataclass(frozen=True)
class AttemptTransition:
    """New values for an attempt row after one try."""

    status: AttemptStatus
    retry_count: int
    last_attempt_at: datetime
    next_attempt_at: Optional[datetime]
    error_message: str

    def as_values(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "retry_count": self.retry_count,
            "last_attempt_at": self.last_attempt_at,
            "next_attempt_at": self.next_attempt_at,
            "error_message": self.error_message,
        }


def _ensure_pending(attempt: EnrichmentAttempt) -> None:
    if attempt.status.is_terminal:
        raise StateTransitionError(
            f"Attempt {attempt.id} is already {attempt.status.value}",
            context={"attempt_id": attempt.id, "status": attempt.status.value}
        )


def succeed(attempt: EnrichmentAttempt, now: datetime) -> AttemptTransition:
    """Metadata fetched and stored on the article."""
    _ensure_pending(attempt)
    return AttemptTransition(
        status=AttemptStatus.SUCCESS,
        retry_count=attempt.retry_count,
        last_attempt_at=now,
        next_attempt_at=attempt.next_attempt_at,
        error_message="",
    )


def fail(
    attempt: EnrichmentAttempt,
    reason: str,
    now: datetime,
    policy: RetryPolicy
) -> AttemptTransition:
    """One step of the try failed; schedule a retry or give up."""
    _ensure_pending(attempt)
    retry_count = attempt.retry_count + 1
    status = AttemptStatus.FAILED if policy.is_exhausted(retry_count) else AttemptStatus.PENDING
    return AttemptTransition(
        status=status,
        retry_count=retry_count,
        last_attempt_at=now,
        next_attempt_at=policy.next_attempt_at(now),
        error_message=reason,
    )
