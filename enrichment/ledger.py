"""
Retry ledger: durable storage of metadata fetch attempts.

Every mutation is a single-row UPDATE guarded by `status = PENDING` (and,
for worker transitions, by the retry_count the worker read). A writer that
lost a race updates zero rows and gets None back instead of applying its
transition a second time. Rows are re-read after each write; the database
is the source of truth for retry_count.
"""

import logging
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.clock import utcnow
from core.exceptions import LedgerError
from enrichment.state_machine import AttemptTransition, RetryPolicy
from models.base import AttemptStatus
from models.enrichment_attempt import EnrichmentAttempt

logger = logging.getLogger(__name__)


class EnrichmentLedger:
    """
    Create, list and update EnrichmentAttempt rows.

    Each operation opens its own short session, so no transaction spans a
    network fetch.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        policy: Optional[RetryPolicy] = None,
        clock: Callable = utcnow
    ):
        self.session_factory = session_factory
        self.policy = policy or RetryPolicy()
        self.clock = clock

    async def create_attempt(self, article_id: UUID, url: str) -> EnrichmentAttempt:
        """
        Enqueue an article for enrichment (INSERT ... ON CONFLICT DO NOTHING).

        Calling this again for the same article leaves the existing row
        untouched and returns it.
        """
        now = self.clock()
        async with self.session_factory() as session:
            try:
                insert = sqlite_insert if session.bind.dialect.name == "sqlite" else pg_insert
                stmt = insert(EnrichmentAttempt).values(
                    article_id=article_id,
                    url=url,
                    retry_count=0,
                    status=AttemptStatus.PENDING,
                    error_message="",
                    created_at=now,
                    updated_at=now,
                ).on_conflict_do_nothing(index_elements=["article_id"])
                result = await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise LedgerError(
                    "Failed to create enrichment attempt",
                    context={"operation": "create", "article_id": article_id},
                    original_exception=e
                )

        if result.rowcount == 0:
            logger.debug(f"Enrichment attempt for article {article_id} already exists")

        attempt = await self.get_attempt_for_article(article_id)
        if attempt is None:
            raise LedgerError(
                "Enrichment attempt missing after insert",
                context={"operation": "create", "article_id": article_id}
            )
        return attempt

    async def get_attempt(self, attempt_id: int) -> Optional[EnrichmentAttempt]:
        return await self._fetch_one(
            select(EnrichmentAttempt).where(EnrichmentAttempt.id == attempt_id),
            {"operation": "get", "attempt_id": attempt_id}
        )

    async def get_attempt_for_article(self, article_id: UUID) -> Optional[EnrichmentAttempt]:
        return await self._fetch_one(
            select(EnrichmentAttempt).where(EnrichmentAttempt.article_id == article_id),
            {"operation": "get", "article_id": article_id}
        )

    async def list_eligible(self) -> List[EnrichmentAttempt]:
        """
        Attempts due now:
        status = PENDING AND retry_count <= max_retries
        AND (next_attempt_at IS NULL OR next_attempt_at <= now)
        """
        now = self.clock()
        stmt = (
            select(EnrichmentAttempt)
            .where(
                EnrichmentAttempt.status == AttemptStatus.PENDING,
                EnrichmentAttempt.retry_count <= self.policy.max_retries,
                or_(
                    EnrichmentAttempt.next_attempt_at.is_(None),
                    EnrichmentAttempt.next_attempt_at <= now,
                ),
            )
            .order_by(EnrichmentAttempt.id)
        )
        async with self.session_factory() as session:
            try:
                result = await session.execute(stmt)
                return list(result.scalars().all())
            except SQLAlchemyError as e:
                raise LedgerError(
                    "Failed to list eligible enrichment attempts",
                    context={"operation": "list_eligible"},
                    original_exception=e
                )

    async def apply_transition(
        self,
        attempt: EnrichmentAttempt,
        transition: AttemptTransition
    ) -> Optional[EnrichmentAttempt]:
        """
        Write a state machine transition computed from `attempt`.

        Returns:
            The updated row, or None when the row is no longer pending or
            its retry_count moved since `attempt` was read
        """
        return await self._update_pending(
            attempt.id,
            transition.as_values(),
            expected_retry_count=attempt.retry_count
        )

    async def set_status(
        self,
        attempt_id: int,
        status: AttemptStatus,
        error_message: str = "",
        expected_retry_count: Optional[int] = None
    ) -> Optional[EnrichmentAttempt]:
        """Set status and error message; stamps last_attempt_at"""
        return await self._update_pending(
            attempt_id,
            {
                "status": status,
                "error_message": error_message,
                "last_attempt_at": self.clock(),
            },
            expected_retry_count=expected_retry_count
        )

    async def increment_retry(
        self,
        attempt_id: int,
        error_message: Optional[str] = None,
        expected_retry_count: Optional[int] = None
    ) -> Optional[EnrichmentAttempt]:
        """retry_count += 1 server-side; last_attempt_at = now; next_attempt_at = now + backoff"""
        now = self.clock()
        values: Dict[str, Any] = {
            "retry_count": EnrichmentAttempt.retry_count + 1,
            "last_attempt_at": now,
            "next_attempt_at": self.policy.next_attempt_at(now),
        }
        if error_message is not None:
            values["error_message"] = error_message
        return await self._update_pending(attempt_id, values, expected_retry_count=expected_retry_count)

    async def _update_pending(
        self,
        attempt_id: int,
        values: Dict[str, Any],
        expected_retry_count: Optional[int] = None
    ) -> Optional[EnrichmentAttempt]:
        stmt = update(EnrichmentAttempt).where(
            EnrichmentAttempt.id == attempt_id,
            EnrichmentAttempt.status == AttemptStatus.PENDING,
        )
        if expected_retry_count is not None:
            stmt = stmt.where(EnrichmentAttempt.retry_count == expected_retry_count)
        stmt = stmt.values(updated_at=self.clock(), **values).execution_options(
            synchronize_session=False
        )

        async with self.session_factory() as session:
            try:
                result = await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise LedgerError(
                    "Failed to update enrichment attempt",
                    context={"operation": "update", "attempt_id": attempt_id},
                    original_exception=e
                )

        if result.rowcount == 0:
            logger.info(
                f"Enrichment attempt {attempt_id} not updated: "
                f"no longer pending or changed by another worker"
            )
            return None

        return await self.get_attempt(attempt_id)

    async def _fetch_one(self, stmt, context: Dict[str, Any]) -> Optional[EnrichmentAttempt]:
        async with self.session_factory() as session:
            try:
                result = await session.execute(stmt)
                return result.scalar_one_or_none()
            except SQLAlchemyError as e:
                raise LedgerError(
                    "Failed to read enrichment attempt",
                    context=context,
                    original_exception=e
                )
