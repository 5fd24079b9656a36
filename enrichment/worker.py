"""
Metadata worker: one tick of the article enrichment job.

Each tick loads every due attempt from the ledger and, one at a time:
1. Fetches the page and extracts its metadata
2. Writes title, description, image and metadata blob onto the article
3. Records success, or a failure with retry accounting, on the ledger

A failure at any step (fetch, parse, article lookup or update) counts as
one failed try; the next try starts again from the fetch. Errors never
escape the tick: one bad row must not stop the others.
"""

import logging
from typing import Any, Callable, Dict, Optional

from core.clock import utcnow
from core.exceptions import EnrichmentError, LedgerError
from enrichment import state_machine
from enrichment.fetcher import MetadataFetcher
from enrichment.ledger import EnrichmentLedger
from enrichment.repository import ArticleRepository
from enrichment.state_machine import RetryPolicy
from models.base import AttemptStatus
from models.enrichment_attempt import EnrichmentAttempt
from schemas.metadata import PageMetadata

logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"
RETRYING = "retrying"
FAILED = "failed"
SKIPPED = "skipped"
ERRORS = "errors"


def describe_error(error: Exception) -> str:
    """Failure reason stored in the ledger's error_message"""
    if isinstance(error, EnrichmentError):
        if error.original_exception is not None:
            return f"{error.message}: {error.original_exception}"
        return error.message
    return f"{type(error).__name__}: {error}"


def error_context(error: Exception) -> Dict[str, Any]:
    """Structured log context for a failed try"""
    if isinstance(error, EnrichmentError):
        return error.to_dict()
    return {"error_type": type(error).__name__, "message": str(error)}


class MetadataWorker:
    """
    Drive due enrichment attempts through fetch, article update and the
    retry state machine.
    """

    def __init__(
        self,
        ledger: EnrichmentLedger,
        articles: ArticleRepository,
        fetcher: MetadataFetcher,
        policy: Optional[RetryPolicy] = None,
        clock: Callable = utcnow
    ):
        self.ledger = ledger
        self.articles = articles
        self.fetcher = fetcher
        self.policy = policy or ledger.policy
        self.clock = clock

    async def run_once(self) -> Dict[str, int]:
        """
        Process every eligible attempt once.

        Returns:
            Tick summary: attempts, succeeded, retrying, failed, skipped
            (lost to another worker) and errors (unrecorded outcomes)
        """
        summary = {"attempts": 0, SUCCEEDED: 0, RETRYING: 0, FAILED: 0, SKIPPED: 0, ERRORS: 0}
        logger.info("Running metadata fetch job")

        try:
            attempts = await self.ledger.list_eligible()
        except LedgerError as e:
            logger.error(
                f"Failed to get pending metadata fetch retries: {e}",
                extra={"error_context": e.to_dict()}
            )
            summary[ERRORS] += 1
            return summary

        if not attempts:
            logger.info("No pending metadata fetch retries")
            return summary

        summary["attempts"] = len(attempts)

        for attempt in attempts:
            try:
                outcome = await self.process_attempt(attempt)
            except Exception:
                logger.exception(
                    f"Unexpected error processing attempt {attempt.id} "
                    f"(article {attempt.article_id})"
                )
                outcome = ERRORS
            summary[outcome] += 1

        logger.info(
            f"Metadata fetch job done. Attempts: {summary['attempts']}, "
            f"succeeded: {summary[SUCCEEDED]}, retrying: {summary[RETRYING]}, "
            f"failed: {summary[FAILED]}, skipped: {summary[SKIPPED]}, errors: {summary[ERRORS]}"
        )
        return summary

    async def process_attempt(self, attempt: EnrichmentAttempt) -> str:
        """Try one attempt and record the outcome; returns the summary key"""
        logger.info(
            f"Attempting to fetch metadata for article {attempt.article_id} "
            f"(attempt {attempt.id}, retry_count {attempt.retry_count})"
        )

        try:
            metadata = await self._enrich(attempt)
        except Exception as e:
            logger.warning(
                f"Metadata fetch failed for article {attempt.article_id} "
                f"(attempt {attempt.id}, url {attempt.url}): {e}",
                extra={"error_context": error_context(e)}
            )
            return await self._record_failure(attempt, e)

        return await self._record_success(attempt, metadata)

    async def _enrich(self, attempt: EnrichmentAttempt) -> PageMetadata:
        metadata = await self.fetcher.fetch(attempt.url)
        blob = metadata.to_blob()

        article = await self.articles.get_article(attempt.article_id)
        article.title = metadata.title
        article.description = metadata.description
        if metadata.image_url:
            article.image_url = metadata.image_url
        article.page_metadata = blob
        await self.articles.update_article(article)

        return metadata

    async def _record_success(self, attempt: EnrichmentAttempt, metadata: PageMetadata) -> str:
        transition = state_machine.succeed(attempt, self.clock())
        try:
            updated = await self.ledger.apply_transition(attempt, transition)
        except LedgerError as e:
            logger.error(
                f"Failed to update metadata fetch retry status to success "
                f"(attempt {attempt.id}, article {attempt.article_id}): {e}",
                extra={"error_context": e.to_dict()}
            )
            return ERRORS

        if updated is None:
            return SKIPPED

        logger.info(
            f"Fetched metadata for article {attempt.article_id} "
            f"(attempt {attempt.id}): title={metadata.title!r}"
        )
        return SUCCEEDED

    async def _record_failure(self, attempt: EnrichmentAttempt, error: Exception) -> str:
        transition = state_machine.fail(attempt, describe_error(error), self.clock(), self.policy)
        try:
            updated = await self.ledger.apply_transition(attempt, transition)
        except LedgerError as e:
            logger.error(
                f"Failed to record metadata fetch failure "
                f"(attempt {attempt.id}, article {attempt.article_id}): {e}",
                extra={"error_context": e.to_dict()}
            )
            return ERRORS

        if updated is None:
            return SKIPPED

        if updated.status == AttemptStatus.FAILED:
            logger.error(
                f"Giving up on article {attempt.article_id} (attempt {attempt.id}) "
                f"after {updated.retry_count} failures: {updated.error_message}"
            )
            return FAILED

        logger.warning(
            f"Retry {updated.retry_count}/{self.policy.max_retries} for article "
            f"{attempt.article_id} scheduled at {updated.next_attempt_at}"
        )
        return RETRYING
