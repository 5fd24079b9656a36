"""
Rating aggregate refresh job.

The refresh is idempotent, so a failed tick needs no bookkeeping: the next
tick simply tries again.
"""

import logging

from core.exceptions import AggregateRefreshError
from enrichment.repository import ArticleRepository

logger = logging.getLogger(__name__)


class RatingViewRefresher:
    """Recompute the average rating materialized view."""

    def __init__(self, articles: ArticleRepository):
        self.articles = articles

    async def run_once(self) -> bool:
        """Returns True when the refresh went through"""
        logger.info(f"Refreshing materialized view {self.articles.rating_view_name}")
        try:
            await self.articles.refresh_rating_view()
        except AggregateRefreshError as e:
            logger.error(
                f"Refreshing materialized view failed: {e}",
                extra={"error_context": e.to_dict()}
            )
            return False
        return True
