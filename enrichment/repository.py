"""
Article store access used by the background jobs.

Only the fields filled in by enrichment are ever written; articles are
created, listed and deleted elsewhere.
"""

import logging
import re
from typing import Callable, Optional
from uuid import UUID

from sqlalchemy import select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.clock import utcnow
from core.config import settings
from core.exceptions import (
    AggregateRefreshError,
    ResourceError,
    ResourceNotFoundError,
    ResourceUpdateError,
)
from models.article import Article

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ArticleRepository:
    """
    Read and update articles, refresh the rating aggregate.

    Attributes:
        rating_view_name: Materialized view holding average ratings
            (default: RATING_VIEW_NAME)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        rating_view_name: Optional[str] = None,
        clock: Callable = utcnow
    ):
        self.session_factory = session_factory
        self.rating_view_name = rating_view_name or settings.RATING_VIEW_NAME
        self.clock = clock

        if not _IDENTIFIER.match(self.rating_view_name):
            raise ValueError(f"Invalid rating view name: {self.rating_view_name!r}")

    async def get_article(self, article_id: UUID) -> Article:
        """
        Raises:
            ResourceNotFoundError: No article with this id
            ResourceError: Store unavailable
        """
        async with self.session_factory() as session:
            try:
                result = await session.execute(select(Article).where(Article.id == article_id))
                article = result.scalar_one_or_none()
            except SQLAlchemyError as e:
                raise ResourceError(
                    f"Failed to load article {article_id}",
                    context={"article_id": article_id},
                    original_exception=e
                )

        if article is None:
            raise ResourceNotFoundError(
                f"Article {article_id} not found",
                context={"article_id": article_id}
            )
        return article

    async def update_article(self, article: Article) -> None:
        """
        Overwrite title, description, image_url and metadata.

        Raises:
            ResourceNotFoundError: Article disappeared
            ResourceUpdateError: Write failed
        """
        stmt = (
            update(Article)
            .where(Article.id == article.id)
            .values({
                Article.title: article.title,
                Article.description: article.description,
                Article.image_url: article.image_url,
                Article.page_metadata: article.page_metadata,
                Article.updated_at: self.clock(),
            })
            .execution_options(synchronize_session=False)
        )

        async with self.session_factory() as session:
            try:
                result = await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise ResourceUpdateError(
                    f"Failed to update article {article.id}",
                    context={"article_id": article.id},
                    original_exception=e
                )

        if result.rowcount == 0:
            raise ResourceNotFoundError(
                f"Article {article.id} not found",
                context={"article_id": article.id}
            )

    async def refresh_rating_view(self) -> None:
        """
        Recompute average ratings without blocking readers.

        Raises:
            AggregateRefreshError: Refresh failed
        """
        stmt = text(f"REFRESH MATERIALIZED VIEW CONCURRENTLY {self.rating_view_name}")
        async with self.session_factory() as session:
            try:
                await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise AggregateRefreshError(
                    f"Failed to refresh {self.rating_view_name}",
                    context={"view_name": self.rating_view_name},
                    original_exception=e
                )
