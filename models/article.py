from sqlalchemy import Column, Text, DateTime, SmallInteger, ForeignKey, Index, Uuid
import uuid
from core.clock import utcnow
from models.base import Base, BigIntegerPK, JSONType


class Article(Base):
    """
    An article saved by users, identified by its URL.

    Owned by the article management side of the system; the enrichment
    worker only fills in title, description, image_url and metadata once
    the page has been fetched.
    """
    __tablename__ = "articles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    url = Column(Text, nullable=False, unique=True)

    # Fetched page metadata
    title = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    page_metadata = Column("metadata", JSONType, nullable=True)  # Serialized PageMetadata

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class UserArticle(Base):
    """
    A user's collected article and optional rating.

    Source rows of the rating aggregate (see RATING_VIEW_NAME).
    """
    __tablename__ = "user_articles"

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, nullable=False, index=True)
    article_id = Column(Uuid, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)
    rate = Column(SmallInteger, nullable=True)
    collected_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("idx_user_article_unique", "user_id", "article_id", unique=True),
    )


def rating_view_sql(view_name: str) -> str:
    """DDL for the rating aggregate materialized view"""
    return (
        f"CREATE MATERIALIZED VIEW IF NOT EXISTS {view_name} AS "
        "SELECT a.id AS article_id, COALESCE(AVG(ua.rate), 0)::float AS average_rating "
        "FROM articles a LEFT JOIN user_articles ua ON ua.article_id = a.id "
        "GROUP BY a.id"
    )


def rating_view_index_sql(view_name: str) -> str:
    """Unique index required by REFRESH MATERIALIZED VIEW CONCURRENTLY"""
    return f"CREATE UNIQUE INDEX IF NOT EXISTS idx_{view_name}_article ON {view_name} (article_id)"
