from sqlalchemy import Column, Text, Enum, Integer, DateTime, ForeignKey, Index, Uuid
from core.clock import utcnow
from models.base import Base, AttemptStatus, BigIntegerPK


class EnrichmentAttempt(Base):
    """
    Tracks metadata fetch retries per article.

    Purpose:
    - Drive the metadata worker (which rows are due, which are done)
    - Bound retries with a fixed backoff between attempts
    - Keep the last failure reason for debugging

    Design:
    - One row per article (unique article_id); creation is a no-op when the
      row already exists
    - status only moves pending -> success or pending -> failed
    - retry_count never decreases; writes are guarded by the retry_count the
      worker read, so two workers can't both apply a transition to one row
    """
    __tablename__ = "metadata_fetch_retries"

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    article_id = Column(Uuid, ForeignKey("articles.id", ondelete="CASCADE"), nullable=False)
    url = Column(Text, nullable=False)

    # Retry state
    retry_count = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime, nullable=True)
    next_attempt_at = Column(DateTime, nullable=True)  # NULL means due immediately
    status = Column(Enum(AttemptStatus, name="attempt_status"), nullable=False, default=AttemptStatus.PENDING)
    error_message = Column(Text, nullable=False, default="")

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_fetch_retry_article", "article_id", unique=True),
        Index("idx_fetch_retry_due", "status", "next_attempt_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<EnrichmentAttempt id={self.id} article_id={self.article_id} "
            f"status={self.status} retry_count={self.retry_count}>"
        )
