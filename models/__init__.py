"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class, portable column types and AttemptStatus
    article: Articles and users' rated collections (source of the rating view)
    enrichment_attempt: Metadata fetch retry ledger, one row per article

Usage:
    from models.article import Article
    from models.enrichment_attempt import EnrichmentAttempt
    from models.base import AttemptStatus

Relationships:
    - Article -> EnrichmentAttempt (one-to-one, unique article_id)
    - Article -> UserArticle (one-to-many, rated collections)
"""

__all__ = [
    "Base",
    "AttemptStatus",
    "Article",
    "UserArticle",
    "EnrichmentAttempt",
]
