"""Initial schema: articles, user collections, metadata fetch retries, rating view.

1. articles                : saved pages and their fetched metadata
2. user_articles           : per-user collections and ratings (FK → articles)
3. metadata_fetch_retries  : retry ledger, one row per article (FK → articles)
4. article_average_ratings : materialized view of AVG(rate) per article,
   with the unique index REFRESH ... CONCURRENTLY requires

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

from models.article import rating_view_index_sql, rating_view_sql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RATING_VIEW_NAME = "article_average_ratings"


def upgrade() -> None:
    op.create_table(
        "articles",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("url", sa.Text(), nullable=False, unique=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("metadata", JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
    )

    op.create_table(
        "user_articles",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column(
            "article_id",
            sa.Uuid(),
            sa.ForeignKey("articles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rate", sa.SmallInteger(), nullable=True),
        sa.Column("collected_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_user_articles_user_id", "user_articles", ["user_id"])
    op.create_index("ix_user_articles_article_id", "user_articles", ["article_id"])
    op.create_index("idx_user_article_unique", "user_articles", ["user_id", "article_id"], unique=True)

    attempt_status = sa.Enum("PENDING", "SUCCESS", "FAILED", name="attempt_status")
    op.create_table(
        "metadata_fetch_retries",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "article_id",
            sa.Uuid(),
            sa.ForeignKey("articles.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("next_attempt_at", sa.DateTime(), nullable=True),
        sa.Column("status", attempt_status, nullable=False, server_default="PENDING"),
        sa.Column("error_message", sa.Text(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("idx_fetch_retry_article", "metadata_fetch_retries", ["article_id"], unique=True)
    op.create_index("idx_fetch_retry_due", "metadata_fetch_retries", ["status", "next_attempt_at"])

    op.execute(rating_view_sql(RATING_VIEW_NAME))
    op.execute(rating_view_index_sql(RATING_VIEW_NAME))


def downgrade() -> None:
    op.execute(f"DROP MATERIALIZED VIEW IF EXISTS {RATING_VIEW_NAME}")
    op.drop_table("metadata_fetch_retries")
    sa.Enum(name="attempt_status").drop(op.get_bind(), checkfirst=True)
    op.drop_table("user_articles")
    op.drop_table("articles")
