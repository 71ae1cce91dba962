"""Forum thread tags: normalized labels, unique per thread.

Revision ID: 002_forum_thread_tags
Revises: 001_baseline
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_forum_thread_tags"
down_revision: str | None = "001_baseline"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS forum_thread_tags (
            id          SERIAL PRIMARY KEY,
            thread_id   INTEGER NOT NULL REFERENCES forum_threads(id) ON DELETE CASCADE,
            tag_name    VARCHAR(50) NOT NULL,
            created_at  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_forum_thread_tags_thread_tag UNIQUE (thread_id, tag_name)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_forum_thread_tags_tag_name ON forum_thread_tags(tag_name)")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS forum_thread_tags CASCADE")
