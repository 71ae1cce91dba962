"""Baseline: matches, points ledger, challenges, forum.

users and mentor_profiles belong to the profile service; they are created
here only if missing so a fresh database can be migrated on its own.

Revision ID: 001_baseline
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Users (owned by the profile service) ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id SERIAL PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            email VARCHAR(320) UNIQUE NOT NULL,
            cv_url TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS mentor_profiles (
            id SERIAL PRIMARY KEY,
            user_id INTEGER UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            nick_name VARCHAR(64),
            bio TEXT,
            linkedin_url TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Matches ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS matches (
            id SERIAL PRIMARY KEY,
            mentor_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            mentee_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            introduction TEXT NOT NULL DEFAULT '',
            preferred_time TEXT NOT NULL DEFAULT '',
            cv_included BOOLEAN NOT NULL DEFAULT true,
            requested_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            responded_at TIMESTAMPTZ,
            completed_at TIMESTAMPTZ,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_matches_mentor_mentee UNIQUE (mentor_id, mentee_id),
            CONSTRAINT ck_matches_status CHECK (status IN ('pending', 'active', 'rejected', 'completed')),
            CONSTRAINT ck_matches_not_self CHECK (mentor_id <> mentee_id)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_matches_mentor_status ON matches(mentor_id, status)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_matches_mentee_status ON matches(mentee_id, status)")

    # --- Points ledger ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_points (
            id SERIAL PRIMARY KEY,
            user_id INTEGER UNIQUE NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            points INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_user_points_points_non_negative CHECK (points >= 0)
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_user_points_points ON user_points(points)")
    op.execute("""
        CREATE TABLE IF NOT EXISTS point_actions_log (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            action_type VARCHAR(32) NOT NULL,
            reference_id VARCHAR(64) NOT NULL,
            points_awarded INTEGER NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_point_actions_user_type_time
        ON point_actions_log(user_id, action_type, created_at)
    """)

    # --- Challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenges (
            id SERIAL PRIMARY KEY,
            title VARCHAR(200) NOT NULL,
            description TEXT NOT NULL,
            requirements TEXT NOT NULL,
            created_by_user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            point_reward INTEGER NOT NULL,
            deadline TIMESTAMPTZ NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'active',
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_challenges_status CHECK (status IN ('active', 'completed')),
            CONSTRAINT ck_challenges_point_reward_positive CHECK (point_reward > 0)
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_participants (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            challenge_id INTEGER NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            joined_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_challenge_participants_user_challenge UNIQUE (user_id, challenge_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_challenge_participants_challenge_id
        ON challenge_participants(challenge_id)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS challenge_submissions (
            id SERIAL PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            challenge_id INTEGER NOT NULL REFERENCES challenges(id) ON DELETE CASCADE,
            submission_text TEXT NOT NULL,
            submission_url TEXT,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            submitted_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            reviewed_at TIMESTAMPTZ,
            reviewed_by_user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            feedback TEXT,
            CONSTRAINT uq_challenge_submissions_user_challenge UNIQUE (user_id, challenge_id),
            CONSTRAINT ck_challenge_submissions_status CHECK (status IN ('pending', 'approved', 'rejected'))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_challenge_submissions_challenge_id
        ON challenge_submissions(challenge_id)
    """)

    # --- Forum ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS forum_categories (
            id SERIAL PRIMARY KEY,
            name VARCHAR(128) NOT NULL,
            slug VARCHAR(128) UNIQUE NOT NULL,
            description TEXT,
            parent_id INTEGER REFERENCES forum_categories(id),
            display_order INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS forum_threads (
            id SERIAL PRIMARY KEY,
            category_id INTEGER NOT NULL REFERENCES forum_categories(id),
            user_id INTEGER NOT NULL REFERENCES users(id),
            title VARCHAR(200) NOT NULL,
            content TEXT NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'open',
            is_pinned BOOLEAN NOT NULL DEFAULT false,
            view_count INTEGER NOT NULL DEFAULT 0,
            reply_count INTEGER NOT NULL DEFAULT 0,
            upvote_count INTEGER NOT NULL DEFAULT 0,
            downvote_count INTEGER NOT NULL DEFAULT 0,
            hot_score DOUBLE PRECISION NOT NULL DEFAULT 0,
            last_activity_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_forum_threads_status CHECK (status IN ('open', 'solved', 'closed'))
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_forum_threads_category_id ON forum_threads(category_id)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_forum_threads_hot_score ON forum_threads(hot_score)")
    op.execute("CREATE INDEX IF NOT EXISTS ix_forum_threads_last_activity ON forum_threads(last_activity_at)")
    op.execute("""
        CREATE TABLE IF NOT EXISTS forum_replies (
            id SERIAL PRIMARY KEY,
            thread_id INTEGER NOT NULL REFERENCES forum_threads(id) ON DELETE CASCADE,
            user_id INTEGER NOT NULL REFERENCES users(id),
            content TEXT NOT NULL,
            parent_reply_id INTEGER REFERENCES forum_replies(id),
            is_solution BOOLEAN NOT NULL DEFAULT false,
            upvote_count INTEGER NOT NULL DEFAULT 0,
            downvote_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_forum_replies_thread_id ON forum_replies(thread_id)")
    op.execute("""
        CREATE TABLE IF NOT EXISTS forum_votes (
            id SERIAL PRIMARY KEY,
            votable_type VARCHAR(8) NOT NULL,
            votable_id INTEGER NOT NULL,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            vote_type VARCHAR(8) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_forum_votes_votable_user UNIQUE (votable_type, votable_id, user_id),
            CONSTRAINT ck_forum_votes_votable_type CHECK (votable_type IN ('thread', 'reply')),
            CONSTRAINT ck_forum_votes_vote_type CHECK (vote_type IN ('upvote', 'downvote'))
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_forum_votes_votable ON forum_votes(votable_type, votable_id)")
    op.execute("""
        CREATE TABLE IF NOT EXISTS forum_thread_views (
            id SERIAL PRIMARY KEY,
            thread_id INTEGER NOT NULL REFERENCES forum_threads(id) ON DELETE CASCADE,
            user_id INTEGER REFERENCES users(id) ON DELETE SET NULL,
            ip_address VARCHAR(64),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS ix_forum_thread_views_thread_id ON forum_thread_views(thread_id)")
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_forum_thread_views_thread_user
        ON forum_thread_views(thread_id, user_id)
        WHERE user_id IS NOT NULL
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_forum_thread_views_thread_ip
        ON forum_thread_views(thread_id, ip_address)
        WHERE user_id IS NULL AND ip_address IS NOT NULL
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS forum_thread_views CASCADE")
    op.execute("DROP TABLE IF EXISTS forum_votes CASCADE")
    op.execute("DROP TABLE IF EXISTS forum_replies CASCADE")
    op.execute("DROP TABLE IF EXISTS forum_threads CASCADE")
    op.execute("DROP TABLE IF EXISTS forum_categories CASCADE")
    op.execute("DROP TABLE IF EXISTS challenge_submissions CASCADE")
    op.execute("DROP TABLE IF EXISTS challenge_participants CASCADE")
    op.execute("DROP TABLE IF EXISTS challenges CASCADE")
    op.execute("DROP TABLE IF EXISTS point_actions_log CASCADE")
    op.execute("DROP TABLE IF EXISTS user_points CASCADE")
    op.execute("DROP TABLE IF EXISTS matches CASCADE")
    # Don't drop users / mentor_profiles: owned by the profile service
