"""ORM models for the mentorship platform.

``users`` and ``mentor_profiles`` are owned by the profile service and only read
here. Every dedup invariant (match pair, vote, view, participation) is carried
by a unique constraint so it holds under concurrent requests.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from mentorhub.db.base import Base


# ---------------------------------------------------------------------------
# Users (read-only collaborators)
# ---------------------------------------------------------------------------


class User(Base):
    """Maps to the 'users' table."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    cv_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class MentorProfile(Base):
    """Maps to the 'mentor_profiles' table."""

    __tablename__ = "mentor_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    nick_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    bio: Mapped[str | None] = mapped_column(Text, nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------


class MatchRequest(Base):
    """Mentor/mentee pairing. At most one row per ordered (mentor, mentee) pair."""

    __tablename__ = "matches"
    __table_args__ = (
        UniqueConstraint("mentor_id", "mentee_id", name="uq_matches_mentor_mentee"),
        CheckConstraint("status IN ('pending', 'active', 'rejected', 'completed')", name="status"),
        CheckConstraint("mentor_id <> mentee_id", name="not_self"),
        Index("ix_matches_mentor_status", "mentor_id", "status"),
        Index("ix_matches_mentee_status", "mentee_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mentor_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    mentee_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="pending")
    introduction: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    preferred_time: Mapped[str] = mapped_column(Text, nullable=False, server_default="")
    cv_included: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    responded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Points ledger
# ---------------------------------------------------------------------------


class UserPoints(Base):
    """Denormalized running balance: one row per user, equal to the sum of the log."""

    __tablename__ = "user_points"
    __table_args__ = (
        CheckConstraint("points >= 0", name="points_non_negative"),
        Index("ix_user_points_points", "points"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class PointActionLog(Base):
    """Append-only audit trail of point-earning actions."""

    __tablename__ = "point_actions_log"
    __table_args__ = (
        Index("ix_point_actions_user_type_time", "user_id", "action_type", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(64), nullable=False)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Challenges
# ---------------------------------------------------------------------------


class Challenge(Base):
    __tablename__ = "challenges"
    __table_args__ = (
        CheckConstraint("status IN ('active', 'completed')", name="status"),
        CheckConstraint("point_reward > 0", name="point_reward_positive"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    requirements: Mapped[str] = mapped_column(Text, nullable=False)
    created_by_user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    point_reward: Mapped[int] = mapped_column(Integer, nullable=False)
    deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="active")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ChallengeParticipant(Base):
    __tablename__ = "challenge_participants"
    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="uq_challenge_participants_user_challenge"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    challenge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False, index=True
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ChallengeSubmission(Base):
    __tablename__ = "challenge_submissions"
    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="uq_challenge_submissions_user_challenge"),
        CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    challenge_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False, index=True
    )
    submission_text: Mapped[str] = mapped_column(Text, nullable=False)
    submission_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="pending")
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by_user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)


# ---------------------------------------------------------------------------
# Forum
# ---------------------------------------------------------------------------


class ForumCategory(Base):
    __tablename__ = "forum_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    slug: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    parent_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("forum_categories.id"), nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")


class ForumThread(Base):
    """Forum thread with denormalized counters and a recomputable hot score."""

    __tablename__ = "forum_threads"
    __table_args__ = (
        CheckConstraint("status IN ('open', 'solved', 'closed')", name="status"),
        Index("ix_forum_threads_hot_score", "hot_score"),
        Index("ix_forum_threads_last_activity", "last_activity_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    category_id: Mapped[int] = mapped_column(Integer, ForeignKey("forum_categories.id"), nullable=False, index=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="open")
    is_pinned: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    reply_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    upvote_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    downvote_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    hot_score: Mapped[float] = mapped_column(Float, nullable=False, server_default="0")
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ForumReply(Base):
    __tablename__ = "forum_replies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    thread_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("forum_threads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    parent_reply_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("forum_replies.id"), nullable=True)
    is_solution: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    upvote_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    downvote_count: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ForumVote(Base):
    """One row per (votable, user). Absence of a row means no vote."""

    __tablename__ = "forum_votes"
    __table_args__ = (
        UniqueConstraint("votable_type", "votable_id", "user_id", name="uq_forum_votes_votable_user"),
        CheckConstraint("votable_type IN ('thread', 'reply')", name="votable_type"),
        CheckConstraint("vote_type IN ('upvote', 'downvote')", name="vote_type"),
        Index("ix_forum_votes_votable", "votable_type", "votable_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    votable_type: Mapped[str] = mapped_column(String(8), nullable=False)
    votable_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    vote_type: Mapped[str] = mapped_column(String(8), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ForumThreadView(Base):
    """One row per viewer identity per thread: user id, or IP when anonymous."""

    __tablename__ = "forum_thread_views"
    __table_args__ = (
        Index(
            "uq_forum_thread_views_thread_user",
            "thread_id",
            "user_id",
            unique=True,
            postgresql_where=text("user_id IS NOT NULL"),
            sqlite_where=text("user_id IS NOT NULL"),
        ),
        Index(
            "uq_forum_thread_views_thread_ip",
            "thread_id",
            "ip_address",
            unique=True,
            postgresql_where=text("user_id IS NULL AND ip_address IS NOT NULL"),
            sqlite_where=text("user_id IS NULL AND ip_address IS NOT NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    thread_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("forum_threads.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class ForumThreadTag(Base):
    __tablename__ = "forum_thread_tags"
    __table_args__ = (
        UniqueConstraint("thread_id", "tag_name", name="uq_forum_thread_tags_thread_tag"),
        Index("ix_forum_thread_tags_tag_name", "tag_name"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    thread_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("forum_threads.id", ondelete="CASCADE"), nullable=False
    )
    tag_name: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
