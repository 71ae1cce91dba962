"""Challenge participation and review.

Rules:
- Only active challenges before their deadline accept joins and submissions
- One participation and one submission per user per challenge (unique constraints)
- A submission requires having joined first
- Joining and submitting earn capped points; approval earns the challenge's
  point_reward, uncapped
- Only pending submissions can be approved or rejected
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from mentorhub.db.models import Challenge, ChallengeParticipant, ChallengeSubmission, User
from mentorhub.errors import ConflictError, NotFoundError, ValidationError
from mentorhub.points.ledger import AwardResult, award_points, award_points_for_action
from mentorhub.points.policy import (
    CHALLENGE_APPROVED,
    CHALLENGE_JOINED,
    CHALLENGE_SUBMITTED,
    get_policy,
)
from mentorhub.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

CHALLENGE_STATUSES = ("active", "completed")
UPDATABLE_FIELDS = ("title", "description", "requirements", "point_reward", "deadline", "status")


async def get_challenge(db: AsyncSession, challenge_id: int) -> Challenge:
    result = await db.execute(select(Challenge).where(Challenge.id == challenge_id))
    challenge = result.scalar_one_or_none()
    if challenge is None:
        raise NotFoundError("Challenge not found")
    return challenge


async def _participant_counts(db: AsyncSession, challenge_ids: list[int]) -> dict[int, int]:
    if not challenge_ids:
        return {}
    result = await db.execute(
        select(ChallengeParticipant.challenge_id, func.count())
        .where(ChallengeParticipant.challenge_id.in_(challenge_ids))
        .group_by(ChallengeParticipant.challenge_id)
    )
    return {row[0]: row[1] for row in result.all()}


async def list_challenges(db: AsyncSession, status: str | None = None) -> list[dict[str, Any]]:
    """Challenges with creator name and participant count, newest first."""
    if status is not None and status not in CHALLENGE_STATUSES:
        raise ValidationError("Invalid status value")

    query = (
        select(Challenge, User.name)
        .outerjoin(User, User.id == Challenge.created_by_user_id)
        .order_by(Challenge.created_at.desc(), Challenge.id.desc())
    )
    if status is not None:
        query = query.where(Challenge.status == status)

    rows = (await db.execute(query)).all()
    counts = await _participant_counts(db, [c.id for c, _ in rows])
    return [
        challenge_dict(c, creator_name=name, participant_count=counts.get(c.id, 0))
        for c, name in rows
    ]


async def get_challenge_detail(
    db: AsyncSession,
    challenge_id: int,
    viewer_id: int | None = None,
) -> dict[str, Any]:
    """Single challenge, plus the viewer's participation when authenticated."""
    challenge = await get_challenge(db, challenge_id)
    creator = await db.get(User, challenge.created_by_user_id)
    counts = await _participant_counts(db, [challenge.id])
    data = challenge_dict(
        challenge,
        creator_name=creator.name if creator else None,
        participant_count=counts.get(challenge.id, 0),
    )

    if viewer_id is not None:
        data["user_has_joined"] = await _has_joined(db, viewer_id, challenge_id)
        submission = await _get_submission_for(db, viewer_id, challenge_id)
        data["user_submission"] = submission_dict(submission) if submission else None
    return data


def challenge_dict(
    challenge: Challenge,
    *,
    creator_name: str | None,
    participant_count: int,
) -> dict[str, Any]:
    return {
        "id": challenge.id,
        "title": challenge.title,
        "description": challenge.description,
        "requirements": challenge.requirements,
        "created_by_user_id": challenge.created_by_user_id,
        "creator_name": creator_name,
        "point_reward": challenge.point_reward,
        "deadline": challenge.deadline,
        "status": challenge.status,
        "participant_count": participant_count,
        "created_at": challenge.created_at,
        "updated_at": challenge.updated_at,
    }


async def create_challenge(
    db: AsyncSession,
    admin_id: int,
    title: str,
    description: str,
    requirements: str,
    point_reward: int,
    deadline: datetime,
) -> Challenge:
    """Create an active challenge (admin only, checked by the router)."""
    for name, value in (("title", title), ("description", description), ("requirements", requirements)):
        if not value or not value.strip():
            raise ValidationError(f"{name} is required")
    if point_reward <= 0:
        raise ValidationError("point_reward must be positive")

    now = utcnow()
    challenge = Challenge(
        title=title.strip(),
        description=description,
        requirements=requirements,
        created_by_user_id=admin_id,
        point_reward=point_reward,
        deadline=as_utc(deadline),
        status="active",
        created_at=now,
        updated_at=now,
    )
    db.add(challenge)
    await db.flush()

    logger.info("Challenge %d created by admin %d (%d points)", challenge.id, admin_id, point_reward)
    return challenge


async def update_challenge(db: AsyncSession, challenge_id: int, changes: dict[str, Any]) -> Challenge:
    """Apply a partial update. Unknown keys and None values are ignored."""
    challenge = await get_challenge(db, challenge_id)
    changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}

    if "status" in changes and changes["status"] not in CHALLENGE_STATUSES:
        raise ValidationError("Invalid status value")
    if "point_reward" in changes and changes["point_reward"] <= 0:
        raise ValidationError("point_reward must be positive")
    for name in ("title", "description", "requirements"):
        if name in changes and (not changes[name] or not changes[name].strip()):
            raise ValidationError(f"{name} cannot be empty")

    if changes.get("deadline") is not None:
        changes["deadline"] = as_utc(changes["deadline"])

    for key, value in changes.items():
        setattr(challenge, key, value)
    challenge.updated_at = utcnow()
    await db.flush()
    return challenge


async def delete_challenge(db: AsyncSession, challenge_id: int) -> None:
    """Delete a challenge together with its participants and submissions."""
    challenge = await get_challenge(db, challenge_id)
    await db.execute(delete(ChallengeSubmission).where(ChallengeSubmission.challenge_id == challenge_id))
    await db.execute(delete(ChallengeParticipant).where(ChallengeParticipant.challenge_id == challenge_id))
    await db.delete(challenge)
    await db.flush()
    logger.info("Challenge %d deleted", challenge_id)


def _require_open(challenge: Challenge) -> None:
    if challenge.status != "active":
        raise ValidationError("Challenge is not active")
    if as_utc(challenge.deadline) < utcnow():
        raise ValidationError("Challenge deadline has passed")


async def _has_joined(db: AsyncSession, user_id: int, challenge_id: int) -> bool:
    result = await db.execute(
        select(ChallengeParticipant.id).where(
            ChallengeParticipant.user_id == user_id,
            ChallengeParticipant.challenge_id == challenge_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def _get_submission_for(db: AsyncSession, user_id: int, challenge_id: int) -> ChallengeSubmission | None:
    result = await db.execute(
        select(ChallengeSubmission).where(
            ChallengeSubmission.user_id == user_id,
            ChallengeSubmission.challenge_id == challenge_id,
        )
    )
    return result.scalar_one_or_none()


async def join_challenge(db: AsyncSession, user_id: int, challenge_id: int) -> AwardResult:
    """Join a challenge and earn the (capped) join reward."""
    challenge = await get_challenge(db, challenge_id)
    _require_open(challenge)
    if await _has_joined(db, user_id, challenge_id):
        raise ConflictError("Already joined this challenge")

    db.add(ChallengeParticipant(user_id=user_id, challenge_id=challenge_id, joined_at=utcnow()))
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Already joined this challenge") from e

    policy = get_policy(CHALLENGE_JOINED)
    award = await award_points_for_action(
        db,
        user_id,
        CHALLENGE_JOINED,
        str(challenge_id),
        policy.base_points,
        policy.window_seconds,
        policy.max_free_per_window,
    )
    logger.info("User %d joined challenge %d", user_id, challenge_id)
    return award


async def submit_challenge(
    db: AsyncSession,
    user_id: int,
    challenge_id: int,
    submission_text: str,
    submission_url: str | None = None,
) -> tuple[ChallengeSubmission, AwardResult]:
    """Submit proof of completion and earn the (capped) submission reward."""
    if not submission_text or not submission_text.strip():
        raise ValidationError("submission_text is required")

    challenge = await get_challenge(db, challenge_id)
    _require_open(challenge)
    if not await _has_joined(db, user_id, challenge_id):
        raise ValidationError("Must join the challenge before submitting")
    if await _get_submission_for(db, user_id, challenge_id) is not None:
        raise ConflictError("Already submitted for this challenge")

    submission = ChallengeSubmission(
        user_id=user_id,
        challenge_id=challenge_id,
        submission_text=submission_text,
        submission_url=submission_url or None,
        status="pending",
        submitted_at=utcnow(),
    )
    db.add(submission)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Already submitted for this challenge") from e

    policy = get_policy(CHALLENGE_SUBMITTED)
    award = await award_points_for_action(
        db,
        user_id,
        CHALLENGE_SUBMITTED,
        str(challenge_id),
        policy.base_points,
        policy.window_seconds,
        policy.max_free_per_window,
    )
    logger.info("User %d submitted challenge %d (submission %d)", user_id, challenge_id, submission.id)
    return submission, award


async def list_submissions(db: AsyncSession, challenge_id: int) -> list[dict[str, Any]]:
    """All submissions for a challenge with submitter details, newest first."""
    await get_challenge(db, challenge_id)
    result = await db.execute(
        select(ChallengeSubmission, User.name, User.email)
        .outerjoin(User, User.id == ChallengeSubmission.user_id)
        .where(ChallengeSubmission.challenge_id == challenge_id)
        .order_by(ChallengeSubmission.submitted_at.desc(), ChallengeSubmission.id.desc())
    )
    return [
        {**submission_dict(s), "user_name": name, "user_email": email}
        for s, name, email in result.all()
    ]


def submission_dict(submission: ChallengeSubmission) -> dict[str, Any]:
    return {
        "id": submission.id,
        "user_id": submission.user_id,
        "challenge_id": submission.challenge_id,
        "submission_text": submission.submission_text,
        "submission_url": submission.submission_url,
        "status": submission.status,
        "submitted_at": submission.submitted_at,
        "reviewed_at": submission.reviewed_at,
        "reviewed_by_user_id": submission.reviewed_by_user_id,
        "feedback": submission.feedback,
    }


async def _get_submission(db: AsyncSession, submission_id: int) -> ChallengeSubmission:
    result = await db.execute(select(ChallengeSubmission).where(ChallengeSubmission.id == submission_id))
    submission = result.scalar_one_or_none()
    if submission is None:
        raise NotFoundError("Submission not found")
    return submission


async def _review(
    db: AsyncSession,
    submission: ChallengeSubmission,
    status: str,
    admin_id: int,
    feedback: str | None,
) -> None:
    """Move a pending submission to ``status``; the UPDATE only matches while pending."""
    if submission.status != "pending":
        raise ValidationError("Submission is not pending")

    fields = {
        "status": status,
        "reviewed_at": utcnow(),
        "reviewed_by_user_id": admin_id,
        "feedback": feedback,
    }
    result = await db.execute(
        update(ChallengeSubmission)
        .where(ChallengeSubmission.id == submission.id, ChallengeSubmission.status == "pending")
        .values(**fields)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ValidationError("Submission is not pending")
    for key, value in fields.items():
        set_committed_value(submission, key, value)


async def approve_submission(
    db: AsyncSession,
    submission_id: int,
    admin_id: int,
    feedback: str | None = None,
) -> tuple[ChallengeSubmission, AwardResult]:
    """Approve a pending submission and award the challenge's point_reward."""
    submission = await _get_submission(db, submission_id)
    challenge = await get_challenge(db, submission.challenge_id)
    await _review(db, submission, "approved", admin_id, feedback)

    award = await award_points(
        db,
        submission.user_id,
        CHALLENGE_APPROVED,
        str(submission.id),
        challenge.point_reward,
    )
    logger.info("Submission %d approved by admin %d", submission_id, admin_id)
    return submission, award


async def reject_submission(
    db: AsyncSession,
    submission_id: int,
    admin_id: int,
    feedback: str | None = None,
) -> ChallengeSubmission:
    """Reject a pending submission with optional feedback. No points change."""
    submission = await _get_submission(db, submission_id)
    await _review(db, submission, "rejected", admin_id, feedback)
    logger.info("Submission %d rejected by admin %d", submission_id, admin_id)
    return submission
