"""Match lifecycle business logic.

Rules:
- A mentee requests a mentor; the mentor must have a mentor profile
- No self-matching; the mentee must have a CV on file
- At most one request per (mentor, mentee) pair, ever (unique constraint)
- Only the mentor responds; either party completes or cancels
- Contact details are disclosed only for active/completed matches
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from sqlalchemy.orm.attributes import set_committed_value

from mentorhub.db.models import MatchRequest, MentorProfile, User
from mentorhub.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from mentorhub.matches.state_machine import (
    DELETED,
    MatchAction,
    MatchStatus,
    contact_visible,
    next_status,
)
from mentorhub.time_utils import utcnow

logger = logging.getLogger(__name__)

VALID_ROLES = ("mentor", "mentee")


@dataclass
class MatchView:
    """A match joined with both parties, before the contact-visibility projection."""

    match: MatchRequest
    mentor_name: str | None
    mentee_name: str | None
    mentor_email: str | None
    mentee_email: str | None
    mentor_linkedin_url: str | None


def project_match(view: MatchView) -> dict[str, Any]:
    """Build the response dict for a match, gating contact fields by status."""
    m = view.match
    data: dict[str, Any] = {
        "id": m.id,
        "mentor_id": m.mentor_id,
        "mentee_id": m.mentee_id,
        "mentor_name": view.mentor_name,
        "mentee_name": view.mentee_name,
        "status": m.status,
        "introduction": m.introduction,
        "preferred_time": m.preferred_time,
        "cv_included": m.cv_included,
        "requested_at": m.requested_at,
        "responded_at": m.responded_at,
        "completed_at": m.completed_at,
    }
    if contact_visible(m.status):
        data["mentor_email"] = view.mentor_email
        data["mentee_email"] = view.mentee_email
        data["mentor_linkedin_url"] = view.mentor_linkedin_url
    return data


async def get_match(db: AsyncSession, match_id: int) -> MatchRequest:
    """Get a match by ID. Raises NotFoundError if absent."""
    result = await db.execute(select(MatchRequest).where(MatchRequest.id == match_id))
    match = result.scalar_one_or_none()
    if match is None:
        raise NotFoundError("Match not found")
    return match


async def _find_pair(db: AsyncSession, mentor_id: int, mentee_id: int) -> int | None:
    result = await db.execute(
        select(MatchRequest.id).where(
            MatchRequest.mentor_id == mentor_id,
            MatchRequest.mentee_id == mentee_id,
        )
    )
    return result.scalar_one_or_none()


async def create_match(
    db: AsyncSession,
    mentee_id: int,
    mentor_id: int,
    introduction: str,
    preferred_time: str,
) -> MatchRequest:
    """Create a pending match request from a mentee to a mentor."""
    if not introduction or not introduction.strip():
        raise ValidationError("introduction is required")
    if not preferred_time or not preferred_time.strip():
        raise ValidationError("preferred_time is required")

    mentor = await db.get(User, mentor_id)
    if mentor is None:
        raise ValidationError("Mentor user not found")

    profile = await db.execute(select(MentorProfile.id).where(MentorProfile.user_id == mentor_id))
    if profile.scalar_one_or_none() is None:
        raise ValidationError("Mentor profile not found")

    if mentor_id == mentee_id:
        raise ValidationError("Cannot match with yourself")

    if await _find_pair(db, mentor_id, mentee_id) is not None:
        raise ConflictError("Duplicate match already exists")

    mentee = await db.get(User, mentee_id)
    if mentee is None or not mentee.cv_url:
        raise ValidationError("CV is required to send mentorship request")

    now = utcnow()
    match = MatchRequest(
        mentor_id=mentor_id,
        mentee_id=mentee_id,
        status=MatchStatus.PENDING.value,
        introduction=introduction,
        preferred_time=preferred_time,
        cv_included=True,
        requested_at=now,
        updated_at=now,
    )
    db.add(match)
    try:
        await db.flush()
    except IntegrityError as e:
        # A concurrent request for the same pair committed first
        await db.rollback()
        raise ConflictError("Duplicate match already exists") from e

    logger.info("Match %d requested (mentor=%d, mentee=%d)", match.id, mentor_id, mentee_id)
    return match


async def respond_to_match(
    db: AsyncSession,
    match_id: int,
    caller_id: int,
    action: str,
) -> MatchRequest:
    """Mentor accepts or rejects a pending match."""
    if action not in (MatchAction.ACCEPT.value, MatchAction.REJECT.value):
        raise ValidationError("action must be 'accept' or 'reject'")

    match = await get_match(db, match_id)
    if match.mentor_id != caller_id:
        raise ForbiddenError("Only the mentor can respond to this match")

    now = utcnow()
    await _apply_transition(db, match, action, responded_at=now, updated_at=now)

    logger.info("Match %d %sed by mentor %d", match.id, action, caller_id)
    return match


async def complete_match(db: AsyncSession, match_id: int, caller_id: int) -> MatchRequest:
    """Mark an active match as completed. Either party may complete."""
    match = await get_match(db, match_id)
    if caller_id not in (match.mentor_id, match.mentee_id):
        raise ForbiddenError("Only match participants can complete this match")

    now = utcnow()
    await _apply_transition(db, match, MatchAction.COMPLETE, completed_at=now, updated_at=now)

    logger.info("Match %d completed by user %d", match.id, caller_id)
    return match


async def cancel_match(db: AsyncSession, match_id: int, caller_id: int) -> None:
    """Withdraw a pending match request. The row is removed."""
    match = await get_match(db, match_id)
    if caller_id not in (match.mentor_id, match.mentee_id):
        raise ForbiddenError("Only match participants can cancel this match")

    await _apply_transition(db, match, MatchAction.CANCEL)
    logger.info("Match %d cancelled by user %d", match_id, caller_id)


async def _apply_transition(
    db: AsyncSession,
    match: MatchRequest,
    action: str,
    **fields: Any,
) -> None:
    """Move a match along the transition table as a compare-and-set on its status.

    The UPDATE/DELETE only matches the row while it still holds the status the
    transition was computed from, so two racing responses cannot both apply.
    """
    current = match.status
    target = next_status(current, action)
    guard = (MatchRequest.id == match.id, MatchRequest.status == current)

    if target == DELETED:
        result = await db.execute(
            delete(MatchRequest).where(*guard).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ValidationError("Match is not pending")
        db.expunge(match)
        return

    result = await db.execute(
        update(MatchRequest)
        .where(*guard)
        .values(status=target, **fields)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ValidationError(f"Match is no longer {current}")
    set_committed_value(match, "status", target)
    for key, value in fields.items():
        set_committed_value(match, key, value)


async def list_matches(
    db: AsyncSession,
    user_id: int,
    status: str | None = None,
    role: str | None = None,
) -> list[MatchView]:
    """List matches where the user is mentor or mentee, newest first."""
    if status is not None and status not in {s.value for s in MatchStatus}:
        raise ValidationError("Invalid status value")
    if role is not None and role not in VALID_ROLES:
        raise ValidationError("Invalid role value")

    mentor_user = aliased(User)
    mentee_user = aliased(User)

    query = (
        select(
            MatchRequest,
            mentor_user.name,
            mentee_user.name,
            mentor_user.email,
            mentee_user.email,
            MentorProfile.linkedin_url,
        )
        .outerjoin(mentor_user, MatchRequest.mentor_id == mentor_user.id)
        .outerjoin(mentee_user, MatchRequest.mentee_id == mentee_user.id)
        .outerjoin(MentorProfile, MatchRequest.mentor_id == MentorProfile.user_id)
    )

    if role == "mentor":
        query = query.where(MatchRequest.mentor_id == user_id)
    elif role == "mentee":
        query = query.where(MatchRequest.mentee_id == user_id)
    else:
        query = query.where(or_(MatchRequest.mentor_id == user_id, MatchRequest.mentee_id == user_id))

    if status is not None:
        query = query.where(MatchRequest.status == status)

    query = query.order_by(MatchRequest.requested_at.desc(), MatchRequest.id.desc())
    result = await db.execute(query)

    return [
        MatchView(
            match=row[0],
            mentor_name=row[1],
            mentee_name=row[2],
            mentor_email=row[3],
            mentee_email=row[4],
            mentor_linkedin_url=row[5],
        )
        for row in result.all()
    ]


async def get_match_view(db: AsyncSession, match_id: int) -> MatchView:
    """Load a single match with both parties for the response projection."""
    match = await get_match(db, match_id)
    mentor = await db.get(User, match.mentor_id)
    mentee = await db.get(User, match.mentee_id)
    linkedin = await db.execute(
        select(MentorProfile.linkedin_url).where(MentorProfile.user_id == match.mentor_id)
    )
    return MatchView(
        match=match,
        mentor_name=mentor.name if mentor else None,
        mentee_name=mentee.name if mentee else None,
        mentor_email=mentor.email if mentor else None,
        mentee_email=mentee.email if mentee else None,
        mentor_linkedin_url=linkedin.scalar_one_or_none(),
    )


async def check_match(db: AsyncSession, mentee_id: int, mentor_id: int) -> MatchRequest:
    """Find the caller's non-rejected request to a mentor. Raises NotFoundError if none."""
    result = await db.execute(
        select(MatchRequest)
        .where(
            MatchRequest.mentee_id == mentee_id,
            MatchRequest.mentor_id == mentor_id,
            MatchRequest.status != MatchStatus.REJECTED.value,
        )
        .limit(1)
    )
    match = result.scalar_one_or_none()
    if match is None:
        raise NotFoundError("No match exists with this mentor")
    return match
