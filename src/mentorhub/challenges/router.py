"""Challenge API endpoints: 10 routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from mentorhub.auth.dependencies import Caller, get_current_user, get_optional_user, require_admin
from mentorhub.challenges.schemas import (
    ChallengeEnvelope,
    ChallengeListResponse,
    ChallengeResponse,
    CreateChallengeRequest,
    JoinChallengeResponse,
    PointsAwarded,
    ReviewSubmissionRequest,
    SubmissionActionResponse,
    SubmissionListResponse,
    SubmissionResponse,
    SubmitChallengeRequest,
    UpdateChallengeRequest,
)
from mentorhub.challenges.service import (
    approve_submission,
    create_challenge,
    delete_challenge,
    get_challenge_detail,
    join_challenge,
    list_challenges,
    list_submissions,
    reject_submission,
    submission_dict,
    submit_challenge,
    update_challenge,
)
from mentorhub.database import get_session
from mentorhub.points.ledger import AwardResult

router = APIRouter(prefix="/api/v1", tags=["Challenges"])


def _points(award: AwardResult) -> PointsAwarded:
    return PointsAwarded(points_awarded=award.points_awarded, capped=award.capped, balance=award.balance)


# ── Public endpoints ──


@router.get("/challenges", response_model=ChallengeListResponse)
async def list_challenges_endpoint(
    status: str | None = Query(None),
    db: AsyncSession = Depends(get_session),
):
    """List challenges, optionally filtered by status."""
    items = await list_challenges(db, status=status)
    return ChallengeListResponse(challenges=[ChallengeResponse(**c) for c in items])


@router.get("/challenges/{challenge_id}", response_model=ChallengeEnvelope)
async def get_challenge_endpoint(
    challenge_id: int,
    caller: Caller | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
):
    """Get a challenge; includes your participation when authenticated."""
    data = await get_challenge_detail(db, challenge_id, viewer_id=caller.user_id if caller else None)
    return ChallengeEnvelope(challenge=ChallengeResponse(**data))


# ── Participant endpoints ──


@router.post("/challenges/{challenge_id}/join", response_model=JoinChallengeResponse)
async def join_challenge_endpoint(
    challenge_id: int,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Join a challenge."""
    award = await join_challenge(db, caller.user_id, challenge_id)
    await db.commit()
    return JoinChallengeResponse(points=_points(award))


@router.post("/challenges/{challenge_id}/submit", response_model=SubmissionActionResponse)
async def submit_challenge_endpoint(
    challenge_id: int,
    body: SubmitChallengeRequest,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Submit proof of completion for a joined challenge."""
    submission, award = await submit_challenge(
        db, caller.user_id, challenge_id, body.submission_text, body.submission_url
    )
    await db.commit()
    return SubmissionActionResponse(
        submission=SubmissionResponse(**submission_dict(submission)),
        points=_points(award),
    )


# ── Admin endpoints ──


@router.post("/challenges", response_model=ChallengeEnvelope, status_code=201)
async def create_challenge_endpoint(
    body: CreateChallengeRequest,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Admin: create a challenge."""
    challenge = await create_challenge(
        db,
        admin.user_id,
        body.title,
        body.description,
        body.requirements,
        body.point_reward,
        body.deadline,
    )
    await db.commit()
    data = await get_challenge_detail(db, challenge.id)
    return ChallengeEnvelope(challenge=ChallengeResponse(**data))


@router.put("/challenges/{challenge_id}", response_model=ChallengeEnvelope)
async def update_challenge_endpoint(
    challenge_id: int,
    body: UpdateChallengeRequest,
    _admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Admin: update a challenge (partial)."""
    await update_challenge(db, challenge_id, body.model_dump(exclude_unset=True))
    await db.commit()
    data = await get_challenge_detail(db, challenge_id)
    return ChallengeEnvelope(challenge=ChallengeResponse(**data))


@router.delete("/challenges/{challenge_id}")
async def delete_challenge_endpoint(
    challenge_id: int,
    _admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Admin: delete a challenge with its participants and submissions."""
    await delete_challenge(db, challenge_id)
    await db.commit()
    return {"success": True}


@router.get("/challenges/{challenge_id}/submissions", response_model=SubmissionListResponse)
async def list_submissions_endpoint(
    challenge_id: int,
    _admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Admin: list submissions for a challenge."""
    items = await list_submissions(db, challenge_id)
    return SubmissionListResponse(submissions=[SubmissionResponse(**s) for s in items])


@router.patch("/submissions/{submission_id}/approve", response_model=SubmissionActionResponse)
async def approve_submission_endpoint(
    submission_id: int,
    body: ReviewSubmissionRequest | None = None,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Admin: approve a pending submission and award the challenge's points."""
    submission, award = await approve_submission(
        db, submission_id, admin.user_id, body.feedback if body else None
    )
    await db.commit()
    return SubmissionActionResponse(
        submission=SubmissionResponse(**submission_dict(submission)),
        points=_points(award),
    )


@router.patch("/submissions/{submission_id}/reject", response_model=SubmissionActionResponse)
async def reject_submission_endpoint(
    submission_id: int,
    body: ReviewSubmissionRequest | None = None,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Admin: reject a pending submission."""
    submission = await reject_submission(db, submission_id, admin.user_id, body.feedback if body else None)
    await db.commit()
    return SubmissionActionResponse(submission=SubmissionResponse(**submission_dict(submission)))
