"""Match API endpoints: 6 routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from mentorhub.auth.dependencies import Caller, get_current_user
from mentorhub.database import get_session
from mentorhub.errors import NotFoundError
from mentorhub.matches.schemas import (
    CreateMatchRequest,
    MatchCheckResponse,
    MatchListResponse,
    MatchResponse,
    RespondToMatchRequest,
)
from mentorhub.matches.service import (
    cancel_match,
    check_match,
    complete_match,
    create_match,
    get_match_view,
    list_matches,
    project_match,
    respond_to_match,
)

router = APIRouter(prefix="/api/v1", tags=["Matches"])


async def _match_response(db: AsyncSession, match_id: int) -> MatchResponse:
    view = await get_match_view(db, match_id)
    return MatchResponse(**project_match(view))


@router.post(
    "/matches",
    response_model=MatchResponse,
    response_model_exclude_unset=True,
    status_code=201,
)
async def create_match_endpoint(
    body: CreateMatchRequest,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Request mentorship from a mentor (mentee-initiated)."""
    match = await create_match(db, caller.user_id, body.mentor_id, body.introduction, body.preferred_time)
    await db.commit()
    return await _match_response(db, match.id)


@router.get("/matches/check/{mentor_id}", response_model=MatchCheckResponse)
async def check_match_endpoint(
    mentor_id: int,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Check whether the caller already has an open request to a mentor."""
    try:
        match = await check_match(db, caller.user_id, mentor_id)
    except NotFoundError:
        return JSONResponse(status_code=404, content={"exists": False})
    return MatchCheckResponse(exists=True, match_id=match.id, status=match.status)


@router.get(
    "/matches",
    response_model=MatchListResponse,
    response_model_exclude_unset=True,
)
async def list_matches_endpoint(
    status: str | None = Query(None),
    role: str | None = Query(None),
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """List the caller's matches as mentor or mentee."""
    views = await list_matches(db, caller.user_id, status=status, role=role)
    return MatchListResponse(matches=[MatchResponse(**project_match(v)) for v in views])


@router.post(
    "/matches/{match_id}/respond",
    response_model=MatchResponse,
    response_model_exclude_unset=True,
)
async def respond_to_match_endpoint(
    match_id: int,
    body: RespondToMatchRequest,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Mentor accepts or rejects a pending match."""
    await respond_to_match(db, match_id, caller.user_id, body.action)
    await db.commit()
    return await _match_response(db, match_id)


@router.patch(
    "/matches/{match_id}/complete",
    response_model=MatchResponse,
    response_model_exclude_unset=True,
)
async def complete_match_endpoint(
    match_id: int,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Mark an active match as completed."""
    await complete_match(db, match_id, caller.user_id)
    await db.commit()
    return await _match_response(db, match_id)


@router.delete("/matches/{match_id}", status_code=200)
async def delete_match_endpoint(
    match_id: int,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Cancel a pending match request."""
    await cancel_match(db, match_id, caller.user_id)
    await db.commit()
    return {"success": True}
