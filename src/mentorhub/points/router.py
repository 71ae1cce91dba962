"""Points API endpoints: 5 routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from mentorhub.auth.dependencies import Caller, get_current_user, require_admin
from mentorhub.config import get_settings
from mentorhub.database import get_session
from mentorhub.errors import ForbiddenError
from mentorhub.points.ledger import (
    get_leaderboard,
    get_point_history,
    get_user_points,
    reconcile_balance,
    set_user_points,
)
from mentorhub.points.schemas import (
    LeaderboardEntry,
    LeaderboardResponse,
    PointHistoryEntry,
    PointHistoryResponse,
    ReconcileResponse,
    SetPointsRequest,
    SetPointsResponse,
    UserPointsResponse,
)

router = APIRouter(prefix="/api/v1", tags=["Points"])


@router.get("/users/{user_id}/points", response_model=UserPointsResponse)
async def user_points(user_id: int, db: AsyncSession = Depends(get_session)):
    """Get a user's balance and rank."""
    data = await get_user_points(db, user_id)
    await db.commit()  # persists a lazily created balance row
    return UserPointsResponse(**data)


@router.patch("/users/{user_id}/points", response_model=SetPointsResponse)
async def set_points(
    user_id: int,
    body: SetPointsRequest,
    admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Admin: set a user's balance. The change is logged as an adjustment."""
    balance = await set_user_points(db, user_id, body.points, admin.user_id)
    await db.commit()
    return SetPointsResponse(user_id=user_id, points=balance)


@router.get("/users/{user_id}/points/history", response_model=PointHistoryResponse)
async def point_history(
    user_id: int,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Get the point log for yourself (admins may read anyone's)."""
    if caller.user_id != user_id and not caller.is_admin:
        raise ForbiddenError("Cannot view another user's point history")
    entries = await get_point_history(db, user_id, limit=limit, offset=offset)
    return PointHistoryResponse(entries=[PointHistoryEntry.model_validate(e) for e in entries])


@router.post("/users/{user_id}/points/reconcile", response_model=ReconcileResponse)
async def reconcile_points(
    user_id: int,
    _admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Admin: recompute a balance from the point log."""
    result = await reconcile_balance(db, user_id)
    await db.commit()
    return ReconcileResponse(
        user_id=result.user_id,
        previous_balance=result.previous_balance,
        balance=result.balance,
        drift=result.drift,
    )


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    limit: int = Query(10, ge=1),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_session),
):
    """Get users ranked by points. ``limit`` is clamped to the configured maximum."""
    entries = await get_leaderboard(db, limit=limit, offset=offset)
    return LeaderboardResponse(
        entries=[LeaderboardEntry(**e) for e in entries],
        limit=min(limit, get_settings().leaderboard_max_limit),
        offset=offset,
    )
