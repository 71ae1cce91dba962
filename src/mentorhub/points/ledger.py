"""Points ledger with per-action diminishing returns.

Every award writes one ``point_actions_log`` row and moves the denormalized
``user_points.points`` balance by the same amount, both inside the caller's
transaction. The router commits once, so the balance always equals the sum
of the user's log entries; ``reconcile_balance`` repairs any drift from
writes made outside this module.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import Select, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from mentorhub.config import get_settings
from mentorhub.db.models import PointActionLog, User, UserPoints
from mentorhub.errors import NotFoundError, ValidationError
from mentorhub.points.policy import ADMIN_ADJUSTMENT
from mentorhub.time_utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AwardResult:
    points_awarded: int
    capped: bool
    balance: int


@dataclass(frozen=True)
class ReconcileResult:
    user_id: int
    previous_balance: int
    balance: int

    @property
    def drift(self) -> int:
        return self.previous_balance - self.balance


async def _ensure_balance_row(db: AsyncSession, user_id: int) -> None:
    """Create the zero balance row for a user if it does not exist yet."""
    dialect = db.get_bind().dialect.name
    insert = sqlite_insert if dialect == "sqlite" else pg_insert
    stmt = (
        insert(UserPoints)
        .values(user_id=user_id, points=0, updated_at=utcnow())
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    await db.execute(stmt)


def balance_lock_statement(user_id: int) -> Select[tuple[int]]:
    """Row lock on the user's balance. SQLite renders no FOR UPDATE."""
    return select(UserPoints.points).where(UserPoints.user_id == user_id).with_for_update()


async def lock_balance_row(db: AsyncSession, user_id: int) -> int:
    """Create the balance row if needed and hold its lock until the transaction ends.

    Capped awards for one user take this lock before counting the window, so
    a concurrent award cannot count the same log state and both get paid.
    """
    await _ensure_balance_row(db, user_id)
    result = await db.execute(balance_lock_statement(user_id))
    return result.scalar_one()


async def get_balance(db: AsyncSession, user_id: int) -> int:
    """Current balance, creating a zero balance row on first access."""
    await _ensure_balance_row(db, user_id)
    result = await db.execute(select(UserPoints.points).where(UserPoints.user_id == user_id))
    return result.scalar_one()


async def _record(
    db: AsyncSession,
    user_id: int,
    action_type: str,
    reference_id: str,
    points: int,
) -> int:
    """Append a log entry and move the balance by ``points``. Returns the new balance."""
    now = utcnow()
    db.add(PointActionLog(
        user_id=user_id,
        action_type=action_type,
        reference_id=str(reference_id),
        points_awarded=points,
        created_at=now,
    ))
    await _ensure_balance_row(db, user_id)
    if points == 0:
        await db.flush()
        return await get_balance(db, user_id)

    result = await db.execute(
        update(UserPoints)
        .where(UserPoints.user_id == user_id)
        .values(points=UserPoints.points + points, updated_at=now)
        .returning(UserPoints.points)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return result.scalar_one()


async def count_recent_actions(
    db: AsyncSession,
    user_id: int,
    action_type: str,
    window_seconds: int,
) -> int:
    """Number of log entries of ``action_type`` for the user inside the window."""
    since = utcnow() - timedelta(seconds=window_seconds)
    result = await db.execute(
        select(func.count())
        .select_from(PointActionLog)
        .where(
            PointActionLog.user_id == user_id,
            PointActionLog.action_type == action_type,
            PointActionLog.created_at >= since,
        )
    )
    return result.scalar_one()


async def award_points_for_action(
    db: AsyncSession,
    user_id: int,
    action_type: str,
    reference_id: str,
    base_points: int,
    window_seconds: int,
    max_free_actions_per_window: int,
) -> AwardResult:
    """Award points for a capped action.

    Once the user has ``max_free_actions_per_window`` entries of this type in
    the window, the action is still logged but earns 0 points. Never rejects.
    """
    await lock_balance_row(db, user_id)
    recent = await count_recent_actions(db, user_id, action_type, window_seconds)
    capped = recent >= max_free_actions_per_window
    awarded = 0 if capped else max(base_points, 0)

    balance = await _record(db, user_id, action_type, reference_id, awarded)
    if capped:
        logger.info(
            "Points capped for user %d: %s (%d in window, limit %d)",
            user_id, action_type, recent, max_free_actions_per_window,
        )
    else:
        logger.info("Awarded %d points to user %d for %s", awarded, user_id, action_type)
    return AwardResult(points_awarded=awarded, capped=capped, balance=balance)


async def award_points(
    db: AsyncSession,
    user_id: int,
    action_type: str,
    reference_id: str,
    points: int,
) -> AwardResult:
    """Uncapped award for human-gated rewards."""
    if points <= 0:
        raise ValidationError("points must be positive")
    balance = await _record(db, user_id, action_type, reference_id, points)
    logger.info("Awarded %d points to user %d for %s", points, user_id, action_type)
    return AwardResult(points_awarded=points, capped=False, balance=balance)


async def _require_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


async def get_user_points(db: AsyncSession, user_id: int) -> dict:
    """Balance and competition rank (1 + number of users strictly ahead)."""
    user = await _require_user(db, user_id)
    points = await get_balance(db, user_id)
    ahead = await db.execute(
        select(func.count()).select_from(UserPoints).where(UserPoints.points > points)
    )
    return {
        "user_id": user_id,
        "name": user.name,
        "points": points,
        "rank": ahead.scalar_one() + 1,
    }


async def get_leaderboard(db: AsyncSession, limit: int = 10, offset: int = 0) -> list[dict]:
    """Users ordered by balance, with competition ranking (ties share a rank)."""
    limit = max(1, min(limit, get_settings().leaderboard_max_limit))
    offset = max(0, offset)

    ranked = (
        select(
            UserPoints.user_id,
            UserPoints.points,
            func.rank().over(order_by=UserPoints.points.desc()).label("rank"),
        )
        .subquery()
    )
    result = await db.execute(
        select(ranked.c.user_id, User.name, ranked.c.points, ranked.c.rank)
        .join(User, User.id == ranked.c.user_id)
        .order_by(ranked.c.rank, ranked.c.user_id)
        .limit(limit)
        .offset(offset)
    )
    return [
        {"user_id": row.user_id, "name": row.name, "points": row.points, "rank": row.rank}
        for row in result.all()
    ]


async def set_user_points(db: AsyncSession, user_id: int, points: int, admin_id: int) -> int:
    """Admin override of a balance.

    The difference is logged as an ``admin_adjustment`` entry so the balance
    keeps matching the log.
    """
    if points < 0:
        raise ValidationError("points must be non-negative")
    await _require_user(db, user_id)

    current = await get_balance(db, user_id)
    delta = points - current
    if delta == 0:
        return current

    balance = await _record(db, user_id, ADMIN_ADJUSTMENT, f"admin:{admin_id}", delta)
    logger.info("Admin %d set points for user %d: %d -> %d", admin_id, user_id, current, balance)
    return balance


async def get_point_history(
    db: AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
) -> list[PointActionLog]:
    """Log entries for a user, newest first."""
    result = await db.execute(
        select(PointActionLog)
        .where(PointActionLog.user_id == user_id)
        .order_by(PointActionLog.created_at.desc(), PointActionLog.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def reconcile_balance(db: AsyncSession, user_id: int) -> ReconcileResult:
    """Recompute the balance from the log and overwrite the stored value."""
    await _require_user(db, user_id)
    previous = await get_balance(db, user_id)

    total_result = await db.execute(
        select(func.coalesce(func.sum(PointActionLog.points_awarded), 0))
        .where(PointActionLog.user_id == user_id)
    )
    total = int(total_result.scalar_one())

    if total != previous:
        await db.execute(
            update(UserPoints)
            .where(UserPoints.user_id == user_id)
            .values(points=total, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        logger.warning("Reconciled points for user %d: %d -> %d", user_id, previous, total)

    return ReconcileResult(user_id=user_id, previous_balance=previous, balance=total)

