"""Points ledger unit tests: diminishing returns and balance/log consistency."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from factories import create_user
from mentorhub.db.models import PointActionLog, UserPoints
from mentorhub.errors import NotFoundError, ValidationError
from mentorhub.points import ledger
from mentorhub.points.ledger import (
    award_points,
    award_points_for_action,
    get_balance,
    get_leaderboard,
    get_point_history,
    get_user_points,
    reconcile_balance,
    set_user_points,
)
from mentorhub.points.policy import CHALLENGE_JOINED, CHALLENGE_SUBMITTED, get_policy

DAY = 24 * 60 * 60


async def _log_sum(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(PointActionLog.points_awarded), 0)).where(PointActionLog.user_id == user_id)
    )
    return int(result.scalar_one())


async def _join(db: AsyncSession, user_id: int, ref: int):
    return await award_points_for_action(db, user_id, CHALLENGE_JOINED, str(ref), 5, DAY, 5)


class TestAwardPointsForAction:
    """Sliding-window cap on free actions."""

    @pytest.mark.asyncio
    async def test_first_action_awards_base_points(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        result = await _join(db_session, user.id, 1)
        assert result.points_awarded == 5
        assert result.capped is False
        assert result.balance == 5

    @pytest.mark.asyncio
    async def test_sixth_join_in_window_awards_zero(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        for ref in range(5):
            await _join(db_session, user.id, ref)

        result = await _join(db_session, user.id, 99)
        assert result.points_awarded == 0
        assert result.capped is True
        assert result.balance == 25
        assert await get_balance(db_session, user.id) == 25

        # The capped action is still logged for audit
        count = await db_session.execute(
            select(func.count()).select_from(PointActionLog).where(PointActionLog.user_id == user.id)
        )
        assert count.scalar_one() == 6

    @pytest.mark.asyncio
    async def test_entries_outside_window_do_not_count(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        old = datetime.now(timezone.utc) - timedelta(days=2)
        for ref in range(5):
            db_session.add(PointActionLog(
                user_id=user.id,
                action_type=CHALLENGE_JOINED,
                reference_id=str(ref),
                points_awarded=5,
                created_at=old,
            ))
        await db_session.flush()

        result = await _join(db_session, user.id, 42)
        assert result.points_awarded == 5
        assert result.capped is False

    @pytest.mark.asyncio
    async def test_cap_is_per_action_type(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        for ref in range(5):
            await _join(db_session, user.id, ref)

        result = await award_points_for_action(db_session, user.id, CHALLENGE_SUBMITTED, "1", 10, DAY, 3)
        assert result.points_awarded == 10

    @pytest.mark.asyncio
    async def test_cap_is_per_user(self, db_session: AsyncSession):
        ada = await create_user(db_session, "Ada")
        bob = await create_user(db_session, "Bob")
        for ref in range(5):
            await _join(db_session, ada.id, ref)

        result = await _join(db_session, bob.id, 1)
        assert result.points_awarded == 5

    @pytest.mark.asyncio
    async def test_non_positive_base_logs_zero(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        result = await award_points_for_action(db_session, user.id, CHALLENGE_JOINED, "1", -10, DAY, 5)
        assert result.points_awarded == 0
        assert await get_balance(db_session, user.id) == 0

    @pytest.mark.asyncio
    async def test_balance_equals_log_sum(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        for ref in range(8):
            await _join(db_session, user.id, ref)
        for ref in range(5):
            await award_points_for_action(db_session, user.id, CHALLENGE_SUBMITTED, str(ref), 10, DAY, 3)
        await award_points(db_session, user.id, "challenge_approved", "7", 50)

        assert await get_balance(db_session, user.id) == await _log_sum(db_session, user.id) == 25 + 30 + 50


class TestPolicy:
    def test_join_policy(self):
        policy = get_policy(CHALLENGE_JOINED)
        assert (policy.base_points, policy.max_free_per_window, policy.window_seconds) == (5, 5, DAY)

    def test_submit_policy(self):
        policy = get_policy(CHALLENGE_SUBMITTED)
        assert (policy.base_points, policy.max_free_per_window) == (10, 3)

    def test_approval_has_no_cap_policy(self):
        with pytest.raises(KeyError):
            get_policy("challenge_approved")


class TestAwardPoints:
    @pytest.mark.asyncio
    async def test_uncapped(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        for ref in range(10):
            result = await award_points(db_session, user.id, "challenge_approved", str(ref), 100)
            assert result.capped is False
        assert await get_balance(db_session, user.id) == 1000

    @pytest.mark.asyncio
    async def test_rejects_non_positive(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        with pytest.raises(ValidationError):
            await award_points(db_session, user.id, "challenge_approved", "1", 0)


class TestBalanceOperations:
    @pytest.mark.asyncio
    async def test_balance_created_lazily(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        assert await get_balance(db_session, user.id) == 0
        rows = await db_session.execute(select(func.count()).select_from(UserPoints))
        assert rows.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_get_user_points_unknown_user(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await get_user_points(db_session, 12345)

    @pytest.mark.asyncio
    async def test_rank_is_competition_rank(self, db_session: AsyncSession):
        users = [await create_user(db_session, name) for name in ("Ada", "Bob", "Cy", "Di")]
        for user, points in zip(users, (50, 80, 50, 10)):
            await award_points(db_session, user.id, "challenge_approved", "1", points)

        ranks = [(await get_user_points(db_session, u.id))["rank"] for u in users]
        assert ranks == [2, 1, 2, 4]

    @pytest.mark.asyncio
    async def test_leaderboard_order_and_ties(self, db_session: AsyncSession):
        users = [await create_user(db_session, name) for name in ("Ada", "Bob", "Cy")]
        for user, points in zip(users, (30, 90, 30)):
            await award_points(db_session, user.id, "challenge_approved", "1", points)

        board = await get_leaderboard(db_session, limit=10)
        assert [e["name"] for e in board] == ["Bob", "Ada", "Cy"]
        assert [e["rank"] for e in board] == [1, 2, 2]

        page = await get_leaderboard(db_session, limit=1, offset=1)
        assert page[0]["name"] == "Ada"
        assert page[0]["rank"] == 2

    @pytest.mark.asyncio
    async def test_set_user_points_logs_adjustment(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        user = await create_user(db_session, "Ada")
        await award_points(db_session, user.id, "challenge_approved", "1", 40)

        assert await set_user_points(db_session, user.id, 15, admin.id) == 15
        assert await _log_sum(db_session, user.id) == 15

        assert await set_user_points(db_session, user.id, 100, admin.id) == 100
        assert await _log_sum(db_session, user.id) == 100

        history = await get_point_history(db_session, user.id)
        assert [e.action_type for e in history][:2] == ["admin_adjustment", "admin_adjustment"]

    @pytest.mark.asyncio
    async def test_set_user_points_rejects_negative(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        user = await create_user(db_session, "Ada")
        with pytest.raises(ValidationError):
            await set_user_points(db_session, user.id, -1, admin.id)

    @pytest.mark.asyncio
    async def test_reconcile_repairs_drift(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        await _join(db_session, user.id, 1)
        await db_session.execute(
            update(UserPoints).where(UserPoints.user_id == user.id).values(points=999)
        )

        result = await reconcile_balance(db_session, user.id)
        assert result.previous_balance == 999
        assert result.balance == 5
        assert result.drift == 994
        assert await get_balance(db_session, user.id) == 5

    @pytest.mark.asyncio
    async def test_reconcile_no_drift(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        await _join(db_session, user.id, 1)
        result = await reconcile_balance(db_session, user.id)
        assert result.drift == 0


class TestAwardSerialization:
    """Capped awards for one user serialize on the balance row."""

    def test_lock_is_select_for_update_on_postgres(self):
        sql = str(ledger.balance_lock_statement(7).compile(dialect=postgresql.dialect()))
        assert "FROM user_points" in sql
        assert sql.rstrip().endswith("FOR UPDATE")

    def test_lock_renders_plain_select_on_sqlite(self):
        sql = str(ledger.balance_lock_statement(7).compile(dialect=sqlite.dialect()))
        assert "FOR UPDATE" not in sql

    @pytest.mark.asyncio
    async def test_balance_locked_before_window_count(self, db_session: AsyncSession, monkeypatch):
        user = await create_user(db_session, "Ada")
        calls: list[str] = []
        real_lock = ledger.lock_balance_row
        real_count = ledger.count_recent_actions

        async def lock(db, user_id):
            calls.append("lock")
            return await real_lock(db, user_id)

        async def count(db, *args):
            calls.append("count")
            return await real_count(db, *args)

        monkeypatch.setattr(ledger, "lock_balance_row", lock)
        monkeypatch.setattr(ledger, "count_recent_actions", count)

        await _join(db_session, user.id, 1)
        assert calls == ["lock", "count"]

    @pytest.mark.asyncio
    async def test_lock_creates_balance_row(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        assert await ledger.lock_balance_row(db_session, user.id) == 0
        result = await db_session.execute(select(UserPoints.points).where(UserPoints.user_id == user.id))
        assert result.scalar_one() == 0

    @pytest.mark.asyncio
    async def test_fifth_award_after_committed_four_is_last_paid(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        user_id = user.id
        for ref in range(4):
            await _join(db_session, user_id, ref)
        await db_session.commit()

        fifth = await _join(db_session, user_id, 4)
        sixth = await _join(db_session, user_id, 5)
        assert (fifth.points_awarded, sixth.points_awarded) == (5, 0)
        assert sixth.balance == await _log_sum(db_session, user_id) == 25
