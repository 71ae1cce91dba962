"""Challenge service tests: participation rules, capped rewards, review."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from factories import create_challenge_row, create_user
from mentorhub.challenges.service import (
    approve_submission,
    create_challenge,
    delete_challenge,
    get_challenge_detail,
    join_challenge,
    list_challenges,
    list_submissions,
    reject_submission,
    submit_challenge,
    update_challenge,
)
from mentorhub.db.models import ChallengeParticipant
from mentorhub.errors import ConflictError, NotFoundError, ValidationError
from mentorhub.points.ledger import get_balance


class TestJoinAndSubmit:
    @pytest.mark.asyncio
    async def test_join_awards_points(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        user = await create_user(db_session, "Ada")
        challenge = await create_challenge_row(db_session, admin)

        award = await join_challenge(db_session, user.id, challenge.id)
        assert (award.points_awarded, award.capped, award.balance) == (5, False, 5)

    @pytest.mark.asyncio
    async def test_join_twice_conflicts(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        user = await create_user(db_session, "Ada")
        challenge = await create_challenge_row(db_session, admin)
        await join_challenge(db_session, user.id, challenge.id)
        with pytest.raises(ConflictError):
            await join_challenge(db_session, user.id, challenge.id)

    @pytest.mark.asyncio
    async def test_sixth_join_is_capped(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        user = await create_user(db_session, "Ada")
        challenges = [await create_challenge_row(db_session, admin) for _ in range(6)]

        awards = [await join_challenge(db_session, user.id, c.id) for c in challenges]
        assert [a.points_awarded for a in awards] == [5, 5, 5, 5, 5, 0]
        assert awards[-1].capped is True
        assert await get_balance(db_session, user.id) == 25

        joined = await db_session.execute(
            select(func.count()).select_from(ChallengeParticipant).where(ChallengeParticipant.user_id == user.id)
        )
        assert joined.scalar_one() == 6

    @pytest.mark.asyncio
    async def test_closed_challenge_rejects_join(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        user = await create_user(db_session, "Ada")
        challenge = await create_challenge_row(db_session, admin, status="completed")
        with pytest.raises(ValidationError, match="not active"):
            await join_challenge(db_session, user.id, challenge.id)

    @pytest.mark.asyncio
    async def test_past_deadline_rejects_join(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        user = await create_user(db_session, "Ada")
        challenge = await create_challenge_row(
            db_session, admin, deadline=datetime.now(timezone.utc) - timedelta(hours=1)
        )
        with pytest.raises(ValidationError, match="deadline"):
            await join_challenge(db_session, user.id, challenge.id)

    @pytest.mark.asyncio
    async def test_submit_requires_join(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        user = await create_user(db_session, "Ada")
        challenge = await create_challenge_row(db_session, admin)
        with pytest.raises(ValidationError, match="join"):
            await submit_challenge(db_session, user.id, challenge.id, "Done!")

    @pytest.mark.asyncio
    async def test_fourth_submission_is_capped(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        user = await create_user(db_session, "Ada")
        challenges = [await create_challenge_row(db_session, admin) for _ in range(4)]

        awards = []
        for c in challenges:
            await join_challenge(db_session, user.id, c.id)
            _, award = await submit_challenge(db_session, user.id, c.id, "Done", "https://example.com")
            awards.append(award)

        assert [a.points_awarded for a in awards] == [10, 10, 10, 0]
        assert await get_balance(db_session, user.id) == 4 * 5 + 30

    @pytest.mark.asyncio
    async def test_duplicate_submission_conflicts(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        user = await create_user(db_session, "Ada")
        challenge = await create_challenge_row(db_session, admin)
        await join_challenge(db_session, user.id, challenge.id)
        await submit_challenge(db_session, user.id, challenge.id, "Done")
        with pytest.raises(ConflictError):
            await submit_challenge(db_session, user.id, challenge.id, "Again")

    @pytest.mark.asyncio
    async def test_missing_challenge(self, db_session: AsyncSession):
        user = await create_user(db_session, "Ada")
        with pytest.raises(NotFoundError):
            await join_challenge(db_session, user.id, 404)


class TestReview:
    async def _submitted(self, db: AsyncSession, reward: int = 50):
        admin = await create_user(db, "Admin")
        user = await create_user(db, "Ada")
        challenge = await create_challenge_row(db, admin, point_reward=reward)
        await join_challenge(db, user.id, challenge.id)
        submission, _ = await submit_challenge(db, user.id, challenge.id, "Done")
        return admin, user, challenge, submission

    @pytest.mark.asyncio
    async def test_approve_awards_reward(self, db_session: AsyncSession):
        admin, user, _, submission = await self._submitted(db_session, reward=75)

        reviewed, award = await approve_submission(db_session, submission.id, admin.id, "Great work")
        assert reviewed.status == "approved"
        assert reviewed.reviewed_by_user_id == admin.id
        assert reviewed.feedback == "Great work"
        assert award.points_awarded == 75
        assert await get_balance(db_session, user.id) == 5 + 10 + 75

    @pytest.mark.asyncio
    async def test_double_approval_rejected(self, db_session: AsyncSession):
        admin, user, _, submission = await self._submitted(db_session)
        await approve_submission(db_session, submission.id, admin.id)
        with pytest.raises(ValidationError, match="not pending"):
            await approve_submission(db_session, submission.id, admin.id)
        assert await get_balance(db_session, user.id) == 5 + 10 + 50

    @pytest.mark.asyncio
    async def test_reject_keeps_balance(self, db_session: AsyncSession):
        admin, user, _, submission = await self._submitted(db_session)
        reviewed = await reject_submission(db_session, submission.id, admin.id, "Missing link")
        assert reviewed.status == "rejected"
        assert await get_balance(db_session, user.id) == 15

        with pytest.raises(ValidationError):
            await approve_submission(db_session, submission.id, admin.id)

    @pytest.mark.asyncio
    async def test_missing_submission(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        with pytest.raises(NotFoundError):
            await reject_submission(db_session, 404, admin.id)

    @pytest.mark.asyncio
    async def test_list_submissions(self, db_session: AsyncSession):
        _, user, challenge, submission = await self._submitted(db_session)
        rows = await list_submissions(db_session, challenge.id)
        assert [r["id"] for r in rows] == [submission.id]
        assert rows[0]["user_name"] == "Ada"
        assert rows[0]["user_email"] == user.email


class TestChallengeAdmin:
    @pytest.mark.asyncio
    async def test_create_and_list(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        deadline = datetime.now(timezone.utc) + timedelta(days=3)
        challenge = await create_challenge(
            db_session, admin.id, "Write a blog post", "Share what you learned", "A link", 40, deadline
        )
        assert challenge.status == "active"

        listed = await list_challenges(db_session)
        assert listed[0]["id"] == challenge.id
        assert listed[0]["creator_name"] == "Admin"
        assert listed[0]["participant_count"] == 0
        assert await list_challenges(db_session, status="completed") == []

    @pytest.mark.asyncio
    async def test_create_validation(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        deadline = datetime.now(timezone.utc) + timedelta(days=3)
        with pytest.raises(ValidationError, match="point_reward"):
            await create_challenge(db_session, admin.id, "T", "D", "R", 0, deadline)
        with pytest.raises(ValidationError, match="title"):
            await create_challenge(db_session, admin.id, " ", "D", "R", 10, deadline)

    @pytest.mark.asyncio
    async def test_update_ignores_none(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        challenge = await create_challenge_row(db_session, admin)
        updated = await update_challenge(
            db_session, challenge.id, {"title": "New title", "description": None, "status": "completed"}
        )
        assert updated.title == "New title"
        assert updated.description == "Build and deploy something small"
        assert updated.status == "completed"

        with pytest.raises(ValidationError):
            await update_challenge(db_session, challenge.id, {"status": "archived"})

    @pytest.mark.asyncio
    async def test_detail_for_viewer(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        user = await create_user(db_session, "Ada")
        challenge = await create_challenge_row(db_session, admin)

        anonymous = await get_challenge_detail(db_session, challenge.id)
        assert "user_has_joined" not in anonymous

        await join_challenge(db_session, user.id, challenge.id)
        await submit_challenge(db_session, user.id, challenge.id, "Done")
        detail = await get_challenge_detail(db_session, challenge.id, viewer_id=user.id)
        assert detail["user_has_joined"] is True
        assert detail["user_submission"]["status"] == "pending"
        assert detail["participant_count"] == 1

    @pytest.mark.asyncio
    async def test_delete_removes_participation(self, db_session: AsyncSession):
        admin = await create_user(db_session, "Admin")
        user = await create_user(db_session, "Ada")
        challenge = await create_challenge_row(db_session, admin)
        await join_challenge(db_session, user.id, challenge.id)
        challenge_id = challenge.id

        await delete_challenge(db_session, challenge_id)
        with pytest.raises(NotFoundError):
            await get_challenge_detail(db_session, challenge_id)
        # Points already earned stay on the ledger
        assert await get_balance(db_session, user.id) == 5
