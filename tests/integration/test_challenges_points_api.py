"""Integration tests for challenges, point awards and the leaderboard."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from factories import auth_headers, create_challenge_row, create_user

pytestmark = pytest.mark.asyncio


async def _seed(db: AsyncSession, challenges: int = 1, point_reward: int = 50):
    admin = await create_user(db, "Admin")
    member = await create_user(db, "Ada")
    rows = [await create_challenge_row(db, admin, point_reward=point_reward) for _ in range(challenges)]
    await db.commit()
    return admin.id, member.id, [c.id for c in rows]


def _admin(user_id: int) -> dict[str, str]:
    return auth_headers(user_id, role="admin")


class TestChallengeParticipation:
    async def test_join_submit_approve(self, client: AsyncClient, db_session: AsyncSession):
        admin_id, member_id, (challenge_id,) = await _seed(db_session, point_reward=75)
        headers = auth_headers(member_id)

        resp = await client.post(f"/api/v1/challenges/{challenge_id}/join", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "points": {"points_awarded": 5, "capped": False, "balance": 5}}

        resp = await client.post(
            f"/api/v1/challenges/{challenge_id}/submit",
            json={"submission_text": "Deployed it", "submission_url": "https://ada.dev"},
            headers=headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["submission"]["status"] == "pending"
        assert body["points"]["points_awarded"] == 10
        submission_id = body["submission"]["id"]

        resp = await client.patch(
            f"/api/v1/submissions/{submission_id}/approve",
            json={"feedback": "Nice"},
            headers=_admin(admin_id),
        )
        assert resp.status_code == 200
        approved = resp.json()
        assert approved["submission"]["status"] == "approved"
        assert approved["submission"]["feedback"] == "Nice"
        assert approved["points"] == {"points_awarded": 75, "capped": False, "balance": 90}

        resp = await client.get(f"/api/v1/users/{member_id}/points")
        assert resp.json()["points"] == 90

    async def test_sixth_join_awards_nothing(self, client: AsyncClient, db_session: AsyncSession):
        _, member_id, challenge_ids = await _seed(db_session, challenges=6)
        headers = auth_headers(member_id)

        awarded = []
        for challenge_id in challenge_ids:
            resp = await client.post(f"/api/v1/challenges/{challenge_id}/join", headers=headers)
            assert resp.status_code == 200
            awarded.append(resp.json()["points"]["points_awarded"])

        assert awarded == [5, 5, 5, 5, 5, 0]
        resp = await client.get(f"/api/v1/users/{member_id}/points")
        assert resp.json()["points"] == 25

    async def test_join_twice(self, client: AsyncClient, db_session: AsyncSession):
        _, member_id, (challenge_id,) = await _seed(db_session)
        url = f"/api/v1/challenges/{challenge_id}/join"
        assert (await client.post(url, headers=auth_headers(member_id))).status_code == 200
        assert (await client.post(url, headers=auth_headers(member_id))).status_code == 409

    async def test_submit_without_join(self, client: AsyncClient, db_session: AsyncSession):
        _, member_id, (challenge_id,) = await _seed(db_session)
        resp = await client.post(
            f"/api/v1/challenges/{challenge_id}/submit",
            json={"submission_text": "Done"},
            headers=auth_headers(member_id),
        )
        assert resp.status_code == 400

    async def test_detail_shows_participation(self, client: AsyncClient, db_session: AsyncSession):
        _, member_id, (challenge_id,) = await _seed(db_session)
        await client.post(f"/api/v1/challenges/{challenge_id}/join", headers=auth_headers(member_id))

        anonymous = (await client.get(f"/api/v1/challenges/{challenge_id}")).json()["challenge"]
        assert anonymous["participant_count"] == 1
        assert anonymous["user_has_joined"] is None

        mine = (await client.get(f"/api/v1/challenges/{challenge_id}", headers=auth_headers(member_id))).json()
        assert mine["challenge"]["user_has_joined"] is True
        assert mine["challenge"]["user_submission"] is None

    async def test_join_requires_auth(self, client: AsyncClient, db_session: AsyncSession):
        _, _, (challenge_id,) = await _seed(db_session)
        resp = await client.post(f"/api/v1/challenges/{challenge_id}/join")
        assert resp.status_code == 401


class TestChallengeAdmin:
    async def test_member_cannot_create(self, client: AsyncClient, db_session: AsyncSession):
        _, member_id, _ = await _seed(db_session, challenges=0)
        deadline = (datetime.now(timezone.utc) + timedelta(days=5)).isoformat()
        resp = await client.post(
            "/api/v1/challenges",
            json={
                "title": "Mock interview",
                "description": "Do one",
                "requirements": "Notes",
                "point_reward": 30,
                "deadline": deadline,
            },
            headers=auth_headers(member_id),
        )
        assert resp.status_code == 403

    async def test_admin_crud(self, client: AsyncClient, db_session: AsyncSession):
        admin_id, _, _ = await _seed(db_session, challenges=0)
        deadline = (datetime.now(timezone.utc) + timedelta(days=5)).isoformat()

        resp = await client.post(
            "/api/v1/challenges",
            json={
                "title": "Mock interview",
                "description": "Do one",
                "requirements": "Notes",
                "point_reward": 30,
                "deadline": deadline,
            },
            headers=_admin(admin_id),
        )
        assert resp.status_code == 201
        challenge = resp.json()["challenge"]
        assert challenge["status"] == "active"
        assert challenge["creator_name"] == "Admin"

        resp = await client.put(
            f"/api/v1/challenges/{challenge['id']}",
            json={"point_reward": 60},
            headers=_admin(admin_id),
        )
        assert resp.status_code == 200
        assert resp.json()["challenge"]["point_reward"] == 60
        assert resp.json()["challenge"]["title"] == "Mock interview"

        listed = (await client.get("/api/v1/challenges?status=active")).json()["challenges"]
        assert [c["id"] for c in listed] == [challenge["id"]]

        resp = await client.delete(f"/api/v1/challenges/{challenge['id']}", headers=_admin(admin_id))
        assert resp.json() == {"success": True}
        assert (await client.get(f"/api/v1/challenges/{challenge['id']}")).status_code == 404

    async def test_invalid_reward(self, client: AsyncClient, db_session: AsyncSession):
        admin_id, _, _ = await _seed(db_session, challenges=0)
        resp = await client.post(
            "/api/v1/challenges",
            json={
                "title": "Free points",
                "description": "x",
                "requirements": "x",
                "point_reward": -5,
                "deadline": (datetime.now(timezone.utc) + timedelta(days=1)).isoformat(),
            },
            headers=_admin(admin_id),
        )
        assert resp.status_code == 400

    async def test_reject_and_list_submissions(self, client: AsyncClient, db_session: AsyncSession):
        admin_id, member_id, (challenge_id,) = await _seed(db_session)
        await client.post(f"/api/v1/challenges/{challenge_id}/join", headers=auth_headers(member_id))
        submitted = await client.post(
            f"/api/v1/challenges/{challenge_id}/submit",
            json={"submission_text": "Done"},
            headers=auth_headers(member_id),
        )
        submission_id = submitted.json()["submission"]["id"]

        resp = await client.get(f"/api/v1/challenges/{challenge_id}/submissions", headers=_admin(admin_id))
        assert resp.status_code == 200
        assert resp.json()["submissions"][0]["user_name"] == "Ada"

        resp = await client.patch(f"/api/v1/submissions/{submission_id}/reject", headers=_admin(admin_id))
        assert resp.status_code == 200
        assert resp.json()["submission"]["status"] == "rejected"
        assert resp.json()["points"] is None

        resp = await client.patch(f"/api/v1/submissions/{submission_id}/approve", headers=_admin(admin_id))
        assert resp.status_code == 400

        points = (await client.get(f"/api/v1/users/{member_id}/points")).json()
        assert points["points"] == 15


class TestPointsAPI:
    async def test_unknown_user(self, client: AsyncClient, db_session: AsyncSession):
        resp = await client.get("/api/v1/users/999/points")
        assert resp.status_code == 404

    async def test_new_user_has_zero(self, client: AsyncClient, db_session: AsyncSession):
        _, member_id, _ = await _seed(db_session, challenges=0)
        resp = await client.get(f"/api/v1/users/{member_id}/points")
        assert resp.status_code == 200
        assert resp.json() == {"user_id": member_id, "name": "Ada", "points": 0, "rank": 1}

    async def test_admin_sets_points(self, client: AsyncClient, db_session: AsyncSession):
        admin_id, member_id, _ = await _seed(db_session, challenges=0)

        resp = await client.patch(
            f"/api/v1/users/{member_id}/points", json={"points": 120}, headers=_admin(admin_id)
        )
        assert resp.status_code == 200
        assert resp.json() == {"user_id": member_id, "points": 120}

        history = await client.get(f"/api/v1/users/{member_id}/points/history", headers=auth_headers(member_id))
        entries = history.json()["entries"]
        assert entries[0]["action_type"] == "admin_adjustment"
        assert entries[0]["points_awarded"] == 120
        assert entries[0]["reference_id"] == f"admin:{admin_id}"

    async def test_member_cannot_set_points(self, client: AsyncClient, db_session: AsyncSession):
        _, member_id, _ = await _seed(db_session, challenges=0)
        resp = await client.patch(
            f"/api/v1/users/{member_id}/points", json={"points": 1000000}, headers=auth_headers(member_id)
        )
        assert resp.status_code == 403

    async def test_negative_points_rejected(self, client: AsyncClient, db_session: AsyncSession):
        admin_id, member_id, _ = await _seed(db_session, challenges=0)
        resp = await client.patch(
            f"/api/v1/users/{member_id}/points", json={"points": -1}, headers=_admin(admin_id)
        )
        assert resp.status_code == 400

    async def test_history_is_private(self, client: AsyncClient, db_session: AsyncSession):
        admin_id, member_id, _ = await _seed(db_session, challenges=0)
        resp = await client.get(f"/api/v1/users/{admin_id}/points/history", headers=auth_headers(member_id))
        assert resp.status_code == 403

        resp = await client.get(f"/api/v1/users/{member_id}/points/history", headers=_admin(admin_id))
        assert resp.status_code == 200

    async def test_reconcile(self, client: AsyncClient, db_session: AsyncSession):
        admin_id, member_id, (challenge_id,) = await _seed(db_session)
        await client.post(f"/api/v1/challenges/{challenge_id}/join", headers=auth_headers(member_id))

        resp = await client.post(f"/api/v1/users/{member_id}/points/reconcile", headers=_admin(admin_id))
        assert resp.status_code == 200
        assert resp.json() == {"user_id": member_id, "previous_balance": 5, "balance": 5, "drift": 0}

    async def test_leaderboard(self, client: AsyncClient, db_session: AsyncSession):
        admin_id, member_id, _ = await _seed(db_session, challenges=0)
        other = await create_user(db_session, "Bob")
        await db_session.commit()

        for user_id, points in ((member_id, 40), (other.id, 90), (admin_id, 40)):
            await client.patch(f"/api/v1/users/{user_id}/points", json={"points": points}, headers=_admin(admin_id))

        resp = await client.get("/api/v1/leaderboard?limit=500")
        assert resp.status_code == 200
        data = resp.json()
        assert data["limit"] == 100
        assert [(e["name"], e["rank"]) for e in data["entries"]] == [("Bob", 1), ("Admin", 2), ("Ada", 2)]
