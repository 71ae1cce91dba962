"""Unit tests for the thread hot score."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from mentorhub.forum.hot_score import age_in_hours, engagement_weight, hot_score


class TestHotScore:
    def test_fresh_thread(self):
        """No engagement at age 0: 1 / 2**1.8."""
        assert hot_score(0, 0, 0, 0.0) == pytest.approx(1 / 2**1.8)

    def test_more_votes_scores_higher(self):
        assert hot_score(10, 0, 0, 5.0) > hot_score(5, 0, 0, 5.0)

    def test_more_replies_scores_higher(self):
        assert hot_score(3, 1, 6, 5.0) > hot_score(3, 1, 2, 5.0)

    def test_decays_with_age(self):
        scores = [hot_score(10, 2, 3, h) for h in (0, 1, 12, 48, 24 * 30)]
        assert scores == sorted(scores, reverse=True)
        assert len(set(scores)) == len(scores)

    def test_never_negative(self):
        assert hot_score(0, 500, 0, 0.0) > 0
        assert hot_score(0, 500, 0, 1000.0) >= 0

    def test_net_negative_thread_still_rises_with_engagement(self):
        buried = hot_score(0, 50, 0, 3.0)
        assert 0 < buried < hot_score(0, 0, 0, 3.0)
        assert hot_score(1, 50, 0, 3.0) > buried
        assert hot_score(0, 50, 1, 3.0) > buried
        assert hot_score(0, 51, 0, 3.0) < buried

    @pytest.mark.parametrize(
        "up,down,replies", [(0, 0, 0), (1, 0, 0), (5, 2, 1), (20, 3, 10), (0, 9, 0), (2, 30, 4)]
    )
    def test_strictly_monotone_in_net_votes_and_replies(self, up, down, replies):
        base = hot_score(up, down, replies, 7.0)
        assert hot_score(up + 1, down, replies, 7.0) > base
        assert hot_score(up, down, replies + 1, 7.0) > base
        assert hot_score(up, down + 1, replies, 7.0) < base

    def test_engagement_weight_continuous_at_zero(self):
        assert engagement_weight(0) == 1
        assert engagement_weight(-1e-9) == pytest.approx(1)
        assert engagement_weight(-3) == pytest.approx(0.25)

    def test_custom_gravity(self):
        assert hot_score(4, 0, 0, 10.0, gravity=1.0) == pytest.approx(5 / 12)

    def test_negative_age_clamped(self):
        assert hot_score(1, 0, 0, -3.0) == hot_score(1, 0, 0, 0.0)


class TestAgeInHours:
    def test_aware(self):
        now = datetime(2026, 1, 1, 12, tzinfo=timezone.utc)
        assert age_in_hours(now - timedelta(hours=6), now) == pytest.approx(6.0)

    def test_naive_is_treated_as_utc(self):
        now = datetime(2026, 1, 1, 12, tzinfo=timezone.utc)
        assert age_in_hours(datetime(2026, 1, 1, 10), now) == pytest.approx(2.0)
