"""Thread hot score.

    engagement = (upvotes - downvotes) + reply_weight * replies
    weight     = engagement + 1          if engagement >= 0
                 1 / (1 - engagement)    otherwise
    hot        = weight / (age_hours + 2) ** gravity

The weight is positive and strictly increasing in engagement, so the score is
always positive, rises with every net upvote or reply (including on threads
that are net negative), and strictly decreases with age.
"""

from __future__ import annotations

from datetime import datetime

from mentorhub.config import get_settings
from mentorhub.time_utils import as_utc, utcnow


def engagement_weight(engagement: float) -> float:
    if engagement >= 0:
        return engagement + 1
    return 1 / (1 - engagement)


def hot_score(
    upvotes: int,
    downvotes: int,
    replies: int,
    age_hours: float,
    *,
    gravity: float | None = None,
    reply_weight: float | None = None,
) -> float:
    settings = get_settings()
    gravity = settings.hot_score_gravity if gravity is None else gravity
    reply_weight = settings.hot_score_reply_weight if reply_weight is None else reply_weight

    engagement = (upvotes - downvotes) + reply_weight * replies
    age_hours = max(0.0, age_hours)
    return engagement_weight(engagement) / (age_hours + 2) ** gravity


def age_in_hours(created_at: datetime, now: datetime | None = None) -> float:
    now = now or utcnow()
    return (now - as_utc(created_at)).total_seconds() / 3600
