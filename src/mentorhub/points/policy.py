"""Point award policies per action type.

Capped actions earn their base points only while the user has fewer than
``max_free_per_window`` log entries of that type inside the sliding window;
past the cap the action is still logged, with 0 points.

Human-gated rewards (submission approval, admin adjustments) are uncapped.
"""

from __future__ import annotations

from dataclasses import dataclass

from mentorhub.config import Settings, get_settings

CHALLENGE_JOINED = "challenge_joined"
CHALLENGE_SUBMITTED = "challenge_submitted"
CHALLENGE_APPROVED = "challenge_approved"
ADMIN_ADJUSTMENT = "admin_adjustment"


@dataclass(frozen=True)
class ActionPolicy:
    action_type: str
    base_points: int
    max_free_per_window: int
    window_seconds: int


def get_policy(action_type: str, settings: Settings | None = None) -> ActionPolicy:
    """Return the capped-award policy for ``action_type``.

    Raises KeyError for uncapped or unknown action types.
    """
    settings = settings or get_settings()
    policies = {
        CHALLENGE_JOINED: ActionPolicy(
            action_type=CHALLENGE_JOINED,
            base_points=settings.points_challenge_join,
            max_free_per_window=settings.points_challenge_join_free_per_window,
            window_seconds=settings.points_window_seconds,
        ),
        CHALLENGE_SUBMITTED: ActionPolicy(
            action_type=CHALLENGE_SUBMITTED,
            base_points=settings.points_challenge_submit,
            max_free_per_window=settings.points_challenge_submit_free_per_window,
            window_seconds=settings.points_window_seconds,
        ),
    }
    return policies[action_type]
