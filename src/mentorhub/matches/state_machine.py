"""Match lifecycle state machine.

pending --accept--> active --complete--> completed
pending --reject--> rejected
pending --cancel--> (row deleted)

rejected and completed are terminal; nothing returns to pending. Every entry
point (respond, complete, cancel) resolves its target through ``next_status``
so the rules cannot drift apart between handlers.
"""

from __future__ import annotations

from enum import Enum

from mentorhub.errors import ValidationError


class MatchStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"
    COMPLETED = "completed"


class MatchAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    COMPLETE = "complete"
    CANCEL = "cancel"


DELETED = "deleted"

VALID_TRANSITIONS: dict[str, dict[str, str]] = {
    MatchStatus.PENDING: {
        MatchAction.ACCEPT: MatchStatus.ACTIVE,
        MatchAction.REJECT: MatchStatus.REJECTED,
        MatchAction.CANCEL: DELETED,
    },
    MatchStatus.ACTIVE: {
        MatchAction.COMPLETE: MatchStatus.COMPLETED,
    },
    MatchStatus.REJECTED: {},
    MatchStatus.COMPLETED: {},
}

# The state an action must start from, used for the error message.
_REQUIRED_STATE: dict[str, str] = {
    MatchAction.ACCEPT: "pending",
    MatchAction.REJECT: "pending",
    MatchAction.CANCEL: "pending",
    MatchAction.COMPLETE: "active",
}

# Statuses for which contact details are disclosed.
CONTACT_VISIBLE_STATUSES = frozenset({MatchStatus.ACTIVE.value, MatchStatus.COMPLETED.value})


def next_status(current: str, action: str) -> str:
    """Return the status reached by applying ``action`` to ``current``.

    Returns ``DELETED`` for a cancellation. Raises ValidationError for any pair
    not in the transition table; the caller must not mutate anything then.
    """
    try:
        action = MatchAction(action)
    except ValueError:
        raise ValidationError(f"Unknown match action: {action}") from None

    target = VALID_TRANSITIONS.get(current, {}).get(action)
    if target is None:
        raise ValidationError(f"Match is not {_REQUIRED_STATE[action]}")
    return target.value if isinstance(target, MatchStatus) else target


def contact_visible(status: str) -> bool:
    return status in CONTACT_VISIBLE_STATUSES
