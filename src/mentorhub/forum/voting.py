"""Three-state vote toggle.

A user's vote on a thread or reply is ``none``, ``up`` or ``down``:

    none --upvote-->   up      (+1 up)
    up   --upvote-->   none    (-1 up)
    up   --downvote--> down    (-1 up, +1 down)

and symmetrically for downvotes. Pure; the service applies the deltas.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from mentorhub.errors import ValidationError

VOTE_TYPES = ("upvote", "downvote")
VOTABLE_TYPES = ("thread", "reply")


class VoteState(str, Enum):
    NONE = "none"
    UP = "up"
    DOWN = "down"

    @classmethod
    def from_vote_type(cls, vote_type: str | None) -> VoteState:
        if vote_type is None:
            return cls.NONE
        return cls.UP if vote_type == "upvote" else cls.DOWN

    @property
    def vote_type(self) -> str | None:
        """Stored/API representation: 'upvote', 'downvote' or None."""
        return {VoteState.UP: "upvote", VoteState.DOWN: "downvote"}.get(self)


@dataclass(frozen=True)
class VoteTransition:
    new_state: VoteState
    upvote_delta: int
    downvote_delta: int


def _delta(state: VoteState) -> tuple[int, int]:
    if state is VoteState.UP:
        return 1, 0
    if state is VoteState.DOWN:
        return 0, 1
    return 0, 0


def apply_vote(current: VoteState, vote_type: str) -> VoteTransition:
    """Resolve a vote request against the current state.

    Voting the same way again clears the vote; voting the other way switches it.
    """
    if vote_type not in VOTE_TYPES:
        raise ValidationError("vote_type must be 'upvote' or 'downvote'")

    requested = VoteState.from_vote_type(vote_type)
    new_state = VoteState.NONE if requested is current else requested

    old_up, old_down = _delta(current)
    new_up, new_down = _delta(new_state)
    return VoteTransition(
        new_state=new_state,
        upvote_delta=new_up - old_up,
        downvote_delta=new_down - old_down,
    )
