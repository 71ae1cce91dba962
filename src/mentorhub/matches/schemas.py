"""Pydantic schemas for match endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CreateMatchRequest(BaseModel):
    mentor_id: int
    introduction: str = Field(..., max_length=2000)
    preferred_time: str = Field(..., max_length=500)


class RespondToMatchRequest(BaseModel):
    action: str


class MatchResponse(BaseModel):
    """A match as seen by one of its parties.

    Contact fields are only set for active/completed matches; endpoints
    serialize with ``exclude_unset`` so they are absent otherwise.
    """

    id: int
    mentor_id: int
    mentee_id: int
    mentor_name: str | None = None
    mentee_name: str | None = None
    status: str
    introduction: str
    preferred_time: str
    cv_included: bool
    requested_at: datetime
    responded_at: datetime | None = None
    completed_at: datetime | None = None
    mentor_email: str | None = None
    mentee_email: str | None = None
    mentor_linkedin_url: str | None = None


class MatchListResponse(BaseModel):
    matches: list[MatchResponse]


class MatchCheckResponse(BaseModel):
    exists: bool
    match_id: int | None = None
    status: str | None = None
