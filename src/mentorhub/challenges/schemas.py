"""Pydantic schemas for challenge endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CreateChallengeRequest(BaseModel):
    title: str = Field(..., max_length=200)
    description: str
    requirements: str
    point_reward: int
    deadline: datetime


class UpdateChallengeRequest(BaseModel):
    title: str | None = Field(None, max_length=200)
    description: str | None = None
    requirements: str | None = None
    point_reward: int | None = None
    deadline: datetime | None = None
    status: str | None = None


class SubmitChallengeRequest(BaseModel):
    submission_text: str = Field(..., max_length=10000)
    submission_url: str | None = Field(None, max_length=2000)


class ReviewSubmissionRequest(BaseModel):
    feedback: str | None = Field(None, max_length=2000)


class SubmissionResponse(BaseModel):
    id: int
    user_id: int
    challenge_id: int
    submission_text: str
    submission_url: str | None = None
    status: str
    submitted_at: datetime
    reviewed_at: datetime | None = None
    reviewed_by_user_id: int | None = None
    feedback: str | None = None
    user_name: str | None = None
    user_email: str | None = None


class ChallengeResponse(BaseModel):
    id: int
    title: str
    description: str
    requirements: str
    created_by_user_id: int
    creator_name: str | None = None
    point_reward: int
    deadline: datetime
    status: str
    participant_count: int = 0
    created_at: datetime
    updated_at: datetime
    user_has_joined: bool | None = None
    user_submission: SubmissionResponse | None = None


class ChallengeListResponse(BaseModel):
    challenges: list[ChallengeResponse]


class ChallengeEnvelope(BaseModel):
    challenge: ChallengeResponse


class PointsAwarded(BaseModel):
    points_awarded: int
    capped: bool
    balance: int


class JoinChallengeResponse(BaseModel):
    success: bool = True
    points: PointsAwarded


class SubmissionActionResponse(BaseModel):
    submission: SubmissionResponse
    points: PointsAwarded | None = None


class SubmissionListResponse(BaseModel):
    submissions: list[SubmissionResponse]
