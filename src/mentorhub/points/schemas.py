"""Pydantic schemas for points endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UserPointsResponse(BaseModel):
    user_id: int
    name: str
    points: int
    rank: int


class SetPointsRequest(BaseModel):
    points: int = Field(..., ge=0)


class SetPointsResponse(BaseModel):
    user_id: int
    points: int


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: int
    name: str
    points: int


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]
    limit: int
    offset: int


class PointHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action_type: str
    reference_id: str
    points_awarded: int
    created_at: datetime


class PointHistoryResponse(BaseModel):
    entries: list[PointHistoryEntry]


class ReconcileResponse(BaseModel):
    user_id: int
    previous_balance: int
    balance: int
    drift: int
