"""Pydantic schemas for forum endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, StrictBool


class CategoryResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: str | None = None
    parent_id: int | None = None
    display_order: int = 0
    thread_count: int = 0


class CategoryListResponse(BaseModel):
    categories: list[CategoryResponse]


class CreateThreadRequest(BaseModel):
    category_id: int
    title: str = Field(..., max_length=200)
    content: str = Field(..., max_length=50000)


class CreateReplyRequest(BaseModel):
    content: str = Field(..., max_length=20000)
    parent_reply_id: int | None = None


class VoteRequest(BaseModel):
    vote_type: str


class ReplyResponse(BaseModel):
    id: int
    thread_id: int
    user_id: int
    author_name: str | None = None
    content: str
    parent_reply_id: int | None = None
    is_solution: bool
    upvote_count: int
    downvote_count: int
    created_at: datetime
    updated_at: datetime


class ThreadResponse(BaseModel):
    id: int
    category_id: int
    user_id: int
    author_name: str | None = None
    title: str
    content: str
    status: str
    is_pinned: bool
    view_count: int
    reply_count: int
    upvote_count: int
    downvote_count: int
    hot_score: float
    last_activity_at: datetime
    created_at: datetime
    updated_at: datetime


class ThreadDetailResponse(ThreadResponse):
    replies: list[ReplyResponse] = []


class ThreadListResponse(BaseModel):
    threads: list[ThreadResponse]
    sort: str
    limit: int
    offset: int


class VoteResponse(BaseModel):
    upvote_count: int
    downvote_count: int
    user_vote: str | None = None


class UserVoteResponse(BaseModel):
    user_vote: str | None = None


class ViewResponse(BaseModel):
    view_count: int
    new_view: bool


class ViewStatsResponse(BaseModel):
    total_views: int
    unique_views: int


class HotScoreResponse(BaseModel):
    thread_id: int
    hot_score: float


class UpdateThreadStatusRequest(BaseModel):
    status: str


class PinThreadRequest(BaseModel):
    is_pinned: StrictBool


class UpdateReplyRequest(BaseModel):
    content: str = Field(..., max_length=20000)


class ReplyListResponse(BaseModel):
    replies: list[ReplyResponse]
    total: int
    limit: int
    offset: int


class AddTagRequest(BaseModel):
    tag_name: str | None = None


class TagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    thread_id: int
    tag_name: str
    created_at: datetime


class TagListResponse(BaseModel):
    tags: list[TagResponse]
