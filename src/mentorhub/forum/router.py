"""Forum API endpoints: 22 routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from mentorhub.auth.dependencies import Caller, get_current_user, get_optional_user, require_admin
from mentorhub.database import get_session
from mentorhub.db.models import ForumThread, User
from mentorhub.forum.schemas import (
    AddTagRequest,
    CategoryListResponse,
    CategoryResponse,
    CreateReplyRequest,
    CreateThreadRequest,
    HotScoreResponse,
    PinThreadRequest,
    ReplyListResponse,
    ReplyResponse,
    TagListResponse,
    TagResponse,
    ThreadDetailResponse,
    ThreadListResponse,
    ThreadResponse,
    UpdateReplyRequest,
    UpdateThreadStatusRequest,
    UserVoteResponse,
    ViewResponse,
    ViewStatsResponse,
    VoteRequest,
    VoteResponse,
)
from mentorhub.forum.service import (
    add_thread_tag,
    calculate_hot_score,
    create_reply,
    create_thread,
    delete_reply,
    delete_thread_tag,
    get_category,
    get_reply,
    get_thread_detail,
    get_view_stats,
    get_vote,
    list_categories,
    list_replies,
    list_thread_tags,
    list_threads,
    record_view,
    reply_dict,
    set_thread_pinned,
    thread_dict,
    update_reply,
    update_thread_status,
    vote_on,
)

router = APIRouter(prefix="/api/v1/forums", tags=["Forum"])


async def _author_name(db: AsyncSession, user_id: int) -> str | None:
    user = await db.get(User, user_id)
    return user.name if user else None


async def _thread_response(db: AsyncSession, thread: ForumThread) -> ThreadResponse:
    return ThreadResponse(**thread_dict(thread, await _author_name(db, thread.user_id)))


# ── Categories ──


@router.get("/categories", response_model=CategoryListResponse)
async def list_categories_endpoint(
    parent_id: int | None = Query(None),
    db: AsyncSession = Depends(get_session),
):
    """List top-level categories, or the subcategories of parent_id, in display order."""
    categories = await list_categories(db, parent_id=parent_id)
    return CategoryListResponse(categories=[CategoryResponse(**c) for c in categories])


@router.get("/categories/{category_id}", response_model=CategoryResponse)
async def get_category_endpoint(category_id: int, db: AsyncSession = Depends(get_session)):
    """Get one category with its thread count."""
    return CategoryResponse(**await get_category(db, category_id))


# ── Threads ──


@router.get("/threads", response_model=ThreadListResponse)
async def list_threads_endpoint(
    category_id: int | None = Query(None),
    sort: str = Query("hot"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_session),
):
    """List threads, pinned first, sorted by hot score, recency or net votes."""
    threads = await list_threads(db, category_id=category_id, sort=sort, limit=limit, offset=offset)
    return ThreadListResponse(
        threads=[ThreadResponse(**t) for t in threads],
        sort=sort,
        limit=limit,
        offset=offset,
    )


@router.post("/threads", response_model=ThreadResponse, status_code=201)
async def create_thread_endpoint(
    body: CreateThreadRequest,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Start a new thread."""
    thread = await create_thread(db, caller.user_id, body.category_id, body.title, body.content)
    await db.commit()
    return await _thread_response(db, thread)


@router.get("/threads/{thread_id}", response_model=ThreadDetailResponse)
async def get_thread_endpoint(thread_id: int, db: AsyncSession = Depends(get_session)):
    """Get a thread with its replies."""
    return ThreadDetailResponse(**await get_thread_detail(db, thread_id))


@router.patch("/threads/{thread_id}/status", response_model=ThreadResponse)
async def update_thread_status_endpoint(
    thread_id: int,
    body: UpdateThreadStatusRequest,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Author: mark the thread open, solved or closed. Closed threads take no replies."""
    thread = await update_thread_status(db, thread_id, caller.user_id, body.status)
    await db.commit()
    return await _thread_response(db, thread)


@router.patch("/threads/{thread_id}/pin", response_model=ThreadResponse)
async def pin_thread_endpoint(
    thread_id: int,
    body: PinThreadRequest,
    _admin: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """Admin: pin or unpin a thread."""
    thread = await set_thread_pinned(db, thread_id, body.is_pinned)
    await db.commit()
    return await _thread_response(db, thread)


# ── Replies ──


@router.get("/threads/{thread_id}/replies", response_model=ReplyListResponse)
async def list_replies_endpoint(
    thread_id: int,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_session),
):
    """List a thread's replies, oldest first, with the total count."""
    replies, total = await list_replies(db, thread_id, limit=limit, offset=offset)
    return ReplyListResponse(
        replies=[ReplyResponse(**r) for r in replies],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/threads/{thread_id}/replies", response_model=ReplyResponse, status_code=201)
async def create_reply_endpoint(
    thread_id: int,
    body: CreateReplyRequest,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Reply to a thread."""
    reply = await create_reply(db, thread_id, caller.user_id, body.content, body.parent_reply_id)
    await db.commit()
    return ReplyResponse(**reply_dict(reply, await _author_name(db, caller.user_id)))


@router.get("/replies/{reply_id}", response_model=ReplyResponse)
async def get_reply_endpoint(reply_id: int, db: AsyncSession = Depends(get_session)):
    return ReplyResponse(**await get_reply(db, reply_id))


@router.put("/replies/{reply_id}", response_model=ReplyResponse)
async def update_reply_endpoint(
    reply_id: int,
    body: UpdateReplyRequest,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Author: edit a reply."""
    reply = await update_reply(db, reply_id, caller.user_id, body.content)
    await db.commit()
    return ReplyResponse(**reply_dict(reply, await _author_name(db, caller.user_id)))


@router.delete("/replies/{reply_id}")
async def delete_reply_endpoint(
    reply_id: int,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Author or admin: delete a reply and its votes."""
    await delete_reply(db, reply_id, caller.user_id, is_admin=caller.is_admin)
    await db.commit()
    return {"success": True}


# ── Tags ──


@router.post("/threads/{thread_id}/tags", response_model=TagResponse, status_code=201)
async def add_tag_endpoint(
    thread_id: int,
    body: AddTagRequest,
    _caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Tag a thread. Names are lowercased and hyphenated; duplicates conflict."""
    tag = await add_thread_tag(db, thread_id, body.tag_name)
    await db.commit()
    return TagResponse.model_validate(tag)


@router.get("/threads/{thread_id}/tags", response_model=TagListResponse)
async def list_tags_endpoint(thread_id: int, db: AsyncSession = Depends(get_session)):
    """List a thread's tags, newest first."""
    tags = await list_thread_tags(db, thread_id)
    return TagListResponse(tags=[TagResponse.model_validate(t) for t in tags])


@router.delete("/threads/{thread_id}/tags/{tag_name}")
async def delete_tag_endpoint(
    thread_id: int,
    tag_name: str,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Thread author or admin: remove a tag."""
    await delete_thread_tag(db, thread_id, tag_name, caller.user_id, is_admin=caller.is_admin)
    await db.commit()
    return {"success": True}


# ── Votes ──


@router.post("/threads/{thread_id}/vote", response_model=VoteResponse)
async def vote_thread_endpoint(
    thread_id: int,
    body: VoteRequest,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Upvote/downvote a thread. Repeating the same vote removes it."""
    result = await vote_on(db, "thread", thread_id, caller.user_id, body.vote_type)
    await db.commit()
    return VoteResponse(**result)


@router.get("/threads/{thread_id}/vote", response_model=UserVoteResponse)
async def get_thread_vote_endpoint(
    thread_id: int,
    caller: Caller | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
):
    """Get your vote on a thread (null when anonymous or not voted)."""
    vote = await get_vote(db, "thread", thread_id, caller.user_id if caller else None)
    return UserVoteResponse(user_vote=vote)


@router.post("/replies/{reply_id}/vote", response_model=VoteResponse)
async def vote_reply_endpoint(
    reply_id: int,
    body: VoteRequest,
    caller: Caller = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
):
    """Upvote/downvote a reply. Repeating the same vote removes it."""
    result = await vote_on(db, "reply", reply_id, caller.user_id, body.vote_type)
    await db.commit()
    return VoteResponse(**result)


@router.get("/replies/{reply_id}/vote", response_model=UserVoteResponse)
async def get_reply_vote_endpoint(
    reply_id: int,
    caller: Caller | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
):
    """Get your vote on a reply (null when anonymous or not voted)."""
    vote = await get_vote(db, "reply", reply_id, caller.user_id if caller else None)
    return UserVoteResponse(user_vote=vote)


# ── Views & ranking ──


@router.post("/threads/{thread_id}/view", response_model=ViewResponse)
async def record_view_endpoint(
    thread_id: int,
    request: Request,
    caller: Caller | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_session),
):
    """Record a view, once per user (or per client address when anonymous)."""
    ip_address = request.client.host if request.client else None
    result = await record_view(db, thread_id, caller.user_id if caller else None, ip_address)
    await db.commit()
    return ViewResponse(**result)


@router.get("/threads/{thread_id}/views", response_model=ViewStatsResponse)
async def view_stats_endpoint(thread_id: int, db: AsyncSession = Depends(get_session)):
    """Get total and unique view counts for a thread."""
    return ViewStatsResponse(**await get_view_stats(db, thread_id))


@router.post("/threads/{thread_id}/calculate-hot-score", response_model=HotScoreResponse)
async def calculate_hot_score_endpoint(thread_id: int, db: AsyncSession = Depends(get_session)):
    """Recompute and store a thread's hot score."""
    score = await calculate_hot_score(db, thread_id)
    await db.commit()
    return HotScoreResponse(thread_id=thread_id, hot_score=score)
