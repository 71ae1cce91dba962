"""Forum threads, replies, votes and views.

Rules:
- One vote row per (votable, user); voting the same way twice clears it
- One view row per (thread, user) or, for anonymous callers, (thread, ip)
- Every counter moves with an in-store ``col = col + delta`` UPDATE in the
  same transaction as its vote/view/reply row
- Thread hot scores are recomputed whenever votes or replies change
- Closed threads take no replies
- Tags are normalized to lowercase hyphenated words, unique per thread
"""

from __future__ import annotations

import logging
import re
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from mentorhub.db.models import (
    ForumCategory,
    ForumReply,
    ForumThread,
    ForumThreadTag,
    ForumThreadView,
    ForumVote,
    User,
)
from mentorhub.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from mentorhub.forum.hot_score import age_in_hours, hot_score
from mentorhub.forum.voting import VOTABLE_TYPES, VOTE_TYPES, VoteState, apply_vote
from mentorhub.time_utils import utcnow

logger = logging.getLogger(__name__)

THREAD_SORTS = ("hot", "new", "top")
THREAD_STATUSES = ("open", "solved", "closed")
MAX_TAG_LENGTH = 50

_WHITESPACE = re.compile(r"\s+")
_TAG_PATTERN = re.compile(r"[a-z0-9-]+")

_VOTABLE_MODELS = {"thread": ForumThread, "reply": ForumReply}


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_thread(db: AsyncSession, thread_id: int) -> ForumThread:
    result = await db.execute(select(ForumThread).where(ForumThread.id == thread_id))
    thread = result.scalar_one_or_none()
    if thread is None:
        raise NotFoundError("Thread not found")
    return thread


async def _require_votable(db: AsyncSession, votable_type: str, votable_id: int) -> None:
    if votable_type not in VOTABLE_TYPES:
        raise ValidationError("votable_type must be 'thread' or 'reply'")
    model = _VOTABLE_MODELS[votable_type]
    result = await db.execute(select(model.id).where(model.id == votable_id))
    if result.scalar_one_or_none() is None:
        raise NotFoundError(f"{votable_type.capitalize()} not found")


async def _thread_counters(db: AsyncSession, thread_id: int) -> dict[str, Any]:
    """Read counters straight from the store, bypassing the identity map."""
    result = await db.execute(
        select(
            ForumThread.upvote_count,
            ForumThread.downvote_count,
            ForumThread.reply_count,
            ForumThread.view_count,
            ForumThread.created_at,
        ).where(ForumThread.id == thread_id)
    )
    return dict(result.one()._mapping)


# ---------------------------------------------------------------------------
# Categories & threads
# ---------------------------------------------------------------------------


async def _thread_counts(db: AsyncSession, category_ids: list[int]) -> dict[int, int]:
    if not category_ids:
        return {}
    result = await db.execute(
        select(ForumThread.category_id, func.count())
        .where(ForumThread.category_id.in_(category_ids))
        .group_by(ForumThread.category_id)
    )
    return dict(result.all())


def category_dict(category: ForumCategory, thread_count: int) -> dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "parent_id": category.parent_id,
        "display_order": category.display_order,
        "thread_count": thread_count,
    }


async def list_categories(db: AsyncSession, parent_id: int | None = None) -> list[dict[str, Any]]:
    """Top-level categories, or the subcategories of ``parent_id``, in display order."""
    query = select(ForumCategory)
    if parent_id is None:
        query = query.where(ForumCategory.parent_id.is_(None))
    else:
        if await db.get(ForumCategory, parent_id) is None:
            raise NotFoundError("Parent category not found")
        query = query.where(ForumCategory.parent_id == parent_id)

    result = await db.execute(query.order_by(ForumCategory.display_order, ForumCategory.id))
    categories = list(result.scalars().all())
    counts = await _thread_counts(db, [c.id for c in categories])
    return [category_dict(c, counts.get(c.id, 0)) for c in categories]


async def get_category(db: AsyncSession, category_id: int) -> dict[str, Any]:
    category = await db.get(ForumCategory, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    counts = await _thread_counts(db, [category_id])
    return category_dict(category, counts.get(category_id, 0))


def thread_dict(thread: ForumThread, author_name: str | None) -> dict[str, Any]:
    return {
        "id": thread.id,
        "category_id": thread.category_id,
        "user_id": thread.user_id,
        "author_name": author_name,
        "title": thread.title,
        "content": thread.content,
        "status": thread.status,
        "is_pinned": thread.is_pinned,
        "view_count": thread.view_count,
        "reply_count": thread.reply_count,
        "upvote_count": thread.upvote_count,
        "downvote_count": thread.downvote_count,
        "hot_score": thread.hot_score,
        "last_activity_at": thread.last_activity_at,
        "created_at": thread.created_at,
        "updated_at": thread.updated_at,
    }


def reply_dict(reply: ForumReply, author_name: str | None) -> dict[str, Any]:
    return {
        "id": reply.id,
        "thread_id": reply.thread_id,
        "user_id": reply.user_id,
        "author_name": author_name,
        "content": reply.content,
        "parent_reply_id": reply.parent_reply_id,
        "is_solution": reply.is_solution,
        "upvote_count": reply.upvote_count,
        "downvote_count": reply.downvote_count,
        "created_at": reply.created_at,
        "updated_at": reply.updated_at,
    }


async def list_threads(
    db: AsyncSession,
    category_id: int | None = None,
    sort: str = "hot",
    limit: int = 20,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """Threads with pinned ones first, then by the requested ordering."""
    if sort not in THREAD_SORTS:
        raise ValidationError("sort must be one of: hot, new, top")

    query = select(ForumThread, User.name).outerjoin(User, User.id == ForumThread.user_id)
    if category_id is not None:
        query = query.where(ForumThread.category_id == category_id)

    if sort == "hot":
        ordering = ForumThread.hot_score.desc()
    elif sort == "new":
        ordering = ForumThread.created_at.desc()
    else:
        ordering = (ForumThread.upvote_count - ForumThread.downvote_count).desc()

    query = (
        query.order_by(ForumThread.is_pinned.desc(), ordering, ForumThread.id.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(query)
    return [thread_dict(t, name) for t, name in result.all()]


async def get_thread_detail(db: AsyncSession, thread_id: int) -> dict[str, Any]:
    """Thread with author and its replies, oldest reply first."""
    thread = await get_thread(db, thread_id)
    author = await db.get(User, thread.user_id)

    result = await db.execute(
        select(ForumReply, User.name)
        .outerjoin(User, User.id == ForumReply.user_id)
        .where(ForumReply.thread_id == thread_id)
        .order_by(ForumReply.created_at.asc(), ForumReply.id.asc())
    )
    data = thread_dict(thread, author.name if author else None)
    data["replies"] = [reply_dict(r, name) for r, name in result.all()]
    return data


async def create_thread(
    db: AsyncSession,
    user_id: int,
    category_id: int,
    title: str,
    content: str,
) -> ForumThread:
    if not title or not title.strip():
        raise ValidationError("title is required")
    if not content or not content.strip():
        raise ValidationError("content is required")
    if await db.get(ForumCategory, category_id) is None:
        raise ValidationError("Category not found")

    now = utcnow()
    thread = ForumThread(
        category_id=category_id,
        user_id=user_id,
        title=title.strip(),
        content=content,
        status="open",
        is_pinned=False,
        view_count=0,
        reply_count=0,
        upvote_count=0,
        downvote_count=0,
        hot_score=hot_score(0, 0, 0, 0.0),
        last_activity_at=now,
        created_at=now,
        updated_at=now,
    )
    db.add(thread)
    await db.flush()

    logger.info("Thread %d created by user %d in category %d", thread.id, user_id, category_id)
    return thread


async def create_reply(
    db: AsyncSession,
    thread_id: int,
    user_id: int,
    content: str,
    parent_reply_id: int | None = None,
) -> ForumReply:
    """Reply to a thread, bumping its reply count, activity time and hot score."""
    if not content or not content.strip():
        raise ValidationError("content is required")

    thread = await get_thread(db, thread_id)
    if thread.status == "closed":
        raise ValidationError("Thread is closed")

    if parent_reply_id is not None:
        parent = await db.get(ForumReply, parent_reply_id)
        if parent is None or parent.thread_id != thread_id:
            raise ValidationError("Parent reply does not belong to this thread")

    now = utcnow()
    reply = ForumReply(
        thread_id=thread_id,
        user_id=user_id,
        content=content,
        parent_reply_id=parent_reply_id,
        is_solution=False,
        upvote_count=0,
        downvote_count=0,
        created_at=now,
        updated_at=now,
    )
    db.add(reply)
    await db.flush()

    await db.execute(
        update(ForumThread)
        .where(ForumThread.id == thread_id)
        .values(reply_count=ForumThread.reply_count + 1, last_activity_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    await _refresh_hot_score(db, thread_id)

    logger.info("Reply %d added to thread %d by user %d", reply.id, thread_id, user_id)
    return reply


async def update_thread_status(db: AsyncSession, thread_id: int, caller_id: int, status: str) -> ForumThread:
    """Author marks the thread open, solved or closed."""
    if status not in THREAD_STATUSES:
        raise ValidationError("status must be one of: open, solved, closed")
    thread = await get_thread(db, thread_id)
    if thread.user_id != caller_id:
        raise ForbiddenError("Only the thread author can change its status")

    thread.status = status
    thread.updated_at = utcnow()
    await db.flush()

    logger.info("Thread %d status set to %s by user %d", thread_id, status, caller_id)
    return thread


async def set_thread_pinned(db: AsyncSession, thread_id: int, is_pinned: bool) -> ForumThread:
    thread = await get_thread(db, thread_id)
    thread.is_pinned = is_pinned
    thread.updated_at = utcnow()
    await db.flush()

    logger.info("Thread %d %s", thread_id, "pinned" if is_pinned else "unpinned")
    return thread


# ---------------------------------------------------------------------------
# Replies
# ---------------------------------------------------------------------------


async def _get_reply(db: AsyncSession, reply_id: int) -> ForumReply:
    result = await db.execute(select(ForumReply).where(ForumReply.id == reply_id))
    reply = result.scalar_one_or_none()
    if reply is None:
        raise NotFoundError("Reply not found")
    return reply


async def list_replies(
    db: AsyncSession,
    thread_id: int,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """One page of a thread's replies, oldest first, with the total count.

    An unknown thread simply has no replies.
    """
    total = await db.execute(
        select(func.count()).select_from(ForumReply).where(ForumReply.thread_id == thread_id)
    )
    result = await db.execute(
        select(ForumReply, User.name)
        .outerjoin(User, User.id == ForumReply.user_id)
        .where(ForumReply.thread_id == thread_id)
        .order_by(ForumReply.created_at.asc(), ForumReply.id.asc())
        .limit(limit)
        .offset(offset)
    )
    return [reply_dict(r, name) for r, name in result.all()], total.scalar_one()


async def get_reply(db: AsyncSession, reply_id: int) -> dict[str, Any]:
    reply = await _get_reply(db, reply_id)
    author = await db.get(User, reply.user_id)
    return reply_dict(reply, author.name if author else None)


async def update_reply(db: AsyncSession, reply_id: int, caller_id: int, content: str) -> ForumReply:
    if not content or not content.strip():
        raise ValidationError("content is required")
    reply = await _get_reply(db, reply_id)
    if reply.user_id != caller_id:
        raise ForbiddenError("Only the reply author can edit it")

    reply.content = content
    reply.updated_at = utcnow()
    await db.flush()
    return reply


async def delete_reply(db: AsyncSession, reply_id: int, caller_id: int, is_admin: bool = False) -> None:
    """Remove a reply with its votes. Nested replies are kept and lose their parent.

    The thread's reply count drops by exactly one per removed row.
    """
    reply = await _get_reply(db, reply_id)
    if reply.user_id != caller_id and not is_admin:
        raise ForbiddenError("Only the reply author or an admin can delete it")
    thread_id = reply.thread_id

    await db.execute(
        update(ForumReply)
        .where(ForumReply.parent_reply_id == reply_id)
        .values(parent_reply_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.execute(
        delete(ForumVote)
        .where(ForumVote.votable_type == "reply", ForumVote.votable_id == reply_id)
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(
        delete(ForumReply).where(ForumReply.id == reply_id).execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError("Reply not found")
    db.expunge(reply)

    await db.execute(
        update(ForumThread)
        .where(ForumThread.id == thread_id)
        .values(reply_count=ForumThread.reply_count - 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    await _refresh_hot_score(db, thread_id)

    logger.info("Reply %d deleted from thread %d by user %d", reply_id, thread_id, caller_id)


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------


def normalize_tag(tag_name: str | None) -> str:
    """Lowercase, whitespace runs to hyphens; 1-50 of ``[a-z0-9-]``."""
    tag = _WHITESPACE.sub("-", (tag_name or "").strip().lower())
    if not tag:
        raise ValidationError("tag_name is required")
    if len(tag) > MAX_TAG_LENGTH:
        raise ValidationError(f"tag_name must be at most {MAX_TAG_LENGTH} characters")
    if not _TAG_PATTERN.fullmatch(tag):
        raise ValidationError("tag_name may only contain letters, digits and hyphens")
    return tag


async def _find_tag(db: AsyncSession, thread_id: int, tag_name: str) -> ForumThreadTag | None:
    result = await db.execute(
        select(ForumThreadTag).where(ForumThreadTag.thread_id == thread_id, ForumThreadTag.tag_name == tag_name)
    )
    return result.scalar_one_or_none()


async def add_thread_tag(db: AsyncSession, thread_id: int, tag_name: str | None) -> ForumThreadTag:
    tag_name = normalize_tag(tag_name)
    await get_thread(db, thread_id)
    if await _find_tag(db, thread_id, tag_name) is not None:
        raise ConflictError("Tag already exists on this thread")

    tag = ForumThreadTag(thread_id=thread_id, tag_name=tag_name, created_at=utcnow())
    db.add(tag)
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("Tag already exists on this thread") from e
    return tag


async def list_thread_tags(db: AsyncSession, thread_id: int) -> list[ForumThreadTag]:
    await get_thread(db, thread_id)
    result = await db.execute(
        select(ForumThreadTag)
        .where(ForumThreadTag.thread_id == thread_id)
        .order_by(ForumThreadTag.created_at.desc(), ForumThreadTag.id.desc())
    )
    return list(result.scalars().all())


async def delete_thread_tag(
    db: AsyncSession,
    thread_id: int,
    tag_name: str,
    caller_id: int,
    is_admin: bool = False,
) -> None:
    """The thread author or an admin removes a tag."""
    thread = await get_thread(db, thread_id)
    if thread.user_id != caller_id and not is_admin:
        raise ForbiddenError("Only the thread author or an admin can remove tags")

    tag = await _find_tag(db, thread_id, normalize_tag(tag_name))
    if tag is None:
        raise NotFoundError("Tag not found")
    await db.delete(tag)
    await db.flush()


# ---------------------------------------------------------------------------
# Hot score
# ---------------------------------------------------------------------------


async def _refresh_hot_score(db: AsyncSession, thread_id: int) -> float:
    counters = await _thread_counters(db, thread_id)
    score = hot_score(
        counters["upvote_count"],
        counters["downvote_count"],
        counters["reply_count"],
        age_in_hours(counters["created_at"]),
    )
    await db.execute(
        update(ForumThread)
        .where(ForumThread.id == thread_id)
        .values(hot_score=score)
        .execution_options(synchronize_session=False)
    )
    return score


async def calculate_hot_score(db: AsyncSession, thread_id: int) -> float:
    """Recompute and persist a thread's hot score."""
    await get_thread(db, thread_id)
    return await _refresh_hot_score(db, thread_id)


# ---------------------------------------------------------------------------
# Votes
# ---------------------------------------------------------------------------


async def _find_vote(db: AsyncSession, votable_type: str, votable_id: int, user_id: int) -> ForumVote | None:
    result = await db.execute(
        select(ForumVote).where(
            ForumVote.votable_type == votable_type,
            ForumVote.votable_id == votable_id,
            ForumVote.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


async def _apply_vote_change(db: AsyncSession, vote: ForumVote, new_state: VoteState) -> None:
    """Clear or flip an existing vote as a compare-and-set on its vote type.

    The statement only matches while the row still holds the vote the counter
    deltas were computed from; otherwise a concurrent toggle got there first.
    """
    guard = (ForumVote.id == vote.id, ForumVote.vote_type == vote.vote_type)
    if new_state is VoteState.NONE:
        stmt = delete(ForumVote).where(*guard)
    else:
        stmt = update(ForumVote).where(*guard).values(vote_type=new_state.vote_type)

    result = await db.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount != 1:
        raise ConflictError("Vote changed by another request, retry")

    if new_state is VoteState.NONE:
        db.expunge(vote)
    else:
        set_committed_value(vote, "vote_type", new_state.vote_type)


async def vote_on(
    db: AsyncSession,
    votable_type: str,
    votable_id: int,
    user_id: int,
    vote_type: str,
) -> dict[str, Any]:
    """Toggle a user's vote and move the target's counters by the same deltas."""
    if vote_type not in VOTE_TYPES:
        raise ValidationError("vote_type must be 'upvote' or 'downvote'")
    await _require_votable(db, votable_type, votable_id)

    existing = await _find_vote(db, votable_type, votable_id, user_id)
    current = VoteState.from_vote_type(existing.vote_type if existing else None)
    transition = apply_vote(current, vote_type)

    if existing is None:
        db.add(ForumVote(
            votable_type=votable_type,
            votable_id=votable_id,
            user_id=user_id,
            vote_type=transition.new_state.vote_type,
            created_at=utcnow(),
        ))
        try:
            await db.flush()
        except IntegrityError as e:
            await db.rollback()
            raise ConflictError("Vote already recorded") from e
    else:
        await _apply_vote_change(db, existing, transition.new_state)

    model = _VOTABLE_MODELS[votable_type]
    await db.execute(
        update(model)
        .where(model.id == votable_id)
        .values(
            upvote_count=model.upvote_count + transition.upvote_delta,
            downvote_count=model.downvote_count + transition.downvote_delta,
        )
        .execution_options(synchronize_session=False)
    )
    if votable_type == "thread":
        await _refresh_hot_score(db, votable_id)

    counts = await db.execute(
        select(model.upvote_count, model.downvote_count).where(model.id == votable_id)
    )
    upvotes, downvotes = counts.one()

    logger.info(
        "User %d %s on %s %d -> %s",
        user_id, vote_type, votable_type, votable_id, transition.new_state.value,
    )
    return {
        "upvote_count": upvotes,
        "downvote_count": downvotes,
        "user_vote": transition.new_state.vote_type,
    }


async def get_vote(
    db: AsyncSession,
    votable_type: str,
    votable_id: int,
    user_id: int | None,
) -> str | None:
    """The caller's current vote, or None when anonymous or not voted."""
    await _require_votable(db, votable_type, votable_id)
    if user_id is None:
        return None
    existing = await _find_vote(db, votable_type, votable_id, user_id)
    return existing.vote_type if existing else None


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


async def _find_view(
    db: AsyncSession,
    thread_id: int,
    user_id: int | None,
    ip_address: str | None,
) -> int | None:
    query = select(ForumThreadView.id).where(ForumThreadView.thread_id == thread_id)
    if user_id is not None:
        query = query.where(ForumThreadView.user_id == user_id)
    else:
        query = query.where(ForumThreadView.user_id.is_(None), ForumThreadView.ip_address == ip_address)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def record_view(
    db: AsyncSession,
    thread_id: int,
    user_id: int | None,
    ip_address: str | None,
) -> dict[str, Any]:
    """Count a view once per identity: the user id, or the client address when anonymous.

    Anonymous callers without an address are not counted.
    """
    await get_thread(db, thread_id)

    if user_id is not None:
        ip_address = None
    elif not ip_address:
        counters = await _thread_counters(db, thread_id)
        return {"view_count": counters["view_count"], "new_view": False}

    if await _find_view(db, thread_id, user_id, ip_address) is not None:
        counters = await _thread_counters(db, thread_id)
        return {"view_count": counters["view_count"], "new_view": False}

    db.add(ForumThreadView(
        thread_id=thread_id,
        user_id=user_id,
        ip_address=ip_address,
        created_at=utcnow(),
    ))
    try:
        await db.flush()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError("View already recorded") from e

    await db.execute(
        update(ForumThread)
        .where(ForumThread.id == thread_id)
        .values(view_count=ForumThread.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    counters = await _thread_counters(db, thread_id)
    return {"view_count": counters["view_count"], "new_view": True}


async def get_view_stats(db: AsyncSession, thread_id: int) -> dict[str, int]:
    """Total views (counter) and unique viewer rows."""
    await get_thread(db, thread_id)
    counters = await _thread_counters(db, thread_id)
    unique = await db.execute(
        select(func.count()).select_from(ForumThreadView).where(ForumThreadView.thread_id == thread_id)
    )
    return {"total_views": counters["view_count"], "unique_views": unique.scalar_one()}
