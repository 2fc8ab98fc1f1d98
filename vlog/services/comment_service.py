"""
Comment service — comments and one level of replies on a post.

A reply is a comment whose ``parent_id`` names a top-level comment on the
same post; replies to replies are rejected.  Only the author may edit or
delete a comment, and deleting a top-level comment takes its replies with
it.  Writes invalidate the post's cached detail (it carries the count).
"""
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from vlog.cache import cache
from vlog.exceptions import AuthorizationError, BadRequestError, NotFoundError
from vlog.models import Comment, Post
from vlog.schemas import CommentCreate, CommentUpdate
from vlog.services.auth_service import get_acting_user

logger = logging.getLogger(__name__)


def _comment_to_dict(comment: Comment, author=None) -> dict:
    author = author or comment.author
    return {
        "id": comment.id,
        "post_id": comment.post_id,
        "parent_id": comment.parent_id,
        "content": comment.content,
        "author": {"id": author.id, "nickname": author.nickname} if author else None,
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
        "replies": [],
    }


async def _ensure_post(db: AsyncSession, post_id: int) -> None:
    exists = (await db.execute(select(Post.id).where(Post.id == post_id))).scalar_one_or_none()
    if exists is None:
        raise NotFoundError("Post not found")


async def _get_own_comment(db: AsyncSession, comment_id: int, email: str) -> Comment:
    comment = (
        await db.execute(select(Comment).where(Comment.id == comment_id))
    ).scalar_one_or_none()
    if comment is None:
        raise NotFoundError("Comment not found")
    user = await get_acting_user(db, email)
    if comment.user_id != user.id:
        raise AuthorizationError("Only the author can modify this comment")
    return comment


async def get_comments(db: AsyncSession, post_id: int) -> list[dict]:
    """Top-level comments on *post_id*, oldest first, each with its replies."""
    await _ensure_post(db, post_id)
    q = (
        select(Comment)
        .where(Comment.post_id == post_id)
        .options(joinedload(Comment.author))
        .order_by(Comment.created_at, Comment.id)
    )
    comments = (await db.execute(q)).unique().scalars().all()

    top_level: dict[int, dict] = {}
    replies: list[Comment] = []
    for c in comments:
        if c.parent_id is None:
            top_level[c.id] = _comment_to_dict(c)
        else:
            replies.append(c)
    for r in replies:
        parent = top_level.get(r.parent_id)
        if parent is not None:
            parent["replies"].append(_comment_to_dict(r))
    return list(top_level.values())


async def create_comment(
    db: AsyncSession, post_id: int, data: CommentCreate, email: str
) -> dict:
    user = await get_acting_user(db, email)
    await _ensure_post(db, post_id)

    comment = Comment(post_id=post_id, user_id=user.id, content=data.content)
    db.add(comment)
    await db.flush()

    cache.queue_post_invalidation(db, [post_id])
    return _comment_to_dict(comment, user)


async def create_reply(
    db: AsyncSession, post_id: int, comment_id: int, data: CommentCreate, email: str
) -> dict:
    """
    Reply to top-level comment *comment_id* on *post_id*.

    Raises BadRequestError when the parent sits on another post or is
    itself a reply.
    """
    user = await get_acting_user(db, email)
    await _ensure_post(db, post_id)
    parent = (
        await db.execute(select(Comment).where(Comment.id == comment_id))
    ).scalar_one_or_none()
    if parent is None:
        raise NotFoundError("Comment not found")
    if parent.post_id != post_id:
        raise BadRequestError("Parent comment belongs to a different post")
    if parent.parent_id is not None:
        raise BadRequestError("Replies cannot be nested")

    reply = Comment(post_id=post_id, user_id=user.id, parent_id=parent.id, content=data.content)
    db.add(reply)
    await db.flush()

    cache.queue_post_invalidation(db, [post_id])
    return _comment_to_dict(reply, user)


async def update_comment(
    db: AsyncSession, comment_id: int, data: CommentUpdate, email: str
) -> dict:
    comment = await _get_own_comment(db, comment_id, email)
    comment.content = data.content
    await db.flush()
    comment = (
        await db.execute(
            select(Comment)
            .where(Comment.id == comment_id)
            .options(joinedload(Comment.author))
            .execution_options(populate_existing=True)
        )
    ).scalar_one()
    return _comment_to_dict(comment)


async def delete_comment(db: AsyncSession, comment_id: int, email: str) -> None:
    comment = await _get_own_comment(db, comment_id, email)
    post_id = comment.post_id

    replies = await db.execute(delete(Comment).where(Comment.parent_id == comment_id))
    await db.execute(delete(Comment).where(Comment.id == comment_id))

    cache.queue_post_invalidation(db, [post_id])
    logger.info("Deleted comment %d and %d replies", comment_id, replies.rowcount)
