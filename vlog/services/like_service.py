"""
Like service.  A like is the existence of a (user, post) row: adding one
twice is a conflict, removing a missing one does nothing.
"""
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from vlog.cache import cache
from vlog.exceptions import ConflictError, NotFoundError
from vlog.models import Like, Post
from vlog.services.auth_service import get_acting_user


async def _ensure_post(db: AsyncSession, post_id: int) -> None:
    exists = (await db.execute(select(Post.id).where(Post.id == post_id))).scalar_one_or_none()
    if exists is None:
        raise NotFoundError("Post not found")


async def count_likes(db: AsyncSession, post_id: int) -> int:
    return (
        await db.execute(select(func.count()).select_from(Like).where(Like.post_id == post_id))
    ).scalar_one()


async def has_liked(db: AsyncSession, user_id: int, post_id: int) -> bool:
    q = select(Like.user_id).where(Like.user_id == user_id, Like.post_id == post_id)
    return (await db.execute(q)).first() is not None


async def get_like_status(db: AsyncSession, post_id: int, email: str) -> dict:
    user = await get_acting_user(db, email)
    await _ensure_post(db, post_id)
    return {
        "post_id": post_id,
        "liked": await has_liked(db, user.id, post_id),
        "like_count": await count_likes(db, post_id),
    }


async def add_like(db: AsyncSession, email: str, post_id: int) -> dict:
    user = await get_acting_user(db, email)
    await _ensure_post(db, post_id)
    if await has_liked(db, user.id, post_id):
        raise ConflictError("Post is already liked")

    db.add(Like(user_id=user.id, post_id=post_id))
    await db.flush()

    cache.queue_post_invalidation(db, [post_id])
    return {"post_id": post_id, "liked": True, "like_count": await count_likes(db, post_id)}


async def remove_like(db: AsyncSession, email: str, post_id: int) -> dict:
    user = await get_acting_user(db, email)
    await _ensure_post(db, post_id)
    result = await db.execute(
        delete(Like).where(Like.user_id == user.id, Like.post_id == post_id)
    )
    if result.rowcount:
        cache.queue_post_invalidation(db, [post_id])
    return {"post_id": post_id, "liked": False, "like_count": await count_likes(db, post_id)}
