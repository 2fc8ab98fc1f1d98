"""
Follow service — directed follower -> following edges between users.
"""
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from vlog.exceptions import BadRequestError, ConflictError, NotFoundError
from vlog.models import Follow, User
from vlog.services.auth_service import get_acting_user

logger = logging.getLogger(__name__)


async def _ensure_user(db: AsyncSession, user_id: int) -> None:
    exists = (await db.execute(select(User.id).where(User.id == user_id))).scalar_one_or_none()
    if exists is None:
        raise NotFoundError("User not found")


async def is_following(db: AsyncSession, follower_id: int, following_id: int) -> bool:
    q = select(Follow.follower_id).where(
        Follow.follower_id == follower_id, Follow.following_id == following_id
    )
    return (await db.execute(q)).first() is not None


async def follow(db: AsyncSession, target_user_id: int, email: str) -> dict:
    """Make the acting user follow *target_user_id*."""
    user = await get_acting_user(db, email)
    if user.id == target_user_id:
        raise BadRequestError("Users cannot follow themselves")
    await _ensure_user(db, target_user_id)
    if await is_following(db, user.id, target_user_id):
        raise ConflictError("Already following this user")

    db.add(Follow(follower_id=user.id, following_id=target_user_id))
    await db.flush()
    logger.info("User %d followed user %d", user.id, target_user_id)
    return {"follower_id": user.id, "following_id": target_user_id}


async def unfollow(db: AsyncSession, target_user_id: int, email: str) -> None:
    """Remove the edge if present; a missing edge is not an error."""
    user = await get_acting_user(db, email)
    await db.execute(
        delete(Follow).where(
            Follow.follower_id == user.id, Follow.following_id == target_user_id
        )
    )


async def count_follows(db: AsyncSession, user_id: int) -> tuple[int, int]:
    """Return ``(follower_count, following_count)`` for *user_id*."""
    followers = (
        await db.execute(
            select(func.count()).select_from(Follow).where(Follow.following_id == user_id)
        )
    ).scalar_one()
    followings = (
        await db.execute(
            select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
        )
    ).scalar_one()
    return followers, followings


async def get_followers(db: AsyncSession, user_id: int) -> list[dict]:
    await _ensure_user(db, user_id)
    q = (
        select(User)
        .join(Follow, Follow.follower_id == User.id)
        .where(Follow.following_id == user_id)
        .order_by(Follow.created_at.desc(), User.id)
    )
    return [{"id": u.id, "nickname": u.nickname} for u in (await db.execute(q)).scalars().all()]


async def get_followings(db: AsyncSession, user_id: int) -> list[dict]:
    await _ensure_user(db, user_id)
    q = (
        select(User)
        .join(Follow, Follow.following_id == User.id)
        .where(Follow.follower_id == user_id)
        .order_by(Follow.created_at.desc(), User.id)
    )
    return [{"id": u.id, "nickname": u.nickname} for u in (await db.execute(q)).scalars().all()]
