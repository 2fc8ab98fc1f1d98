"""
User service — profiles, account updates and account deletion.

Account deletion is the widest fan-out in the system.  Besides the user's
own blog and posts (each post taking its comments, likes and tag maps
along, regardless of who wrote them), it removes everything the user left
on other people's posts and every follow edge in either direction.  All
statements are indexed bulk deletes issued in the caller's transaction.
"""
import logging

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from vlog.cache import cache
from vlog.exceptions import AuthenticationError, AuthorizationError, NotFoundError
from vlog.models import Blog, Comment, Follow, Like, Post, User
from vlog.schemas import UserUpdate
from vlog.security import hash_password, verify_password
from vlog.services import follow_service, post_service
from vlog.services.auth_service import get_acting_user

logger = logging.getLogger(__name__)


async def load_user(db: AsyncSession, user_id: int) -> User:
    """Return the user row or raise NotFoundError."""
    user = (await db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")
    return user


async def _profile(db: AsyncSession, user: User) -> dict:
    blog_id = (
        await db.execute(select(Blog.id).where(Blog.user_id == user.id))
    ).scalar_one_or_none()
    followers, followings = await follow_service.count_follows(db, user.id)
    return {
        "id": user.id,
        "email": user.email,
        "nickname": user.nickname,
        "blog_id": blog_id,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "follower_count": followers,
        "following_count": followings,
    }


async def get_user(db: AsyncSession, user_id: int) -> dict:
    return await _profile(db, await load_user(db, user_id))


async def update_user(db: AsyncSession, user_id: int, data: UserUpdate, email: str) -> dict:
    """Change nickname and/or password of the acting user's own account."""
    user = await load_user(db, user_id)
    acting = await get_acting_user(db, email)
    if acting.id != user.id:
        raise AuthorizationError("Users can only update their own account")

    if data.nickname is not None:
        user.nickname = data.nickname
    if data.password is not None:
        user.password = hash_password(data.password)
    await db.flush()
    return await _profile(db, user)


async def delete_user(db: AsyncSession, user_id: int, password: str) -> dict[str, int]:
    """
    Delete *user_id* after checking *password*, with every row that
    depends on the account.  Returns removed row counts per table.

    Raises NotFoundError for a missing (or already deleted) user and
    AuthenticationError on a password mismatch; nothing is deleted then.
    """
    user = await load_user(db, user_id)
    if not verify_password(password, user.password):
        logger.warning("Rejected deletion of user %d: wrong password", user_id)
        raise AuthenticationError("Password does not match")

    # 1. Own posts, with everyone's comments/likes/tag maps on them.
    post_ids = (
        await db.execute(select(Post.id).join(Blog).where(Blog.user_id == user_id))
    ).scalars().all()
    removed = await post_service.delete_posts(db, post_ids)

    # 2. Comments left on other users' posts.  Replies to them go first,
    #    whoever wrote the reply.
    own_comment_ids = (
        await db.execute(select(Comment.id).where(Comment.user_id == user_id))
    ).scalars().all()
    if own_comment_ids:
        result = await db.execute(
            delete(Comment).where(
                Comment.parent_id.in_(own_comment_ids), Comment.user_id != user_id
            )
        )
        removed["comments"] += result.rowcount
        result = await db.execute(
            delete(Comment).where(Comment.user_id == user_id, Comment.parent_id.is_not(None))
        )
        removed["comments"] += result.rowcount
        result = await db.execute(delete(Comment).where(Comment.user_id == user_id))
        removed["comments"] += result.rowcount

    # 3. Likes on any post.
    result = await db.execute(delete(Like).where(Like.user_id == user_id))
    removed["likes"] += result.rowcount

    # 4. Follow edges in both directions.
    result = await db.execute(delete(Follow).where(Follow.follower_id == user_id))
    removed["follows"] = result.rowcount
    result = await db.execute(delete(Follow).where(Follow.following_id == user_id))
    removed["follows"] += result.rowcount

    # 5. Blog, then the account itself.
    result = await db.execute(delete(Blog).where(Blog.user_id == user_id))
    removed["blogs"] = result.rowcount
    await db.delete(user)
    await db.flush()
    removed["users"] = 1

    cache.queue_post_invalidation(db, everything=True)
    logger.info("Deleted user %d: %s", user_id, removed)
    return removed
