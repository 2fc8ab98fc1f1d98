"""
Auth service — account creation, credential checks and acting-user lookup.

Signup creates the user and its blog together; every account owns exactly
one blog for its whole lifetime.  Other services call ``get_acting_user``
to turn the email carried by an access token into a user row.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vlog.cache import cache
from vlog.config import settings
from vlog.exceptions import AuthenticationError, ConflictError
from vlog.models import Blog, User
from vlog.schemas import SignupRequest
from vlog.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)


def _user_to_dict(user: User, blog_id: int | None) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "nickname": user.nickname,
        "blog_id": blog_id,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def get_acting_user(db: AsyncSession, email: str) -> User:
    """
    Return the user identified by *email*.

    Raises ``AuthenticationError`` when no such account exists, e.g. a
    token issued before the account was deleted.
    """
    user = await get_user_by_email(db, email)
    if user is None:
        raise AuthenticationError("Account not found")
    return user


async def signup(db: AsyncSession, data: SignupRequest) -> dict:
    """Create a user plus its blog and return the serialised user."""
    if await get_user_by_email(db, data.email) is not None:
        raise ConflictError("Email is already registered")

    user = User(
        email=data.email,
        password=hash_password(data.password),
        nickname=data.nickname,
    )
    db.add(user)
    await db.flush()

    blog = Blog(user_id=user.id, title=f"{data.nickname}'s blog")
    db.add(blog)
    await db.flush()

    logger.info("User %d (%s) signed up", user.id, user.nickname)
    return _user_to_dict(user, blog.id)


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    user = await get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password):
        logger.warning("Failed login for %s", email)
        raise AuthenticationError("Invalid email or password")
    return user


async def login(db: AsyncSession, email: str, password: str) -> dict:
    """Check credentials and issue an access token."""
    user = await authenticate(db, email, password)
    logger.info("User %d logged in", user.id)
    return {"access_token": create_access_token(user.email), "token_type": "bearer"}


async def get_me(db: AsyncSession, email: str) -> dict:
    user = await get_acting_user(db, email)
    blog_id = (
        await db.execute(select(Blog.id).where(Blog.user_id == user.id))
    ).scalar_one_or_none()
    return _user_to_dict(user, blog_id)


async def logout(token: str) -> None:
    """
    Deny *token* for the rest of its lifetime.  Without Redis the token
    stays valid until it expires.
    """
    ttl = settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    if not await cache.revoke_token(token, ttl):
        logger.warning("Logout without a token denylist; token remains valid until expiry")
