"""
Post service — business logic for the Post aggregate.

Design notes
------------
- Reads go through the cache-aside layer (Redis, falling back to the DB).
  List keys encode every parameter that shapes the page.  Writes queue
  their invalidations on the session; they run after the commit.
- Relationships are ``noload`` on the models; every read states its eager
  loads (``joinedload`` for blog/author, ``selectinload`` for tag maps).
- Deleting posts is an explicit fan-out: tag maps, replies, remaining
  comments and likes are removed with indexed bulk ``DELETE``s before the
  post rows themselves.  ``delete_posts`` is shared with account deletion.
- Service functions flush but do not commit; ``get_db`` owns the
  transaction, so a failure part-way through a fan-out rolls all of it back.
"""
import logging
import math
from typing import Sequence

from sqlalchemy import asc, delete, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from vlog.cache import cache
from vlog.config import settings
from vlog.exceptions import AuthorizationError, NotFoundError
from vlog.models import Blog, Comment, Like, Post, Tag, TagMap
from vlog.schemas import PaginatedResponse, PostCreate, PostUpdate
from vlog.services.auth_service import get_acting_user

logger = logging.getLogger(__name__)

# Columns that are safe to sort by; guards against arbitrary attribute access.
_SORTABLE_COLUMNS: frozenset[str] = frozenset({"created_at", "title"})


def _resolve_sort_column(sort_by: str):
    if sort_by in _SORTABLE_COLUMNS:
        return getattr(Post, sort_by)
    return Post.created_at


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _serialize_author(user) -> dict | None:
    if user is None:
        return None
    return {"id": user.id, "nickname": user.nickname}


def _post_to_dict(post: Post) -> dict:
    """List view: no content, no counts."""
    return {
        "id": post.id,
        "title": post.title,
        "blog_id": post.blog_id,
        "author": _serialize_author(post.blog.user if post.blog else None),
        "tags": [{"id": tm.tag.id, "title": tm.tag.title} for tm in post.tag_maps if tm.tag],
        "created_at": post.created_at.isoformat() if post.created_at else None,
    }


def _post_detail_to_dict(post: Post, like_count: int, comment_count: int) -> dict:
    data = _post_to_dict(post)
    data["content"] = post.content
    data["like_count"] = like_count
    data["comment_count"] = comment_count
    return data


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------

def _post_query():
    return select(Post).options(
        joinedload(Post.blog).joinedload(Blog.user),
        selectinload(Post.tag_maps).joinedload(TagMap.tag),
    )


async def _load_post(db: AsyncSession, post_id: int) -> Post:
    """Load a post with blog, author and tags; raise NotFoundError if absent."""
    q = _post_query().where(Post.id == post_id).execution_options(populate_existing=True)
    result = await db.execute(q)
    post = result.unique().scalar_one_or_none()
    if post is None:
        raise NotFoundError("Post not found")
    return post


async def _get_owned_post(db: AsyncSession, post_id: int, email: str) -> Post:
    """Return *post_id* if the user behind *email* owns it."""
    post = await _load_post(db, post_id)
    user = await get_acting_user(db, email)
    if post.blog.user_id != user.id:
        logger.warning("User %d may not modify post %d", user.id, post_id)
        raise AuthorizationError("Only the author can modify this post")
    return post


async def _resolve_tags(db: AsyncSession, titles: list[str]) -> list[Tag]:
    """
    Return Tag rows for *titles* (stripped, de-duplicated, order kept),
    creating the ones that do not exist yet.
    """
    tags: list[Tag] = []
    seen: set[str] = set()
    for raw in titles:
        title = raw.strip()
        if not title or title in seen:
            continue
        seen.add(title)
        result = await db.execute(select(Tag).where(Tag.title == title))
        tag = result.scalar_one_or_none()
        if tag is None:
            tag = Tag(title=title)
            db.add(tag)
            await db.flush()
        tags.append(tag)
    return tags


async def _attach_tags(db: AsyncSession, post_id: int, titles: list[str]) -> None:
    for tag in await _resolve_tags(db, titles):
        db.add(TagMap(post_id=post_id, tag_id=tag.id))
    await db.flush()


async def _counts(db: AsyncSession, post_id: int) -> tuple[int, int]:
    like_count = (
        await db.execute(select(func.count()).select_from(Like).where(Like.post_id == post_id))
    ).scalar_one()
    comment_count = (
        await db.execute(
            select(func.count()).select_from(Comment).where(Comment.post_id == post_id)
        )
    ).scalar_one()
    return like_count, comment_count


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_posts(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    tag: str | None = None,
    blog_id: int | None = None,
) -> PaginatedResponse:
    """Return one page of posts, optionally restricted to a tag or a blog."""
    cache_key = cache.key(
        "posts", "list", page, page_size, sort_by, sort_order, tag or "", blog_id or ""
    )
    cached = await cache.get(cache_key)
    if cached:
        return PaginatedResponse(**cached)

    filters = []
    if tag:
        filters.append(
            Post.id.in_(select(TagMap.post_id).join(Tag).where(Tag.title == tag))
        )
    if blog_id is not None:
        filters.append(Post.blog_id == blog_id)

    total: int = (
        await db.execute(select(func.count()).select_from(Post).where(*filters))
    ).scalar_one()

    sort_col = _resolve_sort_column(sort_by)
    order_expr = desc(sort_col) if sort_order == "desc" else asc(sort_col)
    q = (
        _post_query()
        .where(*filters)
        .order_by(order_expr, desc(Post.id))
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    posts = (await db.execute(q)).unique().scalars().all()

    response = PaginatedResponse(
        items=[_post_to_dict(p) for p in posts],
        total=total,
        page=page,
        page_size=page_size,
        pages=math.ceil(total / page_size) if total > 0 else 0,
    )
    await cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return response


async def get_post(db: AsyncSession, post_id: int) -> dict:
    cache_key = cache.key("posts", "detail", post_id)
    cached = await cache.get(cache_key)
    if cached:
        return cached

    post = await _load_post(db, post_id)
    data = _post_detail_to_dict(post, *await _counts(db, post_id))
    await cache.set(cache_key, data, ttl=settings.CACHE_TTL_DETAIL)
    return data


async def create_post(db: AsyncSession, data: PostCreate, email: str) -> dict:
    """Create a post on the acting user's blog."""
    user = await get_acting_user(db, email)
    blog_id = (
        await db.execute(select(Blog.id).where(Blog.user_id == user.id))
    ).scalar_one_or_none()
    if blog_id is None:
        raise NotFoundError("Blog not found")

    post = Post(blog_id=blog_id, title=data.title, content=data.content)
    db.add(post)
    await db.flush()

    if data.tags:
        await _attach_tags(db, post.id, data.tags)

    post = await _load_post(db, post.id)
    cache.queue_post_invalidation(db)
    logger.info("User %d created post %d", user.id, post.id)
    return _post_detail_to_dict(post, 0, 0)


async def update_post(db: AsyncSession, post_id: int, data: PostUpdate, email: str) -> dict:
    """
    Apply the fields set in *data*.  A tag list, when given, replaces the
    post's tag maps entirely.
    """
    post = await _get_owned_post(db, post_id, email)

    update_data = data.model_dump(exclude_unset=True)
    tag_titles: list[str] | None = update_data.pop("tags", None)
    for field, value in update_data.items():
        if value is not None:
            setattr(post, field, value)
    await db.flush()

    if tag_titles is not None:
        await db.execute(delete(TagMap).where(TagMap.post_id == post_id))
        await _attach_tags(db, post_id, tag_titles)

    post = await _load_post(db, post_id)
    cache.queue_post_invalidation(db, [post_id])
    return _post_detail_to_dict(post, *await _counts(db, post_id))


async def delete_posts(db: AsyncSession, post_ids: Sequence[int]) -> dict[str, int]:
    """
    Delete *post_ids* and everything that references them, whoever
    authored it: tag maps, replies, top-level comments, likes, then the
    posts.  Returns the number of rows removed per table.

    Replies go before their parents so the self-referencing foreign key
    on comments is never violated.
    """
    removed = {"tag_maps": 0, "comments": 0, "likes": 0, "posts": 0}
    if not post_ids:
        return removed
    ids = list(post_ids)

    result = await db.execute(delete(TagMap).where(TagMap.post_id.in_(ids)))
    removed["tag_maps"] = result.rowcount
    result = await db.execute(
        delete(Comment).where(Comment.post_id.in_(ids), Comment.parent_id.is_not(None))
    )
    removed["comments"] = result.rowcount
    result = await db.execute(delete(Comment).where(Comment.post_id.in_(ids)))
    removed["comments"] += result.rowcount
    result = await db.execute(delete(Like).where(Like.post_id.in_(ids)))
    removed["likes"] = result.rowcount
    result = await db.execute(delete(Post).where(Post.id.in_(ids)))
    removed["posts"] = result.rowcount

    cache.queue_post_invalidation(db, ids)
    return removed


async def delete_post(db: AsyncSession, post_id: int, email: str) -> None:
    """
    Delete a post owned by the acting user together with its comments,
    replies, likes and tag maps.

    Raises NotFoundError for a missing (or already deleted) post and
    AuthorizationError when the acting user is not the author.
    """
    await _get_owned_post(db, post_id, email)
    removed = await delete_posts(db, [post_id])
    logger.info(
        "Deleted post %d (%d comments, %d likes, %d tag maps)",
        post_id, removed["comments"], removed["likes"], removed["tag_maps"],
    )
