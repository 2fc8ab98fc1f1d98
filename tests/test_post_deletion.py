"""
Post deletion — the fan-out removes every comment, reply, like and tag map
on the post, whoever wrote them, and nothing belonging to other posts.

These tests call the services directly on one session, so every count is
read inside the same (uncommitted) transaction the deletion ran in.
"""
import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from vlog.exceptions import AuthorizationError, NotFoundError
from vlog.models import Comment, Like, Post, Tag, TagMap, User
from vlog.schemas import CommentCreate, PostCreate, SignupRequest
from vlog.services import auth_service, comment_service, like_service, post_service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _signup(db: AsyncSession, email: str, nickname: str = "tester") -> dict:
    return await auth_service.signup(
        db, SignupRequest(email=email, password="password123", nickname=nickname)
    )


async def _post(db: AsyncSession, email: str, tags: list[str] | None = None) -> int:
    post = await post_service.create_post(
        db, PostCreate(title="Test post", content="Test content", tags=tags or []), email
    )
    return post["id"]


async def _count(db: AsyncSession, model, *criteria) -> int:
    q = select(func.count()).select_from(model).where(*criteria)
    return (await db.execute(q)).scalar_one()


# ---------------------------------------------------------------------------
# Fan-out
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_post_removes_comments_replies_likes_and_tags(db_session: AsyncSession):
    email = "author@example.com"
    await _signup(db_session, email)
    post_id = await _post(db_session, email, tags=["java", "spring", "test"])

    comment = await comment_service.create_comment(
        db_session, post_id, CommentCreate(content="A comment"), email
    )
    await comment_service.create_reply(
        db_session, post_id, comment["id"], CommentCreate(content="A reply"), email
    )
    await like_service.add_like(db_session, email, post_id)

    assert await _count(db_session, Comment) == 2
    assert await _count(db_session, Like) == 1
    assert await _count(db_session, TagMap) == 3
    assert await _count(db_session, Post) == 1

    await post_service.delete_post(db_session, post_id, email)

    assert await _count(db_session, Post) == 0
    assert await _count(db_session, Comment) == 0
    assert await _count(db_session, Like) == 0
    assert await _count(db_session, TagMap) == 0
    # Tag labels are shared and outlive the post.
    assert await _count(db_session, Tag) == 3


@pytest.mark.asyncio
async def test_delete_post_removes_other_users_comments_and_likes(db_session: AsyncSession):
    await _signup(db_session, "author@example.com", "author")
    commenter = await _signup(db_session, "commenter@example.com", "commenter")
    post_id = await _post(db_session, "author@example.com", tags=["test"])

    await comment_service.create_comment(
        db_session, post_id, CommentCreate(content="Someone else's comment"), "commenter@example.com"
    )
    await like_service.add_like(db_session, "commenter@example.com", post_id)
    assert await _count(db_session, Comment) == 1
    assert await _count(db_session, Like) == 1

    await post_service.delete_post(db_session, post_id, "author@example.com")

    assert await _count(db_session, Post, Post.id == post_id) == 0
    assert await _count(db_session, Comment) == 0
    assert await _count(db_session, Like) == 0
    # The commenter's account survives.
    assert await _count(db_session, User, User.id == commenter["id"]) == 1


@pytest.mark.asyncio
async def test_delete_post_leaves_other_posts_untouched(db_session: AsyncSession):
    email = "author@example.com"
    await _signup(db_session, email)
    doomed = await _post(db_session, email, tags=["shared"])
    kept = await _post(db_session, email, tags=["shared", "other"])

    for post_id in (doomed, kept):
        c = await comment_service.create_comment(
            db_session, post_id, CommentCreate(content="c"), email
        )
        await comment_service.create_reply(
            db_session, post_id, c["id"], CommentCreate(content="r"), email
        )
        await like_service.add_like(db_session, email, post_id)

    await post_service.delete_post(db_session, doomed, email)

    assert await _count(db_session, Comment, Comment.post_id == doomed) == 0
    assert await _count(db_session, Comment, Comment.post_id == kept) == 2
    assert await _count(db_session, Like, Like.post_id == kept) == 1
    assert await _count(db_session, TagMap, TagMap.post_id == kept) == 2


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_post_twice_raises_not_found(db_session: AsyncSession):
    email = "author@example.com"
    await _signup(db_session, email)
    post_id = await _post(db_session, email)

    await post_service.delete_post(db_session, post_id, email)
    with pytest.raises(NotFoundError):
        await post_service.delete_post(db_session, post_id, email)


@pytest.mark.asyncio
async def test_delete_post_by_non_owner_is_rejected(db_session: AsyncSession):
    await _signup(db_session, "author@example.com", "author")
    await _signup(db_session, "intruder@example.com", "intruder")
    post_id = await _post(db_session, "author@example.com", tags=["a", "b"])
    await like_service.add_like(db_session, "intruder@example.com", post_id)

    with pytest.raises(AuthorizationError):
        await post_service.delete_post(db_session, post_id, "intruder@example.com")

    assert await _count(db_session, Post) == 1
    assert await _count(db_session, Like) == 1
    assert await _count(db_session, TagMap) == 2


@pytest.mark.asyncio
async def test_rolled_back_delete_restores_every_row(db_session: AsyncSession):
    """Services never commit: rolling back the caller's transaction undoes the whole fan-out."""
    email = "author@example.com"
    await _signup(db_session, email)
    post_id = await _post(db_session, email, tags=["x", "y"])
    c = await comment_service.create_comment(db_session, post_id, CommentCreate(content="c"), email)
    await comment_service.create_reply(
        db_session, post_id, c["id"], CommentCreate(content="r"), email
    )
    await like_service.add_like(db_session, email, post_id)
    await db_session.commit()

    await post_service.delete_post(db_session, post_id, email)
    assert await _count(db_session, Post) == 0

    await db_session.rollback()

    assert await _count(db_session, Post) == 1
    assert await _count(db_session, Comment) == 2
    assert await _count(db_session, Like) == 1
    assert await _count(db_session, TagMap) == 2


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_post_via_http(async_client, register):
    _, author = await register("author@example.com")
    _, reader = await register("reader@example.com")

    resp = await async_client.post(
        "/api/v1/posts",
        json={"title": "Doomed", "content": "Body", "tags": ["one", "two", "three"]},
        headers=author,
    )
    post_id = resp.json()["id"]
    c = await async_client.post(
        f"/api/v1/posts/{post_id}/comments", json={"content": "hi"}, headers=reader
    )
    await async_client.post(
        f"/api/v1/posts/{post_id}/comments/{c.json()['id']}/replies",
        json={"content": "hello"},
        headers=author,
    )
    await async_client.post(f"/api/v1/posts/{post_id}/likes", headers=reader)

    assert (await async_client.delete(f"/api/v1/posts/{post_id}", headers=reader)).status_code == 403
    assert (await async_client.delete(f"/api/v1/posts/{post_id}", headers=author)).status_code == 204

    assert (await async_client.get(f"/api/v1/posts/{post_id}")).status_code == 404
    assert (await async_client.get(f"/api/v1/posts/{post_id}/comments")).status_code == 404
    assert (await async_client.delete(f"/api/v1/posts/{post_id}", headers=author)).status_code == 404
