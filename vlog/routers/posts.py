from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from vlog.database import get_db
from vlog.dependencies import PaginationParams, get_current_email
from vlog.schemas import (
    CommentCreate,
    CommentResponse,
    LikeStatus,
    PaginatedResponse,
    PostCreate,
    PostDetail,
    PostUpdate,
)
from vlog.services import comment_service, like_service, post_service

router = APIRouter(prefix="/api/v1/posts", tags=["posts"])

@router.get("", response_model=PaginatedResponse)
async def list_posts(
    pagination: PaginationParams = Depends(),
    tag: str | None = Query(None, description="Only posts carrying this tag."),
    blog_id: int | None = Query(None, description="Only posts on this blog."),
    db: AsyncSession = Depends(get_db),
):
    return await post_service.get_posts(
        db,
        pagination.page,
        pagination.page_size,
        pagination.sort_by,
        pagination.sort_order,
        tag=tag,
        blog_id=blog_id,
    )

@router.get("/{post_id}", response_model=PostDetail)
async def get_post(post_id: int, db: AsyncSession = Depends(get_db)):
    return await post_service.get_post(db, post_id)

@router.post("", status_code=201, response_model=PostDetail)
async def create_post(
    data: PostCreate,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    return await post_service.create_post(db, data, email)

@router.put("/{post_id}", response_model=PostDetail)
async def update_post(
    post_id: int,
    data: PostUpdate,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    return await post_service.update_post(db, post_id, data, email)

@router.delete("/{post_id}", status_code=204)
async def delete_post(
    post_id: int,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    await post_service.delete_post(db, post_id, email)

# --- Comments on a post ---

@router.get("/{post_id}/comments", response_model=list[CommentResponse])
async def list_comments(post_id: int, db: AsyncSession = Depends(get_db)):
    return await comment_service.get_comments(db, post_id)

@router.post("/{post_id}/comments", status_code=201, response_model=CommentResponse)
async def add_comment(
    post_id: int,
    data: CommentCreate,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.create_comment(db, post_id, data, email)

@router.post(
    "/{post_id}/comments/{comment_id}/replies",
    status_code=201,
    response_model=CommentResponse,
)
async def add_reply(
    post_id: int,
    comment_id: int,
    data: CommentCreate,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.create_reply(db, post_id, comment_id, data, email)

# --- Likes ---

@router.get("/{post_id}/likes", response_model=LikeStatus)
async def like_status(
    post_id: int,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    return await like_service.get_like_status(db, post_id, email)

@router.post("/{post_id}/likes", status_code=201, response_model=LikeStatus)
async def like_post(
    post_id: int,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await like_service.add_like(db, email, post_id)
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Like conflicts with a concurrent change")

@router.delete("/{post_id}/likes", response_model=LikeStatus)
async def unlike_post(
    post_id: int,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    return await like_service.remove_like(db, email, post_id)
