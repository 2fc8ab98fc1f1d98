from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from vlog.database import get_db
from vlog.dependencies import get_current_email
from vlog.schemas import CommentResponse, CommentUpdate
from vlog.services import comment_service

router = APIRouter(prefix="/api/v1/comments", tags=["comments"])

@router.put("/{comment_id}", response_model=CommentResponse)
async def update_comment(
    comment_id: int,
    data: CommentUpdate,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.update_comment(db, comment_id, data, email)

@router.delete("/{comment_id}", status_code=204)
async def delete_comment(
    comment_id: int,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    await comment_service.delete_comment(db, comment_id, email)
