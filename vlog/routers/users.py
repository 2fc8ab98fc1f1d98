from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from vlog.database import get_db
from vlog.dependencies import get_current_email
from vlog.exceptions import AuthorizationError
from vlog.schemas import FollowResponse, UserDeleteRequest, UserProfile, UserSummary, UserUpdate
from vlog.services import auth_service, follow_service, user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])

@router.get("/{user_id}", response_model=UserProfile)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db)):
    return await user_service.get_user(db, user_id)

@router.put("/{user_id}", response_model=UserProfile)
async def update_user(
    user_id: int,
    data: UserUpdate,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.update_user(db, user_id, data, email)

@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: int,
    data: UserDeleteRequest,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    target = await user_service.load_user(db, user_id)
    acting = await auth_service.get_acting_user(db, email)
    if acting.id != target.id:
        raise AuthorizationError("Users can only delete their own account")
    await user_service.delete_user(db, user_id, data.password)

@router.get("/{user_id}/followers", response_model=list[UserSummary])
async def list_followers(user_id: int, db: AsyncSession = Depends(get_db)):
    return await follow_service.get_followers(db, user_id)

@router.get("/{user_id}/followings", response_model=list[UserSummary])
async def list_followings(user_id: int, db: AsyncSession = Depends(get_db)):
    return await follow_service.get_followings(db, user_id)

@router.post("/{user_id}/follow", status_code=201, response_model=FollowResponse)
async def follow_user(
    user_id: int,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await follow_service.follow(db, user_id, email)
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Follow conflicts with a concurrent change")

@router.delete("/{user_id}/follow", status_code=204)
async def unfollow_user(
    user_id: int,
    email: str = Depends(get_current_email),
    db: AsyncSession = Depends(get_db),
):
    await follow_service.unfollow(db, user_id, email)
