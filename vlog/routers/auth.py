from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from vlog.database import get_db
from vlog.dependencies import get_current_email, oauth2_scheme
from vlog.schemas import LoginRequest, SignupRequest, TokenResponse, UserResponse
from vlog.services import auth_service

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

@router.post("/signup", status_code=201, response_model=UserResponse)
async def signup(data: SignupRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await auth_service.signup(db, data)
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Email is already registered")

@router.post("/login", response_model=TokenResponse)
async def login(data: LoginRequest, db: AsyncSession = Depends(get_db)):
    return await auth_service.login(db, data.email, data.password)

@router.get("/me", response_model=UserResponse)
async def me(email: str = Depends(get_current_email), db: AsyncSession = Depends(get_db)):
    return await auth_service.get_me(db, email)

@router.post("/logout", status_code=204)
async def logout(
    token: str = Depends(oauth2_scheme),
    email: str = Depends(get_current_email),
):
    await auth_service.logout(token)
