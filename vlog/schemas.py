from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# --- Auth ---

class SignupRequest(BaseModel):
    email: EmailStr
    # bcrypt only looks at the first 72 bytes
    password: str = Field(min_length=8, max_length=72)
    nickname: str = Field(min_length=1, max_length=50)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


# --- User ---

class UserSummary(BaseModel):
    id: int
    nickname: str
    model_config = ConfigDict(from_attributes=True)


class UserResponse(UserSummary):
    email: str
    blog_id: int | None = None
    created_at: datetime


class UserProfile(UserResponse):
    follower_count: int = 0
    following_count: int = 0


class UserUpdate(BaseModel):
    nickname: str | None = Field(None, min_length=1, max_length=50)
    password: str | None = Field(None, min_length=8, max_length=72)


class UserDeleteRequest(BaseModel):
    password: str


# --- Tag ---

class TagResponse(BaseModel):
    id: int
    title: str
    model_config = ConfigDict(from_attributes=True)


# --- Post ---

class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    content: str
    tags: list[str] = []  # tag titles; created on first use


class PostUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=200)
    content: str | None = None
    tags: list[str] | None = None


class PostResponse(BaseModel):
    id: int
    title: str
    blog_id: int
    author: UserSummary | None = None
    tags: list[TagResponse] = []
    created_at: datetime


class PostDetail(PostResponse):
    content: str
    like_count: int = 0
    comment_count: int = 0


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=1000)


class CommentUpdate(CommentCreate):
    pass


class CommentResponse(BaseModel):
    id: int
    post_id: int
    parent_id: int | None = None
    content: str
    author: UserSummary | None = None
    created_at: datetime
    replies: list["CommentResponse"] = []


# --- Like ---

class LikeStatus(BaseModel):
    post_id: int
    liked: bool
    like_count: int


# --- Follow ---

class FollowResponse(BaseModel):
    follower_id: int
    following_id: int


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list  # PostResponse dicts
    total: int
    page: int
    page_size: int
    pages: int


# Self-reference in CommentResponse.replies
CommentResponse.model_rebuild()
