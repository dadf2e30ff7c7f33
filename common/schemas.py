from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import datetime
from typing import List, Optional


class UserBase(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: EmailStr
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    avatar_url: Optional[str] = Field(None, max_length=500)


class UserCreate(UserBase):
    pass


class UserUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=3, max_length=50)
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    avatar_url: Optional[str] = Field(None, max_length=500)


class User(UserBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime


class UserProfile(User):
    follower_count: int = 0
    following_count: int = 0
    post_count: int = 0


class AuthorSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None


class PostCreate(BaseModel):
    caption: str = Field("", max_length=2200)
    media_urls: List[str] = Field(default_factory=list)
    idempotency_key: Optional[str] = Field(None, max_length=100)


class PostUpdate(BaseModel):
    caption: str = Field(..., max_length=2200)


class FeedPost(BaseModel):
    """A post as the feed and post endpoints present it to a viewer."""
    id: int
    caption: str
    media_urls: List[str]
    author_id: int
    author: AuthorSummary
    like_count: int = 0
    comment_count: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None
    is_liked: bool = False


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class FeedPage(BaseModel):
    posts: List[FeedPost]
    pagination: Pagination


class LikeToggle(BaseModel):
    liked: bool
    like_count: int


class PostLike(BaseModel):
    user: AuthorSummary
    created_at: datetime


class PostLikesPage(BaseModel):
    likes: List[PostLike]
    pagination: Pagination


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=1000)


class CommentUpdate(CommentCreate):
    pass


class CommentOut(BaseModel):
    id: int
    post_id: int
    content: str
    author: AuthorSummary
    created_at: datetime
    updated_at: Optional[datetime] = None


class CommentPage(BaseModel):
    comments: List[CommentOut]
    pagination: Pagination


class FollowToggle(BaseModel):
    following: bool
