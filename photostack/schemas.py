# schemas.py
import json
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

Role = Literal["creator", "consumer"]
Sentiment = Literal["positive", "neutral", "negative", "unknown"]


def parse_people(value: Any) -> List[str]:
    """Normalize a people field: comma separated text, a JSON array string, or a list."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.strip()
        if value.startswith("["):
            try:
                value = json.loads(value)
            except ValueError:
                return []
            if not isinstance(value, list):
                return []
        else:
            value = value.split(",")
    if not isinstance(value, (list, tuple)):
        return []
    people = (str(person).strip() for person in value if person is not None)
    return [person for person in people if person]


def split_csv(value: Optional[str], lower: bool = False) -> List[str]:
    items = [item.strip() for item in (value or "").split(",") if item.strip()]
    return [item.lower() for item in items] if lower else items


# --- User Schemas ---
class PublicUser(BaseModel):
    id: str
    display_name: str
    role: Role
    avatar: str = ""
    bio: str = ""
    photo_count: int = 0
    total_views: int = 0
    comment_count: int = 0
    rating_count: int = 0
    is_active: bool = True
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserProfile(PublicUser):
    oid: str


class User(UserProfile):
    email: EmailStr
    last_login_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserUpdate(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    bio: Optional[str] = Field(None, max_length=500)
    avatar: Optional[str] = None


class UserRegister(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    bio: Optional[str] = Field(None, max_length=500)


class RoleUpdate(BaseModel):
    role: str


class UserStats(BaseModel):
    role: Role
    photo_count: int
    total_views: int
    total_ratings: int  # received on the user's photos
    comment_count: int  # written by the user
    rating_count: int  # given by the user
    member_since: Optional[datetime] = None
    last_login: Optional[datetime] = None


# --- Photo Schemas ---
class Photo(BaseModel):
    id: str
    creator_id: str
    title: str
    caption: str = ""
    location: str = ""
    people: List[str] = []
    blob_url: str
    blob_name: str
    thumbnail_url: str = ""
    mime_type: str
    file_size: int
    ai_tags: List[str] = []
    ai_description: str = ""
    dominant_colors: List[str] = []
    is_adult_content: bool = False
    view_count: int = 0
    average_rating: float = 0
    rating_count: int = 0
    comment_count: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PhotoUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    caption: Optional[str] = None
    location: Optional[str] = None
    # comma separated string, JSON array string, or a list
    people: Optional[Any] = None


class PhotoQuery(BaseModel):
    """Filters shared by the photo listing, search and trending queries."""

    creator_id: Optional[str] = None
    location: Optional[str] = None
    search: Optional[str] = None  # title, caption, location
    text: Optional[str] = None  # title, caption, AI description
    tags: List[str] = []
    people: List[str] = []
    since: Optional[datetime] = None


# --- Comment Schemas ---
class CommentCreate(BaseModel):
    content: str = Field(..., max_length=1000)


class Comment(BaseModel):
    id: str
    photo_id: str
    user_id: str
    user_display_name: str
    content: str
    sentiment: Sentiment = "unknown"
    sentiment_score: float = 0
    is_edited: bool = False
    is_deleted: bool = False
    created_at: datetime
    updated_at: Optional[datetime] = None
    photo: Optional[Dict[str, str]] = None  # {"id", "title", "blob_url"}

    class Config:
        from_attributes = True


# --- Rating Schemas ---
class RatingCreate(BaseModel):
    value: Any = None


class Rating(BaseModel):
    id: str
    photo_id: str
    user_id: str
    value: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PhotoRatingStats(BaseModel):
    average_rating: float
    rating_count: int


class RatingSummary(BaseModel):
    average: float
    total: int
    distribution: Dict[int, int]
