from enum import Enum
from pydantic import BaseModel, Field, EmailStr
from typing import Optional
from datetime import datetime


class ListingStatus(str, Enum):
    active = "active"
    sold = "sold"
    archived = "archived"


class StatusFilter(str, Enum):
    """Status values accepted by the listing search; `all` lifts the restriction."""
    active = "active"
    sold = "sold"
    archived = "archived"
    all = "all"


# User schemas
class UserBase(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    city: Optional[str] = Field(None, max_length=100)


class UserCreate(UserBase):
    email: EmailStr
    password: str = Field(..., min_length=6)


class UserLogin(BaseModel):
    email: str
    password: str


class UserUpdate(BaseModel):
    username: Optional[str] = Field(None, min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    city: Optional[str] = Field(None, max_length=100)


class UserResponse(BaseModel):
    id: int
    email: str
    username: str
    role: str

    class Config:
        from_attributes = True


class ProfileResponse(UserResponse):
    phone: Optional[str] = None
    city: Optional[str] = None
    created_at: Optional[datetime] = None


class AuthResponse(BaseModel):
    user: UserResponse
    token: str


# Category schemas
class CategoryResponse(BaseModel):
    id: int
    name: str
    parent_id: Optional[int] = None

    class Config:
        from_attributes = True


# Listing schemas
class ListingCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    city: Optional[str] = Field(None, max_length=100)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    category_id: Optional[int] = None


class ListingUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    city: Optional[str] = Field(None, max_length=100)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    category_id: Optional[int] = None
    status: Optional[ListingStatus] = None


class ListingResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    price: Optional[float] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    category_id: Optional[int] = None
    owner_id: int
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    category_name: Optional[str] = None

    class Config:
        from_attributes = True


class ListingSearchResponse(ListingResponse):
    seller_name: str


class ListingDetailResponse(ListingSearchResponse):
    seller_city: Optional[str] = None


class ListingSearchParams(BaseModel):
    """Criteria accepted by the listing search, all optional."""
    category_id: Optional[int] = None
    city: Optional[str] = None
    price_min: Optional[float] = Field(None, allow_inf_nan=False)
    price_max: Optional[float] = Field(None, allow_inf_nan=False)
    q: Optional[str] = None
    status: Optional[StatusFilter] = None
    page: int = 1
    limit: Optional[int] = None


# Favorite schemas
class FavoriteResponse(BaseModel):
    id: int
    user_id: int
    listing_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FavoriteListingResponse(BaseModel):
    id: int
    created_at: Optional[datetime] = None
    listing_id: int
    title: str
    price: Optional[float] = None
    city: Optional[str] = None


class DeletedResponse(BaseModel):
    deleted: bool = True


# Conversation schemas
class ConversationCreate(BaseModel):
    listing_id: int


class ConversationResponse(BaseModel):
    id: int
    listing_id: int
    buyer_id: int
    seller_id: int
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ConversationSummary(ConversationResponse):
    listing_title: str
    other_user: str


# Message schemas
class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    read: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MessageWithSender(MessageResponse):
    sender_name: str


class HealthResponse(BaseModel):
    status: str
    db: str
