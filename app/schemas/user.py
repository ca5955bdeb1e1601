from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    name: str = Field(..., min_length=1, max_length=100)
    bio: str = Field("", max_length=1000)


class UserResponse(BaseModel):
    id: UUID
    email: str
    name: str
    bio: str
    created_at: datetime

    model_config = {"from_attributes": True}


class UserBrief(BaseModel):
    """Public view of another user (partner, history entry)."""

    id: UUID
    name: str
    bio: str

    model_config = {"from_attributes": True}


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class TokenPayload(BaseModel):
    sub: str
    exp: int
