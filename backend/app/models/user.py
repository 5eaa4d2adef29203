from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator


class UserRole(str, Enum):
    user = "user"
    admin = "admin"


class UserInDB(BaseModel):
    """Full user document as stored in MongoDB."""
    email: EmailStr
    name: str
    hashed_password: str
    points: int = 1000
    role: UserRole = UserRole.user
    created_at: datetime
    updated_at: datetime


class UserLogin(BaseModel):
    """Request body for login. Unknown emails are registered on first login."""
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def password_min_length(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Password must be at least 8 characters long.")
        return v


class UserResponse(BaseModel):
    """Public user data returned to the client."""
    id: str
    email: str
    name: Optional[str] = None
    points: int
    role: UserRole
    created_at: datetime
