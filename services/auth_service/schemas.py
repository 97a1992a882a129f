from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from shared.security.access import Role


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8)
    full_name: Optional[str] = Field(default=None, max_length=255)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    role: Role
    entity_id: Optional[int] = None
    is_active: bool

    class Config:
        from_attributes = True
