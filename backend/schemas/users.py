# Pydantic schemas for user-related requests/responses
# fastapi-users' UserManager.create() takes a BaseUserCreate; the public
# register endpoints accept RegisterRequest and fill in the role themselves.

from datetime import datetime
from typing import List, Optional

from fastapi_users import schemas
from pydantic import BaseModel, EmailStr, field_validator


class UserCreate(schemas.BaseUserCreate):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @field_validator("password")
    @classmethod
    def _password_required(cls, v: str) -> str:
        if not v:
            raise ValueError("password is required")
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AuthResponse(BaseModel):
    success: bool
    message: str
    token: Optional[str] = None
    email: Optional[str] = None
    roles: Optional[List[str]] = None
    expiration: Optional[datetime] = None
