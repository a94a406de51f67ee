"""
Pydantic schemas for administrator accounts.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import datetime
from typing import Optional


class LoginBase(BaseModel):
    name: str = Field(..., max_length=255, description="Administrator name")
    email: EmailStr = Field(..., description="Administrator email address (unique)")


class LoginCreate(LoginBase):
    password: str = Field(..., min_length=6, max_length=255, description="Plain text password (will be hashed)")


class LoginUpdate(BaseModel):
    """All fields optional"""
    name: Optional[str] = Field(None, max_length=255)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=6, max_length=255)
    is_active: Optional[bool] = None


class LoginOut(BaseModel):
    """Administrator as returned by the API (never includes the password)"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    is_active: bool = True
    last_login_at: Optional[datetime] = None


class LoginAuth(BaseModel):
    email: EmailStr
    password: str


class LoginAuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    admin: LoginOut
