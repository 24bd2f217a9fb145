# user_schema.py
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional
from datetime import datetime


# ---------------------------
# Create & Auth
# ---------------------------
class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    app_name: Optional[str] = Field(default=None, max_length=100)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


# ---------------------------
# Read
# ---------------------------
class UserRead(BaseModel):
    id: str
    email: EmailStr
    role: str
    plan: str
    status: str
    verified: bool = False
    user_file_key: Optional[str] = None
    app_name: Optional[str] = None
    premium_expires_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenRead(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


class IdentityRead(BaseModel):
    """The resolved caller, as the gate sees it."""
    user_id: Optional[str] = None
    email: Optional[str] = None
    role: str
    plan: str
    status: str
    workbook_key: str
    is_owner: bool = False
    is_superadmin: bool = False
    ads_required: int = 0
    profile: Optional[UserRead] = None
