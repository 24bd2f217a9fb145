# admin_schema.py
from pydantic import BaseModel, Field
from typing import Optional, List

from .user_schema import UserRead


class UserTarget(BaseModel):
    user_id: str = Field(..., min_length=1)


class RoleChange(UserTarget):
    role: str = Field(default="user", pattern="^(user|admin|superadmin)$")


class BanRequest(UserTarget):
    reason: Optional[str] = Field(default=None, max_length=500)


class UserList(BaseModel):
    users: List[UserRead]
    count: int


class AdminActionResult(BaseModel):
    success: bool = True
    user: Optional[UserRead] = None
