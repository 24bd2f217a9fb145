# support_schema.py
from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime


class AssistRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class AssistSession(BaseModel):
    success: bool = True
    session_key: str
    expires_at: datetime


class SessionValidation(BaseModel):
    valid: bool = True
    user_id: str
    read_only: bool


class TicketCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200)
    body: str = Field(..., min_length=1)


class TicketRead(BaseModel):
    id: int
    user_id: str
    subject: str
    body: str
    status: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TicketRespond(BaseModel):
    ticket_id: int
    response: str = Field(..., min_length=1)


class ResponseRead(BaseModel):
    id: int
    ticket_id: int
    user_id: str
    response: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
