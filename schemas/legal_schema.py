# legal_schema.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class LegalRead(BaseModel):
    content: str = ""
    updated_at: Optional[datetime] = None


class LegalUpdate(BaseModel):
    content: str = Field(..., min_length=1)
