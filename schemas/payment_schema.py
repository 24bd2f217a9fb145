# payment_schema.py
from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional, Union
from datetime import datetime
from enum import Enum


class PaymentModeIn(str, Enum):
    ONE_TIME = "one-time"
    MONTHLY = "monthly"


# ---------------------------
# Checkout
# ---------------------------
class PaymentInit(BaseModel):
    email: EmailStr
    mode: PaymentModeIn = PaymentModeIn.ONE_TIME
    # minor currency units; required for one-time payments
    amount: Optional[Union[int, str]] = None


class PaymentVerify(BaseModel):
    reference: str = Field(..., min_length=1)
    email: EmailStr
    mode: PaymentModeIn = PaymentModeIn.ONE_TIME


# ---------------------------
# Records
# ---------------------------
class PaymentRead(BaseModel):
    id: int
    email: str
    amount: int
    reference: str
    status: str
    mode: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PricingRead(BaseModel):
    monthly_amount: int
    yearly_amount: int
    currency: str
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PricingUpdate(BaseModel):
    monthly_amount: int = Field(..., gt=0)
    yearly_amount: int = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=3)
