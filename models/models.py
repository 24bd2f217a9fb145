# models/models.py
from typing import Optional, Dict, Any
from datetime import datetime, date, timezone
from enum import Enum
from sqlmodel import SQLModel, Field, Column, JSON
from sqlalchemy import UniqueConstraint


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation every table stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================================
# ENUMS
# ============================================================
class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class PlanName(str, Enum):
    FREE = "free"
    PAID = "paid"


class UserStatus(str, Enum):
    ACTIVE = "active"
    BANNED = "banned"
    DELETED = "deleted"


class PaymentMode(str, Enum):
    ONE_TIME = "one-time"
    MONTHLY = "monthly"


class TicketStatus(str, Enum):
    OPEN = "open"
    RESPONDED = "responded"


# ============================================================
# USER PROFILE
# ============================================================
class User(SQLModel, table=True):
    __tablename__ = "profiles"

    id: str = Field(primary_key=True, max_length=64)
    email: str = Field(index=True, unique=True, max_length=255, nullable=False)
    password_hash: str = Field(nullable=False)

    role: str = Field(default=UserRole.USER.value, max_length=20, index=True)
    plan: str = Field(default=PlanName.FREE.value, max_length=20, index=True)
    status: str = Field(default=UserStatus.ACTIVE.value, max_length=20, index=True)
    verified: bool = Field(default=False)
    ban_reason: Optional[str] = Field(default=None, max_length=500)

    # Storage key of the user's workbook; synthesized when unset
    user_file_key: Optional[str] = Field(default=None, max_length=512)
    app_name: Optional[str] = Field(default=None, max_length=100)

    premium_expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)


# ============================================================
# AUDIT ENTRY (append-only)
# ============================================================
class AuditEntry(SQLModel, table=True):
    __tablename__ = "excel_audit"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[str] = Field(default=None, index=True, max_length=64)
    email: Optional[str] = Field(default=None, max_length=255)
    action: str = Field(index=True, max_length=50)
    sheet_name: Optional[str] = Field(default=None, max_length=255)
    entry_metadata: Dict[str, Any] = Field(default_factory=dict, sa_column=Column("metadata", JSON))
    details: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utcnow, index=True)


# ============================================================
# DAILY USAGE COUNTER (free plan quotas)
# ============================================================
class UsageCounter(SQLModel, table=True):
    __tablename__ = "usage_counter"
    __table_args__ = (UniqueConstraint("user_id", "day", "family", name="uq_usage_user_day_family"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=64)
    day: date = Field(index=True)
    family: str = Field(max_length=30)
    count: int = Field(default=0)


# ============================================================
# PAYMENT RECORD
# ============================================================
class Payment(SQLModel, table=True):
    __tablename__ = "payments"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, max_length=255)
    amount: int = Field(default=0)  # minor currency units
    reference: str = Field(index=True, max_length=255)
    status: str = Field(default="success", max_length=30)
    mode: str = Field(default=PaymentMode.ONE_TIME.value, max_length=20)
    created_at: datetime = Field(default_factory=utcnow, index=True)


# ============================================================
# SUPPORT
# ============================================================
class SupportSession(SQLModel, table=True):
    __tablename__ = "support_sessions"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=64)
    session_key: str = Field(index=True, unique=True, max_length=128)
    created_by: str = Field(max_length=64)
    expires_at: datetime
    read_only: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)


class SupportTicket(SQLModel, table=True):
    __tablename__ = "support_tickets"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=64)
    subject: str = Field(max_length=200)
    body: str
    status: str = Field(default=TicketStatus.OPEN.value, max_length=20)
    created_at: datetime = Field(default_factory=utcnow, index=True)


class SupportResponse(SQLModel, table=True):
    __tablename__ = "support_responses"

    id: Optional[int] = Field(default=None, primary_key=True)
    ticket_id: int = Field(foreign_key="support_tickets.id", index=True)
    user_id: str = Field(max_length=64)
    response: str
    created_at: datetime = Field(default_factory=utcnow)


# ============================================================
# PRICING + LEGAL PAGES
# ============================================================
class Pricing(SQLModel, table=True):
    __tablename__ = "pricing"

    id: Optional[int] = Field(default=None, primary_key=True)
    monthly_amount: int
    yearly_amount: int
    currency: str = Field(default="GHS", max_length=3)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class LegalPage(SQLModel, table=True):
    __tablename__ = "legal_pages"

    id: Optional[int] = Field(default=None, primary_key=True)
    slug: str = Field(index=True, unique=True, max_length=30)
    content: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
