# core/identity.py
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
import logging

from fastapi import Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from core.config import settings
from core.database import get_session
from core.errors import AuthenticationRequired, PermissionDenied
from core.security import decode_token, oauth2_scheme
from models.models import User, UserRole, PlanName, UserStatus, utcnow

logger = logging.getLogger(__name__)

GUEST_ROLE = "guest"
ANON_PLAN = "anon"


# ========================================
# 🪪 Resolved caller
# ========================================
@dataclass(frozen=True)
class Identity:
    user_id: Optional[str]
    email: Optional[str]
    role: str
    plan: str
    status: str
    workbook_key: str

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None

    @property
    def is_owner(self) -> bool:
        return is_owner_email(self.email)

    @property
    def is_superadmin(self) -> bool:
        return self.role == UserRole.SUPERADMIN.value

    @property
    def is_privileged(self) -> bool:
        """Superadmin or owner: the audience of every cross-user view."""
        return self.is_superadmin or self.is_owner

    @property
    def is_admin_or_above(self) -> bool:
        return self.role in (UserRole.ADMIN.value, UserRole.SUPERADMIN.value) or self.is_owner

    @property
    def is_premium(self) -> bool:
        return self.plan == PlanName.PAID.value or self.is_privileged


def is_owner_email(email: Optional[str]) -> bool:
    owner = (settings.OWNER_EMAIL or "").strip().lower()
    if not owner or not email:
        return False
    return email.strip().lower() == owner


def user_prefix(user_id: str) -> str:
    return f"{settings.USER_FILES_PREFIX}/{user_id}"


def default_workbook_key(user_id: str) -> str:
    return f"{user_prefix(user_id)}/uploaded.xlsx"


def anonymous_identity() -> Identity:
    return Identity(
        user_id=None,
        email=None,
        role=GUEST_ROLE,
        plan=ANON_PLAN,
        status=UserStatus.ACTIVE.value,
        workbook_key=settings.EXCEL_FILE_KEY,
    )


def effective_plan(user: User, now: Optional[datetime] = None) -> str:
    """A paid plan past its expiry counts as free."""
    if user.plan == PlanName.PAID.value and user.premium_expires_at is not None:
        if user.premium_expires_at <= (now or utcnow()):
            return PlanName.FREE.value
    return user.plan or PlanName.FREE.value


def identity_for_user(user: User) -> Identity:
    return Identity(
        user_id=user.id,
        email=user.email,
        role=user.role or UserRole.USER.value,
        plan=effective_plan(user),
        status=user.status or UserStatus.ACTIVE.value,
        workbook_key=user.user_file_key or default_workbook_key(user.id),
    )


# ========================================
# 🔍 Resolution
# ========================================
def resolve_identity(token: Optional[str], session: Session) -> Identity:
    """
    Map a bearer credential to an Identity. Never raises: a bad token is
    anonymous, a missing or unreadable profile is a plain free user.
    """
    if not token:
        return anonymous_identity()
    try:
        payload = decode_token(token)
    except AuthenticationRequired:
        return anonymous_identity()

    user_id = payload.get("sub")
    if not user_id:
        return anonymous_identity()
    email = payload.get("email")

    try:
        user = session.get(User, str(user_id))
    except SQLAlchemyError as e:
        logger.warning(f"⚠️ Profile lookup failed for {user_id}: {e}")
        user = None

    if user is None:
        return Identity(
            user_id=str(user_id),
            email=email,
            role=UserRole.USER.value,
            plan=PlanName.FREE.value,
            status=UserStatus.ACTIVE.value,
            workbook_key=default_workbook_key(str(user_id)),
        )
    return identity_for_user(user)


# ========================================
# 🧩 FastAPI dependencies
# ========================================
def get_identity(
    token: Optional[str] = Depends(oauth2_scheme),
    session: Session = Depends(get_session),
) -> Identity:
    return resolve_identity(token, session)


def require_identity(identity: Identity = Depends(get_identity)) -> Identity:
    """Authenticated, active caller."""
    if identity.is_anonymous:
        raise AuthenticationRequired()
    if identity.status == UserStatus.BANNED.value:
        raise PermissionDenied("Account is banned")
    if identity.status == UserStatus.DELETED.value:
        raise PermissionDenied("Account has been deleted")
    return identity
