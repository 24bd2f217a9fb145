# routes/admin.py
import logging
import secrets
import time
from datetime import date, datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func
from sqlmodel import Session, select

from core.config import settings
from core.database import get_session
from core.errors import NotFound, UpstreamFailure, ValidationFailed
from core.gate import gate
from core.identity import Identity, user_prefix
from core.storage import ObjectNotFound, ObjectStorageClient, ObjectStorageError, get_object_storage
from models.models import (
    Payment, Pricing, SupportSession, User, UserRole, UserStatus, PlanName, utcnow,
)
from schemas.admin_schema import UserTarget, RoleChange, BanRequest, UserList, AdminActionResult
from schemas.payment_schema import PricingRead, PricingUpdate
from schemas.support_schema import AssistRequest, AssistSession
from schemas.user_schema import UserRead
from services.audit_service import read_admin_log, write_admin_log
from services.realtime_service import broadcast

router = APIRouter(tags=["Admin"])
logger = logging.getLogger(__name__)

DEFAULT_PRICING = {"monthly_amount": 500000, "yearly_amount": 5000000, "currency": "GHS"}


def _get_user(session: Session, user_id: str) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def _update_user(session: Session, user: User, **changes) -> User:
    for field, value in changes.items():
        setattr(user, field, value)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


# ==================================================================
#  👑 Owner only: roles + permanent delete
# ==================================================================
@router.post("/users/promote", response_model=AdminActionResult)
def promote_user(
    data: UserTarget,
    request: Request,
    identity: Identity = Depends(gate("owner:promote")),
    session: Session = Depends(get_session),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    user = _update_user(session, _get_user(session, data.user_id), role=UserRole.SUPERADMIN.value)
    write_admin_log(storage, {"action": "promote_superadmin", "by": identity.email, "target": data.user_id})
    broadcast(request, "admin:promote", {"target": user.email, "role": user.role})
    logger.info(f"👑 {identity.email} promoted {user.email} to superadmin")
    return AdminActionResult(user=UserRead.model_validate(user))


@router.post("/users/denote", response_model=AdminActionResult)
def denote_user(
    data: RoleChange,
    request: Request,
    identity: Identity = Depends(gate("owner:denote")),
    session: Session = Depends(get_session),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    user = _update_user(session, _get_user(session, data.user_id), role=data.role)
    write_admin_log(storage, {"action": "denote_role", "by": identity.email, "target": data.user_id, "role": data.role})
    broadcast(request, "admin:denote", {"target": user.email, "role": data.role})
    return AdminActionResult(user=UserRead.model_validate(user))


@router.post("/users/permadelete", response_model=AdminActionResult)
def permanently_delete_user(
    data: UserTarget,
    request: Request,
    identity: Identity = Depends(gate("owner:permadelete")),
    session: Session = Depends(get_session),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    user = _get_user(session, data.user_id)
    email = user.email

    prefix = f"{user_prefix(data.user_id)}/"
    try:
        keys = storage.list_objects(settings.EXCEL_BUCKET, prefix)
    except ObjectStorageError as e:
        raise UpstreamFailure(f"Storage list failed: {e}")
    for key in keys:
        try:
            storage.delete(settings.EXCEL_BUCKET, key)
        except ObjectNotFound:
            pass
        except ObjectStorageError as e:
            logger.warning(f"⚠️ Could not delete {key} for {data.user_id}: {e}")

    session.delete(user)
    session.commit()

    write_admin_log(storage, {
        "action": "permanent_delete_user", "by": identity.email, "target": data.user_id,
        "email": email, "objects": len(keys),
    })
    broadcast(request, "admin:permadelete", {"target": email})
    logger.info(f"🗑️ {identity.email} permanently deleted {email} ({len(keys)} objects)")
    return AdminActionResult()


# ==================================================================
#  🛡️ Superadmin or owner: user management
# ==================================================================
@router.get("/users/list", response_model=UserList)
def list_users(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    search: Optional[str] = None,
    identity: Identity = Depends(gate("admin:manage_users")),
    session: Session = Depends(get_session),
):
    statement = select(User)
    if search and search.strip():
        statement = statement.where(User.email.ilike(f"%{search.strip()}%"))
    users = session.exec(statement.order_by(User.created_at.desc()).offset(offset).limit(limit)).all()
    return UserList(users=[UserRead.model_validate(u) for u in users], count=len(users))


@router.post("/users/ban", response_model=AdminActionResult)
def ban_user(
    data: BanRequest,
    request: Request,
    identity: Identity = Depends(gate("admin:manage_users")),
    session: Session = Depends(get_session),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    user = _update_user(
        session, _get_user(session, data.user_id), status=UserStatus.BANNED.value, ban_reason=data.reason
    )
    write_admin_log(storage, {"action": "ban_user", "by": identity.email, "target": data.user_id, "reason": data.reason})
    broadcast(request, "admin:ban", {"target": user.email, "reason": data.reason})
    return AdminActionResult(user=UserRead.model_validate(user))


@router.post("/users/verify", response_model=AdminActionResult)
def verify_user(
    data: UserTarget,
    request: Request,
    identity: Identity = Depends(gate("admin:manage_users")),
    session: Session = Depends(get_session),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    user = _update_user(session, _get_user(session, data.user_id), verified=True)
    write_admin_log(storage, {"action": "verify_user", "by": identity.email, "target": data.user_id})
    broadcast(request, "admin:verify", {"target": user.email})
    return AdminActionResult(user=UserRead.model_validate(user))


@router.post("/users/soft-delete", response_model=AdminActionResult)
def soft_delete_user(
    data: UserTarget,
    request: Request,
    identity: Identity = Depends(gate("admin:manage_users")),
    session: Session = Depends(get_session),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    user = _update_user(session, _get_user(session, data.user_id), status=UserStatus.DELETED.value)
    write_admin_log(storage, {"action": "soft_delete_user", "by": identity.email, "target": data.user_id})
    broadcast(request, "admin:soft_delete", {"target": user.email})
    return AdminActionResult(user=UserRead.model_validate(user))


@router.get("/logs")
def admin_logs(
    day: Optional[date] = Query(default=None, description="UTC day, defaults to today"),
    identity: Identity = Depends(gate("admin:logs")),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    day = day or utcnow().date()
    try:
        entries = read_admin_log(storage, day)
    except ObjectStorageError as e:
        raise UpstreamFailure(f"Storage read failed: {e}")
    return {"day": day.isoformat(), "entries": entries}


# ==================================================================
#  🧑‍💻 Support assist sessions
# ==================================================================
@router.post("/support/assist", response_model=AssistSession)
def create_assist_session(
    data: AssistRequest,
    request: Request,
    identity: Identity = Depends(gate("support:assist")),
    session: Session = Depends(get_session),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    _get_user(session, data.user_id)
    key = f"support_{data.user_id}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"
    expires_at = utcnow() + timedelta(minutes=settings.SUPPORT_SESSION_TTL_MIN)
    session.add(SupportSession(
        user_id=data.user_id,
        session_key=key,
        created_by=identity.user_id,
        expires_at=expires_at,
        read_only=True,
    ))
    session.commit()

    write_admin_log(storage, {"action": "support_assist", "by": identity.email, "target": data.user_id, "session_key": key})
    broadcast(request, "support:session_created", {"target": data.user_id, "session_key": key, "expires_at": expires_at})
    return AssistSession(session_key=key, expires_at=expires_at)


# ==================================================================
#  💰 Subscriptions (owner only)
# ==================================================================
def _month_bounds(now: datetime) -> tuple:
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    end = start.replace(year=start.year + 1, month=1) if start.month == 12 else start.replace(month=start.month + 1)
    return start, end


@router.get("/subscriptions/metrics")
def subscription_metrics(
    identity: Identity = Depends(gate("owner:metrics")),
    session: Session = Depends(get_session),
):
    def count(*conditions) -> int:
        statement = select(func.count()).select_from(User)
        for condition in conditions:
            statement = statement.where(condition)
        return session.exec(statement).one()

    month_start, month_end = _month_bounds(utcnow())
    revenue = session.exec(
        select(func.coalesce(func.sum(Payment.amount), 0))
        .where(Payment.status == "success")
        .where(Payment.created_at >= month_start)
        .where(Payment.created_at < month_end)
    ).one()

    return {
        "totals": {
            "totalUsers": count(),
            "paidUsers": count(User.plan == PlanName.PAID.value),
            "freeUsers": count(User.plan == PlanName.FREE.value),
            "bannedUsers": count(User.status == UserStatus.BANNED.value),
            "activeUsers": count(User.status.not_in([UserStatus.BANNED.value, UserStatus.DELETED.value])),
        },
        "revenue": {"monthlyRevenue": int(revenue or 0)},
        "period": {"monthStart": month_start.isoformat(), "monthEnd": month_end.isoformat()},
    }


@router.get("/subscriptions/pricing")
def get_pricing(
    identity: Identity = Depends(gate("owner:pricing")),
    session: Session = Depends(get_session),
):
    pricing = session.exec(select(Pricing).limit(1)).first()
    if pricing is None:
        return {"pricing": DEFAULT_PRICING}
    return {"pricing": PricingRead.model_validate(pricing).model_dump(mode="json")}


@router.post("/subscriptions/pricing")
def update_pricing(
    data: PricingUpdate,
    request: Request,
    identity: Identity = Depends(gate("owner:pricing")),
    session: Session = Depends(get_session),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    currency = data.currency.upper()
    if not currency.isalpha():
        raise ValidationFailed("currency must be a 3-letter code")
    pricing = session.exec(select(Pricing).limit(1)).first()
    if pricing is None:
        pricing = Pricing(monthly_amount=data.monthly_amount, yearly_amount=data.yearly_amount, currency=currency)
    else:
        pricing.monthly_amount = data.monthly_amount
        pricing.yearly_amount = data.yearly_amount
        pricing.currency = currency
        pricing.updated_at = utcnow()
    session.add(pricing)
    session.commit()

    change = {"monthly_amount": data.monthly_amount, "yearly_amount": data.yearly_amount, "currency": currency}
    write_admin_log(storage, {"action": "pricing_update", "by": identity.email, **change})
    broadcast(request, "pricing:update", change)
    return {"success": True}
