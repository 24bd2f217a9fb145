# ================================================================
# services/payment_service.py: Paystack checkout + plan upgrades
# ================================================================
import calendar
import hashlib
import hmac
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import httpx
from sqlmodel import Session, select

from core.config import settings
from core.errors import AppError, UpstreamFailure, ValidationFailed
from models.models import Payment, PaymentMode, PlanName, User, utcnow

logger = logging.getLogger(__name__)


# ------------------------
# PAYSTACK CLIENT
# ------------------------
class PaystackClient:
    """Thin wrapper over the two Paystack transaction endpoints we use."""

    def __init__(self, secret_key: str, base_url: str, transport: Optional[httpx.BaseTransport] = None):
        self.secret_key = secret_key
        self._client = httpx.Client(
            base_url=base_url,
            headers={"Authorization": f"Bearer {secret_key}"},
            timeout=15.0,
            transport=transport,
        )

    def _call(self, method: str, url: str, fallback: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"❌ Paystack {method} {url} failed: {e}")
            raise UpstreamFailure(f"{fallback}: {e}")
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.is_error or data.get("status") is not True:
            status_code = response.status_code if response.is_error else 502
            raise UpstreamFailure(data.get("message") or fallback, status_code=status_code)
        return data

    def initialize(self, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._call("POST", "/transaction/initialize", "Paystack init failed", json=body)

    def verify(self, reference: str) -> Dict[str, Any]:
        return self._call("GET", f"/transaction/verify/{reference}", "Verification failed")

    def close(self) -> None:
        self._client.close()


def get_paystack_client():
    client = PaystackClient(settings.PAYSTACK_SECRET_KEY, settings.PAYSTACK_BASE_URL)
    try:
        yield client
    finally:
        client.close()


def build_init_body(email: str, mode: Optional[str], amount: Any = None) -> Dict[str, Any]:
    if mode == PaymentMode.MONTHLY.value:
        if not settings.PAYSTACK_MONTHLY_PLAN:
            raise AppError("Monthly plan code not configured")
        return {
            "email": email,
            "plan": settings.PAYSTACK_MONTHLY_PLAN,
            "callback_url": settings.PAYSTACK_CALLBACK,
        }
    try:
        minor_units = int(amount)
    except (TypeError, ValueError):
        raise ValidationFailed("Amount is required for one-time payments")
    if minor_units <= 0:
        raise ValidationFailed("Amount must be a positive number of minor units")
    return {
        "email": email,
        "amount": minor_units,
        "currency": settings.PAYSTACK_CURRENCY,
        "callback_url": settings.PAYSTACK_CALLBACK,
    }


# ------------------------
# WEBHOOK SIGNATURE
# ------------------------
def sign(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: Optional[str] = None) -> bool:
    secret = settings.PAYSTACK_SECRET_KEY if secret is None else secret
    if not secret or not signature:
        return False
    return hmac.compare_digest(sign(body, secret), signature)


def mode_for_plan_code(plan_code: Optional[str]) -> str:
    if plan_code and plan_code == settings.PAYSTACK_MONTHLY_PLAN:
        return PaymentMode.MONTHLY.value
    return PaymentMode.ONE_TIME.value


# ------------------------
# PLAN UPGRADE
# ------------------------
def add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def plan_expiry(mode: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Monthly buys one calendar month, anything else one year."""
    now = now or utcnow()
    return add_months(now, 1 if mode == PaymentMode.MONTHLY.value else 12)


def apply_successful_payment(
    session: Session,
    email: str,
    amount: int,
    reference: str,
    mode: str,
    status: str = "success",
    now: Optional[datetime] = None,
) -> Tuple[Optional[User], datetime]:
    """
    Mark the profile with `email` as paid until the computed expiry and
    record the payment row. Returns (profile or None, expiry).
    """
    expires_at = plan_expiry(mode, now)
    user = session.exec(select(User).where(User.email == email.strip().lower())).first()
    if user is None:
        logger.warning(f"⚠️ Payment {reference} for unknown profile {email}")
    else:
        user.plan = PlanName.PAID.value
        user.premium_expires_at = expires_at
        session.add(user)

    session.add(Payment(email=email.strip().lower(), amount=int(amount or 0), reference=reference, status=status, mode=mode))
    session.commit()
    if user is not None:
        session.refresh(user)
    logger.info(f"💳 Payment {reference} applied for {email} until {expires_at.isoformat()}")
    return user, expires_at
