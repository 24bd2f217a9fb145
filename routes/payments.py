# routes/payments.py
import json
import logging
from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.config import settings
from core.database import get_session
from core.errors import IntegrityFailure, ValidationFailed
from core.identity import Identity, require_identity
from models.models import Payment
from schemas.payment_schema import PaymentInit, PaymentVerify, PaymentRead
from services.payment_service import (
    PaystackClient,
    apply_successful_payment,
    build_init_body,
    get_paystack_client,
    mode_for_plan_code,
    verify_signature,
)
from services.realtime_service import broadcast

router = APIRouter(tags=["Payments"])
logger = logging.getLogger(__name__)


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


# ==================================================================
#  ✅ Initialise a checkout
# ==================================================================
@router.post("/init")
def init_payment(
    data: PaymentInit,
    identity: Identity = Depends(require_identity),
    paystack: PaystackClient = Depends(get_paystack_client),
):
    body = build_init_body(data.email, data.mode.value, data.amount)
    result = paystack.initialize(body)
    logger.info(f"💳 Checkout initialised for {data.email} ({data.mode.value})")
    return result


# ==================================================================
#  ✅ Client-initiated verification
# ==================================================================
@router.post("/verify")
def verify_payment(
    data: PaymentVerify,
    request: Request,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
    paystack: PaystackClient = Depends(get_paystack_client),
):
    result = paystack.verify(data.reference)
    tx = _as_dict(result.get("data"))
    tx_status = tx.get("status")
    if tx_status != "success":
        raise ValidationFailed(f"Transaction not successful: {tx_status or 'unknown'}")

    email = _as_dict(tx.get("customer")).get("email") or data.email
    mode = data.mode.value
    _, expires_at = apply_successful_payment(
        session, email, tx.get("amount") or 0, data.reference, mode, status=tx_status
    )
    broadcast(request, "payments:success", {
        "email": email, "amount": tx.get("amount"), "reference": data.reference,
        "plan": "paid", "expiresAt": expires_at,
    })
    return RedirectResponse(settings.PAYSTACK_SUCCESS_REDIRECT, status_code=303)


# ==================================================================
#  ✅ Gateway webhook (signature verified, no auth)
# ==================================================================
@router.post("/webhook")
async def paystack_webhook(request: Request, session: Session = Depends(get_session)):
    payload = await request.body()
    if not verify_signature(payload, request.headers.get("x-paystack-signature")):
        logger.warning("❌ Webhook rejected: invalid signature")
        raise IntegrityFailure()

    try:
        event = json.loads(payload)
    except ValueError:
        raise ValidationFailed("Invalid payload")
    if not isinstance(event, dict):
        raise ValidationFailed("Invalid payload")

    event_type = event.get("event")
    if event_type != "charge.success":
        logger.info(f"ℹ️ Unhandled webhook event: {event_type}")
        return JSONResponse(status_code=200, content={"status": "ignored", "event": event_type})

    data = _as_dict(event.get("data"))
    reference = data.get("reference")
    email = _as_dict(data.get("customer")).get("email")
    try:
        if not email or not reference:
            raise ValueError("charge.success without customer email or reference")
        mode = mode_for_plan_code(_as_dict(data.get("plan")).get("plan_code"))
        _, expires_at = apply_successful_payment(session, email, data.get("amount") or 0, reference, mode)
        broadcast(request, "payments:success", {
            "email": email, "amount": data.get("amount"), "reference": reference,
            "plan": "paid", "expiresAt": expires_at,
        })
    except (SQLAlchemyError, ValueError, TypeError, AttributeError) as e:
        # the gateway already charged; answer 200 so it does not retry-storm
        session.rollback()
        logger.error(f"❌ Webhook reconciliation needed for reference={reference} email={email}: {e}")
        return JSONResponse(status_code=200, content={"status": "logged", "event": event_type})

    return JSONResponse(status_code=200, content={"status": "success", "event": event_type})


# ==================================================================
#  ✅ Caller's payment history
# ==================================================================
@router.get("/history", response_model=List[PaymentRead])
def get_payment_history(
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
):
    statement = (
        select(Payment)
        .where(Payment.email == (identity.email or "").lower())
        .order_by(Payment.created_at.desc())
    )
    return session.exec(statement).all()
