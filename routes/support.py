# routes/support.py
import logging
from datetime import timezone
from typing import List

from fastapi import APIRouter, Depends, Query, Request
from sqlmodel import Session, select

from core.database import get_session
from core.errors import Gone, NotFound
from core.gate import gate
from core.identity import Identity, require_identity
from models.models import SupportResponse, SupportSession, SupportTicket, TicketStatus, utcnow
from schemas.support_schema import (
    SessionValidation, TicketCreate, TicketRead, TicketRespond, ResponseRead,
)
from services.realtime_service import broadcast

router = APIRouter(tags=["Support"])
logger = logging.getLogger(__name__)


def _naive(moment):
    # stored timestamps are naive UTC
    return moment.astimezone(timezone.utc).replace(tzinfo=None) if moment.tzinfo else moment


@router.get("/session/validate", response_model=SessionValidation)
def validate_session(key: str = Query(..., min_length=1), session: Session = Depends(get_session)):
    support_session = session.exec(select(SupportSession).where(SupportSession.session_key == key)).first()
    if not support_session:
        raise NotFound("Invalid session key")
    if _naive(support_session.expires_at) <= utcnow():
        raise Gone("Session expired")
    return SessionValidation(user_id=support_session.user_id, read_only=support_session.read_only)


# ==================================================================
#  🎫 Tickets
# ==================================================================
@router.post("/tickets")
def create_ticket(
    data: TicketCreate,
    request: Request,
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
):
    ticket = SupportTicket(user_id=identity.user_id, subject=data.subject, body=data.body)
    session.add(ticket)
    session.commit()
    session.refresh(ticket)

    broadcast(request, "support:ticket_created", {
        "ticket_id": ticket.id, "user_id": ticket.user_id, "subject": ticket.subject,
    })
    logger.info(f"🎫 Ticket {ticket.id} opened by {identity.email}")
    return {"ticket": TicketRead.model_validate(ticket)}


@router.get("/tickets")
def list_tickets(
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
):
    """Staff see every ticket, everybody else only their own."""
    statement = select(SupportTicket)
    if not (identity.is_privileged or identity.is_admin_or_above):
        statement = statement.where(SupportTicket.user_id == identity.user_id)
    tickets: List[SupportTicket] = session.exec(statement.order_by(SupportTicket.created_at.desc())).all()
    return {"tickets": [TicketRead.model_validate(t) for t in tickets]}


@router.post("/tickets/respond")
def respond_to_ticket(
    data: TicketRespond,
    request: Request,
    identity: Identity = Depends(gate("support:respond")),
    session: Session = Depends(get_session),
):
    ticket = session.get(SupportTicket, data.ticket_id)
    if not ticket:
        raise NotFound("Ticket not found")

    response = SupportResponse(ticket_id=ticket.id, user_id=identity.user_id, response=data.response)
    ticket.status = TicketStatus.RESPONDED.value
    session.add(response)
    session.add(ticket)
    session.commit()
    session.refresh(response)

    broadcast(request, "support:ticket_responded", {"ticket_id": ticket.id, "by": identity.user_id})
    return {"success": True, "response": ResponseRead.model_validate(response)}
