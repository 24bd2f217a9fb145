# routes/audit.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from core.database import get_session
from core.gate import gate
from core.identity import Identity
from services import audit_service

router = APIRouter(tags=["Audit"])


@router.get("/list")
def list_audit_entries(
    limit: int = Query(default=audit_service.DEFAULT_AUDIT_PAGE, ge=1),
    offset: int = Query(default=0, ge=0),
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    identity: Identity = Depends(gate("audit:list")),
    session: Session = Depends(get_session),
):
    """Reverse-chronological audit entries; non-privileged callers only see their own."""
    entries = audit_service.list_entries(session, identity, limit, offset, user_id=user_id, action=action)
    return {"entries": entries}
