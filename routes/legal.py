# routes/legal.py
from fastapi import APIRouter, Depends, Request
from sqlmodel import Session, select

from core.database import get_session
from core.gate import gate
from core.identity import Identity
from core.storage import ObjectStorageClient, get_object_storage
from models.models import LegalPage, utcnow
from schemas.legal_schema import LegalRead, LegalUpdate
from services.audit_service import write_admin_log
from services.realtime_service import broadcast

router = APIRouter(tags=["Legal"])


def _read(session: Session, slug: str) -> LegalRead:
    page = session.exec(select(LegalPage).where(LegalPage.slug == slug)).first()
    if page is None:
        return LegalRead()
    return LegalRead(content=page.content, updated_at=page.updated_at or page.created_at)


def _write(session: Session, slug: str, content: str) -> LegalPage:
    page = session.exec(select(LegalPage).where(LegalPage.slug == slug)).first()
    if page is None:
        page = LegalPage(slug=slug, content=content, updated_at=utcnow())
    else:
        page.content = content
        page.updated_at = utcnow()
    session.add(page)
    session.commit()
    session.refresh(page)
    return page


@router.get("/terms", response_model=LegalRead)
def get_terms(session: Session = Depends(get_session)):
    return _read(session, "terms")


@router.post("/terms")
def update_terms(
    data: LegalUpdate,
    request: Request,
    identity: Identity = Depends(gate("owner:legal")),
    session: Session = Depends(get_session),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    _write(session, "terms", data.content)
    write_admin_log(storage, {"action": "legal_terms_update", "by": identity.email})
    broadcast(request, "legal:terms_update", {"updated_by": identity.email})
    return {"success": True}


@router.get("/privacy", response_model=LegalRead)
def get_privacy(session: Session = Depends(get_session)):
    return _read(session, "privacy")


@router.post("/privacy")
def update_privacy(
    data: LegalUpdate,
    request: Request,
    identity: Identity = Depends(gate("owner:legal")),
    session: Session = Depends(get_session),
    storage: ObjectStorageClient = Depends(get_object_storage),
):
    _write(session, "privacy", data.content)
    write_admin_log(storage, {"action": "legal_privacy_update", "by": identity.email})
    broadcast(request, "legal:privacy_update", {"updated_by": identity.email})
    return {"success": True}
