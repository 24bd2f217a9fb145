# ================================================================
# services/audit_service.py: Audit rows + day-partitioned admin log
# ================================================================
import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlmodel import Session, select

from core.config import settings
from core.identity import Identity
from core.storage import ObjectNotFound, ObjectStorageClient, ObjectStorageError
from models.models import AuditEntry, utcnow

logger = logging.getLogger(__name__)

# actions whose sheet is pinned to the front of sheet lists
LATEST_SHEET_ACTIONS = ("add_sheet", "delete_sheet", "save_all")
MAX_AUDIT_PAGE = 500
DEFAULT_AUDIT_PAGE = 100


# ------------------------
# PER-USER AUDIT ROWS
# ------------------------
def record(
    session: Session,
    identity: Identity,
    action: str,
    sheet_name: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditEntry:
    entry = AuditEntry(
        user_id=identity.user_id,
        email=identity.email,
        action=action,
        sheet_name=sheet_name,
        entry_metadata=jsonable(metadata or {}),
        details=jsonable(details or {}),
    )
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return entry


def jsonable(value: Dict[str, Any]) -> Dict[str, Any]:
    """Round-trip through json so cell values like datetimes fit a JSON column."""
    return json.loads(json.dumps(value, default=str))


def latest_sheet(session: Session, user_id: Optional[str]) -> Optional[str]:
    if not user_id:
        return None
    entry = session.exec(
        select(AuditEntry)
        .where(AuditEntry.user_id == user_id)
        .where(AuditEntry.action.in_(LATEST_SHEET_ACTIONS))
        .order_by(desc(AuditEntry.created_at), desc(AuditEntry.id))
        .limit(1)
    ).first()
    return entry.sheet_name if entry else None


def pin_latest(sheets: List[str], latest: Optional[str]) -> List[str]:
    """Move `latest` to the front, keeping everything else in place."""
    if not latest or latest not in sheets:
        return list(sheets)
    return [latest] + [s for s in sheets if s != latest]


def list_entries(
    session: Session,
    identity: Identity,
    limit: Optional[int] = None,
    offset: int = 0,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
) -> List[Dict[str, Any]]:
    limit = min(limit or DEFAULT_AUDIT_PAGE, MAX_AUDIT_PAGE)
    offset = max(offset or 0, 0)

    query = select(AuditEntry)
    # only superadmin/owner see other users' entries
    if not identity.is_privileged:
        user_id = identity.user_id
    if user_id:
        query = query.where(AuditEntry.user_id == user_id)
    if action:
        query = query.where(AuditEntry.action == action)
    rows = session.exec(
        query.order_by(desc(AuditEntry.created_at), desc(AuditEntry.id)).offset(offset).limit(limit)
    ).all()
    return [
        {
            "ts": row.created_at,
            "actor": row.email or row.user_id or "-",
            "action": row.action,
            "sheet": row.sheet_name,
            "details": row.details or {},
            "metadata": row.entry_metadata or {},
            "email": row.email,
        }
        for row in rows
    ]


# ------------------------
# ADMIN LOG (LOGS_BUCKET, one ndjson object per UTC day)
# ------------------------
def admin_log_key(day: date) -> str:
    return f"{settings.LOGS_PREFIX}/{day.isoformat()}.ndjson"


def write_admin_log(storage: ObjectStorageClient, entry: Dict[str, Any]) -> bool:
    """Best effort: a failed write is logged and reported as False."""
    now = utcnow()
    key = admin_log_key(now.date())
    line = json.dumps({"ts": now.isoformat(), **entry}, default=str)
    try:
        try:
            existing = storage.read_bytes(settings.LOGS_BUCKET, key).decode("utf-8")
        except ObjectNotFound:
            existing = ""
        if existing and not existing.endswith("\n"):
            existing += "\n"
        storage.write(settings.LOGS_BUCKET, key, existing + line + "\n", content_type="application/x-ndjson")
        return True
    except (ObjectStorageError, UnicodeDecodeError) as e:
        logger.warning(f"⚠️ Admin log write failed for {key}: {e}")
        return False


def read_admin_log(storage: ObjectStorageClient, day: date) -> List[Dict[str, Any]]:
    try:
        raw = storage.read_bytes(settings.LOGS_BUCKET, admin_log_key(day)).decode("utf-8")
    except ObjectNotFound:
        return []
    entries = []
    for line in raw.splitlines():
        if not line.strip():
            continue
        try:
            entries.append(json.loads(line))
        except json.JSONDecodeError:
            logger.warning(f"⚠️ Skipping malformed admin log line for {day}")
    return entries
