# services/quota_service.py
import logging
from datetime import date
from typing import Dict, FrozenSet, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from core.config import settings
from core.errors import QuotaExceeded
from core.identity import Identity
from models.models import PlanName, UsageCounter, utcnow

logger = logging.getLogger(__name__)

# action family -> actions sharing one daily counter
QUOTA_FAMILIES: Dict[str, FrozenSet[str]] = {
    "edits": frozenset({"add_sheet", "delete_sheet", "save_all", "get_cell"}),
}


def family_for(action: str) -> Optional[str]:
    for family, actions in QUOTA_FAMILIES.items():
        if action in actions:
            return family
    return None


def family_limit(family: str) -> int:
    return {"edits": settings.FREE_DAILY_EDIT_LIMIT}[family]


def quota_applies(identity: Identity) -> bool:
    """Daily caps bind free-plan users who are neither superadmin nor owner."""
    return identity.plan == PlanName.FREE.value and not identity.is_privileged


def today_utc() -> date:
    return utcnow().date()


def current_count(session: Session, user_id: str, family: str, day: date) -> int:
    counter = session.exec(
        select(UsageCounter)
        .where(UsageCounter.user_id == user_id)
        .where(UsageCounter.day == day)
        .where(UsageCounter.family == family)
    ).first()
    return counter.count if counter else 0


def check_quota(session: Session, identity: Identity, action: str, day: Optional[date] = None) -> None:
    """Raise QuotaExceeded when the caller has used up today's allowance for `action`."""
    family = family_for(action)
    if family is None or not quota_applies(identity):
        return
    limit = family_limit(family)
    used = current_count(session, identity.user_id, family, day or today_utc())
    if used >= limit:
        raise QuotaExceeded(f"Free plan limit: max {limit} edits/saves per day")


def increment(session: Session, identity: Identity, action: str, day: Optional[date] = None) -> None:
    """Count one successful `action`. Runs after the operation has persisted."""
    family = family_for(action)
    if family is None or not quota_applies(identity):
        return
    day = day or today_utc()
    bump = (
        update(UsageCounter)
        .where(UsageCounter.user_id == identity.user_id)
        .where(UsageCounter.day == day)
        .where(UsageCounter.family == family)
        .values(count=UsageCounter.count + 1)
    )
    result = session.connection().execute(bump)
    if result.rowcount:
        session.commit()
        return
    try:
        session.add(UsageCounter(user_id=identity.user_id, day=day, family=family, count=1))
        session.commit()
    except IntegrityError:
        # another request created today's row first
        session.rollback()
        session.connection().execute(bump)
        session.commit()


def check_row_cap(identity: Identity, rows: int) -> None:
    if quota_applies(identity) and rows > settings.FREE_MAX_ROWS_SAVE_ALL:
        raise QuotaExceeded(f"Free plan limit: max {settings.FREE_MAX_ROWS_SAVE_ALL} rows per save")
