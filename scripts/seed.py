# scripts/seed.py

import os
import sys
import uuid
import argparse

from dotenv import load_dotenv
from sqlmodel import Session, select

# Ensure root path for relative imports
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# ✅ Load environment variables before settings are read
load_dotenv()

from core.config import settings
from core.database import create_db_and_tables, engine
from core.security import hash_password
from core.storage import get_object_storage
from models.models import User, UserRole, PlanName
from services import workbook_service


def _ensure_user(session: Session, email: str, password: str, role: str, plan: str) -> User:
    user = session.exec(select(User).where(User.email == email)).first()
    if user:
        print(f"ℹ️ {email} already exists")
        return user
    user = User(
        id=str(uuid.uuid4()),
        email=email,
        password_hash=hash_password(password),
        role=role,
        plan=plan,
        verified=True,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    print(f"✅ Added {role} {email}")
    return user


def seed_master_workbook(force: bool = False):
    """Put a small master workbook in place so superadmins have something to merge."""
    storage = get_object_storage()
    if storage.exists(settings.EXCEL_BUCKET, settings.EXCEL_FILE_KEY) and not force:
        print("ℹ️ Master workbook already present")
        return
    workbook = workbook_service.new_workbook()
    workbook_service.save_all(workbook, workbook_service.DEFAULT_SHEET, [
        ["Item", "Qty", "Price"],
        ["Pens", 10, 1.5],
        ["Paper", 4, 6.25],
    ])
    storage.write(
        settings.EXCEL_BUCKET,
        settings.EXCEL_FILE_KEY,
        workbook_service.workbook_bytes(workbook),
        content_type=workbook_service.XLSX_CONTENT_TYPE,
    )
    print(f"✅ Wrote master workbook to {settings.EXCEL_BUCKET}/{settings.EXCEL_FILE_KEY}")


def seed_dev_data():
    """Owner, one superadmin and one free user, plus the master workbook."""
    print("🌱 Seeding development data...")
    create_db_and_tables()

    with Session(engine) as session:
        if settings.OWNER_EMAIL:
            _ensure_user(session, settings.OWNER_EMAIL.strip().lower(), "owner1234", UserRole.USER.value, PlanName.FREE.value)
        else:
            print("⚠️ OWNER_EMAIL is not set; skipping the owner account")
        _ensure_user(session, "superadmin@demo.com", "superadmin123", UserRole.SUPERADMIN.value, PlanName.FREE.value)
        _ensure_user(session, "free@demo.com", "member123", UserRole.USER.value, PlanName.FREE.value)

    seed_master_workbook()
    print("🌱 Development data seeding complete.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed the SheetDesk database and storage.")
    parser.add_argument(
        "--only-workbook",
        action="store_true",
        help="Only (re)write the master workbook",
    )
    args = parser.parse_args()

    if args.only_workbook:
        seed_master_workbook(force=True)
    else:
        seed_dev_data()
