from fastapi import APIRouter, Depends
from sqlmodel import Session, select
import uuid
import logging
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models.models import User, UserRole, PlanName, UserStatus
from schemas.user_schema import UserCreate, UserLogin, TokenRead, UserRead, IdentityRead
from core.config import settings
from core.database import get_session
from core.errors import AppError, AuthenticationRequired, Conflict, PermissionDenied
from core.identity import Identity, require_identity
from core.security import hash_password, verify_password, create_token_for_user

router = APIRouter(tags=["Authentication"])
logger = logging.getLogger(__name__)


def _token_response(user: User) -> TokenRead:
    return TokenRead(access_token=create_token_for_user(user), user=UserRead.model_validate(user))


# ==========================================================
# ✅ Public Signup: creates a free-plan profile
# ==========================================================
@router.post("/signup", response_model=TokenRead)
def public_signup(user_data: UserCreate, session: Session = Depends(get_session)):
    email = user_data.email.strip().lower()
    user_id = str(uuid.uuid4())
    new_user = User(
        id=user_id,
        email=email,
        password_hash=hash_password(user_data.password),
        role=UserRole.USER.value,
        plan=PlanName.FREE.value,
        status=UserStatus.ACTIVE.value,
        app_name=user_data.app_name,
    )
    try:
        session.add(new_user)
        session.commit()
        session.refresh(new_user)
    except IntegrityError:
        session.rollback()
        raise Conflict("An account with this email already exists. Please log in instead.")
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"❌ Database error during signup: {e}")
        raise AppError("Something went wrong while creating your account. Please try again later.")

    logger.info(f"📝 Signup for {email}")
    return _token_response(new_user)


# ==========================================================
# ✅ Login
# ==========================================================
@router.post("/login", response_model=TokenRead)
def login(credentials: UserLogin, session: Session = Depends(get_session)):
    email = credentials.email.strip().lower()
    db_user = session.exec(select(User).where(User.email == email)).first()
    if not db_user or not verify_password(credentials.password, db_user.password_hash):
        raise AuthenticationRequired("Invalid email or password.")
    if db_user.status == UserStatus.BANNED.value:
        raise PermissionDenied("Your account is banned.")
    if db_user.status == UserStatus.DELETED.value:
        raise PermissionDenied("Your account has been deleted.")
    return _token_response(db_user)


# ==========================================================
# ✅ Resolved identity of the caller
# ==========================================================
@router.get("/me", response_model=IdentityRead)
def get_current_user_info(
    identity: Identity = Depends(require_identity),
    session: Session = Depends(get_session),
):
    profile = session.get(User, identity.user_id)
    return IdentityRead(
        user_id=identity.user_id,
        email=identity.email,
        role=identity.role,
        plan=identity.plan,
        status=identity.status,
        workbook_key=identity.workbook_key,
        is_owner=identity.is_owner,
        is_superadmin=identity.is_superadmin,
        ads_required=settings.ADS_REQUIRED,
        profile=UserRead.model_validate(profile) if profile else None,
    )
