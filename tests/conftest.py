import os

# settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OWNER_EMAIL"] = "owner@example.com"
os.environ["PAYSTACK_SECRET_KEY"] = "sk_test_secret"
os.environ["PAYSTACK_MONTHLY_PLAN"] = "PLN_monthly"
os.environ["PAYSTACK_SUCCESS_REDIRECT"] = "/app/"

import uuid
from datetime import datetime

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel

import models.models  # noqa: F401
from core.database import build_engine, get_session
from core.identity import identity_for_user
from core.security import create_token_for_user
from core.storage import LocalObjectStorage, get_object_storage
from main import app
from models.models import PlanName, User, UserRole, UserStatus
from services.payment_service import PaystackClient, get_paystack_client

FAKE_HASH = "not-a-real-hash"


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def storage(tmp_path):
    return LocalObjectStorage(tmp_path / "objects", public_base_url="http://files.test")


@pytest.fixture
def paystack_handler():
    """Replace `.handler` in a test to script the gateway's answers."""

    class Gateway:
        requests = []

        def handler(self, request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"status": False, "message": "no gateway scripted"})

        def __call__(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self.handler(request)

    return Gateway()


@pytest.fixture
def client(engine, storage, paystack_handler):
    def override_session():
        with Session(engine) as session:
            yield session

    def override_paystack():
        paystack = PaystackClient(
            "sk_test_secret", "https://api.paystack.co", transport=httpx.MockTransport(paystack_handler)
        )
        try:
            yield paystack
        finally:
            paystack.close()

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_object_storage] = lambda: storage
    app.dependency_overrides[get_paystack_client] = override_paystack
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session):
    def _make_user(
        email=None,
        role=UserRole.USER.value,
        plan=PlanName.FREE.value,
        status=UserStatus.ACTIVE.value,
        premium_expires_at: datetime = None,
        user_file_key=None,
    ) -> User:
        user = User(
            id=str(uuid.uuid4()),
            email=email or f"{uuid.uuid4().hex[:8]}@example.com",
            password_hash=FAKE_HASH,
            role=role,
            plan=plan,
            status=status,
            premium_expires_at=premium_expires_at,
            user_file_key=user_file_key,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_token_for_user(user)}"}

    return _headers


@pytest.fixture
def identity_of():
    return identity_for_user
