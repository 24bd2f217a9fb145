from core.config import settings
from core.identity import user_prefix
from models.models import Payment, PlanName, User, UserRole, UserStatus


def test_owner_promotes_and_denotes(client, make_user, auth_headers, session):
    owner = make_user(email="owner@example.com")
    target = make_user()

    response = client.post("/admin/users/promote", json={"user_id": target.id}, headers=auth_headers(owner))
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["user"]["role"] == "superadmin"

    response = client.post(
        "/admin/users/denote", json={"user_id": target.id, "role": "admin"}, headers=auth_headers(owner)
    )
    assert response.json()["user"]["role"] == "admin"


def test_superadmin_cannot_use_owner_actions(client, make_user, auth_headers):
    superadmin = make_user(role=UserRole.SUPERADMIN.value)
    target = make_user()
    response = client.post("/admin/users/promote", json={"user_id": target.id}, headers=auth_headers(superadmin))
    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden: owner only"}


def test_invalid_role_is_rejected(client, make_user, auth_headers):
    owner = make_user(email="owner@example.com")
    response = client.post(
        "/admin/users/denote", json={"user_id": "x", "role": "god"}, headers=auth_headers(owner)
    )
    assert response.status_code == 400


def test_user_listing_requires_superadmin(client, make_user, auth_headers):
    make_user(email="findme@example.com")
    regular = make_user()
    superadmin = make_user(role=UserRole.SUPERADMIN.value)

    response = client.get("/admin/users/list", headers=auth_headers(regular))
    assert response.status_code == 403
    assert response.json() == {"error": "Forbidden: superadmin only"}

    listing = client.get("/admin/users/list", params={"search": "findme"}, headers=auth_headers(superadmin)).json()
    assert listing["count"] == 1
    assert listing["users"][0]["email"] == "findme@example.com"


def test_ban_blocks_the_account_and_is_logged(client, make_user, auth_headers):
    superadmin = make_user(role=UserRole.SUPERADMIN.value)
    target = make_user()

    response = client.post(
        "/admin/users/ban", json={"user_id": target.id, "reason": "spam"}, headers=auth_headers(superadmin)
    )
    assert response.json()["user"]["status"] == "banned"
    assert client.get("/auth/me", headers=auth_headers(target)).status_code == 403

    log = client.get("/admin/logs", headers=auth_headers(superadmin)).json()
    assert [e["action"] for e in log["entries"]] == ["ban_user"]
    assert log["entries"][0]["reason"] == "spam"


def test_verify_and_soft_delete(client, make_user, auth_headers):
    superadmin = make_user(role=UserRole.SUPERADMIN.value)
    target = make_user()
    headers = auth_headers(superadmin)

    assert client.post("/admin/users/verify", json={"user_id": target.id}, headers=headers).json()["user"]["verified"]
    deleted = client.post("/admin/users/soft-delete", json={"user_id": target.id}, headers=headers).json()
    assert deleted["user"]["status"] == UserStatus.DELETED.value
    assert client.get("/auth/me", headers=auth_headers(target)).json() == {"error": "Account has been deleted"}


def test_unknown_user_is_404(client, make_user, auth_headers):
    superadmin = make_user(role=UserRole.SUPERADMIN.value)
    response = client.post("/admin/users/verify", json={"user_id": "ghost"}, headers=auth_headers(superadmin))
    assert response.status_code == 404


def test_permadelete_removes_files_and_profile(client, make_user, auth_headers, storage, session):
    owner = make_user(email="owner@example.com")
    target = make_user()
    bystander = make_user()
    target_id = target.id
    storage.write(settings.EXCEL_BUCKET, f"{user_prefix(target.id)}/a.xlsx", b"1")
    storage.write(settings.EXCEL_BUCKET, f"{user_prefix(target.id)}/b.xlsx", b"2")
    storage.write(settings.EXCEL_BUCKET, f"{user_prefix(bystander.id)}/c.xlsx", b"3")

    response = client.post("/admin/users/permadelete", json={"user_id": target_id}, headers=auth_headers(owner))
    assert response.status_code == 200

    assert storage.list_objects(settings.EXCEL_BUCKET, f"{user_prefix(target_id)}/") == []
    assert storage.exists(settings.EXCEL_BUCKET, f"{user_prefix(bystander.id)}/c.xlsx")
    session.expire_all()
    assert session.get(User, target_id) is None


def test_subscription_metrics(client, make_user, auth_headers, session):
    owner = make_user(email="owner@example.com")
    make_user(plan=PlanName.PAID.value)
    make_user(status=UserStatus.BANNED.value)
    session.add(Payment(email="a@example.com", amount=1500, reference="r1", status="success"))
    session.add(Payment(email="a@example.com", amount=999, reference="r2", status="failed"))
    session.commit()

    metrics = client.get("/admin/subscriptions/metrics", headers=auth_headers(owner)).json()
    assert metrics["totals"] == {
        "totalUsers": 3, "paidUsers": 1, "freeUsers": 2, "bannedUsers": 1, "activeUsers": 2,
    }
    assert metrics["revenue"] == {"monthlyRevenue": 1500}
    assert set(metrics["period"]) == {"monthStart", "monthEnd"}


def test_pricing_defaults_and_update(client, make_user, auth_headers):
    headers = auth_headers(make_user(email="owner@example.com"))
    assert client.get("/admin/subscriptions/pricing", headers=headers).json() == {
        "pricing": {"monthly_amount": 500000, "yearly_amount": 5000000, "currency": "GHS"},
    }

    response = client.post(
        "/admin/subscriptions/pricing",
        json={"monthly_amount": 1000, "yearly_amount": 10000, "currency": "usd"},
        headers=headers,
    )
    assert response.json() == {"success": True}
    pricing = client.get("/admin/subscriptions/pricing", headers=headers).json()["pricing"]
    assert (pricing["monthly_amount"], pricing["currency"]) == (1000, "USD")


def test_pricing_rejects_non_positive_amounts(client, make_user, auth_headers):
    headers = auth_headers(make_user(email="owner@example.com"))
    response = client.post(
        "/admin/subscriptions/pricing",
        json={"monthly_amount": 0, "yearly_amount": 10000, "currency": "GHS"},
        headers=headers,
    )
    assert response.status_code == 400
