from models.models import UserStatus


def test_signup_login_me(client):
    signup = client.post("/auth/signup", json={"email": "New@Example.com", "password": "longenough"})
    assert signup.status_code == 200
    body = signup.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "new@example.com"
    assert body["user"]["plan"] == "free"

    login = client.post("/auth/login", json={"email": "new@example.com", "password": "longenough"})
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).json()
    assert me["email"] == "new@example.com"
    assert me["plan"] == "free"
    assert me["workbook_key"] == f"users/{me['user_id']}/uploaded.xlsx"
    assert me["is_owner"] is False


def test_duplicate_signup(client):
    payload = {"email": "dup@example.com", "password": "longenough"}
    client.post("/auth/signup", json=payload)
    response = client.post("/auth/signup", json=payload)
    assert response.status_code == 400


def test_short_password_is_a_400(client):
    response = client.post("/auth/signup", json={"email": "a@example.com", "password": "short"})
    assert response.status_code == 400
    assert response.json()["error"].startswith("password")


def test_bad_credentials(client):
    client.post("/auth/signup", json={"email": "b@example.com", "password": "longenough"})
    response = client.post("/auth/login", json={"email": "b@example.com", "password": "wrongpass"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid email or password."}


def test_banned_account_is_403(client, make_user, auth_headers):
    user = make_user(status=UserStatus.BANNED.value)
    response = client.get("/auth/me", headers=auth_headers(user))
    assert response.status_code == 403
    assert response.json() == {"error": "Account is banned"}


def test_health_and_root(client):
    assert client.get("/health").json()["ok"] is True
    assert client.get("/").json() == {"message": "Backend running"}
