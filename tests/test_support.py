from datetime import timedelta

from models.models import SupportSession, UserRole, utcnow
from services.audit_service import read_admin_log


def test_assist_session_lifecycle(client, make_user, auth_headers):
    superadmin = make_user(role=UserRole.SUPERADMIN.value)
    target = make_user()

    created = client.post("/admin/support/assist", json={"user_id": target.id}, headers=auth_headers(superadmin))
    assert created.status_code == 200
    key = created.json()["session_key"]
    assert key.startswith(f"support_{target.id}_")

    validated = client.get("/support/session/validate", params={"key": key}).json()
    assert validated == {"valid": True, "user_id": target.id, "read_only": True}


def test_assist_requires_superadmin(client, make_user, auth_headers):
    response = client.post(
        "/admin/support/assist", json={"user_id": "someone"}, headers=auth_headers(make_user(role=UserRole.ADMIN.value))
    )
    assert response.status_code == 403


def test_validate_unknown_and_expired_keys(client, session):
    session.add(SupportSession(
        user_id="u1", session_key="support_old", created_by="admin", expires_at=utcnow() - timedelta(minutes=1),
    ))
    session.commit()

    unknown = client.get("/support/session/validate", params={"key": "support_nope"})
    assert unknown.status_code == 404
    assert unknown.json() == {"error": "Invalid session key"}

    expired = client.get("/support/session/validate", params={"key": "support_old"})
    assert expired.status_code == 410
    assert expired.json() == {"error": "Session expired"}


def test_tickets_visibility_and_responses(client, make_user, auth_headers):
    alice = make_user()
    bob = make_user()
    admin = make_user(role=UserRole.ADMIN.value)

    ticket = client.post(
        "/support/tickets", json={"subject": "Help", "body": "Save fails"}, headers=auth_headers(alice)
    ).json()["ticket"]
    client.post("/support/tickets", json={"subject": "Other", "body": "..."}, headers=auth_headers(bob))

    own = client.get("/support/tickets", headers=auth_headers(alice)).json()["tickets"]
    assert [t["subject"] for t in own] == ["Help"]
    assert len(client.get("/support/tickets", headers=auth_headers(admin)).json()["tickets"]) == 2

    denied = client.post(
        "/support/tickets/respond", json={"ticket_id": ticket["id"], "response": "hi"}, headers=auth_headers(bob)
    )
    assert denied.status_code == 403
    assert denied.json() == {"error": "Forbidden: support staff only"}

    answered = client.post(
        "/support/tickets/respond", json={"ticket_id": ticket["id"], "response": "Fixed"}, headers=auth_headers(admin)
    )
    assert answered.json()["response"]["response"] == "Fixed"
    own = client.get("/support/tickets", headers=auth_headers(alice)).json()["tickets"]
    assert own[0]["status"] == "responded"


def test_respond_to_missing_ticket(client, make_user, auth_headers):
    admin = make_user(role=UserRole.ADMIN.value)
    response = client.post("/support/tickets/respond", json={"ticket_id": 999, "response": "x"}, headers=auth_headers(admin))
    assert response.status_code == 404


def test_legal_pages(client, make_user, auth_headers):
    assert client.get("/legal/terms").json() == {"content": "", "updated_at": None}

    superadmin = make_user(role=UserRole.SUPERADMIN.value)
    denied = client.post("/legal/terms", json={"content": "Be nice"}, headers=auth_headers(superadmin))
    assert denied.status_code == 403

    owner = make_user(email="owner@example.com")
    assert client.post("/legal/terms", json={"content": "Be nice"}, headers=auth_headers(owner)).json() == {"success": True}
    terms = client.get("/legal/terms").json()
    assert terms["content"] == "Be nice"
    assert terms["updated_at"] is not None
    assert client.get("/legal/privacy").json()["content"] == ""


def test_legal_edits_are_written_to_admin_log(client, make_user, auth_headers, storage):
    headers = auth_headers(make_user(email="owner@example.com"))
    client.post("/legal/terms", json={"content": "Be nice"}, headers=headers)
    client.post("/legal/privacy", json={"content": "We keep little"}, headers=headers)

    entries = read_admin_log(storage, utcnow().date())
    assert [(e["action"], e["by"]) for e in entries] == [
        ("legal_terms_update", "owner@example.com"),
        ("legal_privacy_update", "owner@example.com"),
    ]
