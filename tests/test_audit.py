from datetime import date
from unittest import mock

from core.storage import ObjectStorageError
from models.models import UserRole, utcnow
from services import audit_service


def test_latest_sheet_tracks_mutations_only(session, make_user, identity_of):
    identity = identity_of(make_user())
    audit_service.record(session, identity, "add_sheet", "Budget")
    audit_service.record(session, identity, "save_all", "Report")
    audit_service.record(session, identity, "get_cell", "Other")
    assert audit_service.latest_sheet(session, identity.user_id) == "Report"
    assert audit_service.latest_sheet(session, None) is None


def test_pin_latest_is_stable():
    assert audit_service.pin_latest(["A", "B", "C"], "C") == ["C", "A", "B"]
    assert audit_service.pin_latest(["A", "B"], "Z") == ["A", "B"]
    assert audit_service.pin_latest(["A", "B"], None) == ["A", "B"]


def test_list_entries_scopes_regular_users(session, make_user, identity_of):
    alice = identity_of(make_user(email="alice@example.com"))
    bob = identity_of(make_user(email="bob@example.com"))
    audit_service.record(session, alice, "add_sheet", "A")
    audit_service.record(session, bob, "add_sheet", "B")

    own = audit_service.list_entries(session, alice, user_id=bob.user_id)
    assert [e["sheet"] for e in own] == ["A"]
    assert own[0]["actor"] == "alice@example.com"


def test_list_entries_privileged_sees_everyone(session, make_user, identity_of):
    admin = identity_of(make_user(role=UserRole.SUPERADMIN.value))
    user = identity_of(make_user())
    audit_service.record(session, user, "save_all", "S1", metadata={"when": utcnow()})
    audit_service.record(session, user, "get_cell", "S1")

    entries = audit_service.list_entries(session, admin)
    assert [e["action"] for e in entries] == ["get_cell", "save_all"]
    assert isinstance(entries[1]["metadata"]["when"], str)

    filtered = audit_service.list_entries(session, admin, user_id=user.user_id, action="save_all")
    assert len(filtered) == 1


def test_list_entries_caps_limit(session, make_user, identity_of):
    identity = identity_of(make_user())
    for i in range(3):
        audit_service.record(session, identity, "add_sheet", f"S{i}")
    assert len(audit_service.list_entries(session, identity, limit=2)) == 2
    assert len(audit_service.list_entries(session, identity, limit=10_000)) == 3
    assert [e["sheet"] for e in audit_service.list_entries(session, identity, limit=1, offset=1)] == ["S1"]


def test_admin_log_appends_per_day(storage):
    assert audit_service.write_admin_log(storage, {"action": "ban_user", "target": "u1"})
    assert audit_service.write_admin_log(storage, {"action": "verify_user", "target": "u1"})
    entries = audit_service.read_admin_log(storage, utcnow().date())
    assert [e["action"] for e in entries] == ["ban_user", "verify_user"]
    assert all("ts" in e for e in entries)
    assert audit_service.read_admin_log(storage, date(2000, 1, 1)) == []


def test_admin_log_failure_is_reported():
    broken = mock.Mock()
    broken.read_bytes.side_effect = ObjectStorageError("down")
    assert audit_service.write_admin_log(broken, {"action": "ban_user"}) is False
