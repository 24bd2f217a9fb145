# core/gate.py
"""
Declarative plan/role gate.

Each gated route names a rule; the rule pairs a capability predicate with the
reason string the dashboard shows when the predicate fails. Identity is
resolved first, so an unauthenticated caller gets 401 and never reaches the
plan checks.
"""
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from fastapi import Depends

from core.config import settings
from core.errors import PermissionDenied, ValidationFailed
from core.identity import Identity, require_identity


# ========================================
# 🧱 Capabilities
# ========================================
class Capability:
    def __init__(self, name: str, predicate: Callable[[Identity], bool]):
        self.name = name
        self._predicate = predicate

    def __call__(self, identity: Identity) -> bool:
        return bool(self._predicate(identity))

    def __and__(self, other: "Capability") -> "Capability":
        return Capability(f"({self.name} & {other.name})", lambda i: self(i) and other(i))

    def __or__(self, other: "Capability") -> "Capability":
        return Capability(f"({self.name} | {other.name})", lambda i: self(i) or other(i))

    def __repr__(self) -> str:
        return f"Capability({self.name})"


IsAuthenticated = Capability("authenticated", lambda i: not i.is_anonymous)
IsOwner = Capability("owner", lambda i: i.is_owner)
IsSuperadmin = Capability("superadmin", lambda i: i.is_superadmin)
IsAdminOrAbove = Capability("admin_or_above", lambda i: i.is_admin_or_above)
IsPaid = Capability("paid", lambda i: i.plan == "paid")
IsPremiumOrAbove = IsPaid | IsSuperadmin | IsOwner


@dataclass(frozen=True)
class Rule:
    capability: Capability
    reason: str


# ========================================
# 📜 Rule table
# ========================================
RULES: Dict[str, Rule] = {
    # premium features
    "excel:download": Rule(IsPremiumOrAbove, "Downloads are available only on premium plans"),
    "excel:public": Rule(IsPremiumOrAbove, "Public file access is available only on premium plans"),
    "excel:export_csv": Rule(IsPremiumOrAbove, "CSV export is available only on premium plans"),
    "excel:export_pdf": Rule(IsPremiumOrAbove, "PDF export is available only on premium plans"),
    "excel:export_pdf_multi": Rule(IsPremiumOrAbove, "Multi-sheet PDF export is available only on premium plans"),
    "audit:list": Rule(IsPremiumOrAbove, "Audit logs are not available on the free plan"),
    # privileged audience
    "realtime:events": Rule(IsSuperadmin | IsOwner, "Forbidden"),
    "admin:manage_users": Rule(IsSuperadmin | IsOwner, "Forbidden: superadmin only"),
    "admin:logs": Rule(IsSuperadmin | IsOwner, "Forbidden: superadmin only"),
    "support:assist": Rule(IsSuperadmin | IsOwner, "Forbidden: superadmin only"),
    "support:respond": Rule(IsAdminOrAbove | IsSuperadmin, "Forbidden: support staff only"),
    # owner only
    "owner:promote": Rule(IsOwner, "Forbidden: owner only"),
    "owner:denote": Rule(IsOwner, "Forbidden: owner only"),
    "owner:permadelete": Rule(IsOwner, "Forbidden: owner only"),
    "owner:metrics": Rule(IsOwner, "Forbidden: owner only"),
    "owner:pricing": Rule(IsOwner, "Forbidden: owner only"),
    "owner:legal": Rule(IsOwner, "Forbidden: owner only"),
}


def check(rule_name: str, identity: Identity) -> None:
    """Raise PermissionDenied with the rule's reason when the identity fails it."""
    rule = RULES[rule_name]
    if not rule.capability(identity):
        raise PermissionDenied(rule.reason)


def gate(rule_name: str):
    """FastAPI dependency factory: `identity = Depends(gate("excel:download"))`."""
    if rule_name not in RULES:
        raise KeyError(f"Unknown gate rule: {rule_name}")

    def dependency(identity: Identity = Depends(require_identity)) -> Identity:
        check(rule_name, identity)
        return identity

    return dependency


# ========================================
# 🎯 Target selection
# ========================================
def target_workbook_key(identity: Identity, scope: Optional[str] = None) -> str:
    """
    Superadmins may opt into the shared master workbook with `scope=master`.
    Everyone else always works on their own key.
    """
    if scope not in (None, "", "own", "master"):
        raise ValidationFailed("scope must be 'own' or 'master'")
    if scope == "master" and identity.is_superadmin:
        return settings.EXCEL_FILE_KEY
    return identity.workbook_key
