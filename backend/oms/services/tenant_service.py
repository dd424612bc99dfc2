"""
Multi-Tenant Service: Tenant Validation Helpers

WHY: Every request is scoped to exactly one organization. The resolver
decorator (decorators.require_tenant) uses these helpers; services take
org_id explicitly and filter every query by it.

SECURITY INVARIANTS:
1. Every tenant-scoped request has g.org_id set
2. Unknown or deactivated organizations are rejected before any work
3. Rows owned by another org are reported as "not found", never "forbidden"
"""

from __future__ import annotations

from ..extensions import db
from ..models import Organization


class TenantAccessError(Exception):
    """Raised when a request cannot be tied to an active organization."""
    pass


def require_org(org_id: int) -> Organization:
    """Return the active organization or raise TenantAccessError."""
    org = db.session.get(Organization, org_id)
    if not org:
        raise TenantAccessError("Organization not found")
    if not org.is_active:
        raise TenantAccessError("Organization is deactivated")
    return org


def create_organization(name: str, code: str | None = None) -> Organization:
    name = (name or "").strip()
    if not name:
        raise ValueError("name is required")
    if code:
        code = code.strip().upper()
        if db.session.query(Organization).filter_by(code=code).first():
            raise ValueError(f"Organization code {code} already exists")

    org = Organization(name=name, code=code or None, is_active=True)
    db.session.add(org)
    db.session.commit()
    return org


def list_organizations() -> list[Organization]:
    return db.session.query(Organization).order_by(Organization.id).all()
