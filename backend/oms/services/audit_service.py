# Overview: Append-only purchase audit trail; also the source of truth for cost rollback.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import PurchaseAuditEntry
from ..enums import PurchaseAuditAction

"""
Purchase Audit Trail Invariants (authoritative)

- Append-only: entries are never updated or deleted, and outlive the
  invoice they describe.
- Entries are written inside the same DB transaction as the change they
  record, so a rolled-back change leaves no entry behind.
- sequence is a per-invoice counter starting at 1. Callers hold the
  invoice row lock while appending, so the counter cannot race.
- "Most recent" always means highest sequence, never created_at.
"""


def _next_sequence(org_id: int, invoice_id: int) -> int:
    current = (
        db.session.query(func.max(PurchaseAuditEntry.sequence))
        .filter(
            PurchaseAuditEntry.org_id == org_id,
            PurchaseAuditEntry.invoice_id == invoice_id,
        )
        .scalar()
    )
    return (current or 0) + 1


def append_audit_entry(
    *,
    org_id: int,
    invoice_id: int,
    action: PurchaseAuditAction | str,
    old_data: dict | None = None,
    new_data: dict | None = None,
    changes: dict | None = None,
    description: str | None = None,
    actor_user_id: int | None = None,
    ip_address: str | None = None,
) -> PurchaseAuditEntry:
    action_value = action.value if isinstance(action, PurchaseAuditAction) else str(action)

    entry = PurchaseAuditEntry(
        org_id=org_id,
        invoice_id=invoice_id,
        sequence=_next_sequence(org_id, invoice_id),
        action=action_value,
        old_data=old_data,
        new_data=new_data,
        changes=changes,
        description=description,
        actor_user_id=actor_user_id,
        ip_address=ip_address,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def latest_entry(
    org_id: int,
    invoice_id: int,
    action: PurchaseAuditAction | str,
    *,
    after_sequence: int | None = None,
) -> PurchaseAuditEntry | None:
    """Highest-sequence entry of the given action, optionally newer than after_sequence."""
    action_value = action.value if isinstance(action, PurchaseAuditAction) else str(action)
    query = db.session.query(PurchaseAuditEntry).filter(
        PurchaseAuditEntry.org_id == org_id,
        PurchaseAuditEntry.invoice_id == invoice_id,
        PurchaseAuditEntry.action == action_value,
    )
    if after_sequence is not None:
        query = query.filter(PurchaseAuditEntry.sequence > after_sequence)
    return query.order_by(PurchaseAuditEntry.sequence.desc()).first()


def list_audit_entries(org_id: int, invoice_id: int) -> list[PurchaseAuditEntry]:
    """All entries for an invoice, newest first."""
    return (
        db.session.query(PurchaseAuditEntry)
        .filter(
            PurchaseAuditEntry.org_id == org_id,
            PurchaseAuditEntry.invoice_id == invoice_id,
        )
        .order_by(PurchaseAuditEntry.sequence.desc())
        .all()
    )
