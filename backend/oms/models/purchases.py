from __future__ import annotations

from ..extensions import db
from oms.time_utils import to_utc_z


class PurchaseInvoice(db.Model):
    """
    Supplier purchase invoice with approval status.

    LIFECYCLE:
    - pending:  created/edited, no stock effect
    - accepted: stock applied to variants, unit cost re-blended
    - rejected: no stock effect

    Any status may move to any other. Moving into accepted applies stock
    and cost; moving out of accepted reverses both (see
    services/purchase_service.py). Lines may not be edited, and the
    invoice may not be deleted, while accepted.
    """
    __tablename__ = "purchase_invoices"
    __table_args__ = (
        db.UniqueConstraint("org_id", "receipt_number", name="uq_purchase_invoices_org_receipt"),
        db.Index("ix_purchase_invoices_org_status", "org_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id", ondelete="SET NULL"), nullable=True, index=True)

    receipt_number = db.Column(db.String(120), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier")
    lines = db.relationship(
        "PurchaseLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="PurchaseLine.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseInvoice id={self.id} receipt={self.receipt_number!r} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "supplier_id": self.supplier_id,
            "supplier": self.supplier.to_dict() if self.supplier else None,
            "receipt_number": self.receipt_number,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "total_cents": self.total_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class PurchaseLine(db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = (
        db.Index("ix_purchase_lines_org_invoice", "org_id", "invoice_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("purchase_invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)

    line_subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("PurchaseInvoice", back_populates="lines")
    variant = db.relationship("Variant")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "variant_id": self.variant_id,
            "sku": self.variant.sku if self.variant else None,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "line_subtotal_cents": self.line_subtotal_cents,
            "line_total_cents": self.line_total_cents,
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseAuditEntry(db.Model):
    """
    Append-only audit trail for purchase invoices.

    - No updates or deletes, ever. Entries outlive their invoice, so
      invoice_id is a plain column rather than a cascading foreign key.
    - sequence is a per-invoice counter; it is the ordering key used to
      find "the most recent price_updated entry" during rollback.
    - changes holds per-variant before/after facts (stock or price). For
      price_updated entries this is the data replayed to undo a cost blend.
    """
    __tablename__ = "purchase_audit_entries"
    __table_args__ = (
        db.UniqueConstraint("org_id", "invoice_id", "sequence", name="uq_purchase_audit_invoice_sequence"),
        db.Index("ix_purchase_audit_org_invoice", "org_id", "invoice_id"),
        db.Index("ix_purchase_audit_invoice_action", "invoice_id", "action"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    action = db.Column(db.String(32), nullable=False, index=True)

    old_data = db.Column(db.JSON, nullable=True)
    new_data = db.Column(db.JSON, nullable=True)
    changes = db.Column(db.JSON, nullable=True)

    description = db.Column(db.Text, nullable=True)
    actor_user_id = db.Column(db.Integer, nullable=True, index=True)
    ip_address = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<PurchaseAuditEntry invoice={self.invoice_id} seq={self.sequence} action={self.action}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "invoice_id": self.invoice_id,
            "sequence": self.sequence,
            "action": self.action,
            "old_data": self.old_data,
            "new_data": self.new_data,
            "changes": self.changes,
            "description": self.description,
            "actor_user_id": self.actor_user_id,
            "ip_address": self.ip_address,
            "created_at": to_utc_z(self.created_at),
        }
