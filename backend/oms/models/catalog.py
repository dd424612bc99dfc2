from __future__ import annotations

from ..extensions import db
from oms.time_utils import to_utc_z

class Variant(db.Model):
    """
    A single sellable SKU-level unit and its stock position.

    MULTI-TENANT: Variants are scoped to organizations via org_id.
    SKUs are unique within an organization.

    STOCK MODEL:
    - stock_on_hand: physical units held
    - reserved: units earmarked by open orders, not yet deducted
    - unit_cost_cents: weighted-average unit cost (None until first purchase)
    - cost_version: bumped on every cost write; purchase audit entries
      record it so a rollback can tell whether anything re-blended the cost

    INVARIANT: 0 <= reserved <= stock_on_hand at rest.

    Rows are created by catalog management. The stock/cost columns are
    written only through services/stock_ledger.py.
    """
    __tablename__ = "variants"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_variants_org_sku"),
        db.CheckConstraint("stock_on_hand >= 0", name="ck_variants_stock_non_negative"),
        db.CheckConstraint("reserved >= 0", name="ck_variants_reserved_non_negative"),
        db.Index("ix_variants_org_name", "org_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    sku = db.Column(db.String(120), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    stock_on_hand = db.Column(db.Integer, nullable=False, default=0)
    reserved = db.Column(db.Integer, nullable=False, default=0)

    # Authoritative storage in cents
    unit_cost_cents = db.Column(db.Integer, nullable=True)
    cost_version = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("variants", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available(self) -> int:
        return (self.stock_on_hand or 0) - (self.reserved or 0)

    def __repr__(self) -> str:
        return (
            f"<Variant id={self.id} sku={self.sku!r} on_hand={self.stock_on_hand} "
            f"reserved={self.reserved} cost={self.unit_cost_cents}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "sku": self.sku,
            "name": self.name,
            "stock_on_hand": self.stock_on_hand,
            "reserved": self.reserved,
            "available": self.available,
            "unit_cost_cents": self.unit_cost_cents,
            "cost_version": self.cost_version,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    """
    Supplier referenced by purchase invoices.

    MULTI-TENANT: Suppliers are scoped to organizations via org_id.
    Supplier codes are unique within an organization when specified.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_suppliers_org_code"),
        db.Index("ix_suppliers_org_active", "org_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(64), nullable=True, index=True)

    contact_name = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(64), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    organization = db.relationship("Organization", backref=db.backref("suppliers", lazy=True))

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "name": self.name,
            "code": self.code,
            "contact_name": self.contact_name,
            "contact_phone": self.contact_phone,
            "contact_email": self.contact_email,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
