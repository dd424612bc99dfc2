from __future__ import annotations

from ..extensions import db
from oms.time_utils import to_utc_z


class OrderStatus(db.Model):
    """
    Order status catalog row.

    System rows (org_id NULL, is_system True) are seeded once per database
    by services/order_status_service.seed_order_statuses(). A tenant may add
    its own row for an existing code to rename or recolor it; the tenant row
    shadows the system row for that tenant only.

    Transition semantics are keyed by `code` and never by name/color.
    """
    __tablename__ = "order_statuses"
    __table_args__ = (
        db.UniqueConstraint("org_id", "code", name="uq_order_statuses_org_code"),
        db.Index("ix_order_statuses_code", "code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)

    code = db.Column(db.String(32), nullable=False)
    name = db.Column(db.String(64), nullable=False)
    color = db.Column(db.String(7), nullable=False, default="#000000")
    description = db.Column(db.Text, nullable=True)

    is_system = db.Column(db.Boolean, nullable=False, default=False)
    is_default = db.Column(db.Boolean, nullable=False, default=False)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<OrderStatus id={self.id} code={self.code!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "code": self.code,
            "name": self.name,
            "color": self.color,
            "description": self.description,
            "is_system": self.is_system,
            "is_default": self.is_default,
            "sort_order": self.sort_order,
        }


class Order(db.Model):
    """
    Customer order.

    MULTI-TENANT: Orders are scoped to organizations via org_id.
    order_number is unique within an organization: ORD-YYYYMMDD-NNN.

    LIFECYCLE: status_id points at an OrderStatus row; transitions are
    driven by services/order_service.change_order_status().

    LINES: created once with the order and never edited. Each line holds a
    reservation on its variant until the order is delivered (reservation
    converted into a permanent deduction), cancelled/returned (released) or
    deleted (released).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("org_id", "order_number", name="uq_orders_org_number"),
        db.Index("ix_orders_org_status", "org_id", "status_id"),
        db.Index("ix_orders_org_payment_status", "org_id", "payment_status"),
        db.Index("ix_orders_org_created", "org_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    order_number = db.Column(db.String(64), nullable=False)

    # Customer information
    customer_name = db.Column(db.String(200), nullable=False)
    phone_number = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(200), nullable=True)
    address = db.Column(db.Text, nullable=False)
    city = db.Column(db.String(100), nullable=False)
    area = db.Column(db.String(100), nullable=True)
    landmark = db.Column(db.Text, nullable=True)

    status_id = db.Column(db.Integer, db.ForeignKey("order_statuses.id"), nullable=False, index=True)

    # Payment information
    payment_method = db.Column(db.String(32), nullable=False, default="cod")
    payment_status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    deposit_cents = db.Column(db.Integer, nullable=False, default=0)

    # Shipping information
    shipping_company = db.Column(db.String(100), nullable=True)
    tracking_number = db.Column(db.String(100), nullable=True)
    shipped_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Totals (cents)
    products_total_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cost_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    final_total_cents = db.Column(db.Integer, nullable=False, default=0)
    profit_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    customer_notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    updated_by_user_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    status = db.relationship("OrderStatus")
    lines = db.relationship(
        "OrderLine",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLine.id",
    )
    history = db.relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} org_id={self.org_id}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "phone_number": self.phone_number,
            "email": self.email,
            "address": self.address,
            "city": self.city,
            "area": self.area,
            "landmark": self.landmark,
            "status": self.status.to_dict() if self.status else None,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "deposit_cents": self.deposit_cents,
            "shipping_company": self.shipping_company,
            "tracking_number": self.tracking_number,
            "shipped_at": to_utc_z(self.shipped_at) if self.shipped_at else None,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "products_total_cents": self.products_total_cents,
            "shipping_cost_cents": self.shipping_cost_cents,
            "discount_cents": self.discount_cents,
            "final_total_cents": self.final_total_cents,
            "profit_cents": self.profit_cents,
            "notes": self.notes,
            "customer_notes": self.customer_notes,
            "created_by_user_id": self.created_by_user_id,
            "updated_by_user_id": self.updated_by_user_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    __tablename__ = "order_lines"
    __table_args__ = (
        db.Index("ix_order_lines_org_order", "org_id", "order_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("variants.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)

    # Sale price and cost snapshot at time of order
    unit_price_cents = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)

    line_total_cents = db.Column(db.Integer, nullable=False, default=0)
    line_profit_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="lines")
    variant = db.relationship("Variant")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "variant_id": self.variant_id,
            "sku": self.variant.sku if self.variant else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "line_total_cents": self.line_total_cents,
            "line_profit_cents": self.line_profit_cents,
            "created_at": to_utc_z(self.created_at),
        }


class OrderStatusHistory(db.Model):
    """Append-only status transition log for an order."""
    __tablename__ = "order_status_history"
    __table_args__ = (
        db.Index("ix_order_history_org_order", "org_id", "order_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)

    from_status_id = db.Column(db.Integer, db.ForeignKey("order_statuses.id"), nullable=False)
    to_status_id = db.Column(db.Integer, db.ForeignKey("order_statuses.id"), nullable=False)

    changed_by_user_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", back_populates="history")
    from_status = db.relationship("OrderStatus", foreign_keys=[from_status_id])
    to_status = db.relationship("OrderStatus", foreign_keys=[to_status_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "from_status": self.from_status.code if self.from_status else None,
            "to_status": self.to_status.code if self.to_status else None,
            "from_status_id": self.from_status_id,
            "to_status_id": self.to_status_id,
            "changed_by_user_id": self.changed_by_user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
