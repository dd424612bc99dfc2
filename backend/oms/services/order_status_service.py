# Overview: Order status catalog (seed, lookup, tenant overrides) and the transition table.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import OrderStatus
from ..enums import OrderStatusCode, coerce_enum
from .errors import InvalidTransitionError, NotFoundError, ValidationError

"""
Order Status Invariants (authoritative)

- Transition semantics are keyed by OrderStatusCode, never by display name.
- System rows (org_id NULL) are created once by seed_order_statuses(), an
  idempotent step run from `flask system init` (or at startup when
  SEED_STATUSES_ON_STARTUP is set).
- A tenant override row (same code, org_id set) shadows the system row's
  name/color for that tenant. Both rows carry the same code, so the
  transition table applies unchanged.
- cancelled and returned are terminal.
"""

ORDER_TRANSITIONS: dict[OrderStatusCode, frozenset[OrderStatusCode]] = {
    OrderStatusCode.NEW: frozenset({OrderStatusCode.UNDER_REVIEW, OrderStatusCode.CANCELLED}),
    OrderStatusCode.UNDER_REVIEW: frozenset({OrderStatusCode.PREPARING, OrderStatusCode.CANCELLED}),
    OrderStatusCode.PREPARING: frozenset({OrderStatusCode.READY, OrderStatusCode.CANCELLED}),
    OrderStatusCode.READY: frozenset({OrderStatusCode.SHIPPED, OrderStatusCode.CANCELLED}),
    OrderStatusCode.SHIPPED: frozenset({OrderStatusCode.DELIVERED, OrderStatusCode.RETURNED}),
    OrderStatusCode.DELIVERED: frozenset({OrderStatusCode.RETURNED}),
    OrderStatusCode.CANCELLED: frozenset(),
    OrderStatusCode.RETURNED: frozenset(),
}

TERMINAL_CODES = frozenset({OrderStatusCode.CANCELLED, OrderStatusCode.RETURNED})

SYSTEM_STATUSES = [
    {"code": OrderStatusCode.NEW, "name": "New", "color": "#2196F3", "description": "New order received", "is_default": True},
    {"code": OrderStatusCode.UNDER_REVIEW, "name": "Under Review", "color": "#FF9800", "description": "Order is being reviewed"},
    {"code": OrderStatusCode.PREPARING, "name": "Preparing", "color": "#9C27B0", "description": "Order is being prepared"},
    {"code": OrderStatusCode.READY, "name": "Ready", "color": "#009688", "description": "Order is ready for shipment"},
    {"code": OrderStatusCode.SHIPPED, "name": "Shipped", "color": "#03A9F4", "description": "Order handed to the shipping company"},
    {"code": OrderStatusCode.DELIVERED, "name": "Delivered", "color": "#4CAF50", "description": "Order delivered to the customer"},
    {"code": OrderStatusCode.CANCELLED, "name": "Cancelled", "color": "#F44336", "description": "Order was cancelled"},
    {"code": OrderStatusCode.RETURNED, "name": "Returned", "color": "#607D8B", "description": "Order was returned"},
]


def can_transition(from_code: OrderStatusCode | str, to_code: OrderStatusCode | str) -> bool:
    from_code = coerce_enum(OrderStatusCode, from_code)
    to_code = coerce_enum(OrderStatusCode, to_code)
    return to_code in ORDER_TRANSITIONS[from_code]


def validate_transition(from_code: OrderStatusCode | str, to_code: OrderStatusCode | str) -> None:
    if not can_transition(from_code, to_code):
        from_value = coerce_enum(OrderStatusCode, from_code).value
        to_value = coerce_enum(OrderStatusCode, to_code).value
        allowed = sorted(c.value for c in ORDER_TRANSITIONS[coerce_enum(OrderStatusCode, from_code)])
        raise InvalidTransitionError(
            f"Cannot change order status from {from_value} to {to_value}",
            details={"from": from_value, "to": to_value, "allowed": allowed},
        )


def seed_order_statuses() -> int:
    """
    Create any missing system status rows. Returns the number created.

    Safe to run repeatedly; existing rows are left untouched.
    """
    existing = {
        row.code
        for row in db.session.query(OrderStatus).filter(OrderStatus.org_id.is_(None)).all()
    }

    created = 0
    for index, row_def in enumerate(SYSTEM_STATUSES, start=1):
        code = row_def["code"].value
        if code in existing:
            continue
        db.session.add(
            OrderStatus(
                org_id=None,
                code=code,
                name=row_def["name"],
                color=row_def["color"],
                description=row_def["description"],
                is_system=True,
                is_default=row_def.get("is_default", False),
                sort_order=index,
            )
        )
        created += 1

    if created:
        db.session.commit()
        current_app.logger.info("Seeded %d system order statuses", created)
    return created


def _resolve_rows(org_id: int) -> dict[str, OrderStatus]:
    """code -> effective row for the tenant (tenant override wins)."""
    rows = (
        db.session.query(OrderStatus)
        .filter(db.or_(OrderStatus.org_id.is_(None), OrderStatus.org_id == org_id))
        .all()
    )
    resolved: dict[str, OrderStatus] = {}
    for row in rows:
        current = resolved.get(row.code)
        if current is None or (current.org_id is None and row.org_id is not None):
            resolved[row.code] = row
    return resolved


def list_statuses(org_id: int) -> list[OrderStatus]:
    """Effective status catalog for the tenant, in display order."""
    resolved = _resolve_rows(org_id)
    order = {row_def["code"].value: i for i, row_def in enumerate(SYSTEM_STATUSES)}
    return sorted(resolved.values(), key=lambda r: (order.get(r.code, len(order)), r.sort_order, r.id))


def get_default_status(org_id: int) -> OrderStatus:
    resolved = _resolve_rows(org_id)
    for row in resolved.values():
        if row.is_default:
            return row
    row = resolved.get(OrderStatusCode.NEW.value)
    if row is None:
        raise NotFoundError(
            "Default order status not found; run `flask system init` to seed statuses",
            details={"org_id": org_id},
        )
    return row


def get_status(org_id: int, code_or_id) -> OrderStatus:
    """
    Look up the tenant's effective status row by code or by row id.

    A row id belonging to another tenant is reported as not found.
    """
    if isinstance(code_or_id, int) and not isinstance(code_or_id, bool):
        row = db.session.get(OrderStatus, code_or_id)
        if row is None or (row.org_id is not None and row.org_id != org_id):
            raise NotFoundError(f"Order status {code_or_id} not found", details={"status": code_or_id})
        return row

    try:
        code = coerce_enum(OrderStatusCode, code_or_id)
    except ValueError as exc:
        raise NotFoundError(str(exc), details={"status": code_or_id}) from None

    row = _resolve_rows(org_id).get(code.value)
    if row is None:
        raise NotFoundError(f"Order status {code.value} not found", details={"status": code.value})
    return row


def customize_status(
    org_id: int,
    code,
    *,
    name: str | None = None,
    color: str | None = None,
    description: str | None = None,
) -> OrderStatus:
    """
    Rename/recolor a status for one tenant.

    Creates the tenant override row on first use. The code, and so the
    transition semantics, never change.
    """
    try:
        status_code = coerce_enum(OrderStatusCode, code)
    except ValueError as exc:
        raise NotFoundError(str(exc), details={"status": code}) from None

    if name is not None and not name.strip():
        raise ValidationError("Status name cannot be empty", details={"status": status_code.value})
    if color is not None and (len(color) != 7 or not color.startswith("#")):
        raise ValidationError("Color must be a hex value like #RRGGBB", details={"color": color})

    override = (
        db.session.query(OrderStatus)
        .filter_by(org_id=org_id, code=status_code.value)
        .first()
    )
    if override is None:
        system_row = (
            db.session.query(OrderStatus)
            .filter(OrderStatus.org_id.is_(None), OrderStatus.code == status_code.value)
            .first()
        )
        if system_row is None:
            raise NotFoundError(
                f"Order status {status_code.value} not found",
                details={"status": status_code.value},
            )
        override = OrderStatus(
            org_id=org_id,
            code=system_row.code,
            name=system_row.name,
            color=system_row.color,
            description=system_row.description,
            is_system=False,
            is_default=system_row.is_default,
            sort_order=system_row.sort_order,
        )
        db.session.add(override)

    if name is not None:
        override.name = name.strip()
    if color is not None:
        override.color = color
    if description is not None:
        override.description = description

    db.session.commit()
    current_app.logger.info("Org %s customised order status %s", org_id, status_code.value)
    return override
