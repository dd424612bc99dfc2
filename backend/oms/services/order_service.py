"""
Order Lifecycle Service

WHY: Orders hold stock for a customer from creation until delivery. The
reservation model keeps "sold but not shipped" units out of availability
without touching physical stock until the order is delivered.

RESERVATION RULE:
An order holds a reservation on every line iff its status is not
cancelled/returned AND it has never been delivered (delivered_at unset).
- cancelled / returned: release whatever is still held
- delivered (first time): fulfil, i.e. deduct stock and reservation
- delete (new/cancelled only): release whatever is still held
Returning a delivered order does not restock; that is a separate
inventory process.

Every public function here is one transaction: either every line's
reservation and the order row are written, or nothing is.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Order, OrderLine, OrderStatus, OrderStatusHistory
from ..enums import OrderStatusCode, PaymentMethod, PaymentStatus, coerce_enum
from ..time_utils import utcnow
from . import stock_ledger
from .concurrency import lock_for_update, transaction
from .document_service import next_order_number
from .errors import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from .order_status_service import TERMINAL_CODES, get_default_status, get_status, validate_transition


CUSTOMER_FIELDS = ("customer_name", "phone_number", "email", "address", "city", "area", "landmark")
REQUIRED_CUSTOMER_FIELDS = ("customer_name", "phone_number", "address", "city")
SHIPPING_FIELDS = ("shipping_company", "tracking_number")
NOTE_FIELDS = ("notes", "customer_notes")

LOCKED_FOR_EDIT = frozenset({OrderStatusCode.SHIPPED, OrderStatusCode.DELIVERED})
DELETABLE = frozenset({OrderStatusCode.NEW, OrderStatusCode.CANCELLED})


def _int_field(data: dict, key: str, *, default: int | None = 0, minimum: int | None = 0) -> int | None:
    value = data.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer", details={"field": key})
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{key} must be a whole number", details={"field": key, "value": value})
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer", details={"field": key}) from None
    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}", details={"field": key, "value": value})
    return value


def _status_code(order: Order) -> OrderStatusCode:
    return OrderStatusCode(order.status.code)


def holds_reservation(order: Order) -> bool:
    return _status_code(order) not in TERMINAL_CODES and order.delivered_at is None


def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Order must contain at least one item")

    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("Each item must be an object", details={"index": index})
        variant_id = _int_field(item, "variant_id", default=None, minimum=1)
        if variant_id is None:
            raise ValidationError("variant_id is required", details={"index": index})
        quantity = _int_field(item, "quantity", default=None, minimum=1)
        if quantity is None:
            raise ValidationError("quantity is required", details={"index": index})
        unit_price = _int_field(item, "unit_price_cents", default=None, minimum=0)
        if unit_price is None:
            raise ValidationError("unit_price_cents is required", details={"index": index})
        unit_cost = _int_field(item, "unit_cost_cents", default=None, minimum=0)
        parsed.append({
            "variant_id": variant_id,
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "unit_cost_cents": unit_cost,
        })
    return parsed


def _apply_totals(order: Order) -> None:
    products_total = sum(line.line_total_cents for line in order.lines)
    final_total = products_total + (order.shipping_cost_cents or 0) - (order.discount_cents or 0)
    if final_total < 0:
        raise ValidationError(
            "Discount cannot exceed products total plus shipping",
            details={
                "products_total_cents": products_total,
                "shipping_cost_cents": order.shipping_cost_cents,
                "discount_cents": order.discount_cents,
            },
        )
    order.products_total_cents = products_total
    order.final_total_cents = final_total
    order.profit_cents = sum(line.line_profit_cents for line in order.lines)


def _get_order_locked(org_id: int, order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id, org_id=org_id)).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def _lock_order_variants(org_id: int, order: Order) -> dict:
    return stock_ledger.lock_variants(org_id, [line.variant_id for line in order.lines])


def _release_held(org_id: int, order: Order) -> None:
    variants = _lock_order_variants(org_id, order)
    for line in order.lines:
        stock_ledger.release(variants[line.variant_id], line.quantity)


def create_order(org_id: int, payload: dict, actor_user_id: int | None = None) -> Order:
    """
    Create an order and reserve stock for every line.

    Aggregate quantity per variant is checked against availability before
    any reservation is made; one short SKU rejects the whole order.
    """
    payload = payload or {}
    for field in REQUIRED_CUSTOMER_FIELDS:
        if not str(payload.get(field) or "").strip():
            raise ValidationError(f"{field} is required", details={"field": field})

    items = _parse_items(payload.get("items"))

    try:
        payment_method = coerce_enum(PaymentMethod, payload.get("payment_method") or PaymentMethod.CASH_ON_DELIVERY)
        payment_status = coerce_enum(PaymentStatus, payload.get("payment_status") or PaymentStatus.PENDING)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None

    shipping_cost = _int_field(payload, "shipping_cost_cents")
    discount = _int_field(payload, "discount_cents")
    deposit = _int_field(payload, "deposit_cents")

    requested: OrderedDict[int, int] = OrderedDict()
    for item in items:
        requested[item["variant_id"]] = requested.get(item["variant_id"], 0) + item["quantity"]

    with transaction():
        default_status = get_default_status(org_id)
        variants = stock_ledger.lock_variants(org_id, requested.keys())

        for variant_id, qty in requested.items():
            variant = variants[variant_id]
            free = stock_ledger.available(variant)
            if free < qty:
                current_app.logger.warning(
                    "Order rejected for org %s: SKU %s available %d, requested %d",
                    org_id, variant.sku, free, qty,
                )
                raise InsufficientStockError(
                    f"Insufficient stock for SKU {variant.sku}. Available: {free}, Requested: {qty}",
                    details={
                        "variant_id": variant.id,
                        "sku": variant.sku,
                        "available": free,
                        "requested": qty,
                    },
                )

        order = Order(
            org_id=org_id,
            order_number=next_order_number(org_id),
            status=default_status,
            payment_method=payment_method.value,
            payment_status=payment_status.value,
            deposit_cents=deposit,
            shipping_cost_cents=shipping_cost,
            discount_cents=discount,
            created_by_user_id=actor_user_id,
            updated_by_user_id=actor_user_id,
        )
        for field in CUSTOMER_FIELDS + SHIPPING_FIELDS + NOTE_FIELDS:
            value = payload.get(field)
            setattr(order, field, value.strip() if isinstance(value, str) else value)

        for item in items:
            variant = variants[item["variant_id"]]
            unit_cost = item["unit_cost_cents"]
            if unit_cost is None:
                unit_cost = variant.unit_cost_cents or 0
            qty = item["quantity"]
            order.lines.append(
                OrderLine(
                    org_id=org_id,
                    variant_id=variant.id,
                    quantity=qty,
                    unit_price_cents=item["unit_price_cents"],
                    unit_cost_cents=unit_cost,
                    line_total_cents=item["unit_price_cents"] * qty,
                    line_profit_cents=(item["unit_price_cents"] - unit_cost) * qty,
                )
            )
            stock_ledger.reserve(variant, qty)

        _apply_totals(order)

        order.history.append(
            OrderStatusHistory(
                org_id=org_id,
                from_status=default_status,
                to_status=default_status,
                changed_by_user_id=actor_user_id,
                notes="Order created",
            )
        )
        db.session.add(order)
        db.session.flush()

    current_app.logger.info(
        "Order %s created for org %s with %d line(s)", order.order_number, org_id, len(items)
    )
    return order


def get_order(org_id: int, order_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id, org_id=org_id).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found", details={"order_id": order_id})
    return order


def list_orders(
    org_id: int,
    *,
    status: str | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Order], int]:
    query = db.session.query(Order).filter(Order.org_id == org_id)

    if status:
        try:
            code = coerce_enum(OrderStatusCode, status)
        except ValueError as exc:
            raise ValidationError(str(exc)) from None
        query = query.join(OrderStatus, Order.status_id == OrderStatus.id).filter(OrderStatus.code == code.value)
    if payment_status:
        try:
            pay = coerce_enum(PaymentStatus, payment_status)
        except ValueError as exc:
            raise ValidationError(str(exc)) from None
        query = query.filter(Order.payment_status == pay.value)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                Order.order_number.ilike(pattern),
                Order.customer_name.ilike(pattern),
                Order.phone_number.ilike(pattern),
            )
        )
    if from_date:
        query = query.filter(Order.created_at >= from_date)
    if to_date:
        query = query.filter(Order.created_at <= to_date)

    page = max(page, 1)
    per_page = min(max(per_page, 1), 200)

    total = query.count()
    orders = query.order_by(Order.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return orders, total


def update_order(org_id: int, order_id: int, payload: dict, actor_user_id: int | None = None) -> Order:
    """
    Edit customer, shipping, payment and note fields.

    Lines are immutable reservation units and cannot be edited here.
    Refused once the order has shipped.
    """
    payload = payload or {}
    if "items" in payload or "lines" in payload:
        raise ValidationError("Order lines cannot be edited after creation")

    with transaction():
        order = _get_order_locked(org_id, order_id)
        code = _status_code(order)
        if code in LOCKED_FOR_EDIT:
            raise InvalidStateError(
                f"Cannot update order {order.order_number} in status {code.value}",
                details={"order_id": order.id, "status": code.value},
            )

        for field in REQUIRED_CUSTOMER_FIELDS:
            if field in payload and not str(payload.get(field) or "").strip():
                raise ValidationError(f"{field} cannot be empty", details={"field": field})

        for field in CUSTOMER_FIELDS + SHIPPING_FIELDS + NOTE_FIELDS:
            if field in payload:
                value = payload[field]
                setattr(order, field, value.strip() if isinstance(value, str) else value)

        if "payment_method" in payload:
            try:
                order.payment_method = coerce_enum(PaymentMethod, payload["payment_method"]).value
            except ValueError as exc:
                raise ValidationError(str(exc)) from None
        if "deposit_cents" in payload:
            order.deposit_cents = _int_field(payload, "deposit_cents")

        recompute = False
        if "shipping_cost_cents" in payload:
            order.shipping_cost_cents = _int_field(payload, "shipping_cost_cents")
            recompute = True
        if "discount_cents" in payload:
            order.discount_cents = _int_field(payload, "discount_cents")
            recompute = True
        if recompute:
            _apply_totals(order)

        order.updated_by_user_id = actor_user_id

    current_app.logger.info("Order %s updated for org %s", order.order_number, org_id)
    return order


def change_order_status(
    org_id: int,
    order_id: int,
    status,
    actor_user_id: int | None = None,
    notes: str | None = None,
) -> Order:
    """
    Move an order to another status, applying the stock side effects.

    `status` is a status code or an OrderStatus row id. Moving to the
    current status returns the order unchanged.
    """
    with transaction():
        order = _get_order_locked(org_id, order_id)
        target = get_status(org_id, status)

        from_code = _status_code(order)
        to_code = OrderStatusCode(target.code)
        if from_code == to_code:
            return order

        validate_transition(from_code, to_code)

        previous = order.status
        held = holds_reservation(order)
        now = utcnow()

        if to_code in TERMINAL_CODES:
            if held:
                _release_held(org_id, order)
        elif to_code == OrderStatusCode.SHIPPED:
            if order.shipped_at is None:
                order.shipped_at = now
        elif to_code == OrderStatusCode.DELIVERED:
            if order.delivered_at is None:
                variants = _lock_order_variants(org_id, order)
                for line in order.lines:
                    stock_ledger.fulfil(variants[line.variant_id], line.quantity)
                order.delivered_at = now

        order.status = target
        order.updated_by_user_id = actor_user_id
        order.history.append(
            OrderStatusHistory(
                org_id=org_id,
                from_status=previous,
                to_status=target,
                changed_by_user_id=actor_user_id,
                notes=notes,
            )
        )

    current_app.logger.info(
        "Order %s status %s -> %s (org %s)", order.order_number, from_code.value, to_code.value, org_id
    )
    return order


def update_payment_status(org_id: int, order_id: int, payment_status, actor_user_id: int | None = None) -> Order:
    try:
        value = coerce_enum(PaymentStatus, payment_status)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None

    with transaction():
        order = _get_order_locked(org_id, order_id)
        order.payment_status = value.value
        order.updated_by_user_id = actor_user_id

    current_app.logger.info("Order %s payment status -> %s", order.order_number, value.value)
    return order


def delete_order(org_id: int, order_id: int) -> None:
    """Hard-delete a new or cancelled order, releasing any held reservation."""
    with transaction():
        order = _get_order_locked(org_id, order_id)
        code = _status_code(order)
        if code not in DELETABLE:
            raise InvalidStateError(
                f"Only new or cancelled orders can be deleted; order {order.order_number} is {code.value}",
                details={"order_id": order.id, "status": code.value},
            )
        if holds_reservation(order):
            _release_held(org_id, order)
        order_number = order.order_number
        db.session.delete(order)

    current_app.logger.info("Order %s deleted for org %s", order_number, org_id)


def get_order_history(org_id: int, order_id: int) -> list[OrderStatusHistory]:
    order = get_order(org_id, order_id)
    return list(order.history)


def order_stats(org_id: int) -> dict:
    """Order count per status code for the tenant."""
    rows = (
        db.session.query(OrderStatus.code, db.func.count(Order.id))
        .join(Order, Order.status_id == OrderStatus.id)
        .filter(Order.org_id == org_id)
        .group_by(OrderStatus.code)
        .all()
    )
    by_status = {code.value: 0 for code in OrderStatusCode}
    for code, count in rows:
        by_status[code] = by_status.get(code, 0) + count
    return {"total": sum(by_status.values()), "by_status": by_status}
