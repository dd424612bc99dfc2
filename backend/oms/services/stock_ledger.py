# Overview: Variant stock ledger primitives; the only writer of stock, reservation and cost columns.

"""
Variant Stock Ledger Invariants (authoritative)

- Each Variant row carries stock_on_hand, reserved and unit_cost_cents.
- 0 <= reserved <= stock_on_hand at rest; checked after every mutation.
- Primitives mutate rows already locked by lock_variants() and never
  commit: they run inside the caller's transaction (see
  concurrency.transaction). A failure anywhere rolls the whole call back.
- No deduplication: calling a primitive twice applies it twice. Callers
  (order and purchase services) guard against double application.

Cost arithmetic:
- Costs are integer cents, rounded half-up.
- Weighted average of existing and incoming stock:
      round((old_cost * old_stock + incoming_total) / (old_stock + add_qty))
  where incoming_total = incoming_avg * add_qty. With no existing cost the
  result is round(incoming_total / add_qty).
"""

from __future__ import annotations

from typing import Iterable

from flask import current_app

from ..extensions import db
from ..models import Variant
from .concurrency import lock_for_update
from .errors import (
    InsufficientStockError,
    NegativeStockError,
    NotFoundError,
    ValidationError,
)


def round_half_up(numerator: int, denominator: int) -> int:
    """Integer division rounded to nearest, halves away from zero (non-negative inputs)."""
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    return (numerator + (denominator // 2)) // denominator


def weighted_average_cost(
    *,
    old_cost_cents: int | None,
    old_stock: int,
    add_qty: int,
    incoming_total_cents: int,
) -> int | None:
    """
    Blend existing cost with incoming purchase cost, weighted by quantity.

    Returns the current cost unchanged when nothing is added.
    """
    if add_qty <= 0:
        return old_cost_cents
    if old_cost_cents is None:
        return round_half_up(incoming_total_cents, add_qty)

    old_stock = max(old_stock, 0)
    denominator = old_stock + add_qty
    return round_half_up(old_cost_cents * old_stock + incoming_total_cents, denominator)


def _require_positive(qty: int, variant: Variant) -> None:
    if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
        raise ValidationError(
            f"Quantity must be a positive integer for SKU {variant.sku}",
            details={"variant_id": variant.id, "sku": variant.sku, "quantity": qty},
        )


def _check_invariant(variant: Variant) -> None:
    if variant.stock_on_hand < 0 or variant.reserved < 0 or variant.reserved > variant.stock_on_hand:
        raise NegativeStockError(
            f"Stock invariant violated for SKU {variant.sku}: "
            f"on_hand={variant.stock_on_hand}, reserved={variant.reserved}",
            details={
                "variant_id": variant.id,
                "sku": variant.sku,
                "stock_on_hand": variant.stock_on_hand,
                "reserved": variant.reserved,
            },
        )


def get_variant(org_id: int, variant_id: int, *, lock: bool = False) -> Variant:
    """Load one variant for the tenant; NotFoundError if missing or foreign."""
    query = db.session.query(Variant).filter_by(id=variant_id, org_id=org_id)
    if lock:
        query = lock_for_update(query)
    variant = query.first()
    if variant is None:
        raise NotFoundError(
            f"Variant {variant_id} not found",
            details={"variant_id": variant_id},
        )
    return variant


def lock_variants(org_id: int, variant_ids: Iterable[int]) -> dict[int, Variant]:
    """
    Lock the tenant's variant rows for the rest of the transaction.

    Rows are locked in id order so concurrent callers touching the same
    variants cannot deadlock. Raises NotFoundError naming the first
    unknown id.
    """
    ids = sorted({int(v) for v in variant_ids})
    if not ids:
        return {}

    query = (
        db.session.query(Variant)
        .filter(Variant.org_id == org_id, Variant.id.in_(ids))
        .order_by(Variant.id)
    )
    variants = {v.id: v for v in lock_for_update(query).all()}

    for variant_id in ids:
        if variant_id not in variants:
            raise NotFoundError(
                f"Variant {variant_id} not found",
                details={"variant_id": variant_id},
            )
    return variants


def available(variant: Variant) -> int:
    return (variant.stock_on_hand or 0) - (variant.reserved or 0)


def reserve(variant: Variant, qty: int) -> None:
    """Earmark qty units for an order."""
    _require_positive(qty, variant)
    free = available(variant)
    if free < qty:
        raise InsufficientStockError(
            f"Insufficient stock for SKU {variant.sku}. Available: {free}, Requested: {qty}",
            details={
                "variant_id": variant.id,
                "sku": variant.sku,
                "available": free,
                "requested": qty,
            },
        )
    variant.reserved = (variant.reserved or 0) + qty
    _check_invariant(variant)


def release(variant: Variant, qty: int) -> None:
    """Drop a reservation. Floored at zero."""
    _require_positive(qty, variant)
    current = variant.reserved or 0
    if current < qty:
        current_app.logger.warning(
            "Releasing %d of SKU %s but only %d reserved; flooring at 0",
            qty, variant.sku, current,
        )
    variant.reserved = max(0, current - qty)
    _check_invariant(variant)


def fulfil(variant: Variant, qty: int) -> None:
    """Convert a reservation into a permanent deduction (delivery)."""
    _require_positive(qty, variant)
    variant.stock_on_hand = max(0, (variant.stock_on_hand or 0) - qty)
    variant.reserved = max(0, (variant.reserved or 0) - qty)
    _check_invariant(variant)


def increase(variant: Variant, qty: int) -> None:
    """Add received units (purchase acceptance)."""
    _require_positive(qty, variant)
    variant.stock_on_hand = (variant.stock_on_hand or 0) + qty
    _check_invariant(variant)


def decrease(variant: Variant, qty: int) -> None:
    """
    Remove units previously added by a purchase.

    Fails when the result would be negative, or would leave fewer units
    on hand than are reserved by open orders.
    """
    _require_positive(qty, variant)
    old_stock = variant.stock_on_hand or 0
    new_stock = old_stock - qty
    if new_stock < 0 or new_stock < (variant.reserved or 0):
        raise NegativeStockError(
            f"Cannot remove stock below zero for SKU {variant.sku} "
            f"(on_hand={old_stock}, reserved={variant.reserved or 0}, remove={qty})",
            details={
                "variant_id": variant.id,
                "sku": variant.sku,
                "stock_on_hand": old_stock,
                "reserved": variant.reserved or 0,
                "remove": qty,
            },
        )
    variant.stock_on_hand = new_stock
    _check_invariant(variant)


def set_cost(variant: Variant, new_cost_cents: int | None) -> None:
    """Overwrite the unit cost and bump cost_version."""
    if new_cost_cents is not None and new_cost_cents < 0:
        raise ValidationError(
            f"Unit cost cannot be negative for SKU {variant.sku}",
            details={"variant_id": variant.id, "sku": variant.sku, "unit_cost_cents": new_cost_cents},
        )
    variant.unit_cost_cents = new_cost_cents
    variant.cost_version = (variant.cost_version or 0) + 1


def find_invariant_violations(org_id: int | None = None) -> list[Variant]:
    """Variants whose persisted stock breaks 0 <= reserved <= stock_on_hand."""
    query = db.session.query(Variant).filter(
        db.or_(
            Variant.stock_on_hand < 0,
            Variant.reserved < 0,
            Variant.reserved > Variant.stock_on_hand,
        )
    )
    if org_id is not None:
        query = query.filter(Variant.org_id == org_id)
    return query.order_by(Variant.id).all()
