"""
Purchase Approval Service

WHY: A purchase invoice only affects inventory once it is accepted.
Acceptance adds the received units and re-blends each variant's
weighted-average cost; revoking acceptance must undo both exactly.

LIFECYCLE:
- pending / accepted / rejected; any status may move to any other.
- into accepted:    increase stock, blend cost, audit stock_applied (+ price_updated)
- out of accepted:  decrease stock, roll cost back, audit stock_removed (+ price_rolled_back)
- line edits and deletion are refused while accepted.

ROLLBACK SOURCE:
The price_updated audit entry is the write-ahead record of every cost
change. Rollback replays it rather than recomputing from current state:
- the entry used is the newest price_updated entry written after the
  newest stock_applied entry (the current acceptance cycle), by sequence.
- if the variant's cost_version still equals the version recorded in the
  entry, or the cost is back at the recorded new_price (another invoice
  blended in and was rolled back out), restore old_price exactly.
- otherwise another invoice re-blended the cost in between: subtract this
  invoice's contribution from the current blend,
      round((current_cost * stock_before_removal - incoming_total) / stock_after_removal)
  and keep the current cost when that is undefined or negative.
The mode used per variant is recorded in the price_rolled_back entry.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import PurchaseInvoice, PurchaseLine, Supplier, Variant
from ..enums import ApprovalStatus, PurchaseAuditAction, coerce_enum
from . import stock_ledger
from .audit_service import append_audit_entry, latest_entry, list_audit_entries
from .concurrency import lock_for_update, transaction
from .errors import InvalidStateError, NotFoundError, ValidationError


ROLLBACK_RESTORED = "restored"
ROLLBACK_REVERSED = "reversed"
ROLLBACK_KEPT = "kept"


def _int_value(value, field: str, *, minimum: int = 0) -> int:
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer", details={"field": field})
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{field} must be a whole number", details={"field": field, "value": value})
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={"field": field}) from None
    if value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", details={"field": field, "value": value})
    return value


def _parse_items(org_id: int, items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Purchase invoice must contain at least one item")

    parsed = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("Each item must be an object", details={"index": index})
        parsed.append({
            "variant_id": _int_value(item.get("variant_id"), "variant_id", minimum=1),
            "quantity": _int_value(item.get("quantity"), "quantity", minimum=1),
            "unit_cost_cents": _int_value(item.get("unit_cost_cents"), "unit_cost_cents", minimum=0),
        })

    ids = {item["variant_id"] for item in parsed}
    found = {
        v.id
        for v in db.session.query(Variant.id).filter(Variant.org_id == org_id, Variant.id.in_(ids)).all()
    }
    missing = sorted(ids - found)
    if missing:
        raise NotFoundError(f"Variant {missing[0]} not found", details={"variant_ids": missing})
    return parsed


def _build_lines(org_id: int, items: list[dict]) -> list[PurchaseLine]:
    lines = []
    for item in items:
        subtotal = item["quantity"] * item["unit_cost_cents"]
        lines.append(
            PurchaseLine(
                org_id=org_id,
                variant_id=item["variant_id"],
                quantity=item["quantity"],
                unit_cost_cents=item["unit_cost_cents"],
                line_subtotal_cents=subtotal,
                line_total_cents=subtotal,
            )
        )
    return lines


def _recompute_totals(invoice: PurchaseInvoice) -> None:
    invoice.subtotal_cents = sum(line.line_subtotal_cents for line in invoice.lines)
    invoice.total_cents = sum(line.line_total_cents for line in invoice.lines)
    invoice.remaining_amount_cents = max(invoice.total_cents - (invoice.paid_amount_cents or 0), 0)


def _check_receipt_unique(org_id: int, receipt_number: str, exclude_id: int | None = None) -> None:
    query = db.session.query(PurchaseInvoice.id).filter(
        PurchaseInvoice.org_id == org_id,
        PurchaseInvoice.receipt_number == receipt_number,
    )
    if exclude_id is not None:
        query = query.filter(PurchaseInvoice.id != exclude_id)
    if query.first():
        raise ValidationError(
            f"Receipt number {receipt_number} already exists",
            details={"receipt_number": receipt_number},
        )


def _check_supplier(org_id: int, supplier_id) -> int | None:
    if supplier_id is None:
        return None
    supplier_id = _int_value(supplier_id, "supplier_id", minimum=1)
    supplier = db.session.query(Supplier).filter_by(id=supplier_id, org_id=org_id).first()
    if not supplier:
        raise NotFoundError(f"Supplier {supplier_id} not found", details={"supplier_id": supplier_id})
    return supplier_id


def _snapshot(invoice: PurchaseInvoice) -> dict:
    return {
        "receipt_number": invoice.receipt_number,
        "supplier_id": invoice.supplier_id,
        "status": invoice.status,
        "subtotal_cents": invoice.subtotal_cents,
        "total_cents": invoice.total_cents,
        "paid_amount_cents": invoice.paid_amount_cents,
        "remaining_amount_cents": invoice.remaining_amount_cents,
        "notes": invoice.notes,
        "items": [
            {
                "variant_id": line.variant_id,
                "quantity": line.quantity,
                "unit_cost_cents": line.unit_cost_cents,
            }
            for line in invoice.lines
        ],
    }


def _aggregate(invoice: PurchaseInvoice) -> OrderedDict:
    """variant_id -> {"quantity", "total_cents"} across duplicate lines."""
    totals: OrderedDict[int, dict] = OrderedDict()
    for line in invoice.lines:
        entry = totals.setdefault(line.variant_id, {"quantity": 0, "total_cents": 0})
        entry["quantity"] += line.quantity
        entry["total_cents"] += line.quantity * line.unit_cost_cents
    return totals


def _get_invoice_locked(org_id: int, invoice_id: int) -> PurchaseInvoice:
    invoice = lock_for_update(
        db.session.query(PurchaseInvoice).filter_by(id=invoice_id, org_id=org_id)
    ).first()
    if not invoice:
        raise NotFoundError(f"Purchase invoice {invoice_id} not found", details={"invoice_id": invoice_id})
    return invoice


def _apply_acceptance(org_id: int, invoice: PurchaseInvoice, actor_user_id, ip_address) -> None:
    totals = _aggregate(invoice)
    variants = stock_ledger.lock_variants(org_id, totals.keys())

    stock_changes = []
    price_changes = []
    for variant_id, agg in totals.items():
        variant = variants[variant_id]
        qty = agg["quantity"]
        incoming_total = agg["total_cents"]
        old_stock = variant.stock_on_hand
        old_cost = variant.unit_cost_cents

        new_cost = stock_ledger.weighted_average_cost(
            old_cost_cents=old_cost,
            old_stock=old_stock,
            add_qty=qty,
            incoming_total_cents=incoming_total,
        )

        stock_ledger.increase(variant, qty)
        stock_changes.append({
            "variant_id": variant.id,
            "sku": variant.sku,
            "quantity": qty,
            "old_stock": old_stock,
            "new_stock": variant.stock_on_hand,
        })

        if new_cost != old_cost:
            stock_ledger.set_cost(variant, new_cost)
            price_changes.append({
                "variant_id": variant.id,
                "sku": variant.sku,
                "quantity": qty,
                "incoming_total_cents": incoming_total,
                "incoming_avg_cents": stock_ledger.round_half_up(incoming_total, qty),
                "old_price": old_cost,
                "new_price": new_cost,
                "cost_version": variant.cost_version,
            })

    append_audit_entry(
        org_id=org_id,
        invoice_id=invoice.id,
        action=PurchaseAuditAction.STOCK_APPLIED,
        changes=stock_changes,
        description=f"Stock added for invoice {invoice.receipt_number}",
        actor_user_id=actor_user_id,
        ip_address=ip_address,
    )
    if price_changes:
        append_audit_entry(
            org_id=org_id,
            invoice_id=invoice.id,
            action=PurchaseAuditAction.PRICE_UPDATED,
            changes=price_changes,
            description=f"Unit cost re-blended for invoice {invoice.receipt_number}",
            actor_user_id=actor_user_id,
            ip_address=ip_address,
        )

    current_app.logger.info(
        "Invoice %s accepted for org %s: %d variant(s), %d price change(s)",
        invoice.receipt_number, org_id, len(stock_changes), len(price_changes),
    )


def _rolled_back_cost(variant: Variant, change: dict, removed_qty: int) -> tuple[int | None, str]:
    if (
        variant.cost_version == change.get("cost_version")
        or variant.unit_cost_cents == change.get("new_price")
    ):
        return change.get("old_price"), ROLLBACK_RESTORED

    current_cost = variant.unit_cost_cents
    remaining = variant.stock_on_hand
    if current_cost is None or remaining <= 0:
        return current_cost, ROLLBACK_KEPT

    numerator = current_cost * (remaining + removed_qty) - change["incoming_total_cents"]
    if numerator < 0:
        return current_cost, ROLLBACK_KEPT
    return stock_ledger.round_half_up(numerator, remaining), ROLLBACK_REVERSED


def _reverse_acceptance(org_id: int, invoice: PurchaseInvoice, actor_user_id, ip_address) -> None:
    totals = _aggregate(invoice)

    applied = latest_entry(org_id, invoice.id, PurchaseAuditAction.STOCK_APPLIED)
    price_entry = latest_entry(
        org_id,
        invoice.id,
        PurchaseAuditAction.PRICE_UPDATED,
        after_sequence=applied.sequence if applied else None,
    )
    price_changes = list(price_entry.changes or []) if price_entry else []

    ids = set(totals.keys()) | {change["variant_id"] for change in price_changes}
    variants = stock_ledger.lock_variants(org_id, ids)

    stock_changes = []
    for variant_id, agg in totals.items():
        variant = variants[variant_id]
        old_stock = variant.stock_on_hand
        stock_ledger.decrease(variant, agg["quantity"])
        stock_changes.append({
            "variant_id": variant.id,
            "sku": variant.sku,
            "quantity": agg["quantity"],
            "old_stock": old_stock,
            "new_stock": variant.stock_on_hand,
        })

    append_audit_entry(
        org_id=org_id,
        invoice_id=invoice.id,
        action=PurchaseAuditAction.STOCK_REMOVED,
        changes=stock_changes,
        description=f"Stock removed for invoice {invoice.receipt_number}",
        actor_user_id=actor_user_id,
        ip_address=ip_address,
    )

    if not price_changes:
        return

    rolled_back = []
    for change in price_changes:
        variant = variants[change["variant_id"]]
        removed_qty = totals.get(variant.id, {}).get("quantity", change.get("quantity", 0))
        current_cost = variant.unit_cost_cents
        target_cost, mode = _rolled_back_cost(variant, change, removed_qty)
        if target_cost != current_cost:
            stock_ledger.set_cost(variant, target_cost)
        rolled_back.append({
            **change,
            "current_price": current_cost,
            "restored_price": target_cost,
            "mode": mode,
        })
        if mode != ROLLBACK_RESTORED:
            current_app.logger.warning(
                "Cost of SKU %s changed after invoice %s was accepted; rollback mode %s (%s -> %s)",
                variant.sku, invoice.receipt_number, mode, current_cost, target_cost,
            )

    append_audit_entry(
        org_id=org_id,
        invoice_id=invoice.id,
        action=PurchaseAuditAction.PRICE_ROLLED_BACK,
        changes=rolled_back,
        description=f"Unit cost rolled back for invoice {invoice.receipt_number}",
        actor_user_id=actor_user_id,
        ip_address=ip_address,
    )

    current_app.logger.info(
        "Invoice %s un-accepted for org %s: %d variant(s), %d price rollback(s)",
        invoice.receipt_number, org_id, len(stock_changes), len(rolled_back),
    )


def create_purchase(
    org_id: int,
    payload: dict,
    actor_user_id: int | None = None,
    ip_address: str | None = None,
) -> PurchaseInvoice:
    """Create a pending purchase invoice. Has no stock effect."""
    payload = payload or {}
    receipt_number = str(payload.get("receipt_number") or "").strip()
    if not receipt_number:
        raise ValidationError("receipt_number is required", details={"field": "receipt_number"})

    paid = _int_value(payload.get("paid_amount_cents", 0), "paid_amount_cents")

    with transaction():
        _check_receipt_unique(org_id, receipt_number)
        supplier_id = _check_supplier(org_id, payload.get("supplier_id"))
        items = _parse_items(org_id, payload.get("items"))

        invoice = PurchaseInvoice(
            org_id=org_id,
            supplier_id=supplier_id,
            receipt_number=receipt_number,
            status=ApprovalStatus.PENDING.value,
            paid_amount_cents=paid,
            notes=payload.get("notes"),
            created_by_user_id=actor_user_id,
        )
        invoice.lines.extend(_build_lines(org_id, items))
        _recompute_totals(invoice)

        db.session.add(invoice)
        db.session.flush()

        append_audit_entry(
            org_id=org_id,
            invoice_id=invoice.id,
            action=PurchaseAuditAction.CREATED,
            new_data=_snapshot(invoice),
            description=f"Purchase invoice {receipt_number} created",
            actor_user_id=actor_user_id,
            ip_address=ip_address,
        )

    current_app.logger.info("Purchase invoice %s created for org %s", receipt_number, org_id)
    return invoice


def get_purchase(org_id: int, invoice_id: int) -> PurchaseInvoice:
    invoice = db.session.query(PurchaseInvoice).filter_by(id=invoice_id, org_id=org_id).first()
    if not invoice:
        raise NotFoundError(f"Purchase invoice {invoice_id} not found", details={"invoice_id": invoice_id})
    return invoice


def list_purchases(
    org_id: int,
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    search: str | None = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[PurchaseInvoice], int]:
    query = db.session.query(PurchaseInvoice).filter(PurchaseInvoice.org_id == org_id)

    if status:
        try:
            query = query.filter(PurchaseInvoice.status == coerce_enum(ApprovalStatus, status).value)
        except ValueError as exc:
            raise ValidationError(str(exc)) from None
    if supplier_id:
        query = query.filter(PurchaseInvoice.supplier_id == supplier_id)
    if search:
        query = query.filter(PurchaseInvoice.receipt_number.ilike(f"%{search.strip()}%"))
    if from_date:
        query = query.filter(PurchaseInvoice.created_at >= from_date)
    if to_date:
        query = query.filter(PurchaseInvoice.created_at <= to_date)

    page = max(page, 1)
    per_page = min(max(per_page, 1), 200)

    total = query.count()
    invoices = query.order_by(PurchaseInvoice.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    return invoices, total


def update_purchase(
    org_id: int,
    invoice_id: int,
    payload: dict,
    actor_user_id: int | None = None,
    ip_address: str | None = None,
) -> PurchaseInvoice:
    """
    Edit header fields, and replace lines while the invoice is not accepted.
    """
    payload = payload or {}

    with transaction():
        invoice = _get_invoice_locked(org_id, invoice_id)
        before = _snapshot(invoice)

        if "items" in payload:
            if invoice.status == ApprovalStatus.ACCEPTED.value:
                raise InvalidStateError(
                    f"Cannot edit items of accepted invoice {invoice.receipt_number}",
                    details={"invoice_id": invoice.id, "status": invoice.status},
                )
            items = _parse_items(org_id, payload["items"])
            invoice.lines.clear()
            invoice.lines.extend(_build_lines(org_id, items))

        if "receipt_number" in payload:
            receipt_number = str(payload.get("receipt_number") or "").strip()
            if not receipt_number:
                raise ValidationError("receipt_number cannot be empty", details={"field": "receipt_number"})
            _check_receipt_unique(org_id, receipt_number, exclude_id=invoice.id)
            invoice.receipt_number = receipt_number
        if "supplier_id" in payload:
            invoice.supplier_id = _check_supplier(org_id, payload["supplier_id"])
        if "notes" in payload:
            invoice.notes = payload["notes"]
        if "paid_amount_cents" in payload:
            invoice.paid_amount_cents = _int_value(payload["paid_amount_cents"], "paid_amount_cents")

        _recompute_totals(invoice)
        after = _snapshot(invoice)

        append_audit_entry(
            org_id=org_id,
            invoice_id=invoice.id,
            action=PurchaseAuditAction.UPDATED,
            old_data=before,
            new_data=after,
            changes=[{"field": k, "old": before[k], "new": after[k]} for k in after if before[k] != after[k]],
            description=f"Purchase invoice {invoice.receipt_number} updated",
            actor_user_id=actor_user_id,
            ip_address=ip_address,
        )

    current_app.logger.info("Purchase invoice %s updated for org %s", invoice.receipt_number, org_id)
    return invoice


def update_paid_amount(
    org_id: int,
    invoice_id: int,
    paid_amount_cents,
    actor_user_id: int | None = None,
    ip_address: str | None = None,
) -> PurchaseInvoice:
    paid = _int_value(paid_amount_cents, "paid_amount_cents")

    with transaction():
        invoice = _get_invoice_locked(org_id, invoice_id)
        old = {
            "paid_amount_cents": invoice.paid_amount_cents,
            "remaining_amount_cents": invoice.remaining_amount_cents,
        }
        invoice.paid_amount_cents = paid
        invoice.remaining_amount_cents = max(invoice.total_cents - paid, 0)
        new = {
            "paid_amount_cents": invoice.paid_amount_cents,
            "remaining_amount_cents": invoice.remaining_amount_cents,
        }
        append_audit_entry(
            org_id=org_id,
            invoice_id=invoice.id,
            action=PurchaseAuditAction.PAID_AMOUNT_UPDATED,
            old_data=old,
            new_data=new,
            description=f"Paid amount for invoice {invoice.receipt_number} set to {paid}",
            actor_user_id=actor_user_id,
            ip_address=ip_address,
        )

    return invoice


def update_purchase_status(
    org_id: int,
    invoice_id: int,
    status,
    actor_user_id: int | None = None,
    ip_address: str | None = None,
) -> PurchaseInvoice:
    """
    Move an invoice between approval states, applying or reversing stock.

    A failed reversal (stock already consumed) leaves the invoice, stock,
    cost and audit trail exactly as they were.
    """
    try:
        new_status = coerce_enum(ApprovalStatus, status)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None

    with transaction():
        invoice = _get_invoice_locked(org_id, invoice_id)
        old_status = ApprovalStatus(invoice.status)
        if old_status == new_status:
            return invoice

        if new_status == ApprovalStatus.ACCEPTED:
            _apply_acceptance(org_id, invoice, actor_user_id, ip_address)
        elif old_status == ApprovalStatus.ACCEPTED:
            _reverse_acceptance(org_id, invoice, actor_user_id, ip_address)

        invoice.status = new_status.value
        append_audit_entry(
            org_id=org_id,
            invoice_id=invoice.id,
            action=PurchaseAuditAction.STATUS_CHANGED,
            old_data={"status": old_status.value},
            new_data={"status": new_status.value},
            description=f"Invoice {invoice.receipt_number} status {old_status.value} -> {new_status.value}",
            actor_user_id=actor_user_id,
            ip_address=ip_address,
        )

    current_app.logger.info(
        "Invoice %s status %s -> %s (org %s)",
        invoice.receipt_number, old_status.value, new_status.value, org_id,
    )
    return invoice


def accept_preview(org_id: int, invoice_id: int) -> dict:
    """What accepting the invoice would do to each variant. Writes nothing."""
    invoice = get_purchase(org_id, invoice_id)
    totals = _aggregate(invoice)
    variants = {
        v.id: v
        for v in db.session.query(Variant).filter(Variant.org_id == org_id, Variant.id.in_(list(totals.keys()))).all()
    }

    items = []
    for variant_id, agg in totals.items():
        variant = variants[variant_id]
        qty = agg["quantity"]
        new_cost = stock_ledger.weighted_average_cost(
            old_cost_cents=variant.unit_cost_cents,
            old_stock=variant.stock_on_hand,
            add_qty=qty,
            incoming_total_cents=agg["total_cents"],
        )
        items.append({
            "variant_id": variant.id,
            "sku": variant.sku,
            "quantity": qty,
            "incoming_total_cents": agg["total_cents"],
            "incoming_avg_cents": stock_ledger.round_half_up(agg["total_cents"], qty),
            "old_stock": variant.stock_on_hand,
            "new_stock": variant.stock_on_hand + qty,
            "old_cost_cents": variant.unit_cost_cents,
            "new_cost_cents": new_cost,
            "price_will_change": new_cost != variant.unit_cost_cents,
        })

    return {
        "invoice_id": invoice.id,
        "receipt_number": invoice.receipt_number,
        "status": invoice.status,
        "can_apply": invoice.status != ApprovalStatus.ACCEPTED.value,
        "items": items,
    }


def delete_purchase(
    org_id: int,
    invoice_id: int,
    actor_user_id: int | None = None,
    ip_address: str | None = None,
) -> None:
    """Delete a non-accepted invoice. Its audit trail is kept."""
    with transaction():
        invoice = _get_invoice_locked(org_id, invoice_id)
        if invoice.status == ApprovalStatus.ACCEPTED.value:
            raise InvalidStateError(
                f"Cannot delete accepted invoice {invoice.receipt_number}; un-accept it first",
                details={"invoice_id": invoice.id, "status": invoice.status},
            )
        receipt_number = invoice.receipt_number
        append_audit_entry(
            org_id=org_id,
            invoice_id=invoice.id,
            action=PurchaseAuditAction.DELETED,
            old_data=_snapshot(invoice),
            description=f"Purchase invoice {receipt_number} deleted",
            actor_user_id=actor_user_id,
            ip_address=ip_address,
        )
        db.session.delete(invoice)

    current_app.logger.info("Purchase invoice %s deleted for org %s", receipt_number, org_id)


def get_audit_logs(org_id: int, invoice_id: int):
    """Audit entries for an invoice, newest first. Works after deletion too."""
    return list_audit_entries(org_id, invoice_id)


def purchase_stats(org_id: int) -> dict:
    rows = (
        db.session.query(
            PurchaseInvoice.status,
            db.func.count(PurchaseInvoice.id),
            db.func.coalesce(db.func.sum(PurchaseInvoice.total_cents), 0),
            db.func.coalesce(db.func.sum(PurchaseInvoice.paid_amount_cents), 0),
            db.func.coalesce(db.func.sum(PurchaseInvoice.remaining_amount_cents), 0),
        )
        .filter(PurchaseInvoice.org_id == org_id)
        .group_by(PurchaseInvoice.status)
        .all()
    )
    by_status = {s.value: 0 for s in ApprovalStatus}
    total_amount = paid_amount = remaining_amount = 0
    for status, count, total, paid, remaining in rows:
        by_status[status] = by_status.get(status, 0) + count
        total_amount += int(total)
        paid_amount += int(paid)
        remaining_amount += int(remaining)

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "total_amount_cents": total_amount,
        "paid_amount_cents": paid_amount,
        "remaining_amount_cents": remaining_amount,
    }
