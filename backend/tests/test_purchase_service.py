# Overview: Pytest coverage for purchase invoice approval: stock application, cost blending and rollback.

"""
Purchase Approval Tests

Covers:
- Totals and validation on create/update
- Accept: stock increase + weighted-average cost, audit entries
- Un-accept: exact restoration from the audit trail, NegativeStock guard
- Repeated accept/un-accept cycles and interleaved invoices
- Preview, paid amount, deletion, stats
"""

import pytest

from conftest import order_payload, purchase_payload
from oms.models import PurchaseAuditEntry, PurchaseInvoice
from oms.services import order_service, purchase_service
from oms.services.errors import (
    InvalidStateError,
    NegativeStockError,
    NotFoundError,
    ValidationError,
)


def _actions(org, invoice_id):
    """Audit actions in write order."""
    return [e.action for e in reversed(purchase_service.get_audit_logs(org.id, invoice_id))]


class TestCreatePurchase:
    def test_totals_and_remaining(self, db_session, org_a, variant_a, supplier_a):
        invoice = purchase_service.create_purchase(
            org_a.id,
            purchase_payload(
                "INV-1", (variant_a, 10, 200), (variant_a, 2, 50),
                supplier_id=supplier_a.id, paid_amount_cents=500,
            ),
        )

        assert invoice.status == "pending"
        assert invoice.subtotal_cents == 2100
        assert invoice.total_cents == 2100
        assert invoice.remaining_amount_cents == 1600
        assert invoice.supplier_id == supplier_a.id
        assert _actions(org_a, invoice.id) == ["created"]

    def test_fractional_quantity_or_cost_rejected(self, db_session, org_a, variant_a):
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 2.9, 200)))
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 2, 199.7)))
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, "2.5", 200)))
        assert db_session.query(PurchaseInvoice).count() == 0

        # whole-valued floats are accepted as integers
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 2.0, 200)))
        assert invoice.lines[0].quantity == 2

    def test_create_has_no_stock_effect(self, db_session, org_a, variant_a):
        purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 10, 200)))
        assert variant_a.stock_on_hand == 10
        assert variant_a.unit_cost_cents == 100

    def test_duplicate_receipt_number(self, db_session, org_a, org_b, variant_a, variant_b):
        purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 1, 10)))

        with pytest.raises(ValidationError):
            purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 1, 10)))

        # receipt numbers are unique per tenant only
        other = purchase_service.create_purchase(org_b.id, purchase_payload("INV-1", (variant_b, 1, 10)))
        assert other.receipt_number == "INV-1"

    def test_invalid_items(self, db_session, org_a, variant_a, variant_b):
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(org_a.id, purchase_payload("INV-1"))
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 0, 10)))
        with pytest.raises(ValidationError):
            purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 1, -5)))
        with pytest.raises(NotFoundError):
            purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_b, 1, 10)))
        assert db_session.query(PurchaseInvoice).count() == 0


class TestAccept:
    def test_accept_blends_cost(self, db_session, org_a, variant_a):
        """100 x 10 on hand + 10 @ 200 -> 20 on hand at 150."""
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 10, 200)))

        purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")

        assert variant_a.stock_on_hand == 20
        assert variant_a.unit_cost_cents == 150
        assert _actions(org_a, invoice.id) == ["created", "stock_applied", "price_updated", "status_changed"]

    def test_accept_without_existing_cost(self, db_session, org_a, make_variant):
        variant = make_variant(org_a, "NEW", stock=0)
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant, 5, 80)))

        purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")

        assert variant.stock_on_hand == 5
        assert variant.unit_cost_cents == 80

    def test_duplicate_lines_aggregated(self, db_session, org_a, make_variant):
        """2 @ 10 + 3 @ 20 -> qty 5, average 16."""
        variant = make_variant(org_a, "AGG", stock=0)
        invoice = purchase_service.create_purchase(
            org_a.id, purchase_payload("INV-1", (variant, 2, 10), (variant, 3, 20))
        )

        purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")

        assert variant.stock_on_hand == 5
        assert variant.unit_cost_cents == 16
        applied = [e for e in purchase_service.get_audit_logs(org_a.id, invoice.id) if e.action == "stock_applied"]
        assert len(applied[0].changes) == 1
        assert applied[0].changes[0]["quantity"] == 5

    def test_unchanged_price_writes_no_price_entry(self, db_session, org_a, variant_a):
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 5, 100)))

        purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")

        assert variant_a.unit_cost_cents == 100
        assert "price_updated" not in _actions(org_a, invoice.id)

    def test_accept_twice_is_noop(self, db_session, org_a, variant_a):
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 10, 200)))

        purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")
        purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")

        assert variant_a.stock_on_hand == 20
        assert _actions(org_a, invoice.id).count("stock_applied") == 1


class TestUnaccept:
    def test_round_trip_restores_stock_and_cost(self, db_session, org_a, variant_a):
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 10, 200)))

        purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")
        purchase_service.update_purchase_status(org_a.id, invoice.id, "pending")

        assert variant_a.stock_on_hand == 10
        assert variant_a.unit_cost_cents == 100
        assert _actions(org_a, invoice.id)[-3:] == ["stock_removed", "price_rolled_back", "status_changed"]

    def test_round_trip_restores_missing_cost(self, db_session, org_a, make_variant):
        variant = make_variant(org_a, "FRESH", stock=0)
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant, 5, 80)))

        purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")
        purchase_service.update_purchase_status(org_a.id, invoice.id, "rejected")

        assert variant.stock_on_hand == 0
        assert variant.unit_cost_cents is None

    def test_repeated_cycles_use_current_cycle(self, db_session, org_a, variant_a):
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 10, 200)))

        for _ in range(3):
            purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")
            assert variant_a.unit_cost_cents == 150
            purchase_service.update_purchase_status(org_a.id, invoice.id, "pending")
            assert variant_a.stock_on_hand == 10
            assert variant_a.unit_cost_cents == 100

    def test_consumed_stock_blocks_unaccept(self, db_session, org_a, make_variant):
        """Delivered order consumed part of the received stock: removal would go negative."""
        variant = make_variant(org_a, "CONSUMED", stock=0)
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant, 5, 100)))
        purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")

        order = order_service.create_order(org_a.id, order_payload((variant, 3, 300)))
        for code in ("under_review", "preparing", "ready", "shipped", "delivered"):
            order_service.change_order_status(org_a.id, order.id, code)
        assert variant.stock_on_hand == 2

        entries_before = db_session.query(PurchaseAuditEntry).count()
        with pytest.raises(NegativeStockError):
            purchase_service.update_purchase_status(org_a.id, invoice.id, "pending")

        assert variant.stock_on_hand == 2
        assert variant.unit_cost_cents == 100
        assert purchase_service.get_purchase(org_a.id, invoice.id).status == "accepted"
        assert db_session.query(PurchaseAuditEntry).count() == entries_before

    def test_reserved_stock_blocks_unaccept(self, db_session, org_a, make_variant):
        variant = make_variant(org_a, "HELD", stock=0)
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant, 5, 100)))
        purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")
        order_service.create_order(org_a.id, order_payload((variant, 3, 300)))

        with pytest.raises(NegativeStockError):
            purchase_service.update_purchase_status(org_a.id, invoice.id, "rejected")

        assert variant.stock_on_hand == 5
        assert variant.reserved == 3

    def test_interleaved_invoice_reverses_contribution(self, db_session, org_a, variant_a):
        """A then B re-blend the cost; un-accepting A removes only A's contribution."""
        first = purchase_service.create_purchase(org_a.id, purchase_payload("INV-A", (variant_a, 10, 200)))
        second = purchase_service.create_purchase(org_a.id, purchase_payload("INV-B", (variant_a, 20, 300)))

        purchase_service.update_purchase_status(org_a.id, first.id, "accepted")
        assert variant_a.unit_cost_cents == 150
        purchase_service.update_purchase_status(org_a.id, second.id, "accepted")
        assert variant_a.unit_cost_cents == 225

        purchase_service.update_purchase_status(org_a.id, first.id, "pending")

        # remaining 10 @ 100 + 20 @ 300 = 7000 / 30
        assert variant_a.stock_on_hand == 30
        assert variant_a.unit_cost_cents == 233
        rolled = [e for e in purchase_service.get_audit_logs(org_a.id, first.id) if e.action == "price_rolled_back"]
        assert rolled[0].changes[0]["mode"] == "reversed"

    def test_nested_cycle_restores_exact_cost(self, db_session, org_a, make_variant):
        """B accepted and un-accepted inside A's cycle leaves A's rollback exact."""
        variant = make_variant(org_a, "NEST", stock=3, cost=101)
        first = purchase_service.create_purchase(org_a.id, purchase_payload("INV-A", (variant, 7, 250)))
        second = purchase_service.create_purchase(org_a.id, purchase_payload("INV-B", (variant, 4, 333)))

        purchase_service.update_purchase_status(org_a.id, first.id, "accepted")
        assert variant.unit_cost_cents == 205
        purchase_service.update_purchase_status(org_a.id, second.id, "accepted")
        purchase_service.update_purchase_status(org_a.id, second.id, "pending")
        assert variant.unit_cost_cents == 205

        purchase_service.update_purchase_status(org_a.id, first.id, "pending")

        assert (variant.stock_on_hand, variant.unit_cost_cents) == (3, 101)
        rolled = [e for e in purchase_service.get_audit_logs(org_a.id, first.id) if e.action == "price_rolled_back"]
        assert rolled[0].changes[0]["mode"] == "restored"


class TestEditAndDelete:
    def test_items_locked_while_accepted(self, db_session, org_a, variant_a):
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 10, 200)))
        purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")

        with pytest.raises(InvalidStateError):
            purchase_service.update_purchase(
                org_a.id, invoice.id, {"items": [{"variant_id": variant_a.id, "quantity": 1, "unit_cost_cents": 1}]}
            )

        # header fields stay editable
        invoice = purchase_service.update_purchase(org_a.id, invoice.id, {"notes": "checked"})
        assert invoice.notes == "checked"

    def test_items_replaced_while_pending(self, db_session, org_a, variant_a):
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 10, 200)))

        invoice = purchase_service.update_purchase(
            org_a.id,
            invoice.id,
            {"items": [{"variant_id": variant_a.id, "quantity": 4, "unit_cost_cents": 50}], "receipt_number": "INV-1B"},
        )

        assert len(invoice.lines) == 1
        assert invoice.total_cents == 200
        assert invoice.receipt_number == "INV-1B"
        updated = [e for e in purchase_service.get_audit_logs(org_a.id, invoice.id) if e.action == "updated"]
        assert {c["field"] for c in updated[0].changes} >= {"items", "receipt_number", "total_cents"}

    def test_paid_amount(self, db_session, org_a, variant_a):
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 10, 200)))

        invoice = purchase_service.update_paid_amount(org_a.id, invoice.id, 500)
        assert invoice.remaining_amount_cents == 1500

        invoice = purchase_service.update_paid_amount(org_a.id, invoice.id, 5000)
        assert invoice.remaining_amount_cents == 0
        assert _actions(org_a, invoice.id).count("paid_amount_updated") == 2

    def test_delete_accepted_refused(self, db_session, org_a, variant_a):
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 10, 200)))
        purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")

        with pytest.raises(InvalidStateError):
            purchase_service.delete_purchase(org_a.id, invoice.id)

    def test_delete_keeps_audit_trail(self, db_session, org_a, variant_a):
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 10, 200)))
        invoice_id = invoice.id

        purchase_service.delete_purchase(org_a.id, invoice_id)

        with pytest.raises(NotFoundError):
            purchase_service.get_purchase(org_a.id, invoice_id)
        assert _actions(org_a, invoice_id) == ["created", "deleted"]


class TestPreviewAndStats:
    def test_preview_does_not_mutate(self, db_session, org_a, variant_a):
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 10, 200)))

        preview = purchase_service.accept_preview(org_a.id, invoice.id)

        assert preview["can_apply"] is True
        item = preview["items"][0]
        assert item["old_stock"] == 10
        assert item["new_stock"] == 20
        assert item["old_cost_cents"] == 100
        assert item["new_cost_cents"] == 150
        assert item["price_will_change"] is True
        assert variant_a.stock_on_hand == 10
        assert variant_a.cost_version == 0

    def test_preview_after_accept(self, db_session, org_a, variant_a):
        invoice = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 10, 200)))
        purchase_service.update_purchase_status(org_a.id, invoice.id, "accepted")

        assert purchase_service.accept_preview(org_a.id, invoice.id)["can_apply"] is False

    def test_stats(self, db_session, org_a, variant_a):
        first = purchase_service.create_purchase(org_a.id, purchase_payload("INV-1", (variant_a, 1, 100)))
        purchase_service.create_purchase(org_a.id, purchase_payload("INV-2", (variant_a, 2, 100)))
        purchase_service.update_purchase_status(org_a.id, first.id, "rejected")

        stats = purchase_service.purchase_stats(org_a.id)
        assert stats["total"] == 2
        assert stats["by_status"] == {"pending": 1, "accepted": 0, "rejected": 1}
        assert stats["total_amount_cents"] == 300

    def test_list_filters(self, db_session, org_a, variant_a):
        purchase_service.create_purchase(org_a.id, purchase_payload("INV-100", (variant_a, 1, 100)))
        second = purchase_service.create_purchase(org_a.id, purchase_payload("INV-200", (variant_a, 1, 100)))
        purchase_service.update_purchase_status(org_a.id, second.id, "accepted")

        invoices, total = purchase_service.list_purchases(org_a.id, status="accepted")
        assert total == 1
        assert invoices[0].receipt_number == "INV-200"

        invoices, total = purchase_service.list_purchases(org_a.id, search="100")
        assert total == 1
