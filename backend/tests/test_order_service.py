# Overview: Pytest coverage for the order lifecycle: reservation, status transitions and deletion.

"""
Order Lifecycle Tests

Reservation rule under test: an order holds stock on every line until it
is delivered (stock deducted), cancelled/returned (released) or deleted
(released). Every operation is all-or-nothing.
"""

import re

import pytest

from conftest import order_payload
from oms.extensions import db
from oms.models import Order, OrderLine, OrderStatusHistory
from oms.services import order_service, order_status_service
from oms.services.errors import (
    InsufficientStockError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)


def _advance(org, order, *codes):
    for code in codes:
        order = order_service.change_order_status(org.id, order.id, code)
    return order


class TestCreateOrder:
    def test_create_reserves_stock(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 3, 500)))

        assert variant_a.stock_on_hand == 10
        assert variant_a.reserved == 3
        assert order.status.code == "new"
        assert re.match(r"^ORD-\d{8}-001$", order.order_number)

    def test_totals_and_profit(self, db_session, org_a, variant_a):
        """Subtotal + shipping - discount; profit uses the cost snapshot."""
        order = order_service.create_order(
            org_a.id,
            order_payload((variant_a, 2, 500), shipping_cost_cents=300, discount_cents=100),
        )

        assert order.products_total_cents == 1000
        assert order.final_total_cents == 1200
        assert order.profit_cents == (500 - 100) * 2
        assert order.lines[0].unit_cost_cents == 100

    def test_cost_snapshot_defaults_to_zero_without_cost(self, db_session, org_a, make_variant):
        variant = make_variant(org_a, "NO-COST", stock=5)
        order = order_service.create_order(org_a.id, order_payload((variant, 1, 700)))
        assert order.lines[0].unit_cost_cents == 0
        assert order.profit_cents == 700

    def test_initial_history_entry(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 1, 500)))
        history = order_service.get_order_history(org_a.id, order.id)

        assert len(history) == 1
        assert history[0].from_status.code == "new"
        assert history[0].to_status.code == "new"

    def test_order_numbers_are_sequential_per_tenant(self, db_session, org_a, org_b, variant_a, variant_b):
        first = order_service.create_order(org_a.id, order_payload((variant_a, 1, 500)))
        second = order_service.create_order(org_a.id, order_payload((variant_a, 1, 500)))
        other = order_service.create_order(org_b.id, order_payload((variant_b, 1, 500)))

        assert first.order_number.endswith("-001")
        assert second.order_number.endswith("-002")
        assert other.order_number.endswith("-001")

    def test_insufficient_stock_is_all_or_nothing(self, db_session, org_a, make_variant):
        """Second line short: no reservation applied to the first, no order row."""
        plenty = make_variant(org_a, "PLENTY", stock=10)
        short = make_variant(org_a, "SHORT", stock=1)

        with pytest.raises(InsufficientStockError) as exc:
            order_service.create_order(org_a.id, order_payload((plenty, 2, 100), (short, 2, 100)))

        assert "SHORT" in str(exc.value)
        assert plenty.reserved == 0
        assert short.reserved == 0
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderLine).count() == 0

    def test_duplicate_variant_lines_are_aggregated(self, db_session, org_a, make_variant):
        variant = make_variant(org_a, "DUP", stock=5)

        with pytest.raises(InsufficientStockError) as exc:
            order_service.create_order(org_a.id, order_payload((variant, 3, 100), (variant, 3, 100)))

        assert exc.value.details["requested"] == 6
        assert variant.reserved == 0

    def test_unknown_variant(self, db_session, org_a, variant_b):
        with pytest.raises(NotFoundError):
            order_service.create_order(org_a.id, order_payload((variant_b, 1, 100)))

    def test_validation(self, db_session, org_a, variant_a):
        with pytest.raises(ValidationError):
            order_service.create_order(org_a.id, order_payload())
        with pytest.raises(ValidationError):
            order_service.create_order(org_a.id, order_payload((variant_a, 0, 100)))
        with pytest.raises(ValidationError):
            order_service.create_order(org_a.id, order_payload((variant_a, 1, 100), customer_name=""))
        with pytest.raises(ValidationError):
            order_service.create_order(org_a.id, order_payload((variant_a, 1, 100), payment_method="barter"))
        assert variant_a.reserved == 0

    def test_fractional_quantity_or_price_rejected(self, db_session, org_a, variant_a):
        with pytest.raises(ValidationError):
            order_service.create_order(org_a.id, order_payload((variant_a, 1.5, 300)))
        with pytest.raises(ValidationError):
            order_service.create_order(org_a.id, order_payload((variant_a, 1, 300.9)))
        with pytest.raises(ValidationError):
            order_service.create_order(org_a.id, order_payload((variant_a, 1, 300), shipping_cost_cents=12.5))
        assert variant_a.reserved == 0


class TestChangeStatus:
    def test_same_status_is_noop(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 2, 100)))

        order_service.change_order_status(org_a.id, order.id, "new")

        assert len(order_service.get_order_history(org_a.id, order.id)) == 1
        assert variant_a.reserved == 2
        assert variant_a.stock_on_hand == 10

    def test_transition_not_in_table(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 2, 100)))

        with pytest.raises(InvalidTransitionError) as exc:
            order_service.change_order_status(org_a.id, order.id, "shipped")

        assert exc.value.details["from"] == "new"
        assert exc.value.details["to"] == "shipped"
        assert order_service.get_order(org_a.id, order.id).status.code == "new"

    def test_unknown_status(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 1, 100)))
        with pytest.raises(NotFoundError):
            order_service.change_order_status(org_a.id, order.id, "teleported")

    def test_status_by_id(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 1, 100)))
        review = order_status_service.get_status(org_a.id, "under_review")

        order = order_service.change_order_status(org_a.id, order.id, review.id)
        assert order.status.code == "under_review"

    def test_delivery_deducts_reserved_quantity(self, db_session, org_a, variant_a):
        """Shipped leaves stock alone; delivered deducts stock and reservation by 3."""
        order = order_service.create_order(org_a.id, order_payload((variant_a, 3, 100)))

        order = _advance(org_a, order, "under_review", "preparing", "ready", "shipped")
        assert variant_a.stock_on_hand == 10
        assert variant_a.reserved == 3
        assert order.shipped_at is not None

        order = order_service.change_order_status(org_a.id, order.id, "delivered")
        assert variant_a.stock_on_hand == 7
        assert variant_a.reserved == 0
        assert order.delivered_at is not None

    def test_history_appended_per_transition(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 1, 100)))
        order_service.change_order_status(org_a.id, order.id, "under_review", actor_user_id=7, notes="checked")

        history = order_service.get_order_history(org_a.id, order.id)
        assert len(history) == 2
        assert history[-1].from_status.code == "new"
        assert history[-1].to_status.code == "under_review"
        assert history[-1].changed_by_user_id == 7
        assert history[-1].notes == "checked"

    def test_cancel_at_new_releases_reservation(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 4, 100)))

        order_service.change_order_status(org_a.id, order.id, "cancelled")

        assert variant_a.reserved == 0
        assert variant_a.stock_on_hand == 10

    def test_cancelled_is_terminal(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 1, 100)))
        order_service.change_order_status(org_a.id, order.id, "cancelled")

        with pytest.raises(InvalidTransitionError):
            order_service.change_order_status(org_a.id, order.id, "new")

    def test_return_from_shipped_releases(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 2, 100)))
        _advance(org_a, order, "under_review", "preparing", "ready", "shipped", "returned")

        assert variant_a.reserved == 0
        assert variant_a.stock_on_hand == 10

    def test_return_after_delivery_does_not_restock(self, db_session, org_a, make_variant):
        variant = make_variant(org_a, "RET", stock=10)
        other = order_service.create_order(org_a.id, order_payload((variant, 1, 100)))
        order = order_service.create_order(org_a.id, order_payload((variant, 2, 100)))
        _advance(org_a, order, "under_review", "preparing", "ready", "shipped", "delivered", "returned")

        assert variant.stock_on_hand == 8
        # only the other open order's reservation remains
        assert variant.reserved == 1
        assert other.id != order.id

    def test_tenant_override_keeps_semantics(self, db_session, org_a, variant_a):
        order_status_service.customize_status(org_a.id, "cancelled", name="Voided", color="#000000")
        order = order_service.create_order(org_a.id, order_payload((variant_a, 2, 100)))

        order = order_service.change_order_status(org_a.id, order.id, "cancelled")

        assert order.status.name == "Voided"
        assert variant_a.reserved == 0


class TestUpdateOrder:
    def test_update_recomputes_totals(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 2, 500)))

        order = order_service.update_order(
            org_a.id, order.id, {"shipping_cost_cents": 250, "discount_cents": 50, "city": "Shelbyville"}
        )

        assert order.final_total_cents == 1000 + 250 - 50
        assert order.city == "Shelbyville"

    def test_lines_cannot_be_edited(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 2, 500)))
        with pytest.raises(ValidationError):
            order_service.update_order(org_a.id, order.id, {"items": []})

    def test_update_blocked_once_shipped(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 1, 500)))
        _advance(org_a, order, "under_review", "preparing", "ready", "shipped")

        with pytest.raises(InvalidStateError):
            order_service.update_order(org_a.id, order.id, {"notes": "late edit"})

    def test_payment_status(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 1, 500)))

        order = order_service.update_payment_status(org_a.id, order.id, "paid")
        assert order.payment_status == "paid"

        with pytest.raises(ValidationError):
            order_service.update_payment_status(org_a.id, order.id, "maybe")


class TestDeleteOrder:
    def test_delete_new_releases(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 3, 100)))

        order_service.delete_order(org_a.id, order.id)

        assert variant_a.reserved == 0
        assert db_session.query(Order).count() == 0
        assert db_session.query(OrderStatusHistory).count() == 0

    def test_delete_cancelled_does_not_release_twice(self, db_session, org_a, variant_a):
        keep = order_service.create_order(org_a.id, order_payload((variant_a, 2, 100)))
        drop = order_service.create_order(org_a.id, order_payload((variant_a, 3, 100)))

        order_service.change_order_status(org_a.id, drop.id, "cancelled")
        order_service.delete_order(org_a.id, drop.id)

        assert variant_a.reserved == 2
        assert order_service.get_order(org_a.id, keep.id).id == keep.id

    def test_delete_in_progress_refused(self, db_session, org_a, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 3, 100)))
        _advance(org_a, order, "under_review", "preparing")

        with pytest.raises(InvalidStateError):
            order_service.delete_order(org_a.id, order.id)
        assert variant_a.reserved == 3


class TestQueries:
    def test_cross_tenant_get(self, db_session, org_a, org_b, variant_a):
        order = order_service.create_order(org_a.id, order_payload((variant_a, 1, 100)))
        with pytest.raises(NotFoundError):
            order_service.get_order(org_b.id, order.id)
        with pytest.raises(NotFoundError):
            order_service.change_order_status(org_b.id, order.id, "cancelled")

    def test_list_filters_and_pagination(self, db_session, org_a, variant_a):
        first = order_service.create_order(org_a.id, order_payload((variant_a, 1, 100), customer_name="Alice"))
        order_service.create_order(org_a.id, order_payload((variant_a, 1, 100), customer_name="Bob"))
        order_service.change_order_status(org_a.id, first.id, "cancelled")

        orders, total = order_service.list_orders(org_a.id, status="cancelled")
        assert total == 1
        assert orders[0].customer_name == "Alice"

        orders, total = order_service.list_orders(org_a.id, search="bob")
        assert total == 1

        orders, total = order_service.list_orders(org_a.id, page=2, per_page=1)
        assert total == 2
        assert len(orders) == 1

    def test_stats(self, db_session, org_a, variant_a):
        first = order_service.create_order(org_a.id, order_payload((variant_a, 1, 100)))
        order_service.create_order(org_a.id, order_payload((variant_a, 1, 100)))
        order_service.change_order_status(org_a.id, first.id, "under_review")

        stats = order_service.order_stats(org_a.id)
        assert stats["total"] == 2
        assert stats["by_status"]["new"] == 1
        assert stats["by_status"]["under_review"] == 1
        assert stats["by_status"]["delivered"] == 0


class TestStatusCatalog:
    def test_seed_is_idempotent(self, db_session, statuses):
        from oms.models import OrderStatus

        assert order_status_service.seed_order_statuses() == 0
        assert db.session.query(OrderStatus).filter(OrderStatus.org_id.is_(None)).count() == 8

    def test_default_status(self, db_session, org_a):
        assert order_status_service.get_default_status(org_a.id).code == "new"

    def test_override_visible_only_to_tenant(self, db_session, org_a, org_b):
        order_status_service.customize_status(org_a.id, "new", name="Fresh")

        names_a = {s.code: s.name for s in order_status_service.list_statuses(org_a.id)}
        names_b = {s.code: s.name for s in order_status_service.list_statuses(org_b.id)}
        assert names_a["new"] == "Fresh"
        assert names_b["new"] == "New"
        assert len(names_a) == 8

    def test_transition_table(self):
        assert order_status_service.can_transition("new", "cancelled")
        assert order_status_service.can_transition("delivered", "returned")
        assert not order_status_service.can_transition("delivered", "cancelled")
        assert not order_status_service.can_transition("returned", "new")
