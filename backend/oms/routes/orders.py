# Overview: Flask API routes for orders and the order status catalog; parses input and returns JSON responses.

"""
Order Routes

MULTI-TENANT: Every route requires the X-Org-Id header (see
decorators.require_tenant). Orders belonging to another organization are
reported as 404.

Stock side effects (reserve on create, release on cancel/return/delete,
deduct on delivery) happen in services/order_service.py.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_tenant
from ..services import order_service, order_status_service
from .utils import call_service, get_json_body, parse_date_range, parse_pagination


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")
order_statuses_bp = Blueprint("order_statuses", __name__, url_prefix="/api/order-statuses")


@orders_bp.get("")
@require_tenant
def list_orders_route():
    """
    List orders for the tenant.

    Query parameters:
    - status: Filter by status code (new, under_review, ...)
    - payment_status: Filter by payment status
    - search: Match order number, customer name or phone
    - from_date / to_date: created_at range (ISO-8601)
    - page / per_page: Pagination (default 1 / 20, max 200)

    Returns:
        {items: Order[], count: int, page: int, per_page: int}
    """
    try:
        from_date, to_date = parse_date_range()
    except ValueError:
        return jsonify({"error": "Invalid date format"}), 400
    page, per_page = parse_pagination()

    result, error = call_service(
        order_service.list_orders,
        g.org_id,
        status=request.args.get("status"),
        payment_status=request.args.get("payment_status"),
        search=request.args.get("search"),
        from_date=from_date,
        to_date=to_date,
        page=page,
        per_page=per_page,
    )
    if error:
        return error

    orders, total = result
    return jsonify({
        "items": [o.to_dict(include_lines=False) for o in orders],
        "count": total,
        "page": page,
        "per_page": per_page,
    })


@orders_bp.get("/stats")
@require_tenant
def order_stats_route():
    result, error = call_service(order_service.order_stats, g.org_id)
    if error:
        return error
    return jsonify(result)


@orders_bp.post("")
@require_tenant
def create_order_route():
    """
    Create an order and reserve stock.

    Request body:
    {
        "customer_name": "...", "phone_number": "...", "address": "...", "city": "...",
        "items": [{"variant_id": 1, "quantity": 2, "unit_price_cents": 1500}],
        "shipping_cost_cents": 0, "discount_cents": 0, "payment_method": "cod"
    }

    Returns:
        201 with the order; 409 INSUFFICIENT_STOCK naming the SKU.
    """
    order, error = call_service(order_service.create_order, g.org_id, get_json_body(), g.user_id)
    if error:
        return error
    return jsonify({"order": order.to_dict()}), 201


@orders_bp.get("/<int:order_id>")
@require_tenant
def get_order_route(order_id: int):
    order, error = call_service(order_service.get_order, g.org_id, order_id)
    if error:
        return error
    return jsonify({"order": order.to_dict()})


@orders_bp.patch("/<int:order_id>")
@require_tenant
def update_order_route(order_id: int):
    order, error = call_service(order_service.update_order, g.org_id, order_id, get_json_body(), g.user_id)
    if error:
        return error
    return jsonify({"order": order.to_dict()})


@orders_bp.post("/<int:order_id>/status")
@require_tenant
def change_order_status_route(order_id: int):
    """
    Change order status.

    Request body:
    {
        "status": "shipped",   // status code, or "status_id": 5
        "notes": "..."         // optional
    }
    """
    data = get_json_body()
    status = data.get("status") or data.get("status_id")
    if status is None:
        return jsonify({"error": "status is required"}), 400

    order, error = call_service(
        order_service.change_order_status,
        g.org_id,
        order_id,
        status,
        g.user_id,
        data.get("notes"),
    )
    if error:
        return error
    return jsonify({"order": order.to_dict()})


@orders_bp.patch("/<int:order_id>/payment-status")
@require_tenant
def update_payment_status_route(order_id: int):
    data = get_json_body()
    if not data.get("payment_status"):
        return jsonify({"error": "payment_status is required"}), 400

    order, error = call_service(
        order_service.update_payment_status, g.org_id, order_id, data["payment_status"], g.user_id
    )
    if error:
        return error
    return jsonify({"order": order.to_dict()})


@orders_bp.delete("/<int:order_id>")
@require_tenant
def delete_order_route(order_id: int):
    _, error = call_service(order_service.delete_order, g.org_id, order_id)
    if error:
        return error
    return jsonify({"deleted": True, "order_id": order_id})


@orders_bp.get("/<int:order_id>/history")
@require_tenant
def order_history_route(order_id: int):
    history, error = call_service(order_service.get_order_history, g.org_id, order_id)
    if error:
        return error
    return jsonify({"items": [h.to_dict() for h in history]})


@order_statuses_bp.get("")
@require_tenant
def list_statuses_route():
    statuses, error = call_service(order_status_service.list_statuses, g.org_id)
    if error:
        return error
    return jsonify({"items": [s.to_dict() for s in statuses]})


@order_statuses_bp.put("/<string:code>")
@require_tenant
def customize_status_route(code: str):
    """
    Rename or recolor a status for this tenant.

    Request body: {"name": "...", "color": "#RRGGBB", "description": "..."}
    """
    data = get_json_body()
    status, error = call_service(
        order_status_service.customize_status,
        g.org_id,
        code,
        name=data.get("name"),
        color=data.get("color"),
        description=data.get("description"),
    )
    if error:
        return error
    return jsonify({"status": status.to_dict()})
