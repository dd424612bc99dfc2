# Overview: Flask API routes for purchase invoices; parses input and returns JSON responses.

"""
Purchase Invoice Routes

MULTI-TENANT: Every route requires the X-Org-Id header.

Accepting an invoice adds stock and re-blends unit cost; moving it out of
accepted reverses both. Both directions are handled by
services/purchase_service.update_purchase_status().
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_tenant
from ..services import purchase_service
from .utils import call_service, get_json_body, parse_date_range, parse_pagination


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("")
@require_tenant
def list_purchases_route():
    """
    List purchase invoices for the tenant.

    Query parameters:
    - status: pending, accepted, rejected
    - supplier_id: Filter by supplier
    - search: Match receipt number
    - from_date / to_date: created_at range (ISO-8601)
    - page / per_page: Pagination
    """
    try:
        from_date, to_date = parse_date_range()
    except ValueError:
        return jsonify({"error": "Invalid date format"}), 400
    page, per_page = parse_pagination()

    result, error = call_service(
        purchase_service.list_purchases,
        g.org_id,
        status=request.args.get("status"),
        supplier_id=request.args.get("supplier_id", type=int),
        search=request.args.get("search"),
        from_date=from_date,
        to_date=to_date,
        page=page,
        per_page=per_page,
    )
    if error:
        return error

    invoices, total = result
    return jsonify({
        "items": [i.to_dict(include_lines=False) for i in invoices],
        "count": total,
        "page": page,
        "per_page": per_page,
    })


@purchases_bp.get("/stats")
@require_tenant
def purchase_stats_route():
    result, error = call_service(purchase_service.purchase_stats, g.org_id)
    if error:
        return error
    return jsonify(result)


@purchases_bp.post("")
@require_tenant
def create_purchase_route():
    """
    Create a pending purchase invoice.

    Request body:
    {
        "receipt_number": "INV-1001",   // required, unique per tenant
        "supplier_id": 1,               // optional
        "items": [{"variant_id": 1, "quantity": 10, "unit_cost_cents": 200}],
        "paid_amount_cents": 0,
        "notes": "..."
    }
    """
    invoice, error = call_service(
        purchase_service.create_purchase,
        g.org_id,
        get_json_body(),
        g.user_id,
        request.remote_addr,
    )
    if error:
        return error
    return jsonify({"invoice": invoice.to_dict()}), 201


@purchases_bp.get("/<int:invoice_id>")
@require_tenant
def get_purchase_route(invoice_id: int):
    invoice, error = call_service(purchase_service.get_purchase, g.org_id, invoice_id)
    if error:
        return error
    return jsonify({"invoice": invoice.to_dict()})


@purchases_bp.patch("/<int:invoice_id>")
@require_tenant
def update_purchase_route(invoice_id: int):
    invoice, error = call_service(
        purchase_service.update_purchase,
        g.org_id,
        invoice_id,
        get_json_body(),
        g.user_id,
        request.remote_addr,
    )
    if error:
        return error
    return jsonify({"invoice": invoice.to_dict()})


@purchases_bp.patch("/<int:invoice_id>/paid-amount")
@require_tenant
def update_paid_amount_route(invoice_id: int):
    data = get_json_body()
    if "paid_amount_cents" not in data:
        return jsonify({"error": "paid_amount_cents is required"}), 400

    invoice, error = call_service(
        purchase_service.update_paid_amount,
        g.org_id,
        invoice_id,
        data["paid_amount_cents"],
        g.user_id,
        request.remote_addr,
    )
    if error:
        return error
    return jsonify({"invoice": invoice.to_dict()})


@purchases_bp.post("/<int:invoice_id>/status")
@require_tenant
def update_purchase_status_route(invoice_id: int):
    """
    Change approval status.

    Request body: {"status": "accepted"}

    Returns:
        200 with the invoice; 409 NEGATIVE_STOCK if un-accepting would
        remove stock that is no longer on hand.
    """
    data = get_json_body()
    if not data.get("status"):
        return jsonify({"error": "status is required"}), 400

    invoice, error = call_service(
        purchase_service.update_purchase_status,
        g.org_id,
        invoice_id,
        data["status"],
        g.user_id,
        request.remote_addr,
    )
    if error:
        return error
    return jsonify({"invoice": invoice.to_dict()})


@purchases_bp.get("/<int:invoice_id>/accept-preview")
@require_tenant
def accept_preview_route(invoice_id: int):
    preview, error = call_service(purchase_service.accept_preview, g.org_id, invoice_id)
    if error:
        return error
    return jsonify(preview)


@purchases_bp.get("/<int:invoice_id>/audit-logs")
@require_tenant
def audit_logs_route(invoice_id: int):
    entries, error = call_service(purchase_service.get_audit_logs, g.org_id, invoice_id)
    if error:
        return error
    return jsonify({"items": [e.to_dict() for e in entries]})


@purchases_bp.delete("/<int:invoice_id>")
@require_tenant
def delete_purchase_route(invoice_id: int):
    _, error = call_service(
        purchase_service.delete_purchase,
        g.org_id,
        invoice_id,
        g.user_id,
        request.remote_addr,
    )
    if error:
        return error
    return jsonify({"deleted": True, "invoice_id": invoice_id})
