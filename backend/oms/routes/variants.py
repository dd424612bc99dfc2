# Overview: Flask API routes for variant stock positions (read-only).

from flask import Blueprint, jsonify, g

from ..decorators import require_tenant
from ..services import stock_ledger
from .utils import call_service


variants_bp = Blueprint("variants", __name__, url_prefix="/api/variants")


@variants_bp.get("/<int:variant_id>/stock")
@require_tenant
def variant_stock_route(variant_id: int):
    """
    Current stock position for a variant.

    Returns:
        {variant_id, sku, stock_on_hand, reserved, available, unit_cost_cents, cost_version}
    """
    variant, error = call_service(stock_ledger.get_variant, g.org_id, variant_id)
    if error:
        return error

    return jsonify({
        "variant_id": variant.id,
        "sku": variant.sku,
        "stock_on_hand": variant.stock_on_hand,
        "reserved": variant.reserved,
        "available": stock_ledger.available(variant),
        "unit_cost_cents": variant.unit_cost_cents,
        "cost_version": variant.cost_version,
    })
