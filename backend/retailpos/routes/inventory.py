# Overview: Flask API routes for stock adjustments and inventory views.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import service_error_response, with_actor_context
from ..errors import ServiceError
from ..services import inventory_service
from ..validation import coerce_int

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/adjustments")
@with_actor_context
def create_adjustment_route():
    """
    Adjust stock by a signed delta.

    Body: {variant_id, delta_qty, reason, notes?}
    reason: OPENING_STOCK | DAMAGE | THEFT | CORRECTION | RETURN | OTHER
    """
    try:
        data = request.get_json(silent=True) or {}
        adjustment = inventory_service.adjust_stock(
            variant_id=data.get("variant_id"),
            delta_qty=data.get("delta_qty"),
            reason=data.get("reason"),
            notes=data.get("notes"),
            actor_id=g.actor_id,
        )
        return jsonify({"adjustment": adjustment.to_dict()}), 201

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create stock adjustment")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@inventory_bp.get("/adjustments/<int:adjustment_id>")
def get_adjustment_route(adjustment_id: int):
    try:
        adjustment = inventory_service.get_adjustment(adjustment_id)
        return jsonify({"adjustment": adjustment.to_dict()}), 200
    except ServiceError as e:
        return service_error_response(e)


@inventory_bp.get("/summary")
def summary_route():
    return jsonify({"summary": inventory_service.get_inventory_summary()}), 200


@inventory_bp.get("/low-stock")
def low_stock_route():
    try:
        threshold = request.args.get("threshold")
        items = inventory_service.list_low_stock(
            coerce_int(threshold, "threshold") if threshold else None
        )
        return jsonify({"items": items}), 200
    except ServiceError as e:
        return service_error_response(e)


@inventory_bp.get("/variants/<int:variant_id>/movements")
def movements_route(variant_id: int):
    """Query: start_date, end_date (YYYY-MM-DD), type (PURCHASE | SALE | SALE_VOID | ADJUSTMENT)."""
    try:
        movements = inventory_service.list_stock_movements(
            variant_id,
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            movement_type=request.args.get("type"),
        )
        return jsonify({"variant_id": variant_id, "movements": movements}), 200

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@inventory_bp.get("/variants/<int:variant_id>/suppliers")
def supplier_summary_route(variant_id: int):
    try:
        suppliers = inventory_service.get_supplier_summary(variant_id)
        return jsonify({"variant_id": variant_id, "suppliers": suppliers}), 200
    except ServiceError as e:
        return service_error_response(e)
