# Overview: Flask API routes for supplier purchases; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import service_error_response, with_actor_context
from ..errors import ServiceError
from ..services import purchase_service
from ..validation import coerce_int

purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


def _internal_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@purchases_bp.post("")
@with_actor_context
def receive_purchase_route():
    """
    Receive goods from a supplier.

    Body:
        supplier_id
        items: [{variant_id, qty, unit_cost}]
        invoice_no?, purchased_at? (ISO-8601), notes?
    """
    try:
        data = request.get_json(silent=True) or {}
        supplier_id = data.get("supplier_id")
        purchase = purchase_service.receive_purchase(
            supplier_id=coerce_int(supplier_id, "supplier_id") if supplier_id is not None else None,
            items=data.get("items"),
            invoice_no=data.get("invoice_no"),
            purchased_at=data.get("purchased_at"),
            notes=data.get("notes"),
            actor_id=g.actor_id,
        )
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 201

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        return _internal_error("Failed to receive purchase")


@purchases_bp.get("")
def list_purchases_route():
    try:
        supplier_id = request.args.get("supplier_id")
        purchases = purchase_service.list_purchases(
            supplier_id=coerce_int(supplier_id, "supplier_id") if supplier_id else None,
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            status=request.args.get("status"),
            search=request.args.get("search"),
        )
        return jsonify({"purchases": [p.to_dict() for p in purchases]}), 200

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        return _internal_error("Failed to list purchases")


@purchases_bp.get("/<int:purchase_id>")
def get_purchase_route(purchase_id: int):
    try:
        purchase = purchase_service.get_purchase(purchase_id)
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 200
    except ServiceError as e:
        return service_error_response(e)


@purchases_bp.patch("/<int:purchase_id>")
@with_actor_context
def update_purchase_route(purchase_id: int):
    """Update invoice_no, purchased_at or notes. Lines go through PUT /items."""
    try:
        data = request.get_json(silent=True) or {}
        purchase = purchase_service.update_purchase_metadata(
            purchase_id,
            invoice_no=data.get("invoice_no"),
            purchased_at=data.get("purchased_at"),
            notes=data.get("notes"),
            actor_id=g.actor_id,
        )
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 200

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        return _internal_error("Failed to update purchase")


@purchases_bp.put("/<int:purchase_id>/items")
@with_actor_context
def update_purchase_items_route(purchase_id: int):
    """
    Replace the purchase lines.

    Body:
        items: [{variant_id, qty, unit_cost}] (one line per variant)
    """
    try:
        data = request.get_json(silent=True) or {}
        purchase = purchase_service.update_purchase_items(
            purchase_id,
            data.get("items"),
            actor_id=g.actor_id,
        )
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 200

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        return _internal_error("Failed to update purchase items")


@purchases_bp.post("/<int:purchase_id>/void")
@with_actor_context
def void_purchase_route(purchase_id: int):
    try:
        data = request.get_json(silent=True) or {}
        purchase = purchase_service.void_purchase(purchase_id, reason=data.get("reason"), actor_id=g.actor_id)
        return jsonify({"purchase": purchase.to_dict(include_items=True)}), 200

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        return _internal_error("Failed to void purchase")
