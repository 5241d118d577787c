# Overview: Flask API routes for sale settlement and void; parses input and returns JSON responses.

"""Sales API routes"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import service_error_response, with_actor_context
from ..errors import ServiceError
from ..services import sales_service
from ..validation import coerce_int

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@with_actor_context
def settle_sale_route():
    """
    Settle a sale (checkout).

    Body:
        items: [{variant_id, qty, unit_price, item_discount_percent?}]
        payment_mode: CASH | CARD | UPI | CREDIT
        discount_percent?: header discount, 0-100
        customer_name?, customer_phone?

    Returns 201 with the sale and its lines.
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.settle_sale(
            items=data.get("items"),
            payment_mode=data.get("payment_mode"),
            discount_percent=data.get("discount_percent"),
            customer_name=data.get("customer_name"),
            customer_phone=data.get("customer_phone"),
            actor_id=g.actor_id,
        )
        return jsonify({"sale": sale.to_dict(include_items=True)}), 201

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to settle sale")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@sales_bp.get("")
def list_sales_route():
    """List sales. Query: start_date, end_date (YYYY-MM-DD), payment_mode, status, created_by, search."""
    try:
        created_by = request.args.get("created_by")
        sales = sales_service.list_sales(
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
            payment_mode=request.args.get("payment_mode"),
            status=request.args.get("status"),
            created_by=coerce_int(created_by, "created_by") if created_by else None,
            search=request.args.get("search"),
        )
        return jsonify({"sales": [sale.to_dict() for sale in sales]}), 200

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200
    except ServiceError as e:
        return service_error_response(e)


@sales_bp.post("/<int:sale_id>/void")
@with_actor_context
def void_sale_route(sale_id: int):
    """
    Void a completed sale and restore its stock.

    Body: {reason}
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.void_sale(sale_id, reason=data.get("reason"), actor_id=g.actor_id)
        return jsonify({"sale": sale.to_dict(include_items=True)}), 200

    except ServiceError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}}), 500
