# Overview: Flask API routes for warehouse purchase orders.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_permission
from ..services import warehouse_service
from ..services.warehouse_service import WarehouseError
from ..validation import NotFoundError, ValidationError, coerce_date, parse_pagination
from .errors import business_error_response, request_json


warehouse_bp = Blueprint("warehouse", __name__, url_prefix="/api/warehouse")


@warehouse_bp.get("/orders")
@require_auth
@require_permission("MANAGE_WAREHOUSE")
def list_orders_route():
    try:
        page, per_page = parse_pagination(request.args)
        status = request.args.get("status")
        return warehouse_service.list_orders(
            status=None if status in (None, "", "all") else status,
            supplier=request.args.get("supplier"),
            warehouse=request.args.get("warehouse"),
            search=request.args.get("search"),
            page=page,
            per_page=per_page,
        ), 200
    except ValidationError as e:
        return {"error": str(e)}, 400


@warehouse_bp.get("/stats")
@require_auth
@require_permission("MANAGE_WAREHOUSE")
def order_stats_route():
    return warehouse_service.order_stats(), 200


@warehouse_bp.get("/orders/<int:order_id>")
@require_auth
@require_permission("MANAGE_WAREHOUSE")
def get_order_route(order_id: int):
    try:
        return {"order": warehouse_service.get_order(order_id).to_dict(include_items=True)}, 200
    except NotFoundError as e:
        return {"error": str(e)}, 404


@warehouse_bp.post("/orders")
@require_auth
@require_permission("MANAGE_WAREHOUSE")
def create_order_route():
    """
    Body: supplier, warehouse_location, warehouse_type,
    expected_delivery_date, notes, items [{"article_id", "quantity", "unit_price"}]
    """
    data = request_json()
    try:
        order = warehouse_service.create_order(
            g.actor,
            supplier=data.get("supplier"),
            warehouse_location=data.get("warehouse_location"),
            warehouse_type=data.get("warehouse_type"),
            expected_delivery_date=data.get("expected_delivery_date"),
            items=data.get("items"),
            notes=data.get("notes"),
        )
        return {"order": order.to_dict(include_items=True)}, 201

    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return {"error": "Internal server error"}, 500


@warehouse_bp.patch("/orders/<int:order_id>/status")
@require_auth
@require_permission("MANAGE_WAREHOUSE")
def update_order_status_route(order_id: int):
    """Body: {"status": "In Transit" | "Arrived" | "Rejected", "arrived_date": "YYYY-MM-DD"}"""
    data = request_json()
    try:
        arrived = data.get("arrived_date")
        order = warehouse_service.update_order_status(
            order_id,
            data.get("status"),
            g.actor,
            arrived_date=coerce_date(arrived, "arrived_date") if arrived else None,
        )
        return {"order": order.to_dict()}, 200

    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except WarehouseError as e:
        return business_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return {"error": "Internal server error"}, 500


@warehouse_bp.patch("/orders/<int:order_id>/sign")
@require_auth
@require_permission("MANAGE_WAREHOUSE")
def sign_order_route(order_id: int):
    """Sign an Arrived order; its lines are received into stock."""
    try:
        order = warehouse_service.sign_order(order_id, g.actor)
        return {"order": order.to_dict(include_items=True)}, 200
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except WarehouseError as e:
        return business_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to sign order")
        return {"error": "Internal server error"}, 500


@warehouse_bp.delete("/orders/<int:order_id>")
@require_auth
@require_permission("MANAGE_WAREHOUSE")
def delete_order_route(order_id: int):
    try:
        number = warehouse_service.delete_order(order_id)
        return {"ok": True, "order_number": number}, 200
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except WarehouseError as e:
        return business_error_response(e)
