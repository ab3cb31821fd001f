# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales API routes with permission enforcement.

Error mapping:
- 400: malformed input (quantity, dates, items)
- 404: sale, item or article not found
- 409: business rule violated (insufficient stock, illegal transition,
  sale not editable); the body carries "code" and "details"
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_permission
from ..services import reporting_service, sales_service
from ..services.reporting_service import ReportError
from ..services.sales_service import SaleError
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, coerce_date, coerce_positive_int, parse_pagination
from .errors import request_json, sale_error_response


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _optional_date(name: str):
    raw = request.args.get(name)
    return coerce_date(raw, name) if raw else None


@sales_bp.get("")
@require_auth
@require_permission("CREATE_SALE")
def list_sales_route():
    """
    Query params: search (reference or client name), status, client_type,
    date_from, date_to, created_by, page, per_page.

    Advisors only see their own sales.
    """
    try:
        page, per_page = parse_pagination(request.args)
        result = sales_service.list_sales(
            g.actor,
            search=request.args.get("search"),
            status=request.args.get("status") or None,
            client_type=request.args.get("client_type") or None,
            date_from=_optional_date("date_from"),
            date_to=_optional_date("date_to"),
            created_by=request.args.get("created_by", type=int),
            page=page,
            per_page=per_page,
        )
        return result, 200
    except ValidationError as e:
        return {"error": str(e)}, 400


@sales_bp.post("")
@require_auth
@require_permission("CREATE_SALE")
def create_sale_route():
    """
    Create a Draft sale.

    Body: client_id or client_name/client_phone/client_email/
    client_address/client_type, notes, sale_date, and optional
    items [{"article_id", "quantity"}].
    """
    data = request_json()
    try:
        client_id = data.get("client_id")
        sale = sales_service.create_sale(
            g.actor,
            client_id=coerce_positive_int(client_id, "client_id") if client_id is not None else None,
            client_name=data.get("client_name"),
            client_phone=data.get("client_phone"),
            client_email=data.get("client_email"),
            client_address=data.get("client_address"),
            client_type=data.get("client_type"),
            notes=data.get("notes"),
            sale_date=coerce_date(data["sale_date"], "sale_date") if data.get("sale_date") else None,
            items=data.get("items"),
        )
        return {"sale": sale.to_dict(include_items=True)}, 201

    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except SaleError as e:
        return sale_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return {"error": "Internal server error"}, 500


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("CREATE_SALE")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id, g.actor)
        return {"sale": sale.to_dict(include_items=True)}, 200
    except SaleError as e:
        return sale_error_response(e)


@sales_bp.delete("/<int:sale_id>")
@require_auth
@require_permission("CANCEL_SALE")
def delete_sale_route(sale_id: int):
    try:
        reference = sales_service.delete_sale(sale_id, g.actor)
        return {"ok": True, "reference": reference}, 200
    except SaleError as e:
        return sale_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete sale")
        return {"error": "Internal server error"}, 500


@sales_bp.post("/<int:sale_id>/items")
@require_auth
@require_permission("EDIT_SALE")
def add_item_route(sale_id: int):
    data = request_json()
    try:
        article_id = coerce_positive_int(data.get("article_id"), "article_id")
        item = sales_service.add_item(sale_id, article_id, data.get("quantity"), g.actor)
        sale = sales_service.get_sale(sale_id, g.actor)
        return {"item": item.to_dict(), "sale": sale.to_dict()}, 201

    except ValidationError as e:
        return {"error": str(e)}, 400
    except SaleError as e:
        return sale_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add sale item")
        return {"error": "Internal server error"}, 500


@sales_bp.put("/<int:sale_id>/items/<int:item_id>")
@require_auth
@require_permission("EDIT_SALE")
def replace_item_route(sale_id: int, item_id: int):
    """Change an item's quantity; the item is re-priced at the current article price."""
    try:
        item = sales_service.replace_item_quantity(sale_id, item_id, request_json().get("quantity"), g.actor)
        sale = sales_service.get_sale(sale_id, g.actor)
        return {"item": item.to_dict(), "sale": sale.to_dict()}, 200

    except ValidationError as e:
        return {"error": str(e)}, 400
    except SaleError as e:
        return sale_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update sale item")
        return {"error": "Internal server error"}, 500


@sales_bp.delete("/<int:sale_id>/items/<int:item_id>")
@require_auth
@require_permission("EDIT_SALE")
def remove_item_route(sale_id: int, item_id: int):
    try:
        sale = sales_service.remove_item(sale_id, item_id, g.actor)
        return {"sale": sale.to_dict(include_items=True)}, 200
    except SaleError as e:
        return sale_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove sale item")
        return {"error": "Internal server error"}, 500


@sales_bp.post("/<int:sale_id>/validate")
@require_auth
@require_permission("VALIDATE_SALE")
def validate_sale_route(sale_id: int):
    try:
        sale = sales_service.validate_sale(sale_id, g.actor)
        return {"sale": sale.to_dict()}, 200
    except SaleError as e:
        return sale_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to validate sale")
        return {"error": "Internal server error"}, 500


@sales_bp.post("/<int:sale_id>/complete")
@require_auth
@require_permission("COMPLETE_SALE")
def complete_sale_route(sale_id: int):
    try:
        sale = sales_service.complete_sale(sale_id, g.actor)
        return {"sale": sale.to_dict()}, 200
    except SaleError as e:
        return sale_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete sale")
        return {"error": "Internal server error"}, 500


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
@require_permission("CANCEL_SALE")
def cancel_sale_route(sale_id: int):
    try:
        reason = request_json().get("reason")
        if reason is not None and not isinstance(reason, str):
            raise ValidationError("reason must be a string")
        sale = sales_service.cancel_sale(sale_id, g.actor, reason=(reason or "").strip() or None)
        return {"sale": sale.to_dict(include_items=True)}, 200
    except ValidationError as e:
        return {"error": str(e)}, 400
    except SaleError as e:
        return sale_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return {"error": "Internal server error"}, 500


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

@sales_bp.get("/stats/summary")
@require_auth
@require_permission("VIEW_SALES_ANALYTICS")
def sales_summary_route():
    try:
        return reporting_service.sales_summary(year=request.args.get("year", type=int)), 200
    except ReportError as e:
        return {"error": str(e)}, 400


@sales_bp.get("/revenue/monthly")
@require_auth
@require_permission("VIEW_SALES_ANALYTICS")
def monthly_revenue_route():
    year = request.args.get("year", type=int) or utcnow().year
    try:
        return {"year": year, "months": reporting_service.monthly_revenue(year)}, 200
    except ReportError as e:
        return {"error": str(e)}, 400


@sales_bp.get("/top-clients")
@require_auth
@require_permission("VIEW_SALES_ANALYTICS")
def top_clients_route():
    try:
        rows = reporting_service.top_clients(limit=request.args.get("limit", 10, type=int))
        return {"items": rows, "count": len(rows)}, 200
    except ReportError as e:
        return {"error": str(e)}, 400


@sales_bp.get("/performance/advisors")
@require_auth
@require_permission("VIEW_SALES_ANALYTICS")
def advisor_performance_route():
    try:
        rows = reporting_service.advisor_performance(
            year=request.args.get("year", type=int),
            month=request.args.get("month", type=int),
        )
        return {"items": rows, "count": len(rows)}, 200
    except ReportError as e:
        return {"error": str(e)}, 400


@sales_bp.get("/dashboard/summary")
@require_auth
@require_permission("VIEW_SALES_ANALYTICS")
def dashboard_summary_route():
    return reporting_service.dashboard_summary(), 200


@sales_bp.get("/sold-products")
@require_auth
@require_permission("CREATE_SALE")
def sold_products_route():
    """
    Query params: date_from, date_to (both or neither; default last 30
    days), advisor_id, status (Validated or Completed; default both).

    Advisors only see their own sales.
    """
    try:
        return reporting_service.sold_products(
            g.actor,
            date_from=_optional_date("date_from"),
            date_to=_optional_date("date_to"),
            created_by=request.args.get("advisor_id", type=int),
            status=request.args.get("status") or None,
        ), 200
    except ValidationError as e:
        return {"error": str(e)}, 400


@sales_bp.get("/sold-products/stats")
@require_auth
@require_permission("CREATE_SALE")
def sold_products_stats_route():
    try:
        return reporting_service.sold_products_stats(g.actor, days=request.args.get("days", 30, type=int)), 200
    except ValidationError as e:
        return {"error": str(e)}, 400
