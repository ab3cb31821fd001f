# Overview: Flask API routes for invoices; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_permission
from ..money import parse_amount_to_cents
from ..services import invoice_service
from ..services.invoice_service import InvoiceError
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_date,
    coerce_positive_int,
    parse_pagination,
)
from .errors import business_error_response, request_json


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
@require_auth
@require_permission("MANAGE_INVOICES")
def list_invoices_route():
    try:
        page, per_page = parse_pagination(request.args)
        status = request.args.get("status")
        return invoice_service.list_invoices(
            status=None if status in (None, "", "all") else status,
            search=request.args.get("search"),
            client_type=request.args.get("client_type") or None,
            page=page,
            per_page=per_page,
        ), 200
    except ValidationError as e:
        return {"error": str(e)}, 400


@invoices_bp.get("/stats")
@require_auth
@require_permission("MANAGE_INVOICES")
def invoice_stats_route():
    return invoice_service.invoice_stats(), 200


@invoices_bp.get("/by-client")
@require_auth
@require_permission("MANAGE_INVOICES")
def invoices_by_client_route():
    """Query params: search (client name or phone), client_type, status."""
    status = request.args.get("status")
    try:
        return invoice_service.invoices_by_client(
            search=request.args.get("search"),
            client_type=request.args.get("client_type") or None,
            status=None if status in (None, "", "all") else status,
        ), 200
    except ValidationError as e:
        return {"error": str(e)}, 400


@invoices_bp.get("/<int:invoice_id>")
@require_auth
@require_permission("MANAGE_INVOICES")
def get_invoice_route(invoice_id: int):
    try:
        return {"invoice": invoice_service.get_invoice(invoice_id).to_dict()}, 200
    except NotFoundError as e:
        return {"error": str(e)}, 404


@invoices_bp.post("")
@require_auth
@require_permission("MANAGE_INVOICES")
def issue_invoice_route():
    """Body: {"sale_id": int, "due_date": "YYYY-MM-DD" (optional)}"""
    data = request_json()
    try:
        sale_id = coerce_positive_int(data.get("sale_id"), "sale_id")
        due_date = coerce_date(data["due_date"], "due_date") if data.get("due_date") else None
        invoice = invoice_service.issue_invoice(sale_id, g.actor, due_date=due_date)
        return {"invoice": invoice.to_dict()}, 201

    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except InvoiceError as e:
        return business_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to issue invoice")
        return {"error": "Internal server error"}, 500


@invoices_bp.post("/<int:invoice_id>/pay")
@require_auth
@require_permission("MANAGE_INVOICES")
def pay_invoice_route(invoice_id: int):
    """Body: {"amount": "1500.00"} or {"amount_cents": 150000}"""
    data = request_json()
    try:
        if data.get("amount_cents") is not None:
            amount_cents = coerce_positive_int(data["amount_cents"], "amount_cents")
        else:
            try:
                amount_cents = parse_amount_to_cents(data.get("amount"))
            except ValueError as e:
                raise ValidationError(str(e))
        invoice = invoice_service.record_payment(invoice_id, amount_cents, g.actor)
        return {"invoice": invoice.to_dict()}, 200

    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except InvoiceError as e:
        return business_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return {"error": "Internal server error"}, 500


@invoices_bp.put("/<int:invoice_id>")
@require_auth
@require_permission("MANAGE_INVOICES")
def update_invoice_route(invoice_id: int):
    data = request_json()
    try:
        if not data.get("due_date"):
            raise ValidationError("due_date is required")
        invoice = invoice_service.update_invoice(invoice_id, due_date=coerce_date(data["due_date"], "due_date"))
        return {"invoice": invoice.to_dict()}, 200

    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except InvoiceError as e:
        return business_error_response(e)


@invoices_bp.post("/mark-overdue")
@require_auth
@require_permission("MANAGE_INVOICES")
def mark_overdue_route():
    return {"marked_overdue": invoice_service.mark_overdue()}, 200
