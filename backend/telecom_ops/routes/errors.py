# Overview: Shared translation of service-layer exceptions into JSON responses.

from flask import jsonify, request

from ..services.sales_service import (
    ArticleNotFound,
    InvariantViolation,
    ItemNotFound,
    SaleError,
    SaleNotFound,
)

NOT_FOUND_ERRORS = (SaleNotFound, ArticleNotFound, ItemNotFound)


def error_response(message: str, status: int, *, code: str | None = None, details: dict | None = None):
    body = {"error": message}
    if code:
        body["code"] = code
    if details:
        body["details"] = details
    return jsonify(body), status


def business_error_response(e):
    """409 with the rule that failed and the quantities involved."""
    return error_response(str(e), 409, code=getattr(e, "code", None), details=getattr(e, "details", None) or {})


def sale_error_response(e: SaleError):
    if isinstance(e, NOT_FOUND_ERRORS):
        return error_response(str(e), 404, code=e.code, details=e.details)
    if isinstance(e, InvariantViolation):
        return error_response("Internal server error", 500, code=e.code)
    return business_error_response(e)


def request_json() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}
