# Overview: Flask API routes for advisor oversight and anomaly flags.

"""
Advisor oversight routes (Controller and Director).

Static /flags/... routes are declared before the /<int:advisor_id>/...
ones; the int converter keeps them apart either way.
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_permission
from ..services import anomaly_service
from ..validation import ConflictError, NotFoundError, ValidationError, coerce_positive_int
from .errors import request_json


advisors_bp = Blueprint("advisors", __name__, url_prefix="/api/advisors")


@advisors_bp.get("")
@require_auth
@require_permission("REVIEW_FLAGS")
def list_advisors_route():
    rows = anomaly_service.list_advisors(search=request.args.get("search"))
    return {"items": rows, "count": len(rows)}, 200


@advisors_bp.get("/flags/summary")
@require_auth
@require_permission("REVIEW_FLAGS")
def flags_summary_route():
    try:
        return anomaly_service.flags_summary(request.args.get("status") or "OPEN"), 200
    except ValidationError as e:
        return {"error": str(e)}, 400


@advisors_bp.patch("/flags/<int:flag_id>/review")
@require_auth
@require_permission("REVIEW_FLAGS")
def review_flag_route(flag_id: int):
    try:
        flag = anomaly_service.review_flag(flag_id, g.actor)
        return {"message": "Flag reviewed", "flag": flag.to_dict()}, 200
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409


@advisors_bp.patch("/flags/<int:flag_id>/resolve")
@require_auth
@require_permission("REVIEW_FLAGS")
def resolve_flag_route(flag_id: int):
    try:
        flag = anomaly_service.resolve_flag(flag_id, g.actor)
        return {"message": "Flag resolved", "flag": flag.to_dict()}, 200
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409


@advisors_bp.post("/<int:advisor_id>/check-suspicious")
@require_auth
@require_permission("RUN_ANOMALY_SCAN")
def check_suspicious_route(advisor_id: int):
    """
    Run the anomaly rules over the advisor's recent sales.

    Body: {"days": 30}. Returns checked_sales, avg_sale_cents, new_flags.
    """
    try:
        days = request_json().get("days")
        days = coerce_positive_int(days, "days") if days is not None else None
        result = anomaly_service.scan_advisor(advisor_id, days=days)
        return {"success": True, **result.to_dict()}, 200
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to run suspicious checks")
        return {"error": "Internal server error"}, 500


@advisors_bp.get("/<int:advisor_id>/summary")
@require_auth
@require_permission("REVIEW_FLAGS")
def advisor_summary_route(advisor_id: int):
    try:
        return {"advisor": anomaly_service.advisor_summary(advisor_id)}, 200
    except NotFoundError as e:
        return {"error": str(e)}, 404


@advisors_bp.get("/<int:advisor_id>/flags")
@require_auth
@require_permission("REVIEW_FLAGS")
def advisor_flags_route(advisor_id: int):
    """?status=OPEN (default) | REVIEWED | RESOLVED | "" for all."""
    status = request.args.get("status", "OPEN")
    try:
        flags = anomaly_service.list_flags(advisor_id, status=status or None)
    except ValidationError as e:
        return {"error": str(e)}, 400
    return {"items": [f.to_dict() for f in flags], "count": len(flags)}, 200
