# Overview: Flask API routes for narrative staff reports.

from datetime import time

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_permission
from ..services import report_service
from ..validation import NotFoundError, ValidationError, coerce_date, parse_bool_arg, parse_pagination
from .errors import request_json


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _mine() -> bool:
    return request.args.get("mine", "false").lower() == "true"


def _parse_time(raw) -> time | None:
    if raw in (None, ""):
        return None
    if not isinstance(raw, str):
        raise ValidationError("report_time must be HH:MM or HH:MM:SS")
    try:
        return time.fromisoformat(raw.strip())
    except ValueError:
        raise ValidationError("report_time must be HH:MM or HH:MM:SS")


@reports_bp.get("")
@require_auth
@require_permission("WRITE_REPORTS")
def list_reports_route():
    """
    Query params: priority, department, category, is_read, search, mine,
    page, per_page. "all" disables a filter.
    """
    def _arg(name):
        value = request.args.get(name)
        return None if value in (None, "", "all") else value

    try:
        page, per_page = (parse_pagination(request.args) if "page" in request.args else (None, None))
        return report_service.list_reports(
            g.actor,
            mine=_mine(),
            priority=_arg("priority"),
            department=_arg("department"),
            category=_arg("category"),
            is_read=parse_bool_arg(_arg("is_read")),
            search=request.args.get("search"),
            page=page,
            per_page=per_page,
        ), 200
    except ValidationError as e:
        return {"error": str(e)}, 400


@reports_bp.get("/stats/summary")
@require_auth
@require_permission("WRITE_REPORTS")
def report_stats_route():
    return report_service.report_stats(g.actor, mine=_mine()), 200


@reports_bp.get("/urgent/unread")
@require_auth
@require_permission("WRITE_REPORTS")
def urgent_unread_route():
    reports = report_service.urgent_unread(g.actor, mine=_mine())
    return {"items": [r.to_dict() for r in reports], "count": len(reports)}, 200


@reports_bp.get("/departments")
@require_auth
@require_permission("WRITE_REPORTS")
def departments_route():
    return {"items": report_service.list_departments(g.actor)}, 200


@reports_bp.get("/categories")
@require_auth
@require_permission("WRITE_REPORTS")
def categories_route():
    return {"items": report_service.list_categories(g.actor)}, 200


@reports_bp.patch("/mark-all-read")
@require_auth
@require_permission("WRITE_REPORTS")
def mark_all_read_route():
    return {"marked_read": report_service.mark_all_read(g.actor, mine=_mine())}, 200


@reports_bp.get("/<int:report_id>")
@require_auth
@require_permission("WRITE_REPORTS")
def get_report_route(report_id: int):
    try:
        return {"report": report_service.get_report(report_id, g.actor).to_dict(include_content=True)}, 200
    except NotFoundError as e:
        return {"error": str(e)}, 404


@reports_bp.patch("/<int:report_id>/read")
@require_auth
@require_permission("WRITE_REPORTS")
def set_read_route(report_id: int):
    """Body: {"is_read": true|false}"""
    data = request_json()
    if "is_read" not in data:
        return {"error": "is_read is required"}, 400
    try:
        report = report_service.set_read(report_id, g.actor, data["is_read"])
        return {"report": report.to_dict()}, 200
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404


@reports_bp.post("")
@require_auth
@require_permission("WRITE_REPORTS")
def create_report_route():
    """
    Body: department, title, summary, category (required), full_content,
    priority (Low/Normal/High/Urgent, default Normal), report_date,
    report_time.
    """
    data = request_json()
    try:
        report = report_service.create_report(
            g.actor,
            department=data.get("department"),
            title=data.get("title"),
            summary=data.get("summary"),
            category=data.get("category"),
            full_content=data.get("full_content"),
            priority=data.get("priority"),
            report_date=coerce_date(data["report_date"], "report_date") if data.get("report_date") else None,
            report_time=_parse_time(data.get("report_time")),
        )
        return {"report": report.to_dict(include_content=True)}, 201

    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to create report")
        return {"error": "Internal server error"}, 500
