# Overview: Flask API routes for personnel records.

"""
Employee routes.

- Read, create and update require MANAGE_EMPLOYEES
- Delete requires DELETE_EMPLOYEE; the linked login is deactivated, not removed
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_permission
from ..models import Employee
from ..services import employee_service
from ..services.auth_service import PasswordValidationError
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    coerce_positive_int,
    parse_pagination,
    validate_payload,
)
from .errors import request_json

EMPLOYEE_POLICY = ModelValidationPolicy(
    writable_fields={
        "first_name", "last_name", "email", "phone", "department",
        "role", "status", "hiring_date",
    },
    required_on_create={"first_name", "last_name", "email", "phone", "role"},
)

# Login fields accepted on create alongside the personnel fields
LOGIN_FIELDS = ("username", "password", "user_id")

employees_bp = Blueprint("employees", __name__, url_prefix="/api/employees")


@employees_bp.get("")
@require_auth
@require_permission("MANAGE_EMPLOYEES")
def list_employees_route():
    """Query params: role, status ("All" for any), search, page, per_page."""
    try:
        page, per_page = (parse_pagination(request.args) if "page" in request.args else (None, None))
    except ValidationError as e:
        return {"error": str(e)}, 400
    role = request.args.get("role")
    status = request.args.get("status")
    return employee_service.list_employees(
        role=None if role in (None, "", "All Roles") else role,
        status=None if status in (None, "", "All") else status,
        search=request.args.get("search"),
        page=page,
        per_page=per_page,
    ), 200


@employees_bp.get("/stats/summary")
@require_auth
@require_permission("MANAGE_EMPLOYEES")
def employee_stats_route():
    return employee_service.employee_stats(), 200


@employees_bp.get("/<int:employee_id>")
@require_auth
@require_permission("MANAGE_EMPLOYEES")
def get_employee_route(employee_id: int):
    try:
        return {"employee": employee_service.get_employee(employee_id).to_dict()}, 200
    except NotFoundError as e:
        return {"error": str(e)}, 404


@employees_bp.post("")
@require_auth
@require_permission("MANAGE_EMPLOYEES")
def create_employee_route():
    """
    Body: personnel fields, plus optionally username/password to create a
    login, or user_id to link an existing account.
    """
    data = request_json()
    login = {k: data.pop(k) for k in LOGIN_FIELDS if k in data}
    try:
        patch = validate_payload(model=Employee, payload=data, policy=EMPLOYEE_POLICY, partial=False)
        user_id = login.get("user_id")
        employee = employee_service.create_employee(
            patch=patch,
            username=login.get("username"),
            password=login.get("password"),
            link_user_id=coerce_positive_int(user_id, "user_id") if user_id is not None else None,
        )
        return {"employee": employee.to_dict()}, 201

    except (ValidationError, PasswordValidationError) as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to create employee")
        return {"error": "Internal server error"}, 500


@employees_bp.put("/<int:employee_id>")
@require_auth
@require_permission("MANAGE_EMPLOYEES")
def update_employee_route(employee_id: int):
    try:
        patch = validate_payload(model=Employee, payload=request_json(), policy=EMPLOYEE_POLICY, partial=True)
        employee = employee_service.update_employee(employee_id, patch=patch)
        return {"employee": employee.to_dict()}, 200

    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to update employee")
        return {"error": "Internal server error"}, 500


@employees_bp.delete("/<int:employee_id>")
@require_auth
@require_permission("DELETE_EMPLOYEE")
def delete_employee_route(employee_id: int):
    try:
        code = employee_service.delete_employee(employee_id, g.actor)
        return {"ok": True, "employee_code": code}, 200
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
