# Overview: Service-layer operations for personnel records and their login accounts.

"""
Employee Service

An employee is the personnel side of a staff member (code, phone, hiring
date). It may carry a login account: created together with the record, or
linked to an existing User. Role, status and contact fields are copied to
the linked account on every change so the two never disagree.

Removing an employee never deletes the account: sales, validations and
flag reviews stay attributed, and the account is set Inactive instead.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Employee, User
from ..models.auth import ROLES, USER_STATUSES
from ..permissions import Actor
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from . import auth_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .pagination import paginate


EMPLOYEE_CODE_PREFIX = "EMP"

EMPLOYEE_MUTABLE_FIELDS = {
    "first_name", "last_name", "email", "phone", "department",
    "role", "status", "hiring_date",
}

EMPLOYEE_REQUIRED_FIELDS = {"first_name", "last_name", "email", "phone", "role"}

# Fields mirrored onto the linked User
SYNCED_USER_FIELDS = ("first_name", "last_name", "email", "phone", "department", "role", "status")


def _check_choices(patch: dict) -> None:
    if patch.get("role") is not None and patch["role"] not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}")
    if patch.get("status") is not None and patch["status"] not in USER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(USER_STATUSES)}")


def _normalize_email(patch: dict) -> None:
    if patch.get("email"):
        patch["email"] = patch["email"].strip().lower()


def _ensure_email_available(email: str, *, exclude_employee_id=None, exclude_user_id=None) -> None:
    query = db.session.query(Employee.id).filter(func.lower(Employee.email) == email)
    if exclude_employee_id is not None:
        query = query.filter(Employee.id != exclude_employee_id)
    if query.first():
        raise ConflictError(f"Email already in use: {email}")

    user_query = db.session.query(User.id).filter(User.email == email)
    if exclude_user_id is not None:
        user_query = user_query.filter(User.id != exclude_user_id)
    if user_query.first():
        raise ConflictError(f"Email already in use: {email}")


def next_employee_code() -> str:
    """EMP0001, EMP0002, ... one past the highest code issued so far."""
    rows = (
        db.session.query(Employee.employee_code)
        .filter(Employee.employee_code.like(f"{EMPLOYEE_CODE_PREFIX}%"))
        .all()
    )
    highest = 0
    for (code,) in rows:
        suffix = code[len(EMPLOYEE_CODE_PREFIX):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{EMPLOYEE_CODE_PREFIX}{highest + 1:04d}"


def _sync_user(employee: Employee) -> None:
    user = employee.user
    if user is None:
        return
    for field in SYNCED_USER_FIELDS:
        setattr(user, field, getattr(employee, field))


def get_employee(employee_id: int) -> Employee:
    employee = db.session.get(Employee, employee_id)
    if not employee:
        raise NotFoundError("Employee not found")
    return employee


def list_employees(
    *,
    role: str | None = None,
    status: str | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Employee)
    if role:
        query = query.filter(Employee.role == role)
    if status:
        query = query.filter(Employee.status == status)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                Employee.first_name.ilike(like),
                Employee.last_name.ilike(like),
                Employee.email.ilike(like),
                Employee.phone.ilike(like),
                Employee.employee_code.ilike(like),
            )
        )
    query = query.order_by(Employee.last_name.asc(), Employee.first_name.asc(), Employee.id.asc())
    return paginate(query, page=page, per_page=per_page)


def create_employee(
    *,
    patch: dict,
    username: str | None = None,
    password: str | None = None,
    link_user_id: int | None = None,
) -> Employee:
    """
    Create a personnel record, optionally with its login account.

    - username/password: a new User is created in the same transaction
    - link_user_id: an existing User without an employee record is linked
    Either way the account takes the employee's role, status and contact
    details.
    """
    patch = dict(patch)
    missing = sorted(f for f in EMPLOYEE_REQUIRED_FIELDS if not patch.get(f))
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    _check_choices(patch)
    _normalize_email(patch)
    if username and link_user_id is not None:
        raise ValidationError("Give either username/password or user_id, not both")
    if username and not password:
        raise ValidationError("password is required when creating a login")

    def _op():
        begin_write()

        user = None
        if link_user_id is not None:
            user = db.session.get(User, link_user_id)
            if not user:
                raise NotFoundError("User not found")
            if user.employee is not None:
                raise ConflictError(f"User {user.username} already has an employee record")
            _ensure_email_available(patch["email"], exclude_user_id=user.id)
        else:
            _ensure_email_available(patch["email"])

        employee = Employee(employee_code=next_employee_code())
        for k, v in patch.items():
            if k in EMPLOYEE_MUTABLE_FIELDS:
                setattr(employee, k, v)
        if employee.status is None:
            employee.status = "Active"
        if employee.hiring_date is None:
            employee.hiring_date = utcnow().date()

        if username:
            user = auth_service.create_user(
                username,
                employee.email,
                password,
                first_name=employee.first_name,
                last_name=employee.last_name,
                role=employee.role,
                phone=employee.phone,
                department=employee.department,
                status=employee.status,
                commit=False,
            )

        if user is not None:
            employee.user = user
            _sync_user(employee)

        db.session.add(employee)
        db.session.commit()
        current_app.logger.info(
            "Employee created: %s (%s)%s",
            employee.employee_code, employee.role,
            f" with login {user.username}" if user else "",
        )
        return employee

    return run_with_retry(_op)


def update_employee(employee_id: int, *, patch: dict) -> Employee:
    """Apply a personnel patch and mirror it onto the linked account."""
    patch = dict(patch)
    _check_choices(patch)
    _normalize_email(patch)

    def _op():
        begin_write()
        employee = lock_for_update(
            db.session.query(Employee).filter_by(id=employee_id)
        ).populate_existing().first()
        if not employee:
            raise NotFoundError("Employee not found")

        if patch.get("email") and patch["email"] != employee.email:
            _ensure_email_available(
                patch["email"], exclude_employee_id=employee.id, exclude_user_id=employee.user_id,
            )

        for k, v in patch.items():
            if k in EMPLOYEE_MUTABLE_FIELDS:
                setattr(employee, k, v)
        _sync_user(employee)

        db.session.commit()
        return employee

    return run_with_retry(_op)


def delete_employee(employee_id: int, actor: Actor) -> str:
    """
    Remove a personnel record. The linked account, if any, is set Inactive
    so it can no longer sign in. Returns the employee code.
    """
    def _op():
        begin_write()
        employee = lock_for_update(
            db.session.query(Employee).filter_by(id=employee_id)
        ).populate_existing().first()
        if not employee:
            raise NotFoundError("Employee not found")
        if employee.user_id is not None and employee.user_id == actor.user_id:
            raise ValidationError("You cannot remove your own employee record")

        code = employee.employee_code
        if employee.user is not None:
            employee.user.status = "Inactive"
        db.session.delete(employee)
        db.session.commit()
        current_app.logger.info("Employee removed: %s by user %s", code, actor.user_id)
        return code

    return run_with_retry(_op)


def employee_stats() -> dict:
    by_status = dict(
        db.session.query(Employee.status, func.count(Employee.id))
        .group_by(Employee.status)
        .all()
    )
    by_role = dict(
        db.session.query(Employee.role, func.count(Employee.id))
        .group_by(Employee.role)
        .all()
    )
    return {
        "total_employees": sum(by_status.values()),
        "active_employees": by_status.get("Active", 0),
        "on_leave": by_status.get("On leave", 0),
        "inactive": by_status.get("Inactive", 0),
        "by_role": {role: by_role.get(role, 0) for role in ROLES},
    }
