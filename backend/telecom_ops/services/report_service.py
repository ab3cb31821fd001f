# Overview: Service-layer operations for narrative staff reports.

"""
Report Service

Controllers and directors write short reports (title, summary, optional
full text) filed under a department and category with a priority.

Visibility:
- actors without VIEW_ALL_REPORTS only ever see the reports they wrote
- actors with it see everything, or only their own when mine=True
The same scope applies to read markers and the unread/urgent counters.
"""
from __future__ import annotations

from datetime import date, time

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..models import Report, User
from ..models.reports import REPORT_PRIORITIES, REPORT_PRIORITY_NORMAL, REPORT_PRIORITY_URGENT
from ..permissions import Actor
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError
from .pagination import paginate


REPORT_REQUIRED_FIELDS = ("department", "title", "summary", "category")


def _scope(query, actor: Actor, mine: bool):
    if mine or not actor.can("VIEW_ALL_REPORTS"):
        query = query.filter(Report.author_user_id == actor.user_id)
    return query


def _text(value, field: str, *, required: bool = True) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip()


def create_report(
    actor: Actor,
    *,
    department,
    title,
    summary,
    category,
    full_content=None,
    priority=None,
    report_date: date | None = None,
    report_time: time | None = None,
) -> Report:
    """
    File a report authored by the actor.

    The author's name and role come from the linked employee record when
    there is one, otherwise from the account itself.
    """
    priority = priority or REPORT_PRIORITY_NORMAL
    if priority not in REPORT_PRIORITIES:
        raise ValidationError(f"priority must be one of: {', '.join(REPORT_PRIORITIES)}")

    author = db.session.get(User, actor.user_id)
    if not author:
        raise NotFoundError("User not found")
    employee = author.employee

    now = utcnow()
    report = Report(
        author_user_id=author.id,
        author_employee_id=employee.id if employee else None,
        author_name=employee.full_name if employee else author.full_name,
        author_role=employee.role if employee else author.role,
        department=_text(department, "department"),
        title=_text(title, "title"),
        summary=_text(summary, "summary"),
        category=_text(category, "category"),
        full_content=_text(full_content, "full_content", required=False),
        priority=priority,
        is_read=False,
        report_date=report_date or now.date(),
        report_time=report_time or now.time().replace(microsecond=0),
    )
    db.session.add(report)
    db.session.commit()
    current_app.logger.info(
        "Report filed: id=%s priority=%s by user %s", report.id, report.priority, actor.user_id,
    )
    return report


def get_report(report_id: int, actor: Actor) -> Report:
    report = _scope(db.session.query(Report).filter(Report.id == report_id), actor, mine=False).first()
    if not report:
        raise NotFoundError("Report not found")
    return report


def list_reports(
    actor: Actor,
    *,
    mine: bool = False,
    priority: str | None = None,
    department: str | None = None,
    category: str | None = None,
    is_read: bool | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Newest first. Filters combine; the result also carries the unread count."""
    if priority and priority not in REPORT_PRIORITIES:
        raise ValidationError(f"priority must be one of: {', '.join(REPORT_PRIORITIES)}")

    query = _scope(db.session.query(Report), actor, mine)
    if priority:
        query = query.filter(Report.priority == priority)
    if department:
        query = query.filter(Report.department == department)
    if category:
        query = query.filter(Report.category == category)
    if is_read is not None:
        query = query.filter(Report.is_read.is_(is_read))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                Report.title.ilike(like),
                Report.summary.ilike(like),
                Report.author_name.ilike(like),
            )
        )

    unread = _scope(db.session.query(func.count(Report.id)), actor, mine).filter(
        Report.is_read.is_(False)
    ).scalar()

    query = query.order_by(Report.report_date.desc(), Report.report_time.desc(), Report.id.desc())
    result = paginate(query, page=page, per_page=per_page)
    result["unread_count"] = unread
    return result


def set_read(report_id: int, actor: Actor, is_read: bool) -> Report:
    if not isinstance(is_read, bool):
        raise ValidationError("is_read must be a boolean")
    report = get_report(report_id, actor)
    report.is_read = is_read
    db.session.commit()
    return report


def mark_all_read(actor: Actor, *, mine: bool = False) -> int:
    """Mark every unread report in the actor's scope read. Returns the count."""
    ids = [
        report_id for (report_id,) in
        _scope(db.session.query(Report.id), actor, mine).filter(Report.is_read.is_(False)).all()
    ]
    if not ids:
        return 0
    db.session.execute(
        update(Report)
        .where(Report.id.in_(ids))
        .values(is_read=True, updated_at=utcnow())
    )
    db.session.commit()
    return len(ids)


def urgent_unread(actor: Actor, *, mine: bool = False) -> list[Report]:
    return (
        _scope(db.session.query(Report), actor, mine)
        .filter(Report.priority == REPORT_PRIORITY_URGENT, Report.is_read.is_(False))
        .order_by(Report.report_date.desc(), Report.report_time.desc(), Report.id.desc())
        .all()
    )


def report_stats(actor: Actor, *, mine: bool = False) -> dict:
    query = _scope(
        db.session.query(
            func.count(Report.id),
            func.sum(db.case((Report.is_read.is_(False), 1), else_=0)),
            func.sum(db.case((Report.priority == REPORT_PRIORITY_URGENT, 1), else_=0)),
            func.sum(db.case(
                (db.and_(Report.priority == REPORT_PRIORITY_URGENT, Report.is_read.is_(False)), 1),
                else_=0,
            )),
        ),
        actor,
        mine,
    )
    total, unread, urgent, urgent_unread_count = query.one()
    return {
        "total_reports": int(total or 0),
        "unread_reports": int(unread or 0),
        "urgent_reports": int(urgent or 0),
        "urgent_unread": int(urgent_unread_count or 0),
    }


def list_departments(actor: Actor) -> list[str]:
    rows = _scope(db.session.query(Report.department).distinct(), actor, mine=False).all()
    return sorted(value for (value,) in rows)


def list_categories(actor: Actor) -> list[str]:
    rows = _scope(db.session.query(Report.category).distinct(), actor, mine=False).all()
    return sorted(value for (value,) in rows)
