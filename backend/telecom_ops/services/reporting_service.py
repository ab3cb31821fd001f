# Overview: Read-only sales analytics: revenue, top clients, advisor performance and sold products.

"""
Reporting Service

Counting rules shared by every figure here:
- a "sale" is any sale that was not cancelled
- revenue only counts Completed sales
- dates are the sale's business date (sale_date), not its creation instant
"""
from __future__ import annotations

import calendar
from datetime import date, timedelta

from sqlalchemy import extract, func

from ..extensions import db
from ..models import Article, Sale, SaleItem, User
from ..models.sales import (
    SALE_STATUS_CANCELLED,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_VALIDATED,
    SALE_STATUSES,
)
from ..permissions import Actor
from ..time_utils import utcnow
from ..validation import ValidationError


SOLD_STATUSES = (SALE_STATUS_VALIDATED, SALE_STATUS_COMPLETED)
DEFAULT_SOLD_WINDOW_DAYS = 30


class ReportError(Exception):
    """Raised when report parameters are out of range."""
    pass


def _year_range(year: int) -> tuple[date, date]:
    if not 1900 <= year <= 9999:
        raise ReportError("year is out of range")
    return date(year, 1, 1), date(year, 12, 31)


def _month_range(year: int, month: int) -> tuple[date, date]:
    if not 1 <= month <= 12:
        raise ReportError("month must be between 1 and 12")
    _year_range(year)
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def _previous_month(year: int, month: int) -> tuple[int, int]:
    return (year - 1, 12) if month == 1 else (year, month - 1)


def _revenue_expr():
    return func.coalesce(
        func.sum(db.case((Sale.status == SALE_STATUS_COMPLETED, Sale.total_amount_cents), else_=0)),
        0,
    )


def _completed_count_expr():
    return func.coalesce(func.sum(db.case((Sale.status == SALE_STATUS_COMPLETED, 1), else_=0)), 0)


def _change_percent(current: int, previous: int) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100.0, 1)


def _period_totals(start: date, end: date, *, created_by: int | None = None) -> dict:
    query = db.session.query(
        func.count(Sale.id),
        _revenue_expr(),
        func.count(func.distinct(Sale.client_id)),
    ).filter(
        Sale.status != SALE_STATUS_CANCELLED,
        Sale.sale_date >= start,
        Sale.sale_date <= end,
    )
    if created_by is not None:
        query = query.filter(Sale.created_by_user_id == created_by)
    sales_count, revenue, clients = query.one()
    return {
        "sales": int(sales_count or 0),
        "revenue_cents": int(revenue or 0),
        "unique_clients": int(clients or 0),
    }


def sales_summary(*, year: int | None = None) -> dict:
    """Headline numbers, optionally for one calendar year."""
    query = db.session.query(Sale.status, func.count(Sale.id), func.coalesce(func.sum(Sale.total_amount_cents), 0))
    clients = db.session.query(func.count(func.distinct(Sale.client_id))).filter(
        Sale.status != SALE_STATUS_CANCELLED
    )
    if year is not None:
        start, end = _year_range(year)
        query = query.filter(Sale.sale_date >= start, Sale.sale_date <= end)
        clients = clients.filter(Sale.sale_date >= start, Sale.sale_date <= end)

    counts = {status: 0 for status in SALE_STATUSES}
    completed_revenue = 0
    for status, count, amount in query.group_by(Sale.status).all():
        counts[status] = int(count)
        if status == SALE_STATUS_COMPLETED:
            completed_revenue = int(amount)

    completed = counts[SALE_STATUS_COMPLETED]
    return {
        "year": year,
        "total_sales": sum(counts.values()) - counts[SALE_STATUS_CANCELLED],
        "completed_sales": completed,
        "total_revenue_cents": completed_revenue,
        "average_sale_cents": completed_revenue // completed if completed else 0,
        "unique_clients": int(clients.scalar() or 0),
        "status_counts": counts,
    }


def monthly_revenue(year: int) -> list[dict]:
    """Completed revenue per month of year; months without sales report zero."""
    start, end = _year_range(year)
    month_expr = extract("month", Sale.sale_date)
    rows = (
        db.session.query(
            month_expr.label("month"),
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_amount_cents), 0),
        )
        .filter(
            Sale.status == SALE_STATUS_COMPLETED,
            Sale.sale_date >= start,
            Sale.sale_date <= end,
        )
        .group_by(month_expr)
        .all()
    )
    by_month = {int(month): (int(count), int(revenue)) for month, count, revenue in rows}
    return [
        {
            "month": month,
            "month_name": calendar.month_abbr[month],
            "sales_count": by_month.get(month, (0, 0))[0],
            "revenue_cents": by_month.get(month, (0, 0))[1],
        }
        for month in range(1, 13)
    ]


def top_clients(*, limit: int = 10) -> list[dict]:
    """Clients ranked by Completed revenue, highest first."""
    if limit < 1:
        raise ReportError("limit must be positive")
    revenue = func.sum(Sale.total_amount_cents)
    rows = (
        db.session.query(
            Sale.client_id,
            Sale.client_name,
            Sale.client_type,
            func.count(Sale.id),
            revenue,
        )
        .filter(Sale.status == SALE_STATUS_COMPLETED)
        .group_by(Sale.client_id, Sale.client_name, Sale.client_type)
        .order_by(revenue.desc(), Sale.client_name.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "client_id": client_id,
            "client_name": name,
            "client_type": client_type,
            "total_sales": int(count),
            "total_revenue_cents": int(amount or 0),
        }
        for client_id, name, client_type, count, amount in rows
    ]


def advisor_performance(*, year: int | None = None, month: int | None = None) -> list[dict]:
    """Per-creator sale counts and Completed revenue, best first."""
    query = (
        db.session.query(
            Sale.created_by_user_id,
            User.first_name,
            User.last_name,
            func.count(Sale.id),
            _completed_count_expr(),
            _revenue_expr(),
        )
        .outerjoin(User, User.id == Sale.created_by_user_id)
        .filter(Sale.status != SALE_STATUS_CANCELLED)
    )
    if month is not None:
        if year is None:
            raise ReportError("month requires year")
        start, end = _month_range(year, month)
        query = query.filter(Sale.sale_date >= start, Sale.sale_date <= end)
    elif year is not None:
        start, end = _year_range(year)
        query = query.filter(Sale.sale_date >= start, Sale.sale_date <= end)

    rows = query.group_by(Sale.created_by_user_id, User.first_name, User.last_name).all()

    result = []
    for user_id, first_name, last_name, total, completed, revenue in rows:
        completed = int(completed or 0)
        revenue = int(revenue or 0)
        result.append({
            "advisor_id": user_id,
            "advisor_name": f"{first_name} {last_name}" if first_name else "Unknown",
            "total_sales": int(total),
            "completed_sales": completed,
            "total_revenue_cents": revenue,
            "average_sale_cents": revenue // completed if completed else 0,
        })
    result.sort(key=lambda row: (-row["total_revenue_cents"], row["advisor_name"]))
    return result


def dashboard_summary(*, today: date | None = None) -> dict:
    """This month against last month."""
    today = today or utcnow().date()
    current = _period_totals(*_month_range(today.year, today.month))
    previous = _period_totals(*_month_range(*_previous_month(today.year, today.month)))
    return {
        "current_month": current,
        "previous_month": {"revenue_cents": previous["revenue_cents"], "sales": previous["sales"]},
        "change_percent": _change_percent(current["revenue_cents"], previous["revenue_cents"]),
    }


# ---------------------------------------------------------------------------
# Sold products
# ---------------------------------------------------------------------------

def _sold_query(actor: Actor, *, status: str | None, created_by: int | None):
    if status and status not in SOLD_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(SOLD_STATUSES)}")

    query = db.session.query(Sale)
    if status:
        query = query.filter(Sale.status == status)
    else:
        query = query.filter(Sale.status.in_(SOLD_STATUSES))

    if not actor.can("VIEW_ALL_SALES"):
        created_by = actor.user_id
    if created_by is not None:
        query = query.filter(Sale.created_by_user_id == created_by)
    return query


def _sold_item_dict(item: SaleItem) -> dict:
    data = item.to_dict()
    data["tag"] = item.article.category if item.article else "Service"
    return data


def sold_products(
    actor: Actor,
    *,
    date_from: date | None = None,
    date_to: date | None = None,
    created_by: int | None = None,
    status: str | None = None,
    today: date | None = None,
) -> dict:
    """
    Validated and Completed sales grouped by day, newest first, with their
    items and the period's totals.

    Without dates the window is the last 30 days. Revenue change compares
    against the period of equal length just before.
    """
    today = today or utcnow().date()
    if date_from is None and date_to is None:
        date_to = today
        date_from = today - timedelta(days=DEFAULT_SOLD_WINDOW_DAYS)
    elif date_from is None or date_to is None:
        raise ValidationError("date_from and date_to must be given together")
    if date_from > date_to:
        raise ValidationError("date_from must not be after date_to")

    base = _sold_query(actor, status=status, created_by=created_by)
    sales = (
        base.filter(Sale.sale_date >= date_from, Sale.sale_date <= date_to)
        .order_by(Sale.sale_date.desc(), Sale.created_at.desc(), Sale.id.desc())
        .all()
    )

    days: dict[date, dict] = {}
    for sale in sales:
        day = days.setdefault(sale.sale_date, {
            "date": sale.sale_date.isoformat(),
            "total_sales": 0,
            "total_amount_cents": 0,
            "sales": [],
        })
        row = sale.to_dict()
        row["advisor_name"] = sale.created_by.full_name if sale.created_by else "Unknown"
        row["items"] = [_sold_item_dict(item) for item in sale.items]
        day["sales"].append(row)
        day["total_sales"] += 1
        day["total_amount_cents"] += sale.total_amount_cents

    revenue = sum(sale.total_amount_cents for sale in sales)
    span = (date_to - date_from).days + 1
    previous_revenue = (
        base.with_entities(func.coalesce(func.sum(Sale.total_amount_cents), 0))
        .filter(
            Sale.sale_date >= date_from - timedelta(days=span),
            Sale.sale_date < date_from,
        )
        .scalar()
    )
    change = _change_percent(revenue, int(previous_revenue or 0))

    return {
        "date_from": date_from.isoformat(),
        "date_to": date_to.isoformat(),
        "days": list(days.values()),
        "stats": {
            "total_revenue_cents": revenue,
            "total_sales": len(sales),
            "average_sale_cents": revenue // len(sales) if sales else 0,
            "unique_clients": len({sale.client_id for sale in sales if sale.client_id is not None}),
            "revenue_change_percent": change,
            "revenue_change_direction": "up" if change >= 0 else "down",
        },
    }


def sold_products_stats(actor: Actor, *, days: int = DEFAULT_SOLD_WINDOW_DAYS, today: date | None = None) -> dict:
    """Quick counters over the last `days` days of Validated and Completed sales."""
    if days < 1:
        raise ValidationError("days must be positive")
    today = today or utcnow().date()
    since = today - timedelta(days=days)

    base = _sold_query(actor, status=None, created_by=None).filter(Sale.sale_date >= since)
    total, revenue, clients = base.with_entities(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_amount_cents), 0),
        func.count(func.distinct(Sale.client_id)),
    ).one()
    by_type = dict(
        base.with_entities(Sale.client_type, func.count(Sale.id))
        .group_by(Sale.client_type)
        .all()
    )

    sale_ids = base.with_entities(Sale.id).subquery()
    category = func.coalesce(Article.category, "Service")
    category_rows = (
        db.session.query(
            category,
            func.coalesce(func.sum(SaleItem.quantity), 0),
            func.coalesce(func.sum(SaleItem.total_price_cents), 0),
        )
        .outerjoin(Article, Article.id == SaleItem.article_id)
        .filter(SaleItem.sale_id.in_(db.select(sale_ids.c.id)))
        .group_by(category)
        .all()
    )

    total = int(total or 0)
    revenue = int(revenue or 0)
    return {
        "days": days,
        "total_sales": total,
        "total_revenue_cents": revenue,
        "average_sale_cents": revenue // total if total else 0,
        "unique_clients": int(clients or 0),
        "professional_sales": by_type.get("Professional", 0),
        "residential_sales": by_type.get("Residential", 0),
        "units_sold": sum(int(units) for _, units, _ in category_rows),
        "by_category": {
            name: {"units": int(units), "revenue_cents": int(amount)}
            for name, units, amount in category_rows
        },
    }
