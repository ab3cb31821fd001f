# Overview: Heuristic anomaly scan over an advisor's recent sales, plus flag review.

"""
Anomaly Flagging Service

The scan is stateless and advisory: it reads one advisor's sales created
within a trailing window, applies three rules, and inserts a SaleFlag for
each hit whose (advisor, sale, title) is new. It never deletes or changes
existing flags, so running it twice over the same window creates nothing
the second time.

Rules:
- Off-hours: creation hour in BUSINESS_TIMEZONE outside
  [BUSINESS_HOURS_START, BUSINESS_HOURS_END) -> MEDIUM
- Spike: window average > 0, total > ANOMALY_SPIKE_MULTIPLIER x average
  and total > ANOMALY_AMOUNT_FLOOR_CENTS -> HIGH
- Rapid edit: 0 <= updated_at - created_at <= ANOMALY_RAPID_EDIT_MINUTES
  and total > ANOMALY_AMOUNT_FLOOR_CENTS -> LOW
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta

from flask import current_app
from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Sale, SaleFlag, User
from ..models.auth import ROLE_ADVISOR
from ..models.sales import (
    FLAG_STATUS_OPEN,
    FLAG_STATUS_RESOLVED,
    FLAG_STATUS_REVIEWED,
    FLAG_STATUSES,
    SALE_STATUS_CANCELLED,
)
from ..money import format_cents
from ..permissions import Actor
from ..time_utils import to_local, to_utc_z, utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import begin_write, run_with_retry


TITLE_OFF_HOURS = "Sale created outside business hours"
TITLE_SPIKE = "Unusual high sale amount"
TITLE_RAPID_EDIT = "Sale edited shortly after creation"


@dataclass
class FlagCandidate:
    sale_id: int
    severity: str
    title: str
    description: str


@dataclass
class ScanResult:
    checked_sales: int
    avg_sale_cents: int
    new_flags: int
    flags: list[SaleFlag] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "checked_sales": self.checked_sales,
            "avg_sale_cents": self.avg_sale_cents,
            "new_flags": self.new_flags,
            "flags": [f.to_dict() for f in self.flags],
        }


def _settings() -> dict:
    cfg = current_app.config
    return {
        "tz": cfg.get("BUSINESS_TIMEZONE", "UTC"),
        "start": cfg.get("BUSINESS_HOURS_START", 8),
        "end": cfg.get("BUSINESS_HOURS_END", 18),
        "floor": cfg.get("ANOMALY_AMOUNT_FLOOR_CENTS", 5_000_000),
        "multiplier": cfg.get("ANOMALY_SPIKE_MULTIPLIER", 3),
        "rapid": timedelta(minutes=cfg.get("ANOMALY_RAPID_EDIT_MINUTES", 2)),
        "currency": cfg.get("CURRENCY", "DA"),
    }


def evaluate_sale(sale: Sale, avg_cents: float, settings: dict) -> list[FlagCandidate]:
    """Apply the three rules to one sale. Pure; no database access."""
    hits = []
    total = sale.total_amount_cents or 0

    local_created = to_local(sale.created_at, settings["tz"])
    if local_created.hour < settings["start"] or local_created.hour >= settings["end"]:
        hits.append(FlagCandidate(
            sale_id=sale.id,
            severity="MEDIUM",
            title=TITLE_OFF_HOURS,
            description=f"Created at {to_utc_z(sale.created_at)}",
        ))

    if avg_cents > 0 and total > avg_cents * settings["multiplier"] and total > settings["floor"]:
        hits.append(FlagCandidate(
            sale_id=sale.id,
            severity="HIGH",
            title=TITLE_SPIKE,
            description=(
                f"Total {format_cents(total, settings['currency'])} vs avg "
                f"{format_cents(round(avg_cents), settings['currency'])}"
            ),
        ))

    if sale.updated_at is not None:
        elapsed = sale.updated_at - sale.created_at
        if timedelta(0) <= elapsed <= settings["rapid"] and total > settings["floor"]:
            hits.append(FlagCandidate(
                sale_id=sale.id,
                severity="LOW",
                title=TITLE_RAPID_EDIT,
                description=f"Updated {elapsed.total_seconds() / 60:.1f} min after creation",
            ))

    return hits


def _insert_flag(advisor_id: int, candidate: FlagCandidate) -> SaleFlag | None:
    """Insert one flag under a savepoint; a dedup-key collision is swallowed."""
    flag = SaleFlag(
        sale_id=candidate.sale_id,
        advisor_id=advisor_id,
        severity=candidate.severity,
        title=candidate.title,
        description=candidate.description,
        status=FLAG_STATUS_OPEN,
        created_at=utcnow(),
    )
    try:
        with db.session.begin_nested():
            db.session.add(flag)
    except IntegrityError:
        current_app.logger.debug(
            "Flag already present: advisor=%s sale=%s title=%r",
            advisor_id, candidate.sale_id, candidate.title,
        )
        return None
    return flag


def scan_advisor(advisor_id: int, days: int | None = None) -> ScanResult:
    """Run the anomaly rules over the advisor's sales created in the last `days` days."""
    if days is None:
        days = current_app.config.get("ANOMALY_WINDOW_DAYS", 30)
    if not isinstance(days, int) or isinstance(days, bool) or days <= 0:
        raise ValidationError("days must be a positive integer")

    advisor = db.session.get(User, advisor_id)
    if not advisor:
        raise NotFoundError("Advisor not found")

    settings = _settings()

    def _op():
        begin_write()
        since = utcnow() - timedelta(days=days)
        sales = (
            db.session.query(Sale)
            .filter(Sale.created_by_user_id == advisor_id, Sale.created_at >= since)
            .order_by(Sale.created_at.desc())
            .all()
        )

        avg_cents = (
            sum(s.total_amount_cents or 0 for s in sales) / len(sales)
            if sales else 0
        )

        created = []
        existing_keys = {
            (sale_id, title)
            for sale_id, title in db.session.query(SaleFlag.sale_id, SaleFlag.title)
            .filter(SaleFlag.advisor_id == advisor_id)
            .all()
        }
        for sale in sales:
            for candidate in evaluate_sale(sale, avg_cents, settings):
                if (candidate.sale_id, candidate.title) in existing_keys:
                    continue
                flag = _insert_flag(advisor_id, candidate)
                if flag is not None:
                    created.append(flag)
                    existing_keys.add((candidate.sale_id, candidate.title))

        db.session.commit()
        return ScanResult(
            checked_sales=len(sales),
            avg_sale_cents=round(avg_cents),
            new_flags=len(created),
            flags=created,
        )

    result = run_with_retry(_op)
    current_app.logger.info(
        "Anomaly scan: advisor=%s days=%s checked=%s new_flags=%s",
        advisor_id, days, result.checked_sales, result.new_flags,
    )
    return result


def _severity_rank():
    return case(
        (SaleFlag.severity == "HIGH", 1),
        (SaleFlag.severity == "MEDIUM", 2),
        else_=3,
    )


def list_flags(advisor_id: int, status: str | None = FLAG_STATUS_OPEN) -> list[SaleFlag]:
    """Advisor flags, HIGH -> MEDIUM -> LOW, newest first within a severity."""
    if status and status not in FLAG_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(FLAG_STATUSES)}")
    query = db.session.query(SaleFlag).filter(SaleFlag.advisor_id == advisor_id)
    if status:
        query = query.filter(SaleFlag.status == status)
    return query.order_by(_severity_rank(), SaleFlag.created_at.desc(), SaleFlag.id.desc()).all()


def flags_summary(status: str = FLAG_STATUS_OPEN) -> dict:
    if status not in FLAG_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(FLAG_STATUSES)}")
    rows = (
        db.session.query(SaleFlag.severity, func.count(SaleFlag.id))
        .filter(SaleFlag.status == status)
        .group_by(SaleFlag.severity)
        .all()
    )
    by_severity = {sev: 0 for sev in ("HIGH", "MEDIUM", "LOW")}
    by_severity.update(dict(rows))
    return {
        "status": status,
        "open_flags": sum(by_severity.values()),
        "by_severity": by_severity,
    }


def _get_flag(flag_id: int) -> SaleFlag:
    flag = db.session.get(SaleFlag, flag_id)
    if not flag:
        raise NotFoundError("Flag not found")
    return flag


def review_flag(flag_id: int, actor: Actor) -> SaleFlag:
    """OPEN -> REVIEWED, stamping reviewer and time. Reviewing twice is a no-op."""
    flag = _get_flag(flag_id)
    if flag.status == FLAG_STATUS_RESOLVED:
        raise ConflictError("Flag is already resolved")
    if flag.status == FLAG_STATUS_OPEN:
        flag.status = FLAG_STATUS_REVIEWED
        flag.reviewed_at = utcnow()
        flag.reviewed_by_user_id = actor.user_id
        db.session.commit()
    return flag


def resolve_flag(flag_id: int, actor: Actor) -> SaleFlag:
    """OPEN/REVIEWED -> RESOLVED."""
    flag = _get_flag(flag_id)
    if flag.status == FLAG_STATUS_RESOLVED:
        raise ConflictError("Flag is already resolved")
    if flag.reviewed_at is None:
        flag.reviewed_at = utcnow()
        flag.reviewed_by_user_id = actor.user_id
    flag.status = FLAG_STATUS_RESOLVED
    db.session.commit()
    return flag


def _sales_stats_query():
    return db.session.query(
        Sale.created_by_user_id,
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_amount_cents), 0),
    ).filter(Sale.status != SALE_STATUS_CANCELLED).group_by(Sale.created_by_user_id)


def _open_flags_query():
    return db.session.query(
        SaleFlag.advisor_id,
        func.count(SaleFlag.id),
    ).filter(SaleFlag.status == FLAG_STATUS_OPEN).group_by(SaleFlag.advisor_id)


def _advisor_row(advisor: User, sales_count: int, revenue: int, open_flags: int) -> dict:
    return {
        "id": advisor.id,
        "name": advisor.full_name,
        "email": advisor.email,
        "phone": advisor.phone,
        "status": advisor.status,
        "total_sales": sales_count,
        "total_revenue_cents": int(revenue),
        "avg_sale_cents": round(revenue / sales_count) if sales_count else 0,
        "open_flags": open_flags,
    }


def advisor_summary(advisor_id: int) -> dict:
    """Sales count, revenue and average (cancelled sales excluded) plus open alerts."""
    advisor = db.session.get(User, advisor_id)
    if not advisor or advisor.role != ROLE_ADVISOR:
        raise NotFoundError("Advisor not found")

    stats = _sales_stats_query().filter(Sale.created_by_user_id == advisor_id).first()
    sales_count, revenue = (stats[1], stats[2]) if stats else (0, 0)
    open_flags = (
        db.session.query(func.count(SaleFlag.id))
        .filter(SaleFlag.advisor_id == advisor_id, SaleFlag.status == FLAG_STATUS_OPEN)
        .scalar()
    )
    return _advisor_row(advisor, sales_count, revenue, open_flags)


def list_advisors(search: str | None = None) -> list[dict]:
    """All advisors with their sales stats, highest revenue first."""
    query = db.session.query(User).filter(User.role == ROLE_ADVISOR)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                User.first_name.ilike(like),
                User.last_name.ilike(like),
                User.email.ilike(like),
                User.phone.ilike(like),
            )
        )
    advisors = query.all()

    stats = {row[0]: (row[1], row[2]) for row in _sales_stats_query().all()}
    flags = dict(_open_flags_query().all())

    rows = [
        _advisor_row(a, *stats.get(a.id, (0, 0)), flags.get(a.id, 0))
        for a in advisors
    ]
    rows.sort(key=lambda r: r["total_revenue_cents"], reverse=True)
    return rows
