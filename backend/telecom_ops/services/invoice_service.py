# Overview: Service-layer operations for invoices issued from completed sales.

from __future__ import annotations

from datetime import date, timedelta

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Invoice, Sale
from ..models.invoices import (
    INVOICE_STATUS_OVERDUE,
    INVOICE_STATUS_PAID,
    INVOICE_STATUS_PENDING,
    INVOICE_STATUSES,
)
from ..models.sales import SALE_STATUS_COMPLETED
from ..permissions import Actor
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import next_document_number
from .pagination import paginate


class InvoiceError(Exception):
    """Raised for invoice business-rule violations."""
    code = "INVOICE_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class _InvoiceNumberConflict(Exception):
    pass


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def issue_invoice(sale_id: int, actor: Actor, *, due_date: date | None = None) -> Invoice:
    """
    Issue the invoice for a Completed sale.

    One invoice per sale; the number is INV-YYYY-NNNN, unique per year.
    A sale with a zero total is invoiced as Paid.
    """
    today = utcnow().date()
    if due_date is None:
        due_date = today + timedelta(days=current_app.config.get("INVOICE_DUE_DAYS", 30))
    elif due_date < today:
        raise ValidationError("due_date cannot be in the past")

    def _issue(resync: bool) -> Invoice:
        begin_write()
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found")
        if sale.status != SALE_STATUS_COMPLETED:
            raise InvoiceError(
                "Invoices can only be issued for Completed sales",
                details={"sale_id": sale.id, "current_status": sale.status},
            )
        if db.session.query(Invoice.id).filter(Invoice.sale_id == sale.id).first():
            raise ConflictError(f"Sale {sale.reference} already has an invoice")

        number = next_document_number(
            document_type="INVOICE",
            prefix="INV",
            number_column=Invoice.invoice_number,
            pad=4,
            resync=resync,
        )
        invoice = Invoice(
            invoice_number=number,
            sale_id=sale.id,
            sale_reference=sale.reference,
            client_id=sale.client_id,
            client_name=sale.client_name,
            client_phone=sale.client_phone,
            client_type=sale.client_type,
            amount_cents=sale.total_amount_cents,
            paid_amount_cents=0,
            status=INVOICE_STATUS_PENDING,
            issue_date=today,
            due_date=due_date,
            created_by_user_id=actor.user_id,
        )
        # A zero total is settled on issue
        if invoice.amount_cents == 0:
            invoice.status = INVOICE_STATUS_PAID
            invoice.paid_date = today
        db.session.add(invoice)
        try:
            db.session.flush()
        except IntegrityError as exc:
            message = str(getattr(exc, "orig", exc)).lower()
            if "invoice_number" in message:
                raise _InvoiceNumberConflict(number) from exc
            if "sale_id" in message or "uq_invoices_sale" in message:
                raise ConflictError(f"Sale {sale.reference} already has an invoice") from exc
            raise

        db.session.commit()
        return invoice

    attempts = current_app.config.get("REFERENCE_RETRY_ATTEMPTS", 5)
    for attempt in range(attempts):
        try:
            invoice = run_with_retry(lambda: _issue(resync=attempt > 0))
        except _InvoiceNumberConflict as exc:
            current_app.logger.warning("Invoice number conflict on %s, retrying", exc)
            continue
        current_app.logger.info(
            "Invoice issued: %s for sale %s", invoice.invoice_number, invoice.sale_reference,
        )
        return invoice

    raise InvoiceError("Could not allocate a unique invoice number", details={"attempts": attempts})


def record_payment(invoice_id: int, amount_cents: int, actor: Actor) -> Invoice:
    """
    Add a payment. The paid amount never exceeds the invoice amount; the
    invoice becomes Paid (with paid_date) once fully covered.
    """
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise ValidationError("amount must be positive")

    def _op():
        begin_write()
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if not invoice:
            raise NotFoundError("Invoice not found")
        if invoice.status == INVOICE_STATUS_PAID:
            raise InvoiceError("Invoice is already paid", details={"invoice_id": invoice.id})
        if amount_cents > invoice.balance_cents:
            raise InvoiceError(
                "Payment exceeds the outstanding balance",
                details={
                    "invoice_id": invoice.id,
                    "balance_cents": invoice.balance_cents,
                    "requested_cents": amount_cents,
                },
            )

        invoice.paid_amount_cents += amount_cents
        if invoice.paid_amount_cents == invoice.amount_cents:
            invoice.status = INVOICE_STATUS_PAID
            invoice.paid_date = utcnow().date()

        db.session.commit()
        current_app.logger.info(
            "Payment recorded: invoice=%s amount=%s by user %s",
            invoice.invoice_number, amount_cents, actor.user_id,
        )
        return invoice

    return run_with_retry(_op)


def update_invoice(invoice_id: int, *, due_date: date) -> Invoice:
    """Move the due date. An Overdue invoice given a future date is Pending again."""
    invoice = get_invoice(invoice_id)
    if invoice.status == INVOICE_STATUS_PAID:
        raise InvoiceError("Paid invoices cannot be changed", details={"invoice_id": invoice.id})
    if due_date < invoice.issue_date:
        raise ValidationError("due_date cannot be before the issue date")

    invoice.due_date = due_date
    if invoice.status == INVOICE_STATUS_OVERDUE and due_date >= utcnow().date():
        invoice.status = INVOICE_STATUS_PENDING
    db.session.commit()
    return invoice


def mark_overdue(today: date | None = None) -> int:
    """Pending invoices past their due date become Overdue. Returns the count."""
    today = today or utcnow().date()
    invoices = (
        db.session.query(Invoice)
        .filter(
            Invoice.status == INVOICE_STATUS_PENDING,
            Invoice.due_date.isnot(None),
            Invoice.due_date < today,
        )
        .all()
    )
    for invoice in invoices:
        invoice.status = INVOICE_STATUS_OVERDUE
    db.session.commit()
    if invoices:
        current_app.logger.info("Marked %s invoice(s) overdue", len(invoices))
    return len(invoices)


def list_invoices(
    *,
    status: str | None = None,
    search: str | None = None,
    client_type: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    if status and status not in INVOICE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(INVOICE_STATUSES)}")

    query = db.session.query(Invoice)
    if status:
        query = query.filter(Invoice.status == status)
    if client_type:
        query = query.filter(Invoice.client_type == client_type)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                Invoice.invoice_number.ilike(like),
                Invoice.sale_reference.ilike(like),
                Invoice.client_name.ilike(like),
            )
        )
    query = query.order_by(Invoice.issue_date.desc(), Invoice.id.desc())
    return paginate(query, page=page, per_page=per_page)


def invoice_stats() -> dict:
    totals = db.session.query(
        func.count(Invoice.id),
        func.coalesce(func.sum(Invoice.amount_cents), 0),
        func.coalesce(func.sum(Invoice.paid_amount_cents), 0),
    ).one()
    counts = dict(
        db.session.query(Invoice.status, func.count(Invoice.id))
        .group_by(Invoice.status)
        .all()
    )
    return {
        "total_invoices": totals[0],
        "total_amount_cents": int(totals[1]),
        "amount_paid_cents": int(totals[2]),
        "amount_due_cents": int(totals[1]) - int(totals[2]),
        "paid_count": counts.get(INVOICE_STATUS_PAID, 0),
        "pending_count": counts.get(INVOICE_STATUS_PENDING, 0),
        "overdue_count": counts.get(INVOICE_STATUS_OVERDUE, 0),
    }


def invoices_by_client(
    *,
    search: str | None = None,
    client_type: str | None = None,
    status: str | None = None,
) -> dict:
    """
    Invoices grouped per client, largest outstanding balance first.

    Grouping follows the client snapshot on the invoice (id when present,
    else name), so walk-in sales without a registered client still show up.
    status keeps only clients holding at least one invoice in that status.
    """
    if status and status not in INVOICE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(INVOICE_STATUSES)}")

    query = db.session.query(Invoice)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Invoice.client_name.ilike(like), Invoice.client_phone.ilike(like)))
    if client_type:
        query = query.filter(Invoice.client_type == client_type)

    groups: dict = {}
    for invoice in query.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).all():
        key = ("id", invoice.client_id) if invoice.client_id is not None else ("name", invoice.client_name)
        group = groups.setdefault(key, {
            "client_id": invoice.client_id,
            "client_name": invoice.client_name,
            "client_phone": invoice.client_phone,
            "client_type": invoice.client_type,
            "total_invoices": 0,
            "total_amount_cents": 0,
            "total_paid_cents": 0,
            "total_due_cents": 0,
            "invoices": [],
        })
        group["total_invoices"] += 1
        group["total_amount_cents"] += invoice.amount_cents
        group["total_paid_cents"] += invoice.paid_amount_cents
        group["total_due_cents"] += invoice.balance_cents
        group["invoices"].append(invoice.to_dict())

    rows = list(groups.values())
    if status:
        rows = [row for row in rows if any(inv["status"] == status for inv in row["invoices"])]
    rows.sort(key=lambda row: (-row["total_due_cents"], row["client_name"]))
    return {"items": rows, "count": len(rows), "stats": invoice_stats()}
