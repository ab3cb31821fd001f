"""
Invoice tests: issuing from completed sales, payments and overdue handling.
"""

from datetime import timedelta

import pytest

from telecom_ops.extensions import db
from telecom_ops.models import Invoice
from telecom_ops.services import invoice_service, sales_service
from telecom_ops.services.invoice_service import InvoiceError
from telecom_ops.time_utils import utcnow
from telecom_ops.validation import ConflictError, ValidationError

from conftest import actor_of


@pytest.fixture
def completed_sale(db_session, advisor, agent, make_article):
    art = make_article(price_cents=159_000, stock=10)
    sale = sales_service.create_sale(
        actor_of(advisor),
        client_name="Atlas Logistics SARL",
        client_phone="0661987654",
        client_type="Professional",
        items=[{"article_id": art.id, "quantity": 3}],
    )
    sales_service.validate_sale(sale.id, actor_of(agent))
    return sales_service.complete_sale(sale.id, actor_of(agent))


def test_issue_invoice_snapshots_sale(db_session, completed_sale, agent):
    invoice = invoice_service.issue_invoice(completed_sale.id, actor_of(agent))

    year = utcnow().year
    assert invoice.invoice_number == f"INV-{year}-0001"
    assert invoice.amount_cents == 477_000
    assert invoice.sale_reference == completed_sale.reference
    assert invoice.client_name == "Atlas Logistics SARL"
    assert invoice.status == "Pending"
    assert invoice.due_date == utcnow().date() + timedelta(days=30)


def test_only_completed_sales_can_be_invoiced(db_session, advisor, agent):
    sale = sales_service.create_sale(actor_of(advisor), client_name="Draft Client")
    with pytest.raises(InvoiceError):
        invoice_service.issue_invoice(sale.id, actor_of(agent))
    assert db.session.query(Invoice).count() == 0


def test_one_invoice_per_sale(db_session, completed_sale, agent):
    invoice_service.issue_invoice(completed_sale.id, actor_of(agent))
    with pytest.raises(ConflictError):
        invoice_service.issue_invoice(completed_sale.id, actor_of(agent))


def test_past_due_date_is_rejected(db_session, completed_sale, agent):
    with pytest.raises(ValidationError):
        invoice_service.issue_invoice(
            completed_sale.id, actor_of(agent), due_date=utcnow().date() - timedelta(days=1),
        )


def test_partial_then_full_payment(db_session, completed_sale, agent):
    invoice = invoice_service.issue_invoice(completed_sale.id, actor_of(agent))

    invoice = invoice_service.record_payment(invoice.id, 200_000, actor_of(agent))
    assert invoice.status == "Pending"
    assert invoice.balance_cents == 277_000

    with pytest.raises(InvoiceError) as exc:
        invoice_service.record_payment(invoice.id, 300_000, actor_of(agent))
    assert exc.value.details["balance_cents"] == 277_000

    invoice = invoice_service.record_payment(invoice.id, 277_000, actor_of(agent))
    assert invoice.status == "Paid"
    assert invoice.paid_date == utcnow().date()

    with pytest.raises(InvoiceError):
        invoice_service.record_payment(invoice.id, 1, actor_of(agent))


def test_payment_amount_must_be_positive(db_session, completed_sale, agent):
    invoice = invoice_service.issue_invoice(completed_sale.id, actor_of(agent))
    for bad in (0, -5, 1.5):
        with pytest.raises(ValidationError):
            invoice_service.record_payment(invoice.id, bad, actor_of(agent))


def test_mark_overdue_and_reschedule(db_session, completed_sale, agent):
    invoice = invoice_service.issue_invoice(completed_sale.id, actor_of(agent))
    later = utcnow().date() + timedelta(days=31)

    assert invoice_service.mark_overdue(today=later) == 1
    db.session.expire_all()
    assert db.session.get(Invoice, invoice.id).status == "Overdue"

    invoice = invoice_service.update_invoice(invoice.id, due_date=utcnow().date() + timedelta(days=60))
    assert invoice.status == "Pending"


def test_invoice_stats(db_session, completed_sale, agent):
    invoice = invoice_service.issue_invoice(completed_sale.id, actor_of(agent))
    invoice_service.record_payment(invoice.id, 77_000, actor_of(agent))

    stats = invoice_service.invoice_stats()

    assert stats["total_invoices"] == 1
    assert stats["total_amount_cents"] == 477_000
    assert stats["amount_paid_cents"] == 77_000
    assert stats["amount_due_cents"] == 400_000
    assert stats["pending_count"] == 1


def test_zero_total_invoice_is_issued_paid(db_session, advisor, agent, make_article):
    free_router = make_article(price_cents=0, stock=5)
    sale = sales_service.create_sale(
        actor_of(advisor),
        client_name="Promo Client",
        items=[{"article_id": free_router.id, "quantity": 1}],
    )
    sales_service.validate_sale(sale.id, actor_of(agent))
    sales_service.complete_sale(sale.id, actor_of(agent))

    invoice = invoice_service.issue_invoice(sale.id, actor_of(agent))

    assert invoice.amount_cents == 0
    assert invoice.status == "Paid"
    assert invoice.paid_date == utcnow().date()
    assert invoice_service.mark_overdue(today=utcnow().date() + timedelta(days=365)) == 0
