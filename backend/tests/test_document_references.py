"""
Reference allocation tests: SALE-YYYY-NNN, INV-YYYY-NNNN and PO-YYYY-NNN.
"""

from datetime import datetime

from telecom_ops.extensions import db
from telecom_ops.models import DocumentSequence, Sale
from telecom_ops.services import sales_service
from telecom_ops.services.document_service import (
    format_document_number,
    highest_issued_number,
    next_document_number,
)
from telecom_ops.time_utils import utcnow

from conftest import actor_of


def _new_sale(user):
    return sales_service.create_sale(actor_of(user), client_name="Walk-in", client_phone="0550000000")


def test_format_document_number():
    assert format_document_number("SALE", 2026, 7, 3) == "SALE-2026-007"
    assert format_document_number("INV", 2026, 12, 4) == "INV-2026-0012"
    assert format_document_number("SALE", 2026, 1234, 3) == "SALE-2026-1234"


def test_sale_references_are_sequential(db_session, advisor):
    year = utcnow().year
    refs = [_new_sale(advisor).reference for _ in range(3)]
    assert refs == [f"SALE-{year}-001", f"SALE-{year}-002", f"SALE-{year}-003"]


def test_deleted_reference_is_not_reused(db_session, advisor):
    first = _new_sale(advisor)
    sales_service.delete_sale(first.id, actor_of(advisor))

    second = _new_sale(advisor)
    assert second.reference != first.reference
    assert second.reference.endswith("-002")


def test_counter_resets_per_year(db_session):
    a = next_document_number(document_type="SALE", prefix="SALE", number_column=Sale.reference, year=2025)
    b = next_document_number(document_type="SALE", prefix="SALE", number_column=Sale.reference, year=2026)
    c = next_document_number(document_type="SALE", prefix="SALE", number_column=Sale.reference, year=2025)
    db.session.commit()

    assert (a, b, c) == ("SALE-2025-001", "SALE-2026-001", "SALE-2025-002")


def test_first_counter_of_year_starts_past_existing_references(db_session, advisor):
    year = utcnow().year
    now = utcnow()
    db.session.add(Sale(
        reference=f"SALE-{year}-041",
        client_name="Imported",
        status="Draft",
        total_amount_cents=0,
        sale_date=now.date(),
        created_by_user_id=advisor.id,
        created_at=now,
        updated_at=now,
    ))
    db.session.commit()

    sale = _new_sale(advisor)
    assert sale.reference == f"SALE-{year}-042"


def test_collision_with_stale_counter_resyncs(db_session, advisor):
    year = utcnow().year
    _new_sale(advisor)

    # A reference issued outside the counter
    now = utcnow()
    db.session.add(Sale(
        reference=f"SALE-{year}-002",
        client_name="Imported",
        status="Draft",
        total_amount_cents=0,
        sale_date=now.date(),
        created_by_user_id=advisor.id,
        created_at=now,
        updated_at=now,
    ))
    db.session.commit()

    sale = _new_sale(advisor)

    assert sale.reference == f"SALE-{year}-003"
    seq = db.session.query(DocumentSequence).filter_by(document_type="SALE", year=year).one()
    assert seq.next_number == 4


def test_highest_issued_number_ignores_foreign_shapes(db_session, advisor):
    now = datetime(2026, 3, 1, 10, 0)
    for ref in ("SALE-2026-005", "SALE-2026-abc", "SALE-2025-900"):
        db.session.add(Sale(
            reference=ref,
            client_name="X",
            status="Draft",
            total_amount_cents=0,
            sale_date=now.date(),
            created_by_user_id=advisor.id,
            created_at=now,
            updated_at=now,
        ))
    db.session.commit()

    assert highest_issued_number(Sale.reference, "SALE", 2026) == 5
