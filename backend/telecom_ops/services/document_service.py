# Overview: Allocation of human-readable, per-year document references.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def format_document_number(prefix: str, year: int, number: int, pad: int) -> str:
    return f"{prefix}-{year}-{number:0{pad}d}"


def highest_issued_number(number_column, prefix: str, year: int) -> int:
    """
    Highest sequence number already present in number_column for the year.

    Scans references shaped like PREFIX-YEAR-NNN; anything else is ignored.
    """
    head = f"{prefix}-{year}-"
    rows = (
        db.session.query(number_column)
        .filter(number_column.like(f"{head}%"))
        .all()
    )
    highest = 0
    for (value,) in rows:
        suffix = value[len(head):]
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return highest


def _bump(document_type: str, year: int) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    db.session.flush()
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, year=year)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    number_column,
    year: int | None = None,
    pad: int = 3,
    resync: bool = False,
) -> str:
    """
    Allocate the next reference for document_type within the calendar year.

    Runs inside the caller's transaction so the increment commits or rolls
    back together with the document that uses it. The first allocation of a
    year seeds the counter past any reference already issued that year;
    resync=True does the same for an existing counter after a unique
    conflict on the reference column.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    year = year or utcnow().year

    if resync:
        floor = highest_issued_number(number_column, prefix, year) + 1
        db.session.execute(
            update(DocumentSequence)
            .where(
                DocumentSequence.document_type == document_type,
                DocumentSequence.year == year,
                DocumentSequence.next_number < floor,
            )
            .values(next_number=floor)
        )

    next_num = _bump(document_type, year)
    if next_num is None:
        first = highest_issued_number(number_column, prefix, year) + 1
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, year=year, next_number=first + 1))
            next_num = first
        except IntegrityError:
            # Another writer created the counter first
            next_num = _bump(document_type, year)
            if next_num is None:
                raise

    return format_document_number(prefix, year, next_num, pad)
