"""
Sales Service - sale lifecycle and inventory consistency

Lifecycle (terminal states: Completed, Cancelled):

    Draft --validate--> Validated --complete--> Completed
    Draft --cancel----> Cancelled

Items can only change while the sale is a Draft. Adding an item reserves
tracked stock immediately; removing it, cancelling or deleting the sale
gives the stock back. The sale total is always re-derived from the full
item set after a mutation, never adjusted incrementally.

Every mutation is one transaction: the sale row is locked, then each
article row it touches, and any rejection rolls the whole unit back.
"""
from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Sale, SaleItem
from ..models.sales import (
    SALE_STATUS_CANCELLED,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_DRAFT,
    SALE_STATUS_VALIDATED,
    SALE_STATUSES,
)
from ..permissions import Actor
from ..time_utils import utcnow
from ..validation import ValidationError, coerce_positive_int
from . import catalog_service, client_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import next_document_number
from .pagination import paginate


class SaleError(Exception):
    """Raised for sale operation errors."""
    code = "SALE_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SaleNotFound(SaleError):
    code = "SALE_NOT_FOUND"

    def __init__(self, sale_id: int):
        super().__init__("Sale not found", details={"sale_id": sale_id})


class ArticleNotFound(SaleError):
    code = "ARTICLE_NOT_FOUND"

    def __init__(self, article_id: int | None):
        super().__init__("Article not found or inactive", details={"article_id": article_id})


class ItemNotFound(SaleError):
    code = "ITEM_NOT_FOUND"

    def __init__(self, sale_id: int, item_id: int):
        super().__init__("Sale item not found", details={"sale_id": sale_id, "item_id": item_id})


class InsufficientStock(SaleError):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, article_id: int, available: int, requested: int):
        super().__init__(
            f"Insufficient stock: {available} available, {requested} requested",
            details={"article_id": article_id, "available": available, "requested": requested},
        )


class SaleNotEditable(SaleError):
    code = "SALE_NOT_EDITABLE"

    def __init__(self, sale_id: int, status: str):
        super().__init__(
            f"Items can only be changed on Draft sales (sale is {status})",
            details={"sale_id": sale_id, "current_status": status},
        )


class InvalidStateTransition(SaleError):
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, current_status: str, action: str):
        super().__init__(
            f"Cannot {action} a sale in status {current_status}",
            details={"current_status": current_status, "action": action},
        )


class ReferenceConflict(SaleError):
    """Another writer took the allocated reference; retried internally."""
    code = "REFERENCE_CONFLICT"


class InvariantViolation(SaleError):
    code = "INVARIANT_VIOLATION"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _can_see(actor: Actor, sale: Sale) -> bool:
    return actor.can("VIEW_ALL_SALES") or sale.created_by_user_id == actor.user_id


def _load_sale_for_update(sale_id: int, actor: Actor) -> Sale:
    sale = lock_for_update(
        db.session.query(Sale).filter_by(id=sale_id)
    ).populate_existing().first()
    if not sale or not _can_see(actor, sale):
        raise SaleNotFound(sale_id)
    return sale


def _require_editable(sale: Sale) -> None:
    if not sale.is_editable:
        raise SaleNotEditable(sale.id, sale.status)


def _find_item(sale: Sale, item_id: int) -> SaleItem:
    for item in sale.items:
        if item.id == item_id:
            return item
    raise ItemNotFound(sale.id, item_id)


def _touch(sale: Sale) -> None:
    sale.updated_at = utcnow()


def _items_sum(sale: Sale) -> int:
    db.session.flush()
    return db.session.query(
        func.coalesce(func.sum(SaleItem.total_price_cents), 0)
    ).filter(SaleItem.sale_id == sale.id).scalar()


def recompute_total(sale: Sale) -> int:
    """Re-derive and store the sale total from its full item set."""
    sale.total_amount_cents = int(_items_sum(sale))
    return sale.total_amount_cents


def verify_total(sale: Sale) -> None:
    """
    Check the stored total against the item sum.

    A mismatch is never corrected here: it is logged and raised.
    """
    expected = int(_items_sum(sale))
    if sale.total_amount_cents != expected:
        current_app.logger.critical(
            "Sale total invariant violated: sale_id=%s stored=%s items_sum=%s",
            sale.id, sale.total_amount_cents, expected,
        )
        raise InvariantViolation(
            "Sale total does not match the sum of its items",
            details={
                "sale_id": sale.id,
                "stored_total_cents": sale.total_amount_cents,
                "items_total_cents": expected,
            },
        )


def _add_item_locked(sale: Sale, article_id: int, quantity: int, actor: Actor) -> SaleItem:
    article = catalog_service.get_article_for_update(article_id)
    if not article or not article.is_active:
        raise ArticleNotFound(article_id)

    if article.tracks_stock and article.stock_quantity < quantity:
        raise InsufficientStock(article.id, article.stock_quantity, quantity)

    movement = catalog_service.apply_stock_delta(
        article,
        -quantity,
        reason=catalog_service.REASON_SALE_ITEM_ADDED,
        reference=sale.reference,
        actor_id=actor.user_id,
    )

    item = SaleItem(
        article_id=article.id,
        product_name=article.name,
        product_code=article.code,
        quantity=quantity,
        unit_price_cents=article.price_cents,
        total_price_cents=quantity * article.price_cents,
        stock_reserved=quantity if movement is not None else 0,
    )
    sale.items.append(item)

    _touch(sale)
    recompute_total(sale)
    return item


def _restore_item_stock(sale: Sale, item: SaleItem, actor: Actor, reason: str) -> None:
    # Only what was taken goes back: an item added while the article was
    # untracked reserved nothing, even if the article tracks stock now.
    if not item.stock_reserved or item.article_id is None:
        return
    article = catalog_service.get_article_for_update(item.article_id)
    if article is None or not article.tracks_stock:
        return
    catalog_service.apply_stock_delta(
        article,
        item.stock_reserved,
        reason=reason,
        reference=sale.reference,
        actor_id=actor.user_id,
    )
    item.stock_reserved = 0


def _remove_item_locked(sale: Sale, item: SaleItem, actor: Actor) -> None:
    _restore_item_stock(sale, item, actor, catalog_service.REASON_SALE_ITEM_REMOVED)
    sale.items.remove(item)
    _touch(sale)
    recompute_total(sale)


def _parse_item_specs(items) -> list[tuple[int, int]]:
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError("items must be a list")
    specs = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object with article_id and quantity")
        if raw.get("article_id") is None:
            raise ValidationError("article_id is required for each item")
        specs.append((
            coerce_positive_int(raw.get("article_id"), "article_id"),
            coerce_positive_int(raw.get("quantity"), "quantity"),
        ))
    return specs


def _is_reference_collision(exc: IntegrityError) -> bool:
    return "reference" in str(getattr(exc, "orig", exc)).lower()


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def create_sale(
    actor: Actor,
    *,
    client_id: int | None = None,
    client_name: str | None = None,
    client_phone: str | None = None,
    client_email: str | None = None,
    client_address: str | None = None,
    client_type: str | None = None,
    notes: str | None = None,
    sale_date: date | None = None,
    items=None,
) -> Sale:
    """
    Create a Draft sale with a fresh SALE-YYYY-NNN reference.

    Client details are snapshotted onto the sale; a Client is resolved or
    created through the registry. Optional initial items go through the
    same add-item path inside the same transaction.
    """
    specs = _parse_item_specs(items)
    if client_id is None and not (client_name or "").strip():
        raise ValidationError("client_name is required")

    attempts = current_app.config.get("REFERENCE_RETRY_ATTEMPTS", 5)

    def _create(resync: bool) -> Sale:
        begin_write()

        client = client_service.find_or_create_for_sale(
            client_id=client_id,
            name=client_name,
            phone=client_phone,
            email=client_email,
            address=client_address,
            client_type=client_type,
            actor_id=actor.user_id,
        )

        reference = next_document_number(
            document_type="SALE",
            prefix="SALE",
            number_column=Sale.reference,
            pad=3,
            resync=resync,
        )

        now = utcnow()
        sale = Sale(
            reference=reference,
            client_id=client.id if client else None,
            client_name=client.name if client else client_name.strip(),
            client_phone=client.phone if client else client_phone,
            client_email=client.email if client else client_email,
            client_address=client.address if client else client_address,
            client_type=client.client_type if client else client_type,
            status=SALE_STATUS_DRAFT,
            total_amount_cents=0,
            notes=notes,
            sale_date=sale_date or now.date(),
            created_by_user_id=actor.user_id,
            created_at=now,
            updated_at=now,
        )
        db.session.add(sale)

        try:
            db.session.flush()
        except IntegrityError as exc:
            if _is_reference_collision(exc):
                raise ReferenceConflict(
                    "Sale reference already taken",
                    details={"reference": reference},
                ) from exc
            raise

        for article_id, quantity in specs:
            _add_item_locked(sale, article_id, quantity, actor)

        db.session.commit()
        return sale

    for attempt in range(attempts):
        try:
            sale = run_with_retry(lambda: _create(resync=attempt > 0))
        except ReferenceConflict as exc:
            current_app.logger.warning(
                "Sale reference conflict on %s (attempt %s/%s), retrying",
                exc.details.get("reference"), attempt + 1, attempts,
            )
            continue
        current_app.logger.info(
            "Sale created: %s by user %s (%s items)", sale.reference, actor.user_id, len(specs),
        )
        return sale

    raise SaleError(
        "Could not allocate a unique sale reference",
        details={"attempts": attempts},
    )


def validate_sale(sale_id: int, actor: Actor) -> Sale:
    """Draft -> Validated. No stock effect; the sale must have items."""
    def _op():
        begin_write()
        sale = _load_sale_for_update(sale_id, actor)
        if sale.status != SALE_STATUS_DRAFT:
            raise InvalidStateTransition(sale.status, "validate")
        if not sale.items:
            raise SaleError("Cannot validate a sale with no items", details={"sale_id": sale.id})
        verify_total(sale)

        now = utcnow()
        sale.status = SALE_STATUS_VALIDATED
        sale.validated_at = now
        sale.validated_by_user_id = actor.user_id
        sale.updated_at = now

        db.session.commit()
        current_app.logger.info("Sale validated: %s by user %s", sale.reference, actor.user_id)
        return sale

    return run_with_retry(_op)


def complete_sale(sale_id: int, actor: Actor) -> Sale:
    """Validated -> Completed."""
    def _op():
        begin_write()
        sale = _load_sale_for_update(sale_id, actor)
        if sale.status != SALE_STATUS_VALIDATED:
            raise InvalidStateTransition(sale.status, "complete")

        now = utcnow()
        sale.status = SALE_STATUS_COMPLETED
        sale.completed_at = now
        sale.completed_by_user_id = actor.user_id
        sale.updated_at = now

        db.session.commit()
        current_app.logger.info("Sale completed: %s by user %s", sale.reference, actor.user_id)
        return sale

    return run_with_retry(_op)


def cancel_sale(sale_id: int, actor: Actor, reason: str | None = None) -> Sale:
    """
    Draft -> Cancelled.

    Tracked stock reserved by the items is restored; the items stay on the
    sale as history.
    """
    def _op():
        begin_write()
        sale = _load_sale_for_update(sale_id, actor)
        if sale.status != SALE_STATUS_DRAFT:
            raise InvalidStateTransition(sale.status, "cancel")

        for item in sale.items:
            _restore_item_stock(sale, item, actor, catalog_service.REASON_SALE_CANCELLED)

        now = utcnow()
        sale.status = SALE_STATUS_CANCELLED
        sale.cancelled_at = now
        sale.cancelled_by_user_id = actor.user_id
        sale.cancel_reason = reason
        sale.updated_at = now

        db.session.commit()
        current_app.logger.info(
            "Sale cancelled: %s by user %s (%s)", sale.reference, actor.user_id, reason or "no reason",
        )
        return sale

    return run_with_retry(_op)


def delete_sale(sale_id: int, actor: Actor) -> str:
    """Delete a Draft sale and its items, restoring stock. Returns the reference."""
    def _op():
        begin_write()
        sale = _load_sale_for_update(sale_id, actor)
        if sale.status != SALE_STATUS_DRAFT:
            raise InvalidStateTransition(sale.status, "delete")

        for item in sale.items:
            _restore_item_stock(sale, item, actor, catalog_service.REASON_SALE_DELETED)

        reference = sale.reference
        db.session.delete(sale)
        db.session.commit()
        current_app.logger.info("Sale deleted: %s by user %s", reference, actor.user_id)
        return reference

    return run_with_retry(_op)


# ---------------------------------------------------------------------------
# Item mutations
# ---------------------------------------------------------------------------

def add_item(sale_id: int, article_id: int, quantity, actor: Actor) -> SaleItem:
    """
    Add an article to a Draft sale.

    Locks the article, checks and decrements tracked stock, snapshots the
    current price/name/code and recomputes the sale total, all in one
    transaction.
    """
    quantity = coerce_positive_int(quantity, "quantity")

    def _op():
        begin_write()
        sale = _load_sale_for_update(sale_id, actor)
        _require_editable(sale)
        item = _add_item_locked(sale, article_id, quantity, actor)
        db.session.commit()
        return item

    return run_with_retry(_op)


def remove_item(sale_id: int, item_id: int, actor: Actor) -> Sale:
    """Remove an item from a Draft sale, restoring its stock."""
    def _op():
        begin_write()
        sale = _load_sale_for_update(sale_id, actor)
        _require_editable(sale)
        item = _find_item(sale, item_id)
        _remove_item_locked(sale, item, actor)
        db.session.commit()
        return sale

    return run_with_retry(_op)


def replace_item_quantity(sale_id: int, item_id: int, quantity, actor: Actor) -> SaleItem:
    """
    Change an item's quantity: remove then re-add in one transaction.

    The original quantity goes back to stock before the new one is taken,
    and the re-added item snapshots the article's current price.
    """
    quantity = coerce_positive_int(quantity, "quantity")

    def _op():
        begin_write()
        sale = _load_sale_for_update(sale_id, actor)
        _require_editable(sale)
        item = _find_item(sale, item_id)
        article_id = item.article_id
        if article_id is None:
            raise ArticleNotFound(None)
        _remove_item_locked(sale, item, actor)
        new_item = _add_item_locked(sale, article_id, quantity, actor)
        db.session.commit()
        return new_item

    return run_with_retry(_op)


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------

def get_sale(sale_id: int, actor: Actor) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale or not _can_see(actor, sale):
        raise SaleNotFound(sale_id)
    return sale


def list_sales(
    actor: Actor,
    *,
    search: str | None = None,
    status: str | None = None,
    client_type: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    created_by: int | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Newest-first sale listing with filters and per-status counts.

    Actors without VIEW_ALL_SALES only ever see their own sales.
    """
    if status and status not in SALE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(SALE_STATUSES)}")

    query = db.session.query(Sale)

    if not actor.can("VIEW_ALL_SALES"):
        created_by = actor.user_id
    if created_by is not None:
        query = query.filter(Sale.created_by_user_id == created_by)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(Sale.reference.ilike(like), Sale.client_name.ilike(like)))
    if client_type:
        query = query.filter(Sale.client_type == client_type)
    if date_from:
        query = query.filter(Sale.sale_date >= date_from)
    if date_to:
        query = query.filter(Sale.sale_date <= date_to)

    counts = dict(
        query.order_by(None)
        .with_entities(Sale.status, func.count(Sale.id))
        .group_by(Sale.status)
        .all()
    )

    if status:
        query = query.filter(Sale.status == status)

    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    result = paginate(query, page=page, per_page=per_page)
    result["status_counts"] = {s: counts.get(s, 0) for s in SALE_STATUSES}
    return result
