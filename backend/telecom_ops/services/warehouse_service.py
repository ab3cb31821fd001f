# Overview: Service-layer operations for warehouse purchase orders and stock receipt.

"""
Warehouse Orders

Status machine:

    Pending Approval --> In Transit --> Arrived --sign--> Completed
    Pending Approval / In Transit --> Rejected

Completed is only reachable by signing an Arrived order, which receives
every line into tracked stock in the same transaction.
"""
from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import WarehouseOrder, WarehouseOrderItem
from ..models.warehouse import (
    ORDER_STATUS_ARRIVED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_IN_TRANSIT,
    ORDER_STATUS_PENDING,
    ORDER_STATUS_REJECTED,
    ORDER_STATUSES,
    WAREHOUSE_TYPES,
)
from ..money import parse_amount_to_cents
from ..permissions import Actor
from ..time_utils import utcnow
from ..validation import NotFoundError, ValidationError, coerce_date, coerce_positive_int
from . import catalog_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import next_document_number
from .pagination import paginate


# Manual transitions; Completed is reached through sign_order()
ALLOWED_TRANSITIONS = {
    ORDER_STATUS_PENDING: {ORDER_STATUS_IN_TRANSIT, ORDER_STATUS_REJECTED},
    ORDER_STATUS_IN_TRANSIT: {ORDER_STATUS_ARRIVED, ORDER_STATUS_REJECTED},
    ORDER_STATUS_ARRIVED: set(),
    ORDER_STATUS_COMPLETED: set(),
    ORDER_STATUS_REJECTED: set(),
}

DELETABLE_STATUSES = {ORDER_STATUS_PENDING, ORDER_STATUS_REJECTED}


class WarehouseError(Exception):
    """Raised for purchase order rule violations."""
    code = "WAREHOUSE_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def get_order(order_id: int) -> WarehouseOrder:
    order = db.session.get(WarehouseOrder, order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def _load_order_for_update(order_id: int) -> WarehouseOrder:
    order = lock_for_update(
        db.session.query(WarehouseOrder).filter_by(id=order_id)
    ).populate_existing().first()
    if not order:
        raise NotFoundError("Order not found")
    return order


def _parse_lines(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")
    lines = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")
        article = catalog_service.get_article(coerce_positive_int(raw.get("article_id"), "article_id"))
        unit_price = raw.get("unit_price")
        try:
            unit_price_cents = parse_amount_to_cents(unit_price) if unit_price is not None else None
        except ValueError as exc:
            raise ValidationError(str(exc))
        lines.append({
            "article_id": article.id,
            "quantity": coerce_positive_int(raw.get("quantity"), "quantity"),
            "unit_price_cents": unit_price_cents,
        })
    return lines


def create_order(
    actor: Actor,
    *,
    supplier: str,
    warehouse_location: str,
    warehouse_type: str,
    expected_delivery_date,
    items,
    notes: str | None = None,
) -> WarehouseOrder:
    """Create a Pending Approval purchase order numbered PO-YYYY-NNN."""
    if not (supplier or "").strip() or not (warehouse_location or "").strip():
        raise ValidationError("supplier and warehouse_location are required")
    if warehouse_type not in WAREHOUSE_TYPES:
        raise ValidationError(f"warehouse_type must be one of: {', '.join(WAREHOUSE_TYPES)}")
    expected = coerce_date(expected_delivery_date, "expected_delivery_date")
    lines = _parse_lines(items)

    def _op():
        begin_write()
        number = next_document_number(
            document_type="PURCHASE_ORDER",
            prefix="PO",
            number_column=WarehouseOrder.order_number,
            pad=3,
            resync=True,
        )
        order = WarehouseOrder(
            order_number=number,
            requester_user_id=actor.user_id,
            supplier=supplier.strip(),
            warehouse_location=warehouse_location.strip(),
            warehouse_type=warehouse_type,
            expected_delivery_date=expected,
            status=ORDER_STATUS_PENDING,
            notes=notes,
        )
        for line in lines:
            order.items.append(WarehouseOrderItem(**line))
        db.session.add(order)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info("Purchase order created: %s (%s lines)", order.order_number, len(lines))
    return order


def update_order_status(
    order_id: int,
    status: str,
    actor: Actor,
    *,
    arrived_date: date | None = None,
) -> WarehouseOrder:
    if status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")

    def _op():
        begin_write()
        order = _load_order_for_update(order_id)
        if status not in ALLOWED_TRANSITIONS[order.status]:
            raise WarehouseError(
                f"Cannot move order from {order.status} to {status}",
                details={"current_status": order.status, "requested_status": status},
            )
        order.status = status
        if status == ORDER_STATUS_ARRIVED:
            order.arrived_date = arrived_date or utcnow().date()
        db.session.commit()
        current_app.logger.info(
            "Purchase order %s -> %s by user %s", order.order_number, status, actor.user_id,
        )
        return order

    return run_with_retry(_op)


def sign_order(order_id: int, actor: Actor) -> WarehouseOrder:
    """
    Arrived -> Completed, receiving every line into stock.

    Only tracked articles change; untracked ones are always available.
    """
    def _op():
        begin_write()
        order = _load_order_for_update(order_id)
        if order.status != ORDER_STATUS_ARRIVED:
            raise WarehouseError(
                "Only Arrived orders can be signed",
                details={"current_status": order.status},
            )

        for item in order.items:
            article = catalog_service.get_article_for_update(item.article_id)
            if article is None:
                continue
            catalog_service.apply_stock_delta(
                article,
                item.quantity,
                reason=catalog_service.REASON_WAREHOUSE_RECEIPT,
                reference=order.order_number,
                actor_id=actor.user_id,
            )

        order.status = ORDER_STATUS_COMPLETED
        order.signed_at = utcnow()
        order.signed_by_user_id = actor.user_id
        db.session.commit()
        current_app.logger.info(
            "Purchase order signed: %s by user %s", order.order_number, actor.user_id,
        )
        return order

    return run_with_retry(_op)


def delete_order(order_id: int) -> str:
    order = get_order(order_id)
    if order.status not in DELETABLE_STATUSES:
        raise WarehouseError(
            "Only Pending Approval or Rejected orders can be deleted",
            details={"current_status": order.status},
        )
    number = order.order_number
    db.session.delete(order)
    db.session.commit()
    return number


def list_orders(
    *,
    status: str | None = None,
    supplier: str | None = None,
    warehouse: str | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    if status and status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")

    query = db.session.query(WarehouseOrder)
    if status:
        query = query.filter(WarehouseOrder.status == status)
    if supplier:
        query = query.filter(WarehouseOrder.supplier.ilike(f"%{supplier.strip()}%"))
    if warehouse:
        query = query.filter(WarehouseOrder.warehouse_location.ilike(f"%{warehouse.strip()}%"))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                WarehouseOrder.order_number.ilike(like),
                WarehouseOrder.supplier.ilike(like),
                WarehouseOrder.notes.ilike(like),
            )
        )
    query = query.order_by(WarehouseOrder.created_at.desc(), WarehouseOrder.id.desc())
    return paginate(query, page=page, per_page=per_page)


def order_stats() -> dict:
    counts = dict(
        db.session.query(WarehouseOrder.status, func.count(WarehouseOrder.id))
        .group_by(WarehouseOrder.status)
        .all()
    )
    return {status: counts.get(status, 0) for status in ORDER_STATUSES}
