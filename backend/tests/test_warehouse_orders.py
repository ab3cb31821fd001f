"""
Purchase order tests: numbering, status machine and stock receipt on sign.
"""

from datetime import timedelta

import pytest

from telecom_ops.extensions import db
from telecom_ops.models import Article, StockMovement, WarehouseOrder
from telecom_ops.services import warehouse_service
from telecom_ops.services.warehouse_service import WarehouseError
from telecom_ops.time_utils import utcnow
from telecom_ops.validation import NotFoundError, ValidationError

from conftest import actor_of


def _order(user, *lines):
    return warehouse_service.create_order(
        actor_of(user),
        supplier="Huawei Algeria",
        warehouse_location="Algiers",
        warehouse_type="Central Warehouse",
        expected_delivery_date=(utcnow().date() + timedelta(days=7)).isoformat(),
        items=[{"article_id": a.id, "quantity": q, "unit_price": "1200.50"} for a, q in lines],
    )


def test_create_order_numbering(db_session, controller, make_article):
    art = make_article()
    year = utcnow().year

    first = _order(controller, (art, 5))
    second = _order(controller, (art, 1))

    assert first.order_number == f"PO-{year}-001"
    assert second.order_number == f"PO-{year}-002"
    assert first.status == "Pending Approval"
    assert first.items[0].unit_price_cents == 120_050


def test_create_order_validation(db_session, controller, make_article):
    art = make_article()
    with pytest.raises(ValidationError):
        warehouse_service.create_order(
            actor_of(controller),
            supplier="X",
            warehouse_location="Oran",
            warehouse_type="Garage",
            expected_delivery_date="2026-12-01",
            items=[{"article_id": art.id, "quantity": 1}],
        )
    with pytest.raises(ValidationError):
        _order(controller)
    with pytest.raises(NotFoundError):
        warehouse_service.create_order(
            actor_of(controller),
            supplier="X",
            warehouse_location="Oran",
            warehouse_type="Regional Warehouse",
            expected_delivery_date="2026-12-01",
            items=[{"article_id": 999, "quantity": 1}],
        )


def test_sign_receives_tracked_stock(db_session, controller, make_article):
    router = make_article(stock=2)
    plan = make_article(category="Subscription", stock=None)
    order = _order(controller, (router, 10), (plan, 3))

    warehouse_service.update_order_status(order.id, "In Transit", actor_of(controller))
    warehouse_service.update_order_status(order.id, "Arrived", actor_of(controller))
    order = warehouse_service.sign_order(order.id, actor_of(controller))

    assert order.status == "Completed"
    assert order.signed_by_user_id == controller.id
    assert order.arrived_date == utcnow().date()
    db.session.expire_all()
    assert db.session.get(Article, router.id).stock_quantity == 12
    assert db.session.get(Article, plan.id).stock_quantity is None
    movement = db.session.query(StockMovement).filter_by(article_id=router.id).one()
    assert movement.reason == "WAREHOUSE_RECEIPT"
    assert movement.reference == order.order_number


def test_sign_requires_arrived(db_session, controller, make_article):
    art = make_article(stock=0)
    order = _order(controller, (art, 4))

    with pytest.raises(WarehouseError):
        warehouse_service.sign_order(order.id, actor_of(controller))
    db.session.expire_all()
    assert db.session.get(Article, art.id).stock_quantity == 0


def test_illegal_status_moves(db_session, controller, make_article):
    order = _order(controller, (make_article(), 1))

    with pytest.raises(WarehouseError):
        warehouse_service.update_order_status(order.id, "Arrived", actor_of(controller))
    with pytest.raises(WarehouseError):
        warehouse_service.update_order_status(order.id, "Completed", actor_of(controller))
    with pytest.raises(ValidationError):
        warehouse_service.update_order_status(order.id, "Lost", actor_of(controller))

    warehouse_service.update_order_status(order.id, "Rejected", actor_of(controller))
    with pytest.raises(WarehouseError):
        warehouse_service.update_order_status(order.id, "In Transit", actor_of(controller))


def test_delete_only_pending_or_rejected(db_session, controller, make_article):
    art = make_article()
    pending = _order(controller, (art, 1))
    moving = _order(controller, (art, 1))
    warehouse_service.update_order_status(moving.id, "In Transit", actor_of(controller))

    assert warehouse_service.delete_order(pending.id) == pending.order_number
    with pytest.raises(WarehouseError):
        warehouse_service.delete_order(moving.id)
    assert db.session.query(WarehouseOrder).count() == 1


def test_order_stats(db_session, controller, make_article):
    art = make_article()
    _order(controller, (art, 1))
    rejected = _order(controller, (art, 1))
    warehouse_service.update_order_status(rejected.id, "Rejected", actor_of(controller))

    stats = warehouse_service.order_stats()

    assert stats["Pending Approval"] == 1
    assert stats["Rejected"] == 1
    assert stats["Completed"] == 0
