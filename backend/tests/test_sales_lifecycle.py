"""
Sale lifecycle tests: item mutations, stock effects and state transitions.
"""

import random

import pytest

from telecom_ops.extensions import db
from telecom_ops.models import Article, Sale, SaleItem, StockMovement
from telecom_ops.services import catalog_service, sales_service
from telecom_ops.services.sales_service import (
    ArticleNotFound,
    InsufficientStock,
    InvalidStateTransition,
    InvariantViolation,
    ItemNotFound,
    SaleError,
    SaleNotEditable,
    SaleNotFound,
)
from telecom_ops.validation import ValidationError

from conftest import actor_of


def _stock(article_id):
    db.session.expire_all()
    return db.session.get(Article, article_id).stock_quantity


def _draft(user, **kwargs):
    kwargs.setdefault("client_name", "Amine Saidi")
    kwargs.setdefault("client_phone", "0550123456")
    return sales_service.create_sale(actor_of(user), **kwargs)


def test_full_lifecycle_decrements_stock_and_recomputes_total(db_session, advisor, agent, make_article):
    art = make_article(code="ART001", price_cents=159_000, stock=10)
    sale = _draft(advisor)

    assert sale.status == "Draft"
    assert sale.total_amount_cents == 0

    item = sales_service.add_item(sale.id, art.id, 2, actor_of(advisor))
    assert item.unit_price_cents == 159_000
    assert item.total_price_cents == 318_000
    assert item.product_code == "ART001"
    assert _stock(art.id) == 8

    sale = sales_service.validate_sale(sale.id, actor_of(agent))
    assert sale.status == "Validated"
    assert sale.total_amount_cents == 318_000
    assert sale.validated_by_user_id == agent.id

    sale = sales_service.complete_sale(sale.id, actor_of(agent))
    assert sale.status == "Completed"
    assert sale.completed_at is not None
    assert _stock(art.id) == 8


def test_modem_sale_scenario(db_session, advisor, agent, make_article):
    modem = make_article(code="ART001", name="Fibre Modem FM-200", price_cents=159_000, stock=10)
    sale = _draft(advisor)

    item = sales_service.add_item(sale.id, modem.id, 3, actor_of(advisor))
    assert db.session.get(Sale, sale.id).total_amount_cents == 477_000
    assert _stock(modem.id) == 7

    sales_service.validate_sale(sale.id, actor_of(agent))
    sale = sales_service.complete_sale(sale.id, actor_of(agent))
    assert sale.status == "Completed"
    assert _stock(modem.id) == 7

    with pytest.raises(SaleNotEditable):
        sales_service.remove_item(sale.id, item.id, actor_of(advisor))
    assert _stock(modem.id) == 7
    assert db.session.get(Sale, sale.id).total_amount_cents == 477_000


def test_item_records_reserved_stock(db_session, advisor, make_article):
    tracked = make_article(stock=10)
    untracked = make_article(category="Subscription", stock=None)
    sale = _draft(advisor)

    assert sales_service.add_item(sale.id, tracked.id, 4, actor_of(advisor)).stock_reserved == 4
    assert sales_service.add_item(sale.id, untracked.id, 4, actor_of(advisor)).stock_reserved == 0


@pytest.mark.parametrize("undo", ["remove", "cancel", "delete"])
def test_tracking_enabled_after_add_gives_nothing_back(db_session, advisor, make_article, undo):
    art = make_article(category="Subscription", stock=None)
    sale = _draft(advisor)
    item = sales_service.add_item(sale.id, art.id, 4, actor_of(advisor))

    catalog_service.update_article(art.id, patch={"stock_quantity": 10}, actor_id=advisor.id)
    assert _stock(art.id) == 10

    if undo == "remove":
        sales_service.remove_item(sale.id, item.id, actor_of(advisor))
    elif undo == "cancel":
        sales_service.cancel_sale(sale.id, actor_of(advisor))
    else:
        sales_service.delete_sale(sale.id, actor_of(advisor))

    assert _stock(art.id) == 10
    restores = db.session.query(StockMovement).filter(
        StockMovement.article_id == art.id,
        StockMovement.quantity_delta > 0,
        StockMovement.reason != "ADJUSTMENT",
    ).count()
    assert restores == 0


def test_replace_after_tracking_enabled_only_takes_new_quantity(db_session, advisor, make_article):
    art = make_article(category="Subscription", price_cents=1000, stock=None)
    sale = _draft(advisor)
    item = sales_service.add_item(sale.id, art.id, 4, actor_of(advisor))
    catalog_service.update_article(art.id, patch={"stock_quantity": 10}, actor_id=advisor.id)

    new_item = sales_service.replace_item_quantity(sale.id, item.id, 3, actor_of(advisor))

    assert new_item.stock_reserved == 3
    assert _stock(art.id) == 7


def test_cancelled_items_hold_no_stock(db_session, advisor, make_article):
    art = make_article(stock=5)
    sale = _draft(advisor, items=[{"article_id": art.id, "quantity": 2}])

    sale = sales_service.cancel_sale(sale.id, actor_of(advisor))

    assert [item.stock_reserved for item in sale.items] == [0]
    assert _stock(art.id) == 5


def test_insufficient_stock_leaves_everything_unchanged(db_session, advisor, make_article):
    art = make_article(stock=1)
    sale = _draft(advisor)

    with pytest.raises(InsufficientStock) as exc:
        sales_service.add_item(sale.id, art.id, 2, actor_of(advisor))

    assert exc.value.details == {"article_id": art.id, "available": 1, "requested": 2}
    assert _stock(art.id) == 1
    assert db.session.query(SaleItem).count() == 0
    assert db.session.get(Sale, sale.id).total_amount_cents == 0


def test_untracked_article_is_always_available(db_session, advisor, make_article):
    subscription = make_article(category="Subscription", price_cents=240_000, stock=None)
    sale = _draft(advisor)

    sales_service.add_item(sale.id, subscription.id, 50, actor_of(advisor))

    assert _stock(subscription.id) is None
    assert db.session.get(Sale, sale.id).total_amount_cents == 50 * 240_000
    assert db.session.query(StockMovement).count() == 0


def test_inactive_or_missing_article_is_rejected(db_session, advisor, make_article):
    retired = make_article(is_active=False)
    sale = _draft(advisor)

    with pytest.raises(ArticleNotFound):
        sales_service.add_item(sale.id, retired.id, 1, actor_of(advisor))
    with pytest.raises(ArticleNotFound):
        sales_service.add_item(sale.id, 9999, 1, actor_of(advisor))


def test_non_positive_quantity_is_a_validation_error(db_session, advisor, make_article):
    art = make_article()
    sale = _draft(advisor)

    for bad in (0, -1, "abc"):
        with pytest.raises(ValidationError):
            sales_service.add_item(sale.id, art.id, bad, actor_of(advisor))
    assert _stock(art.id) == 10


def test_remove_item_restores_stock(db_session, advisor, make_article):
    art = make_article(price_cents=1000, stock=5)
    sale = _draft(advisor)
    item = sales_service.add_item(sale.id, art.id, 3, actor_of(advisor))
    assert _stock(art.id) == 2

    sale = sales_service.remove_item(sale.id, item.id, actor_of(advisor))

    assert _stock(art.id) == 5
    assert sale.total_amount_cents == 0
    assert sale.items == []


def test_remove_unknown_item(db_session, advisor):
    sale = _draft(advisor)
    with pytest.raises(ItemNotFound):
        sales_service.remove_item(sale.id, 12345, actor_of(advisor))


def test_replace_quantity_returns_old_stock_first(db_session, advisor, make_article):
    art = make_article(price_cents=1000, stock=5)
    sale = _draft(advisor)
    item = sales_service.add_item(sale.id, art.id, 3, actor_of(advisor))

    # 5 on hand only counts once the original 3 come back
    new_item = sales_service.replace_item_quantity(sale.id, item.id, 5, actor_of(advisor))

    assert new_item.quantity == 5
    assert _stock(art.id) == 0
    assert db.session.get(Sale, sale.id).total_amount_cents == 5000


def test_replace_quantity_reprices_at_current_article_price(db_session, advisor, make_article):
    art = make_article(price_cents=1000, stock=10)
    sale = _draft(advisor)
    item = sales_service.add_item(sale.id, art.id, 2, actor_of(advisor))

    art.price_cents = 1500
    db.session.commit()

    new_item = sales_service.replace_item_quantity(sale.id, item.id, 2, actor_of(advisor))
    assert new_item.unit_price_cents == 1500
    assert db.session.get(Sale, sale.id).total_amount_cents == 3000


def test_price_change_does_not_touch_existing_items(db_session, advisor, make_article):
    art = make_article(price_cents=1000, stock=10)
    sale = _draft(advisor)
    sales_service.add_item(sale.id, art.id, 2, actor_of(advisor))

    art.price_cents = 9999
    db.session.commit()

    db.session.expire_all()
    sale = db.session.get(Sale, sale.id)
    assert sale.items[0].unit_price_cents == 1000
    assert sale.total_amount_cents == 2000


def test_items_frozen_after_validation(db_session, advisor, agent, make_article):
    art = make_article(stock=10)
    sale = _draft(advisor)
    item = sales_service.add_item(sale.id, art.id, 1, actor_of(advisor))
    sales_service.validate_sale(sale.id, actor_of(agent))

    with pytest.raises(SaleNotEditable):
        sales_service.add_item(sale.id, art.id, 1, actor_of(advisor))
    with pytest.raises(SaleNotEditable):
        sales_service.remove_item(sale.id, item.id, actor_of(advisor))
    with pytest.raises(SaleNotEditable):
        sales_service.replace_item_quantity(sale.id, item.id, 2, actor_of(advisor))
    assert _stock(art.id) == 9


def test_validate_requires_items(db_session, advisor, agent):
    sale = _draft(advisor)
    with pytest.raises(SaleError) as exc:
        sales_service.validate_sale(sale.id, actor_of(agent))
    assert exc.value.code == "SALE_ERROR"
    assert db.session.get(Sale, sale.id).status == "Draft"


@pytest.mark.parametrize("action", ["complete", "validate_twice"])
def test_illegal_transitions(db_session, advisor, agent, make_article, action):
    art = make_article()
    sale = _draft(advisor)
    sales_service.add_item(sale.id, art.id, 1, actor_of(advisor))

    if action == "complete":
        with pytest.raises(InvalidStateTransition) as exc:
            sales_service.complete_sale(sale.id, actor_of(agent))
        assert exc.value.details == {"current_status": "Draft", "action": "complete"}
    else:
        sales_service.validate_sale(sale.id, actor_of(agent))
        with pytest.raises(InvalidStateTransition):
            sales_service.validate_sale(sale.id, actor_of(agent))


def test_cancel_restores_stock_and_keeps_items(db_session, advisor, make_article):
    a = make_article(price_cents=1000, stock=5)
    b = make_article(price_cents=2000, stock=3)
    sale = _draft(advisor, items=[{"article_id": a.id, "quantity": 2}, {"article_id": b.id, "quantity": 3}])
    assert _stock(a.id) == 3
    assert _stock(b.id) == 0

    sale = sales_service.cancel_sale(sale.id, actor_of(advisor), reason="Client changed mind")

    assert sale.status == "Cancelled"
    assert sale.cancel_reason == "Client changed mind"
    assert len(sale.items) == 2
    assert _stock(a.id) == 5
    assert _stock(b.id) == 3


def test_cancel_only_from_draft(db_session, advisor, agent, make_article):
    art = make_article(stock=5)
    sale = _draft(advisor, items=[{"article_id": art.id, "quantity": 1}])
    sales_service.validate_sale(sale.id, actor_of(agent))

    with pytest.raises(InvalidStateTransition):
        sales_service.cancel_sale(sale.id, actor_of(agent))
    assert _stock(art.id) == 4


def test_delete_draft_restores_stock(db_session, advisor, make_article):
    art = make_article(stock=5)
    sale = _draft(advisor, items=[{"article_id": art.id, "quantity": 4}])

    reference = sales_service.delete_sale(sale.id, actor_of(advisor))

    assert reference == sale.reference
    assert db.session.get(Sale, sale.id) is None
    assert db.session.query(SaleItem).count() == 0
    assert _stock(art.id) == 5


def test_create_with_items_is_atomic(db_session, advisor, make_article):
    plenty = make_article(stock=10)
    scarce = make_article(stock=1)

    with pytest.raises(InsufficientStock):
        _draft(advisor, items=[
            {"article_id": plenty.id, "quantity": 3},
            {"article_id": scarce.id, "quantity": 2},
        ])

    assert db.session.query(Sale).count() == 0
    assert _stock(plenty.id) == 10


def test_create_requires_client_name(db_session, advisor):
    with pytest.raises(ValidationError):
        sales_service.create_sale(actor_of(advisor), client_name="  ")


def test_create_reuses_client_by_phone(db_session, advisor, make_client):
    existing = make_client(name="Meriem Kaci", phone="0770456789")

    sale = _draft(advisor, client_name="M. Kaci", client_phone="0770456789")

    assert sale.client_id == existing.id
    assert sale.client_name == "Meriem Kaci"


def test_advisor_cannot_see_other_advisors_sales(db_session, make_user, controller):
    owner = make_user("Advisor")
    other = make_user("Advisor")
    sale = _draft(owner)

    with pytest.raises(SaleNotFound):
        sales_service.get_sale(sale.id, actor_of(other))
    with pytest.raises(SaleNotFound):
        sales_service.cancel_sale(sale.id, actor_of(other))

    assert sales_service.get_sale(sale.id, actor_of(controller)).id == sale.id

    listing = sales_service.list_sales(actor_of(other))
    assert listing["count"] == 0


def test_list_sales_status_counts(db_session, advisor, make_article):
    art = make_article(stock=10)
    first = _draft(advisor, items=[{"article_id": art.id, "quantity": 1}])
    _draft(advisor)
    sales_service.cancel_sale(first.id, actor_of(advisor))

    result = sales_service.list_sales(actor_of(advisor), status="Draft")

    assert result["count"] == 1
    assert result["status_counts"]["Draft"] == 1
    assert result["status_counts"]["Cancelled"] == 1


def test_verify_total_raises_on_tampered_total(db_session, advisor, agent, make_article):
    art = make_article(price_cents=1000, stock=10)
    sale = _draft(advisor, items=[{"article_id": art.id, "quantity": 2}])

    db.session.query(Sale).filter_by(id=sale.id).update({"total_amount_cents": 1})
    db.session.commit()

    with pytest.raises(InvariantViolation):
        sales_service.validate_sale(sale.id, actor_of(agent))
    db.session.expire_all()
    assert db.session.get(Sale, sale.id).status == "Draft"


def test_random_mutations_keep_total_and_stock_consistent(db_session, advisor, make_article):
    rng = random.Random(1234)
    articles = [make_article(price_cents=rng.randint(100, 50_000), stock=20) for _ in range(4)]
    sale = _draft(advisor)
    actor = actor_of(advisor)

    for _ in range(40):
        db.session.expire_all()
        current = db.session.get(Sale, sale.id)
        roll = rng.random()
        try:
            if roll < 0.5 or not current.items:
                sales_service.add_item(sale.id, rng.choice(articles).id, rng.randint(1, 6), actor)
            elif roll < 0.75:
                sales_service.remove_item(sale.id, rng.choice(current.items).id, actor)
            else:
                sales_service.replace_item_quantity(sale.id, rng.choice(current.items).id, rng.randint(1, 6), actor)
        except InsufficientStock:
            pass

        db.session.expire_all()
        current = db.session.get(Sale, sale.id)
        assert current.total_amount_cents == sum(i.total_price_cents for i in current.items)
        for art in articles:
            held = sum(i.quantity for i in current.items if i.article_id == art.id)
            assert _stock(art.id) + held == 20
