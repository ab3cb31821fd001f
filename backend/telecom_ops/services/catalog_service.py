# Overview: Service-layer operations for catalog articles and their stock.

"""
Catalog Service

Articles are either untracked (stock_quantity NULL, always available) or
tracked (stock_quantity >= 0). Every change to tracked stock goes through
apply_stock_delta(), which refuses a negative result and appends a
StockMovement row in the caller's transaction.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Article, SaleItem, StockMovement, WarehouseOrderItem
from ..models.catalog import (
    CATEGORY_HARDWARE,
    CATEGORY_SUBSCRIPTION,
    CRITICAL_STOCK_LEVEL,
    LOW_STOCK_LEVEL,
)
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import begin_write, lock_for_update, run_with_retry
from .pagination import paginate


ARTICLE_MUTABLE_FIELDS = {
    "code", "name", "full_name", "category", "service", "client_type",
    "price_cents", "currency", "is_active",
}

STOCK_MODES = ("set", "add", "subtract")

REASON_SALE_ITEM_ADDED = "SALE_ITEM_ADDED"
REASON_SALE_ITEM_REMOVED = "SALE_ITEM_REMOVED"
REASON_SALE_CANCELLED = "SALE_CANCELLED"
REASON_SALE_DELETED = "SALE_DELETED"
REASON_ADJUSTMENT = "ADJUSTMENT"
REASON_WAREHOUSE_RECEIPT = "WAREHOUSE_RECEIPT"


class StockError(Exception):
    """Raised when a stock change would leave a tracked article below zero."""
    code = "INSUFFICIENT_STOCK"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def get_article(article_id: int) -> Article:
    article = db.session.get(Article, article_id)
    if not article:
        raise NotFoundError("Article not found")
    return article


def get_article_for_update(article_id: int) -> Article | None:
    return lock_for_update(
        db.session.query(Article).filter_by(id=article_id)
    ).populate_existing().first()


def list_articles(
    *,
    search: str | None = None,
    category: str | None = None,
    service: str | None = None,
    client_type: str | None = None,
    is_active: bool | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Article)

    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                Article.name.ilike(like),
                Article.code.ilike(like),
                Article.full_name.ilike(like),
            )
        )
    if category:
        query = query.filter(Article.category == category)
    if service:
        query = query.filter(Article.service == service)
    if client_type:
        query = query.filter(Article.client_type == client_type)
    if is_active is not None:
        query = query.filter(Article.is_active.is_(is_active))

    query = query.order_by(Article.code.asc(), Article.id.asc())
    return paginate(query, page=page, per_page=per_page)


def list_low_stock(threshold: int | None = None) -> list[Article]:
    """Active tracked articles at or below threshold, lowest stock first."""
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 20)
    return (
        db.session.query(Article)
        .filter(
            Article.is_active.is_(True),
            Article.stock_quantity.isnot(None),
            Article.stock_quantity <= threshold,
        )
        .order_by(Article.stock_quantity.asc(), Article.code.asc())
        .all()
    )


def _ensure_code_available(code: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Article.id).filter(Article.code == code)
    if exclude_id is not None:
        query = query.filter(Article.id != exclude_id)
    if query.first():
        raise ConflictError(f"Article code already exists: {code}")


def create_article(*, patch: dict, actor_id: int | None = None) -> Article:
    """
    Create an article from a validated patch.

    A non-null initial stock_quantity makes the article tracked and is
    recorded as an ADJUSTMENT movement.
    """
    _ensure_code_available(patch["code"])

    article = Article()
    for k, v in patch.items():
        if k in ARTICLE_MUTABLE_FIELDS:
            setattr(article, k, v)
    if not article.currency:
        article.currency = current_app.config.get("CURRENCY", "DA")

    db.session.add(article)
    db.session.flush()

    initial_stock = patch.get("stock_quantity")
    if initial_stock is not None:
        article.stock_quantity = 0
        apply_stock_delta(
            article,
            initial_stock,
            reason=REASON_ADJUSTMENT,
            actor_id=actor_id,
            note="Initial stock",
        )

    db.session.commit()
    return article


def update_article(article_id: int, *, patch: dict, actor_id: int | None = None) -> Article:
    """
    Apply an article patch.

    Price changes affect future sale items only; existing items keep their
    snapshot. Tracked stock is changed through adjust_stock(), but an
    untracked article may start tracking by setting stock_quantity here.
    """
    def _op():
        begin_write()
        article = get_article_for_update(article_id)
        if not article:
            raise NotFoundError("Article not found")

        if "code" in patch and patch["code"] != article.code:
            _ensure_code_available(patch["code"], exclude_id=article.id)

        for k, v in patch.items():
            if k in ARTICLE_MUTABLE_FIELDS:
                setattr(article, k, v)

        if "stock_quantity" in patch:
            new_stock = patch["stock_quantity"]
            if article.tracks_stock:
                if new_stock != article.stock_quantity:
                    raise ValidationError("Use the stock adjustment endpoint to change tracked stock")
            elif new_stock is not None:
                article.stock_quantity = 0
                apply_stock_delta(
                    article,
                    new_stock,
                    reason=REASON_ADJUSTMENT,
                    actor_id=actor_id,
                    note="Stock tracking enabled",
                )

        db.session.commit()
        return article

    return run_with_retry(_op)


def delete_article(article_id: int) -> str:
    """
    Remove an article from the catalog.

    Articles referenced by sale items or warehouse orders are only
    deactivated so history stays intact. Returns "deleted" or "deactivated".
    """
    article = get_article(article_id)

    referenced = (
        db.session.query(SaleItem.id).filter(SaleItem.article_id == article.id).first()
        or db.session.query(WarehouseOrderItem.id).filter(WarehouseOrderItem.article_id == article.id).first()
    )
    if referenced:
        article.is_active = False
        db.session.commit()
        return "deactivated"

    db.session.delete(article)
    db.session.commit()
    return "deleted"


def apply_stock_delta(
    article: Article,
    delta: int,
    *,
    reason: str,
    reference: str | None = None,
    actor_id: int | None = None,
    note: str | None = None,
) -> StockMovement | None:
    """
    Change tracked stock by delta and append the movement row.

    The caller owns the transaction and must hold the article row lock.
    Untracked articles are left alone (returns None). Raises StockError if
    the result would be negative; the caller's transaction is expected to
    roll back.
    """
    if not article.tracks_stock or delta == 0:
        return None

    resulting = article.stock_quantity + delta
    if resulting < 0:
        raise StockError(
            f"Insufficient stock for article {article.code}",
            details={
                "article_id": article.id,
                "available": article.stock_quantity,
                "requested": -delta,
            },
        )

    article.stock_quantity = resulting
    movement = StockMovement(
        article_id=article.id,
        quantity_delta=delta,
        resulting_quantity=resulting,
        reason=reason,
        reference=reference,
        note=note,
        actor_user_id=actor_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    return movement


def adjust_stock(
    article_id: int,
    *,
    mode: str,
    quantity,
    actor_id: int | None = None,
    note: str | None = None,
) -> Article:
    """
    Manual stock adjustment: set to, add or subtract quantity.

    Never leaves stock below zero: subtracting more than is on hand raises
    StockError. Untracked articles reject adjustment.
    """
    if mode not in STOCK_MODES:
        raise ValidationError(f"mode must be one of: {', '.join(STOCK_MODES)}")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
        raise ValidationError("quantity must be a non-negative integer")
    if mode != "set" and quantity == 0:
        raise ValidationError("quantity must be positive")

    def _op():
        begin_write()
        article = get_article_for_update(article_id)
        if not article:
            raise NotFoundError("Article not found")
        if not article.tracks_stock:
            raise ValidationError("Article does not track stock")

        if mode == "set":
            delta = quantity - article.stock_quantity
        elif mode == "add":
            delta = quantity
        else:
            delta = -quantity

        apply_stock_delta(
            article,
            delta,
            reason=REASON_ADJUSTMENT,
            actor_id=actor_id,
            note=note,
        )
        db.session.commit()
        current_app.logger.info(
            "Stock adjusted: article=%s mode=%s quantity=%s result=%s",
            article.code, mode, quantity, article.stock_quantity,
        )
        return article

    return run_with_retry(_op)


def list_movements(article_id: int, limit: int = 100) -> list[StockMovement]:
    """Stock trace for one article, newest first."""
    article = get_article(article_id)
    return (
        article.movements
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def article_stats() -> dict:
    """Counters over active articles for the catalog header."""
    active = db.session.query(Article).filter(Article.is_active.is_(True))
    by_category = dict(
        active.with_entities(Article.category, func.count(Article.id))
        .group_by(Article.category)
        .all()
    )
    tracked = active.filter(Article.stock_quantity.isnot(None))
    critical = tracked.filter(Article.stock_quantity <= CRITICAL_STOCK_LEVEL).count()
    low = tracked.filter(
        Article.stock_quantity > CRITICAL_STOCK_LEVEL,
        Article.stock_quantity <= LOW_STOCK_LEVEL,
    ).count()
    stock_value = tracked.with_entities(
        func.coalesce(func.sum(Article.stock_quantity * Article.price_cents), 0)
    ).scalar()
    return {
        "total_articles": sum(by_category.values()),
        "subscriptions": by_category.get(CATEGORY_SUBSCRIPTION, 0),
        "hardware": by_category.get(CATEGORY_HARDWARE, 0),
        "tracked_articles": tracked.count(),
        "critical_stock": critical,
        "low_stock": low,
        "stock_value_cents": int(stock_value or 0),
    }
