from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


CATEGORY_SUBSCRIPTION = "Subscription"
CATEGORY_HARDWARE = "Hardware"
ARTICLE_CATEGORIES = (CATEGORY_SUBSCRIPTION, CATEGORY_HARDWARE)
ARTICLE_SERVICES = ("Internet", "Telephone")
CLIENT_TYPES = ("Residential", "Professional")

CRITICAL_STOCK_LEVEL = 5
LOW_STOCK_LEVEL = 20


def stock_status_for(quantity: int | None) -> str:
    if quantity is None:
        return "N/A"
    if quantity <= CRITICAL_STOCK_LEVEL:
        return "Critical"
    if quantity <= LOW_STOCK_LEVEL:
        return "Low"
    return "Good"


class Article(db.Model):
    """
    Catalog article (subscription plan or hardware item).

    Stock semantics:
    - stock_quantity NULL means the article does not track inventory and is
      always available.
    - When tracked, stock_quantity is never negative. The CHECK constraint
      is the backstop for the row lock taken by the sale engine.
    """
    __tablename__ = "articles"
    __table_args__ = (
        db.CheckConstraint(
            "stock_quantity IS NULL OR stock_quantity >= 0",
            name="ck_articles_stock_non_negative",
        ),
        db.CheckConstraint("price_cents >= 0", name="ck_articles_price_non_negative"),
        db.CheckConstraint(
            "category IN ('Subscription', 'Hardware')",
            name="ck_articles_category",
        ),
        db.Index("ix_articles_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-facing code, e.g. "ART001"
    code = db.Column(db.String(20), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255), nullable=True)

    category = db.Column(db.String(50), nullable=False, index=True)
    service = db.Column(db.String(50), nullable=True)
    client_type = db.Column(db.String(50), nullable=True)

    price_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="DA")

    stock_quantity = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def tracks_stock(self) -> bool:
        return self.stock_quantity is not None

    @property
    def stock_status(self) -> str:
        return stock_status_for(self.stock_quantity)

    def __repr__(self) -> str:
        return f"<Article id={self.id} code={self.code!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "full_name": self.full_name,
            "category": self.category,
            "service": self.service,
            "client_type": self.client_type,
            "price_cents": self.price_cents,
            "currency": self.currency,
            "stock_quantity": self.stock_quantity,
            "stock_status": self.stock_status,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only trace of every stock change on a tracked article.

    Rows are written in the same transaction as the change they describe,
    so the trace always agrees with Article.stock_quantity.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_article_created", "article_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    article_id = db.Column(db.Integer, db.ForeignKey("articles.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity_delta = db.Column(db.Integer, nullable=False)
    resulting_quantity = db.Column(db.Integer, nullable=False)

    # SALE_ITEM_ADDED, SALE_ITEM_REMOVED, SALE_CANCELLED, SALE_DELETED,
    # ADJUSTMENT, WAREHOUSE_RECEIPT
    reason = db.Column(db.String(32), nullable=False)
    reference = db.Column(db.String(64), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    article = db.relationship("Article", backref=db.backref("movements", lazy="dynamic", cascade="all, delete-orphan"))
    actor = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "article_id": self.article_id,
            "quantity_delta": self.quantity_delta,
            "resulting_quantity": self.resulting_quantity,
            "direction": "IN" if self.quantity_delta > 0 else "OUT",
            "reason": self.reason,
            "reference": self.reference,
            "note": self.note,
            "actor_user_id": self.actor_user_id,
            "actor": self.actor.full_name if self.actor else None,
            "created_at": to_utc_z(self.created_at),
        }
