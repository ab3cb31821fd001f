from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


SALE_STATUS_DRAFT = "Draft"
SALE_STATUS_VALIDATED = "Validated"
SALE_STATUS_COMPLETED = "Completed"
SALE_STATUS_CANCELLED = "Cancelled"
SALE_STATUSES = (
    SALE_STATUS_DRAFT,
    SALE_STATUS_VALIDATED,
    SALE_STATUS_COMPLETED,
    SALE_STATUS_CANCELLED,
)

FLAG_SEVERITIES = ("LOW", "MEDIUM", "HIGH")
FLAG_STATUS_OPEN = "OPEN"
FLAG_STATUS_REVIEWED = "REVIEWED"
FLAG_STATUS_RESOLVED = "RESOLVED"
FLAG_STATUSES = (FLAG_STATUS_OPEN, FLAG_STATUS_REVIEWED, FLAG_STATUS_RESOLVED)


class Sale(db.Model):
    """
    Sale transaction.

    total_amount_cents is derived: the sale engine recomputes it from the
    full item set after every item mutation. Callers never set it.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('Draft', 'Validated', 'Completed', 'Cancelled')",
            name="ck_sales_status",
        ),
        db.CheckConstraint("total_amount_cents >= 0", name="ck_sales_total_non_negative"),
        db.Index("ix_sales_created_by_created", "created_by_user_id", "created_at"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable reference, e.g. "SALE-2026-001"
    reference = db.Column(db.String(50), nullable=False, unique=True, index=True)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)

    # Client snapshot at sale time
    client_name = db.Column(db.String(255), nullable=False)
    client_phone = db.Column(db.String(20), nullable=True)
    client_email = db.Column(db.String(255), nullable=True)
    client_address = db.Column(db.Text, nullable=True)
    client_type = db.Column(db.String(50), nullable=True)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=SALE_STATUS_DRAFT, index=True)
    notes = db.Column(db.Text, nullable=True)
    sale_date = db.Column(db.Date, nullable=False, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    validated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    validated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    client = db.relationship("Client", backref=db.backref("sales", lazy=True))
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="SaleItem.id",
    )

    @property
    def is_editable(self) -> bool:
        return self.status == SALE_STATUS_DRAFT

    def __repr__(self) -> str:
        return f"<Sale id={self.id} reference={self.reference!r} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "reference": self.reference,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "client_phone": self.client_phone,
            "client_email": self.client_email,
            "client_address": self.client_address,
            "client_type": self.client_type,
            "total_amount_cents": self.total_amount_cents,
            "status": self.status,
            "notes": self.notes,
            "sale_date": self.sale_date.isoformat() if self.sale_date else None,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "validated_at": to_utc_z(self.validated_at),
            "validated_by_user_id": self.validated_by_user_id,
            "completed_at": to_utc_z(self.completed_at),
            "completed_by_user_id": self.completed_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancel_reason": self.cancel_reason,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line item on a sale.

    unit_price_cents is snapshotted from the article when the item is added
    and never follows later catalog price changes. product_name and
    product_code freeze the article's identity for the same reason.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_sale_items_unit_price_non_negative"),
        db.CheckConstraint(
            "total_price_cents = quantity * unit_price_cents",
            name="ck_sale_items_total_price",
        ),
        db.CheckConstraint(
            "stock_reserved >= 0 AND stock_reserved <= quantity",
            name="ck_sale_items_stock_reserved",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    article_id = db.Column(db.Integer, db.ForeignKey("articles.id", ondelete="SET NULL"), nullable=True, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    product_code = db.Column(db.String(50), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    # Units this item holds from tracked stock. Zero when the article was
    # untracked at add time, and zero again once the units are given back.
    stock_reserved = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    article = db.relationship("Article")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "article_id": self.article_id,
            "product_name": self.product_name,
            "product_code": self.product_code,
            "category": self.article.category if self.article else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "stock_reserved": self.stock_reserved,
            "created_at": to_utc_z(self.created_at),
        }


class SaleFlag(db.Model):
    """
    Advisory anomaly flag raised by the heuristic scan.

    (advisor_id, sale_id, title) is unique: the constraint, not a lookup,
    decides whether a concurrent scan's insert wins.
    """
    __tablename__ = "sale_flags"
    __table_args__ = (
        db.UniqueConstraint("advisor_id", "sale_id", "title", name="uq_sale_flags_dedupe"),
        db.CheckConstraint("severity IN ('LOW', 'MEDIUM', 'HIGH')", name="ck_sale_flags_severity"),
        db.CheckConstraint(
            "status IN ('OPEN', 'REVIEWED', 'RESOLVED')",
            name="ck_sale_flags_status",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="SET NULL"), nullable=True, index=True)
    advisor_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    severity = db.Column(db.String(10), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(10), nullable=False, default=FLAG_STATUS_OPEN, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    sale = db.relationship("Sale", backref=db.backref("flags", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "sale_reference": self.sale.reference if self.sale else None,
            "advisor_id": self.advisor_id,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "reviewed_at": to_utc_z(self.reviewed_at),
            "reviewed_by_user_id": self.reviewed_by_user_id,
        }
