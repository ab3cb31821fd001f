from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ORDER_STATUS_PENDING = "Pending Approval"
ORDER_STATUS_IN_TRANSIT = "In Transit"
ORDER_STATUS_ARRIVED = "Arrived"
ORDER_STATUS_COMPLETED = "Completed"
ORDER_STATUS_REJECTED = "Rejected"
ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_IN_TRANSIT,
    ORDER_STATUS_ARRIVED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_REJECTED,
)
WAREHOUSE_TYPES = ("Central Warehouse", "Distribution Center", "Regional Warehouse")


class WarehouseOrder(db.Model):
    """
    Purchase order placed with a supplier.

    Stock is received into the catalog only when an Arrived order is
    signed (-> Completed).
    """
    __tablename__ = "warehouse_orders"
    __table_args__ = (
        db.CheckConstraint(
            "status IN ('Pending Approval', 'In Transit', 'Arrived', 'Completed', 'Rejected')",
            name="ck_warehouse_orders_status",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # e.g. "PO-2026-001"
    order_number = db.Column(db.String(20), nullable=False, unique=True, index=True)

    requester_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    supplier = db.Column(db.String(255), nullable=False)
    warehouse_location = db.Column(db.String(100), nullable=False)
    warehouse_type = db.Column(db.String(100), nullable=False)

    expected_delivery_date = db.Column(db.Date, nullable=False)
    arrived_date = db.Column(db.Date, nullable=True)
    status = db.Column(db.String(50), nullable=False, default=ORDER_STATUS_PENDING, index=True)
    notes = db.Column(db.Text, nullable=True)

    signed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    signed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "WarehouseOrderItem",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="WarehouseOrderItem.id",
    )

    @property
    def total_amount_cents(self) -> int:
        return sum(item.quantity * (item.unit_price_cents or 0) for item in self.items)

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "requester_user_id": self.requester_user_id,
            "supplier": self.supplier,
            "warehouse_location": self.warehouse_location,
            "warehouse_type": self.warehouse_type,
            "expected_delivery_date": self.expected_delivery_date.isoformat(),
            "arrived_date": self.arrived_date.isoformat() if self.arrived_date else None,
            "status": self.status,
            "notes": self.notes,
            "item_count": len(self.items),
            "total_amount_cents": self.total_amount_cents,
            "signed_at": to_utc_z(self.signed_at),
            "signed_by_user_id": self.signed_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class WarehouseOrderItem(db.Model):
    __tablename__ = "warehouse_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_woi_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("warehouse_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    article_id = db.Column(db.Integer, db.ForeignKey("articles.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=True)

    article = db.relationship("Article")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "article_id": self.article_id,
            "article_code": self.article.code if self.article else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
        }
