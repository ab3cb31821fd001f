from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


INVOICE_STATUS_PENDING = "Pending"
INVOICE_STATUS_PAID = "Paid"
INVOICE_STATUS_OVERDUE = "Overdue"
INVOICE_STATUSES = (INVOICE_STATUS_PENDING, INVOICE_STATUS_PAID, INVOICE_STATUS_OVERDUE)


class Invoice(db.Model):
    """
    Invoice issued for a completed sale.

    One invoice per sale. paid_amount_cents never exceeds amount_cents.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_invoices_sale"),
        db.CheckConstraint("paid_amount_cents >= 0", name="ck_invoices_paid_non_negative"),
        db.CheckConstraint("paid_amount_cents <= amount_cents", name="ck_invoices_paid_le_amount"),
        db.CheckConstraint(
            "status IN ('Pending', 'Paid', 'Overdue')",
            name="ck_invoices_status",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # e.g. "INV-2026-0001"
    invoice_number = db.Column(db.String(50), nullable=False, unique=True, index=True)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    sale_reference = db.Column(db.String(50), nullable=False)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True, index=True)
    client_name = db.Column(db.String(255), nullable=False)
    client_phone = db.Column(db.String(20), nullable=True)
    client_type = db.Column(db.String(50), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=INVOICE_STATUS_PENDING, index=True)

    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    paid_date = db.Column(db.Date, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    sale = db.relationship("Sale", backref=db.backref("invoice", uselist=False))

    @property
    def balance_cents(self) -> int:
        return self.amount_cents - self.paid_amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "sale_id": self.sale_id,
            "sale_reference": self.sale_reference,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "client_phone": self.client_phone,
            "client_type": self.client_type,
            "amount_cents": self.amount_cents,
            "paid_amount_cents": self.paid_amount_cents,
            "balance_cents": self.balance_cents,
            "status": self.status,
            "issue_date": self.issue_date.isoformat() if self.issue_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "paid_date": self.paid_date.isoformat() if self.paid_date else None,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
