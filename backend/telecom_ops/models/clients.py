from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Client(db.Model):
    """
    Customer record.

    Sales keep their own snapshot of the client's name/phone/type, so a
    client may be edited later without rewriting sale history. Identity
    fields (name, type) are frozen once a sale references the client.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.CheckConstraint(
            "client_type IN ('Residential', 'Professional')",
            name="ck_clients_type",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(20), nullable=False, index=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(255), nullable=True)
    client_type = db.Column(db.String(50), nullable=False, index=True)
    is_existing_client = db.Column(db.Boolean, nullable=False, default=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "location": self.location,
            "client_type": self.client_type,
            "is_existing_client": self.is_existing_client,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
