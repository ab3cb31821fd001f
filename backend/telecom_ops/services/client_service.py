# Overview: Service-layer operations for the client registry.

from __future__ import annotations

from ..extensions import db
from ..models import Client, Invoice, Sale
from ..models.catalog import CLIENT_TYPES
from ..validation import ConflictError, NotFoundError, ValidationError
from .pagination import paginate


CLIENT_MUTABLE_FIELDS = {
    "name", "phone", "email", "address", "location", "client_type", "is_existing_client",
}

# Identity fields frozen once a sale references the client
CLIENT_IDENTITY_FIELDS = {"name", "client_type"}


def get_client(client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if not client:
        raise NotFoundError("Client not found")
    return client


def is_referenced(client_id: int) -> bool:
    return db.session.query(Sale.id).filter(Sale.client_id == client_id).first() is not None


def list_clients(
    *,
    search: str | None = None,
    client_type: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Client)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                Client.name.ilike(like),
                Client.phone.ilike(like),
                Client.email.ilike(like),
            )
        )
    if client_type:
        query = query.filter(Client.client_type == client_type)
    query = query.order_by(Client.created_at.desc(), Client.id.desc())
    return paginate(query, page=page, per_page=per_page)


def search_clients(term: str, limit: int = 20) -> list[Client]:
    """Quick lookup by phone prefix or name fragment for the sale form."""
    term = (term or "").strip()
    if not term:
        return []
    return (
        db.session.query(Client)
        .filter(
            db.or_(
                Client.phone.like(f"{term}%"),
                Client.name.ilike(f"%{term}%"),
            )
        )
        .order_by(Client.name.asc())
        .limit(limit)
        .all()
    )


def create_client(*, patch: dict, actor_id: int | None = None, commit: bool = True) -> Client:
    client = Client(created_by_user_id=actor_id)
    for k, v in patch.items():
        if k in CLIENT_MUTABLE_FIELDS:
            setattr(client, k, v)
    if client.client_type not in CLIENT_TYPES:
        raise ValidationError(f"client_type must be one of: {', '.join(CLIENT_TYPES)}")

    db.session.add(client)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return client


def update_client(client_id: int, *, patch: dict) -> Client:
    """
    Update a client.

    Once a sale references the client only contact details (phone, email,
    address, location) may change.
    """
    client = get_client(client_id)

    changing_identity = [
        k for k in CLIENT_IDENTITY_FIELDS
        if k in patch and patch[k] != getattr(client, k)
    ]
    if changing_identity and is_referenced(client.id):
        raise ConflictError(
            f"Client is referenced by sales; cannot change: {', '.join(sorted(changing_identity))}"
        )

    for k, v in patch.items():
        if k in CLIENT_MUTABLE_FIELDS:
            setattr(client, k, v)

    db.session.commit()
    return client


def delete_client(client_id: int) -> None:
    client = get_client(client_id)
    if is_referenced(client.id):
        raise ConflictError("Client is referenced by sales and cannot be deleted")
    if db.session.query(Invoice.id).filter(Invoice.client_id == client.id).first():
        raise ConflictError("Client is referenced by invoices and cannot be deleted")
    db.session.delete(client)
    db.session.commit()


def find_or_create_for_sale(
    *,
    client_id: int | None = None,
    name: str | None = None,
    phone: str | None = None,
    email: str | None = None,
    address: str | None = None,
    client_type: str | None = None,
    actor_id: int | None = None,
) -> Client | None:
    """
    Resolve the client a new sale is made for, inside the caller's transaction.

    Lookup order: explicit id, then phone. Otherwise a new client is
    created from the details (name and phone required). Returns None when
    no phone was given: the sale then only carries the name snapshot.
    """
    if client_id is not None:
        return get_client(client_id)

    phone = (phone or "").strip() or None
    name = (name or "").strip() or None
    if phone is None:
        return None

    existing = (
        db.session.query(Client)
        .filter(Client.phone == phone)
        .order_by(Client.id.asc())
        .first()
    )
    if existing:
        return existing

    if not name:
        raise ValidationError("client_name is required for a new client")

    return create_client(
        patch={
            "name": name,
            "phone": phone,
            "email": email,
            "address": address,
            "client_type": client_type or CLIENT_TYPES[0],
        },
        actor_id=actor_id,
        commit=False,
    )
