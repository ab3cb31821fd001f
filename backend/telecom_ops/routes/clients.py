# Overview: Flask API routes for the client registry.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_permission
from ..models import Client
from ..services import client_service
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_client,
    parse_pagination,
    validate_payload,
)
from .errors import request_json

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address", "location", "client_type", "is_existing_client"},
    required_on_create={"name", "phone", "client_type"},
)

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("")
@require_auth
@require_permission("MANAGE_CLIENTS")
def list_clients_route():
    try:
        page, per_page = (parse_pagination(request.args) if "page" in request.args else (None, None))
    except ValidationError as e:
        return {"error": str(e)}, 400
    return client_service.list_clients(
        search=request.args.get("search"),
        client_type=request.args.get("client_type"),
        page=page,
        per_page=per_page,
    ), 200


@clients_bp.get("/search")
@require_auth
@require_permission("MANAGE_CLIENTS")
def search_clients_route():
    clients = client_service.search_clients(request.args.get("q", ""))
    return {"items": [c.to_dict() for c in clients], "count": len(clients)}, 200


@clients_bp.get("/<int:client_id>")
@require_auth
@require_permission("MANAGE_CLIENTS")
def get_client_route(client_id: int):
    try:
        return {"client": client_service.get_client(client_id).to_dict()}, 200
    except NotFoundError as e:
        return {"error": str(e)}, 404


@clients_bp.post("")
@require_auth
@require_permission("MANAGE_CLIENTS")
def create_client_route():
    try:
        patch = validate_payload(model=Client, payload=request_json(), policy=CLIENT_POLICY, partial=False)
        enforce_rules_client(patch)
        client = client_service.create_client(patch=patch, actor_id=g.actor.user_id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except Exception:
        current_app.logger.exception("Failed to create client")
        return {"error": "Internal server error"}, 500

    return {"client": client.to_dict()}, 201


@clients_bp.put("/<int:client_id>")
@require_auth
@require_permission("MANAGE_CLIENTS")
def update_client_route(client_id: int):
    """Contact details are always editable; name/type freeze once a sale references the client."""
    try:
        patch = validate_payload(model=Client, payload=request_json(), policy=CLIENT_POLICY, partial=True)
        enforce_rules_client(patch)
        client = client_service.update_client(client_id, patch=patch)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to update client")
        return {"error": "Internal server error"}, 500

    return {"client": client.to_dict()}, 200


@clients_bp.delete("/<int:client_id>")
@require_auth
@require_permission("MANAGE_CLIENTS")
def delete_client_route(client_id: int):
    try:
        client_service.delete_client(client_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to delete client")
        return {"error": "Internal server error"}, 500

    return {"ok": True}, 200
