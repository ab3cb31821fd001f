# Overview: Flask API routes for catalog articles and stock; parses input and returns JSON responses.

"""
Article management routes.

- Read operations require VIEW_CATALOG
- Create/update require MANAGE_CATALOG, stock changes ADJUST_STOCK
- Delete requires DELETE_ARTICLE
"""
from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_permission
from ..models import Article
from ..money import parse_amount_to_cents
from ..services import catalog_service
from ..services.catalog_service import StockError
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_article,
    parse_bool_arg,
    parse_pagination,
    validate_payload,
)
from .errors import business_error_response, request_json

ARTICLE_POLICY = ModelValidationPolicy(
    writable_fields={
        "code", "name", "full_name", "category", "service", "client_type",
        "price_cents", "currency", "stock_quantity", "is_active",
    },
    required_on_create={"code", "name", "category", "price_cents"},
)

articles_bp = Blueprint("articles", __name__, url_prefix="/api/articles")


def _article_patch(payload: dict, *, partial: bool) -> dict:
    payload = dict(payload)
    # Dashboard sends decimal prices ("1590.00"); storage is integer cents
    if "price" in payload:
        price = payload.pop("price")
        try:
            payload["price_cents"] = parse_amount_to_cents(price)
        except ValueError as e:
            raise ValidationError(str(e))
    patch = validate_payload(model=Article, payload=payload, policy=ARTICLE_POLICY, partial=partial)
    enforce_rules_article(patch)
    return patch


@articles_bp.get("")
@require_auth
@require_permission("VIEW_CATALOG")
def list_articles_route():
    """
    Query params: search, category, service, client_type, active,
    page, per_page (omit page for all rows).
    """
    try:
        page, per_page = (parse_pagination(request.args) if "page" in request.args else (None, None))
        result = catalog_service.list_articles(
            search=request.args.get("search"),
            category=request.args.get("category"),
            service=request.args.get("service"),
            client_type=request.args.get("client_type"),
            is_active=parse_bool_arg(request.args.get("active")),
            page=page,
            per_page=per_page,
        )
        return result, 200
    except ValidationError as e:
        return {"error": str(e)}, 400


@articles_bp.get("/low-stock")
@require_auth
@require_permission("VIEW_CATALOG")
def low_stock_route():
    threshold = request.args.get("threshold", type=int)
    articles = catalog_service.list_low_stock(threshold)
    return {"items": [a.to_dict() for a in articles], "count": len(articles)}, 200


@articles_bp.get("/stats/summary")
@require_auth
@require_permission("VIEW_CATALOG")
def article_stats_route():
    return catalog_service.article_stats(), 200


@articles_bp.get("/<int:article_id>")
@require_auth
@require_permission("VIEW_CATALOG")
def get_article_route(article_id: int):
    try:
        return {"article": catalog_service.get_article(article_id).to_dict()}, 200
    except NotFoundError as e:
        return {"error": str(e)}, 404


@articles_bp.post("")
@require_auth
@require_permission("MANAGE_CATALOG")
def create_article_route():
    try:
        patch = _article_patch(request_json(), partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        article = catalog_service.create_article(patch=patch, actor_id=g.actor.user_id)
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to create article")
        return {"error": "Internal server error"}, 500

    return {"article": article.to_dict()}, 201


@articles_bp.put("/<int:article_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def update_article_route(article_id: int):
    """Partial update. Price changes never touch existing sale items."""
    try:
        patch = _article_patch(request_json(), partial=True)
        article = catalog_service.update_article(article_id, patch=patch, actor_id=g.actor.user_id)
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except ConflictError as e:
        return {"error": str(e)}, 409
    except Exception:
        current_app.logger.exception("Failed to update article")
        return {"error": "Internal server error"}, 500

    return {"article": article.to_dict()}, 200


@articles_bp.delete("/<int:article_id>")
@require_auth
@require_permission("DELETE_ARTICLE")
def delete_article_route(article_id: int):
    try:
        outcome = catalog_service.delete_article(article_id)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except Exception:
        current_app.logger.exception("Failed to delete article")
        return {"error": "Internal server error"}, 500

    return {"ok": True, "result": outcome}, 200


@articles_bp.patch("/<int:article_id>/stock")
@require_auth
@require_permission("ADJUST_STOCK")
def adjust_stock_route(article_id: int):
    """
    Body: {"quantity": int, "operation": "set" | "add" | "subtract", "note": str}

    Stock never goes below zero; subtracting more than is on hand is a 409.
    """
    data = request_json()
    try:
        article = catalog_service.adjust_stock(
            article_id,
            mode=data.get("operation") or "set",
            quantity=data.get("quantity"),
            actor_id=g.actor.user_id,
            note=data.get("note"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError as e:
        return {"error": str(e)}, 404
    except StockError as e:
        return business_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return {"error": "Internal server error"}, 500

    return {"article": article.to_dict()}, 200


@articles_bp.get("/<int:article_id>/movements")
@require_auth
@require_permission("VIEW_CATALOG")
def list_movements_route(article_id: int):
    limit = min(request.args.get("limit", default=100, type=int) or 100, 500)
    try:
        movements = catalog_service.list_movements(article_id, limit=limit)
    except NotFoundError as e:
        return {"error": str(e)}, 404
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}, 200
