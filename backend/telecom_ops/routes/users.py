# Overview: Flask API routes for staff account management.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import auth_service
from ..services.auth_service import PasswordValidationError
from ..validation import ConflictError, NotFoundError, ValidationError
from .errors import request_json


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_permission("MANAGE_USERS")
def list_users_route():
    users = auth_service.list_users(role=request.args.get("role") or None)
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@users_bp.post("")
@require_auth
@require_permission("MANAGE_USERS")
def create_user_route():
    try:
        data = request_json()
        user = auth_service.create_user(
            data.get("username"),
            data.get("email"),
            data.get("password") or "",
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            role=data.get("role"),
            phone=data.get("phone"),
            department=data.get("department"),
            status=data.get("status") or "Active",
        )
        return jsonify({"user": user.to_dict()}), 201

    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/<int:user_id>/status")
@require_auth
@require_permission("MANAGE_USERS")
def set_user_status_route(user_id: int):
    try:
        user = auth_service.set_user_status(user_id, request_json().get("status"))
        return jsonify({"user": user.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update user status")
        return jsonify({"error": "Internal server error"}), 500
