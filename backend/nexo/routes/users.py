# Overview: Flask API routes for staff users (the operators sales are attributed to).

from flask import Blueprint, request
from ..services import parties_service
from ..models import User
from ..models.parties import USER_ROLES, USER_STATUSES
from ..validation import ModelValidationPolicy, validate_payload, ValidationError, ConflictError

USER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "role", "status"},
    required_on_create={"name", "email"},
    choices={"role": USER_ROLES, "status": USER_STATUSES},
)

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
def list_users():
    """Query params: search (name or email), role, status, page, limit"""
    args = request.args
    try:
        return parties_service.list_users(
            search=args.get("search"),
            role=args.get("role"),
            status=args.get("status"),
            page=args.get("page"),
            limit=args.get("limit"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400


@users_bp.get("/<int:user_id>")
def get_user_route(user_id: int):
    user = parties_service.get_user(user_id)
    if not user:
        return {"error": "User not found"}, 404
    return user.to_dict(), 200


@users_bp.post("")
def create_user_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=False)
        if "@" not in patch["email"]:
            raise ValidationError("email must be a valid address")
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = parties_service.create_user(patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    return created, 201


@users_bp.route("/<int:user_id>", methods=["PUT", "PATCH"])
def update_user_route(user_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=User, payload=payload, policy=USER_POLICY, partial=True)
        if "email" in patch and "@" not in patch["email"]:
            raise ValidationError("email must be a valid address")
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        updated = parties_service.update_user(user_id=user_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    if not updated:
        return {"error": "User not found"}, 404
    return updated, 200


@users_bp.delete("/<int:user_id>")
def delete_user_route(user_id: int):
    try:
        deleted = parties_service.delete_user(user_id=user_id)
    except ConflictError as e:
        return {"error": str(e)}, 409

    if not deleted:
        return {"error": "User not found"}, 404
    return {"ok": True}, 200
