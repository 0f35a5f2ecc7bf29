# Overview: Flask API routes for customer master data.

from flask import Blueprint, request
from ..services import parties_service
from ..models import Customer
from ..validation import ModelValidationPolicy, validate_payload, ValidationError, ConflictError

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone", "document", "notes", "is_active"},
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
def list_customers():
    """Query params: search (name or email), is_active, page, limit"""
    args = request.args
    try:
        return parties_service.list_customers(
            search=args.get("search"),
            is_active=args.get("is_active"),
            page=args.get("page"),
            limit=args.get("limit"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    customer = parties_service.get_customer(customer_id)
    if not customer:
        return {"error": "Customer not found"}, 404
    return customer.to_dict(), 200


@customers_bp.post("")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = parties_service.create_customer(patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    return created, 201


@customers_bp.route("/<int:customer_id>", methods=["PUT", "PATCH"])
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        updated = parties_service.update_customer(customer_id=customer_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    if not updated:
        return {"error": "Customer not found"}, 404
    return updated, 200


@customers_bp.delete("/<int:customer_id>")
def delete_customer_route(customer_id: int):
    try:
        deleted = parties_service.delete_customer(customer_id=customer_id)
    except ConflictError as e:
        return {"error": str(e)}, 409

    if not deleted:
        return {"error": "Customer not found"}, 404
    return {"ok": True}, 200
