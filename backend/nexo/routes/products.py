# Overview: Flask API routes for catalog operations; parses input and returns JSON responses.

# backend/nexo/routes/products.py
"""
Catalog routes (products and services).

kind and stock are accepted on creation only. After that, stock moves
exclusively through sales (services/stock_service.py).
"""
from flask import Blueprint, request, current_app
from ..services import catalog_service
from ..models import Product
from ..models.catalog import PRODUCT_KINDS, PRODUCT_STATUSES
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "price", "stock", "kind", "status"},
    required_on_create={"name", "price"},
    choices={"kind": PRODUCT_KINDS, "status": PRODUCT_STATUSES},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(catalog_service.PRODUCT_MUTABLE_FIELDS),
    choices={"status": PRODUCT_STATUSES},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    """
    List catalog entries ordered by name.

    Query params:
    - search: substring of name or description
    - kind: Product | Service
    - status: Active | Inactive
    - min_price, max_price, min_stock
    - page, limit
    """
    args = request.args
    try:
        result = catalog_service.list_products(
            search=args.get("search"),
            kind=args.get("kind"),
            status=args.get("status"),
            min_price=args.get("min_price"),
            max_price=args.get("max_price"),
            min_stock=args.get("min_stock"),
            page=args.get("page"),
            limit=args.get("limit"),
        )
        return result
    except ValidationError as e:
        return {"error": str(e)}, 400


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    product = catalog_service.get_product(product_id)
    if not product:
        return {"error": "Product not found"}, 404
    return product.to_dict(), 200


@products_bp.post("")
def create_product_route():
    """Create a catalog entry; Product kind requires stock, Service stock is forced to null."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = catalog_service.create_product(patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    current_app.logger.info("Created %s %s (%s)", created["kind"], created["id"], created["name"])
    return created, 201


@products_bp.route("/<int:product_id>", methods=["PUT", "PATCH"])
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    product = catalog_service.get_product(product_id)
    if not product:
        return {"error": "Product not found"}, 404

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
        enforce_rules_product(patch, current_kind=product.kind)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        updated = catalog_service.update_product(product_id=product_id, patch=patch)
    except ConflictError as e:
        return {"error": str(e)}, 409

    if not updated:
        return {"error": "Product not found"}, 404

    return updated, 200


@products_bp.delete("/<int:product_id>")
def delete_product_route(product_id: int):
    """Delete a catalog entry; refused with 409 while sale lines reference it."""
    try:
        deleted = catalog_service.delete_product(product_id=product_id)
    except ConflictError as e:
        return {"error": str(e)}, 409

    if not deleted:
        return {"error": "Product not found"}, 404

    return {"ok": True}, 200
