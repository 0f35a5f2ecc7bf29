# backend/nexo/services/catalog_service.py
"""
Catalog Service - products and services offered on sales

- Names are unique case-insensitively.
- kind is fixed at creation; stock is set at creation (Product kind) and
  afterwards only moved by the sale engine (stock_service).
- Entries referenced by any sale line cannot be deleted; set them Inactive.
"""
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, SaleLine
from ..models.catalog import PRODUCT_KINDS, PRODUCT_STATUSES
from ..validation import ConflictError, ValidationError, to_int, to_money
from .concurrency import run_with_retry
from .pagination import page_params, paginate

PRODUCT_MUTABLE_FIELDS = {"name", "description", "price", "status"}


def apply_product_patch(p: Product, patch: dict, allowed: set[str]) -> None:
    for k, v in patch.items():
        if k not in allowed:
            continue
        setattr(p, k, v)


def _ensure_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Product).filter(func.lower(Product.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("A catalog entry with this name already exists.")


def _commit() -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("A catalog entry with this name already exists.") from exc


def _optional_money(value, field: str) -> Decimal | None:
    if value in (None, ""):
        return None
    return to_money(value, field)


def list_products(
    search: str | None = None,
    kind: str | None = None,
    status: str | None = None,
    min_price=None,
    max_price=None,
    min_stock=None,
    page=None,
    limit=None,
) -> dict:
    """
    Catalog listing ordered by name.

    search matches name or description (case-insensitive substring).
    """
    page, limit = page_params(page, limit)
    query = db.session.query(Product)

    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(or_(
            func.lower(Product.name).like(pattern),
            func.lower(Product.description).like(pattern),
        ))
    if kind:
        if kind not in PRODUCT_KINDS:
            raise ValidationError(f"kind must be one of: {', '.join(sorted(PRODUCT_KINDS))}")
        query = query.filter(Product.kind == kind)
    if status:
        if status not in PRODUCT_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(sorted(PRODUCT_STATUSES))}")
        query = query.filter(Product.status == status)

    low = _optional_money(min_price, "min_price")
    if low is not None:
        query = query.filter(Product.price >= low)
    high = _optional_money(max_price, "max_price")
    if high is not None:
        query = query.filter(Product.price <= high)
    if min_stock not in (None, ""):
        query = query.filter(Product.stock >= to_int(min_stock, "min_stock"))

    products, pagination = paginate(query.order_by(Product.name.asc(), Product.id.asc()), page, limit)
    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": pagination,
    }


def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def create_product(*, patch: dict) -> dict:
    """Create a catalog entry from a validated patch (see routes/products.py)."""
    _ensure_unique_name(patch["name"])

    def _op():
        p = Product()
        apply_product_patch(p, patch, PRODUCT_MUTABLE_FIELDS | {"kind", "stock"})
        db.session.add(p)
        _commit()
        return p.to_dict()

    return run_with_retry(_op)


def update_product(*, product_id: int, patch: dict) -> dict | None:
    if db.session.get(Product, product_id) is None:
        return None

    if "name" in patch:
        _ensure_unique_name(patch["name"], exclude_id=product_id)

    def _op():
        # re-read so a stock move committed meanwhile does not trip the version check twice
        p = db.session.get(Product, product_id, populate_existing=True)
        apply_product_patch(p, patch, PRODUCT_MUTABLE_FIELDS)
        _commit()
        return p.to_dict()

    return run_with_retry(_op)


def count_sale_lines(product_id: int) -> int:
    return db.session.query(SaleLine).filter(SaleLine.product_id == product_id).count()


def delete_product(*, product_id: int) -> bool:
    """
    Delete a catalog entry.

    Returns False if it does not exist. Raises ConflictError while any sale
    line references it.
    """
    p = db.session.get(Product, product_id)
    if not p:
        return False

    referenced = count_sale_lines(product_id)
    if referenced:
        raise ConflictError(
            f"Cannot delete a catalog entry used by {referenced} sale line(s); set it Inactive instead."
        )

    db.session.delete(p)
    db.session.commit()
    return True
