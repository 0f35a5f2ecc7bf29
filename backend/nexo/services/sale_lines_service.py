# Overview: Sale-line CRUD; each mutation recomputes the parent sale total in the same unit.

"""
Line mutations are only allowed on Pending sales (ensure_modifiable).

Stock is never moved here: a Pending sale holds no stock. Quantity and
product changes are still checked against current stock so the sale can
later be completed. A new line is checked together with the quantity the
sale already holds of that product; an edited line only by its net request
(see _net_request). Unit price changes are stock-neutral.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Product, Sale, SaleLine
from ..validation import CENT, ValidationError, to_positive_int, to_price
from .concurrency import begin_write, lock_for_update, run_with_retry
from .pagination import page_params, paginate
from .sale_errors import LineNotFound, ReferenceNotFound, SaleValidationError
from .sales_service import (
    commit_unit,
    compute_total,
    ensure_modifiable,
    ensure_storable_total,
    get_sale,
    load_sale,
)
from .stock_service import check_availability


def recompute_total(sale: Sale) -> Decimal:
    """Write sum(quantity * unit_price) over the sale's current lines to sale.total."""
    db.session.flush()
    lines = db.session.query(SaleLine).filter(SaleLine.sale_id == sale.id).all()
    sale.total = ensure_storable_total(compute_total(lines))
    return sale.total


def _load_line(line_id: int, *, lock: bool = False) -> SaleLine:
    query = db.session.query(SaleLine).filter_by(id=line_id)
    if lock:
        query = lock_for_update(query)
    line = query.first()
    if not line:
        raise LineNotFound("Sale line not found", details=[f"Sale line with ID {line_id} not found"])
    return line


def _load_product(product_id: int, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if not product:
        raise ReferenceNotFound("Product not found", details=[f"Product with ID {product_id} not found"])
    if not product.is_active:
        raise SaleValidationError(
            "Product is not active",
            details=[f"Product {product.name} (ID {product.id}) is {product.status}"],
        )
    return product


def _net_request(line: SaleLine | None, product_id: int, quantity: int) -> int:
    """
    Quantity that must still be available for a line to hold `quantity` of product_id.

    For an existing line on the same product, its current quantity counts as
    already reserved, so only the increase is checked.
    """
    if line is not None and line.product_id == product_id:
        return quantity - line.quantity
    return quantity


def _quantity_on_sale(sale_id: int, product_id: int) -> int:
    held = (
        db.session.query(func.coalesce(func.sum(SaleLine.quantity), 0))
        .filter(SaleLine.sale_id == sale_id, SaleLine.product_id == product_id)
        .scalar()
    )
    return int(held)


def _check_line_stock(line: SaleLine | None, product: Product, quantity: int) -> None:
    needed = _net_request(line, product.id, quantity)
    if needed > 0:
        check_availability({product.id: needed}, {product.id: product})


def _invalid(e: ValidationError) -> SaleValidationError:
    return SaleValidationError(str(e), details=[str(e)])


def _parse_unit_price(value):
    if value is None:
        return None
    try:
        return to_price(value, "unit_price")
    except ValidationError as e:
        raise _invalid(e)


def _parse_id(value, field: str) -> int:
    try:
        return to_positive_int(value, field)
    except ValidationError as e:
        raise _invalid(e)


# =============================================================================
# Mutations
# =============================================================================

def add_line(sale_id, product_id, quantity, unit_price=None) -> SaleLine:
    """
    Append a line to a Pending sale; unit_price defaults to the catalog price.

    Stock must cover the new quantity plus what the sale's other lines
    already hold of the same product, as create_sale checks it.
    """
    sale_id = _parse_id(sale_id, "sale_id")
    product_id = _parse_id(product_id, "product_id")
    quantity = _parse_id(quantity, "quantity")
    unit_price = _parse_unit_price(unit_price)

    def _checked(lock: bool):
        sale = load_sale(sale_id, lock=lock)
        ensure_modifiable(sale)
        product = _load_product(product_id, lock=lock)
        held = _quantity_on_sale(sale.id, product.id)
        _check_line_stock(None, product, quantity + held)
        return sale, product

    _checked(lock=False)

    def _op():
        begin_write()
        sale, product = _checked(lock=True)
        line = SaleLine(
            sale_id=sale.id,
            product_id=product.id,
            quantity=quantity,
            unit_price=unit_price if unit_price is not None else product.price,
        )
        db.session.add(line)
        total = recompute_total(sale)
        commit_unit()
        current_app.logger.info("Added line %s to sale %s (total %s)", line.id, sale_id, total)
        return line

    return run_with_retry(_op)


def update_line(line_id, quantity=None, unit_price=None, product_id=None) -> SaleLine:
    """
    Edit quantity, unit price and/or product of a line on a Pending sale.

    Only quantity/product changes are checked against stock.
    """
    line_id = _parse_id(line_id, "line_id")
    quantity = _parse_id(quantity, "quantity") if quantity is not None else None
    product_id = _parse_id(product_id, "product_id") if product_id is not None else None
    unit_price = _parse_unit_price(unit_price)

    if quantity is None and product_id is None and unit_price is None:
        raise SaleValidationError(
            "Nothing to update",
            details=["Send at least one of: quantity, unit_price, product_id"],
        )

    def _checked(lock: bool):
        line = _load_line(line_id, lock=lock)
        sale = load_sale(line.sale_id, lock=lock)
        ensure_modifiable(sale)
        if quantity is not None or product_id is not None:
            target_product = _load_product(product_id or line.product_id, lock=lock)
            _check_line_stock(line, target_product, quantity or line.quantity)
        return line, sale

    _checked(lock=False)

    def _op():
        begin_write()
        line, sale = _checked(lock=True)
        if quantity is not None:
            line.quantity = quantity
        if product_id is not None:
            line.product_id = product_id
        if unit_price is not None:
            line.unit_price = unit_price
        total = recompute_total(sale)
        commit_unit()
        current_app.logger.info("Updated line %s of sale %s (total %s)", line_id, sale.id, total)
        return line

    return run_with_retry(_op)


def delete_line(line_id) -> Sale:
    """Remove a line from a Pending sale; returns the sale with its new total."""
    line_id = _parse_id(line_id, "line_id")

    def _checked(lock: bool):
        line = _load_line(line_id, lock=lock)
        sale = load_sale(line.sale_id, lock=lock)
        ensure_modifiable(sale)
        return line, sale

    _checked(lock=False)

    def _op():
        begin_write()
        line, sale = _checked(lock=True)
        db.session.delete(line)
        total = recompute_total(sale)
        commit_unit()
        current_app.logger.info("Deleted line %s of sale %s (total %s)", line_id, sale.id, total)
        return sale

    return run_with_retry(_op)


# =============================================================================
# Read
# =============================================================================

def _line_payload(line: SaleLine) -> dict:
    data = line.to_dict()
    data["sale"] = {
        "id": line.sale.id,
        "status": line.sale.status,
        "total": str(line.sale.total),
    }
    return data


def _totals(lines) -> dict:
    value = sum((line.line_total for line in lines), Decimal("0")).quantize(CENT)
    return {"line_count": len(lines), "total_value": str(value)}


def get_line(line_id: int) -> SaleLine:
    line = (
        db.session.query(SaleLine)
        .options(joinedload(SaleLine.product), joinedload(SaleLine.sale))
        .filter(SaleLine.id == line_id)
        .first()
    )
    if not line:
        raise LineNotFound("Sale line not found", details=[f"Sale line with ID {line_id} not found"])
    return line


def list_lines(sale_id=None, product_id=None, page=None, limit=None) -> dict:
    """Lines across sales, newest first, optionally filtered by sale and/or product."""
    try:
        page, limit = page_params(page, limit)
    except ValidationError as e:
        raise _invalid(e)

    query = db.session.query(SaleLine).options(
        joinedload(SaleLine.product), joinedload(SaleLine.sale)
    )
    if sale_id not in (None, ""):
        query = query.filter(SaleLine.sale_id == _parse_id(sale_id, "sale_id"))
    if product_id not in (None, ""):
        query = query.filter(SaleLine.product_id == _parse_id(product_id, "product_id"))

    lines, pagination = paginate(query.order_by(SaleLine.id.desc()), page, limit)
    return {
        "items": [_line_payload(line) for line in lines],
        "totals": _totals(lines),
        "pagination": pagination,
    }


def lines_for_sale(sale_id: int) -> dict:
    """All lines of one sale in insertion order, with the aggregate block."""
    sale = get_sale(sale_id)
    return {
        "sale_id": sale.id,
        "status": sale.status,
        "items": [line.to_dict() for line in sale.lines],
        "totals": _totals(sale.lines),
    }
