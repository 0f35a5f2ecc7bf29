# Overview: Stock reconciliation for the sale engine; the only code that moves Product.stock.

"""
Stock rules (authoritative)

- Only Product-kind catalog entries track stock. Service-kind entries have
  stock=NULL and never appear in a delta or an availability check.
- A sale holds stock while it is Completed:
    * entering Completed decrements stock by each line's quantity
    * leaving Completed (to any status, or by deletion) increments it back
    * every other transition, including same-status, moves nothing
- Deltas are computed by a pure function and applied inside the caller's
  transaction, after locking the product rows in ascending id order.
- A negative delta that would drive stock below zero aborts the whole unit
  before any row is written.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from flask import current_app

from ..extensions import db
from ..models import Product
from ..models.catalog import KIND_PRODUCT
from ..models.sales import SALE_COMPLETED
from .concurrency import lock_for_update
from .sale_errors import InsufficientStock, ReferenceNotFound


@dataclass(frozen=True)
class LineSnapshot:
    """The part of a sale line that matters for stock."""
    product_id: int
    quantity: int
    tracks_stock: bool


def snapshot_lines(lines) -> list[LineSnapshot]:
    """Freeze ORM sale lines (with their product loaded) into LineSnapshots."""
    return [
        LineSnapshot(
            product_id=line.product_id,
            quantity=line.quantity,
            tracks_stock=line.product.kind == KIND_PRODUCT,
        )
        for line in lines
    ]


def stock_deltas(
    old_status: str | None,
    new_status: str | None,
    lines: Iterable[LineSnapshot],
) -> dict[int, int]:
    """
    Stock movement implied by a status change, per product id.

    new_status=None means the sale is being deleted. old_status=None means
    the sale is being created. Returns an empty dict when nothing moves.
    """
    if old_status == new_status:
        return {}

    if new_status == SALE_COMPLETED:
        sign = -1
    elif old_status == SALE_COMPLETED:
        sign = 1
    else:
        return {}

    deltas: dict[int, int] = {}
    for line in lines:
        if not line.tracks_stock:
            continue
        deltas[line.product_id] = deltas.get(line.product_id, 0) + sign * line.quantity

    return {pid: delta for pid, delta in deltas.items() if delta != 0}


def shortages(requested: Mapping[int, int], products: Mapping[int, Product]) -> list[dict]:
    """
    Compare requested quantities against current stock.

    Products that do not track stock are skipped. Returns one entry per
    product whose stock cannot cover the request.
    """
    short = []
    for product_id in sorted(requested):
        qty = requested[product_id]
        product = products[product_id]
        if product.kind != KIND_PRODUCT or qty <= 0:
            continue
        available = product.stock or 0
        if qty > available:
            short.append({
                "product_id": product_id,
                "product_name": product.name,
                "available": available,
                "requested": qty,
                "shortfall": qty - available,
            })
    return short


def check_availability(requested: Mapping[int, int], products: Mapping[int, Product]) -> None:
    """Raise InsufficientStock if any Product-kind request exceeds stock."""
    short = shortages(requested, products)
    if short:
        names = ", ".join(item["product_name"] for item in short)
        raise InsufficientStock(f"Insufficient stock for: {names}", details=short)


def apply_stock_deltas(deltas: Mapping[int, int], *, reason: str = "") -> dict[int, int]:
    """
    Apply per-product stock deltas inside the current transaction.

    Locks every touched product row (ascending id), re-checks decrements
    against the locked values, then writes. Does not commit. Returns the
    new stock per product id.
    """
    if not deltas:
        return {}

    product_ids = sorted(deltas)
    rows = lock_for_update(
        db.session.query(Product)
        .filter(Product.id.in_(product_ids))
        .order_by(Product.id.asc())
    ).all()
    products = {p.id: p for p in rows}

    missing = [pid for pid in product_ids if pid not in products]
    if missing:
        raise ReferenceNotFound(
            "Product not found",
            details=[f"Product with ID {pid} not found" for pid in missing],
        )

    needed = {pid: -delta for pid, delta in deltas.items() if delta < 0}
    check_availability(needed, products)

    new_stock: dict[int, int] = {}
    for pid in product_ids:
        product = products[pid]
        if product.kind != KIND_PRODUCT:
            continue
        product.stock = (product.stock or 0) + deltas[pid]
        new_stock[pid] = product.stock
        current_app.logger.info(
            "Stock %+d for product %s (%s) -> %s%s",
            deltas[pid], pid, product.name, product.stock,
            f" [{reason}]" if reason else "",
        )

    db.session.flush()
    return new_stock
