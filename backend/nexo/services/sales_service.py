"""
Sales Service - sale aggregate lifecycle with stock and total consistency

Every compound change (sale row + lines + product stock) is one unit of
work: inputs and references are validated with plain reads first, then the
unit re-reads what it depends on under locks (begin_write/lock_for_update),
writes, and commits. Any error inside the unit rolls everything back.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload, selectinload

from ..extensions import db
from ..models import Customer, Product, Sale, SaleLine, User
from ..models.sales import SALE_PENDING, SALE_STATUSES
from ..validation import (
    CENT,
    MAX_PRICE,
    ModelValidationPolicy,
    ValidationError,
    to_positive_int,
    to_price,
    validate_payload,
)
from nexo.time_utils import end_of_day, parse_sale_datetime, utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry
from .pagination import page_params, paginate
from .sale_errors import (
    InsufficientStock,
    InvalidStatus,
    LineNotFound,
    ReferenceNotFound,
    SaleError,
    SaleNotFound,
    SaleNotModifiable,
    SaleValidationError,
)
from .stock_service import (
    LineSnapshot,
    apply_stock_deltas,
    check_availability,
    snapshot_lines,
    stock_deltas,
)

__all__ = [
    "SaleError", "SaleValidationError", "ReferenceNotFound", "InsufficientStock",
    "SaleNotModifiable", "InvalidStatus", "SaleNotFound", "LineNotFound",
    "create_sale", "get_sale", "list_sales", "update_sale", "update_status",
    "delete_sale", "ensure_modifiable", "ensure_storable_total", "compute_total",
    "commit_unit", "load_sale",
]

SALE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"occurred_at", "notes"},
)


# =============================================================================
# Shared helpers (also used by sale_lines_service)
# =============================================================================

def normalize_status(value) -> str:
    if value not in SALE_STATUSES:
        raise InvalidStatus(
            f"Invalid status: {value!r}",
            details=[f"Use one of: {', '.join(SALE_STATUSES)}"],
        )
    return value


def compute_total(lines) -> Decimal:
    """sum(quantity * unit_price) over lines, rounded to cents."""
    total = Decimal("0")
    for line in lines:
        total += Decimal(line.quantity) * Decimal(line.unit_price)
    return total.quantize(CENT)


def ensure_storable_total(total: Decimal) -> Decimal:
    """Reject line sums that do not fit the sales.total column."""
    if total > MAX_PRICE:
        raise SaleValidationError(
            "Sale total too large",
            details=[f"Line sum {total} exceeds the maximum total {MAX_PRICE}"],
        )
    return total


def ensure_modifiable(sale: Sale) -> None:
    """Lines may only be added, edited or removed while the sale is Pending."""
    if sale.status != SALE_PENDING:
        raise SaleNotModifiable(
            f"Cannot modify lines of a {sale.status} sale",
            details=[f"Sale {sale.id} has status {sale.status}; only {SALE_PENDING} sales accept line changes"],
        )


def load_sale(sale_id: int, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if not sale:
        raise SaleNotFound("Sale not found", details=[f"Sale with ID {sale_id} not found"])
    return sale


def sale_lines_with_products(sale_id: int) -> list[SaleLine]:
    return (
        db.session.query(SaleLine)
        .options(joinedload(SaleLine.product))
        .filter(SaleLine.sale_id == sale_id)
        .order_by(SaleLine.id.asc())
        .all()
    )


def translate_integrity_error(exc: IntegrityError) -> SaleError:
    message = str(exc.orig).lower()
    if "foreign key" in message:
        return ReferenceNotFound(
            "Referenced record not found",
            details=["Customer, user or product not found. Check the ids sent."],
        )
    return SaleValidationError("Data violates a database constraint", details=[str(exc.orig)])


def commit_unit() -> None:
    """Commit the current unit, mapping constraint violations to sale errors."""
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise translate_integrity_error(exc) from exc


def _as_id(value, field: str) -> int:
    try:
        return to_positive_int(value, field)
    except ValidationError as e:
        raise SaleValidationError(str(e), details=[str(e)])


def _resolve_occurred_at(value):
    """Sale timestamp for creation: unparsable or missing values become now."""
    try:
        parsed = parse_sale_datetime(value)
    except ValueError:
        current_app.logger.warning("Unrecognized sale timestamp %r, using current time", value)
        parsed = None
    return parsed or utcnow()


# =============================================================================
# Create
# =============================================================================

def _parse_line_requests(lines) -> list[dict]:
    if not isinstance(lines, list) or not lines:
        raise SaleValidationError(
            "A sale must contain at least one line",
            details=["lines must be a non-empty list"],
        )

    errors = []
    parsed = []
    for index, raw in enumerate(lines, start=1):
        if not isinstance(raw, dict):
            errors.append(f"Line {index}: must be an object")
            continue
        item = {}
        try:
            item["product_id"] = to_positive_int(raw.get("product_id"), "product_id")
        except ValidationError as e:
            errors.append(f"Line {index}: {e}")
        try:
            item["quantity"] = to_positive_int(raw.get("quantity"), "quantity")
        except ValidationError as e:
            errors.append(f"Line {index}: {e}")
        item["unit_price"] = None
        if raw.get("unit_price") is not None:
            try:
                item["unit_price"] = to_price(raw["unit_price"], "unit_price")
            except ValidationError as e:
                errors.append(f"Line {index}: {e}")
        parsed.append(item)

    if errors:
        raise SaleValidationError("Invalid sale lines", details=errors)
    return parsed


def _check_references(customer_id: int, user_id: int, product_ids: set[int]) -> dict[int, Product]:
    errors = []
    if db.session.get(Customer, customer_id) is None:
        errors.append(f"Customer with ID {customer_id} not found")
    if db.session.get(User, user_id) is None:
        errors.append(f"User with ID {user_id} not found")

    products = {
        p.id: p
        for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    }
    for pid in sorted(product_ids - set(products)):
        errors.append(f"Product with ID {pid} not found")

    if errors:
        raise ReferenceNotFound("Referenced record not found", details=errors)
    return products


def _requested_quantities(requests: list[dict]) -> dict[int, int]:
    requested: dict[int, int] = {}
    for item in requests:
        requested[item["product_id"]] = requested.get(item["product_id"], 0) + item["quantity"]
    return requested


def create_sale(
    customer_id,
    user_id,
    lines,
    occurred_at=None,
    status=None,
    total=None,
    notes=None,
) -> Sale:
    """
    Create a sale with its lines.

    Stock is checked for every Product-kind line regardless of status, and
    decremented in the same unit when the sale is created Completed.
    total, when given, is stored as-is instead of the line sum.
    """
    customer_id = _as_id(customer_id, "customer_id")
    user_id = _as_id(user_id, "user_id")
    requests = _parse_line_requests(lines)
    status = normalize_status(status) if status is not None else SALE_PENDING

    total_override = None
    if total is not None and total != "":
        try:
            total_override = to_price(total, "total")
        except ValidationError as e:
            raise SaleValidationError(str(e), details=[str(e)])

    requested = _requested_quantities(requests)
    products = _check_references(customer_id, user_id, set(requested))
    check_availability(requested, products)

    when = _resolve_occurred_at(occurred_at)
    notes = str(notes).strip() or None if notes is not None else None

    def _op():
        begin_write()

        line_rows = []
        for item in requests:
            product = products[item["product_id"]]
            unit_price = item["unit_price"] if item["unit_price"] is not None else product.price
            line_rows.append(SaleLine(
                product_id=product.id,
                quantity=item["quantity"],
                unit_price=unit_price,
            ))
        line_sum = ensure_storable_total(compute_total(line_rows))

        snapshots = [
            LineSnapshot(
                product_id=row.product_id,
                quantity=row.quantity,
                tracks_stock=products[row.product_id].tracks_stock,
            )
            for row in line_rows
        ]
        apply_stock_deltas(stock_deltas(None, status, snapshots), reason=f"new {status} sale")

        sale = Sale(
            customer_id=customer_id,
            user_id=user_id,
            occurred_at=when,
            status=status,
            total=total_override if total_override is not None else line_sum,
            notes=notes,
        )
        sale.lines.extend(line_rows)
        db.session.add(sale)
        commit_unit()

        current_app.logger.info(
            "Created sale %s (%s, %s lines, total %s)",
            sale.id, sale.status, len(line_rows), sale.total,
        )
        return sale

    return run_with_retry(_op)


# =============================================================================
# Read
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = (
        db.session.query(Sale)
        .options(
            joinedload(Sale.customer),
            joinedload(Sale.user),
            selectinload(Sale.lines).joinedload(SaleLine.product),
        )
        .filter(Sale.id == sale_id)
        .first()
    )
    if not sale:
        raise SaleNotFound("Sale not found", details=[f"Sale with ID {sale_id} not found"])
    return sale


def _filter_datetime(value, field: str):
    try:
        return parse_sale_datetime(value)
    except ValueError:
        raise SaleValidationError(f"{field} is not a valid date", details=[f"{field}: {value!r}"])


def list_sales(
    customer_id=None,
    user_id=None,
    status=None,
    date_from=None,
    date_to=None,
    page=None,
    limit=None,
) -> dict:
    """
    Newest-first sale listing with optional filters and pagination.

    date_to is inclusive up to the end of that day.
    """
    try:
        page, limit = page_params(page, limit)
    except ValidationError as e:
        raise SaleValidationError(str(e), details=[str(e)])

    query = db.session.query(Sale).options(
        joinedload(Sale.customer),
        joinedload(Sale.user),
        selectinload(Sale.lines).joinedload(SaleLine.product),
    )

    if customer_id not in (None, ""):
        query = query.filter(Sale.customer_id == _as_id(customer_id, "customer_id"))
    if user_id not in (None, ""):
        query = query.filter(Sale.user_id == _as_id(user_id, "user_id"))
    if status not in (None, ""):
        query = query.filter(Sale.status == normalize_status(status))

    start = _filter_datetime(date_from, "date_from")
    if start is not None:
        query = query.filter(Sale.occurred_at >= start)
    end = _filter_datetime(date_to, "date_to")
    if end is not None:
        query = query.filter(Sale.occurred_at <= end_of_day(end))

    query = query.order_by(Sale.occurred_at.desc(), Sale.id.desc())
    sales, pagination = paginate(query, page, limit)

    return {
        "items": [s.to_dict() for s in sales],
        "count": len(sales),
        "pagination": pagination,
    }


# =============================================================================
# Status transitions, update, delete
# =============================================================================

def _transition_locked(sale: Sale, new_status: str) -> dict[int, int]:
    """Move stock for sale's current -> new status and set it. Caller holds the lock."""
    old_status = sale.status
    if old_status == new_status:
        return {}

    lines = sale_lines_with_products(sale.id)
    deltas = stock_deltas(old_status, new_status, snapshot_lines(lines))
    apply_stock_deltas(deltas, reason=f"sale {sale.id} {old_status} -> {new_status}")
    sale.status = new_status

    current_app.logger.info("Sale %s status %s -> %s", sale.id, old_status, new_status)
    return deltas


def update_status(sale_id: int, new_status) -> Sale:
    """
    Change a sale's status, moving stock as the transition requires.

    Same-status calls touch nothing.
    """
    new_status = normalize_status(new_status)
    load_sale(sale_id)

    def _op():
        begin_write()
        sale = load_sale(sale_id, lock=True)
        _transition_locked(sale, new_status)
        commit_unit()
        return sale

    return run_with_retry(_op)


def update_sale(sale_id: int, fields: dict) -> Sale:
    """
    Partial update of occurred_at, notes and status in one unit.

    A status change is evaluated against the state read inside the unit.
    """
    if not isinstance(fields, dict):
        raise SaleValidationError("Invalid JSON payload", details=["Body must be a JSON object"])

    fields = dict(fields)
    new_status = None
    if "status" in fields:
        new_status = normalize_status(fields.pop("status"))

    if fields.get("occurred_at") == "":
        fields["occurred_at"] = None
    try:
        patch = validate_payload(model=Sale, payload=fields, policy=SALE_UPDATE_POLICY, partial=True)
    except ValidationError as e:
        raise SaleValidationError(str(e), details=[str(e)])

    load_sale(sale_id)

    def _op():
        begin_write()
        sale = load_sale(sale_id, lock=True)
        if new_status is not None:
            _transition_locked(sale, new_status)
        for key, value in patch.items():
            setattr(sale, key, value)
        commit_unit()
        return sale

    return run_with_retry(_op)


def delete_sale(sale_id: int) -> None:
    """Delete a sale and its lines, giving back stock if it was Completed."""
    load_sale(sale_id)

    def _op():
        begin_write()
        sale = load_sale(sale_id, lock=True)
        old_status = sale.status
        lines = sale_lines_with_products(sale.id)
        apply_stock_deltas(
            stock_deltas(old_status, None, snapshot_lines(lines)),
            reason=f"sale {sale.id} deleted",
        )
        db.session.delete(sale)
        commit_unit()
        current_app.logger.info("Deleted sale %s (was %s)", sale_id, old_status)

    run_with_retry(_op)
