from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from nexo.time_utils import parse_sale_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 9,999,999,999.99 fits Numeric(12, 2)
MAX_PRICE = Decimal("9999999999.99")

# Largest value for Integer columns (ids, quantities, stock)
MAX_INT = 2**31 - 1

CENT = Decimal("0.01")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate product name)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - choices: closed value sets for string columns (kind, status, role)
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    choices: dict[str, set[str]] | None = None


def to_money(value: Any, field: str = "value") -> Decimal:
    """Coerce a client value to a 2-place Decimal; floats go through str()."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    try:
        return amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # more digits than the decimal context holds, e.g. "1e30"
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE}")


def to_price(value: Any, field: str = "price") -> Decimal:
    """to_money bounded to 0..MAX_PRICE, the range Numeric(12, 2) stores."""
    amount = to_money(value, field)
    if amount < 0:
        raise ValidationError(f"{field} must be >= 0")
    if amount > MAX_PRICE:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE}")
    return amount


def _in_range(n: int, field: str) -> int:
    if abs(n) > MAX_INT:
        raise ValidationError(f"{field} is out of range (max {MAX_INT})")
    return n


def to_int(value: Any, field: str) -> int:
    """Strict integer coercion: rejects floats, decimals, scientific notation and out-of-range values."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return _in_range(value, field)
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            n = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
        return _in_range(n, field)
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def to_positive_int(value: Any, field: str) -> int:
    n = to_int(value, field)
    if n <= 0:
        raise ValidationError(f"{field} must be greater than zero")
    return n


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return to_int(value, col.key)

    if isinstance(coltype, Numeric):
        return to_money(value, col.key)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (ISO-8601 or dd/mm/yyyy; normalized to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_sale_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 or dd/mm/yyyy datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 or dd/mm/yyyy datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields) and closed choices
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)
    choices = policy.choices or {}

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        if k in choices and val not in choices[k]:
            allowed = ", ".join(sorted(choices[k]))
            raise ValidationError(f"{k} must be one of: {allowed}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict, *, current_kind: str | None = None) -> None:
    """
    Catalog rules that are not captured by SQLAlchemy metadata alone.

    - price must be within 0..MAX_PRICE
    - Product kind requires a non-negative integer stock
    - Service kind never carries stock (normalized to None here)
    """
    if "price" in patch and patch["price"] is not None:
        price = patch["price"]
        if price < 0:
            raise ValidationError("price must be >= 0")
        if price > MAX_PRICE:
            raise ValidationError(f"price cannot exceed {MAX_PRICE}")

    kind = patch.get("kind") or current_kind or "Product"

    if kind == "Service":
        patch["stock"] = None
        return

    if current_kind in (None, "Service"):
        # creating a Product, or converting a Service into one
        if patch.get("stock") is None:
            raise ValidationError("stock is required for Product entries")

    if "stock" in patch:
        if patch["stock"] is None:
            raise ValidationError("stock cannot be null for Product entries")
        if patch["stock"] < 0:
            raise ValidationError("stock must be >= 0")
