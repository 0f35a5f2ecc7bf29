# Overview: Customer and staff-user CRUD; parties with sales are kept.

from __future__ import annotations

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Sale, User
from ..models.parties import USER_ROLES, USER_STATUSES
from ..validation import ConflictError, ValidationError
from .pagination import page_params, paginate


def _apply(obj, patch: dict) -> None:
    for k, v in patch.items():
        setattr(obj, k, v)


def _commit(conflict_message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(conflict_message) from exc


def _search_filter(query, model, search: str | None):
    if not search:
        return query
    pattern = f"%{search.strip().lower()}%"
    return query.filter(or_(
        func.lower(model.name).like(pattern),
        func.lower(model.email).like(pattern),
    ))


def _listing(query, order, page, limit) -> dict:
    page, limit = page_params(page, limit)
    rows, pagination = paginate(query.order_by(*order), page, limit)
    return {
        "items": [row.to_dict() for row in rows],
        "count": len(rows),
        "pagination": pagination,
    }


def _sales_count(column, value: int) -> int:
    return db.session.query(Sale).filter(column == value).count()


# =============================================================================
# Customers
# =============================================================================

def list_customers(search=None, is_active=None, page=None, limit=None) -> dict:
    query = _search_filter(db.session.query(Customer), Customer, search)
    if is_active not in (None, ""):
        flag = str(is_active).strip().lower()
        if flag not in ("true", "false", "1", "0"):
            raise ValidationError("is_active must be true or false")
        query = query.filter(Customer.is_active == (flag in ("true", "1")))
    return _listing(query, (Customer.name.asc(), Customer.id.asc()), page, limit)


def get_customer(customer_id: int) -> Customer | None:
    return db.session.get(Customer, customer_id)


def create_customer(*, patch: dict) -> dict:
    customer = Customer()
    _apply(customer, patch)
    db.session.add(customer)
    _commit("Customer could not be saved")
    return customer.to_dict()


def update_customer(*, customer_id: int, patch: dict) -> dict | None:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        return None
    _apply(customer, patch)
    _commit("Customer could not be saved")
    return customer.to_dict()


def delete_customer(*, customer_id: int) -> bool:
    """False if missing; ConflictError while any sale references the customer."""
    customer = db.session.get(Customer, customer_id)
    if not customer:
        return False

    count = _sales_count(Sale.customer_id, customer_id)
    if count:
        raise ConflictError(
            f"Cannot delete a customer with {count} sale(s); set is_active to false instead."
        )

    db.session.delete(customer)
    db.session.commit()
    return True


# =============================================================================
# Users
# =============================================================================

def _ensure_unique_email(email: str, exclude_id: int | None = None) -> None:
    query = db.session.query(User).filter(func.lower(User.email) == email.lower())
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    if query.first():
        raise ConflictError("A user with this email already exists.")


def list_users(search=None, role=None, status=None, page=None, limit=None) -> dict:
    query = _search_filter(db.session.query(User), User, search)
    if role:
        if role not in USER_ROLES:
            raise ValidationError(f"role must be one of: {', '.join(sorted(USER_ROLES))}")
        query = query.filter(User.role == role)
    if status:
        if status not in USER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(sorted(USER_STATUSES))}")
        query = query.filter(User.status == status)
    return _listing(query, (User.name.asc(), User.id.asc()), page, limit)


def get_user(user_id: int) -> User | None:
    return db.session.get(User, user_id)


def create_user(*, patch: dict) -> dict:
    patch["email"] = patch["email"].lower()
    _ensure_unique_email(patch["email"])

    user = User()
    _apply(user, patch)
    db.session.add(user)
    _commit("A user with this email already exists.")
    return user.to_dict()


def update_user(*, user_id: int, patch: dict) -> dict | None:
    user = db.session.get(User, user_id)
    if not user:
        return None

    if "email" in patch:
        patch["email"] = patch["email"].lower()
        _ensure_unique_email(patch["email"], exclude_id=user_id)

    _apply(user, patch)
    _commit("A user with this email already exists.")
    return user.to_dict()


def delete_user(*, user_id: int) -> bool:
    """False if missing; ConflictError while any sale is attributed to the user."""
    user = db.session.get(User, user_id)
    if not user:
        return False

    count = _sales_count(Sale.user_id, user_id)
    if count:
        raise ConflictError(
            f"Cannot delete a user with {count} sale(s); set status to Inactive instead."
        )

    db.session.delete(user)
    db.session.commit()
    return True