# Overview: Page/limit handling shared by the listing endpoints.

from __future__ import annotations

from flask import current_app

from ..validation import ValidationError, to_int


def page_params(page=None, limit=None) -> tuple[int, int]:
    """Normalize raw page/limit values: page >= 1, 1 <= limit <= MAX_PAGE_SIZE."""
    default_limit = current_app.config.get("DEFAULT_PAGE_SIZE", 10)
    max_limit = current_app.config.get("MAX_PAGE_SIZE", 100)

    page = 1 if page in (None, "") else to_int(page, "page")
    limit = default_limit if limit in (None, "") else to_int(limit, "limit")
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1:
        raise ValidationError("limit must be >= 1")
    return page, min(limit, max_limit)


def paginate(query, page: int, limit: int) -> tuple[list, dict]:
    """Run a page of query; returns (rows, pagination block)."""
    total = query.order_by(None).count()
    total_pages = (total + limit - 1) // limit if total > 0 else 1
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return rows, {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
