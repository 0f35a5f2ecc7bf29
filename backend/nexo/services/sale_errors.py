# Overview: Error family raised by the sale engine; routes map kind -> HTTP status.

from __future__ import annotations


class SaleError(Exception):
    """Raised for sale operation errors."""
    kind = "SaleError"
    http_status = 400

    def __init__(self, message: str, details: list | None = None):
        super().__init__(message)
        self.details = list(details or [])

    def to_dict(self) -> dict:
        return {"error": str(self), "kind": self.kind, "details": self.details}


class SaleValidationError(SaleError):
    """Malformed numeric or required fields."""
    kind = "ValidationError"


class ReferenceNotFound(SaleError):
    """Customer, user or product id does not resolve."""
    kind = "ReferenceNotFound"


class InsufficientStock(SaleError):
    """
    Requested quantity exceeds stock for one or more Product-kind entries.

    details: one dict per short product with available/requested/shortfall.
    """
    kind = "InsufficientStock"


class SaleNotModifiable(SaleError):
    """Line mutation attempted on a Completed or Cancelled sale."""
    kind = "SaleNotModifiable"


class InvalidStatus(SaleError):
    kind = "InvalidStatus"


class SaleNotFound(SaleError):
    kind = "SaleNotFound"
    http_status = 404


class LineNotFound(SaleError):
    kind = "LineNotFound"
    http_status = 404
