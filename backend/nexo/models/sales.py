from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from nexo.time_utils import to_utc_z

SALE_PENDING = "Pending"
SALE_COMPLETED = "Completed"
SALE_CANCELLED = "Cancelled"
SALE_STATUSES = (SALE_PENDING, SALE_COMPLETED, SALE_CANCELLED)


class Sale(db.Model):
    """
    Sale aggregate: one customer order with its lines.

    TOTAL: total is derived. Every line mutation recomputes it as
    sum(quantity * unit_price) inside the same transaction.

    STOCK: Product-kind stock is decremented while the sale is Completed
    and given back when it leaves Completed or is deleted. See
    services/stock_service.py for the delta rules.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.CheckConstraint("total >= 0", name="ck_sales_total_non_negative"),
        # Listing: newest first, filtered by status/customer/user
        db.Index("ix_sales_status_occurred", "status", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # When the sale happened (client supplied or server now)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # Lifecycle status
    status = db.Column(db.String(16), nullable=False, default=SALE_PENDING, index=True)

    total = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    user = db.relationship("User", backref=db.backref("sales", lazy=True))
    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
        passive_deletes=True,
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} status={self.status} total={self.total}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "status": self.status,
            "total": str(self.total) if self.total is not None else None,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "customer": self.customer.to_summary() if self.customer else None,
            "user": self.user.to_summary() if self.user else None,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """Individual line items on a sale; unit_price is frozen at insert time."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_positive"),
        db.CheckConstraint("unit_price >= 0", name="ck_sale_lines_unit_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="lines")
    product = db.relationship("Product")
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.quantity) * Decimal(self.unit_price)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "line_total": str(self.line_total),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
