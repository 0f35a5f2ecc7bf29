from __future__ import annotations

from ..extensions import db
from nexo.time_utils import to_utc_z

KIND_PRODUCT = "Product"
KIND_SERVICE = "Service"
PRODUCT_KINDS = {KIND_PRODUCT, KIND_SERVICE}

STATUS_ACTIVE = "Active"
STATUS_INACTIVE = "Inactive"
PRODUCT_STATUSES = {STATUS_ACTIVE, STATUS_INACTIVE}


class Product(db.Model):
    """
    Catalog entry: a stock-tracked Product or an untracked Service.

    STOCK: Product-kind rows carry a non-negative integer stock.
    Service-kind rows always have stock=NULL and are skipped by every
    availability check and stock movement.

    Only the sale engine (services/stock_service.py) moves stock after
    creation, always inside the transaction that changes the sale.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.CheckConstraint("stock IS NULL OR stock >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_kind_status", "kind", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Unique case-insensitively (see uq_products_name_lower below)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.String(500), nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=False)
    stock = db.Column(db.Integer, nullable=True)

    kind = db.Column(db.String(16), nullable=False, default=KIND_PRODUCT)
    status = db.Column(db.String(16), nullable=False, default=STATUS_ACTIVE, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def tracks_stock(self) -> bool:
        return self.kind == KIND_PRODUCT

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} kind={self.kind} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price": str(self.price) if self.price is not None else None,
            "stock": self.stock,
            "kind": self.kind,
            "status": self.status,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": str(self.price) if self.price is not None else None,
            "kind": self.kind,
        }


db.Index("uq_products_name_lower", db.func.lower(Product.name), unique=True)
