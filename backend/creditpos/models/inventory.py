from __future__ import annotations

import enum

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ._ids import new_id


class CapitalMovementCategory(str, enum.Enum):
    RESTOCK = "RESTOCK"
    OTHER = "OTHER"


class Product(db.Model):
    """
    Product master data.

    stock_quantity is a mutable counter owned by the stock adjuster. It may
    go negative: that is the oversold signal, not a constraint violation.
    unit_cost_cents is the last known acquisition cost.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_barcode", "barcode"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(128), nullable=True)
    barcode = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "barcode": self.barcode,
            "price_cents": self.price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "stock_quantity": self.stock_quantity,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CapitalMovement(db.Model):
    """
    Cash outflow record (expense / investment).

    Written as a side effect of a stock increase with a known unit cost, or
    entered manually. Category is a typed column; descriptions are free text
    for humans only.
    """
    __tablename__ = "capital_movements"
    __table_args__ = (
        db.Index("ix_capital_movements_category_occurred", "category", "occurred_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    category = db.Column(
        db.Enum(CapitalMovementCategory, name="capital_movement_category", native_enum=False, length=16),
        nullable=False,
        default=CapitalMovementCategory.OTHER,
        index=True,
    )

    # Set when the movement comes from a restock
    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=True, index=True)
    quantity = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("capital_movements", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "category": self.category.value,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "occurred_at": to_utc_z(self.occurred_at),
        }
