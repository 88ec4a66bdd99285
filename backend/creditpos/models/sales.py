from __future__ import annotations

import enum

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ._ids import new_id


class SaleStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    CREDIT = "CREDIT"
    CANCELLED = "CANCELLED"


class Sale(db.Model):
    """
    Sale record.

    Line prices are captured at transaction time and are decoupled from the
    product's current price. pending = total_cents - amount_paid_cents.

    STATUS INVARIANT (non-cancelled sales):
    - COMPLETED <=> pending == 0
    - CREDIT    <=> pending > 0
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_client_status", "client_id", "status"),
        db.Index("ix_sales_status_occurred", "status", "occurred_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=new_id)

    # Absent for cash sales (no debt tracking)
    client_id = db.Column(db.String(36), db.ForeignKey("clients.id"), nullable=True, index=True)

    status = db.Column(
        db.Enum(SaleStatus, name="sale_status", native_enum=False, length=16),
        nullable=False,
        default=SaleStatus.COMPLETED,
        index=True,
    )

    total_cents = db.Column(db.Integer, nullable=False)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)

    # Business date; drives oldest-first payment allocation
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", backref=db.backref("sales", lazy=True))
    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        order_by="SaleLine.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    credit_payments = db.relationship(
        "CreditPayment",
        back_populates="sale",
        order_by="CreditPayment.occurred_at",
        cascade="all, delete-orphan",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def pending_cents(self) -> int:
        return self.total_cents - self.amount_paid_cents

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "client_id": self.client_id,
            "status": self.status.value,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "pending_cents": self.pending_cents,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """Individual line items on a sale."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "position", name="uq_sale_lines_sale_position"),
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.String(36), db.ForeignKey("sales.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.String(36), db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }


class CreditPayment(db.Model):
    """
    Portion of a client payment applied to one credit sale.

    One allocation produces one row per sale it touched. Rows go away with
    their sale when the sale is reversed.
    """
    __tablename__ = "credit_payments"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    sale_id = db.Column(db.String(36), db.ForeignKey("sales.id"), nullable=False, index=True)
    client_id = db.Column(db.String(36), db.ForeignKey("clients.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    operation_id = db.Column(db.String(64), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    sale = db.relationship("Sale", back_populates="credit_payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "client_id": self.client_id,
            "amount_cents": self.amount_cents,
            "operation_id": self.operation_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
