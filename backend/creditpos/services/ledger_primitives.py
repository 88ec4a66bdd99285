# Overview: Pure pending/payment/status arithmetic for a single sale record.

"""
Ledger primitives.

Every function here is pure: it reads total_cents / amount_paid_cents /
occurred_at / id from whatever sale-like object it is given and returns new
values without touching the session. The services persist the results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from ..errors import ValidationError
from ..models import SaleStatus


@dataclass(frozen=True)
class PaymentApplication:
    sale_id: str | None
    applied_cents: int
    amount_paid_cents: int
    status: SaleStatus

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "applied_cents": self.applied_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "status": self.status.value,
        }


def pending_of(sale) -> int:
    """total - amount paid; an overpaid or negative record is an input error."""
    total = sale.total_cents
    paid = sale.amount_paid_cents
    if paid < 0:
        raise ValidationError(
            "Amount paid cannot be negative",
            details={"sale_id": getattr(sale, "id", None), "amount_paid_cents": paid},
        )
    if paid > total:
        raise ValidationError(
            "Amount paid exceeds sale total",
            details={"sale_id": getattr(sale, "id", None), "total_cents": total, "amount_paid_cents": paid},
        )
    return total - paid


def status_for(total_cents: int, amount_paid_cents: int) -> SaleStatus:
    if amount_paid_cents >= total_cents:
        return SaleStatus.COMPLETED
    return SaleStatus.CREDIT


def apply_payment(sale, amount_cents: int) -> PaymentApplication:
    """
    Apply up to amount_cents to one sale.

    Never overpays: the applied amount is min(amount, pending).
    """
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be positive", details={"amount_cents": amount_cents})

    applied = min(amount_cents, pending_of(sale))
    new_paid = sale.amount_paid_cents + applied
    return PaymentApplication(
        sale_id=getattr(sale, "id", None),
        applied_cents=applied,
        amount_paid_cents=new_paid,
        status=status_for(sale.total_cents, new_paid),
    )


def allocation_order(sales: Iterable) -> list:
    """Oldest debt first; sale id breaks ties so the order is total."""
    return sorted(sales, key=lambda s: (s.occurred_at, s.id))
