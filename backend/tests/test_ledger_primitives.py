# Overview: Pytest coverage for the pure pending/payment/status arithmetic.

from datetime import datetime
from types import SimpleNamespace

import pytest

from creditpos.errors import ValidationError
from creditpos.models import SaleStatus
from creditpos.services.ledger_primitives import (
    allocation_order,
    apply_payment,
    pending_of,
    status_for,
)


def _sale(total, paid, sale_id="s1", occurred_at=datetime(2026, 1, 1)):
    return SimpleNamespace(id=sale_id, total_cents=total, amount_paid_cents=paid, occurred_at=occurred_at)


class TestPendingOf:
    def test_pending_is_total_minus_paid(self):
        assert pending_of(_sale(10000, 2500)) == 7500

    def test_fully_paid_is_zero(self):
        assert pending_of(_sale(500, 500)) == 0

    def test_overpaid_record_is_an_input_error(self):
        with pytest.raises(ValidationError):
            pending_of(_sale(500, 501))

    def test_negative_paid_is_an_input_error(self):
        with pytest.raises(ValidationError):
            pending_of(_sale(500, -1))


class TestApplyPayment:
    def test_partial_payment_stays_credit(self):
        result = apply_payment(_sale(5000, 1000), 1500)
        assert result.applied_cents == 1500
        assert result.amount_paid_cents == 2500
        assert result.status == SaleStatus.CREDIT

    def test_exact_payment_completes(self):
        result = apply_payment(_sale(5000, 1000), 4000)
        assert result.amount_paid_cents == 5000
        assert result.status == SaleStatus.COMPLETED

    def test_never_overpays_a_single_sale(self):
        result = apply_payment(_sale(3000, 0), 4000)
        assert result.applied_cents == 3000
        assert result.amount_paid_cents == 3000
        assert result.status == SaleStatus.COMPLETED
        assert pending_of(_sale(3000, result.amount_paid_cents)) == 0

    def test_settled_sale_absorbs_nothing(self):
        result = apply_payment(_sale(3000, 3000), 100)
        assert result.applied_cents == 0
        assert result.status == SaleStatus.COMPLETED

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValidationError):
            apply_payment(_sale(3000, 0), amount)

    def test_input_sale_is_not_mutated(self):
        sale = _sale(3000, 0)
        apply_payment(sale, 1000)
        assert sale.amount_paid_cents == 0


def test_status_for():
    assert status_for(1000, 1000) == SaleStatus.COMPLETED
    assert status_for(1000, 999) == SaleStatus.CREDIT


def test_allocation_order_is_oldest_first_with_id_tiebreak():
    same_day = datetime(2026, 3, 1)
    sales = [
        _sale(100, 0, "c", same_day),
        _sale(100, 0, "z", datetime(2026, 1, 1)),
        _sale(100, 0, "a", same_day),
    ]
    assert [s.id for s in allocation_order(sales)] == ["z", "a", "c"]
