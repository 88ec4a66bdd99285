# Overview: Pytest coverage for sale creation/reversal and their stock and debt effects.

from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from creditpos.errors import NotFoundError, PersistenceError, ValidationError
from creditpos.extensions import db
from creditpos.models import CapitalMovement, Client, OperationRecord, Product, Sale, SaleStatus
from creditpos.services import payment_allocator, sale_lifecycle, stock_service
from creditpos.services.operations import STATUS_COMPLETED, STATUS_STARTED, get_operation


def _credit_request(debtor, product, quantity=2, price=500, paid=None, **extra):
    data = {
        "client_id": debtor.id if debtor else None,
        "status": "CREDIT",
        "occurred_at": "2026-02-01T10:00:00Z",
        "lines": [{"product_id": product.id, "quantity": quantity, "unit_price_cents": price}],
    }
    if paid is not None:
        data["amount_paid_cents"] = paid
    data.update(extra)
    return data


def _stock(product_id):
    return db.session.get(Product, product_id).stock_quantity


def _debt(client_id):
    return db.session.get(Client, client_id).current_debt_cents


class TestCreateSale:
    def test_cash_sale_decrements_stock_only(self, db_session, product):
        sale = sale_lifecycle.create_sale({
            "lines": [{"product_id": product.id, "quantity": 3, "unit_price_cents": 150}],
        })

        assert sale.status == SaleStatus.COMPLETED
        assert sale.total_cents == 450
        assert sale.amount_paid_cents == 450
        assert sale.client_id is None
        assert [line.quantity for line in sale.lines] == [3]
        assert _stock(product.id) == 7
        # Sales never book capital movements
        assert db.session.query(CapitalMovement).count() == 0

    def test_credit_sale_raises_debt_by_pending(self, db_session, product, debtor):
        sale = sale_lifecycle.create_sale(_credit_request(debtor, product, paid=300))

        assert sale.status == SaleStatus.CREDIT
        assert sale.total_cents == 1000
        assert sale.pending_cents == 700
        assert _stock(product.id) == 8
        assert _debt(debtor.id) == 700

    def test_credit_without_client_mutates_nothing(self, db_session, product):
        with pytest.raises(ValidationError):
            sale_lifecycle.create_sale(_credit_request(None, product))

        assert db.session.query(Sale).count() == 0
        assert _stock(product.id) == 10

    def test_completed_sale_must_be_fully_paid(self, db_session, product):
        with pytest.raises(ValidationError):
            sale_lifecycle.create_sale({
                "status": "COMPLETED",
                "amount_paid_cents": 100,
                "lines": [{"product_id": product.id, "quantity": 1, "unit_price_cents": 150}],
            })

    def test_credit_sale_must_leave_pending(self, db_session, product, debtor):
        with pytest.raises(ValidationError):
            sale_lifecycle.create_sale(_credit_request(debtor, product, paid=1000))

    @pytest.mark.parametrize("status", ["CANCELLED", "PAID"])
    def test_unsupported_status(self, db_session, product, debtor, status):
        with pytest.raises(ValidationError):
            sale_lifecycle.create_sale(_credit_request(debtor, product, status=status))

    @pytest.mark.parametrize("line", [
        {"quantity": 0, "unit_price_cents": 100},
        {"quantity": 1, "unit_price_cents": -1},
        {"quantity": 1.5, "unit_price_cents": 100},
    ])
    def test_bad_lines(self, db_session, product, line):
        line["product_id"] = product.id
        with pytest.raises(ValidationError):
            sale_lifecycle.create_sale({"lines": [line]})

    def test_empty_sale(self, db_session):
        with pytest.raises(ValidationError):
            sale_lifecycle.create_sale({"lines": []})

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            sale_lifecycle.create_sale({
                "lines": [{"product_id": "nope", "quantity": 1, "unit_price_cents": 100}],
            })

    def test_unknown_client(self, db_session, product, debtor):
        request = _credit_request(debtor, product)
        request["client_id"] = "ghost"
        with pytest.raises(NotFoundError):
            sale_lifecycle.create_sale(request)
        assert _stock(product.id) == 10

    def test_oversell_is_allowed(self, db_session, make_product):
        scarce = make_product(name="Batteries", stock=1)
        sale = sale_lifecycle.create_sale({
            "lines": [{"product_id": scarce.id, "quantity": 4, "unit_price_cents": 200}],
        })
        assert _stock(scarce.id) == -3
        assert sale_lifecycle.oversold_products(sale) == [
            {"product_id": scarce.id, "name": "Batteries", "stock_quantity": -3},
        ]

    def test_items_alias(self, db_session, product):
        sale = sale_lifecycle.create_sale({
            "items": [{"product_id": product.id, "quantity": 1, "unit_price_cents": 150}],
        })
        assert sale.total_cents == 150


class TestReverseSale:
    def test_reverse_restores_stock_and_debt(self, db_session, product, make_debtor):
        debtor = make_debtor(debt_cents=2500)
        sale = sale_lifecycle.create_sale(_credit_request(debtor, product, quantity=3, price=400))
        assert _debt(debtor.id) == 3700
        assert _stock(product.id) == 7

        sale_lifecycle.reverse_sale(sale.id)

        assert _stock(product.id) == 10
        assert _debt(debtor.id) == 2500
        assert db.session.get(Sale, sale.id) is None

    def test_reverse_releases_only_pending(self, db_session, product, debtor, credit_sale):
        sale = credit_sale(debtor, 10000)
        payment_allocator.allocate_payment(debtor.id, 4000, [sale.id])
        assert _debt(debtor.id) == 6000

        sale_lifecycle.reverse_sale(sale.id)

        assert _debt(debtor.id) == 0

    def test_reverse_cash_sale_leaves_debt_alone(self, db_session, product, make_debtor):
        debtor = make_debtor(debt_cents=900)
        sale = sale_lifecycle.create_sale({
            "client_id": debtor.id,
            "lines": [{"product_id": product.id, "quantity": 2, "unit_price_cents": 150}],
        })
        sale_lifecycle.reverse_sale(sale.id)
        assert _debt(debtor.id) == 900
        assert _stock(product.id) == 10

    def test_reverse_is_clamped_at_zero(self, db_session, product, debtor, credit_sale):
        sale = credit_sale(debtor, 800)
        debtor_row = db.session.get(Client, debtor.id)
        debtor_row.current_debt_cents = 300
        db.session.commit()

        sale_lifecycle.reverse_sale(sale.id)
        assert _debt(debtor.id) == 0

    def test_reverse_unknown_sale(self, db_session):
        with pytest.raises(NotFoundError):
            sale_lifecycle.reverse_sale("missing")


class TestResumableOperations:
    def test_failed_stock_step_leaves_sale_and_resumes(self, db_session, product, debtor, monkeypatch):
        real_delta = stock_service.apply_stock_delta

        def _fail(*args, **kwargs):
            raise IntegrityError("UPDATE products", {}, Exception("connection lost"))

        monkeypatch.setattr(stock_service, "apply_stock_delta", _fail)
        with pytest.raises(PersistenceError):
            sale_lifecycle.create_sale(_credit_request(debtor, product), operation_id="op-create-1")

        # Sale row committed, later steps did not run
        assert db.session.query(Sale).count() == 1
        assert _stock(product.id) == 10
        assert _debt(debtor.id) == 0
        record = db.session.query(OperationRecord).filter_by(operation_id="op-create-1").one()
        assert record.status == STATUS_STARTED
        assert record.cursor == 1

        monkeypatch.setattr(stock_service, "apply_stock_delta", real_delta)
        sale = sale_lifecycle.create_sale(_credit_request(debtor, product), operation_id="op-create-1")

        assert sale.id == record.entity_id
        assert db.session.query(Sale).count() == 1
        assert _stock(product.id) == 8
        assert _debt(debtor.id) == 1000
        db.session.expire_all()
        assert db.session.query(OperationRecord).one().status == STATUS_COMPLETED

    def test_replayed_create_is_not_reapplied(self, db_session, product, debtor):
        first = sale_lifecycle.create_sale(_credit_request(debtor, product), operation_id="op-create-2")
        second = sale_lifecycle.create_sale(_credit_request(debtor, product), operation_id="op-create-2")

        assert first.id == second.id
        assert db.session.query(Sale).count() == 1
        assert _stock(product.id) == 8
        assert _debt(debtor.id) == 1000

    def test_replayed_reverse_is_not_reapplied(self, db_session, product, debtor, credit_sale):
        sale = credit_sale(debtor, 500)
        sale_id = sale.id
        sale_lifecycle.reverse_sale(sale_id, operation_id="op-rev-1")
        sale_lifecycle.reverse_sale(sale_id, operation_id="op-rev-1")

        assert _stock(product.id) == 10
        assert _debt(debtor.id) == 0

    def test_operation_id_kind_mismatch(self, db_session, product, debtor, credit_sale):
        sale = credit_sale(debtor, 500)
        sale_lifecycle.reverse_sale(sale.id, operation_id="op-shared")
        with pytest.raises(ValidationError):
            sale_lifecycle.create_sale(_credit_request(debtor, product), operation_id="op-shared")

    def test_replay_with_different_lines_rejected(self, db_session, product, debtor):
        sale_lifecycle.create_sale(_credit_request(debtor, product), operation_id="op-create-3")

        with pytest.raises(ValidationError):
            sale_lifecycle.create_sale(_credit_request(debtor, product, quantity=5), operation_id="op-create-3")

        assert db.session.query(Sale).count() == 1
        assert _stock(product.id) == 8
        assert _debt(debtor.id) == 1000

    def test_replay_without_date_matches(self, db_session, product):
        request = {"lines": [{"product_id": product.id, "quantity": 1, "unit_price_cents": 150}]}
        first = sale_lifecycle.create_sale(request, operation_id="op-create-4")
        second = sale_lifecycle.create_sale(request, operation_id="op-create-4")

        assert first.id == second.id
        assert _stock(product.id) == 9

    def test_invalid_request_leaves_operation_id_unused(self, db_session, product):
        with pytest.raises(ValidationError):
            sale_lifecycle.create_sale(_credit_request(None, product), operation_id="op-create-5")
        assert get_operation("op-create-5") is None

    def test_reverse_of_missing_sale_leaves_operation_id_unused(self, db_session):
        with pytest.raises(NotFoundError):
            sale_lifecycle.reverse_sale("missing", operation_id="op-rev-2")
        assert get_operation("op-rev-2") is None

    def test_reverse_operation_id_bound_to_sale(self, db_session, debtor, credit_sale):
        first = credit_sale(debtor, 500)
        second = credit_sale(debtor, 700)
        sale_lifecycle.reverse_sale(first.id, operation_id="op-rev-3")

        with pytest.raises(ValidationError):
            sale_lifecycle.reverse_sale(second.id, operation_id="op-rev-3")
        assert db.session.get(Sale, second.id) is not None


class TestReads:
    def test_open_credit_sales_oldest_first(self, db_session, debtor, credit_sale):
        newer = credit_sale(debtor, 300, occurred_at=datetime(2026, 3, 1))
        older = credit_sale(debtor, 200, occurred_at=datetime(2026, 1, 1))
        settled = credit_sale(debtor, 100, occurred_at=datetime(2025, 12, 1))
        payment_allocator.allocate_payment(debtor.id, 100, [settled.id])

        open_ids = [s.id for s in sale_lifecycle.list_open_credit_sales(debtor.id)]
        assert open_ids == [older.id, newer.id]
        assert len(sale_lifecycle.list_sales_by_client(debtor.id)) == 3
        assert [s.id for s in sale_lifecycle.list_sales_by_status("COMPLETED")] == [settled.id]
