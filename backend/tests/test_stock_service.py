# Overview: Pytest coverage for the stock adjuster and capital-movement bookkeeping.

import pytest
from sqlalchemy.exc import IntegrityError

from creditpos.errors import NotFoundError, PartialSuccessError, ValidationError
from creditpos.extensions import db
from creditpos.models import CapitalMovement, CapitalMovementCategory, Product
from creditpos.services import stock_service


class TestAdjustStock:
    def test_restock_with_cost_records_capital_movement(self, db_session, make_product):
        """Stock 10 at cost 2.00, +5 at cost 3.00 -> stock 15 and a 15.00 RESTOCK movement."""
        product = make_product(name="Rice", stock=10, unit_cost_cents=200)

        adjustment = stock_service.adjust_stock(product.id, 5, 300)

        assert adjustment.previous_quantity == 10
        assert adjustment.new_quantity == 15
        assert db.session.get(Product, product.id).stock_quantity == 15
        assert db.session.get(Product, product.id).unit_cost_cents == 300

        movements = db.session.query(CapitalMovement).all()
        assert len(movements) == 1
        assert movements[0].id == adjustment.capital_movement_id
        assert movements[0].amount_cents == 1500
        assert movements[0].category == CapitalMovementCategory.RESTOCK
        assert movements[0].quantity == 5
        assert "Rice" in movements[0].description
        assert "+5" in movements[0].description

    def test_increase_without_cost_records_nothing(self, db_session, product):
        stock_service.adjust_stock(product.id, 3)
        assert db.session.get(Product, product.id).stock_quantity == 13
        assert db.session.query(CapitalMovement).count() == 0

    def test_decrease_never_records_capital_movement(self, db_session, product):
        adjustment = stock_service.adjust_stock(product.id, -4, 999)
        assert adjustment.new_quantity == 6
        assert adjustment.capital_movement_id is None
        assert db.session.query(CapitalMovement).count() == 0
        # cost only updates on increases
        assert db.session.get(Product, product.id).unit_cost_cents == 100

    def test_stock_may_go_negative(self, db_session, make_product):
        product = make_product(stock=1)
        adjustment = stock_service.adjust_stock(product.id, -3)
        assert adjustment.new_quantity == -2
        assert adjustment.oversold

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.adjust_stock("missing", 1)

    @pytest.mark.parametrize("delta", [0, 1.5, "abc", None, True])
    def test_invalid_delta(self, db_session, product, delta):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(product.id, delta)
        assert db.session.get(Product, product.id).stock_quantity == 10

    def test_failed_capital_movement_is_partial_success(self, db_session, product, monkeypatch):
        def _boom(**kwargs):
            raise IntegrityError("INSERT INTO capital_movements", {}, Exception("disk full"))

        monkeypatch.setattr(stock_service, "_record_capital_movement", _boom)

        with pytest.raises(PartialSuccessError) as exc_info:
            stock_service.adjust_stock(product.id, 5, 300)

        # Stock change is kept, not rolled back
        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_quantity == 15
        assert db.session.query(CapitalMovement).count() == 0
        assert exc_info.value.details["adjustment"]["new_quantity"] == 15


class TestRegisterProduct:
    def test_opening_stock_books_initial_investment(self, db_session):
        product = stock_service.register_product("Coffee", 900, unit_cost_cents=400, stock_quantity=12)

        assert product.stock_quantity == 12
        movement = db.session.query(CapitalMovement).one()
        assert movement.amount_cents == 4800
        assert movement.category == CapitalMovementCategory.RESTOCK
        assert movement.description.startswith("Initial investment: Coffee")

    def test_without_opening_stock(self, db_session):
        product = stock_service.register_product("Tea", 500)
        assert product.stock_quantity == 0
        assert db.session.query(CapitalMovement).count() == 0

    def test_name_required(self, db_session):
        with pytest.raises(ValidationError):
            stock_service.register_product("  ", 500)


class TestRecordExpense:
    def test_manual_expense_defaults_to_other(self, db_session):
        movement = stock_service.record_expense(12000, "Rent March")
        assert movement.category == CapitalMovementCategory.OTHER
        assert stock_service.list_capital_movements(CapitalMovementCategory.OTHER) == [movement]
        assert stock_service.list_capital_movements("RESTOCK") == []

    def test_invalid_category(self, db_session):
        with pytest.raises(ValidationError):
            stock_service.record_expense(100, "Misc", category="Reabastecimiento")


class TestProductMaintenance:
    def test_update_master_data(self, db_session, product):
        updated = stock_service.update_product(product.id, {"name": "Cola", "price_cents": 175, "barcode": "7701"})
        assert updated.name == "Cola"
        assert updated.price_cents == 175
        assert updated.barcode == "7701"
        assert updated.stock_quantity == 10

    def test_stock_is_not_editable(self, db_session, product):
        with pytest.raises(ValidationError):
            stock_service.update_product(product.id, {"stock_quantity": 99})
        assert db.session.get(Product, product.id).stock_quantity == 10

    def test_delete_keeps_restock_history(self, db_session, product):
        stock_service.adjust_stock(product.id, 2, 120)
        stock_service.delete_product(product.id)

        assert db.session.get(Product, product.id) is None
        movement = db.session.query(CapitalMovement).one()
        assert movement.product_id is None
        assert movement.amount_cents == 240

    def test_delete_refuses_sold_product(self, db_session, debtor, product, credit_sale):
        credit_sale(debtor, 300)
        with pytest.raises(ValidationError):
            stock_service.delete_product(product.id)

    def test_list_sorted_by_name(self, db_session, make_product):
        make_product(name="Water")
        make_product(name="Bread")
        assert [p.name for p in stock_service.list_products()] == ["Bread", "Water"]


class TestExpenseMaintenance:
    def test_update_manual_expense(self, db_session):
        movement = stock_service.record_expense(5000, "Electricity")
        updated = stock_service.update_expense(movement.id, {"amount_cents": 5500, "description": "Electricity (Feb)"})
        assert updated.amount_cents == 5500
        assert updated.description == "Electricity (Feb)"

    def test_delete_manual_expense(self, db_session):
        movement = stock_service.record_expense(5000, "Electricity")
        stock_service.delete_expense(movement.id)
        assert db.session.query(CapitalMovement).count() == 0

    def test_restock_movements_are_read_only(self, db_session, product):
        adjustment = stock_service.adjust_stock(product.id, 5, 300)
        with pytest.raises(ValidationError):
            stock_service.update_expense(adjustment.capital_movement_id, {"amount_cents": 1})
        with pytest.raises(ValidationError):
            stock_service.delete_expense(adjustment.capital_movement_id)
        assert db.session.query(CapitalMovement).count() == 1

    def test_unknown_expense(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.delete_expense("missing")
