# Overview: Stock adjuster; signed stock deltas, restock capital-movement bookkeeping, product and expense maintenance.

"""
Stock Adjuster

INVARIANTS:
- Product.stock_quantity changes only through apply_stock_delta.
- A positive delta with a known unit cost also books a RESTOCK capital
  movement of delta * unit_cost. That booking is a separate write: if it
  fails, the stock change stands and PartialSuccessError is raised.
- Negative deltas (sales, consumption) never create capital movements.
- Stock may go negative. That is reported (oversold) but never refused.
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from flask import current_app

from ..errors import NotFoundError, PartialSuccessError, PersistenceError, ValidationError
from ..extensions import db
from ..models import CapitalMovement, CapitalMovementCategory, Product, SaleLine
from ..time_utils import normalize_datetime
from ..validation import require_int, require_text
from .concurrency import lock_for_update, run_step


@dataclass(frozen=True)
class StockAdjustment:
    product_id: str
    product_name: str
    delta_quantity: int
    previous_quantity: int
    new_quantity: int
    capital_movement_id: str | None = None

    @property
    def oversold(self) -> bool:
        return self.new_quantity < 0

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "delta_quantity": self.delta_quantity,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "oversold": self.oversold,
            "capital_movement_id": self.capital_movement_id,
        }


def get_product(product_id: str, *, lock: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def apply_stock_delta(product_id: str, delta_quantity: int, unit_cost_cents: int | None = None) -> StockAdjustment:
    """
    Stage stock + delta on the session without committing.

    The caller owns the commit (run_step or an operation journal step).
    """
    product = get_product(product_id, lock=True)
    previous = product.stock_quantity
    product.stock_quantity = previous + delta_quantity
    if delta_quantity > 0 and unit_cost_cents is not None:
        product.unit_cost_cents = unit_cost_cents

    return StockAdjustment(
        product_id=product.id,
        product_name=product.name,
        delta_quantity=delta_quantity,
        previous_quantity=previous,
        new_quantity=product.stock_quantity,
    )


def warn_if_oversold(adjustment: StockAdjustment) -> None:
    if adjustment.oversold:
        current_app.logger.warning(
            "Product %s (%s) oversold: stock went from %s to %s",
            adjustment.product_id,
            adjustment.product_name,
            adjustment.previous_quantity,
            adjustment.new_quantity,
        )


def _record_capital_movement(
    *,
    amount_cents: int,
    description: str,
    category: CapitalMovementCategory,
    product_id: str | None = None,
    quantity: int | None = None,
    occurred_at=None,
) -> str:
    movement = CapitalMovement(
        amount_cents=amount_cents,
        description=description,
        category=category,
        product_id=product_id,
        quantity=quantity,
        occurred_at=normalize_datetime(occurred_at),
    )
    db.session.add(movement)
    db.session.flush()
    return movement.id


def adjust_stock(
    product_id: str,
    delta_quantity: int,
    unit_cost_cents: int | None = None,
    *,
    description: str | None = None,
) -> StockAdjustment:
    """
    Apply a signed stock delta to one product.

    Args:
        product_id: Product to adjust
        delta_quantity: Non-zero signed quantity
        unit_cost_cents: Acquisition cost per unit; only used when delta > 0
        description: Override for the capital movement description

    Returns:
        StockAdjustment (capital_movement_id set when a movement was booked)

    Raises:
        ValidationError: delta is zero or not an integer, cost negative
        NotFoundError: product does not exist
        PersistenceError: the stock write failed
        PartialSuccessError: stock committed, capital movement not recorded
    """
    delta = require_int(delta_quantity, "delta_quantity")
    if delta == 0:
        raise ValidationError("delta_quantity must be non-zero")
    unit_cost = None
    if unit_cost_cents is not None:
        unit_cost = require_int(unit_cost_cents, "unit_cost_cents", minimum=0)

    adjustment = run_step(
        lambda: apply_stock_delta(product_id, delta, unit_cost),
        step=f"stock adjustment for product {product_id}",
    )
    warn_if_oversold(adjustment)

    if delta < 0 or unit_cost is None:
        return adjustment

    movement_description = description or f"Restock: {adjustment.product_name} (+{delta} units)"
    try:
        movement_id = run_step(
            lambda: _record_capital_movement(
                amount_cents=delta * unit_cost,
                description=movement_description,
                category=CapitalMovementCategory.RESTOCK,
                product_id=adjustment.product_id,
                quantity=delta,
            ),
            step=f"capital movement for product {product_id}",
        )
    except PersistenceError as exc:
        current_app.logger.warning(
            "Stock for product %s updated to %s but the restock capital movement was not recorded: %s",
            adjustment.product_id,
            adjustment.new_quantity,
            exc,
        )
        raise PartialSuccessError(
            "Stock updated but capital movement was not recorded",
            details={"adjustment": adjustment.to_dict(), "error": str(exc)},
        ) from exc

    return replace(adjustment, capital_movement_id=movement_id)


def register_product(
    name: str,
    price_cents: int,
    unit_cost_cents: int | None = None,
    stock_quantity: int = 0,
    category: str | None = None,
    barcode: str | None = None,
) -> Product:
    """
    Create a product and book its opening stock.

    The product is inserted at zero stock; any opening quantity goes through
    adjust_stock so the initial investment lands in the capital movements
    like any other restock.
    """
    product_name = require_text(name, "name")
    price = require_int(price_cents, "price_cents", minimum=0)
    cost = None if unit_cost_cents is None else require_int(unit_cost_cents, "unit_cost_cents", minimum=0)
    opening = require_int(stock_quantity, "stock_quantity", minimum=0)

    def _insert():
        product = Product(
            name=product_name,
            price_cents=price,
            unit_cost_cents=cost,
            stock_quantity=0,
            category=category,
            barcode=barcode,
        )
        db.session.add(product)
        db.session.flush()
        return product.id

    product_id = run_step(_insert, step="product registration")

    if opening > 0:
        adjust_stock(
            product_id,
            opening,
            cost,
            description=f"Initial investment: {product_name} ({opening} units)",
        )

    return get_product(product_id)


def record_expense(
    amount_cents: int,
    description: str,
    category: CapitalMovementCategory | str = CapitalMovementCategory.OTHER,
    occurred_at=None,
) -> CapitalMovement:
    """Manual capital movement (rent, supplies, ...)."""
    amount = require_int(amount_cents, "amount_cents", minimum=1)
    text = require_text(description, "description")
    try:
        category_value = CapitalMovementCategory(category)
    except ValueError:
        raise ValidationError(
            f"Invalid category: {category}. Must be one of {[c.value for c in CapitalMovementCategory]}"
        )
    try:
        when = normalize_datetime(occurred_at)
    except ValueError:
        raise ValidationError("occurred_at must be an ISO-8601 datetime")

    movement_id = run_step(
        lambda: _record_capital_movement(
            amount_cents=amount,
            description=text,
            category=category_value,
            occurred_at=when,
        ),
        step="capital movement",
    )
    return db.session.get(CapitalMovement, movement_id)


def list_capital_movements(category: CapitalMovementCategory | str | None = None) -> list[CapitalMovement]:
    query = db.session.query(CapitalMovement)
    if category is not None:
        query = query.filter(CapitalMovement.category == CapitalMovementCategory(category))
    return query.order_by(CapitalMovement.occurred_at.desc(), CapitalMovement.id).all()


# =============================================================================
# PRODUCT MAINTENANCE
# =============================================================================

_PRODUCT_FIELDS = {"name", "price_cents", "unit_cost_cents", "category", "barcode"}


def list_products() -> list[Product]:
    return db.session.query(Product).order_by(Product.name, Product.id).all()


def update_product(product_id: str, changes: dict) -> Product:
    """
    Edit product master data.

    stock_quantity is not accepted: stock only moves through adjust_stock.
    """
    unknown = sorted(set(changes) - _PRODUCT_FIELDS)
    if unknown:
        raise ValidationError(f"Fields not editable: {', '.join(unknown)}")

    values = {}
    if "name" in changes:
        values["name"] = require_text(changes["name"], "name")
    if "price_cents" in changes:
        values["price_cents"] = require_int(changes["price_cents"], "price_cents", minimum=0)
    if "unit_cost_cents" in changes:
        cost = changes["unit_cost_cents"]
        values["unit_cost_cents"] = None if cost is None else require_int(cost, "unit_cost_cents", minimum=0)
    for key in ("category", "barcode"):
        if key in changes:
            value = changes[key]
            values[key] = require_text(value, key, max_length=128 if key == "category" else 64) if value else None

    def _update():
        product = get_product(product_id, lock=True)
        for key, value in values.items():
            setattr(product, key, value)

    run_step(_update, step=f"product {product_id} update")
    return get_product(product_id)


def delete_product(product_id: str) -> None:
    """
    Delete a product that no sale line references.

    Capital movements keep their amount and description; the ORM clears
    their product link.
    """
    def _delete():
        product = get_product(product_id, lock=True)
        referenced = db.session.query(SaleLine.id).filter(SaleLine.product_id == product_id).first()
        if referenced is not None:
            raise ValidationError(
                "Product appears on recorded sales",
                details={"product_id": product_id},
            )
        db.session.delete(product)

    run_step(_delete, step=f"product {product_id} deletion")
    current_app.logger.info("Product %s deleted", product_id)


# =============================================================================
# MANUAL EXPENSES
# =============================================================================

def _get_manual_movement(movement_id: str, *, lock: bool = False) -> CapitalMovement:
    query = db.session.query(CapitalMovement).filter_by(id=movement_id)
    if lock:
        query = lock_for_update(query)
    movement = query.first()
    if movement is None:
        raise NotFoundError(f"Capital movement {movement_id} not found", details={"movement_id": movement_id})
    if movement.category != CapitalMovementCategory.OTHER:
        raise ValidationError(
            "Restock movements follow stock changes and cannot be edited",
            details={"movement_id": movement_id, "category": movement.category.value},
        )
    return movement


def update_expense(movement_id: str, changes: dict) -> CapitalMovement:
    """Edit amount, description or date of a manual (OTHER) capital movement."""
    unknown = sorted(set(changes) - {"amount_cents", "description", "occurred_at"})
    if unknown:
        raise ValidationError(f"Fields not editable: {', '.join(unknown)}")

    values = {}
    if "amount_cents" in changes:
        values["amount_cents"] = require_int(changes["amount_cents"], "amount_cents", minimum=1)
    if "description" in changes:
        values["description"] = require_text(changes["description"], "description")
    if "occurred_at" in changes:
        try:
            values["occurred_at"] = normalize_datetime(changes["occurred_at"])
        except ValueError:
            raise ValidationError("occurred_at must be an ISO-8601 datetime")

    def _update():
        movement = _get_manual_movement(movement_id, lock=True)
        for key, value in values.items():
            setattr(movement, key, value)

    run_step(_update, step=f"capital movement {movement_id} update")
    return db.session.get(CapitalMovement, movement_id)


def delete_expense(movement_id: str) -> None:
    """Delete a manual (OTHER) capital movement."""
    run_step(
        lambda: db.session.delete(_get_manual_movement(movement_id, lock=True)),
        step=f"capital movement {movement_id} deletion",
    )
