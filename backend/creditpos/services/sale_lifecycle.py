# Overview: Sale lifecycle manager; creation and reversal of sales with their stock and debt effects.

"""
Sale Lifecycle Manager

STATE MACHINE:
    {unsaved} -> COMPLETED | CREDIT -> (reversed / deleted)
CANCELLED is a storable status but nothing here transitions into it.

CREATE (each step commits on its own, in this order):
    1. persist the sale record
    2. stock -= quantity for every line (no capital movement)
    3. CREDIT only: client debt += pending

REVERSE (in this order):
    1. stock += quantity for every line
    2. CREDIT with a client: client debt -= pending (what is still owed,
       not the total)
    3. delete the sale last

Neither sequence is atomic as a whole. A raised error after the first step
means "possibly partially applied"; pass an operation_id to make retries
resume instead of double-applying.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleLine, SaleStatus
from ..models._ids import new_id
from ..time_utils import normalize_datetime, to_utc_z
from ..validation import require_int
from . import debt_service, stock_service
from .concurrency import lock_for_update
from .ledger_primitives import pending_of
from .operations import (
    KIND_CREATE_SALE,
    KIND_REVERSE_SALE,
    STATUS_COMPLETED,
    OperationJournal,
    find_operation,
    request_fingerprint,
)


# =============================================================================
# REQUEST TYPES
# =============================================================================

@dataclass
class SaleLineRequest:
    product_id: str
    quantity: int
    unit_price_cents: int


@dataclass
class SaleRequest:
    lines: list[SaleLineRequest] = field(default_factory=list)
    status: SaleStatus | str = SaleStatus.COMPLETED
    client_id: str | None = None
    amount_paid_cents: int | None = None
    occurred_at: datetime | str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "SaleRequest":
        if not isinstance(data, dict):
            raise ValidationError("Sale request must be an object")
        raw_lines = data.get("lines")
        if raw_lines is None:
            raw_lines = data.get("items")
        if not isinstance(raw_lines, list):
            raise ValidationError("lines must be a list")

        lines = []
        for index, raw in enumerate(raw_lines):
            if not isinstance(raw, dict):
                raise ValidationError(f"Line {index + 1} must be an object")
            lines.append(SaleLineRequest(
                product_id=raw.get("product_id"),
                quantity=raw.get("quantity"),
                unit_price_cents=raw.get("unit_price_cents"),
            ))

        return cls(
            lines=lines,
            status=data.get("status") or SaleStatus.COMPLETED,
            client_id=data.get("client_id") or None,
            amount_paid_cents=data.get("amount_paid_cents"),
            occurred_at=data.get("occurred_at"),
        )


@dataclass(frozen=True)
class _ValidatedSale:
    status: SaleStatus
    client_id: str | None
    lines: list[tuple[str, str, int, int]]  # product_id, product_name, quantity, unit_price_cents
    total_cents: int
    amount_paid_cents: int
    occurred_at: datetime


# =============================================================================
# READS
# =============================================================================

def get_sale(sale_id: str, *, lock: bool = False) -> Sale:
    query = db.session.query(Sale).filter_by(id=sale_id)
    if lock:
        query = lock_for_update(query)
    sale = query.first()
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def list_sales_by_client(client_id: str, status: SaleStatus | str | None = None) -> list[Sale]:
    query = db.session.query(Sale).filter(Sale.client_id == client_id)
    if status is not None:
        query = query.filter(Sale.status == SaleStatus(status))
    return query.order_by(Sale.occurred_at.desc(), Sale.id).all()


def list_sales_by_status(status: SaleStatus | str) -> list[Sale]:
    return (
        db.session.query(Sale)
        .filter(Sale.status == SaleStatus(status))
        .order_by(Sale.occurred_at.desc(), Sale.id)
        .all()
    )


def list_open_credit_sales(client_id: str) -> list[Sale]:
    """CREDIT sales of a client that still have something pending, oldest first."""
    return (
        db.session.query(Sale)
        .filter(
            Sale.client_id == client_id,
            Sale.status == SaleStatus.CREDIT,
            Sale.total_cents > Sale.amount_paid_cents,
        )
        .order_by(Sale.occurred_at, Sale.id)
        .all()
    )


# =============================================================================
# VALIDATION
# =============================================================================

def _validate_request(request: SaleRequest) -> _ValidatedSale:
    try:
        status = SaleStatus(request.status)
    except ValueError:
        raise ValidationError(
            f"Invalid status: {request.status}. Must be one of {[SaleStatus.COMPLETED.value, SaleStatus.CREDIT.value]}"
        )
    if status == SaleStatus.CANCELLED:
        raise ValidationError("A sale cannot be created as CANCELLED")

    if status == SaleStatus.CREDIT and not request.client_id:
        raise ValidationError("Credit sales require a client")

    if not request.lines:
        raise ValidationError("A sale needs at least one line")

    parsed = []
    for index, line in enumerate(request.lines, start=1):
        if not isinstance(line.product_id, str) or not line.product_id:
            raise ValidationError(f"Line {index}: product_id required")
        quantity = require_int(line.quantity, f"lines[{index}].quantity", minimum=1)
        price = require_int(line.unit_price_cents, f"lines[{index}].unit_price_cents", minimum=0)
        parsed.append((line.product_id, quantity, price))

    total = sum(quantity * price for _, quantity, price in parsed)

    if status == SaleStatus.COMPLETED:
        if request.amount_paid_cents is None:
            paid = total
        else:
            paid = require_int(request.amount_paid_cents, "amount_paid_cents", minimum=0)
            if paid != total:
                raise ValidationError(
                    "A COMPLETED sale must be fully paid",
                    details={"total_cents": total, "amount_paid_cents": paid},
                )
    else:
        paid = 0
        if request.amount_paid_cents is not None:
            paid = require_int(request.amount_paid_cents, "amount_paid_cents", minimum=0)
        if paid >= total:
            raise ValidationError(
                "A CREDIT sale must leave a pending balance",
                details={"total_cents": total, "amount_paid_cents": paid},
            )

    try:
        occurred_at = normalize_datetime(request.occurred_at)
    except ValueError:
        raise ValidationError("occurred_at must be an ISO-8601 datetime")

    product_ids = {product_id for product_id, _, _ in parsed}
    products = {
        p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    }
    missing = sorted(product_ids - products.keys())
    if missing:
        raise NotFoundError("Product not found", details={"product_ids": missing})

    if request.client_id:
        debt_service.get_client(request.client_id)

    return _ValidatedSale(
        status=status,
        client_id=request.client_id,
        lines=[
            (product_id, products[product_id].name, quantity, price)
            for product_id, quantity, price in parsed
        ],
        total_cents=total,
        amount_paid_cents=paid,
        occurred_at=occurred_at,
    )


def _sale_fingerprint(request: SaleRequest, validated: _ValidatedSale) -> str:
    """A defaulted occurred_at ("now") is left out so retries of the same request match."""
    return request_fingerprint({
        "status": validated.status.value,
        "client_id": validated.client_id,
        "lines": [
            [product_id, quantity, price]
            for product_id, _, quantity, price in validated.lines
        ],
        "amount_paid_cents": validated.amount_paid_cents,
        "occurred_at": to_utc_z(validated.occurred_at) if request.occurred_at is not None else None,
    })


def find_stock_shortfalls(lines) -> list[dict]:
    """
    Lines whose requested quantity exceeds current stock.

    Non-fatal: sales are allowed to oversell. lines are (product_id, quantity)
    pairs.
    """
    requested: dict[str, int] = {}
    for product_id, quantity in lines:
        requested[product_id] = requested.get(product_id, 0) + quantity

    if not requested:
        return []

    on_hand = {
        p.id: p.stock_quantity
        for p in db.session.query(Product).filter(Product.id.in_(requested.keys())).all()
    }
    shortfalls = []
    for product_id, quantity in requested.items():
        stock = on_hand.get(product_id)
        if stock is not None and quantity > stock:
            shortfalls.append({
                "product_id": product_id,
                "requested_quantity": quantity,
                "on_hand": stock,
            })
    return shortfalls


# =============================================================================
# CREATE
# =============================================================================

def create_sale(request: SaleRequest | dict, operation_id: str | None = None) -> Sale:
    """
    Create a sale and apply its stock and debt effects.

    Validation happens before any write; a rejected request mutates nothing.

    Returns:
        The persisted Sale

    Raises:
        ValidationError: bad shape (e.g. CREDIT without client), or
            operation_id reused for a different request
        NotFoundError: unknown product or client
        PersistenceError / PartialSuccessError: a step failed; earlier steps stay
    """
    if isinstance(request, dict):
        request = SaleRequest.from_dict(request)

    validated = _validate_request(request)

    journal = OperationJournal.open(
        KIND_CREATE_SALE,
        operation_id,
        request_hash=_sale_fingerprint(request, validated),
        entity_id=new_id(),
    )
    sale_id = journal.entity_id
    if journal.completed:
        return get_sale(sale_id)

    if journal.cursor == 0:
        for shortfall in find_stock_shortfalls(
            [(product_id, quantity) for product_id, _, quantity, _ in validated.lines]
        ):
            current_app.logger.warning(
                "Sale %s oversells product %s: requested %s, on hand %s",
                sale_id,
                shortfall["product_id"],
                shortfall["requested_quantity"],
                shortfall["on_hand"],
            )

    def _insert_sale():
        sale = Sale(
            id=sale_id,
            client_id=validated.client_id,
            status=validated.status,
            total_cents=validated.total_cents,
            amount_paid_cents=validated.amount_paid_cents,
            occurred_at=validated.occurred_at,
        )
        for position, (product_id, product_name, quantity, price) in enumerate(validated.lines, start=1):
            sale.lines.append(SaleLine(
                position=position,
                product_id=product_id,
                product_name=product_name,
                quantity=quantity,
                unit_price_cents=price,
                line_total_cents=quantity * price,
            ))
        db.session.add(sale)
        db.session.flush()

    is_credit = validated.status == SaleStatus.CREDIT
    last_position = len(validated.lines) + (1 if is_credit else 0)

    journal.step(0, _insert_sale, label=f"sale {sale_id}")

    for position, (product_id, _, quantity, _) in enumerate(validated.lines, start=1):
        adjustment = journal.step(
            position,
            lambda product_id=product_id, quantity=quantity: stock_service.apply_stock_delta(product_id, -quantity),
            label=f"stock decrement for product {product_id} on sale {sale_id}",
            final=position == last_position,
        )
        if adjustment is not None:
            stock_service.warn_if_oversold(adjustment)

    if is_credit:
        pending = validated.total_cents - validated.amount_paid_cents
        adjustment = journal.step(
            last_position,
            lambda: debt_service.apply_debt_delta(validated.client_id, pending),
            label=f"debt increase for client {validated.client_id} on sale {sale_id}",
            final=True,
        )
        if adjustment is not None:
            debt_service.note_absorbed(adjustment)

    current_app.logger.info(
        "Sale %s created: status=%s total=%s paid=%s",
        sale_id,
        validated.status.value,
        validated.total_cents,
        validated.amount_paid_cents,
    )
    return get_sale(sale_id)


# =============================================================================
# REVERSE
# =============================================================================

def reverse_sale(sale_id: str, operation_id: str | None = None) -> None:
    """
    Undo a sale: restore stock, release what is still owed, delete the record.

    Raises:
        NotFoundError: sale does not exist (and no completed journal says
            it was already reversed under this operation_id)
        ValidationError: operation_id already used for another request
        PersistenceError: a step failed; earlier steps stay
    """
    request_hash = request_fingerprint({"sale_id": sale_id})
    existing = find_operation(KIND_REVERSE_SALE, operation_id, request_hash)
    if existing is not None and existing.status == STATUS_COMPLETED:
        return

    sale = get_sale(sale_id)
    journal = OperationJournal.open(
        KIND_REVERSE_SALE,
        operation_id,
        request_hash=request_hash,
        entity_id=sale_id,
    )
    lines = [(line.product_id, line.quantity) for line in sale.lines]
    releases_debt = sale.status == SaleStatus.CREDIT and sale.client_id is not None
    client_id = sale.client_id

    for position, (product_id, quantity) in enumerate(lines):
        journal.step(
            position,
            lambda product_id=product_id, quantity=quantity: stock_service.apply_stock_delta(product_id, quantity),
            label=f"stock restore for product {product_id} on sale {sale_id}",
        )

    position = len(lines)
    if releases_debt:
        def _release_debt():
            locked = get_sale(sale_id, lock=True)
            return debt_service.apply_debt_delta(client_id, -pending_of(locked))

        adjustment = journal.step(
            position,
            _release_debt,
            label=f"debt release for client {client_id} on sale {sale_id}",
        )
        if adjustment is not None:
            debt_service.note_absorbed(adjustment)
        position += 1

    def _delete_sale():
        db.session.delete(get_sale(sale_id, lock=True))

    journal.step(position, _delete_sale, label=f"sale {sale_id} deletion", final=True)
    current_app.logger.info("Sale %s reversed (%s lines)", sale_id, len(lines))


def oversold_products(sale: Sale) -> list[dict]:
    """Products on a sale whose stock is currently below zero."""
    product_ids = {line.product_id for line in sale.lines}
    if not product_ids:
        return []
    rows = (
        db.session.query(Product)
        .filter(Product.id.in_(product_ids), Product.stock_quantity < 0)
        .order_by(Product.name)
        .all()
    )
    return [{"product_id": p.id, "name": p.name, "stock_quantity": p.stock_quantity} for p in rows]
