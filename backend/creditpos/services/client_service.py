# Overview: Client registration and maintenance, plus debt payments not tied to any sale.

"""
Client Service

Clients are created with zero debt. current_debt_cents is owned by the debt
aggregator; nothing here writes it except record_debt_payment, which goes
through adjust_client_debt like every other debt change.
"""

from __future__ import annotations

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Client, CreditPayment, Sale
from ..validation import require_int, require_text
from . import debt_service
from .concurrency import run_step


def _optional_text(value, field: str, max_length: int) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text or None


def register_client(name: str, phone: str | None = None, email: str | None = None) -> Client:
    """Create a client with no debt."""
    client_name = require_text(name, "name")
    client_phone = _optional_text(phone, "phone", 32)
    client_email = _optional_text(email, "email", 255)

    def _insert():
        client = Client(
            name=client_name,
            phone=client_phone,
            email=client_email,
            current_debt_cents=0,
        )
        db.session.add(client)
        db.session.flush()
        return client.id

    client_id = run_step(_insert, step="client registration")
    current_app.logger.info("Client %s registered", client_id)
    return debt_service.get_client(client_id)


def update_client(client_id: str, changes: dict) -> Client:
    """
    Update contact fields (name, phone, email).

    Debt is not editable here; use a payment, a sale or the reconciliation job.
    """
    unknown = sorted(set(changes) - {"name", "phone", "email"})
    if unknown:
        raise ValidationError(f"Fields not editable: {', '.join(unknown)}")

    values = {}
    if "name" in changes:
        values["name"] = require_text(changes["name"], "name")
    if "phone" in changes:
        values["phone"] = _optional_text(changes["phone"], "phone", 32)
    if "email" in changes:
        values["email"] = _optional_text(changes["email"], "email", 255)

    def _update():
        client = debt_service.get_client(client_id, lock=True)
        for key, value in values.items():
            setattr(client, key, value)

    run_step(_update, step=f"client {client_id} update")
    return debt_service.get_client(client_id)


def list_clients() -> list[Client]:
    return db.session.query(Client).order_by(Client.name, Client.id).all()


def delete_client(client_id: str) -> None:
    """
    Delete a client with no sales and no debt.

    Raises:
        NotFoundError: client does not exist
        ValidationError: the client still has sales or owes money
    """
    def _delete():
        client = debt_service.get_client(client_id, lock=True)
        if client.current_debt_cents > 0:
            raise ValidationError(
                "Client still has outstanding debt",
                details={"client_id": client_id, "current_debt_cents": client.current_debt_cents},
            )
        has_sales = db.session.query(Sale.id).filter(Sale.client_id == client_id).first() is not None
        has_payments = db.session.query(CreditPayment.id).filter(CreditPayment.client_id == client_id).first() is not None
        if has_sales or has_payments:
            raise ValidationError(
                "Client has sales on record",
                details={"client_id": client_id},
            )
        db.session.delete(client)

    run_step(_delete, step=f"client {client_id} deletion")
    current_app.logger.info("Client %s deleted", client_id)


def record_debt_payment(client_id: str, amount_cents: int) -> debt_service.DebtAdjustment:
    """
    Take a payment straight off the client's aggregate debt.

    No sale is written down, so the cached debt drifts below the sum of
    pending amounts; reconcile_client_debt reports that drift. Use
    payment_allocator.allocate_payment to settle specific sales instead.
    """
    amount = require_int(amount_cents, "amount_cents", minimum=1)
    adjustment = debt_service.adjust_client_debt(client_id, -amount)
    current_app.logger.info(
        "Direct debt payment of %s cents from client %s: debt %s -> %s",
        amount,
        client_id,
        adjustment.previous_cents,
        adjustment.new_cents,
    )
    return adjustment
