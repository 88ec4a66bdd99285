# Overview: Debt aggregator; signed deltas on a client's cached outstanding balance, plus drift reconciliation.

"""
Debt Aggregator

Client.current_debt_cents is a cache of SUM(pending) over the client's
CREDIT sales. It is maintained by signed deltas supplied by the callers
(sale creation/reversal, payment allocation), never recomputed on the write
path.

CLAMP: the stored value is max(0, current + delta). Anything collected
beyond the recorded debt is absorbed silently (logged, reported in the
result, never raised).

Drift between the cache and the sale records is detected and optionally
corrected by reconcile_client_debt / reconcile_all.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func

from ..errors import NotFoundError
from ..extensions import db
from ..models import Client, Sale, SaleStatus
from ..validation import require_int
from .concurrency import lock_for_update, run_step


@dataclass(frozen=True)
class DebtAdjustment:
    client_id: str
    requested_delta_cents: int
    previous_cents: int
    new_cents: int

    @property
    def absorbed_cents(self) -> int:
        """Part of a negative delta swallowed by the zero clamp."""
        unclamped = self.previous_cents + self.requested_delta_cents
        return -unclamped if unclamped < 0 else 0

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "requested_delta_cents": self.requested_delta_cents,
            "previous_cents": self.previous_cents,
            "new_cents": self.new_cents,
            "absorbed_cents": self.absorbed_cents,
        }


@dataclass(frozen=True)
class DebtDiscrepancy:
    client_id: str
    recorded_cents: int
    computed_cents: int

    @property
    def drift_cents(self) -> int:
        return self.recorded_cents - self.computed_cents

    @property
    def is_consistent(self) -> bool:
        return self.drift_cents == 0

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "recorded_cents": self.recorded_cents,
            "computed_cents": self.computed_cents,
            "drift_cents": self.drift_cents,
            "is_consistent": self.is_consistent,
        }


def get_client(client_id: str, *, lock: bool = False) -> Client:
    query = db.session.query(Client).filter_by(id=client_id)
    if lock:
        query = lock_for_update(query)
    client = query.first()
    if client is None:
        raise NotFoundError(f"Client {client_id} not found", details={"client_id": client_id})
    return client


def apply_debt_delta(client_id: str, delta_cents: int) -> DebtAdjustment:
    """Stage max(0, debt + delta) on the session; the caller commits."""
    client = get_client(client_id, lock=True)
    previous = client.current_debt_cents
    client.current_debt_cents = max(0, previous + delta_cents)
    return DebtAdjustment(
        client_id=client.id,
        requested_delta_cents=delta_cents,
        previous_cents=previous,
        new_cents=client.current_debt_cents,
    )


def note_absorbed(adjustment: DebtAdjustment) -> None:
    if adjustment.absorbed_cents:
        current_app.logger.info(
            "Client %s debt clamped at zero; %s cents absorbed",
            adjustment.client_id,
            adjustment.absorbed_cents,
        )


def adjust_client_debt(client_id: str, delta_cents: int) -> DebtAdjustment:
    """
    Move a client's aggregate debt by a signed delta (clamped at zero).

    Raises:
        ValidationError: delta is not an integer
        NotFoundError: client does not exist
        PersistenceError: the write failed
    """
    delta = require_int(delta_cents, "delta_cents")
    adjustment = run_step(
        lambda: apply_debt_delta(client_id, delta),
        step=f"debt adjustment for client {client_id}",
    )
    note_absorbed(adjustment)
    return adjustment


def outstanding_cents(client_id: str) -> int:
    """SUM(total - paid) over the client's CREDIT sales, straight from the sale rows."""
    value = db.session.query(
        func.coalesce(func.sum(Sale.total_cents - Sale.amount_paid_cents), 0)
    ).filter(
        Sale.client_id == client_id,
        Sale.status == SaleStatus.CREDIT,
    ).scalar()
    return int(value or 0)


def reconcile_client_debt(client_id: str, *, fix: bool = False) -> DebtDiscrepancy:
    """
    Compare the cached debt with the sale records.

    With fix=True the cached value is overwritten with the computed one.
    The returned discrepancy always describes the state before the fix.
    """
    client = get_client(client_id)
    discrepancy = DebtDiscrepancy(
        client_id=client.id,
        recorded_cents=client.current_debt_cents,
        computed_cents=outstanding_cents(client.id),
    )
    if fix and not discrepancy.is_consistent:
        def _fix():
            locked = get_client(client_id, lock=True)
            locked.current_debt_cents = outstanding_cents(client_id)

        run_step(_fix, step=f"debt reconciliation for client {client_id}")
        current_app.logger.warning(
            "Client %s debt corrected from %s to %s cents",
            client_id,
            discrepancy.recorded_cents,
            discrepancy.computed_cents,
        )
    return discrepancy


def reconcile_all(*, fix: bool = False) -> list[DebtDiscrepancy]:
    """Reconcile every client; returns only the inconsistent ones."""
    client_ids = [row.id for row in db.session.query(Client.id).order_by(Client.name, Client.id).all()]
    results = []
    for client_id in client_ids:
        discrepancy = reconcile_client_debt(client_id, fix=fix)
        if not discrepancy.is_consistent:
            results.append(discrepancy)
    return results
