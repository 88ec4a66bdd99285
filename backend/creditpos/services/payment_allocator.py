# Overview: Payment allocator; distributes one client payment across credit sales, oldest first.

"""
Payment Allocator (abono)

ALGORITHM:
1. Fetch the caller-chosen target sales and sort them oldest first
   (occurred_at, then id).
2. remaining = total amount. For each sale while remaining > 0:
   applied = min(remaining, pending); persist the new amount paid and
   status plus a CreditPayment row; remaining -= applied.
3. Once the loop is done, ONE debt adjustment for the client.

DEBT POLICY (ALLOCATION_DEBT_POLICY):
- FULL_AMOUNT (default): debt -= total amount, even when part of it was
  not absorbed by the targeted sales. The clamp at zero absorbs the rest.
- APPLIED_AMOUNT: debt -= sum actually applied.
- REJECT_OVERPAYMENT: refuse a payment larger than the targets' combined
  pending, then behave like FULL_AMOUNT. The check runs before anything is
  written, the operation journal row included, so a rejected request leaves
  no trace and its operation_id stays free.

FAILURE: a failed sale write leaves earlier sales updated, later sales
untouched and the debt not yet reduced. Nothing is retried or rolled back
unless the caller retries with the same operation_id, which resumes from
the journaled cursor and remaining amount. The operation_id is bound to the
client, amount, target set and policy; a retry that changes any of them is
rejected.

The caller is expected to pass the client's own CREDIT sales; foreign sales
are not rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import CreditPayment, Sale
from ..time_utils import utcnow
from ..validation import require_int
from . import debt_service
from .concurrency import lock_for_update
from .ledger_primitives import allocation_order, apply_payment, pending_of
from .operations import KIND_ALLOCATE_PAYMENT, OperationJournal, find_operation, request_fingerprint


POLICY_FULL_AMOUNT = "FULL_AMOUNT"
POLICY_APPLIED_AMOUNT = "APPLIED_AMOUNT"
POLICY_REJECT_OVERPAYMENT = "REJECT_OVERPAYMENT"

VALID_POLICIES = [
    POLICY_FULL_AMOUNT,
    POLICY_APPLIED_AMOUNT,
    POLICY_REJECT_OVERPAYMENT,
]


@dataclass(frozen=True)
class SaleAllocation:
    sale_id: str
    applied_cents: int
    amount_paid_cents: int
    status: str

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "applied_cents": self.applied_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "status": self.status,
        }


@dataclass
class AllocationResult:
    client_id: str
    total_amount_cents: int
    debt_delta_cents: int
    policy: str
    allocations: list[SaleAllocation] = field(default_factory=list)
    operation_id: str | None = None

    @property
    def applied_cents(self) -> int:
        return sum(a.applied_cents for a in self.allocations)

    @property
    def unapplied_cents(self) -> int:
        return self.total_amount_cents - self.applied_cents

    def to_dict(self) -> dict:
        return {
            "client_id": self.client_id,
            "total_amount_cents": self.total_amount_cents,
            "applied_cents": self.applied_cents,
            "unapplied_cents": self.unapplied_cents,
            "debt_delta_cents": self.debt_delta_cents,
            "policy": self.policy,
            "operation_id": self.operation_id,
            "allocations": [a.to_dict() for a in self.allocations],
        }


def _resolve_policy(policy: str | None) -> str:
    if policy is None:
        policy = current_app.config.get("ALLOCATION_DEBT_POLICY", POLICY_FULL_AMOUNT)
    if policy not in VALID_POLICIES:
        raise ValidationError(f"Invalid allocation policy: {policy}. Must be one of {VALID_POLICIES}")
    return policy


def _debt_delta(policy: str, total_amount: int, applied: int) -> int:
    if policy == POLICY_APPLIED_AMOUNT:
        return -applied
    return -total_amount


def _recorded_allocations(operation_id: str, sale_id: str) -> list[SaleAllocation]:
    """Rebuild the allocation of an already committed step from its CreditPayment rows."""
    rows = db.session.query(CreditPayment).filter_by(operation_id=operation_id, sale_id=sale_id).all()
    if not rows:
        return []
    sale = db.session.get(Sale, sale_id)
    return [SaleAllocation(
        sale_id=sale_id,
        applied_cents=sum(r.amount_cents for r in rows),
        amount_paid_cents=sale.amount_paid_cents if sale else 0,
        status=sale.status.value if sale else "",
    )]


def allocate_payment(
    client_id: str,
    total_amount_cents: int,
    target_sale_ids,
    operation_id: str | None = None,
    *,
    policy: str | None = None,
) -> AllocationResult:
    """
    Distribute one payment across a client's credit sales, oldest first.

    Args:
        client_id: Paying client
        total_amount_cents: Positive amount received
        target_sale_ids: Sales to write down (already filtered by the caller)
        operation_id: Optional idempotency key
        policy: Override for ALLOCATION_DEBT_POLICY

    Raises:
        ValidationError: non-positive amount, no targets, overpayment under
            REJECT_OVERPAYMENT, operation_id reused for a different request
        NotFoundError: unknown client or target sale
        PersistenceError: a step failed; earlier steps stay
    """
    amount = require_int(total_amount_cents, "total_amount_cents", minimum=1)
    policy = _resolve_policy(policy)

    debt_service.get_client(client_id)

    sale_ids = list(dict.fromkeys(target_sale_ids or []))
    if not sale_ids:
        raise ValidationError("At least one target sale is required")

    sales = db.session.query(Sale).filter(Sale.id.in_(sale_ids)).all()
    missing = sorted(set(sale_ids) - {s.id for s in sales})
    if missing:
        raise NotFoundError("Sale not found", details={"sale_ids": missing})

    ordered_ids = [s.id for s in allocation_order(sales)]
    request_hash = request_fingerprint({
        "client_id": client_id,
        "total_amount_cents": amount,
        "sale_ids": sorted(sale_ids),
        "policy": policy,
    })

    # Every check runs before the journal row is written
    existing = find_operation(KIND_ALLOCATE_PAYMENT, operation_id, request_hash)
    if (existing is None or existing.cursor == 0) and policy == POLICY_REJECT_OVERPAYMENT:
        outstanding = sum(pending_of(s) for s in sales)
        if amount > outstanding:
            raise ValidationError(
                "Payment exceeds the pending balance of the selected sales",
                details={"total_amount_cents": amount, "pending_cents": outstanding},
            )

    journal = OperationJournal.open(
        KIND_ALLOCATE_PAYMENT,
        operation_id,
        request_hash=request_hash,
        entity_id=client_id,
        remaining_cents=amount,
    )

    allocations: list[SaleAllocation] = []
    for position, sale_id in enumerate(ordered_ids):
        if position < journal.cursor:
            allocations.extend(_recorded_allocations(operation_id, sale_id))
            continue
        if journal.remaining_cents <= 0:
            break

        remaining_before = journal.remaining_cents

        def _apply(sale_id=sale_id, remaining_before=remaining_before):
            sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
            if sale is None:
                raise NotFoundError(f"Sale {sale_id} not found", details={"sale_id": sale_id})

            application = apply_payment(sale, remaining_before)
            sale.amount_paid_cents = application.amount_paid_cents
            sale.status = application.status
            if application.applied_cents > 0:
                db.session.add(CreditPayment(
                    sale_id=sale.id,
                    client_id=client_id,
                    amount_cents=application.applied_cents,
                    operation_id=operation_id,
                    occurred_at=utcnow(),
                ))
            journal.remaining_cents = remaining_before - application.applied_cents
            return SaleAllocation(
                sale_id=sale.id,
                applied_cents=application.applied_cents,
                amount_paid_cents=application.amount_paid_cents,
                status=application.status.value,
            )

        allocations.append(journal.step(
            position,
            _apply,
            label=f"payment allocation to sale {sale_id}",
        ))

    applied = amount - journal.remaining_cents
    delta = _debt_delta(policy, amount, applied)

    if not journal.completed:
        adjustment = journal.step(
            len(ordered_ids),
            lambda: debt_service.apply_debt_delta(client_id, delta),
            label=f"debt reduction for client {client_id}",
            final=True,
        )
        if adjustment is not None:
            debt_service.note_absorbed(adjustment)

    result = AllocationResult(
        client_id=client_id,
        total_amount_cents=amount,
        debt_delta_cents=delta,
        policy=policy,
        allocations=allocations,
        operation_id=operation_id,
    )
    current_app.logger.info(
        "Payment of %s cents from client %s allocated: applied=%s unapplied=%s debt_delta=%s",
        amount,
        client_id,
        result.applied_cents,
        result.unapplied_cents,
        delta,
    )
    return result
