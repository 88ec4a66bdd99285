# Overview: Operation journal; persisted step cursor for idempotent, resumable multi-step operations.

"""
Operation journal

Multi-step operations (create sale, reverse sale, allocate payment) touch
several rows with no cross-entity transaction. When the caller supplies an
operation_id, every step commits together with the journal's cursor, so:

- a retry after a failure resumes at the first uncommitted step,
- a retry after success returns without re-applying anything.

An operation_id is bound to the request that first opened it (kind plus a
fingerprint of the validated request). Reusing it for a different request
is a ValidationError, never a resume.

Without an operation_id the journal only tracks the cursor in memory and
each step commits on its own, exactly as the plain sequence would.
"""

from __future__ import annotations

import hashlib
import json

from ..errors import ValidationError
from ..extensions import db
from ..models import OperationRecord
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_step


KIND_CREATE_SALE = "CREATE_SALE"
KIND_REVERSE_SALE = "REVERSE_SALE"
KIND_ALLOCATE_PAYMENT = "ALLOCATE_PAYMENT"

STATUS_STARTED = "STARTED"
STATUS_COMPLETED = "COMPLETED"

MAX_OPERATION_ID_LENGTH = 64


def request_fingerprint(payload: dict) -> str:
    """sha256 over the canonical JSON of a validated request."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _require_operation_id(operation_id) -> None:
    if not isinstance(operation_id, str) or not operation_id.strip():
        raise ValidationError("operation_id must be a non-empty string")
    if len(operation_id) > MAX_OPERATION_ID_LENGTH:
        raise ValidationError(f"operation_id must be at most {MAX_OPERATION_ID_LENGTH} characters")


def _ensure_same_request(record: OperationRecord, kind: str, request_hash: str | None) -> None:
    if record.kind != kind:
        raise ValidationError(
            "operation_id already used for a different operation",
            details={"operation_id": record.operation_id, "kind": record.kind},
        )
    if request_hash is not None and record.request_hash != request_hash:
        raise ValidationError(
            "operation_id already used for a different request",
            details={"operation_id": record.operation_id},
        )


def get_operation(operation_id: str) -> OperationRecord | None:
    return db.session.query(OperationRecord).filter_by(operation_id=operation_id).first()


def find_operation(kind: str, operation_id: str | None, request_hash: str | None = None) -> OperationRecord | None:
    """
    Existing journal entry for operation_id, checked against the request.

    Read-only: lets a service run its remaining validations before the
    journal row is written.
    """
    if operation_id is None:
        return None
    _require_operation_id(operation_id)
    record = get_operation(operation_id)
    if record is not None:
        _ensure_same_request(record, kind, request_hash)
    return record


class OperationJournal:
    def __init__(self, kind: str, operation_id: str | None = None):
        self.kind = kind
        self.operation_id = operation_id
        self.record_id: int | None = None
        self.cursor = 0
        self.status = STATUS_STARTED
        self.entity_id: str | None = None
        self.remaining_cents: int | None = None

    @property
    def journaled(self) -> bool:
        return self.operation_id is not None

    @property
    def completed(self) -> bool:
        return self.status == STATUS_COMPLETED

    @classmethod
    def open(
        cls,
        kind: str,
        operation_id: str | None = None,
        *,
        request_hash: str | None = None,
        entity_id: str | None = None,
        remaining_cents: int | None = None,
    ) -> "OperationJournal":
        """
        Load the journal for operation_id, creating it on first use.

        Call only after the request has passed validation: the first call
        writes the journal row. On resume, entity_id and remaining_cents come
        from the stored record, not from the arguments.
        """
        journal = cls(kind, operation_id)
        journal.entity_id = entity_id
        journal.remaining_cents = remaining_cents
        if operation_id is None:
            return journal

        _require_operation_id(operation_id)

        def _load():
            record = get_operation(operation_id)
            if record is None:
                record = OperationRecord(
                    operation_id=operation_id,
                    kind=kind,
                    status=STATUS_STARTED,
                    cursor=0,
                    entity_id=entity_id,
                    remaining_cents=remaining_cents,
                    request_hash=request_hash,
                )
                db.session.add(record)
                db.session.flush()
            else:
                _ensure_same_request(record, kind, request_hash)
            return record.id, record.cursor, record.status, record.entity_id, record.remaining_cents

        (
            journal.record_id,
            journal.cursor,
            journal.status,
            journal.entity_id,
            journal.remaining_cents,
        ) = run_step(_load, step=f"operation journal {operation_id}")
        return journal

    def step(self, position: int, func, *, label: str, final: bool = False):
        """
        Run step `position` unless it already committed.

        func stages its writes (it may update self.entity_id or
        self.remaining_cents); the journal's progress is written in the same
        commit. Returns func's result, or None for a skipped step.
        """
        if position < self.cursor:
            return None

        def _op():
            result = func()
            if self.journaled:
                record = lock_for_update(
                    db.session.query(OperationRecord).filter_by(id=self.record_id)
                ).one()
                record.cursor = position + 1
                record.entity_id = self.entity_id
                record.remaining_cents = self.remaining_cents
                if final:
                    record.status = STATUS_COMPLETED
                    record.completed_at = utcnow()
            return result

        result = run_step(_op, step=label)
        self.cursor = position + 1
        if final:
            self.status = STATUS_COMPLETED
        return result
