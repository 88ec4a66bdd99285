from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class OperationRecord(db.Model):
    """
    Journal entry for a caller-keyed multi-step operation.

    cursor counts the steps already committed. Each step advances the cursor
    in the same commit as its own write, so a retry with the same
    operation_id resumes after the last committed step instead of applying
    it twice.
    """
    __tablename__ = "operation_records"

    id = db.Column(db.Integer, primary_key=True)
    operation_id = db.Column(db.String(64), nullable=False, unique=True)

    kind = db.Column(db.String(32), nullable=False, index=True)  # CREATE_SALE, REVERSE_SALE, ALLOCATE_PAYMENT
    status = db.Column(db.String(16), nullable=False, default="STARTED", index=True)  # STARTED, COMPLETED

    cursor = db.Column(db.Integer, nullable=False, default=0)

    # Sale id for sale operations, client id for allocations
    entity_id = db.Column(db.String(36), nullable=True)

    # Allocation progress (amount still to distribute)
    remaining_cents = db.Column(db.Integer, nullable=True)

    # sha256 of the canonical request; a reused operation_id must carry the same request
    request_hash = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "kind": self.kind,
            "status": self.status,
            "cursor": self.cursor,
            "entity_id": self.entity_id,
            "remaining_cents": self.remaining_cents,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
        }
