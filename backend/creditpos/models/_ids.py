from __future__ import annotations

import uuid


def new_id() -> str:
    """Opaque string identity for ledger entities."""
    return str(uuid.uuid4())
