# Overview: Shared helpers for the JSON adapter over the reconciliation services.

from flask import jsonify, request

from ..errors import (
    NotFoundError,
    PartialSuccessError,
    PersistenceError,
    ReconciliationError,
    ValidationError,
)


_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (PartialSuccessError, 207),
    (PersistenceError, 503),
)


def service_error_response(exc: ReconciliationError):
    """Map a service error to a JSON response with its status code."""
    status = 500
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            status = code
            break
    return jsonify({"error": str(exc), "details": exc.details}), status


def idempotency_key() -> str | None:
    """Optional Idempotency-Key header, passed to services as operation_id."""
    value = request.headers.get("Idempotency-Key")
    return value.strip() if value and value.strip() else None
