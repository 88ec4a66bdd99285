# Overview: Flask API routes for sale creation, lookup and reversal.

# backend/creditpos/routes/sales.py
"""
Sales API routes

- POST   /api/sales          create (COMPLETED or CREDIT)
- GET    /api/sales          list by client_id and/or status
- GET    /api/sales/<id>     one sale with lines
- DELETE /api/sales/<id>     reverse (restore stock, release debt, delete)

An Idempotency-Key header makes create/reverse retries resume instead of
double-applying.
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import ReconciliationError, ValidationError
from ..models import SaleStatus
from ..services import sale_lifecycle
from . import idempotency_key, service_error_response


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
def create_sale_route():
    """
    Create a sale.

    Request body:
    {
        "client_id": "uuid",            (required for CREDIT)
        "status": "CREDIT",             (COMPLETED default)
        "amount_paid_cents": 500,       (optional)
        "occurred_at": "2026-01-01T10:00:00Z",  (optional)
        "lines": [{"product_id": "uuid", "quantity": 2, "unit_price_cents": 1000}]
    }

    Returns:
        201: sale plus oversold warnings
        400 / 404: invalid input / unknown product or client
        503: storage failure (sale may be partially applied)
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sale_lifecycle.create_sale(data, operation_id=idempotency_key())
        return jsonify({
            "sale": sale.to_dict(),
            "warnings": sale_lifecycle.oversold_products(sale),
        }), 201

    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
def list_sales_route():
    client_id = request.args.get("client_id")
    status = request.args.get("status")

    try:
        if status is not None:
            try:
                status = SaleStatus(status)
            except ValueError:
                raise ValidationError(f"Invalid status: {status}")
        if client_id:
            sales = sale_lifecycle.list_sales_by_client(client_id, status)
        elif status is not None:
            sales = sale_lifecycle.list_sales_by_status(status)
        else:
            return jsonify({"error": "client_id or status required"}), 400
    except ReconciliationError as e:
        return service_error_response(e)

    return jsonify({"sales": [s.to_dict(include_lines=False) for s in sales]}), 200


@sales_bp.get("/<sale_id>")
def get_sale_route(sale_id: str):
    try:
        sale = sale_lifecycle.get_sale(sale_id)
    except ReconciliationError as e:
        return service_error_response(e)
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.delete("/<sale_id>")
def reverse_sale_route(sale_id: str):
    """
    Reverse (delete) a sale.

    Returns:
        200: reversed
        404: sale not found
        503: storage failure (stock/debt may be partially restored)
    """
    try:
        sale_lifecycle.reverse_sale(sale_id, operation_id=idempotency_key())
        return jsonify({"reversed": sale_id}), 200

    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reverse sale")
        return jsonify({"error": "Internal server error"}), 500
