# Overview: Flask API routes for capital movements (expenses and restock investments).

from flask import Blueprint, current_app, jsonify, request

from ..errors import ReconciliationError, ValidationError
from ..models import CapitalMovementCategory
from ..services import stock_service
from . import service_error_response


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
def list_expenses_route():
    """All capital movements, newest first; ?category=RESTOCK|OTHER filters."""
    category = request.args.get("category")
    try:
        if category is not None:
            try:
                category = CapitalMovementCategory(category)
            except ValueError:
                raise ValidationError(f"Invalid category: {category}")
        movements = stock_service.list_capital_movements(category)
    except ReconciliationError as e:
        return service_error_response(e)

    return jsonify({
        "expenses": [m.to_dict() for m in movements],
        "total_cents": sum(m.amount_cents for m in movements),
    }), 200


@expenses_bp.post("")
def record_expense_route():
    """
    Record a manual expense.

    Request body:
    {
        "amount_cents": 120000,
        "description": "Rent March",
        "occurred_at": "2026-03-01T00:00:00Z"   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        movement = stock_service.record_expense(
            data.get("amount_cents"),
            data.get("description"),
            occurred_at=data.get("occurred_at"),
        )
        return jsonify({"expense": movement.to_dict()}), 201

    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.patch("/<movement_id>")
def update_expense_route(movement_id: str):
    try:
        data = request.get_json(silent=True) or {}
        movement = stock_service.update_expense(movement_id, data)
        return jsonify({"expense": movement.to_dict()}), 200

    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update expense")
        return jsonify({"error": "Internal server error"}), 500


@expenses_bp.delete("/<movement_id>")
def delete_expense_route(movement_id: str):
    try:
        stock_service.delete_expense(movement_id)
        return jsonify({"deleted": movement_id}), 200

    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete expense")
        return jsonify({"error": "Internal server error"}), 500
