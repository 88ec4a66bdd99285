# Overview: Flask API routes for clients, their payments (abonos) and debt inspection.

from flask import Blueprint, current_app, jsonify, request

from ..errors import ReconciliationError
from ..services import client_service, debt_service, payment_allocator, sale_lifecycle
from . import idempotency_key, service_error_response


clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.post("/<client_id>/payments")
def allocate_payment_route(client_id: str):
    """
    Collect a payment and distribute it over the client's credit sales.

    Request body:
    {
        "amount_cents": 5000,
        "sale_ids": ["uuid", ...]   (optional; defaults to all open credit sales)
    }

    Returns:
        200: allocation result
        400 / 404: invalid input / unknown client or sale
        503: storage failure (allocation may be partially applied)
    """
    try:
        data = request.get_json(silent=True) or {}
        sale_ids = data.get("sale_ids")
        if sale_ids is None:
            sale_ids = [s.id for s in sale_lifecycle.list_open_credit_sales(client_id)]

        result = payment_allocator.allocate_payment(
            client_id,
            data.get("amount_cents"),
            sale_ids,
            operation_id=idempotency_key(),
        )
        client = debt_service.get_client(client_id)
        return jsonify({
            "allocation": result.to_dict(),
            "client": client.to_dict(),
        }), 200

    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to allocate payment")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.get("/<client_id>/debt")
def client_debt_route(client_id: str):
    """Cached debt next to the value recomputed from the sale records."""
    try:
        discrepancy = debt_service.reconcile_client_debt(client_id)
        open_sales = sale_lifecycle.list_open_credit_sales(client_id)
    except ReconciliationError as e:
        return service_error_response(e)

    return jsonify({
        "debt": discrepancy.to_dict(),
        "open_sales": [s.to_dict(include_lines=False) for s in open_sales],
    }), 200


@clients_bp.get("")
def list_clients_route():
    return jsonify({"clients": [c.to_dict() for c in client_service.list_clients()]}), 200


@clients_bp.post("")
def register_client_route():
    """
    Register a client (starts with zero debt).

    Request body:
    {
        "name": "Ana Ruiz",
        "phone": "555-0100",   (optional)
        "email": "ana@example.com"   (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        client = client_service.register_client(
            data.get("name"),
            phone=data.get("phone"),
            email=data.get("email"),
        )
        return jsonify({"client": client.to_dict()}), 201

    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.patch("/<client_id>")
def update_client_route(client_id: str):
    try:
        data = request.get_json(silent=True) or {}
        client = client_service.update_client(client_id, data)
        return jsonify({"client": client.to_dict()}), 200

    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.delete("/<client_id>")
def delete_client_route(client_id: str):
    try:
        client_service.delete_client(client_id)
        return jsonify({"deleted": client_id}), 200

    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.post("/<client_id>/debt-payments")
def debt_payment_route(client_id: str):
    """
    Take a payment off the aggregate debt without settling any sale.

    Request body:
    {
        "amount_cents": 2000
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        adjustment = client_service.record_debt_payment(client_id, data.get("amount_cents"))
        client = debt_service.get_client(client_id)
        return jsonify({
            "adjustment": adjustment.to_dict(),
            "client": client.to_dict(),
        }), 200

    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record debt payment")
        return jsonify({"error": "Internal server error"}), 500
