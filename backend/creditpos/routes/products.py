# Overview: Flask API routes for product registration, maintenance and restocking.

from flask import Blueprint, current_app, jsonify, request

from ..errors import PartialSuccessError, ReconciliationError
from ..services import stock_service
from . import service_error_response


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("/<product_id>/restock")
def restock_route(product_id: str):
    """
    Add stock, recording the capital outflow when a unit cost is given.

    Request body:
    {
        "quantity": 5,
        "unit_cost_cents": 300   (optional)
    }

    Returns:
        200: adjustment applied
        207: stock applied, capital movement NOT recorded
        400 / 404: invalid input / unknown product
    """
    try:
        data = request.get_json(silent=True) or {}
        adjustment = stock_service.adjust_stock(
            product_id,
            data.get("quantity"),
            data.get("unit_cost_cents"),
        )
        product = stock_service.get_product(product_id)
        return jsonify({
            "adjustment": adjustment.to_dict(),
            "product": product.to_dict(),
        }), 200

    except PartialSuccessError as e:
        current_app.logger.warning("Restock of product %s partially applied", product_id)
        return service_error_response(e)
    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to restock product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("")
def list_products_route():
    return jsonify({"products": [p.to_dict() for p in stock_service.list_products()]}), 200


@products_bp.post("")
def register_product_route():
    """
    Register a product; opening stock with a unit cost is booked as an initial investment.

    Request body:
    {
        "name": "Coffee 500g",
        "price_cents": 900,
        "unit_cost_cents": 400,   (optional)
        "stock_quantity": 12,     (optional, default 0)
        "category": "Groceries",  (optional)
        "barcode": "7701234"      (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        product = stock_service.register_product(
            data.get("name"),
            data.get("price_cents"),
            unit_cost_cents=data.get("unit_cost_cents"),
            stock_quantity=data.get("stock_quantity", 0),
            category=data.get("category"),
            barcode=data.get("barcode"),
        )
        return jsonify({"product": product.to_dict()}), 201

    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<product_id>")
def update_product_route(product_id: str):
    try:
        data = request.get_json(silent=True) or {}
        product = stock_service.update_product(product_id, data)
        return jsonify({"product": product.to_dict()}), 200

    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<product_id>")
def delete_product_route(product_id: str):
    try:
        stock_service.delete_product(product_id)
        return jsonify({"deleted": product_id}), 200

    except ReconciliationError as e:
        return service_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
