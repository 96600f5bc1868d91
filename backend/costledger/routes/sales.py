# Overview: Flask API routes for sale transactions; parses input and returns JSON responses.

# backend/costledger/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, jsonify, g

from ..decorators import with_actor, error_response, internal_error, json_body, query_int
from ..engine import get_engine
from ..errors import EngineError


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@with_actor
def create_sale_route():
    """
    Create a sale and decrement stock in one unit of work.

    Body: items [{product_id, quantity}], payment_method.
    Unit prices always come from the product's current selling price.
    """
    try:
        data = json_body()
        result = get_engine().sales.create_sale(
            data.get("items"), data.get("payment_method"), actor_id=g.actor_id
        )
        body = {"sale": result.sale.to_dict()}
        if not result.delivery.ok:
            body["notification_failures"] = result.delivery.failures
        return jsonify(body), 201
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create sale")


@sales_bp.get("")
def list_sales_route():
    try:
        result = get_engine().sales.list_sales(
            page=query_int("page", 1), per_page=query_int("per_page", 10)
        )
        return jsonify(result), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list sales")


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        sale = get_engine().sales.get_sale(sale_id)
        if sale is None:
            return jsonify({"error": {"kind": "NotFound", "message": f"Sale {sale_id} not found"}}), 404
        return jsonify({"sale": sale.to_dict()}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to get sale")
