# Overview: Flask API routes for product master data, prices, allocation and per-product cost.

# backend/costledger/routes/products.py
"""Product API routes"""

from flask import Blueprint, request, jsonify, g

from ..decorators import with_actor, error_response, internal_error, json_body
from ..engine import get_engine
from ..errors import EngineError


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("")
@with_actor
def create_product_route():
    """
    Create a product.

    Opening stock (current_quantity) is booked as an addition ledger entry
    and an initial cost price starts the cost history.
    """
    try:
        product = get_engine().products.create_product(json_body(), actor_id=g.actor_id)
        return jsonify({"product": product.to_dict()}), 201
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to create product")


@products_bp.get("")
def list_products_route():
    try:
        products = get_engine().products.list_products(product_type=request.args.get("type"))
        return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list products")


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = get_engine().products.get_product(product_id)
        return jsonify({"product": product.to_dict()}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to get product")


@products_bp.delete("/<int:product_id>")
@with_actor
def delete_product_route(product_id: int):
    """Refused with 409 while ledger entries, sale lines or expenses reference it."""
    try:
        get_engine().products.delete_product(product_id)
        return jsonify({"deleted": True, "product_id": product_id}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to delete product")


@products_bp.patch("/<int:product_id>/prices")
@with_actor
def update_prices_route(product_id: int):
    try:
        data = json_body()
        product = get_engine().products.update_prices(
            product_id,
            cost_price=data.get("cost_price"),
            selling_price=data.get("selling_price"),
            reason=data.get("reason"),
            actor_id=g.actor_id,
        )
        return jsonify({"product": product.to_dict()}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update prices")


@products_bp.put("/<int:product_id>/allocation")
@with_actor
def update_allocation_route(product_id: int):
    try:
        data = json_body()
        product = get_engine().products.update_cost_allocation(
            product_id,
            data.get("inventory_percentage"),
            data.get("operational_percentage"),
            data.get("overhead_percentage"),
        )
        return jsonify({"product": product.to_dict()}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to update cost allocation")


@products_bp.get("/<int:product_id>/cost-history")
def cost_history_route(product_id: int):
    try:
        history = get_engine().products.cost_history(product_id)
        return jsonify({"items": [h.to_dict() for h in history], "count": len(history)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to get cost history")


@products_bp.get("/<int:product_id>/cost")
def product_cost_route(product_id: int):
    try:
        breakdown = get_engine().costs.product_cost(product_id)
        return jsonify({"cost": breakdown.to_dict()}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to calculate product cost")
