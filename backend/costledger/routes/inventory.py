# Overview: Flask API routes for stock movements and the quantity ledger.

# backend/costledger/routes/inventory.py
"""Inventory API routes: additions, usage, count adjustments, ledger queries"""

from flask import Blueprint, request, jsonify, g

from ..decorators import with_actor, error_response, internal_error, json_body, query_int, query_datetime
from ..engine import get_engine
from ..errors import EngineError, ValidationError
from ..money import decimal_str
from costledger.time_utils import to_utc_z


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _product_id(data: dict) -> int:
    product_id = data.get("product_id")
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        raise ValidationError("product_id must be an integer", details={"field": "product_id"})
    return product_id


def _movement_response(entry):
    product = get_engine().products.get_product(entry.product_id)
    return jsonify({"entry": entry.to_dict(), "product": product.to_dict()}), 201


@inventory_bp.post("/addition")
@with_actor
def add_stock_route():
    """Goods received. Body: product_id, quantity, reason (optional)."""
    try:
        data = json_body()
        entry = get_engine().stock.add_stock(
            _product_id(data), data.get("quantity"), reason=data.get("reason"), actor_id=g.actor_id
        )
        return _movement_response(entry)
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to add stock")


@inventory_bp.post("/usage")
@with_actor
def record_usage_route():
    """Kitchen consumption. Body: product_id, quantity, reason (optional)."""
    try:
        data = json_body()
        entry = get_engine().stock.record_usage(
            _product_id(data), data.get("quantity"), reason=data.get("reason"), actor_id=g.actor_id
        )
        return _movement_response(entry)
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record usage")


@inventory_bp.post("/adjustment")
@with_actor
def adjust_stock_route():
    """Physical count. Body: product_id, new_quantity, reason (required)."""
    try:
        data = json_body()
        entry = get_engine().stock.adjust_to(
            _product_id(data), data.get("new_quantity"), data.get("reason") or "", actor_id=g.actor_id
        )
        return _movement_response(entry)
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to adjust stock")


@inventory_bp.get("/ledger")
def ledger_route():
    """
    Query ledger entries.

    Filters: product_id, kind, start, end (ISO-8601, inclusive), limit.
    Newest first.
    """
    try:
        product_id = request.args.get("product_id")
        entries = get_engine().ledger.entries(
            product_id=query_int("product_id", 0) if product_id else None,
            kind=request.args.get("kind") or None,
            start=query_datetime("start"),
            end=query_datetime("end", end_of_day=True),
            limit=min(max(query_int("limit", 100), 1), 1000),
            newest_first=True,
        )
        return jsonify({"items": [e.to_dict() for e in entries], "count": len(entries)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to query ledger")


@inventory_bp.get("/ledger/<int:product_id>/history")
def ledger_history_route(product_id: int):
    """Quantity after every movement of one product, oldest first."""
    try:
        engine = get_engine()
        engine.products.get_product(product_id)
        items = [
            {
                "entry_id": h["entry_id"],
                "kind": h["kind"],
                "delta": decimal_str(h["delta"]),
                "quantity": decimal_str(h["quantity"]),
                "occurred_at": to_utc_z(h["occurred_at"]),
            }
            for h in engine.ledger.history(product_id)
        ]
        return jsonify({"product_id": product_id, "items": items, "count": len(items)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to load quantity history")

@inventory_bp.get("/low-stock")
def low_stock_route():
    try:
        products = get_engine().stock.low_stock()
        return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list low stock products")
