# Overview: Flask API routes for cost records, allocation reports and expense summaries.

# backend/costledger/routes/costs.py
"""Cost API routes"""

from flask import Blueprint, request, jsonify, g

from ..decorators import with_actor, error_response, internal_error, json_body, query_datetime, query_int
from ..engine import get_engine
from ..errors import EngineError, ValidationError


costs_bp = Blueprint("costs", __name__, url_prefix="/api/costs")


@costs_bp.post("/operations")
@with_actor
def record_cost_operation_route():
    """
    Record a cost.

    Body: description, amount, category, expense_type, recurrence,
    recurring_period, related_entity {type, id}, incurred_at.
    A related product makes the cost direct for that product; anything
    else is shared through the allocation share.
    """
    try:
        op = get_engine().costs.record_cost_operation(json_body(), actor_id=g.actor_id)
        return jsonify({"operation": op.to_dict()}), 201
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to record cost operation")


@costs_bp.get("/operations")
def list_cost_operations_route():
    try:
        ops = get_engine().costs.list_cost_operations(
            category=request.args.get("category") or None,
            start=query_datetime("start"),
            end=query_datetime("end", end_of_day=True),
        )
        return jsonify({"items": [op.to_dict() for op in ops], "count": len(ops)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list cost operations")


@costs_bp.get("/summary")
def total_costs_route():
    try:
        summary = get_engine().costs.total_costs(
            start=query_datetime("start"), end=query_datetime("end", end_of_day=True)
        )
        return jsonify(summary), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to calculate total costs")


@costs_bp.get("/profit-margins")
def profit_margins_route():
    try:
        rows = get_engine().costs.profit_margins()
        return jsonify({"items": rows, "count": len(rows)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to calculate profit margins")


@costs_bp.get("/expenses")
def product_expenses_route():
    """Recorded cost expenses of one product, newest first. Filters: product_id (required), start, end."""
    try:
        if not request.args.get("product_id"):
            raise ValidationError("product_id is required", details={"field": "product_id"})
        engine = get_engine()
        product = engine.products.get_product(query_int("product_id", 0))
        expenses = engine.expenses.product_expenses(
            product.id, start=query_datetime("start"), end=query_datetime("end", end_of_day=True)
        )
        return jsonify({"items": [e.to_dict() for e in expenses], "count": len(expenses)}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to list cost expenses")


@costs_bp.get("/expenses/summary")
def expense_summary_route():
    try:
        rows = get_engine().expenses.expense_summary(
            start=query_datetime("start"), end=query_datetime("end", end_of_day=True)
        )
        return jsonify({"items": rows}), 200
    except EngineError as e:
        return error_response(e)
    except Exception:
        return internal_error("Failed to summarize cost expenses")
