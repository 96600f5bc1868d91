# Overview: Error taxonomy shared by the ledger, sale and cost services.

from __future__ import annotations

from decimal import Decimal


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class EngineError(Exception):
    """
    Base class for every failure the engine reports to its caller.

    Carries a stable `kind`, a human-readable message and a details dict
    (which product, what was requested vs. available).
    """
    kind = "EngineError"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": _jsonable(self.details),
        }


class ValidationError(EngineError):
    """400-level input problem."""
    kind = "ValidationError"


class ProductNotFound(EngineError):
    kind = "ProductNotFound"
    status_code = 404

    def __init__(self, product_id):
        super().__init__(
            f"Product with ID {product_id} not found",
            details={"product_id": product_id},
        )
        self.product_id = product_id


class NotSellable(EngineError):
    kind = "NotSellable"
    status_code = 409

    def __init__(self, product_id: int, name: str, product_type: str):
        super().__init__(
            f"Product {name} cannot be sold (type: {product_type})",
            details={"product_id": product_id, "type": product_type},
        )


class InvalidPrice(EngineError):
    kind = "InvalidPrice"

    def __init__(self, product_id: int, name: str):
        super().__init__(
            f"Product {name} does not have a valid selling price",
            details={"product_id": product_id},
        )


class InsufficientStock(EngineError):
    kind = "InsufficientStock"
    status_code = 409

    def __init__(self, product_id: int, available: Decimal, requested: Decimal, name: str | None = None):
        label = name if name else f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}. Available: {available}, Requested: {requested}",
            details={"product_id": product_id, "available": available, "requested": requested},
        )
        self.product_id = product_id
        self.available = available
        self.requested = requested


class InvariantViolation(EngineError):
    """
    The write path produced state that breaks a ledger invariant.

    Indicates a programming defect: callers must halt, never correct.
    """
    kind = "InvariantViolation"
    status_code = 500


class InvalidAllocation(EngineError):
    kind = "InvalidAllocation"


class StockTrackingDisabled(EngineError):
    kind = "StockTrackingDisabled"
    status_code = 409

    def __init__(self, product_id: int):
        super().__init__(
            "Stock tracking is disabled for this product",
            details={"product_id": product_id},
        )


class ProductInUse(EngineError):
    kind = "ProductInUse"
    status_code = 409
