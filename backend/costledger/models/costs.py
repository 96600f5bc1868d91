from __future__ import annotations

from .base import append_only

from ..extensions import db
from ..money import DecimalString, decimal_str
from costledger.time_utils import to_utc_z


COST_CATEGORIES = ("inventory", "operational", "overhead")
EXPENSE_TYPES = ("rent", "salary", "utilities", "maintenance", "other")
RECURRENCES = ("one-time", "recurring")
RECURRING_PERIODS = ("weekly", "monthly", "yearly")


class CostOperation(db.Model):
    """
    A cost record (rent, salaries, a supplier invoice, ...).

    category drives allocation:
    - related_entity_type='product' + related_entity_id -> direct cost of that product
    - anything else -> general cost, shared by allocation share

    Append-only: corrections are new records, never edits.
    """
    __tablename__ = "cost_operations"
    __table_args__ = (
        db.Index("ix_costops_category_incurred", "category", "incurred_at"),
        db.Index("ix_costops_related", "related_entity_type", "related_entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.String(255), nullable=False)
    amount = db.Column(DecimalString, nullable=False)

    category = db.Column(db.String(16), nullable=False)
    expense_type = db.Column(db.String(16), nullable=False, default="other")

    recurrence = db.Column(db.String(16), nullable=False, default="one-time")
    recurring_period = db.Column(db.String(16), nullable=True)

    related_entity_type = db.Column(db.String(32), nullable=True)
    related_entity_id = db.Column(db.Integer, nullable=True)

    incurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    actor_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def product_id(self) -> int | None:
        if self.related_entity_type == "product":
            return self.related_entity_id
        return None

    def to_dict(self) -> dict:
        related = None
        if self.related_entity_type:
            related = {"type": self.related_entity_type, "id": self.related_entity_id}
        return {
            "id": self.id,
            "description": self.description,
            "amount": decimal_str(self.amount),
            "category": self.category,
            "expense_type": self.expense_type,
            "recurrence": self.recurrence,
            "recurring_period": self.recurring_period,
            "related_entity": related,
            "incurred_at": to_utc_z(self.incurred_at),
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }


class CostExpense(db.Model):
    """
    Inventory expense recorded when a product's cost price changes.

    Written by the outbox dispatcher after the price change commits.
    """
    __tablename__ = "cost_expenses"
    __table_args__ = (
        db.Index("ix_cost_expenses_product_recorded", "product_id", "recorded_at"),
        db.Index("ix_cost_expenses_category_recorded", "category", "recorded_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    cost_price = db.Column(DecimalString, nullable=False)
    previous_cost_price = db.Column(DecimalString, nullable=True)
    quantity = db.Column(DecimalString, nullable=False)
    total_amount = db.Column(DecimalString, nullable=False)

    category = db.Column(db.String(16), nullable=False, default="inventory")
    reason = db.Column(db.String(255), nullable=True)
    actor_id = db.Column(db.String(64), nullable=True)

    # Outbox message that produced this row; makes redelivery idempotent
    source_message_id = db.Column(db.Integer, nullable=True, unique=True)

    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "cost_price": decimal_str(self.cost_price),
            "previous_cost_price": decimal_str(self.previous_cost_price),
            "quantity": decimal_str(self.quantity),
            "total_amount": decimal_str(self.total_amount),
            "category": self.category,
            "reason": self.reason,
            "actor_id": self.actor_id,
            "recorded_at": to_utc_z(self.recorded_at),
        }


append_only(CostOperation, "Cost records")
append_only(CostExpense, "Cost records")
