# Overview: Cost expenses recorded from cost price changes, and their summaries.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, localcontext
from typing import Optional

from ..errors import ProductNotFound
from ..models import CostExpense, OutboxMessage, Product
from ..money import MONEY_CONTEXT, ZERO, decimal_str, safe_divide
from costledger.time_utils import parse_iso_datetime

COST_EXPENSE_TOPIC = "cost_expense.record"


class CostExpenseRecorder:
    def __init__(self, session):
        self.session = session

    def handle_message(self, message: OutboxMessage) -> CostExpense:
        """
        Outbox handler for COST_EXPENSE_TOPIC.

        total_amount = cost_price * quantity at the time of the change.
        Redelivery of the same message returns the row already written.
        """
        existing = self.session.query(CostExpense).filter_by(source_message_id=message.id).first()
        if existing is not None:
            return existing

        payload = message.payload
        product_id = payload["product_id"]
        if self.session.get(Product, product_id) is None:
            raise ProductNotFound(product_id)

        cost_price = Decimal(payload["cost_price"])
        quantity = Decimal(payload["quantity"])
        previous = payload.get("previous_cost_price")
        with localcontext(MONEY_CONTEXT):
            total_amount = cost_price * quantity

        expense = CostExpense(
            product_id=product_id,
            cost_price=cost_price,
            previous_cost_price=Decimal(previous) if previous is not None else None,
            quantity=quantity,
            total_amount=total_amount,
            category=payload.get("category", "inventory"),
            reason=payload.get("reason"),
            actor_id=payload.get("actor_id"),
            source_message_id=message.id,
            recorded_at=parse_iso_datetime(payload["recorded_at"]),
        )
        self.session.add(expense)
        self.session.flush()
        return expense

    def product_expenses(
        self, product_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> list[CostExpense]:
        q = self.session.query(CostExpense).filter(CostExpense.product_id == product_id)
        if start is not None:
            q = q.filter(CostExpense.recorded_at >= start)
        if end is not None:
            q = q.filter(CostExpense.recorded_at <= end)
        return q.order_by(CostExpense.recorded_at.desc(), CostExpense.id.desc()).all()

    def expense_summary(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> list[dict]:
        """Total, count and average of recorded expenses per category, largest first."""
        q = self.session.query(CostExpense)
        if start is not None:
            q = q.filter(CostExpense.recorded_at >= start)
        if end is not None:
            q = q.filter(CostExpense.recorded_at <= end)

        groups: dict[str, list[Decimal]] = {}
        for expense in q.all():
            groups.setdefault(expense.category, []).append(expense.total_amount)

        rows = []
        for category, amounts in groups.items():
            with localcontext(MONEY_CONTEXT):
                total = sum(amounts, ZERO)
            rows.append({
                "category": category,
                "total_amount": total,
                "count": len(amounts),
                "average_amount": safe_divide(total, Decimal(len(amounts))),
            })
        rows.sort(key=lambda r: (-r["total_amount"], r["category"]))
        return [
            {
                **row,
                "total_amount": decimal_str(row["total_amount"]),
                "average_amount": decimal_str(row["average_amount"]),
            }
            for row in rows
        ]
