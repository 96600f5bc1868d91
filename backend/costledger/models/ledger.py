from __future__ import annotations

from .base import append_only

from ..extensions import db
from ..money import DecimalString, decimal_str
from costledger.time_utils import to_utc_z


LEDGER_KINDS = ("addition", "usage", "sale", "adjustment")


class LedgerEntry(db.Model):
    """
    One stock-quantity change with its before/after values.

    INVARIANTS:
    - new_quantity == previous_quantity + quantity_delta
    - previous_quantity >= 0 and new_quantity >= 0
    - Immutable once created: no updates, no deletes.
    - For one product, ordering by id is commit order and the
      previous/new chain is continuous in that order.
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_product_id", "product_id", "id"),
        db.Index("ix_ledger_kind_occurred", "kind", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False)

    quantity_delta = db.Column(DecimalString, nullable=False)
    previous_quantity = db.Column(DecimalString, nullable=False)
    new_quantity = db.Column(DecimalString, nullable=False)

    reason = db.Column(db.String(255), nullable=True)
    actor_id = db.Column(db.String(64), nullable=True)

    # Set for kind='sale'
    sale_id = db.Column(db.Integer, db.ForeignKey("sale_transactions.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    product = db.relationship("Product")

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry id={self.id} product_id={self.product_id} kind={self.kind} "
            f"{self.previous_quantity}{self.quantity_delta:+} -> {self.new_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "kind": self.kind,
            "quantity_delta": decimal_str(self.quantity_delta),
            "previous_quantity": decimal_str(self.previous_quantity),
            "new_quantity": decimal_str(self.new_quantity),
            "reason": self.reason,
            "actor_id": self.actor_id,
            "sale_id": self.sale_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


append_only(LedgerEntry, "Ledger entries")
