from __future__ import annotations

from .base import append_only

from ..extensions import db
from ..money import DecimalString, decimal_str
from costledger.time_utils import to_utc_z


PAYMENT_METHODS = ("CBE", "Abyssinia", "Zemen", "Awash", "Telebirr", "Cash", "POS")


class SaleTransaction(db.Model):
    """
    Completed sale receipt.

    Created in the same unit of work as its lines and its ledger entries,
    or not at all. Never edited afterwards.
    """
    __tablename__ = "sale_transactions"
    __table_args__ = (
        db.Index("ix_sales_created_payment", "created_at", "payment_method"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    total_amount = db.Column(DecimalString, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False, index=True)

    actor_id = db.Column(db.String(64), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    lines = db.relationship(
        "SaleLine",
        backref="sale",
        order_by="SaleLine.position",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "items": [line.to_dict() for line in self.lines],
            "total_amount": decimal_str(self.total_amount),
            "payment_method": self.payment_method,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
        }


class SaleLine(db.Model):
    """Individual line item; unit_price is the product's selling price at sale time."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "position", name="uq_sale_lines_sale_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sale_transactions.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(DecimalString, nullable=False)
    unit_price = db.Column(DecimalString, nullable=False)
    total_price = db.Column(DecimalString, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": decimal_str(self.quantity),
            "unit_price": decimal_str(self.unit_price),
            "total_price": decimal_str(self.total_price),
        }


append_only(SaleTransaction, "Sales")
append_only(SaleLine, "Sales")
