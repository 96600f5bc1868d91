from __future__ import annotations

from decimal import Decimal

from .base import append_only

from ..extensions import db
from ..money import DecimalString, decimal_str
from costledger.time_utils import to_utc_z


PRODUCT_TYPES = ("stock", "sellable", "combination")
SELLABLE_TYPES = ("sellable", "combination")


class Product(db.Model):
    """
    Product master data.

    TYPES:
    - stock: raw ingredient / supply, tracked for usage and adjustment only
    - sellable: sold directly at the POS
    - combination: assembled item, both costed and sold

    QUANTITY:
    current_quantity is the materialized on-hand value. It is only written by
    the stock guard, which appends a LedgerEntry in the same unit of work.
    version_id conditions every write on the version that was read, so two
    concurrent writers cannot both act on a stale quantity.

    ALLOCATION:
    The three allocation percentages always sum to 100 (+/- 0.01).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_type_name", "type", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)

    # Unit label shown next to quantities (kg, l, pcs, ...)
    metric = db.Column(db.String(32), nullable=False, default="pcs")

    current_quantity = db.Column(DecimalString, nullable=False, default=Decimal("0"))
    min_stock_level = db.Column(DecimalString, nullable=False, default=Decimal("0"))

    cost_price = db.Column(DecimalString, nullable=True)
    selling_price = db.Column(DecimalString, nullable=True)

    stock_tracking_enabled = db.Column(db.Boolean, nullable=False, default=True)

    allocation_inventory_pct = db.Column(DecimalString, nullable=False, default=Decimal("100"))
    allocation_operational_pct = db.Column(DecimalString, nullable=False, default=Decimal("0"))
    allocation_overhead_pct = db.Column(DecimalString, nullable=False, default=Decimal("0"))
    allocation_updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_sellable(self) -> bool:
        return self.type in SELLABLE_TYPES

    @property
    def is_low_stock(self) -> bool:
        return self.current_quantity <= self.min_stock_level

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} type={self.type} qty={self.current_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "metric": self.metric,
            "current_quantity": decimal_str(self.current_quantity),
            "min_stock_level": decimal_str(self.min_stock_level),
            "cost_price": decimal_str(self.cost_price),
            "selling_price": decimal_str(self.selling_price),
            "stock_tracking_enabled": self.stock_tracking_enabled,
            "cost_allocation": {
                "inventory_percentage": decimal_str(self.allocation_inventory_pct),
                "operational_percentage": decimal_str(self.allocation_operational_pct),
                "overhead_percentage": decimal_str(self.allocation_overhead_pct),
                "updated_at": to_utc_z(self.allocation_updated_at),
            },
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CostHistoryEntry(db.Model):
    """
    Append-only record of cost price changes, keyed by (product_id, sequence).

    Reads return the most recent COST_HISTORY_LIMIT rows; older rows are
    removed out-of-band by `flask costs prune-history`, never on the write path.
    """
    __tablename__ = "product_cost_history"
    __table_args__ = (
        db.UniqueConstraint("product_id", "sequence", name="uq_cost_history_product_seq"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)

    cost_price = db.Column(DecimalString, nullable=False)
    previous_cost_price = db.Column(DecimalString, nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    actor_id = db.Column(db.String(64), nullable=True)

    recorded_at = db.Column(db.DateTime(timezone=True), nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "sequence": self.sequence,
            "cost_price": decimal_str(self.cost_price),
            "previous_cost_price": decimal_str(self.previous_cost_price),
            "reason": self.reason,
            "actor_id": self.actor_id,
            "recorded_at": to_utc_z(self.recorded_at),
        }


append_only(CostHistoryEntry, "Cost history entries")
