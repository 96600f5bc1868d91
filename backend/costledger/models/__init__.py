from .products import Product, CostHistoryEntry, PRODUCT_TYPES, SELLABLE_TYPES
from .ledger import LedgerEntry, LEDGER_KINDS
from .sales import SaleTransaction, SaleLine, PAYMENT_METHODS
from .costs import CostOperation, CostExpense, COST_CATEGORIES, EXPENSE_TYPES, RECURRENCES, RECURRING_PERIODS
from .outbox import OutboxMessage

__all__ = [
    'Product', 'CostHistoryEntry', 'PRODUCT_TYPES', 'SELLABLE_TYPES',
    'LedgerEntry', 'LEDGER_KINDS',
    'SaleTransaction', 'SaleLine', 'PAYMENT_METHODS',
    'CostOperation', 'CostExpense', 'COST_CATEGORIES', 'EXPENSE_TYPES', 'RECURRENCES', 'RECURRING_PERIODS',
    'OutboxMessage',
]
