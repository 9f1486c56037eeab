from .inventory import Product, StockMovement
from .sales import Sale, SaleItem, StockSyncIssue
from .suppliers import Supplier, LedgerEntry
from .expenses import Expense
from .payments import MpesaCallback

__all__ = [
    'Product', 'StockMovement',
    'Sale', 'SaleItem', 'StockSyncIssue',
    'Supplier', 'LedgerEntry',
    'Expense',
    'MpesaCallback',
]
