from .tenancy import Business, User, SessionToken
from .catalog import Category, Vendor, Product
from .ledger import StockMovement, Stocktake, StocktakeLine
from .purchasing import PurchaseOrder, PurchaseOrderItem

__all__ = [
    'Business', 'User', 'SessionToken',
    'Category', 'Vendor', 'Product',
    'StockMovement', 'Stocktake', 'StocktakeLine',
    'PurchaseOrder', 'PurchaseOrderItem',
]
