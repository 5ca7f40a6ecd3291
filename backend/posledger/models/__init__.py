from .catalog import Product, StockMovement
from .customers import Customer
from .sales import Sale, SaleLine, DocumentSequence
from .auth import User

__all__ = [
    'Product', 'StockMovement',
    'Customer',
    'Sale', 'SaleLine', 'DocumentSequence',
    'User',
]
