from .catalog import Category, Product
from .auth import User
from .sales import Sale, SaleItem

__all__ = [
    'Category', 'Product',
    'User',
    'Sale', 'SaleItem',
]
