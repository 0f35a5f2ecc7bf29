from .catalog import Product
from .parties import Customer, User
from .sales import Sale, SaleLine

__all__ = [
    'Product',
    'Customer', 'User',
    'Sale', 'SaleLine',
]
