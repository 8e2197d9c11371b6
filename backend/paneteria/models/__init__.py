from .catalog import ProductCategory, Product
from .customers import Customer
from .orders import Order, OrderItem

__all__ = [
    'ProductCategory', 'Product',
    'Customer',
    'Order', 'OrderItem',
]
