from .auth import User, PendingUser, SessionToken
from .catalog import Category, Product, PriceHistory
from .inventory import InventoryTransactionHeader, InventoryTransactionItem
from .vouchers import Voucher, VoucherUsage
from .orders import Order, OrderItem
from .cart import Cart, CartItem
from .billing import Invoice, Notification
from .feedback import ProductReview, ProductComment

__all__ = [
    'User', 'PendingUser', 'SessionToken',
    'Category', 'Product', 'PriceHistory',
    'InventoryTransactionHeader', 'InventoryTransactionItem',
    'Voucher', 'VoucherUsage',
    'Order', 'OrderItem',
    'Cart', 'CartItem',
    'Invoice', 'Notification',
    'ProductReview', 'ProductComment',
]
