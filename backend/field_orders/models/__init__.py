from .auth import User, Profile, SessionToken, ROLES, BRANCHES, DEFAULT_ROLE, DEFAULT_BRANCH
from .catalog import Customer, Product, ProductBranch, DEFAULT_UOM_NAMES
from .orders import Order, OrderItem, OrderStatusHistory, ORDER_STATUSES, PAYMENT_TERMS, UOM_LEVELS

__all__ = [
    'User', 'Profile', 'SessionToken', 'ROLES', 'BRANCHES', 'DEFAULT_ROLE', 'DEFAULT_BRANCH',
    'Customer', 'Product', 'ProductBranch', 'DEFAULT_UOM_NAMES',
    'Order', 'OrderItem', 'OrderStatusHistory', 'ORDER_STATUSES', 'PAYMENT_TERMS', 'UOM_LEVELS',
]
