from .orders import Order, OrderStatusEvent
from .users import User

__all__ = [
    'Order', 'OrderStatusEvent',
    'User',
]
