from .auth import User, SessionToken
from .catalog import Category, Product
from .orders import Order, CartItem, ProductStockHistory
from .notifications import NotificationToken, Notification, UserNotification
from .login_requests import LoginRequest

__all__ = [
    'User', 'SessionToken',
    'Category', 'Product',
    'Order', 'CartItem', 'ProductStockHistory',
    'NotificationToken', 'Notification', 'UserNotification',
    'LoginRequest',
]
