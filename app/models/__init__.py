"""Database models"""

from app.models.business import Business, Branch, OpeningHours, StaffContact
from app.models.menu import Item
from app.models.cart import Cart, CartItem
from app.models.order import Order, OrderItem, OrderStatusHistory
from app.models.processed_message import ProcessedMessage

__all__ = [
    "Business",
    "Branch",
    "OpeningHours",
    "StaffContact",
    "Item",
    "Cart",
    "CartItem",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "ProcessedMessage",
]
