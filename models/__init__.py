# models/__init__.py
from .order import MAX_PHOTOS, Order, OrderCreate, OrderStatus, OrderView, WorkType
from .user import Actor, Role, User, normalize_tools

__all__ = [
    "MAX_PHOTOS",
    "Actor",
    "Order",
    "OrderCreate",
    "OrderStatus",
    "OrderView",
    "Role",
    "User",
    "WorkType",
    "normalize_tools",
]
