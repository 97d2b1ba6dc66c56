# marketplace/models/__init__.py
from .account import Kitchen, User
from .order import Order, OrderStatus, OrderUpdate, PaymentMethod
from .outbox import OutboxEvent
from .processed_event import ProcessedEvent
from .wallet import Transaction, TransactionDirection, TransactionType, Wallet

# Export all models
__all__ = [
    "Kitchen",
    "Order",
    "OrderStatus",
    "OrderUpdate",
    "OutboxEvent",
    "PaymentMethod",
    "ProcessedEvent",
    "Transaction",
    "TransactionDirection",
    "TransactionType",
    "User",
    "Wallet",
]
