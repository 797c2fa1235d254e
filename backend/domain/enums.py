"""
Domain enums for order and payment state.
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    PAYMENT_FAILED = "payment_failed"
    DELIVERED = "delivered"


class PixStatus(str, Enum):
    """Status of an AbacatePay pixQrCode charge."""
    PENDING = "PENDING"
    PAID = "PAID"
    EXPIRED = "EXPIRED"


class SessionKind(str, Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"


# Orders still waiting on the payment provider
OPEN_ORDER_STATUSES = (OrderStatus.PENDING.value, OrderStatus.AWAITING_PAYMENT.value)
