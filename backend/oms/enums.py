# Overview: Closed enumerations for status codes, approval states and audit actions.

from __future__ import annotations

from enum import Enum


class OrderStatusCode(str, Enum):
    """
    Order status codes.

    Tenants may rename or recolor a status, but transition semantics are
    keyed by these codes only (see services/order_status_service.py).
    """
    NEW = "new"
    UNDER_REVIEW = "under_review"
    PREPARING = "preparing"
    READY = "ready"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    CASH_ON_DELIVERY = "cod"
    WALLET = "wallet"
    OTHER = "other"


class PurchaseAuditAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    PAID_AMOUNT_UPDATED = "paid_amount_updated"
    STOCK_APPLIED = "stock_applied"
    STOCK_REMOVED = "stock_removed"
    PRICE_UPDATED = "price_updated"
    PRICE_ROLLED_BACK = "price_rolled_back"
    DELETED = "deleted"


def coerce_enum(enum_cls, value):
    """
    Convert a raw string (or enum member) into enum_cls.

    Raises ValueError listing the allowed values when value is unknown.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"Invalid {enum_cls.__name__} '{value}'. Must be one of: {allowed}") from None
