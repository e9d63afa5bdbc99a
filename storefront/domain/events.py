# storefront/domain/events.py
from dataclasses import dataclass
from enum import Enum
from typing import Callable


class CartEventType(str, Enum):
    ITEM_ADDED = "item_added"
    QUANTITY_UPDATED = "quantity_updated"
    LIMIT_REJECTED = "limit_rejected"
    ITEM_REMOVED = "item_removed"
    CART_CLEARED = "cart_cleared"


class LimitReason(str, Enum):
    MAXIMUM_REACHED = "maximum_reached"
    MAX_LIMIT = "max_limit"
    STOCK_LIMIT = "stock_limit"


@dataclass(frozen=True)
class CartEvent:
    type: CartEventType
    item_id: str | None = None
    name: str | None = None
    quantity: int = 0
    max_allowed: int | None = None
    reason: LimitReason | None = None


class CheckoutEventType(str, Enum):
    ORDER_CREATED = "order_created"
    PAYMENT_READY = "payment_ready"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    ORDER_PLACED = "order_placed"
    CHECKOUT_FAILED = "checkout_failed"


@dataclass(frozen=True)
class CheckoutEvent:
    type: CheckoutEventType
    order_id: str | None = None
    payment_method: str = "stripe"
    reason: str | None = None
    message: str | None = None
    email: str | None = None


CartListener = Callable[[CartEvent], None]
CheckoutListener = Callable[[CheckoutEvent], None]
