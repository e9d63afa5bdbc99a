# storefront/services/notification_service.py
import threading
from collections import deque
from datetime import datetime, timezone
from typing import List

from celery.exceptions import CeleryError
from kombu.exceptions import OperationalError

from storefront.celery_worker import celery_app
from storefront.domain.events import (
    CartEvent,
    CartEventType,
    CheckoutEvent,
    CheckoutEventType,
    LimitReason,
)
from storefront.domain.schemas import ToastOut
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

LIMIT_MESSAGES = {
    LimitReason.MAXIMUM_REACHED: "You already have the maximum quantity ({max}) of {name} in your cart.",
    LimitReason.MAX_LIMIT: "You can add at most {max} of {name} per order.",
    LimitReason.STOCK_LIMIT: "Only {max} of {name} available in stock.",
}


class NotificationService:
    """
    Warstwa "toastow": tlumaczy eventy koszyka i checkoutu na komunikaty
    dla UI. Komunikaty czekaja w kolejce az UI je odbierze (drain).
    """

    def __init__(self, max_pending: int = 50):
        self._pending: deque[ToastOut] = deque(maxlen=max_pending)
        self._mutex = threading.Lock()

    def push(self, kind: str, message: str) -> ToastOut:
        toast = ToastOut(kind=kind, message=message, created_at=datetime.now(timezone.utc))
        with self._mutex:
            self._pending.append(toast)
        return toast

    def drain(self) -> List[ToastOut]:
        with self._mutex:
            toasts = list(self._pending)
            self._pending.clear()
        return toasts

    def on_cart_event(self, event: CartEvent) -> None:
        name = event.name or "Item"

        if event.type is CartEventType.ITEM_ADDED:
            self.push("success", f"{name} added to cart!")
        elif event.type is CartEventType.QUANTITY_UPDATED:
            self.push("info", f"{name} quantity updated to {event.quantity}")
        elif event.type is CartEventType.LIMIT_REJECTED:
            template = LIMIT_MESSAGES.get(event.reason, LIMIT_MESSAGES[LimitReason.MAX_LIMIT])
            self.push("warning", template.format(max=event.max_allowed, name=name))
        elif event.type is CartEventType.ITEM_REMOVED:
            self.push("success", "Item removed from cart")
        elif event.type is CartEventType.CART_CLEARED:
            self.push("success", "Cart cleared")

    def on_checkout_event(self, event: CheckoutEvent) -> None:
        if event.type in (CheckoutEventType.PAYMENT_SUCCEEDED, CheckoutEventType.ORDER_PLACED):
            self.push("success", f"{event.message} Order ID: {event.order_id}")
            self.send_order_notification(event.order_id, event.email, event.payment_method)
        elif event.type in (CheckoutEventType.PAYMENT_FAILED, CheckoutEventType.CHECKOUT_FAILED):
            self.push("error", event.message or "Payment failed. Please try again.")

    @staticmethod
    def send_order_notification(order_id: str | None, email: str | None, payment_method: str) -> None:
        """
        Wysyła powiadomienie o przyjęciu zamówienia (Celery, best effort).
        """
        try:
            send_order_notification_task.delay(order_id, email, payment_method)
        except (CeleryError, OperationalError) as e:
            #broker niedostepny, zamowienie i tak przyjete
            logger.warning(f"Failed to dispatch order notification for {order_id}: {e}")


@celery_app.task(name="storefront.services.notification_service.send_order_notification_task")
def send_order_notification_task(order_id: str, email: str | None, payment_method: str):
    """
    Celery task - w prawdziwym systemie wysłałby email/SMS/push.
    Teraz tylko loguje.
    """
    logger.info(f"[NOTIFICATION] Order {order_id} ({payment_method}) confirmed for {email or 'guest'}")

    return {"order_id": order_id, "email": email, "payment_method": payment_method, "status": "sent"}
