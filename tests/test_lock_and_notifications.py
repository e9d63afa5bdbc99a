from unittest.mock import MagicMock, patch

import pytest
from kombu.exceptions import OperationalError

from storefront.domain.events import (
    CartEvent,
    CartEventType,
    CheckoutEvent,
    CheckoutEventType,
    LimitReason,
)
from storefront.services.lock_service import (
    LocalFlightLock,
    RedisFlightLock,
    build_flight_lock,
    checkout_lock_key,
)
from storefront.services.notification_service import NotificationService, send_order_notification_task

TASK = "storefront.services.notification_service.send_order_notification_task"


class TestLocalFlightLock:
    def test_single_holder(self):
        lock = LocalFlightLock()
        key = checkout_lock_key("pawsCart")

        assert key == "checkout:pawsCart:lock"
        assert lock.acquire(key, "a") is True
        assert lock.acquire(key, "b") is False
        assert lock.release(key, "b") is False
        assert lock.release(key, "a") is True
        assert lock.acquire(key, "b") is True

    def test_expired_lock_can_be_taken(self):
        lock = LocalFlightLock()

        lock.acquire("k", "a", ttl=0)

        assert lock.acquire("k", "b") is True

    def test_keys_are_independent(self):
        lock = LocalFlightLock()
        assert lock.acquire("k1", "a") is True
        assert lock.acquire("k2", "a") is True


class TestRedisFlightLock:
    def test_acquire_uses_set_nx_ex(self):
        client = MagicMock()
        client.set.return_value = True
        lock = RedisFlightLock(client=client)

        assert lock.acquire("checkout:c:lock", "owner-1", ttl=30) is True
        client.set.assert_called_once_with(name="checkout:c:lock", value="owner-1", nx=True, ex=30)

    def test_acquire_busy(self):
        client = MagicMock()
        client.set.return_value = None
        assert RedisFlightLock(client=client).acquire("k", "o") is False

    def test_release_only_by_owner(self):
        client = MagicMock()
        client.eval.return_value = 0
        lock = RedisFlightLock(client=client)

        assert lock.release("k", "intruder") is False
        args = client.eval.call_args.args
        assert args[1:] == (1, "k", "intruder")


class TestBuildFlightLock:
    def test_memory_backend(self):
        assert isinstance(build_flight_lock("memory"), LocalFlightLock)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_flight_lock("zookeeper")


class TestNotificationService:
    def test_cart_toasts(self):
        service = NotificationService()

        service.on_cart_event(CartEvent(type=CartEventType.ITEM_ADDED, item_id="p1", name="Dog Food", quantity=1))
        service.on_cart_event(
            CartEvent(
                type=CartEventType.LIMIT_REJECTED,
                item_id="p3",
                name="Bird Seed",
                max_allowed=3,
                reason=LimitReason.STOCK_LIMIT,
            )
        )
        service.on_cart_event(CartEvent(type=CartEventType.ITEM_REMOVED, item_id="p1"))
        service.on_cart_event(CartEvent(type=CartEventType.CART_CLEARED))

        toasts = service.drain()

        assert [(t.kind, t.message) for t in toasts] == [
            ("success", "Dog Food added to cart!"),
            ("warning", "Only 3 of Bird Seed available in stock."),
            ("success", "Item removed from cart"),
            ("success", "Cart cleared"),
        ]
        assert service.drain() == []

    def test_pending_queue_is_bounded(self):
        service = NotificationService(max_pending=2)
        for i in range(5):
            service.push("info", f"m{i}")

        assert [t.message for t in service.drain()] == ["m3", "m4"]

    def test_success_dispatches_notification(self):
        service = NotificationService()

        with patch(TASK) as task:
            service.on_checkout_event(
                CheckoutEvent(
                    type=CheckoutEventType.ORDER_PLACED,
                    order_id="o1",
                    payment_method="cash_on_delivery",
                    message="Order placed successfully!",
                    email="layla@example.com",
                )
            )

        task.delay.assert_called_once_with("o1", "layla@example.com", "cash_on_delivery")
        assert service.drain()[0].message == "Order placed successfully! Order ID: o1"

    def test_dispatch_failure_is_not_fatal(self):
        service = NotificationService()

        with patch(TASK) as task:
            task.delay.side_effect = OperationalError("broker down")
            service.on_checkout_event(
                CheckoutEvent(type=CheckoutEventType.PAYMENT_SUCCEEDED, order_id="o1", message="Paid.")
            )

        assert service.drain()[0].kind == "success"

    def test_dispatch_bug_is_not_swallowed(self):
        service = NotificationService()

        with patch(TASK) as task:
            task.delay.side_effect = TypeError("unexpected argument")
            with pytest.raises(TypeError):
                service.send_order_notification("o1", "layla@example.com", "stripe")

    def test_failure_toast(self):
        service = NotificationService()

        service.on_checkout_event(
            CheckoutEvent(type=CheckoutEventType.PAYMENT_FAILED, order_id="o1", message="Card declined")
        )

        assert [(t.kind, t.message) for t in service.drain()] == [("error", "Card declined")]

    def test_task_runs_locally(self):
        result = send_order_notification_task("o1", None, "stripe")
        assert result == {"order_id": "o1", "email": None, "payment_method": "stripe", "status": "sent"}
