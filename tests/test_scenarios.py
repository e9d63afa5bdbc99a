"""Przebiegi end-to-end: koszyk + silnik cenowy + checkout na prawdziwym kliencie API."""
import random
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from storefront.domain.errors import CheckoutError
from storefront.domain.events import CartEventType, LimitReason
from storefront.domain.schemas import CartState, CatalogRecord
from storefront.services.backend_client import StorefrontApiClient
from storefront.services.cart_service import CartStore
from storefront.services.checkout_service import CardCheckout
from storefront.services.payment_errors import CONFIRMATION_MESSAGES, ConfirmationFailure

P1 = CatalogRecord(id="p1", name="Dog Food", price=Decimal("100"), stock_quantity=3)
P2 = CatalogRecord(id="p2", name="Cat Toy", price=Decimal("50"), promotion_price=Decimal("40"), has_promotion=True)


def _response(status, payload):
    resp = MagicMock()
    resp.ok = status < 400
    resp.status_code = status
    resp.reason = ""
    resp.content = b"{}"
    resp.json.return_value = payload
    return resp


def test_cart_walkthrough(store):
    events = []
    store.subscribe(events.append)

    assert store.add_item(P1, 2) is True
    assert store.max_allowed_for("p1") == 3
    assert store.subtotal == Decimal("200")
    assert store.vat_amount == Decimal("10")
    assert store.grand_total == Decimal("210")

    assert store.add_item(P1, 2) is False
    assert store.quantity_of("p1") == 2
    assert events[-1].reason is LimitReason.STOCK_LIMIT

    store.add_item(P2, 1)
    assert store.subtotal == Decimal("240")
    assert store.original_total == Decimal("250")
    assert store.total_savings == Decimal("10")
    assert store.vat_amount == Decimal("12")
    assert store.grand_total == Decimal("252")

    store.update_quantity("p1", 0)
    assert [i.id for i in store.items] == ["p2"]

    store.clear_cart()
    totals = store.totals()
    assert store.items == []
    assert (totals.subtotal, totals.vat_amount, totals.total_amount, totals.item_count) == (0, 0, 0, 0)
    assert [e.type for e in events][-1] is CartEventType.CART_CLEARED


def test_random_mutations_keep_caps_and_totals(store):
    rng = random.Random(42)
    records = [
        P1,
        P2,
        CatalogRecord(id="p4", name="Hamster Wheel", price=Decimal("19.99"), stock_quantity=0),
        CatalogRecord(id="p5", name="Fish Flakes", price=Decimal("7.25"), stock_quantity=12),
    ]

    for _ in range(300):
        record = rng.choice(records)
        if rng.random() < 0.6:
            store.add_item(record, rng.randint(1, 6))
        else:
            store.update_quantity(record.id, rng.randint(-1, 7))

        for item in store.items:
            assert 1 <= item.quantity <= item.max_allowed <= 5

        totals = store.totals()
        assert totals.total_amount == totals.subtotal + totals.vat_amount
        assert totals.vat_amount == totals.subtotal * Decimal("0.05")
        assert totals.subtotal <= totals.original_total


def test_remove_after_zero_update_matches_single_remove(repo):
    a = CartStore(repo, storage_key="a")
    b = CartStore(repo, storage_key="b")
    for store in (a, b):
        store.add_item(P1, 1)
        store.add_item(P2, 2)

    a.update_quantity("p1", 0)
    a.remove_item("p1")
    b.remove_item("p1")

    assert a.items == b.items


def test_state_serialization_round_trip(store):
    store.add_item(P1, 3)
    store.add_item(P2, 1)

    restored = CartState.model_validate_json(CartState(items=store.items).model_dump_json(by_alias=True))

    assert [(i.id, i.quantity, i.max_allowed) for i in restored.items] == [("p1", 3, 3), ("p2", 1, 5)]


def test_declined_card_payment_cancels_order_once(store, customer, billing):
    session = MagicMock(spec=requests.Session)
    session.request.side_effect = [
        _response(201, {"data": {"_id": "ord_1"}}),
        _response(200, {"clientSecret": "cs_1", "paymentIntentId": "pi_1"}),
        _response(400, {"message": "payment_failed"}),
        _response(200, {"success": True}),
    ]
    api = StorefrontApiClient(base_url="http://backend.test/api", token="", session=session)
    store.add_item(P1, 2)
    checkout = CardCheckout(store, api)

    checkout.start(customer, billing)
    result = checkout.confirm("pm_1")

    calls = [(c.args[0], c.args[1]) for c in session.request.call_args_list]
    assert calls == [
        ("POST", "http://backend.test/api/orders"),
        ("POST", "http://backend.test/api/payments/create-payment-intent"),
        ("POST", "http://backend.test/api/payments/confirm-payment"),
        ("PUT", "http://backend.test/api/orders/ord_1/status"),
    ]
    assert session.request.call_args_list[3].kwargs["json"]["status"] == "cancelled"
    assert result.success is False
    assert store.quantity_of("p1") == 2
    assert checkout.state.error == CONFIRMATION_MESSAGES[ConfirmationFailure.PAYMENT_FAILED]


def test_payment_intent_waits_for_order_id(store, customer, billing):
    session = MagicMock(spec=requests.Session)
    session.request.return_value = _response(201, {"data": {}})
    api = StorefrontApiClient(base_url="http://backend.test/api", token="", session=session)
    store.add_item(P1, 1)
    checkout = CardCheckout(store, api)

    with pytest.raises(CheckoutError) as exc:
        checkout.start(customer, billing)

    assert exc.value.reason == "order_failed"
    assert session.request.call_count == 1
    assert checkout.state.payment_intent_id is None
