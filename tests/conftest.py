"""Pytest fixtures: baza sqlite w pamieci, store koszyka, mock klienta API."""
import os

# przed importem storefront - settings czytaja env przy imporcie
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "1"
os.environ["HTTP_RETRY_ATTEMPTS"] = "3"
os.environ["HTTP_RETRY_WAIT_SECONDS"] = "0"
os.environ["CHECKOUT_LOCK_BACKEND"] = "memory"
os.environ["STOREFRONT_API_TOKEN"] = ""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.api.deps import StorefrontContainer
from storefront.data.database import Base
from storefront.data.models.cart_snapshot import CartSnapshotModel  # noqa: F401
from storefront.domain.schemas import (
    BillingAddress,
    CatalogRecord,
    CustomerInfo,
    OrderRef,
    PaymentConfirmation,
    PaymentIntent,
)
from storefront.main import create_app
from storefront.repos.cart_repo import CartSnapshotRepo
from storefront.services.backend_client import StorefrontApiClient
from storefront.services.cart_service import CartStore
from storefront.services.checkout_service import CardCheckout, CashOnDeliveryCheckout
from storefront.services.lock_service import LocalFlightLock


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def repo(session_factory) -> CartSnapshotRepo:
    return CartSnapshotRepo(session_factory)


@pytest.fixture
def store(repo) -> CartStore:
    store = CartStore(repo, storage_key="testCart")
    store.load()
    return store


@pytest.fixture
def dog_food() -> CatalogRecord:
    return CatalogRecord(id="p1", name="Dog Food", price=Decimal("100.00"), stock_quantity=20)


@pytest.fixture
def cat_toy() -> CatalogRecord:
    # promocja 50 -> 40
    return CatalogRecord(
        id="p2",
        name="Cat Toy",
        price=Decimal("50.00"),
        promotion_price=Decimal("40.00"),
        has_promotion=True,
    )


@pytest.fixture
def bird_seed() -> CatalogRecord:
    # tylko 3 na stanie
    return CatalogRecord(id="p3", name="Bird Seed", price=Decimal("15.50"), stock_quantity=3)


@pytest.fixture
def customer() -> CustomerInfo:
    return CustomerInfo(name="Layla Hassan", email="layla@example.com", phone="+971501234567")


@pytest.fixture
def billing() -> BillingAddress:
    return BillingAddress(street="12 Marina Walk", city="Dubai", emirate="Dubai")


@pytest.fixture
def api() -> MagicMock:
    api = MagicMock(spec=StorefrontApiClient)
    api.create_order.return_value = OrderRef(order_id="order-1", status="pending")
    api.create_payment_intent.return_value = PaymentIntent(
        payment_intent_id="pi_1",
        client_secret="pi_1_secret",
    )
    api.confirm_payment.return_value = PaymentConfirmation(
        payment_intent_id="pi_1",
        order_id="order-1",
        status="succeeded",
    )
    api.update_order_status.return_value = {"success": True}
    return api


@pytest.fixture
def flight_lock() -> LocalFlightLock:
    return LocalFlightLock()


@pytest.fixture
def card(store, api, flight_lock) -> CardCheckout:
    return CardCheckout(store, api, flight_lock)


@pytest.fixture
def cash(store, api, flight_lock) -> CashOnDeliveryCheckout:
    return CashOnDeliveryCheckout(store, api, flight_lock)


@pytest.fixture
def container(session_factory, api) -> StorefrontContainer:
    container = StorefrontContainer(session_factory, api=api, flight_lock=LocalFlightLock())
    yield container
    container.reset()


@pytest.fixture
def client(container):
    with TestClient(create_app(container)) as client:
        yield client
