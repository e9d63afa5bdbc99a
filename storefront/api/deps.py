# storefront/api/deps.py
import threading
from collections import OrderedDict
from dataclasses import dataclass

from fastapi import Header, HTTPException, Request

from storefront.data.database import SessionLocal
from storefront.repos.cart_repo import CartSnapshotRepo
from storefront.services.backend_client import StorefrontApiClient
from storefront.services.cart_service import CartStore
from storefront.services.checkout_service import CardCheckout, CashOnDeliveryCheckout
from storefront.services.lock_service import build_flight_lock
from storefront.services.notification_service import NotificationService
from storefront.utils.settings import CART_SESSION_LIMIT, CART_STORAGE_KEY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CartSession:
    store: CartStore
    card: CardCheckout
    cash: CashOnDeliveryCheckout
    notifications: NotificationService


class StorefrontContainer:
    """
    Budowany raz przy starcie aplikacji, trzyma zaleznosci i sesje
    koszyka per klucz storage.

    Sesje w LRU ograniczonym przez max_sessions. Wyrzucana jest najdawniej
    uzyta sesja bez trwajacego checkoutu, jej koszyk zostaje w bazie
    i wraca przy nastepnym requescie z tym kluczem.
    """

    def __init__(
        self,
        session_factory=SessionLocal,
        api: StorefrontApiClient | None = None,
        flight_lock=None,
        max_sessions: int = CART_SESSION_LIMIT,
    ):
        self.repo = CartSnapshotRepo(session_factory) if session_factory else None
        self.api = api or StorefrontApiClient()
        self.flight_lock = flight_lock or build_flight_lock()
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[str, CartSession] = OrderedDict()
        self._mutex = threading.Lock()

    def session_for(self, cart_key: str) -> CartSession:
        with self._mutex:
            session = self._sessions.get(cart_key)
            if session is None:
                session = self._build(cart_key)
                self._sessions[cart_key] = session
                self._evict()
            else:
                self._sessions.move_to_end(cart_key)
            return session

    def _evict(self) -> None:
        while len(self._sessions) > self.max_sessions:
            #najstarsza sesja bez zablokowanego koszyka, nowa jest na koncu
            victim = next(
                (key for key, s in list(self._sessions.items())[:-1] if not s.store.locked),
                None,
            )
            if victim is None:
                logger.warning(f"All {len(self._sessions)} cart sessions are in checkout, limit exceeded")
                return
            del self._sessions[victim]
            logger.info(f"Cart session '{victim}' evicted")

    @property
    def session_count(self) -> int:
        return len(self._sessions)

    def _build(self, cart_key: str) -> CartSession:
        store = CartStore(self.repo, storage_key=cart_key)
        store.load()

        notifications = NotificationService()
        store.subscribe(notifications.on_cart_event)

        card = CardCheckout(store, self.api, self.flight_lock)
        cash = CashOnDeliveryCheckout(store, self.api, self.flight_lock)
        card.subscribe(notifications.on_checkout_event)
        cash.subscribe(notifications.on_checkout_event)

        logger.info(f"Cart session '{cart_key}' initialised")
        return CartSession(store=store, card=card, cash=cash, notifications=notifications)

    def reset(self) -> None:
        with self._mutex:
            for session in self._sessions.values():
                session.card.reset()
                session.store.reset()
            self._sessions.clear()


def get_container(request: Request) -> StorefrontContainer:
    return request.app.state.container


def get_cart_session(request: Request, x_cart_key: str | None = Header(None)) -> CartSession:
    cart_key = (x_cart_key or CART_STORAGE_KEY).strip()
    if not cart_key or len(cart_key) > 100:
        raise HTTPException(status_code=400, detail="Invalid cart key")
    return get_container(request).session_for(cart_key)
