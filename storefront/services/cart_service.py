# storefront/services/cart_service.py
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, List, Union

from sqlalchemy.exc import SQLAlchemyError

from storefront.domain.errors import CartLockedError
from storefront.domain.events import CartEvent, CartEventType, CartListener, LimitReason
from storefront.domain.schemas import CartLineItem, CartState, CatalogRecord, OrderTotals
from storefront.repos.cart_repo import CartSnapshotRepo
from storefront.services import pricing
from storefront.utils.settings import CART_STORAGE_KEY, GLOBAL_MAX_PER_PRODUCT, VAT_RATE
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


# =====================================================
# AKCJE + REDUCER
# =====================================================
@dataclass(frozen=True)
class AddItem:
    record: CatalogRecord
    quantity: int
    max_allowed: int


@dataclass(frozen=True)
class UpdateQuantity:
    id: str
    quantity: int


@dataclass(frozen=True)
class RemoveItem:
    id: str


@dataclass(frozen=True)
class ClearCart:
    pass


@dataclass(frozen=True)
class LoadCart:
    state: CartState


CartAction = Union[AddItem, UpdateQuantity, RemoveItem, ClearCart, LoadCart]


def new_line_item(record: CatalogRecord, quantity: int, max_allowed: int) -> CartLineItem:
    return CartLineItem(
        id=record.id,
        name=record.name,
        base_price=record.price,
        promotion_price=record.promotion_price if record.has_promotion else None,
        has_promotion=record.has_promotion,
        quantity=quantity,
        stock_quantity=record.stock_quantity,
        max_allowed=max_allowed,
        product_code=record.product_code,
        unit=record.unit,
        category=record.category,
        sub_category=record.sub_category,
        type=record.type,
        image=record.image,
    )


def cart_reducer(state: CartState, action: CartAction) -> CartState:
    """
    Czysta funkcja (state, action) -> state'. Limity sprawdza CartStore
    zanim cokolwiek tu trafi, reducer tylko przeksztalca liste.
    """
    if isinstance(action, AddItem):
        items = []
        found = False
        for item in state.items:
            if item.id == action.record.id:
                #limit liczony ze swiezego rekordu katalogu, cache na pozycji tez
                items.append(
                    item.model_copy(
                        update={
                            "quantity": item.quantity + action.quantity,
                            "max_allowed": action.max_allowed,
                            "stock_quantity": action.record.stock_quantity,
                        }
                    )
                )
                found = True
            else:
                items.append(item)
        if not found:
            items.append(new_line_item(action.record, action.quantity, action.max_allowed))
        return CartState(items=items)

    if isinstance(action, UpdateQuantity):
        if action.quantity <= 0:
            return CartState(items=[i for i in state.items if i.id != action.id])
        return CartState(
            items=[
                i.model_copy(update={"quantity": action.quantity}) if i.id == action.id else i
                for i in state.items
            ]
        )

    if isinstance(action, RemoveItem):
        return CartState(items=[i for i in state.items if i.id != action.id])

    if isinstance(action, ClearCart):
        return CartState()

    if isinstance(action, LoadCart):
        return action.state

    return state


# =====================================================
# STORE
# =====================================================
class CartStore:
    """
    Jedyny wlasciciel stanu koszyka.

    Kazda mutacja: sprawdzenie limitow -> reducer -> zapis (write-through)
    -> event. Przekroczenie limitu to nie wyjatek, tylko False + event
    LIMIT_REJECTED. Bledy zapisu/odczytu sa logowane, koszyk dziala dalej
    w pamieci (degraded).
    """

    def __init__(
        self,
        repo: CartSnapshotRepo | None = None,
        storage_key: str = CART_STORAGE_KEY,
        global_max: int = GLOBAL_MAX_PER_PRODUCT,
        vat_rate: Decimal = VAT_RATE,
    ):
        self.repo = repo
        self.storage_key = storage_key
        self.global_max = global_max
        self.vat_rate = vat_rate

        self._state = CartState()
        self._listeners: List[CartListener] = []
        self._lock = threading.RLock()
        self._held_by: str | None = None
        self._loaded = False
        self.degraded = repo is None

    # -------------------- lifecycle --------------------
    def load(self) -> None:
        """Jednorazowe nawodnienie ze storage przy starcie."""
        with self._lock:
            if self._loaded:
                return
            self._loaded = True

            if self.repo is None:
                return

            try:
                raw = self.repo.load(self.storage_key)
            except SQLAlchemyError as e:
                logger.error(f"Error loading cart '{self.storage_key}' from storage: {e}")
                logger.warning("Cart running in-memory only")
                self.degraded = True
                return

            if not raw:
                return

            try:
                state = CartState.model_validate_json(raw)
            except ValueError as e:
                #uszkodzone dane -> pusty koszyk, nigdy crash
                logger.error(f"Stored cart '{self.storage_key}' is unreadable, starting empty: {e}")
                return

            self._state = cart_reducer(self._state, LoadCart(state))
            logger.info(f"Cart '{self.storage_key}' loaded with {len(state.items)} items")

    def reset(self, purge: bool = False) -> None:
        """Czysty stan (testy, wylogowanie). purge=True usuwa tez zapis."""
        with self._lock:
            self._state = CartState()
            self._held_by = None
            self._loaded = False
            if purge and self.repo is not None:
                try:
                    self.repo.delete(self.storage_key)
                except SQLAlchemyError as e:
                    logger.error(f"Error purging cart '{self.storage_key}': {e}")

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -------------------- checkout hold --------------------
    def hold(self, owner: str) -> None:
        with self._lock:
            if self._held_by and self._held_by != owner:
                raise CartLockedError("Cart is locked by another checkout")
            self._held_by = owner
            logger.info(f"Cart '{self.storage_key}' held by {owner}")

    def release(self, owner: str) -> None:
        with self._lock:
            if self._held_by == owner:
                self._held_by = None
                logger.info(f"Cart '{self.storage_key}' released by {owner}")

    @property
    def locked(self) -> bool:
        return self._held_by is not None

    def _ensure_mutable(self) -> None:
        if self._held_by is not None:
            raise CartLockedError(
                "Cart cannot be changed while checkout is in progress. Cancel the checkout first."
            )

    # -------------------- commands --------------------
    def add_item(self, record: CatalogRecord, quantity: int = 1) -> bool:
        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")

        with self._lock:
            self._ensure_mutable()

            max_allowed = pricing.resolve_max_allowed(record.stock_quantity, self.global_max)
            existing = self._find(record.id)
            current = existing.quantity if existing else 0

            reason = pricing.check_quantity_limit(
                current=current,
                requested=quantity,
                stock_quantity=record.stock_quantity,
                max_allowed=max_allowed,
                global_max=self.global_max,
            )
            if reason is not None:
                logger.info(
                    f"Add rejected for {record.id}: {reason.value} "
                    f"(current={current}, requested={quantity}, max={max_allowed})"
                )
                self._emit(
                    CartEvent(
                        type=CartEventType.LIMIT_REJECTED,
                        item_id=record.id,
                        name=record.name,
                        quantity=current,
                        max_allowed=max_allowed,
                        reason=reason,
                    )
                )
                return False

            self._apply(AddItem(record=record, quantity=quantity, max_allowed=max_allowed))
            logger.info(f"Added {quantity} x {record.id} to cart '{self.storage_key}'")

        self._emit(
            CartEvent(
                type=CartEventType.ITEM_ADDED,
                item_id=record.id,
                name=record.name,
                quantity=current + quantity,
                max_allowed=max_allowed,
            )
        )
        return True

    def update_quantity(self, item_id: str, quantity: int) -> bool:
        with self._lock:
            self._ensure_mutable()

            item = self._find(item_id)
            if item is None:
                return False

            if quantity <= 0:
                return self._remove(item)

            if quantity > item.max_allowed:
                reason = pricing.check_quantity_limit(
                    current=0,
                    requested=quantity,
                    stock_quantity=item.stock_quantity,
                    max_allowed=item.max_allowed,
                    global_max=self.global_max,
                )
                self._emit(
                    CartEvent(
                        type=CartEventType.LIMIT_REJECTED,
                        item_id=item.id,
                        name=item.name,
                        quantity=item.quantity,
                        max_allowed=item.max_allowed,
                        reason=reason or LimitReason.MAX_LIMIT,
                    )
                )
                return False

            self._apply(UpdateQuantity(id=item_id, quantity=quantity))

        self._emit(
            CartEvent(
                type=CartEventType.QUANTITY_UPDATED,
                item_id=item.id,
                name=item.name,
                quantity=quantity,
                max_allowed=item.max_allowed,
            )
        )
        return True

    def remove_item(self, item_id: str) -> None:
        with self._lock:
            self._ensure_mutable()
            item = self._find(item_id)
            if item is None:
                #nie ma czego usuwac, no-op
                return
            self._remove(item)

    def clear_cart(self) -> None:
        with self._lock:
            self._ensure_mutable()
            self._apply(ClearCart())
            logger.info(f"Cart '{self.storage_key}' cleared")
        self._emit(CartEvent(type=CartEventType.CART_CLEARED))

    # -------------------- queries --------------------
    @property
    def items(self) -> List[CartLineItem]:
        return list(self._state.items)

    def snapshot(self) -> tuple[CartLineItem, ...]:
        """Niezmienna kopia pozycji dla checkoutu."""
        with self._lock:
            return tuple(i.model_copy() for i in self._state.items)

    def totals(self) -> OrderTotals:
        return pricing.calculate_totals(
            (pricing.line_from_item(i) for i in self._state.items),
            self.vat_rate,
        )

    @property
    def item_count(self) -> int:
        return sum(i.quantity for i in self._state.items)

    @property
    def subtotal(self) -> Decimal:
        return self.totals().subtotal

    @property
    def original_total(self) -> Decimal:
        return self.totals().original_total

    @property
    def total_savings(self) -> Decimal:
        return self.totals().savings

    @property
    def vat_amount(self) -> Decimal:
        return self.totals().vat_amount

    @property
    def grand_total(self) -> Decimal:
        return self.totals().total_amount

    def is_in_cart(self, item_id: str) -> bool:
        return self._find(item_id) is not None

    def quantity_of(self, item_id: str) -> int:
        item = self._find(item_id)
        return item.quantity if item else 0

    def max_allowed_for(self, item_id: str) -> int:
        item = self._find(item_id)
        return item.max_allowed if item else self.global_max

    def can_add_more(self, item_id: str) -> bool:
        item = self._find(item_id)
        return item is None or item.quantity < item.max_allowed

    # -------------------- internals --------------------
    def _find(self, item_id: str) -> CartLineItem | None:
        for item in self._state.items:
            if item.id == item_id:
                return item
        return None

    def _remove(self, item: CartLineItem) -> bool:
        self._apply(RemoveItem(id=item.id))
        logger.info(f"Removed {item.id} from cart '{self.storage_key}'")
        self._emit(CartEvent(type=CartEventType.ITEM_REMOVED, item_id=item.id, name=item.name))
        return True

    def _apply(self, action: CartAction) -> None:
        self._state = cart_reducer(self._state, action)
        self._persist()

    def _persist(self) -> None:
        if self.repo is None:
            return
        try:
            self.repo.save(self.storage_key, self._state.model_dump_json(by_alias=True))
        except SQLAlchemyError as e:
            if not self.degraded:
                logger.warning("Cart storage unavailable, continuing in-memory only")
            logger.error(f"Error saving cart '{self.storage_key}' to storage: {e}")
            self.degraded = True
        else:
            self.degraded = False

    def _emit(self, event: CartEvent) -> None:
        for listener in list(self._listeners):
            listener(event)
