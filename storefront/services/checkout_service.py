# storefront/services/checkout_service.py
import uuid
from contextlib import contextmanager
from typing import Callable, Iterable, List

from storefront.domain.errors import (
    ApiError,
    CheckoutError,
    CheckoutInProgressError,
    CheckoutValidationError,
    TransientApiError,
)
from storefront.domain.events import CheckoutEvent, CheckoutEventType, CheckoutListener
from storefront.domain.schemas import (
    BillingAddress,
    CartLineItem,
    CatalogRecord,
    CheckoutFlowState,
    CheckoutResult,
    CheckoutStep,
    CustomerInfo,
    PaymentConfirmation,
    PaymentIntent,
    PaymentStatus,
)
from storefront.services import pricing
from storefront.services.backend_client import StorefrontApiClient
from storefront.services.cart_service import CartStore
from storefront.services.lock_service import LocalFlightLock, checkout_lock_key
from storefront.services.order_service import (
    PAYMENT_METHOD_CARD,
    PAYMENT_METHOD_CASH,
    calculate_order_totals,
    create_order_data,
    line_item_from_record,
)
from storefront.services.payment_errors import (
    CONFIRMATION_MESSAGES,
    ConfirmationFailure,
    classify_confirmation_error,
    tokenization_error_message,
)
from storefront.services.validation import UAE_CITIES, UAE_EMIRATES, validate_checkout_input
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
ORDER_ERROR_MESSAGE = "There was an issue creating your order. Please try again."
PAYMENT_INIT_ERROR_MESSAGE = "Payment initialization failed. Please try again."


class _GuardedCheckout:
    """
    Wspolne dla karty i platnosci przy odbiorze: blokada "w locie"
    (double click / rownolegle requesty) i emisja eventow.
    """

    def __init__(self, cart: CartStore, api: StorefrontApiClient, flight_lock=None, lock_key: str | None = None):
        self.cart = cart
        self.api = api
        self.flight_lock = flight_lock or LocalFlightLock()
        self.lock_key = lock_key or checkout_lock_key(cart.storage_key)
        self._listeners: List[CheckoutListener] = []

    def subscribe(self, listener: CheckoutListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: CheckoutEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    @contextmanager
    def _in_flight(self):
        token = uuid.uuid4().hex
        if not self.flight_lock.acquire(self.lock_key, token):
            logger.warning(f"Checkout already in progress for {self.lock_key}, ignoring duplicate call")
            raise CheckoutInProgressError()
        try:
            yield
        finally:
            self.flight_lock.release(self.lock_key, token)

    @staticmethod
    def _validate(
        customer: CustomerInfo,
        billing: BillingAddress,
        supported_cities: Iterable[str],
        supported_emirates: Iterable[str],
    ) -> None:
        errors = validate_checkout_input(customer, billing, supported_cities, supported_emirates)
        if errors:
            raise CheckoutValidationError(errors)


class CardCheckout(_GuardedCheckout):
    """
    Platnosc karta: order -> payment intent -> (tokenizacja w przegladarce)
    -> potwierdzenie.

    Stan tylko do przodu. Blad zostawia przeplyw na kroku, na ktorym
    wystapil (error ustawiony, loading=False). Kazda porazka platnosci po
    utworzeniu zamowienia idzie przez _fail, ktore anuluje zamowienie.
    """

    def __init__(self, cart: CartStore, api: StorefrontApiClient, flight_lock=None, lock_key: str | None = None):
        super().__init__(cart, api, flight_lock, lock_key)
        self.owner = f"card-checkout-{uuid.uuid4().hex[:8]}"
        self._state = CheckoutFlowState()
        self._snapshot: tuple[CartLineItem, ...] = ()
        self._customer: CustomerInfo | None = None
        self._billing: BillingAddress | None = None

    @property
    def state(self) -> CheckoutFlowState:
        return self._state.model_copy()

    @property
    def snapshot(self) -> tuple[CartLineItem, ...]:
        return self._snapshot

    def _update(self, **changes) -> None:
        self._state = self._state.model_copy(update=changes)

    # =====================================================
    # KROK 1 + 2: order, payment intent
    # =====================================================
    def start(
        self,
        customer: CustomerInfo,
        billing: BillingAddress,
        supported_cities: Iterable[str] = UAE_CITIES,
        supported_emirates: Iterable[str] = UAE_EMIRATES,
    ) -> PaymentIntent:
        with self._in_flight():
            self._validate(customer, billing, supported_cities, supported_emirates)

            #poprzedni przeplyw (jesli byl) zwalnia koszyk, nowa proba od zera
            self.cart.release(self.owner)
            snapshot = self.cart.snapshot()
            if not snapshot:
                raise CheckoutError("Your cart is empty", reason="empty_cart")

            self.cart.hold(self.owner)
            self._snapshot = snapshot
            self._customer = customer
            self._billing = billing
            self._state = CheckoutFlowState(loading=True)

            logger.info(f"Card checkout started for {len(snapshot)} items ({self.owner})")

            try:
                order = self.api.create_order(
                    create_order_data(snapshot, customer, billing, PAYMENT_METHOD_CARD)
                )
            except ApiError as e:
                logger.error(f"Order creation failed: {e}")
                self.cart.release(self.owner)
                message = NETWORK_ERROR_MESSAGE if isinstance(e, TransientApiError) else ORDER_ERROR_MESSAGE
                self._stage_failed(message, "order_failed")
                raise CheckoutError(message, reason="order_failed") from e

            self._update(order_id=order.order_id, current_step=CheckoutStep.PAYMENT)
            logger.info(f"Order {order.order_id} created, requesting payment intent")
            self._emit(CheckoutEvent(type=CheckoutEventType.ORDER_CREATED, order_id=order.order_id))

            return self._request_payment_intent()

    def retry_payment_intent(self) -> PaymentIntent:
        """Ponowienie kroku payment dla juz utworzonego zamowienia."""
        state = self._state
        if (
            not state.order_id
            or state.current_step != CheckoutStep.PAYMENT
            or state.client_secret
            or state.failed
        ):
            raise CheckoutError("There is no pending payment to retry", reason="invalid_step", order_id=state.order_id)

        with self._in_flight():
            self._update(loading=True, error=None)
            return self._request_payment_intent()

    def _request_payment_intent(self) -> PaymentIntent:
        order_id = self._state.order_id
        try:
            intent = self.api.create_payment_intent(order_id, self._customer, self._billing)
        except ApiError as e:
            #bez rollbacku - jeszcze nie bylo proby platnosci
            logger.error(f"Payment intent creation failed for order {order_id}: {e}")
            message = NETWORK_ERROR_MESSAGE if isinstance(e, TransientApiError) else (e.message or PAYMENT_INIT_ERROR_MESSAGE)
            self._stage_failed(message, "payment_intent_failed", order_id)
            raise CheckoutError(message, reason="payment_intent_failed", order_id=order_id) from e

        self._update(
            payment_intent_id=intent.payment_intent_id,
            client_secret=intent.client_secret,
            loading=False,
        )
        logger.info(f"Payment intent {intent.payment_intent_id} ready for order {order_id}")
        self._emit(CheckoutEvent(type=CheckoutEventType.PAYMENT_READY, order_id=order_id))
        return intent

    def _stage_failed(self, message: str, reason: str, order_id: str | None = None) -> None:
        self._update(error=message, loading=False)
        self._emit(
            CheckoutEvent(
                type=CheckoutEventType.CHECKOUT_FAILED,
                order_id=order_id,
                reason=reason,
                message=message,
            )
        )

    # =====================================================
    # KROK 3: potwierdzenie
    # =====================================================
    def confirm(self, payment_method_id: str, payment_intent_id: str | None = None) -> CheckoutResult:
        state = self._ensure_open()
        if not state.order_id or not state.payment_intent_id or not state.client_secret:
            raise CheckoutError(
                "No payment intent available for confirmation",
                reason="no_payment_intent",
                order_id=state.order_id,
            )

        with self._in_flight():
            self._update(loading=True, error=None)
            intent_id = payment_intent_id or state.payment_intent_id

            try:
                confirmation = self.api.confirm_payment(intent_id, payment_method_id)
            except ApiError as e:
                failure = classify_confirmation_error(e.message)
                logger.error(f"Payment confirmation failed for order {state.order_id}: {failure.value} ({e})")

                if failure is ConfirmationFailure.ALREADY_CONFIRMED:
                    return self._complete(
                        PaymentConfirmation(
                            payment_intent_id=intent_id,
                            order_id=state.order_id,
                            already_confirmed=True,
                        ),
                        CONFIRMATION_MESSAGES[failure],
                    )

                return self._fail(e.message, failure.value, CONFIRMATION_MESSAGES[failure])

            return self._complete(confirmation, "Payment successful! Order confirmed.")

    def report_tokenization_error(
        self,
        message: str,
        code: str | None = None,
        error_type: str | None = None,
    ) -> CheckoutResult:
        """Blad tokenizacji karty po stronie procesora - bez ponowien."""
        state = self._ensure_open()
        if not state.order_id:
            raise CheckoutError("There is no active checkout", reason="no_order")

        with self._in_flight():
            return self._fail(
                message,
                code or error_type or "card_error",
                tokenization_error_message(code, error_type, message),
            )

    def _fail(self, message: str, reason: str, user_message: str) -> CheckoutResult:
        """
        Jedno miejsce obslugi porazki platnosci: anulowanie zamowienia
        (best effort), komunikat, koszyk zostaje nietkniety.
        """
        order_id = self._state.order_id
        self._update(loading=True, error=None)

        if order_id:
            try:
                self.api.update_order_status(order_id, "cancelled", f"Payment failed: {message}")
                logger.info(f"Order {order_id} status updated to cancelled due to payment failure")
            except ApiError as e:
                # blad wtorny nie przykrywa bledu platnosci
                logger.error(f"Failed to update order {order_id} status to cancelled: {e}")

        self._update(error=user_message, loading=False, failed=True)
        self.cart.release(self.owner)

        self._emit(
            CheckoutEvent(
                type=CheckoutEventType.PAYMENT_FAILED,
                order_id=order_id,
                reason=reason,
                message=user_message,
            )
        )

        return CheckoutResult(
            success=False,
            order_id=order_id,
            payment_intent_id=self._state.payment_intent_id,
            payment_method=PAYMENT_METHOD_CARD,
            payment_status="failed",
            reason=reason,
            message=user_message,
        )

    def _complete(self, confirmation: PaymentConfirmation, message: str) -> CheckoutResult:
        order_id = self._state.order_id
        totals = calculate_order_totals(self._snapshot)

        self._update(current_step=CheckoutStep.CONFIRMATION, loading=False, completed=True, error=None)
        self.cart.release(self.owner)
        self.cart.clear_cart()

        logger.info(f"Payment confirmed for order {order_id}")
        self._emit(
            CheckoutEvent(
                type=CheckoutEventType.PAYMENT_SUCCEEDED,
                order_id=order_id,
                message=message,
                email=self._customer.email if self._customer else None,
            )
        )

        return CheckoutResult(
            success=True,
            order_id=order_id,
            payment_intent_id=confirmation.payment_intent_id or self._state.payment_intent_id,
            payment_method=PAYMENT_METHOD_CARD,
            payment_status=confirmation.status,
            reason=ConfirmationFailure.ALREADY_CONFIRMED.value if confirmation.already_confirmed else None,
            message=message,
            totals=totals,
        )

    def _ensure_open(self) -> CheckoutFlowState:
        state = self._state
        if state.completed or state.failed:
            raise CheckoutError(
                "This checkout has already finished. Please start a new checkout.",
                reason="flow_closed",
                order_id=state.order_id,
            )
        return state

    # =====================================================
    # pomocnicze
    # =====================================================
    def check_payment_status(self) -> PaymentStatus:
        if not self._state.payment_intent_id:
            raise CheckoutError("No payment intent ID available", reason="no_payment_intent")
        return self.api.get_payment_status(self._state.payment_intent_id)

    def reset(self) -> None:
        #zamowienie zostaje w backendzie, backend sam wygasza porzucone
        self.cart.release(self.owner)
        self._state = CheckoutFlowState()
        self._snapshot = ()
        self._customer = None
        self._billing = None
        logger.info(f"Card checkout reset ({self.owner})")


class CashOnDeliveryCheckout(_GuardedCheckout):
    """Zamowienie platne przy odbiorze - jedno wywolanie POST /orders."""

    def place_order(
        self,
        customer: CustomerInfo,
        billing: BillingAddress,
        supported_cities: Iterable[str] = UAE_CITIES,
        supported_emirates: Iterable[str] = UAE_EMIRATES,
    ) -> CheckoutResult:
        with self._in_flight():
            self._validate(customer, billing, supported_cities, supported_emirates)

            if self.cart.locked:
                raise CheckoutError(
                    "A card checkout is in progress. Cancel it before choosing cash on delivery.",
                    reason="cart_locked",
                )

            snapshot = self.cart.snapshot()
            if not snapshot:
                raise CheckoutError("Your cart is empty", reason="empty_cart")

            logger.info(f"Creating cash on delivery order for {customer.name} ({len(snapshot)} items)")
            order_id = self._create_order(snapshot, customer, billing)

            self.cart.clear_cart()
            return self._placed(order_id, customer, snapshot, "Order placed successfully! You will pay on delivery.")

    def buy_now(
        self,
        record: CatalogRecord,
        quantity: int,
        customer: CustomerInfo,
        billing: BillingAddress,
        supported_cities: Iterable[str] = UAE_CITIES,
        supported_emirates: Iterable[str] = UAE_EMIRATES,
    ) -> CheckoutResult:
        """Zakup jednej pozycji z pominieciem koszyka."""
        if quantity <= 0:
            raise ValueError("Quantity must be greater than 0")

        with self._in_flight():
            self._validate(customer, billing, supported_cities, supported_emirates)

            max_allowed = pricing.resolve_max_allowed(record.stock_quantity, self.cart.global_max)
            reason = pricing.check_quantity_limit(
                current=0,
                requested=quantity,
                stock_quantity=record.stock_quantity,
                max_allowed=max_allowed,
                global_max=self.cart.global_max,
            )
            if reason is not None:
                raise CheckoutError(
                    f"You can order at most {max_allowed} of {record.name or record.id}",
                    reason=reason.value,
                )

            item = line_item_from_record(record, quantity, self.cart.global_max)
            logger.info(f"Creating buy-now order for {quantity} x {record.id}")
            order_id = self._create_order((item,), customer, billing)

            return self._placed(order_id, customer, (item,), "Order placed successfully! You will receive a confirmation email.")

    def _create_order(
        self,
        items: tuple[CartLineItem, ...],
        customer: CustomerInfo,
        billing: BillingAddress,
    ) -> str:
        data = create_order_data(items, customer, billing, PAYMENT_METHOD_CASH)
        try:
            order = self.api.create_order(data)
        except ApiError as e:
            logger.error(f"Cash on delivery order creation failed for {customer.name}: {e}")
            message = NETWORK_ERROR_MESSAGE if isinstance(e, TransientApiError) else "Failed to place order. Please try again."
            self._emit(
                CheckoutEvent(
                    type=CheckoutEventType.CHECKOUT_FAILED,
                    payment_method=PAYMENT_METHOD_CASH,
                    reason="order_failed",
                    message=message,
                )
            )
            raise CheckoutError(message, reason="order_failed") from e

        logger.info(f"Cash on delivery order {order.order_id} created")
        return order.order_id

    def _placed(self, order_id: str, customer: CustomerInfo, items, message: str) -> CheckoutResult:
        self._emit(
            CheckoutEvent(
                type=CheckoutEventType.ORDER_PLACED,
                order_id=order_id,
                payment_method=PAYMENT_METHOD_CASH,
                message=message,
                email=customer.email,
            )
        )
        return CheckoutResult(
            success=True,
            order_id=order_id,
            payment_method=PAYMENT_METHOD_CASH,
            payment_status="pending",
            message=message,
            totals=calculate_order_totals(items),
        )
