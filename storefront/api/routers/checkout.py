# storefront/api/routers/checkout.py
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from storefront.api.deps import CartSession, StorefrontContainer, get_cart_session, get_container
from storefront.domain.errors import (
    ApiError,
    CartLockedError,
    CheckoutError,
    CheckoutInProgressError,
    CheckoutValidationError,
)
from storefront.domain.schemas import (
    BuyNowIn,
    CheckoutFlowState,
    CheckoutIn,
    CheckoutResult,
    ConfirmPaymentIn,
    PaymentFailureIn,
    PaymentStatus,
)

router = APIRouter(prefix="/checkout", tags=["checkout"])

#bledy kroku order/payment intent - po stronie backendu
UPSTREAM_REASONS = {"order_failed", "payment_intent_failed"}
CONFLICT_REASONS = {"cart_locked", "flow_closed", "invalid_step", "no_payment_intent", "no_order"}


def _http_error(e: CheckoutError) -> HTTPException:
    detail = {"error": e.message, "reason": e.reason, "orderId": e.order_id}

    if isinstance(e, CheckoutValidationError):
        detail["errors"] = e.errors
        return HTTPException(status_code=422, detail=detail)
    if isinstance(e, CheckoutInProgressError) or e.reason in CONFLICT_REASONS:
        return HTTPException(status_code=409, detail=detail)
    if e.reason in UPSTREAM_REASONS:
        return HTTPException(status_code=502, detail=detail)
    return HTTPException(status_code=400, detail=detail)


def _result_response(result: CheckoutResult, success_status: int = 200) -> JSONResponse:
    #porazka platnosci to 402, body zawsze ten sam ksztalt
    return JSONResponse(
        status_code=success_status if result.success else 402,
        content=result.model_dump(by_alias=True, mode="json"),
    )


# =====================================================
# KARTA
# =====================================================
@router.post("/card")
def start_card_checkout(payload: CheckoutIn, session: CartSession = Depends(get_cart_session)):
    """Tworzy zamowienie i payment intent, zwraca clientSecret dla procesora."""
    try:
        intent = session.card.start(payload.customer_info, payload.billing_address)
    except CartLockedError as e:
        raise HTTPException(status_code=409, detail={"error": str(e), "reason": "cart_locked"})
    except CheckoutError as e:
        raise _http_error(e)

    state = session.card.state
    return {
        "orderId": state.order_id,
        "paymentIntentId": intent.payment_intent_id,
        "clientSecret": intent.client_secret,
        "state": state.model_dump(by_alias=True, mode="json"),
    }


@router.post("/card/payment-intent")
def retry_payment_intent(session: CartSession = Depends(get_cart_session)):
    try:
        intent = session.card.retry_payment_intent()
    except CheckoutError as e:
        raise _http_error(e)
    return intent.model_dump(by_alias=True)


@router.post("/card/confirm", response_model=CheckoutResult)
def confirm_card_payment(payload: ConfirmPaymentIn, session: CartSession = Depends(get_cart_session)):
    try:
        result = session.card.confirm(payload.payment_method_id, payload.payment_intent_id)
    except CheckoutError as e:
        raise _http_error(e)
    return _result_response(result)


@router.post("/card/failure", response_model=CheckoutResult)
def report_card_failure(payload: PaymentFailureIn, session: CartSession = Depends(get_cart_session)):
    """Blad tokenizacji karty zgloszony przez przegladarke."""
    try:
        result = session.card.report_tokenization_error(payload.message, payload.code, payload.type)
    except CheckoutError as e:
        raise _http_error(e)
    return _result_response(result)


@router.get("/card", response_model=CheckoutFlowState)
def get_card_checkout(session: CartSession = Depends(get_cart_session)):
    return session.card.state


@router.get("/card/status", response_model=PaymentStatus)
def get_card_payment_status(session: CartSession = Depends(get_cart_session)):
    try:
        return session.card.check_payment_status()
    except CheckoutError as e:
        raise _http_error(e)
    except ApiError as e:
        raise HTTPException(status_code=502, detail=e.message)


@router.delete("/card", response_model=CheckoutFlowState)
def reset_card_checkout(session: CartSession = Depends(get_cart_session)):
    session.card.reset()
    return session.card.state


# =====================================================
# PLATNOSC PRZY ODBIORZE
# =====================================================
@router.post("/cash-on-delivery", response_model=CheckoutResult, status_code=201)
def place_cash_on_delivery_order(payload: CheckoutIn, session: CartSession = Depends(get_cart_session)):
    try:
        result = session.cash.place_order(payload.customer_info, payload.billing_address)
    except CheckoutError as e:
        raise _http_error(e)
    return _result_response(result, success_status=201)


@router.post("/buy-now", response_model=CheckoutResult, status_code=201)
def buy_now(
    payload: BuyNowIn,
    session: CartSession = Depends(get_cart_session),
    container: StorefrontContainer = Depends(get_container),
):
    record = payload.product
    if record is None:
        try:
            record = container.api.get_product(payload.product_id)
        except ApiError as e:
            raise HTTPException(status_code=404 if e.status_code == 404 else 502, detail=e.message)

    try:
        result = session.cash.buy_now(record, payload.quantity, payload.customer_info, payload.billing_address)
    except CheckoutError as e:
        raise _http_error(e)
    return _result_response(result, success_status=201)
