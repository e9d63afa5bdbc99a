#storefront/api/routers/carts.py
from contextlib import contextmanager
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from storefront.api.deps import CartSession, StorefrontContainer, get_cart_session, get_container
from storefront.domain.errors import ApiError, CartLockedError
from storefront.domain.events import CartEvent, CartEventType
from storefront.domain.schemas import (
    AddItemIn,
    AddItemOut,
    CartOut,
    OrderSummary,
    ToastOut,
    UpdateItemOut,
    UpdateQuantityIn,
)
from storefront.services.cart_service import CartStore
from storefront.services.order_service import generate_order_summary
from storefront.utils.formatters import format_price

router = APIRouter(prefix="/cart", tags=["cart"])


def cart_out(store: CartStore) -> CartOut:
    totals = store.totals()
    return CartOut(
        items=store.items,
        item_count=totals.item_count,
        subtotal=totals.subtotal,
        original_total=totals.original_total,
        total_savings=totals.savings,
        vat_amount=totals.vat_amount,
        grand_total=totals.total_amount,
        vat_rate=store.vat_rate,
        formatted_total=format_price(totals.total_amount),
        locked=store.locked,
        degraded=store.degraded,
    )


@contextmanager
def limit_rejections(store: CartStore):
    """Zbiera eventy LIMIT_REJECTED - mutacje zwracaja tylko bool."""
    rejected: List[CartEvent] = []

    def collect(event: CartEvent) -> None:
        if event.type is CartEventType.LIMIT_REJECTED:
            rejected.append(event)

    unsubscribe = store.subscribe(collect)
    try:
        yield rejected
    finally:
        unsubscribe()


def _reason(rejected: List[CartEvent]) -> str | None:
    if rejected and rejected[-1].reason:
        return rejected[-1].reason.value
    return None


@router.get("", response_model=CartOut)
def get_cart(session: CartSession = Depends(get_cart_session)):
    return cart_out(session.store)


@router.get("/summary", response_model=OrderSummary)
def get_summary(session: CartSession = Depends(get_cart_session)):
    return generate_order_summary(session.store.items, session.store.vat_rate)


@router.post("/items", response_model=AddItemOut)
def add_item(
    payload: AddItemIn,
    session: CartSession = Depends(get_cart_session),
    container: StorefrontContainer = Depends(get_container),
):
    record = payload.product
    if record is None:
        try:
            record = container.api.get_product(payload.product_id)
        except ApiError as e:
            raise HTTPException(status_code=404 if e.status_code == 404 else 502, detail=e.message)

    with limit_rejections(session.store) as rejected:
        try:
            added = session.store.add_item(record, payload.quantity)
        except CartLockedError as e:
            raise HTTPException(status_code=409, detail=str(e))

    return AddItemOut(added=added, reason=_reason(rejected), cart=cart_out(session.store))


@router.patch("/items/{item_id}", response_model=UpdateItemOut)
def update_item(
    item_id: str,
    payload: UpdateQuantityIn,
    session: CartSession = Depends(get_cart_session),
):
    if not session.store.is_in_cart(item_id):
        raise HTTPException(status_code=404, detail="Item not found in cart")

    with limit_rejections(session.store) as rejected:
        try:
            updated = session.store.update_quantity(item_id, payload.quantity)
        except CartLockedError as e:
            raise HTTPException(status_code=409, detail=str(e))

    return UpdateItemOut(updated=updated, reason=_reason(rejected), cart=cart_out(session.store))


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(item_id: str, session: CartSession = Depends(get_cart_session)):
    try:
        session.store.remove_item(item_id)
    except CartLockedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return cart_out(session.store)


@router.delete("", response_model=CartOut)
def clear_cart(session: CartSession = Depends(get_cart_session)):
    try:
        session.store.clear_cart()
    except CartLockedError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return cart_out(session.store)


@router.get("/notifications", response_model=List[ToastOut])
def drain_notifications(session: CartSession = Depends(get_cart_session)):
    return session.notifications.drain()
