# storefront/services/order_service.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Sequence

from storefront.domain.schemas import (
    BillingAddress,
    CartLineItem,
    CatalogRecord,
    CustomerInfo,
    OrderSummary,
    OrderTotals,
    SummaryLine,
)
from storefront.services import pricing
from storefront.services.cart_service import new_line_item
from storefront.utils.settings import GLOBAL_MAX_PER_PRODUCT, VAT_RATE

PAYMENT_METHOD_CARD = "stripe"
PAYMENT_METHOD_CASH = "cash_on_delivery"


def _wire(amount: Decimal) -> float:
    #json backendu chce liczby, nie stringi
    return float(amount)


def line_item_from_record(
    record: CatalogRecord,
    quantity: int,
    global_max: int = GLOBAL_MAX_PER_PRODUCT,
) -> CartLineItem:
    """Pozycja poza koszykiem (buy now). Waliduje limit jak koszyk."""
    return new_line_item(record, quantity, pricing.resolve_max_allowed(record.stock_quantity, global_max))


def calculate_order_totals(items: Iterable[CartLineItem], vat_rate: Decimal = VAT_RATE) -> OrderTotals:
    return pricing.calculate_totals((pricing.line_from_item(i) for i in items), vat_rate)


def generate_order_summary(items: Sequence[CartLineItem], vat_rate: Decimal = VAT_RATE) -> OrderSummary:
    totals = calculate_order_totals(items, vat_rate)
    lines = []
    for item in items:
        unit_price = pricing.effective_unit_price(item.base_price, item.promotion_price, item.has_promotion)
        lines.append(
            SummaryLine(
                name=item.name,
                quantity=item.quantity,
                unit_price=unit_price,
                original_price=item.base_price,
                total_price=unit_price * item.quantity,
                has_promotion=item.has_promotion,
                product_code=item.product_code,
            )
        )
    return OrderSummary(items=lines, **totals.model_dump())


def _address(billing: BillingAddress) -> dict:
    #API zamowien oczekuje 'state' zamiast 'emirate'
    return {
        "street": billing.street,
        "city": billing.city,
        "state": billing.emirate,
        "country": billing.country or "UAE",
    }


def create_order_data(
    items: Sequence[CartLineItem],
    customer: CustomerInfo,
    billing: BillingAddress,
    payment_method: str = PAYMENT_METHOD_CARD,
    vat_rate: Decimal = VAT_RATE,
) -> dict:
    """
    Body dla POST /orders.

    Pozycje -> {product, quantity, price} z cena efektywna (promocja),
    subtotal/taxAmount/totalAmount liczone silnikiem cenowym.
    """
    totals = calculate_order_totals(items, vat_rate)

    data = {
        "orderType": "normal",
        "customerName": customer.name,
        "contactNumber": customer.phone,
        "email": customer.email,
        "deliveryAddress": _address(billing),
        "billingAddress": _address(billing),
        "products": [
            {
                "product": item.id,
                "quantity": item.quantity,
                "price": _wire(
                    pricing.effective_unit_price(item.base_price, item.promotion_price, item.has_promotion)
                ),
            }
            for item in items
        ],
        "paymentMethod": payment_method,
        "subtotal": _wire(totals.subtotal),
        "taxAmount": _wire(totals.vat_amount),
        "totalAmount": _wire(totals.total_amount),
        "deliveryFee": 0,
        "orderNotes": "",
        "paymentStatus": "pending",
        "orderDate": datetime.now(timezone.utc).isoformat(),
    }
    if customer.emirates_id:
        data["emiratesId"] = customer.emirates_id

    return data
