# storefront/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Baza dla schematow - w jsonie camelCase jak w API backendu."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =====================================================
# KATALOG
# =====================================================
class CatalogRecord(CamelModel):
    """Produkt albo usluga z katalogu, tylko do odczytu."""

    id: str = Field(..., min_length=1)
    name: str = ""
    price: Decimal = Field(..., ge=0)
    promotion_price: Decimal | None = Field(None, ge=0)
    has_promotion: bool = False
    stock_quantity: int | None = None
    product_code: str | None = None
    unit: str = "piece"
    category: str | None = None
    sub_category: str | None = None
    type: str = "product"
    image: str | None = None

    @classmethod
    def from_backend(cls, raw: dict[str, Any]) -> "CatalogRecord":
        """
        Rekordy produktow i uslug maja rozne nazwy pol w backendzie,
        tutaj sprowadzamy je do jednego ksztaltu.
        """
        promotion = raw.get("promotion") or None
        images = raw.get("images") or raw.get("serviceImages") or []
        price = raw.get("salePrice")
        if price is None:
            price = raw.get("servicePrice")
        if price is None:
            price = raw.get("price", 0)

        return cls(
            id=str(raw.get("_id") or raw.get("id") or ""),
            name=raw.get("productDetail") or raw.get("serviceName") or raw.get("name") or "",
            price=Decimal(str(price)),
            promotion_price=(
                Decimal(str(promotion["price"]))
                if isinstance(promotion, dict) and promotion.get("price") is not None
                else None
            ),
            has_promotion=bool(promotion),
            stock_quantity=raw.get("stockQuantity"),
            product_code=raw.get("productCode") or raw.get("serviceCode"),
            unit=raw.get("unit") or "piece",
            category=raw.get("category") if isinstance(raw.get("category"), str) else None,
            sub_category=raw.get("subCategory") if isinstance(raw.get("subCategory"), str) else None,
            type=raw.get("type") or ("service" if "serviceName" in raw else "product"),
            image=images[0] if images else raw.get("image"),
        )


# =====================================================
# KOSZYK
# =====================================================
class CartLineItem(CamelModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    base_price: Decimal = Field(..., ge=0)
    promotion_price: Decimal | None = None
    has_promotion: bool = False
    quantity: int = Field(..., ge=1)
    stock_quantity: int | None = None
    max_allowed: int = Field(..., ge=1)
    product_code: str | None = None
    unit: str = "piece"
    category: str | None = None
    sub_category: str | None = None
    type: str = "product"
    image: str | None = None

    @model_validator(mode="after")
    def _quantity_within_cap(self):
        if self.quantity > self.max_allowed:
            raise ValueError(
                f"quantity {self.quantity} exceeds maxAllowed {self.max_allowed} for {self.id}"
            )
        return self


class CartState(CamelModel):
    items: List[CartLineItem] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_ids(self):
        ids = [i.id for i in self.items]
        if len(ids) != len(set(ids)):
            raise ValueError("cart items must be unique by id")
        return self


class OrderTotals(CamelModel):
    subtotal: Decimal = Decimal("0")
    original_total: Decimal = Decimal("0")
    savings: Decimal = Decimal("0")
    vat_amount: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    item_count: int = 0


class CartOut(CamelModel):
    items: List[CartLineItem]
    item_count: int
    subtotal: Decimal
    original_total: Decimal
    total_savings: Decimal
    vat_amount: Decimal
    grand_total: Decimal
    vat_rate: Decimal
    formatted_total: str
    locked: bool = False
    degraded: bool = False


class SummaryLine(CamelModel):
    name: str
    quantity: int
    unit_price: Decimal
    original_price: Decimal
    total_price: Decimal
    has_promotion: bool
    product_code: str | None = None


class OrderSummary(OrderTotals):
    items: List[SummaryLine] = Field(default_factory=list)


# =====================================================
# CHECKOUT - dane klienta
# =====================================================
class CustomerInfo(CamelModel):
    name: str = ""
    email: str = ""
    phone: str = ""
    emirates_id: str | None = None


class BillingAddress(CamelModel):
    street: str = ""
    city: str = ""
    emirate: str = ""
    country: str = "UAE"
    postal_code: str | None = None


# =====================================================
# Odpowiedzi zewnetrznego API (kanoniczne ksztalty)
# =====================================================
class OrderRef(CamelModel):
    order_id: str
    status: str | None = None


class PaymentIntent(CamelModel):
    payment_intent_id: str
    client_secret: str


class PaymentConfirmation(CamelModel):
    payment_intent_id: str | None = None
    order_id: str | None = None
    status: str = "succeeded"
    already_confirmed: bool = False


class PaymentStatus(CamelModel):
    payment_intent_id: str
    status: str
    order_id: str | None = None


# =====================================================
# Stan przeplywu platnosci
# =====================================================
class CheckoutStep(str, Enum):
    ORDER = "order"
    PAYMENT = "payment"
    CONFIRMATION = "confirmation"


class CheckoutFlowState(CamelModel):
    current_step: CheckoutStep = CheckoutStep.ORDER
    order_id: str | None = None
    payment_intent_id: str | None = None
    client_secret: str | None = None
    error: str | None = None
    loading: bool = False
    completed: bool = False
    failed: bool = False


class CheckoutResult(CamelModel):
    success: bool
    order_id: str | None = None
    payment_intent_id: str | None = None
    payment_method: str = "stripe"
    payment_status: str | None = None
    reason: str | None = None
    message: str
    totals: OrderTotals | None = None


# =====================================================
# Request / response dla routerow
# =====================================================
class AddItemIn(CamelModel):
    product: CatalogRecord | None = None
    product_id: str | None = None
    quantity: int = Field(1, ge=1, description="Ilosc produktu (musi byc > 0)")

    @model_validator(mode="after")
    def _product_or_id(self):
        if self.product is None and not self.product_id:
            raise ValueError("either product or productId is required")
        return self


class AddItemOut(CamelModel):
    added: bool
    reason: str | None = None
    cart: CartOut


class UpdateQuantityIn(CamelModel):
    quantity: int


class UpdateItemOut(CamelModel):
    updated: bool
    reason: str | None = None
    cart: CartOut


class CheckoutIn(CamelModel):
    customer_info: CustomerInfo
    billing_address: BillingAddress


class ConfirmPaymentIn(CamelModel):
    payment_method_id: str = Field(..., min_length=1)
    payment_intent_id: str | None = None


class PaymentFailureIn(CamelModel):
    code: str | None = None
    type: str | None = None
    message: str = "Payment failed"


class BuyNowIn(CheckoutIn):
    product: CatalogRecord | None = None
    product_id: str | None = None
    quantity: int = Field(1, ge=1)

    @model_validator(mode="after")
    def _product_or_id(self):
        if self.product is None and not self.product_id:
            raise ValueError("either product or productId is required")
        return self


class ToastOut(CamelModel):
    kind: str
    message: str
    created_at: datetime
