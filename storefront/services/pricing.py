# storefront/services/pricing.py
"""
Czyste funkcje cenowe - bez stanu, bez storage, bez UI.

Kwoty to Decimal przez caly czas, zaokraglenie do 2 miejsc
dzieje sie dopiero przy formatowaniu (utils/formatters.py).
"""
from decimal import Decimal
from typing import Iterable, NamedTuple

from storefront.domain.events import LimitReason
from storefront.domain.schemas import CartLineItem, CatalogRecord, OrderTotals
from storefront.utils.settings import GLOBAL_MAX_PER_PRODUCT, VAT_RATE

ZERO = Decimal("0")


class PricedLine(NamedTuple):
    unit_price: Decimal
    promotion_price: Decimal | None
    has_promotion: bool
    quantity: int


def effective_unit_price(
    unit_price: Decimal,
    promotion_price: Decimal | None,
    has_promotion: bool,
) -> Decimal:
    if has_promotion and promotion_price:
        return Decimal(promotion_price)
    return Decimal(unit_price)


def line_from_item(item: CartLineItem) -> PricedLine:
    return PricedLine(item.base_price, item.promotion_price, item.has_promotion, item.quantity)


def line_from_record(record: CatalogRecord, quantity: int) -> PricedLine:
    return PricedLine(record.price, record.promotion_price, record.has_promotion, quantity)


def calculate_totals(lines: Iterable[PricedLine], vat_rate: Decimal = VAT_RATE) -> OrderTotals:
    lines = list(lines)

    subtotal = sum(
        (effective_unit_price(l.unit_price, l.promotion_price, l.has_promotion) * l.quantity for l in lines),
        ZERO,
    )
    original_total = sum((Decimal(l.unit_price) * l.quantity for l in lines), ZERO)
    vat_amount = subtotal * Decimal(vat_rate)

    return OrderTotals(
        subtotal=subtotal,
        original_total=original_total,
        savings=original_total - subtotal,
        vat_amount=vat_amount,
        total_amount=subtotal + vat_amount,
        item_count=sum(l.quantity for l in lines),
    )


def resolve_max_allowed(stock_quantity: int | None, global_max: int = GLOBAL_MAX_PER_PRODUCT) -> int:
    #brak stanu magazynowego = bez limitu poza globalnym
    if stock_quantity is None:
        return global_max
    return min(global_max, max(stock_quantity, 0))


def check_quantity_limit(
    current: int,
    requested: int,
    stock_quantity: int | None,
    max_allowed: int,
    global_max: int = GLOBAL_MAX_PER_PRODUCT,
) -> LimitReason | None:
    """
    None gdy current + requested miesci sie w max_allowed, w przeciwnym
    razie powod odrzucenia. Kolejnosc: juz pelne -> magazyn -> limit globalny.
    """
    if current + requested <= max_allowed:
        return None

    if current >= max_allowed:
        return LimitReason.MAXIMUM_REACHED

    if stock_quantity is not None and stock_quantity < global_max:
        return LimitReason.STOCK_LIMIT

    return LimitReason.MAX_LIMIT
