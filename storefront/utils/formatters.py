# storefront/utils/formatters.py
from decimal import Decimal, ROUND_HALF_UP

from storefront.utils.settings import CURRENCY, DECIMALS


def quantize(amount: Decimal, decimals: int = DECIMALS) -> Decimal:
    return Decimal(amount).quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_HALF_UP)


def format_price(amount, currency: str = CURRENCY) -> str:
    try:
        value = quantize(Decimal(str(amount)))
    except (ArithmeticError, ValueError, TypeError):
        value = quantize(Decimal("0"))
    return f"{currency} {value:,.{DECIMALS}f}"

