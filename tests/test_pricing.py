from decimal import Decimal

import pytest

from storefront.domain.events import LimitReason
from storefront.services import pricing
from storefront.services.pricing import PricedLine
from storefront.utils.formatters import format_price, quantize


class TestEffectiveUnitPrice:
    def test_promotion_price_used_when_active(self):
        assert pricing.effective_unit_price(Decimal("50"), Decimal("40"), True) == Decimal("40")

    def test_promotion_ignored_when_flag_off(self):
        assert pricing.effective_unit_price(Decimal("50"), Decimal("40"), False) == Decimal("50")

    def test_missing_promotion_price_falls_back_to_base(self):
        assert pricing.effective_unit_price(Decimal("50"), None, True) == Decimal("50")


class TestCalculateTotals:
    def test_totals_with_promotion_and_vat(self):
        totals = pricing.calculate_totals(
            [
                PricedLine(Decimal("50"), Decimal("40"), True, 2),
                PricedLine(Decimal("100"), None, False, 1),
            ],
            Decimal("0.05"),
        )

        assert totals.subtotal == Decimal("180")
        assert totals.original_total == Decimal("200")
        assert totals.savings == Decimal("20")
        assert totals.vat_amount == Decimal("9.00")
        assert totals.total_amount == Decimal("189.00")
        assert totals.item_count == 3

    def test_empty_cart_is_all_zero(self):
        totals = pricing.calculate_totals([])

        assert totals.subtotal == 0
        assert totals.total_amount == 0
        assert totals.item_count == 0

    def test_total_is_subtotal_plus_vat(self):
        totals = pricing.calculate_totals([PricedLine(Decimal("15.50"), None, False, 3)])

        assert totals.total_amount == totals.subtotal + totals.vat_amount
        assert totals.savings == totals.original_total - totals.subtotal

    def test_no_float_drift_before_formatting(self):
        totals = pricing.calculate_totals([PricedLine(Decimal("0.10"), None, False, 3)], Decimal("0"))
        assert totals.subtotal == Decimal("0.30")


class TestResolveMaxAllowed:
    @pytest.mark.parametrize(
        "stock, expected",
        [(None, 5), (10, 5), (5, 5), (3, 3), (0, 0), (-2, 0)],
    )
    def test_cap_is_min_of_global_and_stock(self, stock, expected):
        assert pricing.resolve_max_allowed(stock, 5) == expected


class TestCheckQuantityLimit:
    def test_within_cap(self):
        assert pricing.check_quantity_limit(2, 3, None, 5, 5) is None

    def test_already_at_cap(self):
        assert pricing.check_quantity_limit(5, 1, None, 5, 5) is LimitReason.MAXIMUM_REACHED

    def test_stock_below_global_max(self):
        assert pricing.check_quantity_limit(2, 2, 3, 3, 5) is LimitReason.STOCK_LIMIT

    def test_global_limit(self):
        assert pricing.check_quantity_limit(3, 3, None, 5, 5) is LimitReason.MAX_LIMIT
        assert pricing.check_quantity_limit(3, 3, 50, 5, 5) is LimitReason.MAX_LIMIT


class TestFormatters:
    def test_format_price_rounds_half_up_with_separator(self):
        assert format_price(Decimal("1234.505")) == "AED 1,234.51"

    def test_format_price_invalid_input(self):
        assert format_price("not-a-number") == "AED 0.00"
        assert format_price(None) == "AED 0.00"

    def test_quantize(self):
        assert quantize(Decimal("2.345")) == Decimal("2.35")
