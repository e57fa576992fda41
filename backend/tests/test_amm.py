"""
Tests for constant-product pool maths (amm.py).
"""
import pytest

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from amm import (
    MAX_PRICE_IMPACT,
    calculate_price_impact,
    calculate_swap_output,
    min_amount_out,
    spot_price,
    to_base_units,
    to_ui_amount,
)


class TestSwapOutput:
    """Tests for calculate_swap_output."""

    def test_balanced_pool(self):
        """10% of reserves in, 0.25% fee."""
        out = calculate_swap_output(100_000_000, 1_000_000_000, 1_000_000_000, 25)
        assert out == 90_702_432

    def test_output_never_exceeds_reserve(self):
        out = calculate_swap_output(10 ** 30, 1_000, 1_000, 25)
        assert out < 1_000

    def test_empty_pool_returns_zero(self):
        assert calculate_swap_output(100, 0, 1_000) == 0
        assert calculate_swap_output(100, 1_000, 0) == 0

    def test_non_positive_input_returns_zero(self):
        assert calculate_swap_output(0, 1_000, 1_000) == 0
        assert calculate_swap_output(-5, 1_000, 1_000) == 0

    def test_higher_fee_gives_less_output(self):
        low = calculate_swap_output(1_000_000, 10 ** 9, 10 ** 9, 25)
        high = calculate_swap_output(1_000_000, 10 ** 9, 10 ** 9, 100)
        assert high < low


class TestPriceImpact:
    """Tests for calculate_price_impact."""

    def test_reference_case(self):
        """1e9/1e9 reserves, 1e8 in, 0.25% fee."""
        impact = calculate_price_impact(100_000_000, 1_000_000_000, 1_000_000_000, 25)
        assert impact == pytest.approx(9.06, abs=0.02)

    def test_small_trade_has_small_impact(self):
        impact = calculate_price_impact(1_000, 10 ** 12, 10 ** 12, 25)
        assert 0 <= impact < 0.01

    def test_empty_pool_is_full_impact(self):
        assert calculate_price_impact(100, 0, 1_000) == MAX_PRICE_IMPACT
        assert calculate_price_impact(100, 1_000, 0) == MAX_PRICE_IMPACT

    def test_zero_amount_has_no_impact(self):
        assert calculate_price_impact(0, 1_000, 1_000) == 0.0

    def test_impact_grows_with_size(self):
        small = calculate_price_impact(10 ** 6, 10 ** 9, 10 ** 9)
        large = calculate_price_impact(10 ** 8, 10 ** 9, 10 ** 9)
        assert large > small


class TestHelpers:
    """Tests for slippage, price and unit helpers."""

    def test_min_amount_out(self):
        assert min_amount_out(1_000, 500) == 950
        assert min_amount_out(1_000, 0) == 1_000

    def test_spot_price_decimal_adjusted(self):
        # 1M tokens (6 dp) against 100 SOL (9 dp)
        price = spot_price(1_000_000 * 10 ** 6, 100 * 10 ** 9, 6, 9)
        assert price == pytest.approx(0.0001)

    def test_spot_price_empty_pool(self):
        assert spot_price(0, 100, 6, 9) == 0.0

    def test_unit_conversion(self):
        assert to_base_units(1.5, 9) == 1_500_000_000
        assert to_ui_amount(1_500_000, 6) == 1.5
