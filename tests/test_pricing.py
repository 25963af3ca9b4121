import math

import pytest
from hypothesis import given, settings, strategies as st

from depthbook.pricing import (
    MAX_TICK,
    MIN_TICK,
    Q96,
    DecimalAdjustment,
    pool_reserves,
    price_to_tick,
    sqrt_price_x96_to_price,
    tick_spacing_for_fee,
    tick_to_price,
    token_amounts,
)

tick_st = st.integers(min_value=-500_000, max_value=500_000)
reference_st = st.floats(min_value=1e-6, max_value=1e6, allow_nan=False, allow_infinity=False)


class TestDecimalAdjustment:
    def test_reference_price_at_current_tick(self):
        for base_is_token0 in (True, False):
            adjustment = DecimalAdjustment.from_reference(2.5, 12345, base_is_token0)
            assert tick_to_price(12345, adjustment) == pytest.approx(2.5, rel=1e-12)

    def test_inverted_orientation_falls_with_tick(self):
        adjustment = DecimalAdjustment.from_reference(1.0, 0, base_is_token0=False)
        assert tick_to_price(100, adjustment) < tick_to_price(0, adjustment) < tick_to_price(-100, adjustment)

    def test_normal_orientation_rises_with_tick(self):
        adjustment = DecimalAdjustment.from_reference(1.0, 0, base_is_token0=True)
        assert tick_to_price(-100, adjustment) < tick_to_price(0, adjustment) < tick_to_price(100, adjustment)

    def test_from_decimals_matches_raw_tick_price(self):
        # token0 with 18 decimals, token1 with 6: 10**12 scale
        adjustment = DecimalAdjustment.from_decimals(18, 6, base_is_token0=True)
        assert tick_to_price(0, adjustment) == pytest.approx(1e12)
        assert tick_to_price(-276324, adjustment) == pytest.approx(1.0001**-276324 * 1e12, rel=1e-9)

    @pytest.mark.parametrize("bad", [0.0, -1.0, float("nan"), float("inf")])
    def test_rejects_unusable_reference(self, bad):
        with pytest.raises(ValueError):
            DecimalAdjustment.from_reference(bad, 0)

    @given(
        tick=tick_st,
        reference=reference_st,
        current=st.integers(-100_000, 100_000),
        base_is_token0=st.booleans(),
    )
    @settings(max_examples=300)
    def test_round_trip_within_one_tick(self, tick, reference, current, base_is_token0):
        adjustment = DecimalAdjustment.from_reference(reference, current, base_is_token0)
        assert abs(price_to_tick(tick_to_price(tick, adjustment), adjustment) - tick) <= 1

    @given(a=st.integers(MIN_TICK, MAX_TICK), b=st.integers(MIN_TICK, MAX_TICK), reference=reference_st)
    @settings(max_examples=200)
    def test_monotonic(self, a, b, reference):
        adjustment = DecimalAdjustment.from_reference(reference, 0, base_is_token0=True)
        lo, hi = min(a, b), max(a, b)
        assert tick_to_price(lo, adjustment) <= tick_to_price(hi, adjustment)

    @given(tick=st.integers(-10**7, 10**7), reference=reference_st, current=st.integers(MIN_TICK, MAX_TICK))
    @settings(max_examples=200)
    def test_never_returns_non_finite(self, tick, reference, current):
        adjustment = DecimalAdjustment.from_reference(reference, current)
        price = tick_to_price(tick, adjustment)
        assert math.isfinite(price)
        assert adjustment.price_floor <= price <= adjustment.price_ceiling

    def test_price_to_tick_rejects_non_positive(self):
        adjustment = DecimalAdjustment.from_reference(1.0, 0)
        with pytest.raises(ValueError):
            price_to_tick(0.0, adjustment)


class TestTokenAmounts:
    def test_single_tick_range(self):
        liquidity = 10**18
        base, quote = token_amounts(liquidity, 0, 1, True, 18, 18)
        assert base == pytest.approx(1 - 1 / math.sqrt(1.0001), rel=1e-9)
        assert quote == pytest.approx(math.sqrt(1.0001) - 1, rel=1e-9)

    def test_orientation_swaps_amounts(self):
        normal = token_amounts(10**20, -600, 600, True, 18, 6)
        inverted = token_amounts(10**20, -600, 600, False, 6, 18)
        assert normal[0] == pytest.approx(inverted[1])
        assert normal[1] == pytest.approx(inverted[0])

    def test_reversed_bounds_are_normalized(self):
        assert token_amounts(10**18, 600, -600, True, 18, 18) == token_amounts(10**18, -600, 600, True, 18, 18)


class TestPoolHelpers:
    def test_sqrt_price_to_price(self):
        assert sqrt_price_x96_to_price(Q96, 18, 18) == pytest.approx(1.0)
        assert sqrt_price_x96_to_price(2 * Q96, 18, 6) == pytest.approx(4e12)

    def test_pool_reserves(self):
        reserve0, reserve1 = pool_reserves(Q96, 10**18, 18, 18)
        assert reserve0 == pytest.approx(1.0)
        assert reserve1 == pytest.approx(1.0)
        assert pool_reserves(None, 10**18, 18, 18) == (0.0, 0.0)
        assert pool_reserves(Q96, 0, 18, 18) == (0.0, 0.0)

    @pytest.mark.parametrize("fee,spacing", [(100, 1), (500, 10), (3000, 60), (10000, 200), (2500, 60)])
    def test_tick_spacing_for_fee(self, fee, spacing):
        assert tick_spacing_for_fee(fee) == spacing
