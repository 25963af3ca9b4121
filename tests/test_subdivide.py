import math

import pytest
from hypothesis import given, settings, strategies as st

from depthbook.orderbook import aggregate_levels, assemble
from depthbook.pricing import DecimalAdjustment
from depthbook.subdivide import LevelContext, SubdivisionBounds, build_level, subdivide, subdivide_all
from depthbook.types import LiquidityInterval, LiquidityLevel, ProtocolKind, Side


def context(reference=1.0, current_tick=0, base_is_token0=True, bounds=None):
    adjustment = DecimalAdjustment.from_reference(reference, current_tick, base_is_token0)
    return LevelContext(adjustment, 18, 18, bounds or SubdivisionBounds())


def level(price, usd=1.0, base=1.0):
    return LiquidityLevel(
        price=price,
        price_lower=price * 0.99,
        price_upper=price * 1.01,
        base_amount=base,
        quote_amount=base * price,
        liquidity_usd=usd,
    )


class TestSubdivide:
    def test_wide_precision_keeps_interval_whole(self):
        ctx = context()
        interval = LiquidityInterval(0, 60, 10**18)
        levels = subdivide(interval, Side.ASK, precision=1.0, ctx=ctx)
        assert len(levels) == 1
        only = levels[0]
        assert (only.tick_lower, only.tick_upper) == (0, 60)
        assert only.price == only.price_upper
        assert only.price_lower == pytest.approx(1.0)

    def test_zero_precision_keeps_interval_whole(self):
        levels = subdivide(LiquidityInterval(-60, 0, 10**18), Side.BID, precision=0.0, ctx=context())
        assert len(levels) == 1
        assert levels[0].price == levels[0].price_lower

    def test_ask_buckets_walk_up(self):
        ctx = context()
        interval = LiquidityInterval(0, 6000, 10**18)
        levels = subdivide(interval, Side.ASK, precision=0.1, ctx=ctx)
        assert len(levels) > 1
        assert levels[0].price_lower == pytest.approx(1.0)
        prices = [l.price for l in levels]
        assert prices == sorted(prices)
        upper = ctx.adjustment.tick_to_price(6000)
        assert all(1.0 <= l.price_lower < l.price_upper <= upper for l in levels)

    def test_bid_buckets_walk_down(self):
        ctx = context()
        interval = LiquidityInterval(-6000, 0, 10**18)
        levels = subdivide(interval, Side.BID, precision=0.1, ctx=ctx)
        assert len(levels) > 1
        prices = [l.price for l in levels]
        assert prices == sorted(prices, reverse=True)
        assert all(l.price_lower < l.price_upper <= 1.0 for l in levels)

    def test_subdivision_cap(self):
        ctx = context(bounds=SubdivisionBounds(max_subdivisions=5))
        levels = subdivide(LiquidityInterval(0, 60000, 10**18), Side.ASK, precision=0.01, ctx=ctx)
        assert len(levels) <= 5

    def test_ratio_guard_stops_asks(self):
        ctx = context(bounds=SubdivisionBounds(max_price_ratio=2.0))
        levels = subdivide(LiquidityInterval(0, 50000, 10**18), Side.ASK, precision=0.5, ctx=ctx)
        assert levels
        assert max(l.price_lower for l in levels) < 2.0

    def test_tiny_precision_terminates(self):
        ctx = context(reference=1e6)
        levels = subdivide(LiquidityInterval(0, 60, 10**18), Side.ASK, precision=1e-12, ctx=ctx)
        assert len(levels) == 1
        assert (levels[0].tick_lower, levels[0].tick_upper) == (0, 60)

    def test_idempotent(self):
        ctx = context(reference=3.7, current_tick=1234, base_is_token0=False)
        interval = LiquidityInterval(-3000, 1234, 5 * 10**20)
        first = subdivide(interval, Side.ASK, 0.05, ctx)
        second = subdivide(interval, Side.ASK, 0.05, ctx)
        assert first == second

    def test_insane_amounts_are_dropped(self):
        ctx = context(bounds=SubdivisionBounds(max_token_amount=1e-9))
        assert subdivide(LiquidityInterval(0, 60, 10**18), Side.ASK, 0.0, ctx) == []

    def test_usd_ceiling(self):
        ctx = context(bounds=SubdivisionBounds(max_usd_value=1e-9))
        assert subdivide(LiquidityInterval(0, 60, 10**18), Side.ASK, 0.0, ctx) == []

    def test_build_level_rejects_empty_ranges(self):
        ctx = context()
        assert build_level(0, 0, 10**18, Side.ASK, 1.0, 1.1, ctx) is None
        assert build_level(0, 60, 0, Side.ASK, 1.0, 1.1, ctx) is None
        assert build_level(0, 60, 10**18, Side.ASK, 1.1, 1.1, ctx) is None

    def test_bid_is_valued_by_its_quote(self):
        ctx = context()
        bid = build_level(-600, 0, 10**18, Side.BID, ctx.adjustment.tick_to_price(-600), 1.0, ctx)
        assert bid.liquidity_usd == pytest.approx(bid.quote_amount)
        # the quote held spans the whole range, so it beats base * lowest price
        assert bid.liquidity_usd > bid.base_amount * bid.price

    def test_bid_quote_converts_at_reference_price(self):
        current = -276_324
        adjustment = DecimalAdjustment.from_reference(2000.0, current, base_is_token0=True)
        ctx = LevelContext(adjustment, 18, 6)
        assert ctx.quote_value == pytest.approx(2000.0 / (1.0001**current * 10**12))
        price_lower, price_upper = adjustment.tick_to_price(current - 600), adjustment.tick_to_price(current)
        bid = build_level(current - 600, current, 10**15, Side.BID, price_lower, price_upper, ctx)
        assert bid.liquidity_usd == pytest.approx(bid.quote_amount * ctx.quote_value)

    def test_ask_is_valued_by_its_base(self):
        ctx = context()
        ask = build_level(0, 600, 10**18, Side.ASK, 1.0, ctx.adjustment.tick_to_price(600), ctx)
        assert ask.liquidity_usd == pytest.approx(ask.base_amount * ask.price_upper)

    def test_subdivide_all_stops_at_max_levels(self):
        intervals = [LiquidityInterval(i * 60, (i + 1) * 60, 10**18) for i in range(20)]
        assert len(subdivide_all(intervals, Side.ASK, 0.0, context(), max_levels=4)) == 4

    @given(
        current=st.integers(-50_000, 50_000),
        width=st.integers(1, 5_000),
        reference=st.floats(1e-4, 1e4),
        precision=st.floats(0, 10),
        base_is_token0=st.booleans(),
    )
    @settings(max_examples=200, deadline=None)
    def test_book_never_crosses_current_price(self, current, width, reference, precision, base_is_token0):
        ctx = context(reference, current, base_is_token0)
        current_price = ctx.adjustment.tick_to_price(current)
        above = LiquidityInterval(current, current + width, 10**20)
        below = LiquidityInterval(current - width, current, 10**20)
        ask_interval, bid_interval = (above, below) if base_is_token0 else (below, above)
        for bid in subdivide(bid_interval, Side.BID, precision, ctx):
            assert bid.price_lower < bid.price_upper <= current_price
        for ask in subdivide(ask_interval, Side.ASK, precision, ctx):
            assert current_price <= ask.price_lower < ask.price_upper


class TestAggregation:
    def test_levels_in_one_bucket_are_summed(self):
        merged = aggregate_levels([level(1.01, usd=2.0), level(1.05, usd=3.0), level(1.25, usd=1.0)], 0.1, Side.ASK)
        assert len(merged) == 2
        assert merged[0].liquidity_usd == pytest.approx(5.0)
        assert merged[0].base_amount == pytest.approx(2.0)
        assert merged[0].price_lower == pytest.approx(1.01 * 0.99)
        assert merged[0].price_lower <= merged[0].price <= merged[0].price_upper

    def test_bids_round_down(self):
        merged = aggregate_levels([level(0.91), level(0.99)], 0.1, Side.BID)
        assert len(merged) == 1
        assert merged[0].price == pytest.approx(0.9, abs=0.01)

    def test_no_precision_only_sorts(self):
        levels = [level(1.0), level(3.0), level(2.0)]
        assert [l.price for l in aggregate_levels(levels, 0, Side.BID)] == [3.0, 2.0, 1.0]


class TestAssemble:
    def test_sorts_truncates_and_totals(self):
        bids = [level(0.9, usd=1.0), level(0.95, usd=2.0), level(0.8, usd=4.0)]
        asks = [level(1.2, usd=8.0), level(1.1, usd=16.0)]
        depth = assemble(bids, asks, 1.0, ("PEPE", "WETH"), (18, 18), ProtocolKind.TICK_CLMM, max_levels=2)
        assert [l.price for l in depth.bids] == [0.95, 0.9]
        assert [l.price for l in depth.asks] == [1.1, 1.2]
        assert depth.total_bid_usd == pytest.approx(3.0)
        assert depth.total_ask_usd == pytest.approx(24.0)
        assert depth.total_bid_base == pytest.approx(2.0)
        assert depth.spread == pytest.approx(0.15)
        assert depth.best_bid == 0.95

    def test_unlimited_levels(self):
        bids = [level(0.5 + i / 100) for i in range(40)]
        depth = assemble(bids, [], 1.0, ("A", "B"), (18, 18), ProtocolKind.TICK_CLMM, max_levels=0)
        assert len(depth.bids) == 40
        assert depth.spread is None

    def test_to_dict_is_json_ready(self):
        depth = assemble([level(0.9)], [level(1.1)], 1.0, ("A", "B"), (18, 6), ProtocolKind.BIN_DLMM)
        data = depth.to_dict()
        assert data["protocol_kind"] == "bin_dlmm"
        assert data["bids"][0]["price"] == 0.9
        assert data["token_decimals"] == [18, 6]
        assert math.isclose(data["spread"], 0.2)
