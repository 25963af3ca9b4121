import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

from depthbook.pricing import LOG_10, DecimalAdjustment, token_amounts
from depthbook.types import LiquidityInterval, LiquidityLevel, Side

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubdivisionBounds:
    min_price_ratio: float = 0.01
    max_price_ratio: float = 100.0
    max_subdivisions: int = 1000
    max_token_amount: float = 1e15
    max_usd_value: float = 1e12
    dust_amount: float = 0.0


@dataclass(frozen=True)
class LevelContext:
    """Query-wide inputs shared by every level built from one pool."""

    adjustment: DecimalAdjustment
    base_decimals: int
    quote_decimals: int
    bounds: SubdivisionBounds = field(default_factory=SubdivisionBounds)

    @property
    def quote_value(self) -> float:
        """Reference-currency value of one whole quote token."""
        log_value = self.adjustment.log_factor - (self.base_decimals - self.quote_decimals) * LOG_10
        return math.exp(max(-700.0, min(700.0, log_value)))


def is_sane_amount(amount: float, ceiling: float) -> bool:
    return math.isfinite(amount) and 0 < amount <= ceiling


def build_level(
    tick_lower: int,
    tick_upper: int,
    liquidity: int,
    side: Side,
    price_lower: float,
    price_upper: float,
    ctx: LevelContext,
) -> Optional[LiquidityLevel]:
    """One level for a constant-liquidity tick range, or None if it fails sanity checks."""
    if not price_lower < price_upper or tick_upper <= tick_lower or liquidity <= 0:
        return None
    bounds = ctx.bounds
    base_amount, quote_amount = token_amounts(
        liquidity,
        tick_lower,
        tick_upper,
        ctx.adjustment.base_is_token0,
        ctx.base_decimals,
        ctx.quote_decimals,
    )
    if not is_sane_amount(base_amount, bounds.max_token_amount) or base_amount <= bounds.dust_amount:
        return None
    if not is_sane_amount(quote_amount, bounds.max_token_amount):
        return None
    price = price_lower if side is Side.BID else price_upper
    # bids are backed by the quote they hold, asks by the base
    liquidity_usd = quote_amount * ctx.quote_value if side is Side.BID else base_amount * price
    if not is_sane_amount(liquidity_usd, bounds.max_usd_value):
        return None
    return LiquidityLevel(
        price=price,
        price_lower=price_lower,
        price_upper=price_upper,
        base_amount=base_amount,
        quote_amount=quote_amount,
        liquidity_usd=liquidity_usd,
        tick_lower=tick_lower,
        tick_upper=tick_upper,
        liquidity=liquidity,
    )


def interval_prices(interval: LiquidityInterval, adjustment: DecimalAdjustment) -> tuple:
    price_a = adjustment.tick_to_price(interval.tick_lower)
    price_b = adjustment.tick_to_price(interval.tick_upper)
    return min(price_a, price_b), max(price_a, price_b)


def subdivide(interval: LiquidityInterval, side: Side, precision: float, ctx: LevelContext) -> List[LiquidityLevel]:
    """Split an interval into fixed-width price buckets.

    With no precision, or one at least as wide as the interval, the interval
    becomes a single level. Bids are bucketed downward from
    ``floor(price_upper / precision) * precision`` and asks upward from
    ``ceil(price_lower / precision) * precision`` so the book never crosses.
    """
    price_lower, price_upper = interval_prices(interval, ctx.adjustment)
    # a precision below float resolution at this price cannot be bucketed
    unsplittable = precision <= 0 or price_upper + precision == price_upper
    if unsplittable or precision >= price_upper - price_lower:
        level = build_level(
            interval.tick_lower, interval.tick_upper, interval.liquidity, side, price_lower, price_upper, ctx
        )
        return [level] if level else []
    if side is Side.BID:
        return _split_down(interval, price_lower, price_upper, precision, ctx)
    return _split_up(interval, price_lower, price_upper, precision, ctx)


def _sub_ticks(low: float, high: float, adjustment: DecimalAdjustment) -> tuple:
    tick_a, tick_b = adjustment.price_to_tick(low), adjustment.price_to_tick(high)
    return min(tick_a, tick_b), max(tick_a, tick_b)


def _split_down(interval, price_lower, price_upper, precision, ctx) -> List[LiquidityLevel]:
    bounds = ctx.bounds
    levels: List[LiquidityLevel] = []
    high = min(math.floor(price_upper / precision) * precision, price_upper)
    stop = max(price_lower, price_upper * bounds.min_price_ratio)
    steps = 0
    while high > stop and steps < bounds.max_subdivisions:
        low = max(high - precision, price_lower)
        # float steps can stall once precision drops below one ulp of the price
        if low >= high:
            break
        steps += 1
        tick_lower, tick_upper = _sub_ticks(low, high, ctx.adjustment)
        level = build_level(tick_lower, tick_upper, interval.liquidity, Side.BID, low, high, ctx)
        if level:
            levels.append(level)
        high = low
    if steps >= bounds.max_subdivisions:
        logger.debug("bid interval %s truncated at %d buckets", interval, steps)
    return levels


def _split_up(interval, price_lower, price_upper, precision, ctx) -> List[LiquidityLevel]:
    bounds = ctx.bounds
    levels: List[LiquidityLevel] = []
    low = max(math.ceil(price_lower / precision) * precision, price_lower)
    stop = min(price_upper, price_lower * bounds.max_price_ratio)
    steps = 0
    while low < stop and steps < bounds.max_subdivisions:
        high = min(low + precision, price_upper)
        if low >= high:
            break
        steps += 1
        tick_lower, tick_upper = _sub_ticks(low, high, ctx.adjustment)
        level = build_level(tick_lower, tick_upper, interval.liquidity, Side.ASK, low, high, ctx)
        if level:
            levels.append(level)
        low = high
    if steps >= bounds.max_subdivisions:
        logger.debug("ask interval %s truncated at %d buckets", interval, steps)
    return levels


def subdivide_all(
    intervals, side: Side, precision: float, ctx: LevelContext, max_levels: int = 0
) -> List[LiquidityLevel]:
    levels: List[LiquidityLevel] = []
    for interval in intervals:
        levels.extend(subdivide(interval, side, precision, ctx))
        if max_levels and len(levels) >= max_levels:
            break
    return levels
