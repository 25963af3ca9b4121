"""Tick, price and token amount conversions.

Everything is evaluated in log space so extreme ticks never overflow a
float. Prices are clamped to ``[price_floor, price_ceiling]`` instead of
returning ``inf`` or ``0``.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

TICK_BASE = 1.0001
LOG_TICK_BASE = math.log(TICK_BASE)
LOG_10 = math.log(10)
MIN_TICK = -887272
MAX_TICK = 887272
Q96 = 2**96

PRICE_FLOOR = 1e-36
PRICE_CEILING = 1e36

FEE_TICK_SPACING = {100: 1, 500: 10, 3000: 60, 10000: 200}
DEFAULT_TICK_SPACING = 60


def clamp_tick(tick: int) -> int:
    return max(MIN_TICK, min(MAX_TICK, int(tick)))


def clamp_log_price(log_price: float, price_floor: float = PRICE_FLOOR, price_ceiling: float = PRICE_CEILING) -> float:
    if math.isnan(log_price):
        return price_floor
    if log_price >= math.log(price_ceiling):
        return price_ceiling
    if log_price <= math.log(price_floor):
        return price_floor
    return math.exp(log_price)


@dataclass(frozen=True)
class DecimalAdjustment:
    """Per-query scalar that maps raw ticks to reference-currency prices.

    When the base token is ``token0`` the price rises with the tick
    (``price = factor * 1.0001**tick``); when it is ``token1`` the pool
    price is inverted (``price = factor / 1.0001**tick``). The factor is
    stored as its natural log.
    """

    log_factor: float
    base_is_token0: bool = False
    price_floor: float = PRICE_FLOOR
    price_ceiling: float = PRICE_CEILING

    @classmethod
    def from_reference(
        cls,
        reference_price: float,
        current_tick: int,
        base_is_token0: bool = False,
        price_floor: float = PRICE_FLOOR,
        price_ceiling: float = PRICE_CEILING,
    ) -> "DecimalAdjustment":
        if not (reference_price > 0) or not math.isfinite(reference_price):
            raise ValueError(f"reference price must be positive and finite, got {reference_price!r}")
        exponent = clamp_tick(current_tick) * LOG_TICK_BASE
        log_factor = math.log(reference_price) + (-exponent if base_is_token0 else exponent)
        return cls(log_factor, base_is_token0, price_floor, price_ceiling)

    @classmethod
    def from_decimals(
        cls,
        base_decimals: int,
        quote_decimals: int,
        base_is_token0: bool = False,
        price_floor: float = PRICE_FLOOR,
        price_ceiling: float = PRICE_CEILING,
    ) -> "DecimalAdjustment":
        """Adjustment quoting the base token in quote token units."""
        return cls((base_decimals - quote_decimals) * LOG_10, base_is_token0, price_floor, price_ceiling)

    @property
    def factor(self) -> float:
        return math.exp(max(-700.0, min(700.0, self.log_factor)))

    def tick_to_price(self, tick: int) -> float:
        exponent = clamp_tick(tick) * LOG_TICK_BASE
        log_price = self.log_factor + (exponent if self.base_is_token0 else -exponent)
        return clamp_log_price(log_price, self.price_floor, self.price_ceiling)

    def price_to_tick(self, price: float) -> int:
        if not (price > 0) or not math.isfinite(price):
            raise ValueError(f"price must be positive and finite, got {price!r}")
        delta = (math.log(price) - self.log_factor) / LOG_TICK_BASE
        return clamp_tick(round(delta if self.base_is_token0 else -delta))


def tick_to_price(tick: int, adjustment: DecimalAdjustment) -> float:
    return adjustment.tick_to_price(tick)


def price_to_tick(price: float, adjustment: DecimalAdjustment) -> int:
    return adjustment.price_to_tick(price)


def sqrt_ratio_at_tick(tick: int) -> float:
    return math.exp(clamp_tick(tick) * LOG_TICK_BASE / 2)


def token_amounts(
    liquidity: int,
    tick_lower: int,
    tick_upper: int,
    base_is_token0: bool,
    base_decimals: int,
    quote_decimals: int,
) -> Tuple[float, float]:
    """Return (base, quote) amounts a constant-liquidity range spans.

    amount0 = L * (1/sqrt(Pa) - 1/sqrt(Pb))
    amount1 = L * (sqrt(Pb) - sqrt(Pa))
    """
    lower, upper = min(tick_lower, tick_upper), max(tick_lower, tick_upper)
    sqrt_lower = sqrt_ratio_at_tick(lower)
    sqrt_upper = sqrt_ratio_at_tick(upper)
    liquidity_f = float(liquidity)
    amount0 = liquidity_f * (1 / sqrt_lower - 1 / sqrt_upper)
    amount1 = liquidity_f * (sqrt_upper - sqrt_lower)
    if base_is_token0:
        return amount0 / 10**base_decimals, amount1 / 10**quote_decimals
    return amount1 / 10**base_decimals, amount0 / 10**quote_decimals


def sqrt_price_x96_to_price(sqrt_price_x96: int, decimals0: int, decimals1: int) -> float:
    """Human price of token0 denominated in token1."""
    ratio = sqrt_price_x96 / Q96
    return ratio * ratio * 10 ** (decimals0 - decimals1)


def pool_reserves(
    sqrt_price_x96: Optional[int], liquidity: int, decimals0: int, decimals1: int
) -> Tuple[float, float]:
    """Virtual (token0, token1) reserves implied by the active liquidity."""
    if not sqrt_price_x96 or liquidity <= 0:
        return 0.0, 0.0
    sqrt_price = sqrt_price_x96 / Q96
    reserve0 = liquidity / sqrt_price / 10**decimals0
    reserve1 = liquidity * sqrt_price / 10**decimals1
    return reserve0, reserve1


def tick_spacing_for_fee(lp_fee: int) -> int:
    return FEE_TICK_SPACING.get(lp_fee, DEFAULT_TICK_SPACING)
