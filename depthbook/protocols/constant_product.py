"""Uniswap v2 style x*y=k pairs.

The book is synthesized analytically: for a price ``p`` the pair holds
``sqrt(k/p)`` base and ``sqrt(k*p)`` quote, so the depth between two prices
is the difference of those reserves.
"""

import logging
import math
from typing import List, Optional, Tuple

from depthbook.abi import function
from depthbook.config import EngineConfig
from depthbook.errors import DecodeError
from depthbook.orderbook import aggregate_levels, assemble
from depthbook.protocols.base import EvmProtocolAdapter, resolve_base_is_token0
from depthbook.reader import ReadRequest
from depthbook.subdivide import SubdivisionBounds, is_sane_amount
from depthbook.types import DepthData, LiquidityLevel, PoolIdentity, ProtocolKind, Reserves, Side, TokenInfo

logger = logging.getLogger(__name__)

V2_PAIR_ABI = [
    {
        "inputs": [],
        "name": "getReserves",
        "outputs": [
            {"internalType": "uint112", "name": "_reserve0", "type": "uint112"},
            {"internalType": "uint112", "name": "_reserve1", "type": "uint112"},
            {"internalType": "uint32", "name": "_blockTimestampLast", "type": "uint32"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "token0",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "token1",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    },
]

GET_RESERVES = function(V2_PAIR_ABI, "getReserves")
PAIR_TOKEN0 = function(V2_PAIR_ABI, "token0")
PAIR_TOKEN1 = function(V2_PAIR_ABI, "token1")


def ladder_offsets(levels: int, max_pct: float) -> List[float]:
    """Fractional price moves for each level, denser near the current price."""
    return [max_pct * (i / levels) ** 1.5 / 100 for i in range(1, levels + 1)]


def _band(
    k: float,
    pool_price: float,
    ratio_a: float,
    ratio_b: float,
    side: Side,
    price_scale: float,
    bounds: SubdivisionBounds,
) -> Optional[LiquidityLevel]:
    low, high = pool_price * min(ratio_a, ratio_b), pool_price * max(ratio_a, ratio_b)
    if not 0 < low < high:
        return None
    base_amount = math.sqrt(k / low) - math.sqrt(k / high)
    quote_amount = math.sqrt(k * high) - math.sqrt(k * low)
    price_lower, price_upper = low * price_scale, high * price_scale
    price = price_lower if side is Side.BID else price_upper
    liquidity_usd = quote_amount * price_scale if side is Side.BID else base_amount * price
    if not (
        is_sane_amount(base_amount, bounds.max_token_amount)
        and is_sane_amount(quote_amount, bounds.max_token_amount)
        and is_sane_amount(liquidity_usd, bounds.max_usd_value)
    ) or base_amount <= bounds.dust_amount:
        return None
    return LiquidityLevel(
        price=price,
        price_lower=price_lower,
        price_upper=price_upper,
        base_amount=base_amount,
        quote_amount=quote_amount,
        liquidity_usd=liquidity_usd,
    )


def constant_product_ladder(
    base_reserve: float,
    quote_reserve: float,
    levels: int,
    max_pct: float,
    bounds: SubdivisionBounds,
    price_scale: float = 1.0,
    min_ratio: float = 0.0,
    max_ratio: float = math.inf,
) -> Tuple[List[LiquidityLevel], List[LiquidityLevel]]:
    """Bid and ask levels for virtual reserves, as incremental price bands.

    ``min_ratio``/``max_ratio`` cap how far the price can move relative to
    the current pool price.
    """
    if base_reserve <= 0 or quote_reserve <= 0 or levels <= 0:
        return [], []
    k = base_reserve * quote_reserve
    pool_price = quote_reserve / base_reserve
    offsets = ladder_offsets(levels, max_pct)

    bids: List[LiquidityLevel] = []
    previous = 1.0
    for offset in offsets:
        ratio = max(1.0 - offset, min_ratio)
        if ratio <= 0 or ratio >= previous:
            break
        level = _band(k, pool_price, ratio, previous, Side.BID, price_scale, bounds)
        if level:
            bids.append(level)
        previous = ratio

    asks: List[LiquidityLevel] = []
    previous = 1.0
    for offset in offsets:
        ratio = min(1.0 + offset, max_ratio)
        if ratio <= previous:
            break
        level = _band(k, pool_price, previous, ratio, Side.ASK, price_scale, bounds)
        if level:
            asks.append(level)
        previous = ratio
    return bids, asks


def reserve_book(
    kind: ProtocolKind,
    config: EngineConfig,
    base: TokenInfo,
    quote: TokenInfo,
    base_reserve: float,
    quote_reserve: float,
    reference_price: Optional[float],
    max_levels: int,
    precision: float,
    symbols: Optional[Tuple[str, str]] = None,
) -> DepthData:
    """Book for a pool holding ``base_reserve``/``quote_reserve`` whole tokens on x*y=k."""
    symbols = symbols or (base.symbol, quote.symbol)
    decimals = (base.decimals, quote.decimals)
    if base_reserve <= 0 or quote_reserve <= 0:
        return DepthData.empty(kind, token_symbols=symbols, token_decimals=decimals)

    pool_price = quote_reserve / base_reserve
    price_scale = reference_price / pool_price if reference_price else 1.0
    levels = min(max_levels, config.cp_levels) if max_levels > 0 else config.cp_levels
    bids, asks = constant_product_ladder(
        base_reserve, quote_reserve, levels, config.cp_max_pct, config.subdivision, price_scale
    )
    return assemble(
        aggregate_levels(bids, precision, Side.BID),
        aggregate_levels(asks, precision, Side.ASK),
        current_price=pool_price * price_scale,
        token_symbols=symbols,
        token_decimals=decimals,
        protocol_kind=kind,
        max_levels=max_levels,
        reserves=Reserves(base=base_reserve, quote=quote_reserve),
    )


class ConstantProductAdapter(EvmProtocolAdapter):
    kind = ProtocolKind.CONSTANT_PRODUCT

    def _compute_depth(
        self, pool: PoolIdentity, reference_price: Optional[float], max_levels: int, precision: float
    ) -> DepthData:
        reserves, token0, token1 = self.reader.read_many(
            [
                ReadRequest(pool.address, GET_RESERVES),
                ReadRequest(pool.address, PAIR_TOKEN0),
                ReadRequest(pool.address, PAIR_TOKEN1),
            ]
        )
        if reserves is None or token0 is None or token1 is None:
            raise DecodeError(f"pair {pool.address} did not answer getReserves()/token0()/token1()")
        info0, info1 = self.token_info([token0[0], token1[0]])
        base_is_token0 = resolve_base_is_token0(info0, info1, pool.base_token, reference_price)
        base, quote = (info0, info1) if base_is_token0 else (info1, info0)
        raw_base, raw_quote = (reserves[0], reserves[1]) if base_is_token0 else (reserves[1], reserves[0])
        if raw_base <= 0 or raw_quote <= 0:
            logger.info("%s: pair has no reserves", pool.address)
        return reserve_book(
            self.kind,
            self.config,
            base,
            quote,
            raw_base / 10**base.decimals,
            raw_quote / 10**quote.decimals,
            reference_price,
            max_levels,
            precision,
        )
