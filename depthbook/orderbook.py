import math
from typing import Dict, Iterable, List, Optional, Tuple

from depthbook.types import (
    DepthData,
    LiquidityCluster,
    LiquidityLevel,
    ProtocolKind,
    Reserves,
    Side,
)


def sort_levels(levels: Iterable[LiquidityLevel], side: Side) -> List[LiquidityLevel]:
    return sorted(levels, key=lambda level: level.price, reverse=side is Side.BID)


def aggregate_levels(levels: Iterable[LiquidityLevel], precision: float, side: Side) -> List[LiquidityLevel]:
    """Merge levels that round into the same price bucket.

    Amounts are summed. Bids round down and asks round up, matching the
    subdivider's bucket edges.
    """
    if precision <= 0:
        return sort_levels(levels, side)
    buckets: Dict[int, List[LiquidityLevel]] = {}
    for level in levels:
        ratio = level.price / precision
        key = math.floor(ratio) if side is Side.BID else math.ceil(ratio)
        buckets.setdefault(key, []).append(level)

    merged = []
    for key, group in buckets.items():
        if len(group) == 1:
            merged.append(group[0])
            continue
        tick_lowers = [l.tick_lower for l in group if l.tick_lower is not None]
        tick_uppers = [l.tick_upper for l in group if l.tick_upper is not None]
        price_lower = min(l.price_lower for l in group)
        price_upper = max(l.price_upper for l in group)
        merged.append(
            LiquidityLevel(
                price=min(max(key * precision, price_lower), price_upper),
                price_lower=price_lower,
                price_upper=price_upper,
                base_amount=sum(l.base_amount for l in group),
                quote_amount=sum(l.quote_amount for l in group),
                liquidity_usd=sum(l.liquidity_usd for l in group),
                tick_lower=min(tick_lowers) if tick_lowers else None,
                tick_upper=max(tick_uppers) if tick_uppers else None,
                liquidity=sum(l.liquidity for l in group),
            )
        )
    return sort_levels(merged, side)


def assemble(
    bids: Iterable[LiquidityLevel],
    asks: Iterable[LiquidityLevel],
    current_price: float,
    token_symbols: Tuple[str, str],
    token_decimals: Tuple[int, int],
    protocol_kind: ProtocolKind,
    max_levels: int = 0,
    reserves: Optional[Reserves] = None,
    current_tick: Optional[int] = None,
    tick_spacing: Optional[int] = None,
    initialized_ticks: int = 0,
    clusters: Iterable[LiquidityCluster] = (),
) -> DepthData:
    sorted_bids = sort_levels(bids, Side.BID)
    sorted_asks = sort_levels(asks, Side.ASK)
    if max_levels > 0:
        sorted_bids = sorted_bids[:max_levels]
        sorted_asks = sorted_asks[:max_levels]
    return DepthData(
        bids=tuple(sorted_bids),
        asks=tuple(sorted_asks),
        current_price=current_price,
        token_symbols=token_symbols,
        token_decimals=token_decimals,
        protocol_kind=protocol_kind,
        total_bid_usd=sum(l.liquidity_usd for l in sorted_bids),
        total_ask_usd=sum(l.liquidity_usd for l in sorted_asks),
        total_bid_base=sum(l.base_amount for l in sorted_bids),
        total_ask_base=sum(l.base_amount for l in sorted_asks),
        reserves=reserves,
        current_tick=current_tick,
        tick_spacing=tick_spacing,
        initialized_ticks=initialized_ticks,
        clusters=tuple(clusters),
    )
