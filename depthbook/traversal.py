"""Turn per-tick liquidity deltas into liquidity intervals on each side of the price."""

from dataclasses import dataclass
from fractions import Fraction
from typing import Callable, Iterator, List, Mapping, Tuple

from depthbook.errors import LiquidityImbalanceError
from depthbook.types import LiquidityCluster, LiquidityInterval, TickRecord


@dataclass(frozen=True)
class Traversal:
    upward: Tuple[LiquidityInterval, ...]
    downward: Tuple[LiquidityInterval, ...]


def running_liquidity(
    records: Mapping[int, TickRecord], current_tick: int, current_liquidity: int, upward: bool
) -> Iterator[Tuple[int, int]]:
    """Yield ``(tick, liquidity_after_crossing)`` walking away from the current tick.

    Crossing upward adds ``liquidity_net``; crossing downward subtracts it.
    """
    if upward:
        ticks = sorted(t for t in records if t > current_tick)
    else:
        ticks = sorted((t for t in records if t <= current_tick), reverse=True)
    liquidity = current_liquidity
    for tick in ticks:
        net = records[tick].liquidity_net
        liquidity = liquidity + net if upward else liquidity - net
        yield tick, liquidity


def walk(
    records: Mapping[int, TickRecord],
    current_tick: int,
    current_liquidity: int,
    upward: bool,
    max_intervals: int = 0,
) -> List[LiquidityInterval]:
    intervals: List[LiquidityInterval] = []
    boundary = current_tick
    active = current_liquidity
    for tick, after in running_liquidity(records, current_tick, current_liquidity, upward):
        lower, upper = (boundary, tick) if upward else (tick, boundary)
        if active > 0 and upper > lower:
            intervals.append(LiquidityInterval(tick_lower=lower, tick_upper=upper, liquidity=active))
            if max_intervals and len(intervals) >= max_intervals:
                break
        boundary, active = tick, after
    return intervals


def traverse(
    records: Mapping[int, TickRecord],
    current_tick: int,
    current_liquidity: int,
    max_intervals: int = 0,
) -> Traversal:
    return Traversal(
        upward=tuple(walk(records, current_tick, current_liquidity, True, max_intervals)),
        downward=tuple(walk(records, current_tick, current_liquidity, False, max_intervals)),
    )


def validate_net_balance(records: Mapping[int, TickRecord]) -> None:
    imbalance = sum(record.liquidity_net for record in records.values())
    if imbalance != 0:
        raise LiquidityImbalanceError(imbalance)


def find_liquidity_clusters(
    records: Mapping[int, TickRecord],
    tick_to_price: Callable[[int], float],
    threshold: float = 2.0,
    max_gap: int = 1000,
) -> List[LiquidityCluster]:
    """Group ticks whose gross liquidity is at least ``threshold`` times the average.

    The average is floored to a whole unit of liquidity; fractional thresholds
    are applied exactly.

    Neighbouring large ticks closer than ``max_gap`` join one cluster. Clusters
    are returned largest first.
    """
    if not records:
        return []
    average = sum(r.liquidity_gross for r in records.values()) // len(records)
    cutoff = average * Fraction(threshold)
    large = sorted(t for t, r in records.items() if r.liquidity_gross >= cutoff)
    groups: List[List[int]] = []
    for tick in large:
        if groups and tick - groups[-1][-1] <= max_gap:
            groups[-1].append(tick)
        else:
            groups.append([tick])

    clusters = []
    for group in groups:
        lower, upper = group[0], group[-1]
        price_a, price_b = tick_to_price(lower), tick_to_price(upper)
        clusters.append(
            LiquidityCluster(
                tick_lower=lower,
                tick_upper=upper,
                price_lower=min(price_a, price_b),
                price_upper=max(price_a, price_b),
                total_liquidity=sum(records[t].liquidity_gross for t in group),
                tick_count=len(group),
            )
        )
    clusters.sort(key=lambda c: c.total_liquidity, reverse=True)
    return clusters
