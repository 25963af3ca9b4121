"""Find initialized ticks from tickBitmap words instead of probing every tick."""

import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from depthbook.pricing import MAX_TICK, MIN_TICK, clamp_tick
from depthbook.reader import ChainReader, ReadRequest
from depthbook.types import TickRecord

logger = logging.getLogger(__name__)

WORD_SIZE = 256


def word_position(tick: int, tick_spacing: int) -> int:
    return (tick // tick_spacing) >> 8


def word_range(min_tick: int, max_tick: int, tick_spacing: int) -> range:
    return range(word_position(min_tick, tick_spacing), word_position(max_tick, tick_spacing) + 1)


def ticks_in_word(
    word_index: int,
    bitmap: int,
    tick_spacing: int,
    min_tick: int = MIN_TICK,
    max_tick: int = MAX_TICK,
) -> Iterable[int]:
    if not isinstance(bitmap, int) or bitmap <= 0:
        return
    for bit_pos in range(WORD_SIZE):
        if (bitmap >> bit_pos) & 1 == 0:
            continue
        tick_index = (word_index * WORD_SIZE + bit_pos) * tick_spacing
        if tick_index < min_tick or tick_index > max_tick:
            continue
        yield tick_index


def discovery_window(current_tick: int, tick_range: Optional[int]) -> Tuple[int, int]:
    if tick_range is None:
        return MIN_TICK, MAX_TICK
    return clamp_tick(current_tick - tick_range), clamp_tick(current_tick + tick_range)


def scan_bitmap(
    reader: ChainReader,
    bitmap_request: Callable[[int], ReadRequest],
    tick_spacing: int,
    min_tick: int = MIN_TICK,
    max_tick: int = MAX_TICK,
) -> List[int]:
    """Return the sorted initialized ticks in ``[min_tick, max_tick]``.

    Failed or malformed words count as empty.
    """
    if tick_spacing <= 0:
        raise ValueError(f"tick spacing must be positive, got {tick_spacing}")
    words = list(word_range(min_tick, max_tick, tick_spacing))
    bitmaps = reader.read_many([bitmap_request(word) for word in words])
    ticks: List[int] = []
    populated = 0
    for word_index, value in zip(words, bitmaps):
        bitmap = value[0] if value else 0
        if not bitmap:
            continue
        populated += 1
        ticks.extend(ticks_in_word(word_index, bitmap, tick_spacing, min_tick, max_tick))
    logger.debug("scanned %d bitmap words, %d populated, %d ticks", len(words), populated, len(ticks))
    return sorted(ticks)


def fetch_tick_records(
    reader: ChainReader,
    ticks: List[int],
    tick_request: Callable[[int], ReadRequest],
) -> Tuple[Dict[int, TickRecord], int]:
    """Read (liquidityGross, liquidityNet) for each tick.

    Returns the records and the number of reads that failed.
    """
    values = reader.read_many([tick_request(tick) for tick in ticks])
    records: Dict[int, TickRecord] = {}
    failed = 0
    for tick, value in zip(ticks, values):
        if value is None:
            failed += 1
            continue
        liquidity_gross, liquidity_net = int(value[0]), int(value[1])
        if liquidity_gross == 0:
            continue
        records[tick] = TickRecord(tick=tick, liquidity_gross=liquidity_gross, liquidity_net=liquidity_net)
    if failed:
        logger.warning("%d of %d tick reads failed and were skipped", failed, len(ticks))
    return records, failed


def bin_window(active_id: int, radius: int) -> range:
    return range(max(0, active_id - radius), active_id + radius + 1)
