"""Raydium CLMM and Orca Whirlpool pools.

Both use Uniswap v3 tick maths (``1.0001**tick``, a Q64.64 sqrt price) but
keep initialized ticks in fixed-size tick array accounts instead of a
bitmap. A pool's arrays are found with getProgramAccounts filtered on the
pool key, then fed through the same traversal and subdivision as EVM pools.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Tuple

from depthbook.errors import DecodeError
from depthbook.protocols.clmm import TickPoolAdapter
from depthbook.protocols.solana import (
    ORCA_WHIRLPOOL_PROGRAM,
    RAYDIUM_CLMM_PROGRAM,
    SolanaProtocolAdapter,
    read_int,
    read_pubkey,
)
from depthbook.types import PoolIdentity, PoolState, TickRecord, TokenInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClmmPoolLayout:
    mint0: int
    mint1: int
    tick_spacing: int  # u16
    liquidity: int  # u128
    sqrt_price: int  # u128, Q64.64
    tick_current: int  # i32


@dataclass(frozen=True)
class TickArrayLayout:
    pool_key: int
    start_tick: int  # i32
    first_slot: int
    slots: int
    slot_size: int
    # offsets inside one slot
    liquidity_net: int  # i128
    liquidity_gross: int  # u128
    account_size: int


RAYDIUM_CLMM_POOL = ClmmPoolLayout(mint0=73, mint1=105, tick_spacing=235, liquidity=237, sqrt_price=253, tick_current=269)
RAYDIUM_TICK_ARRAY = TickArrayLayout(
    pool_key=8,
    start_tick=40,
    first_slot=44,
    slots=60,
    slot_size=168,
    liquidity_net=4,
    liquidity_gross=20,
    account_size=10240,
)

WHIRLPOOL_POOL = ClmmPoolLayout(mint0=101, mint1=181, tick_spacing=41, liquidity=49, sqrt_price=65, tick_current=81)
WHIRLPOOL_TICK_ARRAY = TickArrayLayout(
    pool_key=9956,
    start_tick=8,
    first_slot=12,
    slots=88,
    slot_size=113,
    liquidity_net=1,
    liquidity_gross=17,
    account_size=9988,
)


def decode_tick_array(
    data: bytes, layout: TickArrayLayout, tick_spacing: int, min_tick: int, max_tick: int
) -> Dict[int, TickRecord]:
    """Initialized ticks of one array that fall inside ``[min_tick, max_tick]``."""
    if len(data) < layout.first_slot + layout.slots * layout.slot_size:
        raise DecodeError(f"tick array is {len(data)} bytes, too short")
    start = read_int(data, layout.start_tick, 4, signed=True)
    records: Dict[int, TickRecord] = {}
    for index in range(layout.slots):
        slot = layout.first_slot + index * layout.slot_size
        gross = read_int(data, slot + layout.liquidity_gross, 16)
        if gross == 0:
            continue
        tick = start + index * tick_spacing
        if tick < min_tick or tick > max_tick:
            continue
        records[tick] = TickRecord(tick, gross, read_int(data, slot + layout.liquidity_net, 16, signed=True))
    return records


class SolanaClmmAdapter(TickPoolAdapter, SolanaProtocolAdapter):
    program_id: str
    pool_layout: ClmmPoolLayout
    array_layout: TickArrayLayout

    def fetch_pool_state(self, pool: PoolIdentity) -> PoolState:
        data = self.reader.account_data(pool.address)
        layout = self.pool_layout
        spacing = pool.tick_spacing or read_int(data, layout.tick_spacing, 2)
        if spacing <= 0:
            raise DecodeError(f"pool {pool.address} has no usable tick spacing")
        return PoolState(
            current_tick=read_int(data, layout.tick_current, 4, signed=True),
            current_liquidity=read_int(data, layout.liquidity, 16),
            sqrt_price_x96=read_int(data, layout.sqrt_price, 16) << 32,
            tick_spacing=spacing,
        )

    def fetch_tokens(self, pool: PoolIdentity) -> Tuple[TokenInfo, TokenInfo]:
        data = self.reader.account_data(pool.address)
        mints = [read_pubkey(data, self.pool_layout.mint0), read_pubkey(data, self.pool_layout.mint1)]
        info0, info1 = self.token_info(mints)
        return info0, info1

    def fetch_tick_records(
        self, pool: PoolIdentity, state: PoolState, min_tick: int, max_tick: int
    ) -> Tuple[Dict[int, TickRecord], int]:
        layout = self.array_layout
        arrays = self.reader.program_accounts(
            self.program_id,
            [{"dataSize": layout.account_size}, {"memcmp": {"offset": layout.pool_key, "bytes": pool.address}}],
        )
        records: Dict[int, TickRecord] = {}
        failed = 0
        for account in arrays:
            try:
                records.update(decode_tick_array(account.data, layout, state.tick_spacing, min_tick, max_tick))
            except DecodeError as exc:
                failed += 1
                logger.warning("skipping tick array %s: %s", account.address, exc.reason)
        logger.debug("%s: %d tick arrays, %d initialized ticks", pool.address, len(arrays), len(records))
        return records, failed


class RaydiumClmmAdapter(SolanaClmmAdapter):
    program_id = RAYDIUM_CLMM_PROGRAM
    pool_layout = RAYDIUM_CLMM_POOL
    array_layout = RAYDIUM_TICK_ARRAY


class WhirlpoolAdapter(SolanaClmmAdapter):
    program_id = ORCA_WHIRLPOOL_PROGRAM
    pool_layout = WHIRLPOOL_POOL
    array_layout = WHIRLPOOL_TICK_ARRAY
