"""Shared pipeline for tick-based concentrated liquidity pools."""

import logging
from abc import abstractmethod
from typing import Dict, Optional, Tuple

from depthbook.discovery import discovery_window, fetch_tick_records, scan_bitmap
from depthbook.orderbook import assemble
from depthbook.pricing import pool_reserves
from depthbook.protocols.base import EvmProtocolAdapter, ProtocolAdapter, make_adjustment, resolve_base_is_token0
from depthbook.reader import ReadRequest
from depthbook.subdivide import LevelContext, subdivide_all
from depthbook.traversal import find_liquidity_clusters, traverse, validate_net_balance
from depthbook.types import DepthData, PoolIdentity, PoolState, ProtocolKind, Reserves, Side, TickRecord, TokenInfo

logger = logging.getLogger(__name__)


class TickPoolAdapter(ProtocolAdapter):
    """State, tokens and tick records in; a subdivided book out.

    Subclasses only say how a pool's state, tokens and initialized ticks
    are read.
    """

    kind = ProtocolKind.TICK_CLMM

    @abstractmethod
    def fetch_pool_state(self, pool: PoolIdentity) -> PoolState:
        ...

    @abstractmethod
    def fetch_tokens(self, pool: PoolIdentity) -> Tuple[TokenInfo, TokenInfo]:
        ...

    @abstractmethod
    def fetch_tick_records(
        self, pool: PoolIdentity, state: PoolState, min_tick: int, max_tick: int
    ) -> Tuple[Dict[int, TickRecord], int]:
        """Initialized ticks in ``[min_tick, max_tick]`` and the number of failed reads."""

    def _compute_depth(
        self, pool: PoolIdentity, reference_price: Optional[float], max_levels: int, precision: float
    ) -> DepthData:
        state = self.fetch_pool_state(pool)
        token0, token1 = self.fetch_tokens(pool)
        base_is_token0 = resolve_base_is_token0(token0, token1, pool.base_token, reference_price)
        base, quote = (token0, token1) if base_is_token0 else (token1, token0)
        adjustment = make_adjustment(self.config, reference_price, state.current_tick, base_is_token0, base, quote)
        current_price = adjustment.tick_to_price(state.current_tick)

        min_tick, max_tick = discovery_window(state.current_tick, self.config.tick_range)
        records, failed = self.fetch_tick_records(pool, state, min_tick, max_tick)
        if self.config.verify_net_balance and self.config.tick_range is None and not failed:
            validate_net_balance(records)

        walked = traverse(records, state.current_tick, state.current_liquidity, max_intervals=max_levels)
        # ticks rise with price only when the base token is token0
        if base_is_token0:
            ask_intervals, bid_intervals = walked.upward, walked.downward
        else:
            ask_intervals, bid_intervals = walked.downward, walked.upward

        ctx = LevelContext(adjustment, base.decimals, quote.decimals, self.config.subdivision)
        bids = subdivide_all(bid_intervals, Side.BID, precision, ctx, max_levels)
        asks = subdivide_all(ask_intervals, Side.ASK, precision, ctx, max_levels)

        reserve0, reserve1 = pool_reserves(state.sqrt_price_x96, state.current_liquidity, token0.decimals, token1.decimals)
        reserves = Reserves(base=reserve0, quote=reserve1) if base_is_token0 else Reserves(base=reserve1, quote=reserve0)
        clusters = find_liquidity_clusters(records, adjustment.tick_to_price) if self.config.find_clusters else []

        logger.info(
            "%s: tick %d, %d initialized ticks, %d bid / %d ask levels",
            pool.address,
            state.current_tick,
            len(records),
            len(bids),
            len(asks),
        )
        return assemble(
            bids,
            asks,
            current_price=current_price,
            token_symbols=self.display_symbols(pool, base, quote),
            token_decimals=(base.decimals, quote.decimals),
            protocol_kind=self.kind,
            max_levels=max_levels,
            reserves=reserves,
            current_tick=state.current_tick,
            tick_spacing=state.tick_spacing,
            initialized_ticks=len(records),
            clusters=clusters,
        )


class ConcentratedLiquidityAdapter(TickPoolAdapter, EvmProtocolAdapter):
    """EVM tick pools, discovered through their tickBitmap words."""

    @abstractmethod
    def bitmap_request(self, pool: PoolIdentity, word_index: int) -> ReadRequest:
        ...

    @abstractmethod
    def tick_request(self, pool: PoolIdentity, tick: int) -> ReadRequest:
        ...

    def fetch_tick_records(
        self, pool: PoolIdentity, state: PoolState, min_tick: int, max_tick: int
    ) -> Tuple[Dict[int, TickRecord], int]:
        ticks = scan_bitmap(
            self.reader, lambda word: self.bitmap_request(pool, word), state.tick_spacing, min_tick, max_tick
        )
        return fetch_tick_records(self.reader, ticks, lambda tick: self.tick_request(pool, tick))
