"""Trader Joe Liquidity Book pairs.

Each bin holds constant-sum liquidity at a single price. Bins below the
active bin hold only tokenY, bins above hold only tokenX, so with X as the
base token the lower bins are bids and the upper bins asks.
"""

import logging
import math
from typing import List, Optional

from depthbook.abi import function
from depthbook.discovery import bin_window
from depthbook.errors import DecodeError
from depthbook.orderbook import aggregate_levels, assemble
from depthbook.pricing import LOG_10, clamp_log_price
from depthbook.protocols.base import EvmProtocolAdapter, resolve_base_is_token0
from depthbook.reader import ReadRequest
from depthbook.subdivide import is_sane_amount
from depthbook.types import DepthData, LiquidityLevel, PoolIdentity, ProtocolKind, Reserves, Side

logger = logging.getLogger(__name__)

REAL_ID_SHIFT = 1 << 23

LB_PAIR_ABI = [
    {
        "inputs": [],
        "name": "getActiveId",
        "outputs": [{"internalType": "uint24", "name": "activeId", "type": "uint24"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getBinStep",
        "outputs": [{"internalType": "uint16", "name": "", "type": "uint16"}],
        "stateMutability": "pure",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "uint24", "name": "id", "type": "uint24"}],
        "name": "getBin",
        "outputs": [
            {"internalType": "uint128", "name": "binReserveX", "type": "uint128"},
            {"internalType": "uint128", "name": "binReserveY", "type": "uint128"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getTokenX",
        "outputs": [{"internalType": "contract IERC20", "name": "tokenX", "type": "address"}],
        "stateMutability": "pure",
        "type": "function",
    },
    {
        "inputs": [],
        "name": "getTokenY",
        "outputs": [{"internalType": "contract IERC20", "name": "tokenY", "type": "address"}],
        "stateMutability": "pure",
        "type": "function",
    },
]

GET_ACTIVE_ID = function(LB_PAIR_ABI, "getActiveId")
GET_BIN_STEP = function(LB_PAIR_ABI, "getBinStep")
GET_BIN = function(LB_PAIR_ABI, "getBin")
GET_TOKEN_X = function(LB_PAIR_ABI, "getTokenX")
GET_TOKEN_Y = function(LB_PAIR_ABI, "getTokenY")


def log_bin_price(bin_id: int, bin_step: int, decimals_x: int, decimals_y: int) -> float:
    """Natural log of the human price of X in Y for ``bin_id``."""
    return (bin_id - REAL_ID_SHIFT) * math.log1p(bin_step / 10_000) + (decimals_x - decimals_y) * LOG_10


def bin_price(bin_id: int, bin_step: int, decimals_x: int, decimals_y: int) -> float:
    return clamp_log_price(log_bin_price(bin_id, bin_step, decimals_x, decimals_y))


class LiquidityBookAdapter(EvmProtocolAdapter):
    kind = ProtocolKind.BIN_DLMM

    def _compute_depth(
        self, pool: PoolIdentity, reference_price: Optional[float], max_levels: int, precision: float
    ) -> DepthData:
        active, step, token_x, token_y = self.reader.read_many(
            [
                ReadRequest(pool.address, GET_ACTIVE_ID),
                ReadRequest(pool.address, GET_BIN_STEP),
                ReadRequest(pool.address, GET_TOKEN_X),
                ReadRequest(pool.address, GET_TOKEN_Y),
            ]
        )
        if None in (active, step, token_x, token_y):
            raise DecodeError(f"pair {pool.address} did not answer the Liquidity Book interface")
        active_id, bin_step = int(active[0]), int(step[0])
        x, y = self.token_info([token_x[0], token_y[0]])
        base_is_x = resolve_base_is_token0(x, y, pool.base_token, reference_price)
        base, quote = (x, y) if base_is_x else (y, x)

        bin_ids = list(bin_window(active_id, self.config.bin_radius))
        bins = self.reader.read_many([ReadRequest(pool.address, GET_BIN, (bin_id,)) for bin_id in bin_ids])

        def log_price(bin_id: int) -> float:
            value = log_bin_price(bin_id, bin_step, x.decimals, y.decimals)
            return value if base_is_x else -value

        # rescale so the active bin sits exactly at the reference price
        log_scale = math.log(reference_price) - log_price(active_id) if reference_price else 0.0
        floor, ceiling = self.config.price_floor, self.config.price_ceiling

        def price(log_value: float) -> float:
            return clamp_log_price(log_value + log_scale, floor, ceiling)

        current_price = price(log_price(active_id))
        bounds = self.config.subdivision
        bids: List[LiquidityLevel] = []
        asks: List[LiquidityLevel] = []
        base_total = quote_total = 0.0
        populated = 0
        for bin_id, reserves in zip(bin_ids, bins):
            if reserves is None:
                continue
            reserve_x, reserve_y = int(reserves[0]), int(reserves[1])
            amount_x = reserve_x / 10**x.decimals
            amount_y = reserve_y / 10**y.decimals
            base_reserve, quote_reserve = (amount_x, amount_y) if base_is_x else (amount_y, amount_x)
            base_total += base_reserve
            quote_total += quote_reserve
            if bin_id == active_id or (reserve_x == 0 and reserve_y == 0):
                continue
            populated += 1

            log_a, log_b = sorted((log_price(bin_id), log_price(bin_id + 1)))
            price_lower, price_upper = price(log_a), price(log_b)
            if not price_lower < price_upper:
                continue
            below = bin_id < active_id
            side = Side.BID if below == base_is_x else Side.ASK
            # amounts convert at the bin's own price, before reference scaling
            if side is Side.BID:
                level_price = price_lower
                quote_amount = quote_reserve
                base_amount = quote_amount / clamp_log_price(log_a, floor, ceiling)
                held = reserve_y if base_is_x else reserve_x
                liquidity_usd = quote_amount * clamp_log_price(log_scale, floor, ceiling)
            else:
                level_price = price_upper
                base_amount = base_reserve
                quote_amount = base_amount * clamp_log_price(log_b, floor, ceiling)
                held = reserve_x if base_is_x else reserve_y
                liquidity_usd = base_amount * level_price
            if not (
                is_sane_amount(base_amount, bounds.max_token_amount)
                and is_sane_amount(quote_amount, bounds.max_token_amount)
                and is_sane_amount(liquidity_usd, bounds.max_usd_value)
            ) or base_amount <= bounds.dust_amount:
                continue
            level = LiquidityLevel(
                price=level_price,
                price_lower=price_lower,
                price_upper=price_upper,
                base_amount=base_amount,
                quote_amount=quote_amount,
                liquidity_usd=liquidity_usd,
                tick_lower=bin_id,
                tick_upper=bin_id + 1,
                liquidity=held,
            )
            (bids if side is Side.BID else asks).append(level)

        logger.info("%s: active bin %d, %d populated bins in window", pool.address, active_id, populated)
        return assemble(
            aggregate_levels(bids, precision, Side.BID),
            aggregate_levels(asks, precision, Side.ASK),
            current_price=current_price,
            token_symbols=(base.symbol, quote.symbol),
            token_decimals=(base.decimals, quote.decimals),
            protocol_kind=self.kind,
            max_levels=max_levels,
            reserves=Reserves(base=base_total, quote=quote_total),
            current_tick=active_id,
            initialized_ticks=populated,
        )
