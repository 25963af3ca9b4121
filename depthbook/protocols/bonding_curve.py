"""pump.fun style bonding curves on Solana.

The curve is a constant product over virtual reserves, so the ask side is
limited by the tokens still held by the curve and the bid side by the SOL
it has collected.
"""

import logging
import struct
from dataclasses import dataclass
from typing import Optional

from depthbook.errors import DecodeError
from depthbook.orderbook import aggregate_levels, assemble
from depthbook.protocols.constant_product import constant_product_ladder
from depthbook.protocols.solana import SolanaProtocolAdapter
from depthbook.types import DepthData, PoolIdentity, ProtocolKind, Reserves, Side

logger = logging.getLogger(__name__)

DISCRIMINATOR_SIZE = 8
CURVE_LAYOUT = struct.Struct("<QQQQQ?")
TOKEN_DECIMALS = 6
SOL_DECIMALS = 9


@dataclass(frozen=True)
class BondingCurveState:
    virtual_token_reserves: int
    virtual_sol_reserves: int
    real_token_reserves: int
    real_sol_reserves: int
    token_total_supply: int
    complete: bool

    @classmethod
    def decode(cls, data: bytes) -> "BondingCurveState":
        if len(data) < DISCRIMINATOR_SIZE + CURVE_LAYOUT.size:
            raise DecodeError(f"bonding curve account is {len(data)} bytes, too short")
        return cls(*CURVE_LAYOUT.unpack_from(data, DISCRIMINATOR_SIZE))

    @property
    def token_reserves(self) -> float:
        return self.virtual_token_reserves / 10**TOKEN_DECIMALS

    @property
    def sol_reserves(self) -> float:
        return self.virtual_sol_reserves / 10**SOL_DECIMALS

    @property
    def price(self) -> float:
        return self.price_after_sold(0)

    def price_after_sold(self, tokens_sold: int) -> float:
        """SOL per token once ``tokens_sold`` more raw tokens have left the curve."""
        remaining = self.virtual_token_reserves - tokens_sold
        if remaining <= 0:
            raise ValueError("cannot sell past the virtual token reserves")
        k = self.virtual_token_reserves * self.virtual_sol_reserves
        return (k / remaining / 10**SOL_DECIMALS) / (remaining / 10**TOKEN_DECIMALS)

    @property
    def max_price_ratio(self) -> float:
        remaining = self.virtual_token_reserves - self.real_token_reserves
        if remaining <= 0:
            return float("inf")
        return (self.virtual_token_reserves / remaining) ** 2

    @property
    def min_price_ratio(self) -> float:
        floor_sol = max(self.virtual_sol_reserves - self.real_sol_reserves, 0)
        return (floor_sol / self.virtual_sol_reserves) ** 2


class BondingCurveAdapter(SolanaProtocolAdapter):
    kind = ProtocolKind.BONDING_CURVE

    def _compute_depth(
        self, pool: PoolIdentity, reference_price: Optional[float], max_levels: int, precision: float
    ) -> DepthData:
        state = BondingCurveState.decode(self.reader.account_data(pool.address))
        symbols = pool.symbols or ("TOKEN", "SOL")
        decimals = (TOKEN_DECIMALS, SOL_DECIMALS)
        if state.complete:
            return DepthData.empty(
                self.kind,
                reason="bonding curve is complete, liquidity has migrated",
                current_price=reference_price or 0.0,
                token_symbols=symbols,
                token_decimals=decimals,
            )
        if state.virtual_token_reserves == 0 or state.virtual_sol_reserves == 0:
            raise DecodeError(f"bonding curve {pool.address} has empty virtual reserves")

        price_scale = reference_price / state.price if reference_price else 1.0
        levels = min(max_levels, self.config.cp_levels) if max_levels > 0 else self.config.cp_levels
        bids, asks = constant_product_ladder(
            state.token_reserves,
            state.sol_reserves,
            levels,
            self.config.cp_max_pct,
            self.config.subdivision,
            price_scale=price_scale,
            min_ratio=state.min_price_ratio,
            max_ratio=state.max_price_ratio,
        )
        logger.info("%s: curve price %.10f SOL, %d bid / %d ask levels", pool.address, state.price, len(bids), len(asks))
        return assemble(
            aggregate_levels(bids, precision, Side.BID),
            aggregate_levels(asks, precision, Side.ASK),
            current_price=state.price * price_scale,
            token_symbols=symbols,
            token_decimals=decimals,
            protocol_kind=self.kind,
            max_levels=max_levels,
            reserves=Reserves(
                base=state.real_token_reserves / 10**TOKEN_DECIMALS,
                quote=state.real_sol_reserves / 10**SOL_DECIMALS,
            ),
        )
