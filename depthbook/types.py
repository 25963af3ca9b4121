from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Optional, Tuple


class ProtocolKind(str, Enum):
    TICK_CLMM = "tick_clmm"
    BIN_DLMM = "bin_dlmm"
    CONSTANT_PRODUCT = "constant_product"
    BONDING_CURVE = "bonding_curve"
    UNKNOWN = "unknown"


class Side(str, Enum):
    BID = "bid"
    ASK = "ask"


@dataclass(frozen=True)
class PoolIdentity:
    chain_id: str
    address: str
    dex: str | None = None
    tick_spacing: int | None = None
    base_token: str | None = None
    # v4 pools are addressed by id, so their tokens have to be supplied
    token0: str | None = None
    token1: str | None = None
    symbols: Tuple[str, str] | None = None


@dataclass(frozen=True)
class TokenInfo:
    address: str
    symbol: str = "TOKEN"
    decimals: int = 18


@dataclass(frozen=True)
class PoolState:
    current_tick: int
    current_liquidity: int
    sqrt_price_x96: Optional[int] = None
    fee_or_bin_step: int = 0
    tick_spacing: int = 1


@dataclass(frozen=True)
class TickRecord:
    tick: int
    liquidity_gross: int
    liquidity_net: int


@dataclass(frozen=True)
class LiquidityInterval:
    tick_lower: int
    tick_upper: int
    liquidity: int

    @property
    def width(self) -> int:
        return self.tick_upper - self.tick_lower


@dataclass(frozen=True)
class LiquidityLevel:
    price: float
    price_lower: float
    price_upper: float
    base_amount: float
    quote_amount: float
    liquidity_usd: float
    tick_lower: Optional[int] = None
    tick_upper: Optional[int] = None
    liquidity: int = 0


@dataclass(frozen=True)
class LiquidityCluster:
    tick_lower: int
    tick_upper: int
    price_lower: float
    price_upper: float
    total_liquidity: int
    tick_count: int


@dataclass(frozen=True)
class Reserves:
    base: float
    quote: float


@dataclass(frozen=True)
class DepthData:
    """Synthetic order book reconstructed from one pool.

    ``bids`` are sorted by price descending and ``asks`` ascending. ``reason``
    is only set when the pool could not be decoded; an empty book with no
    reason means the pool simply holds no liquidity in range.
    """

    bids: Tuple[LiquidityLevel, ...]
    asks: Tuple[LiquidityLevel, ...]
    current_price: float
    token_symbols: Tuple[str, str]
    token_decimals: Tuple[int, int]
    protocol_kind: ProtocolKind
    total_bid_usd: float = 0.0
    total_ask_usd: float = 0.0
    total_bid_base: float = 0.0
    total_ask_base: float = 0.0
    reserves: Optional[Reserves] = None
    current_tick: Optional[int] = None
    tick_spacing: Optional[int] = None
    initialized_ticks: int = 0
    clusters: Tuple[LiquidityCluster, ...] = field(default_factory=tuple)
    source: str = "rpc"
    reason: Optional[str] = None

    @classmethod
    def empty(
        cls,
        protocol_kind: ProtocolKind,
        reason: str | None = None,
        current_price: float = 0.0,
        token_symbols: Tuple[str, str] = ("TOKEN", "QUOTE"),
        token_decimals: Tuple[int, int] = (18, 18),
    ) -> "DepthData":
        return cls(
            bids=(),
            asks=(),
            current_price=current_price,
            token_symbols=token_symbols,
            token_decimals=token_decimals,
            protocol_kind=protocol_kind,
            reason=reason,
        )

    @property
    def is_empty(self) -> bool:
        return not self.bids and not self.asks

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0].price if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0].price if self.asks else None

    @property
    def spread(self) -> Optional[float]:
        if self.best_bid is None or self.best_ask is None:
            return None
        return self.best_ask - self.best_bid

    def to_dict(self) -> dict:
        data = asdict(self)
        data["protocol_kind"] = self.protocol_kind.value
        data["bids"] = list(data["bids"])
        data["asks"] = list(data["asks"])
        data["clusters"] = list(data["clusters"])
        data["token_symbols"] = list(self.token_symbols)
        data["token_decimals"] = list(self.token_decimals)
        data["spread"] = self.spread
        return data
