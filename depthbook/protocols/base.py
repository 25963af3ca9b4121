import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple

from depthbook.abi import ERC20_DECIMALS, ERC20_SYMBOL
from depthbook.config import EngineConfig
from depthbook.errors import DecodeError
from depthbook.pricing import DecimalAdjustment
from depthbook.reader import ChainReader, ReadRequest
from depthbook.types import DepthData, PoolIdentity, ProtocolKind, TokenInfo

logger = logging.getLogger(__name__)

KNOWN_QUOTE_SYMBOLS = frozenset({"WETH", "ETH", "USDC", "USDT", "DAI", "BUSD", "WBNB", "BNB", "SOL", "WSOL"})
NATIVE_TOKEN = "0x0000000000000000000000000000000000000000"


def resolve_base_is_token0(
    token0: TokenInfo,
    token1: TokenInfo,
    base_token: Optional[str] = None,
    reference_price: Optional[float] = None,
) -> bool:
    """Decide which pool token the book is quoted for.

    An explicit ``base_token`` wins, then a well-known quote symbol on either
    side, then the reference price heuristic (below 1 means token0 is base).
    """
    if base_token:
        if base_token.lower() == token0.address.lower():
            return True
        if base_token.lower() == token1.address.lower():
            return False
        logger.warning("base token %s is not in the pool, falling back to heuristics", base_token)
    quote0 = token0.symbol.upper() in KNOWN_QUOTE_SYMBOLS
    quote1 = token1.symbol.upper() in KNOWN_QUOTE_SYMBOLS
    if quote1 and not quote0:
        return True
    if quote0 and not quote1:
        return False
    return reference_price is not None and reference_price < 1


def make_adjustment(
    config: EngineConfig,
    reference_price: Optional[float],
    current_tick: int,
    base_is_token0: bool,
    base: TokenInfo,
    quote: TokenInfo,
) -> DecimalAdjustment:
    if reference_price:
        return DecimalAdjustment.from_reference(
            reference_price, current_tick, base_is_token0, config.price_floor, config.price_ceiling
        )
    return DecimalAdjustment.from_decimals(
        base.decimals, quote.decimals, base_is_token0, config.price_floor, config.price_ceiling
    )


class ProtocolAdapter(ABC):
    kind: ProtocolKind = ProtocolKind.UNKNOWN

    def __init__(self, reader, config: EngineConfig):
        self.reader = reader
        self.config = config

    def compute_depth(
        self,
        pool: PoolIdentity,
        reference_price: Optional[float] = None,
        max_levels: int = 0,
        precision: float = 0.0,
    ) -> DepthData:
        """Build the book for ``pool``.

        Undecodable pool state yields an empty book carrying the reason;
        transport failures propagate.
        """
        try:
            return self._compute_depth(pool, reference_price, max_levels, precision)
        except DecodeError as exc:
            logger.warning("%s pool %s on %s could not be decoded: %s", self.kind.value, pool.address, pool.chain_id, exc.reason)
            return DepthData.empty(self.kind, reason=exc.reason)

    @abstractmethod
    def _compute_depth(
        self, pool: PoolIdentity, reference_price: Optional[float], max_levels: int, precision: float
    ) -> DepthData:
        ...

    @staticmethod
    def display_symbols(pool: PoolIdentity, base: TokenInfo, quote: TokenInfo) -> Tuple[str, str]:
        return base.symbol, quote.symbol


class EvmProtocolAdapter(ProtocolAdapter):
    reader: ChainReader

    def token_info(self, addresses: Sequence[str]) -> List[TokenInfo]:
        """ERC-20 symbol and decimals, falling back to TOKEN/18 for tokens that do not answer."""
        requests = []
        for address in addresses:
            requests.append(ReadRequest(address, ERC20_SYMBOL))
            requests.append(ReadRequest(address, ERC20_DECIMALS))
        erc20 = [a for a in addresses if a.lower() != NATIVE_TOKEN]
        values = iter(self.reader.read_many([r for r in requests if r.address.lower() != NATIVE_TOKEN]))

        tokens = []
        for address in addresses:
            if address.lower() == NATIVE_TOKEN:
                tokens.append(TokenInfo(address=address, symbol="ETH", decimals=18))
                continue
            symbol, decimals = next(values), next(values)
            if symbol is None or decimals is None:
                logger.warning("token %s metadata unavailable, assuming TOKEN/18", address)
            tokens.append(
                TokenInfo(
                    address=address,
                    symbol=symbol[0] if symbol else "TOKEN",
                    decimals=int(decimals[0]) if decimals else 18,
                )
            )
        logger.debug("resolved %d token(s): %s", len(erc20), [t.symbol for t in tokens])
        return tokens
