import logging
import math
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from web3 import Web3

from depthbook.cache import CacheKey, DepthCache
from depthbook.config import ChainConfig, EngineConfig, load_chains
from depthbook.deadline import Deadline
from depthbook.dispatch import resolve_adapter
from depthbook.errors import UnsupportedProtocolError
from depthbook.multicall import EndpointRing, MulticallClient
from depthbook.reader import ChainReader, SolanaAccountReader
from depthbook.types import DepthData, PoolIdentity

logger = logging.getLogger(__name__)


def build_endpoints(chain: ChainConfig, config: EngineConfig) -> EndpointRing:
    """One provider per configured url; EVM chains get theirs wrapped in Web3."""
    providers = [Web3.HTTPProvider(url, request_kwargs={"timeout": config.batch_timeout}) for url in chain.endpoints]
    if chain.kind == "solana":
        return EndpointRing(providers)
    return EndpointRing([Web3(provider) for provider in providers])


def as_ring(endpoints: Union[Any, Sequence[Any], EndpointRing]) -> EndpointRing:
    if isinstance(endpoints, EndpointRing):
        return endpoints
    if isinstance(endpoints, (list, tuple)):
        return EndpointRing(endpoints)
    return EndpointRing([endpoints])


def normalize_address(chain: ChainConfig, address: str) -> str:
    if chain.kind == "evm" and Web3.is_address(address):
        return Web3.to_checksum_address(address)
    return address


class DepthEngine:
    """Computes synthetic order books for AMM pools.

    Every query builds its own readers and deadline; the engine only holds
    configuration, one ring of rpc endpoints per chain and the optional cache.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        chains: Optional[Mapping[str, ChainConfig]] = None,
        cache: Optional[DepthCache] = None,
        providers: Optional[Mapping[str, Any]] = None,
    ):
        self.config = config or EngineConfig()
        self.chains: Dict[str, ChainConfig] = dict(chains) if chains is not None else load_chains()
        self.cache = cache
        # a provider, a list of them, or a ready ring per chain name
        self._endpoints: Dict[str, EndpointRing] = {name: as_ring(p) for name, p in (providers or {}).items()}
        for name, chain in self.chains.items():
            if name not in self._endpoints and chain.endpoints:
                self._endpoints[name] = build_endpoints(chain, self.config)

    def compute_depth(
        self,
        chain_id: str,
        pool_address: str,
        reference_price: Optional[float] = None,
        max_levels: Optional[int] = None,
        precision: float = 0.0,
        dex: Optional[str] = None,
        tick_spacing: Optional[int] = None,
        base_token: Optional[str] = None,
        token0: Optional[str] = None,
        token1: Optional[str] = None,
        symbols: Optional[Tuple[str, str]] = None,
    ) -> DepthData:
        chain = self._chain(chain_id)
        pool = PoolIdentity(
            chain_id=chain.name,
            address=normalize_address(chain, pool_address),
            dex=dex,
            tick_spacing=tick_spacing,
            base_token=base_token,
            token0=normalize_address(chain, token0) if token0 else None,
            token1=normalize_address(chain, token1) if token1 else None,
            symbols=symbols,
        )
        return self.compute(pool, reference_price, max_levels, precision)

    def compute(
        self,
        pool: PoolIdentity,
        reference_price: Optional[float] = None,
        max_levels: Optional[int] = None,
        precision: float = 0.0,
    ) -> DepthData:
        if reference_price is not None and (not reference_price > 0 or not math.isfinite(reference_price)):
            raise ValueError(f"reference price must be positive and finite, got {reference_price!r}")
        if precision < 0 or not math.isfinite(precision):
            raise ValueError(f"precision must be a non-negative number, got {precision!r}")
        levels = self.config.max_levels if max_levels is None else max_levels
        if levels < 0:
            raise ValueError(f"max_levels must be non-negative, got {levels}")
        chain = self._chain(pool.chain_id)

        key = CacheKey(chain.name, pool.address.lower(), levels, precision, pool.dex, reference_price)
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("cache hit for %s on %s", pool.address, chain.name)
                return replace(cached, source="cache")

        deadline = Deadline(self.config.query_timeout)
        adapter = resolve_adapter(
            pool,
            chain,
            self.config,
            reader=self._chain_reader(chain, deadline),
            solana_reader=self._solana_reader(chain, deadline),
        )
        depth = adapter.compute_depth(pool, reference_price, levels, precision)
        deadline.check("depth query")

        if self.cache is not None and depth.reason is None:
            self.cache.set(key, depth)
        logger.info(
            "%s on %s: %s book with %d bids, %d asks",
            pool.address,
            chain.name,
            depth.protocol_kind.value,
            len(depth.bids),
            len(depth.asks),
        )
        return depth

    def _chain(self, chain_id: str) -> ChainConfig:
        chain = self.chains.get(chain_id.lower())
        if chain is None:
            raise UnsupportedProtocolError(f"unknown chain {chain_id!r}")
        return chain

    def _chain_reader(self, chain: ChainConfig, deadline: Deadline) -> Optional[ChainReader]:
        ring = self._endpoints.get(chain.name)
        if chain.kind != "evm" or ring is None or not chain.multicall_address:
            return None
        multicall = MulticallClient(
            ring,
            chain.multicall_address,
            batch_size=self.config.batch_size,
            retries=self.config.batch_retries,
            backoff=self.config.batch_backoff,
        )
        return ChainReader(ring.current, multicall, deadline)

    def _solana_reader(self, chain: ChainConfig, deadline: Deadline) -> Optional[SolanaAccountReader]:
        ring = self._endpoints.get(chain.name)
        if chain.kind != "solana" or ring is None:
            return None
        return SolanaAccountReader(ring, deadline, retries=self.config.batch_retries, backoff=self.config.batch_backoff)
