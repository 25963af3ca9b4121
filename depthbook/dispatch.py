"""Pick the adapter for a pool, from its dex tag or by probing its interface."""

import logging
from typing import Optional

from depthbook.config import ChainConfig, EngineConfig
from depthbook.errors import UnsupportedProtocolError
from depthbook.protocols.base import ProtocolAdapter
from depthbook.protocols.bonding_curve import BondingCurveAdapter
from depthbook.protocols.constant_product import GET_RESERVES, ConstantProductAdapter
from depthbook.protocols.liquidity_book import GET_ACTIVE_ID, LiquidityBookAdapter
from depthbook.protocols.pancake_v3 import PANCAKE_SLOT0, PancakeV3Adapter
from depthbook.protocols.solana import (
    METEORA_DLMM_PROGRAM,
    ORCA_WHIRLPOOL_PROGRAM,
    PUMP_FUN_PROGRAM,
    PUMPSWAP_PROGRAM,
    RAYDIUM_AMM_V4_PROGRAM,
    RAYDIUM_CLMM_PROGRAM,
    owner_of,
)
from depthbook.protocols.solana_amm import PumpSwapAdapter, RaydiumAmmAdapter
from depthbook.protocols.solana_clmm import RaydiumClmmAdapter, WhirlpoolAdapter
from depthbook.protocols.uniswap_v3 import SLOT0, UniswapV3Adapter
from depthbook.protocols.uniswap_v4 import UniswapV4Adapter, is_pool_id
from depthbook.reader import ChainReader, ReadRequest, SolanaAccountReader
from depthbook.types import PoolIdentity

logger = logging.getLogger(__name__)

UNISWAP_V3 = "uniswap_v3"
PANCAKE_V3 = "pancake_v3"
UNISWAP_V4 = "uniswap_v4"
LIQUIDITY_BOOK = "liquidity_book"
CONSTANT_PRODUCT = "constant_product"
BONDING_CURVE = "bonding_curve"
PUMPSWAP = "pumpswap"
RAYDIUM_AMM = "raydium_amm"
RAYDIUM_CLMM = "raydium_clmm"
ORCA_WHIRLPOOL = "orca_whirlpool"
METEORA_DLMM = "meteora_dlmm"

SOLANA_PROGRAMS = {
    PUMP_FUN_PROGRAM: BONDING_CURVE,
    PUMPSWAP_PROGRAM: PUMPSWAP,
    RAYDIUM_AMM_V4_PROGRAM: RAYDIUM_AMM,
    RAYDIUM_CLMM_PROGRAM: RAYDIUM_CLMM,
    ORCA_WHIRLPOOL_PROGRAM: ORCA_WHIRLPOOL,
    METEORA_DLMM_PROGRAM: METEORA_DLMM,
}

SOLANA_ADAPTERS = {
    BONDING_CURVE: BondingCurveAdapter,
    PUMPSWAP: PumpSwapAdapter,
    RAYDIUM_AMM: RaydiumAmmAdapter,
    RAYDIUM_CLMM: RaydiumClmmAdapter,
    ORCA_WHIRLPOOL: WhirlpoolAdapter,
}


def _solana_adapter_for_tag(tag: str) -> Optional[str]:
    if "pumpswap" in tag or "pump_swap" in tag:
        return PUMPSWAP
    if "pump" in tag:
        return BONDING_CURVE
    if "raydium" in tag:
        return RAYDIUM_CLMM if "clmm" in tag else RAYDIUM_AMM
    if "orca" in tag or "whirlpool" in tag:
        return ORCA_WHIRLPOOL
    if "meteora" in tag:
        return METEORA_DLMM
    return None


def adapter_for_tag(dex: Optional[str], chain_kind: str = "evm") -> Optional[str]:
    """Map a free-form dex tag to an adapter name; None if the tag says nothing."""
    if not dex:
        return None
    tag = dex.lower().replace("-", "_").replace(" ", "_").replace(".", "")
    if chain_kind == "solana":
        return _solana_adapter_for_tag(tag)
    if "liquidity_book" in tag or "traderjoe" in tag or "joe" in tag or "dlmm" in tag:
        return LIQUIDITY_BOOK
    if "v4" in tag:
        return UNISWAP_V4
    if "pancake" in tag and "v3" in tag:
        return PANCAKE_V3
    if "v3" in tag or "clmm" in tag:
        return UNISWAP_V3
    if "v2" in tag or "constant_product" in tag:
        return CONSTANT_PRODUCT
    return None


def probe_protocol(reader: ChainReader, pool: PoolIdentity) -> str:
    """Identify an EVM pool by which view functions it answers, in one batch."""
    if is_pool_id(pool.address):
        return UNISWAP_V4
    slot0, pancake_slot0, active_id, reserves = reader.read_many(
        [
            ReadRequest(pool.address, SLOT0),
            ReadRequest(pool.address, PANCAKE_SLOT0),
            ReadRequest(pool.address, GET_ACTIVE_ID),
            ReadRequest(pool.address, GET_RESERVES),
        ]
    )
    if slot0 is not None:
        return UNISWAP_V3
    if pancake_slot0 is not None:
        return PANCAKE_V3
    if active_id is not None:
        return LIQUIDITY_BOOK
    if reserves is not None:
        return CONSTANT_PRODUCT
    raise UnsupportedProtocolError(f"no adapter matches pool {pool.address} on {pool.chain_id}")


def adapter_for_owner(reader: SolanaAccountReader, pool: PoolIdentity) -> Optional[str]:
    """Identify a Solana pool by the program that owns its account."""
    owner = owner_of(reader, pool.address)
    name = SOLANA_PROGRAMS.get(owner) if owner else None
    if owner and name is None:
        logger.info("%s is owned by unknown program %s", pool.address, owner)
    return name


def resolve_adapter(
    pool: PoolIdentity,
    chain: ChainConfig,
    config: EngineConfig,
    reader: Optional[ChainReader] = None,
    solana_reader: Optional[SolanaAccountReader] = None,
) -> ProtocolAdapter:
    if chain.kind == "solana":
        if solana_reader is None:
            raise UnsupportedProtocolError(f"{chain.name} has no rpc endpoint configured")
        name = adapter_for_owner(solana_reader, pool) or adapter_for_tag(pool.dex, chain.kind) or BONDING_CURVE
        adapter = SOLANA_ADAPTERS.get(name)
        if adapter is None:
            raise UnsupportedProtocolError(f"{name} pools are not supported on {chain.name}")
        return adapter(solana_reader, config)

    if reader is None:
        raise UnsupportedProtocolError(f"{chain.name} has no multicall reader configured")
    name = adapter_for_tag(pool.dex)
    if name is None:
        name = probe_protocol(reader, pool)
        logger.info("probed %s on %s as %s", pool.address, chain.name, name)

    if name == UNISWAP_V3:
        return UniswapV3Adapter(reader, config)
    if name == PANCAKE_V3:
        return PancakeV3Adapter(reader, config, tick_lens_address=chain.tick_lens_address)
    if name == UNISWAP_V4:
        if not chain.v4_state_view:
            raise UnsupportedProtocolError(f"Uniswap v4 has no StateView on {chain.name}")
        return UniswapV4Adapter(reader, config, chain.v4_state_view)
    if name == LIQUIDITY_BOOK:
        return LiquidityBookAdapter(reader, config)
    if name == CONSTANT_PRODUCT:
        return ConstantProductAdapter(reader, config)
    raise UnsupportedProtocolError(f"{name} pools are not supported on {chain.name}")
