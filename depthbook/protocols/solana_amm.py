"""Constant-product pools on Solana whose reserves sit in SPL token vaults.

The pool account only points at its mints and vaults, so one more
getMultipleAccounts read fetches the vault balances and mint decimals
together. The book is then the same x*y=k ladder as an EVM pair.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from depthbook.errors import DecodeError
from depthbook.protocols.base import resolve_base_is_token0
from depthbook.protocols.constant_product import reserve_book
from depthbook.protocols.solana import SolanaProtocolAdapter, read_int, read_pubkey, token_account_amount
from depthbook.types import DepthData, PoolIdentity, ProtocolKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VaultPoolLayout:
    """Byte offsets of the pool's mints and vaults in its account data."""

    mint0: int
    mint1: int
    vault0: int
    vault1: int
    # u64 amounts still owed out of each vault, if the program tracks them
    pending0: Optional[int] = None
    pending1: Optional[int] = None


# pool_bump u8, index u16, creator, base_mint, quote_mint, lp_mint, base vault, quote vault
PUMPSWAP_LAYOUT = VaultPoolLayout(mint0=43, mint1=75, vault0=139, vault1=171)
# AmmInfo: 16 u64 params, fees, pnl counters, then vaults before mints
RAYDIUM_AMM_V4_LAYOUT = VaultPoolLayout(mint0=400, mint1=432, vault0=336, vault1=368, pending0=192, pending1=200)


class VaultPoolAdapter(SolanaProtocolAdapter):
    kind = ProtocolKind.CONSTANT_PRODUCT
    layout: VaultPoolLayout

    def vault_reserves(self, data: bytes, vault0, vault1) -> tuple:
        raw0, raw1 = token_account_amount(vault0), token_account_amount(vault1)
        if self.layout.pending0 is not None:
            raw0 -= read_int(data, self.layout.pending0, 8)
        if self.layout.pending1 is not None:
            raw1 -= read_int(data, self.layout.pending1, 8)
        return max(raw0, 0), max(raw1, 0)

    def _compute_depth(
        self, pool: PoolIdentity, reference_price: Optional[float], max_levels: int, precision: float
    ) -> DepthData:
        data = self.reader.account_data(pool.address)
        layout = self.layout
        mint0, mint1 = read_pubkey(data, layout.mint0), read_pubkey(data, layout.mint1)
        vault_keys = [read_pubkey(data, layout.vault0), read_pubkey(data, layout.vault1)]
        # one round trip for the vaults and the mints
        vault0, vault1, _, _ = self.reader.accounts(vault_keys + [mint0, mint1])
        if vault0 is None or vault1 is None:
            raise DecodeError(f"pool {pool.address} vaults {vault_keys} not found")
        info0, info1 = self.token_info([mint0, mint1])
        raw0, raw1 = self.vault_reserves(data, vault0, vault1)

        base_is_token0 = resolve_base_is_token0(info0, info1, pool.base_token, reference_price)
        base, quote = (info0, info1) if base_is_token0 else (info1, info0)
        raw_base, raw_quote = (raw0, raw1) if base_is_token0 else (raw1, raw0)
        logger.info("%s: vault reserves %d / %d", pool.address, raw_base, raw_quote)
        return reserve_book(
            self.kind,
            self.config,
            base,
            quote,
            raw_base / 10**base.decimals,
            raw_quote / 10**quote.decimals,
            reference_price,
            max_levels,
            precision,
            symbols=self.display_symbols(pool, base, quote),
        )


class PumpSwapAdapter(VaultPoolAdapter):
    layout = PUMPSWAP_LAYOUT


class RaydiumAmmAdapter(VaultPoolAdapter):
    layout = RAYDIUM_AMM_V4_LAYOUT
