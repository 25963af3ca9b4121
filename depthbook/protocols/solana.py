"""Program ids, account layout helpers and the base adapter for Solana pools."""

import logging
from typing import List, Optional, Sequence, Tuple

from solders.pubkey import Pubkey

from depthbook.errors import DecodeError
from depthbook.protocols.base import ProtocolAdapter
from depthbook.reader import SolanaAccount, SolanaAccountReader
from depthbook.types import PoolIdentity, TokenInfo

logger = logging.getLogger(__name__)

PUMP_FUN_PROGRAM = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"
PUMPSWAP_PROGRAM = "pAMMBay6oceH9fJKBRHGP5D4bD4sWpmSwMn52FMfXEA"
RAYDIUM_AMM_V4_PROGRAM = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"
RAYDIUM_CLMM_PROGRAM = "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"
ORCA_WHIRLPOOL_PROGRAM = "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc"
METEORA_DLMM_PROGRAM = "LBUZKhRxPF3XUpBCjp4YzTKgLccjZhTSDM9YuVaPwxo"

WSOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
KNOWN_MINT_SYMBOLS = {WSOL_MINT: "SOL", USDC_MINT: "USDC", USDT_MINT: "USDT"}

# SPL token program layouts
MINT_DECIMALS_OFFSET = 44
TOKEN_ACCOUNT_AMOUNT_OFFSET = 64


def read_int(data: bytes, offset: int, size: int, signed: bool = False) -> int:
    if len(data) < offset + size:
        raise DecodeError(f"account data is {len(data)} bytes, need {offset + size}")
    return int.from_bytes(data[offset : offset + size], "little", signed=signed)


def read_pubkey(data: bytes, offset: int) -> str:
    if len(data) < offset + 32:
        raise DecodeError(f"account data is {len(data)} bytes, need {offset + 32}")
    return str(Pubkey.from_bytes(data[offset : offset + 32]))


def mint_decimals(account: SolanaAccount) -> int:
    return read_int(account.data, MINT_DECIMALS_OFFSET, 1)


def token_account_amount(account: SolanaAccount) -> int:
    return read_int(account.data, TOKEN_ACCOUNT_AMOUNT_OFFSET, 8)


class SolanaProtocolAdapter(ProtocolAdapter):
    reader: SolanaAccountReader

    def token_info(self, mints: Sequence[str]) -> List[TokenInfo]:
        """Decimals from the mint accounts; symbols only for well-known mints."""
        tokens = []
        for mint, account in zip(mints, self.reader.accounts(mints)):
            if account is None:
                raise DecodeError(f"mint {mint} not found")
            symbol = KNOWN_MINT_SYMBOLS.get(mint, "TOKEN")
            tokens.append(TokenInfo(address=mint, symbol=symbol, decimals=mint_decimals(account)))
        logger.debug("resolved %d mint(s): %s", len(tokens), [t.decimals for t in tokens])
        return tokens

    @staticmethod
    def display_symbols(pool: PoolIdentity, base: TokenInfo, quote: TokenInfo) -> Tuple[str, str]:
        # mints carry no symbol on chain, so caller supplied ones win
        return pool.symbols or (base.symbol, quote.symbol)


def owner_of(reader: SolanaAccountReader, address: str) -> Optional[str]:
    """Program owning ``address``, or None when the account cannot be read."""
    try:
        return reader.account(address).owner or None
    except DecodeError as exc:
        logger.debug("cannot read %s owner: %s", address, exc.reason)
        return None
