"""Uniswap v4 pools, read through the per-chain StateView lens.

v4 pools live inside the singleton PoolManager and are addressed by a
32-byte pool id, so every read goes to StateView with the id as the first
argument. Token addresses cannot be recovered from the id and must be
supplied with the pool identity.
"""

from typing import Tuple

from depthbook.abi import function
from depthbook.config import EngineConfig
from depthbook.errors import DecodeError
from depthbook.pricing import tick_spacing_for_fee
from depthbook.protocols.clmm import ConcentratedLiquidityAdapter
from depthbook.reader import ChainReader, ReadRequest
from depthbook.types import PoolIdentity, PoolState, TokenInfo

POOL_ID_LENGTH = 66

STATE_VIEW_ABI = [
    {
        "inputs": [{"internalType": "PoolId", "name": "poolId", "type": "bytes32"}],
        "name": "getSlot0",
        "outputs": [
            {"internalType": "uint160", "name": "sqrtPriceX96", "type": "uint160"},
            {"internalType": "int24", "name": "tick", "type": "int24"},
            {"internalType": "uint24", "name": "protocolFee", "type": "uint24"},
            {"internalType": "uint24", "name": "lpFee", "type": "uint24"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "PoolId", "name": "poolId", "type": "bytes32"}],
        "name": "getLiquidity",
        "outputs": [{"internalType": "uint128", "name": "liquidity", "type": "uint128"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "PoolId", "name": "poolId", "type": "bytes32"},
            {"internalType": "int16", "name": "tick", "type": "int16"},
        ],
        "name": "getTickBitmap",
        "outputs": [{"internalType": "uint256", "name": "tickBitmap", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "PoolId", "name": "poolId", "type": "bytes32"},
            {"internalType": "int24", "name": "tick", "type": "int24"},
        ],
        "name": "getTickLiquidity",
        "outputs": [
            {"internalType": "uint128", "name": "liquidityGross", "type": "uint128"},
            {"internalType": "int128", "name": "liquidityNet", "type": "int128"},
        ],
        "stateMutability": "view",
        "type": "function",
    },
]

GET_SLOT0 = function(STATE_VIEW_ABI, "getSlot0")
GET_LIQUIDITY = function(STATE_VIEW_ABI, "getLiquidity")
GET_TICK_BITMAP = function(STATE_VIEW_ABI, "getTickBitmap")
GET_TICK_LIQUIDITY = function(STATE_VIEW_ABI, "getTickLiquidity")


def is_pool_id(address: str) -> bool:
    if len(address) != POOL_ID_LENGTH or not address.startswith("0x"):
        return False
    try:
        bytes.fromhex(address[2:])
    except ValueError:
        return False
    return True


def pool_id_bytes(address: str) -> bytes:
    if not is_pool_id(address):
        raise DecodeError(f"{address} is not a 32-byte pool id")
    return bytes.fromhex(address[2:])


class UniswapV4Adapter(ConcentratedLiquidityAdapter):
    def __init__(self, reader: ChainReader, config: EngineConfig, state_view: str):
        super().__init__(reader, config)
        self.state_view = state_view

    def fetch_pool_state(self, pool: PoolIdentity) -> PoolState:
        pool_id = pool_id_bytes(pool.address)
        slot0, liquidity = self.reader.read_many(
            [
                ReadRequest(self.state_view, GET_SLOT0, (pool_id,)),
                ReadRequest(self.state_view, GET_LIQUIDITY, (pool_id,)),
            ]
        )
        if slot0 is None or liquidity is None:
            raise DecodeError(f"StateView has no state for pool {pool.address}")
        sqrt_price_x96, tick, _, lp_fee = slot0
        if sqrt_price_x96 == 0:
            raise DecodeError(f"pool {pool.address} is not initialized")
        return PoolState(
            current_tick=int(tick),
            current_liquidity=int(liquidity[0]),
            sqrt_price_x96=int(sqrt_price_x96),
            fee_or_bin_step=int(lp_fee),
            tick_spacing=pool.tick_spacing or tick_spacing_for_fee(int(lp_fee)),
        )

    def fetch_tokens(self, pool: PoolIdentity) -> Tuple[TokenInfo, TokenInfo]:
        if not pool.token0 or not pool.token1:
            symbols = pool.symbols or ("TOKEN", "QUOTE")
            return TokenInfo("token0", symbols[0], 18), TokenInfo("token1", symbols[1], 18)
        info0, info1 = self.token_info([pool.token0, pool.token1])
        return info0, info1

    def bitmap_request(self, pool: PoolIdentity, word_index: int) -> ReadRequest:
        return ReadRequest(self.state_view, GET_TICK_BITMAP, (pool_id_bytes(pool.address), word_index))

    def tick_request(self, pool: PoolIdentity, tick: int) -> ReadRequest:
        return ReadRequest(self.state_view, GET_TICK_LIQUIDITY, (pool_id_bytes(pool.address), tick))
