from typing import List, Tuple

from depthbook.abi import AbiFunction, function
from depthbook.errors import DecodeError
from depthbook.protocols.clmm import ConcentratedLiquidityAdapter
from depthbook.reader import ReadRequest
from depthbook.types import PoolIdentity, PoolState, TokenInfo


def _view(name: str, inputs: List[dict], outputs: List[dict]) -> dict:
    return {"inputs": inputs, "name": name, "outputs": outputs, "stateMutability": "view", "type": "function"}


def _param(kind: str, name: str = "") -> dict:
    return {"internalType": kind, "name": name, "type": kind}


def slot0_abi(fee_protocol_type: str) -> dict:
    return _view(
        "slot0",
        [],
        [
            _param("uint160", "sqrtPriceX96"),
            _param("int24", "tick"),
            _param("uint16", "observationIndex"),
            _param("uint16", "observationCardinality"),
            _param("uint16", "observationCardinalityNext"),
            _param(fee_protocol_type, "feeProtocol"),
            _param("bool", "unlocked"),
        ],
    )


V3_POOL_ABI = [
    slot0_abi("uint8"),
    _view("liquidity", [], [_param("uint128")]),
    _view("tickSpacing", [], [_param("int24")]),
    _view("fee", [], [_param("uint24")]),
    _view("token0", [], [_param("address")]),
    _view("token1", [], [_param("address")]),
    _view("tickBitmap", [_param("int16", "wordPosition")], [_param("uint256")]),
    _view(
        "ticks",
        [_param("int24", "tick")],
        [
            _param("uint128", "liquidityGross"),
            _param("int128", "liquidityNet"),
            _param("uint256", "feeGrowthOutside0X128"),
            _param("uint256", "feeGrowthOutside1X128"),
            _param("int56", "tickCumulativeOutside"),
            _param("uint160", "secondsPerLiquidityOutsideX128"),
            _param("uint32", "secondsOutside"),
            _param("bool", "initialized"),
        ],
    ),
]

SLOT0 = function(V3_POOL_ABI, "slot0")
LIQUIDITY = function(V3_POOL_ABI, "liquidity")
TICK_SPACING = function(V3_POOL_ABI, "tickSpacing")
FEE = function(V3_POOL_ABI, "fee")
TOKEN0 = function(V3_POOL_ABI, "token0")
TOKEN1 = function(V3_POOL_ABI, "token1")
TICK_BITMAP = function(V3_POOL_ABI, "tickBitmap")
TICKS = function(V3_POOL_ABI, "ticks")


class UniswapV3Adapter(ConcentratedLiquidityAdapter):
    slot0: AbiFunction = SLOT0

    def fetch_pool_state(self, pool: PoolIdentity) -> PoolState:
        slot0, liquidity, tick_spacing, fee = self.reader.read_many(
            [
                ReadRequest(pool.address, self.slot0),
                ReadRequest(pool.address, LIQUIDITY),
                ReadRequest(pool.address, TICK_SPACING),
                ReadRequest(pool.address, FEE),
            ]
        )
        if slot0 is None or liquidity is None:
            raise DecodeError(f"pool {pool.address} did not answer slot0()/liquidity()")
        spacing = pool.tick_spacing or (tick_spacing[0] if tick_spacing else 0)
        if spacing <= 0:
            raise DecodeError(f"pool {pool.address} has no usable tick spacing")
        return PoolState(
            current_tick=int(slot0[1]),
            current_liquidity=int(liquidity[0]),
            sqrt_price_x96=int(slot0[0]),
            fee_or_bin_step=int(fee[0]) if fee else 0,
            tick_spacing=int(spacing),
        )

    def fetch_tokens(self, pool: PoolIdentity) -> Tuple[TokenInfo, TokenInfo]:
        token0, token1 = self.reader.read_many([ReadRequest(pool.address, TOKEN0), ReadRequest(pool.address, TOKEN1)])
        if token0 is None or token1 is None:
            raise DecodeError(f"pool {pool.address} did not answer token0()/token1()")
        info0, info1 = self.token_info([token0[0], token1[0]])
        return info0, info1

    def bitmap_request(self, pool: PoolIdentity, word_index: int) -> ReadRequest:
        return ReadRequest(pool.address, TICK_BITMAP, (word_index,))

    def tick_request(self, pool: PoolIdentity, tick: int) -> ReadRequest:
        return ReadRequest(pool.address, TICKS, (tick,))
