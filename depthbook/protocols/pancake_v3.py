import logging
from typing import Dict, Optional, Tuple

from depthbook.abi import function
from depthbook.config import EngineConfig
from depthbook.discovery import word_range
from depthbook.protocols.uniswap_v3 import UniswapV3Adapter, slot0_abi
from depthbook.reader import ChainReader, ReadRequest
from depthbook.types import PoolIdentity, PoolState, TickRecord

logger = logging.getLogger(__name__)

PANCAKE_POOL_ABI = [slot0_abi("uint32")]

TICK_LENS_ABI = [
    {
        "inputs": [
            {"internalType": "address", "name": "pool", "type": "address"},
            {"internalType": "int16", "name": "tickBitmapIndex", "type": "int16"},
        ],
        "name": "getPopulatedTicksInWord",
        "outputs": [
            {
                "components": [
                    {"internalType": "int24", "name": "tick", "type": "int24"},
                    {"internalType": "int128", "name": "liquidityNet", "type": "int128"},
                    {"internalType": "uint128", "name": "liquidityGross", "type": "uint128"},
                ],
                "internalType": "struct ITickLens.PopulatedTick[]",
                "name": "populatedTicks",
                "type": "tuple[]",
            }
        ],
        "stateMutability": "view",
        "type": "function",
    }
]

PANCAKE_SLOT0 = function(PANCAKE_POOL_ABI, "slot0")
POPULATED_TICKS = function(TICK_LENS_ABI, "getPopulatedTicksInWord")


class PancakeV3Adapter(UniswapV3Adapter):
    """PancakeSwap v3 pools: uint32 feeProtocol in slot0, optional TickLens discovery."""

    slot0 = PANCAKE_SLOT0

    def __init__(self, reader: ChainReader, config: EngineConfig, tick_lens_address: Optional[str] = None):
        super().__init__(reader, config)
        self.tick_lens_address = tick_lens_address

    def fetch_tick_records(
        self, pool: PoolIdentity, state: PoolState, min_tick: int, max_tick: int
    ) -> Tuple[Dict[int, TickRecord], int]:
        if not self.tick_lens_address:
            return super().fetch_tick_records(pool, state, min_tick, max_tick)
        words = list(word_range(min_tick, max_tick, state.tick_spacing))
        responses = self.reader.read_many(
            [ReadRequest(self.tick_lens_address, POPULATED_TICKS, (pool.address, word)) for word in words]
        )
        records: Dict[int, TickRecord] = {}
        failed = 0
        for response in responses:
            if response is None:
                failed += 1
                continue
            for tick, liquidity_net, liquidity_gross in response[0]:
                if liquidity_gross == 0 or tick < min_tick or tick > max_tick:
                    continue
                records[int(tick)] = TickRecord(int(tick), int(liquidity_gross), int(liquidity_net))
        if failed:
            logger.warning("%d of %d tick lens words failed and were skipped", failed, len(words))
        return records, failed
