"""In-memory chain used by the tests.

``FakeChain`` stands in for a web3 instance: it decodes Multicall3
``aggregate3`` calldata, routes every inner call to a registered handler by
(target, selector) and ABI-encodes what the handler returns.
"""

import base64
import math
from collections import defaultdict

import pytest
import requests
from eth_abi import decode, encode
from solders.pubkey import Pubkey
from web3 import Web3

from depthbook.abi import ERC20_DECIMALS, ERC20_SYMBOL
from depthbook.config import EngineConfig
from depthbook.multicall import AGGREGATE3, MULTICALL3_ADDRESS, MulticallClient
from depthbook.protocols import constant_product as v2
from depthbook.protocols import liquidity_book as lb
from depthbook.protocols import uniswap_v3 as v3
from depthbook.protocols import uniswap_v4 as v4
from depthbook.reader import ChainReader

PEPE = Web3.to_checksum_address("0x" + "a1" * 20)
WETH = Web3.to_checksum_address("0x" + "b2" * 20)
USDC = Web3.to_checksum_address("0x" + "c3" * 20)
POOL = Web3.to_checksum_address("0x" + "11" * 20)
STATE_VIEW = Web3.to_checksum_address("0x" + "22" * 20)
POOL_ID = "0x" + "ab" * 32


class Revert(Exception):
    pass


class Raw:
    """Handler result returned verbatim instead of being ABI-encoded."""

    def __init__(self, data: bytes):
        self.data = data


class FakeEth:
    def __init__(self, chain):
        self._chain = chain

    def call(self, transaction, *args, **kwargs):
        return self._chain.handle(transaction)


class FakeChain:
    def __init__(self):
        self.eth = FakeEth(self)
        self.handlers = {}
        self.transport_failures = 0
        self.round_trips = 0
        self.batch_sizes = []

    def register(self, address, fn, handler):
        self.handlers[(address.lower(), fn.selector)] = (fn, handler)

    def handle(self, transaction):
        self.round_trips += 1
        if self.transport_failures > 0:
            self.transport_failures -= 1
            raise requests.exceptions.ConnectionError("connection reset by peer")
        assert transaction["to"].lower() == MULTICALL3_ADDRESS.lower()
        data = transaction["data"]
        data = bytes.fromhex(data[2:]) if isinstance(data, str) else bytes(data)
        assert data[:4] == AGGREGATE3.selector
        (calls,) = decode(list(AGGREGATE3.input_types), data[4:])
        self.batch_sizes.append(len(calls))
        results = [self._dispatch(target, bytes(call_data)) for target, _, call_data in calls]
        return encode(list(AGGREGATE3.output_types), [results])

    def _dispatch(self, target, call_data):
        entry = self.handlers.get((target.lower(), call_data[:4]))
        if entry is None:
            return (False, b"")
        fn, handler = entry
        args = decode(list(fn.input_types), call_data[4:])
        try:
            out = handler(*args)
        except Revert:
            return (False, b"")
        if isinstance(out, Raw):
            return (True, out.data)
        return (True, encode(list(fn.output_types), list(out)))


def add_token(chain, address, symbol, decimals):
    chain.register(address, ERC20_SYMBOL, lambda: (symbol,))
    chain.register(address, ERC20_DECIMALS, lambda: (decimals,))


def sqrt_price_at(tick):
    return int(math.sqrt(1.0001**tick) * 2**96)


def tick_table(positions):
    """(gross, net) per tick for a list of (lower, upper, liquidity) positions."""
    table = defaultdict(lambda: [0, 0])
    for lower, upper, liquidity in positions:
        table[lower][0] += liquidity
        table[lower][1] += liquidity
        table[upper][0] += liquidity
        table[upper][1] -= liquidity
    return dict(table)


def active_liquidity(positions, current_tick):
    return sum(liquidity for lower, upper, liquidity in positions if lower <= current_tick < upper)


def bitmap_for(ticks, spacing, word):
    bitmap = 0
    for tick in ticks:
        compressed = tick // spacing
        if compressed >> 8 == word:
            bitmap |= 1 << (compressed - word * 256)
    return bitmap


class FakeV3Pool:
    def __init__(
        self,
        chain,
        address=POOL,
        token0=PEPE,
        token1=WETH,
        current_tick=0,
        positions=(),
        spacing=60,
        fee=3000,
        slot0_fn=v3.SLOT0,
        fee_protocol=0,
        ticks=None,
    ):
        self.spacing = spacing
        self.ticks = tick_table(positions) if ticks is None else ticks
        liquidity = active_liquidity(positions, current_tick)
        chain.register(
            address,
            slot0_fn,
            lambda: (sqrt_price_at(current_tick), current_tick, 0, 1, 1, fee_protocol, True),
        )
        chain.register(address, v3.LIQUIDITY, lambda: (liquidity,))
        chain.register(address, v3.TICK_SPACING, lambda: (spacing,))
        chain.register(address, v3.FEE, lambda: (fee,))
        chain.register(address, v3.TOKEN0, lambda: (token0,))
        chain.register(address, v3.TOKEN1, lambda: (token1,))
        chain.register(address, v3.TICK_BITMAP, lambda word: (bitmap_for(self.ticks, spacing, word),))
        chain.register(address, v3.TICKS, self._tick)

    def _tick(self, tick):
        gross, net = self.ticks.get(tick, (0, 0))
        return (gross, net, 0, 0, 0, 0, 0, gross > 0)


class FakeV4Pool:
    def __init__(self, chain, state_view=STATE_VIEW, pool_id=POOL_ID, current_tick=0, positions=(), lp_fee=3000):
        spacing = {100: 1, 500: 10, 3000: 60, 10000: 200}.get(lp_fee, 60)
        ticks = tick_table(positions)
        liquidity = active_liquidity(positions, current_tick)
        expected = bytes.fromhex(pool_id[2:])

        def checked(fn):
            def handler(pid, *args):
                if bytes(pid) != expected:
                    raise Revert()
                return fn(*args)

            return handler

        chain.register(state_view, v4.GET_SLOT0, checked(lambda: (sqrt_price_at(current_tick), current_tick, 0, lp_fee)))
        chain.register(state_view, v4.GET_LIQUIDITY, checked(lambda: (liquidity,)))
        chain.register(state_view, v4.GET_TICK_BITMAP, checked(lambda word: (bitmap_for(ticks, spacing, word),)))
        chain.register(state_view, v4.GET_TICK_LIQUIDITY, checked(lambda tick: tuple(ticks.get(tick, (0, 0)))))


class FakeLBPair:
    def __init__(self, chain, address=POOL, token_x=PEPE, token_y=USDC, active_id=1 << 23, bin_step=25, bins=None):
        bins = bins or {}
        chain.register(address, lb.GET_ACTIVE_ID, lambda: (active_id,))
        chain.register(address, lb.GET_BIN_STEP, lambda: (bin_step,))
        chain.register(address, lb.GET_TOKEN_X, lambda: (token_x,))
        chain.register(address, lb.GET_TOKEN_Y, lambda: (token_y,))
        chain.register(address, lb.GET_BIN, lambda bin_id: bins.get(bin_id, (0, 0)))


class FakeV2Pair:
    def __init__(self, chain, address=POOL, token0=PEPE, token1=WETH, reserve0=0, reserve1=0):
        chain.register(address, v2.GET_RESERVES, lambda: (reserve0, reserve1, 0))
        chain.register(address, v2.PAIR_TOKEN0, lambda: (token0,))
        chain.register(address, v2.PAIR_TOKEN1, lambda: (token1,))


class FakeSolanaProvider:
    """Answers account reads from a dict.

    Values are raw account bytes, or ``(owner, bytes)`` when the owning
    program matters to the test.
    """

    def __init__(self, accounts=None, failures=0):
        self.accounts = accounts or {}
        self.failures = failures
        self.requests = 0
        self.methods = []

    def make_request(self, method, params):
        self.requests += 1
        self.methods.append(method)
        if self.failures > 0:
            self.failures -= 1
            raise requests.exceptions.Timeout("read timed out")
        if method == "getAccountInfo":
            return self._reply({"context": {"slot": 1}, "value": self._value(params[0])})
        if method == "getMultipleAccounts":
            return self._reply({"context": {"slot": 1}, "value": [self._value(a) for a in params[0]]})
        assert method == "getProgramAccounts"
        program, options = params
        matches = [
            {"pubkey": address, "account": self._value(address)}
            for address in self.accounts
            if self._owner(address) == program and all(self._matches(address, f) for f in options.get("filters", []))
        ]
        return self._reply(matches)

    def _reply(self, result):
        return {"jsonrpc": "2.0", "id": 1, "result": result}

    def _entry(self, address):
        entry = self.accounts.get(address)
        if entry is None or isinstance(entry, tuple):
            return entry
        return ("11111111111111111111111111111111", entry)

    def _owner(self, address):
        return self._entry(address)[0]

    def _value(self, address):
        entry = self._entry(address)
        if entry is None:
            return None
        owner, data = entry
        return {"owner": owner, "lamports": 1, "data": [base64.b64encode(bytes(data)).decode(), "base64"]}

    def _matches(self, address, account_filter):
        data = bytes(self._entry(address)[1])
        if "dataSize" in account_filter:
            return len(data) == account_filter["dataSize"]
        memcmp = account_filter["memcmp"]
        expected = bytes(Pubkey.from_string(memcmp["bytes"]))
        return data[memcmp["offset"] : memcmp["offset"] + len(expected)] == expected


def solana_key(seed):
    return str(Pubkey.from_bytes(bytes([seed]) * 32))


def write(buf, offset, value, size, signed=False):
    buf[offset : offset + size] = value.to_bytes(size, "little", signed=signed)


def write_key(buf, offset, address):
    buf[offset : offset + 32] = bytes(Pubkey.from_string(address))


def mint_account(decimals):
    data = bytearray(82)
    data[44] = decimals
    return bytes(data)


def token_account(mint, amount):
    data = bytearray(165)
    write_key(data, 0, mint)
    write(data, 64, amount, 8)
    return bytes(data)


def tick_array_account(layout, pool, start_tick, ticks):
    """``ticks`` maps a slot index to ``(liquidity_gross, liquidity_net)``."""
    data = bytearray(layout.account_size)
    write_key(data, layout.pool_key, pool)
    write(data, layout.start_tick, start_tick, 4, signed=True)
    for index, (gross, net) in ticks.items():
        slot = layout.first_slot + index * layout.slot_size
        write(data, slot + layout.liquidity_net, net, 16, signed=True)
        write(data, slot + layout.liquidity_gross, gross, 16)
    return bytes(data)


@pytest.fixture
def chain():
    chain = FakeChain()
    add_token(chain, PEPE, "PEPE", 18)
    add_token(chain, WETH, "WETH", 18)
    add_token(chain, USDC, "USDC", 6)
    return chain


@pytest.fixture
def config():
    return EngineConfig(batch_backoff=0.0, batch_size=50)


@pytest.fixture
def reader(chain, config):
    multicall = MulticallClient(chain, batch_size=config.batch_size, retries=config.batch_retries, backoff=0.0)
    return ChainReader(chain, multicall)
