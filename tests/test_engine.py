import pytest
from web3 import HTTPProvider, Web3

from depthbook.cache import TTLDepthCache
from depthbook.config import ChainConfig, EngineConfig
from depthbook.engine import DepthEngine, as_ring, build_endpoints, normalize_address
from depthbook.errors import DeadlineExceededError, TransportError, UnsupportedProtocolError
from depthbook.multicall import EndpointRing
from depthbook.protocols.bonding_curve import CURVE_LAYOUT
from depthbook.protocols.solana import PUMP_FUN_PROGRAM
from depthbook.types import ProtocolKind

from conftest import POOL, POOL_ID, STATE_VIEW, WETH, FakeChain, FakeSolanaProvider, FakeV3Pool, FakeV4Pool

POSITIONS = [(-1200, 1200, 10**21), (-600, 600, 5 * 10**20)]
TESTNET = ChainConfig(name="testnet", rpc_url="", v4_state_view=STATE_VIEW)
SOLANA = ChainConfig(name="solana", rpc_url="", kind="solana", multicall_address=None)


def make_engine(chain, cache=None, **overrides):
    config = EngineConfig(batch_backoff=0.0, batch_size=50, **overrides)
    return DepthEngine(config, chains={"testnet": TESTNET}, cache=cache, providers={"testnet": chain})


class TestComputeDepth:
    def test_probes_and_builds_book(self, chain):
        FakeV3Pool(chain, current_tick=0, positions=POSITIONS)
        depth = make_engine(chain).compute_depth("testnet", POOL.lower(), reference_price=1.0, max_levels=10)
        assert depth.protocol_kind is ProtocolKind.TICK_CLMM
        assert depth.source == "rpc"
        assert depth.bids and depth.asks
        assert len(depth.bids) <= 10

    def test_v4_pool_with_supplied_tokens(self, chain):
        FakeV4Pool(chain, current_tick=0, positions=POSITIONS)
        depth = make_engine(chain).compute_depth(
            "testnet", POOL_ID, reference_price=1.0, token0="0x" + "a1" * 20, token1=WETH.lower()
        )
        assert depth.token_symbols == ("PEPE", "WETH")
        assert depth.bids and depth.asks

    def test_cache_hit_skips_the_chain(self, chain):
        FakeV3Pool(chain, current_tick=0, positions=POSITIONS)
        engine = make_engine(chain, cache=TTLDepthCache(ttl=60))
        first = engine.compute_depth("testnet", POOL, reference_price=1.0, dex="uniswap_v3")
        trips = chain.round_trips

        second = engine.compute_depth("testnet", POOL.lower(), reference_price=1.0, dex="uniswap_v3")

        assert chain.round_trips == trips
        assert second.source == "cache"
        assert second.bids == first.bids

    def test_cache_is_keyed_by_query(self, chain):
        FakeV3Pool(chain, current_tick=0, positions=POSITIONS)
        engine = make_engine(chain, cache=TTLDepthCache(ttl=60))
        engine.compute_depth("testnet", POOL, reference_price=1.0, dex="uniswap_v3")
        trips = chain.round_trips
        depth = engine.compute_depth("testnet", POOL, reference_price=1.0, dex="uniswap_v3", precision=0.01)
        assert chain.round_trips > trips
        assert depth.source == "rpc"

    def test_typed_empty_results_are_not_cached(self, chain):
        cache = TTLDepthCache(ttl=60)
        engine = make_engine(chain, cache=cache)
        depth = engine.compute_depth("testnet", POOL, dex="uniswap_v3")
        assert depth.is_empty and depth.reason
        assert len(cache) == 0


class TestQueryErrors:
    def test_unknown_chain(self, chain):
        with pytest.raises(UnsupportedProtocolError):
            make_engine(chain).compute_depth("moonbase", POOL)

    @pytest.mark.parametrize("price", [0.0, -1.0, float("nan"), float("inf")])
    def test_invalid_reference_price(self, chain, price):
        with pytest.raises(ValueError):
            make_engine(chain).compute_depth("testnet", POOL, reference_price=price)

    def test_negative_precision(self, chain):
        with pytest.raises(ValueError):
            make_engine(chain).compute_depth("testnet", POOL, precision=-0.1)

    def test_negative_levels(self, chain):
        with pytest.raises(ValueError):
            make_engine(chain).compute_depth("testnet", POOL, max_levels=-1)

    def test_unsupported_pool(self, chain):
        with pytest.raises(UnsupportedProtocolError):
            make_engine(chain).compute_depth("testnet", POOL)

    def test_transport_failure_reaches_caller(self, chain):
        FakeV3Pool(chain, current_tick=0, positions=POSITIONS)
        chain.transport_failures = 100
        with pytest.raises(TransportError):
            make_engine(chain).compute_depth("testnet", POOL, dex="uniswap_v3")

    def test_deadline(self, chain):
        FakeV3Pool(chain, current_tick=0, positions=POSITIONS)
        with pytest.raises(DeadlineExceededError):
            make_engine(chain, query_timeout=0.0).compute_depth("testnet", POOL, dex="uniswap_v3")
        assert chain.round_trips == 0


class TestEndpoints:
    def test_solana_query_fails_over_and_stays_on_live_endpoint(self):
        curve = b"\x17" * 8 + CURVE_LAYOUT.pack(1_073_000_000 * 10**6, 30 * 10**9, 793_100_000 * 10**6, 0, 10**15, False)
        dead = FakeSolanaProvider(failures=100)
        live = FakeSolanaProvider({"Curve111": (PUMP_FUN_PROGRAM, curve)})
        engine = DepthEngine(
            EngineConfig(batch_backoff=0.0),
            chains={"solana": SOLANA},
            providers={"solana": [dead, live]},
        )

        first = engine.compute_depth("solana", "Curve111", reference_price=5e-6)
        second = engine.compute_depth("solana", "Curve111", reference_price=5e-6)

        assert first.protocol_kind is ProtocolKind.BONDING_CURVE
        assert first.asks and second.asks
        assert dead.requests == 1

    def test_evm_query_fails_over(self, chain):
        FakeV3Pool(chain, current_tick=0, positions=POSITIONS)
        dead = FakeChain()
        dead.transport_failures = 100
        engine = DepthEngine(
            EngineConfig(batch_backoff=0.0), chains={"testnet": TESTNET}, providers={"testnet": [dead, chain]}
        )
        depth = engine.compute_depth("testnet", POOL, reference_price=1.0, dex="uniswap_v3")
        assert depth.bids and depth.asks
        assert dead.round_trips == 1

    def test_build_endpoints(self):
        config = EngineConfig()
        evm = ChainConfig(name="base", rpc_url="https://a", rpc_urls=["https://b", "https://a"])
        ring = build_endpoints(evm, config)
        assert len(ring) == 2
        assert isinstance(ring.current, Web3)

        solana = ChainConfig(name="solana", rpc_url="https://s", kind="solana", multicall_address=None)
        ring = build_endpoints(solana, config)
        assert len(ring) == 1
        assert isinstance(ring.current, HTTPProvider)
        assert ring.current.endpoint_uri == "https://s"

    def test_ring_is_passed_through(self, chain):
        ring = EndpointRing([chain])
        assert as_ring(ring) is ring
        assert as_ring(chain).current is chain
        assert len(as_ring((chain, chain))) == 2


def test_normalize_address():
    assert normalize_address(TESTNET, POOL.lower()) == POOL
    assert normalize_address(TESTNET, POOL_ID) == POOL_ID
    solana = ChainConfig(name="solana", rpc_url="", kind="solana")
    assert normalize_address(solana, "Curve111") == "Curve111"
