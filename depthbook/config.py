import json
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from depthbook.multicall import MULTICALL3_ADDRESS
from depthbook.pricing import PRICE_CEILING, PRICE_FLOOR
from depthbook.subdivide import SubdivisionBounds


@dataclass
class ChainConfig:
    name: str
    rpc_url: str
    # fallbacks, tried in order once rpc_url fails
    rpc_urls: List[str] = field(default_factory=list)
    kind: str = "evm"  # evm, solana
    explorer: str = ""
    multicall_address: str | None = MULTICALL3_ADDRESS
    v4_state_view: str | None = None
    tick_lens_address: str | None = None

    @property
    def endpoints(self) -> List[str]:
        return [url for url in dict.fromkeys([self.rpc_url, *self.rpc_urls]) if url]


@dataclass
class EngineConfig:
    max_levels: int = 50
    # None scans the whole tick range
    tick_range: int | None = None
    verify_net_balance: bool = True
    bin_radius: int = 500
    cp_levels: int = 50
    cp_max_pct: float = 50.0
    price_floor: float = PRICE_FLOOR
    price_ceiling: float = PRICE_CEILING
    subdivision: SubdivisionBounds = field(default_factory=SubdivisionBounds)
    batch_size: int = 200
    batch_retries: int = 2
    batch_backoff: float = 0.5
    batch_timeout: float = 10.0
    query_timeout: float | None = 30.0
    cache_ttl: float = 2.0
    cache_max_entries: int = 100
    find_clusters: bool = True


DEFAULT_CHAINS: Dict[str, ChainConfig] = {
    "ethereum": ChainConfig(
        name="ethereum",
        rpc_url="https://eth.llamarpc.com",
        rpc_urls=["https://rpc.ankr.com/eth", "https://ethereum.publicnode.com"],
        explorer="https://etherscan.io/tx/",
        v4_state_view="0x7fFE42C4a5DEeA5b0feC41C94C136Cf115597227",
    ),
    "base": ChainConfig(
        name="base",
        rpc_url="https://base-rpc.publicnode.com",
        rpc_urls=["https://mainnet.base.org", "https://rpc.ankr.com/base"],
        explorer="https://basescan.org/tx/",
        v4_state_view="0xA3c0c9b65baD0b08107Aa264b0f3dB444b867A71",
    ),
    "bsc": ChainConfig(
        name="bsc",
        rpc_url="https://bsc-dataseed1.binance.org",
        rpc_urls=["https://bsc-dataseed2.binance.org", "https://rpc.ankr.com/bsc"],
        explorer="https://bscscan.com/tx/",
        v4_state_view="0xd13Dd3D6E93f276FAf608fC159f2f5f3eAD4B19C",
    ),
    "arbitrum": ChainConfig(
        name="arbitrum",
        rpc_url="https://arb1.arbitrum.io/rpc",
        rpc_urls=["https://rpc.ankr.com/arbitrum"],
        explorer="https://arbiscan.io/tx/",
        v4_state_view="0x76fd297e2D437cd7f76d50F01AfE6160f86e9990",
    ),
    "polygon": ChainConfig(
        name="polygon",
        rpc_url="https://polygon-rpc.com",
        rpc_urls=["https://rpc.ankr.com/polygon"],
        explorer="https://polygonscan.com/tx/",
        v4_state_view="0x002D8C2Cf8a27D3044A9d5bD7e9d7146f8012c56",
    ),
    "solana": ChainConfig(
        name="solana",
        rpc_url="https://api.mainnet-beta.solana.com",
        rpc_urls=["https://solana-mainnet.rpc.extrnode.com"],
        kind="solana",
        explorer="https://solscan.io/tx/",
        multicall_address=None,
    ),
}

_CONFIG_PATH = Path(__file__).with_name("config.json")


def _load_config_from_file(path: Path) -> dict:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _get_env_or_default(env: Mapping[str, str], key: str, fallback: Optional[str]) -> Optional[str]:
    return env.get(key, fallback)


def _get_list_env(env: Mapping[str, str], key: str, fallback) -> List[str]:
    raw_value = env.get(key)
    if raw_value is not None:
        return [item.strip() for item in raw_value.split(",") if item.strip()]
    return list(fallback or [])


def _get_int_env(env: Mapping[str, str], key: str, fallback, default: int) -> int:
    raw_value = env.get(key)
    if raw_value is not None:
        try:
            return int(raw_value)
        except ValueError:
            pass
    if fallback is not None:
        try:
            return int(fallback)
        except (TypeError, ValueError):
            pass
    return default


def _get_float_env(env: Mapping[str, str], key: str, fallback, default: float) -> float:
    raw_value = env.get(key)
    if raw_value is not None:
        try:
            return float(raw_value)
        except ValueError:
            pass
    if fallback is not None:
        try:
            return float(fallback)
        except (TypeError, ValueError):
            pass
    return default


def _get_bool_env(env: Mapping[str, str], key: str, fallback, default: bool) -> bool:
    raw_value = env.get(key)
    if raw_value is not None:
        return raw_value.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(fallback, bool):
        return fallback
    return default


def load_engine_config(path: Path = _CONFIG_PATH, env: Optional[Mapping[str, str]] = None) -> EngineConfig:
    """Defaults, overridden by the ``engine`` section of config.json, then DEPTHBOOK_* variables."""
    env = os.environ if env is None else env
    data = _load_config_from_file(path).get("engine", {})
    base = EngineConfig()
    sub = data.get("subdivision", {})
    tick_range_raw = _get_env_or_default(env, "DEPTHBOOK_TICK_RANGE", data.get("tick_range"))
    return EngineConfig(
        max_levels=_get_int_env(env, "DEPTHBOOK_MAX_LEVELS", data.get("max_levels"), base.max_levels),
        tick_range=int(tick_range_raw) if tick_range_raw not in (None, "") else None,
        verify_net_balance=_get_bool_env(
            env, "DEPTHBOOK_VERIFY_NET_BALANCE", data.get("verify_net_balance"), base.verify_net_balance
        ),
        bin_radius=_get_int_env(env, "DEPTHBOOK_BIN_RADIUS", data.get("bin_radius"), base.bin_radius),
        cp_levels=_get_int_env(env, "DEPTHBOOK_CP_LEVELS", data.get("cp_levels"), base.cp_levels),
        cp_max_pct=_get_float_env(env, "DEPTHBOOK_CP_MAX_PCT", data.get("cp_max_pct"), base.cp_max_pct),
        price_floor=_get_float_env(env, "DEPTHBOOK_PRICE_FLOOR", data.get("price_floor"), base.price_floor),
        price_ceiling=_get_float_env(env, "DEPTHBOOK_PRICE_CEILING", data.get("price_ceiling"), base.price_ceiling),
        subdivision=replace(
            base.subdivision,
            min_price_ratio=_get_float_env(
                env, "DEPTHBOOK_MIN_PRICE_RATIO", sub.get("min_price_ratio"), base.subdivision.min_price_ratio
            ),
            max_price_ratio=_get_float_env(
                env, "DEPTHBOOK_MAX_PRICE_RATIO", sub.get("max_price_ratio"), base.subdivision.max_price_ratio
            ),
            max_subdivisions=_get_int_env(
                env, "DEPTHBOOK_MAX_SUBDIVISIONS", sub.get("max_subdivisions"), base.subdivision.max_subdivisions
            ),
            max_token_amount=_get_float_env(
                env, "DEPTHBOOK_MAX_TOKEN_AMOUNT", sub.get("max_token_amount"), base.subdivision.max_token_amount
            ),
            max_usd_value=_get_float_env(
                env, "DEPTHBOOK_MAX_USD_VALUE", sub.get("max_usd_value"), base.subdivision.max_usd_value
            ),
            dust_amount=_get_float_env(
                env, "DEPTHBOOK_DUST_AMOUNT", sub.get("dust_amount"), base.subdivision.dust_amount
            ),
        ),
        batch_size=_get_int_env(env, "DEPTHBOOK_BATCH_SIZE", data.get("batch_size"), base.batch_size),
        batch_retries=_get_int_env(env, "DEPTHBOOK_BATCH_RETRIES", data.get("batch_retries"), base.batch_retries),
        batch_backoff=_get_float_env(env, "DEPTHBOOK_BATCH_BACKOFF", data.get("batch_backoff"), base.batch_backoff),
        batch_timeout=_get_float_env(env, "DEPTHBOOK_BATCH_TIMEOUT", data.get("batch_timeout"), base.batch_timeout),
        query_timeout=_get_float_env(env, "DEPTHBOOK_QUERY_TIMEOUT", data.get("query_timeout"), base.query_timeout),
        cache_ttl=_get_float_env(env, "DEPTHBOOK_CACHE_TTL", data.get("cache_ttl"), base.cache_ttl),
        cache_max_entries=_get_int_env(
            env, "DEPTHBOOK_CACHE_MAX_ENTRIES", data.get("cache_max_entries"), base.cache_max_entries
        ),
        find_clusters=_get_bool_env(env, "DEPTHBOOK_FIND_CLUSTERS", data.get("find_clusters"), base.find_clusters),
    )


def load_chains(path: Path = _CONFIG_PATH, env: Optional[Mapping[str, str]] = None) -> Dict[str, ChainConfig]:
    """Built-in chains merged with config.json ``chains`` and DEPTHBOOK_<CHAIN>_* variables.

    DEPTHBOOK_<CHAIN>_RPC_URLS takes a comma separated list of fallback endpoints.
    """
    env = os.environ if env is None else env
    file_chains = _load_config_from_file(path).get("chains", {})
    chains: Dict[str, ChainConfig] = {}
    for name in sorted(set(DEFAULT_CHAINS) | set(file_chains)):
        default = DEFAULT_CHAINS.get(name, ChainConfig(name=name, rpc_url=""))
        chain_data = file_chains.get(name, {})
        prefix = f"DEPTHBOOK_{name.upper()}"
        chains[name] = ChainConfig(
            name=name,
            rpc_url=_get_env_or_default(env, f"{prefix}_RPC_URL", chain_data.get("rpc_url", default.rpc_url)),
            rpc_urls=_get_list_env(env, f"{prefix}_RPC_URLS", chain_data.get("rpc_urls", default.rpc_urls)),
            kind=chain_data.get("kind", default.kind),
            explorer=chain_data.get("explorer", default.explorer),
            multicall_address=_get_env_or_default(
                env, f"{prefix}_MULTICALL_ADDRESS", chain_data.get("multicall_address", default.multicall_address)
            ),
            v4_state_view=_get_env_or_default(
                env, f"{prefix}_V4_STATE_VIEW", chain_data.get("v4_state_view", default.v4_state_view)
            ),
            tick_lens_address=_get_env_or_default(
                env, f"{prefix}_TICK_LENS_ADDRESS", chain_data.get("tick_lens_address", default.tick_lens_address)
            ),
        )
    return chains
