import argparse
import json
import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

from depthbook.cache import TTLDepthCache
from depthbook.config import load_chains, load_engine_config
from depthbook.engine import DepthEngine
from depthbook.errors import EngineError
from depthbook.ui import render_depth


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconstruct an order book from AMM pool liquidity")
    parser.add_argument("--chain", required=True, help="chain name, e.g. ethereum, base, bsc, solana")
    parser.add_argument("--pool", required=True, help="pool address, v4 pool id or bonding curve account")
    parser.add_argument("--price", type=float, default=None, help="reference price of the base token")
    parser.add_argument("--levels", type=int, default=None, help="max levels per side (0 = unlimited)")
    parser.add_argument("--precision", type=float, default=0.0, help="price bucket width")
    parser.add_argument("--dex", default=None, help="dex tag, skips protocol probing")
    parser.add_argument("--tick-spacing", type=int, default=None)
    parser.add_argument("--base-token", default=None, help="address of the token to quote")
    parser.add_argument("--token0", default=None, help="v4 pool token0 address")
    parser.add_argument("--token1", default=None, help="v4 pool token1 address")
    parser.add_argument("--json", action="store_true", help="print the book as JSON")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)
    config = load_engine_config()
    engine = DepthEngine(config, load_chains(), cache=TTLDepthCache(config.cache_ttl, config.cache_max_entries))
    try:
        depth = engine.compute_depth(
            args.chain,
            args.pool,
            reference_price=args.price,
            max_levels=args.levels,
            precision=args.precision,
            dex=args.dex,
            tick_spacing=args.tick_spacing,
            base_token=args.base_token,
            token0=args.token0,
            token1=args.token1,
        )
    except (EngineError, ValueError) as exc:
        logging.error("depth query failed: %s", exc)
        return 1

    if args.json:
        print(json.dumps(depth.to_dict(), indent=2))
    else:
        render_depth(depth)
    return 0


if __name__ == "__main__":
    sys.exit(main())
