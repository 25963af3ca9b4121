from typing import Optional, Sequence

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table

from depthbook.types import DepthData, LiquidityCluster, LiquidityLevel

MAX_BAR = 60


def _bar(value: float, largest: float) -> str:
    if largest <= 0:
        return ""
    return "▮" * max(1, int(value / largest * MAX_BAR))


def _build_depth_table(title: str, levels: Sequence[LiquidityLevel], symbols, style: str) -> Table:
    table = Table(title=title, expand=True, title_style=style)
    table.add_column("Price", justify="right")
    table.add_column(symbols[0], justify="right")
    table.add_column(symbols[1], justify="right")
    table.add_column("USD", justify="right")
    table.add_column("Bar", style=style)
    largest = max((level.liquidity_usd for level in levels), default=0.0)
    for level in levels:
        table.add_row(
            f"{level.price:,.8g}",
            f"{level.base_amount:,.4f}",
            f"{level.quote_amount:,.4f}",
            f"{level.liquidity_usd:,.2f}",
            _bar(level.liquidity_usd, largest),
        )
    return table


def _build_cluster_panel(clusters: Sequence[LiquidityCluster]) -> Panel:
    lines = [
        f"ticks {c.tick_lower}..{c.tick_upper}  price {c.price_lower:,.8g}-{c.price_upper:,.8g}  "
        f"{c.tick_count} ticks  L={c.total_liquidity}"
        for c in clusters[:5]
    ]
    return Panel("\n".join(lines), title="Liquidity Clusters", border_style="blue")


def render_depth(depth: DepthData, console: Optional[Console] = None) -> None:
    console = console or Console()
    base, quote = depth.token_symbols
    if depth.reason:
        console.print(f"[yellow]No book for {base}/{quote}: {depth.reason}[/yellow]")
        return

    asks = _build_depth_table("Asks", list(reversed(depth.asks)), depth.token_symbols, "red")
    bids = _build_depth_table("Bids", depth.bids, depth.token_symbols, "green")
    spread = f"{depth.spread:,.8g}" if depth.spread is not None else "n/a"
    bids.caption = (
        f"{depth.protocol_kind.value} | current price {depth.current_price:,.8g} {quote} | spread {spread} | "
        f"bids ${depth.total_bid_usd:,.2f} / asks ${depth.total_ask_usd:,.2f}"
    )
    parts = [asks, bids]
    if depth.clusters:
        parts.append(_build_cluster_panel(depth.clusters))
    console.print(Group(*parts))
