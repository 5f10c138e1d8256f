"""Command-line interface for the watchlist portfolio tracker."""
from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Iterable

from .app import App, build_app
from .config import load_config
from .logging_setup import configure_logging
from .models import Token


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="watchfolio",
        description="Crypto watchlist and portfolio tracker backed by CoinGecko",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--address",
        default=None,
        help="Wallet address whose watchlist to use (overrides config)",
    )

    sub = parser.add_subparsers(dest="command")

    markets = sub.add_parser("markets", help="Market snapshot by market cap")
    markets.add_argument("--page", type=int, default=1)
    markets.add_argument("--per-page", type=int, default=10)
    markets.add_argument("--refresh", action="store_true", help="Bypass the cache")

    sub.add_parser("trending", help="Trending coins")

    search = sub.add_parser("search", help="Search coins by name or symbol")
    search.add_argument("query")

    watchlist = sub.add_parser("watchlist", help="Show the watchlist portfolio")
    watchlist.add_argument("--page", type=int, default=1)

    add = sub.add_parser("add", help="Add coins to the watchlist by id")
    add.add_argument("ids", nargs="+")

    remove = sub.add_parser("remove", help="Remove a coin from the watchlist")
    remove.add_argument("id")

    hold = sub.add_parser("hold", help="Set the held amount of a coin")
    hold.add_argument("id")
    hold.add_argument("amount")

    sub.add_parser("wallet-value", help="USD value of the connected wallet")
    sub.add_parser("clear", help="Clear the watchlist and holdings")

    return parser


def _print_tokens(tokens: Iterable[Token]) -> None:
    for t in tokens:
        print(
            f"{t.name:<32} {t.price:>14} {t.change:>9} {t.holdings:>12} {t.value:>14}"
        )


def _print_summary(app: App) -> None:
    vm = app.view_model
    print(f"\nPortfolio total: {vm.portfolio_total}  (updated {vm.last_updated})")
    if vm.error:
        print(f"Error: {vm.error}")


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    app = build_app(config)
    vm = app.view_model

    address = args.address or config.wallet.address
    if address:
        app.wallet.connect(address, chain_id=config.wallet.chain_id)

    if args.command == "markets":
        await app.store.fetch_tokens(args.page, args.per_page, args.refresh)
        _print_tokens(vm.tokens)
        _print_summary(app)
    elif args.command == "trending":
        for item in await vm.trending():
            rank = item.get("market_cap_rank") or "-"
            print(f"#{rank:<6} {item.get('name', '')} ({item.get('symbol', '')})  id={item.get('id')}")
    elif args.command == "search":
        coins = await app.client.search_coins(args.query)
        for coin in coins[: config.portfolio.search_limit]:
            print(f"{coin.get('id', ''):<28} {coin.get('name', '')} ({coin.get('symbol', '')})")
    elif args.command == "watchlist":
        await vm.sync_wallet()
        if not vm.tokens and vm.watchlist:
            await vm.add_tokens(vm.watchlist)
        _print_tokens(vm.paginated_tokens(args.page))
        print(f"\nPage {args.page}/{max(vm.total_pages(), 1)}")
        for part in vm.allocation():
            print(f"  {part.name:<32} {part.percent:6.1f}%  {part.value}")
        _print_summary(app)
    elif args.command == "add":
        await vm.add_tokens(args.ids)
        _print_tokens(vm.tokens)
        _print_summary(app)
    elif args.command == "remove":
        vm.remove_token_from_watchlist(args.id)
        print(f"Removed {args.id}")
    elif args.command == "hold":
        vm.update_token_holding(args.id, args.amount)
        print(f"{args.id}: {args.amount}")
    elif args.command == "wallet-value":
        if not vm.is_connected:
            print("No wallet address given (use --address)")
            return 1
        value = await vm.wallet_portfolio_value()
        print(f"Wallet value: ${value:,.2f}")
    elif args.command == "clear":
        vm.clear_watchlist()
        print("Watchlist cleared")
    else:
        build_parser().print_help()
        return 1
    return 0


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))
