"""Command line front end for the spot price tracker.

Usage examples:
  python main.py refresh            # refetch only if the cache is stale
  python main.py refresh --force    # manual refresh
  python main.py watch --interval 900
  python main.py set silver 31.25
  python main.py history --metal gold --limit 5
"""
from __future__ import annotations

import argparse
import asyncio
from typing import Callable, List, Mapping, Optional

from loguru import logger
from tabulate import tabulate

from .config.settings import config
from .providers.price_sources.base import Metal, PriceQuote
from .providers.price_sources.catalog import PROVIDERS
from .providers.spot_service import SpotPriceService, UpdateStatus, build_service
from .utils.logger import setup_logger

Printer = Callable[[str], None]


def _format_time(quote: PriceQuote) -> str:
    return quote.observed_at.strftime("%Y-%m-%d %H:%M:%S")


def format_price_table(service: SpotPriceService) -> str:
    headers = ["Metal", "Price (USD/oz)", "Source", "Provider", "Observed"]
    rows: List[List[str]] = []
    prices: Mapping[Metal, PriceQuote] = service.current_prices()
    for metal in service.table.metals:
        quote = prices.get(metal)
        if quote is None:
            rows.append([metal.display_name, f"{metal.default_price:,.2f}", "default", "-", "No data"])
            continue
        rows.append(
            [
                metal.display_name,
                f"{quote.price:,.2f}",
                quote.source,
                quote.provider or "-",
                _format_time(quote),
            ]
        )
    return tabulate(rows, headers=headers, tablefmt="github")


def format_history_table(quotes: List[PriceQuote]) -> str:
    headers = ["Timestamp", "Metal", "Price", "Source", "Provider"]
    rows = [
        [_format_time(q), q.metal.display_name, f"{q.price:,.2f}", q.source, q.provider or "-"]
        for q in quotes
    ]
    return tabulate(rows, headers=headers, tablefmt="github")


def format_providers_table(settings) -> str:
    headers = ["Provider", "Name", "Base URL", "Key", "Default"]
    rows = []
    for kind, provider in PROVIDERS.items():
        base_url = provider.base_url or settings.custom_base_url or "-"
        has_key = "yes" if settings.api_key_for(kind.value) else "no"
        default = "*" if settings.provider == kind.value else ""
        rows.append([kind.value, provider.name, base_url, has_key, default])
    return tabulate(rows, headers=headers, tablefmt="github")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Track precious metal spot prices")
    sub = p.add_subparsers(dest="command", required=True)

    refresh = sub.add_parser("refresh", help="Fetch spot prices if the cache is stale")
    refresh.add_argument("--force", action="store_true", help="Ignore the refresh interval")

    watch = sub.add_parser("watch", help="Poll the provider on a fixed interval")
    watch.add_argument("--interval", type=float, help="Seconds between polls (default: SPOT_POLL_INTERVAL)")
    watch.add_argument("--ticks", type=int, help="Stop after this many polls")

    sub.add_parser("show", help="Show current spot prices")

    history = sub.add_parser("history", help="Show recorded price observations")
    history.add_argument("--metal", help="Only show this metal")
    history.add_argument("--limit", type=int, default=20, help="Most recent entries to show (default: 20)")
    history.add_argument("--clear", action="store_true", help="Delete all recorded observations")

    manual = sub.add_parser("set", help="Set a manual spot price")
    manual.add_argument("metal")
    manual.add_argument("price")

    reset = sub.add_parser("reset", help="Reset a metal to its last API price or default")
    reset.add_argument("metal")

    sub.add_parser("test", help="Test the configured provider with a single silver request")
    sub.add_parser("providers", help="List supported providers")
    sub.add_parser("clear-cache", help="Forget the last update time so the next refresh fetches")
    return p


async def _dispatch(args: argparse.Namespace, service: SpotPriceService, settings, out: Printer) -> int:
    command = args.command
    if command == "refresh":
        result = await service.update_prices(force_update=args.force)
        if result.status is UpdateStatus.SKIPPED:
            out("Spot prices are fresh; use --force to refetch.")
        elif result:
            note = f" ({len(result.errors)} failed)" if result.partial else ""
            out(f"Synced {len(result.updated)} metal prices from {service.source.name}{note}.")
        else:
            for metal, error in result.errors.items():
                out(f"{metal.display_name}: {error.reason}")
            out("Failed to sync prices; keeping last known values.")
        out(format_price_table(service))
        return 1 if result.status is UpdateStatus.FAILED else 0

    if command == "watch":
        interval = args.interval if args.interval is not None else settings.poll_interval_seconds
        logger.info("Polling {} every {}s", service.source.name, interval)
        await service.run(interval, max_ticks=args.ticks)
        out(format_price_table(service))
        return 0

    if command == "show":
        out(format_price_table(service))
        last = service.last_update()
        state = "fresh" if service.is_fresh() else "stale"
        when = last.strftime("%Y-%m-%d %H:%M:%S") if last else "never"
        out(f"Last API update: {when} ({state})")
        return 0

    if command == "history":
        if args.clear:
            service.history.clear()
            out("Price history cleared.")
            return 0
        metal = Metal.parse(args.metal) if args.metal else None
        quotes = service.history.entries(metal=metal, limit=args.limit)
        if not quotes:
            out("No price history recorded.")
            return 0
        out(format_history_table(quotes))
        return 0

    if command == "set":
        quote = service.set_manual_price(Metal.parse(args.metal), args.price)
        out(f"{quote.metal.display_name} spot set to {quote.price:,.2f}.")
        return 0

    if command == "reset":
        quote = service.reset_price(Metal.parse(args.metal))
        out(f"{quote.metal.display_name} spot reset to {quote.price:,.2f} ({quote.source}).")
        return 0

    if command == "test":
        ok = await service.test_connection()
        out(f"{service.source.name}: {'connection OK' if ok else 'connection test failed'}")
        return 0 if ok else 1

    if command == "clear-cache":
        service.clear_cache()
        out("Cache cleared. Next refresh will pull fresh data from the API.")
        return 0

    raise ValueError(f"Unknown command '{command}'")


async def _run(args: argparse.Namespace, settings, out: Printer) -> int:
    service = build_service(settings)
    try:
        return await _dispatch(args, service, settings, out)
    finally:
        await service.close()


def main(argv: Optional[List[str]] = None, *, settings=None, out: Printer = print) -> int:
    args = build_parser().parse_args(argv)
    settings = settings or config
    if args.command == "providers":
        out(format_providers_table(settings))
        return 0

    try:
        setup_logger(settings.log_level)
        return asyncio.run(_run(args, settings, out))
    except ValueError as exc:
        out(f"error: {exc}")
        return 2
    except KeyboardInterrupt:
        return 130
