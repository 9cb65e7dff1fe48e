#!/usr/bin/env python3
"""
One-shot signal generation.

Runs a single refresh cycle (market listing -> price history -> indicators ->
decision) and prints the resulting signals. Uses the same cache, persistence
and fallback rules as the server, so it works offline from a warm Redis cache.

Usage:
    cd backend
    python scripts/generate_signals.py
    python scripts/generate_signals.py --assets 10 --no-advisory
    python scripts/generate_signals.py --offline --json
"""

import argparse
import asyncio
import logging
import os
import sys

import orjson

# Make the app and core packages importable when run from anywhere
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.bootstrap import build_services, close_services, restore_state
from app.config import Settings
from app.services import CycleReport

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate trade signals once and exit")
    parser.add_argument("--assets", type=int, default=None, help="Number of top assets to evaluate")
    parser.add_argument("--no-advisory", action="store_true", help="Use local RSI rules only")
    parser.add_argument("--offline", action="store_true", help="Serve cached data only")
    parser.add_argument("--json", action="store_true", help="Print signals as JSON")
    return parser.parse_args(argv)


def build_settings(args: argparse.Namespace) -> Settings:
    """Apply command line overrides on top of environment settings."""
    overrides = {}
    if args.assets is not None:
        overrides["signal_asset_count"] = args.assets
    if args.no_advisory:
        overrides["advisory_enabled"] = False
    if args.offline:
        overrides["offline_mode"] = True
    return Settings(**overrides)


def print_report(report: CycleReport, as_json: bool = False) -> None:
    if as_json:
        print(orjson.dumps(
            {
                "cycle": report.as_dict(),
                "signals": [s.model_dump(mode="json") for s in report.signals],
            },
            option=orjson.OPT_INDENT_2,
        ).decode("utf-8"))
        return

    print()
    print("=" * 72)
    print(f"{'Asset':<14}{'Decision':<10}{'Conf':>6}{'Entry':>14}{'SL':>14}{'TP':>14}")
    print("-" * 72)
    for s in report.signals:
        flag = " *" if s.degraded else ""
        print(
            f"{s.symbol.upper() or s.asset_id:<14}{s.decision.value:<10}{s.confidence:>6}"
            f"{s.entry_price:>14.6g}{s.stop_loss:>14.6g}{s.take_profit:>14.6g}{flag}"
        )
    print("-" * 72)
    print(
        f"{report.generated}/{report.assets} signals, {report.failed} failed, "
        f"{report.degraded} from cached data (*)"
    )
    if report.used_last_known_assets:
        print("Market listing unavailable: used last-known asset list")
    print("=" * 72)


async def run(args: argparse.Namespace) -> int:
    services = build_services(build_settings(args))
    try:
        await restore_state(services)
        report = await services.signal_service.refresh_once()
    finally:
        await close_services(services)

    print_report(report, as_json=args.json)
    return 0 if report.generated else 1


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
