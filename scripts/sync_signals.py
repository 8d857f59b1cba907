#!/usr/bin/env python3
"""
Pull signals (and optionally historical bars) from the configured feeds into local storage.

Usage:
    python scripts/sync_signals.py                      # Webhook feeds + configured sheets
    python scripts/sync_signals.py --bars BTCUSDT       # Also fetch bars for an asset
    python scripts/sync_signals.py --config my.yaml     # Use a specific config file

Example:
    ANALYZER_FEEDS__BASE_URL=https://signals.example.com python scripts/sync_signals.py
"""

import argparse
import asyncio
import sys
from pathlib import Path

from dotenv import load_dotenv

from signal_analyzer.config import get_settings
from signal_analyzer.errors import DataSourceError
from signal_analyzer.feeds import SignalFeedClient
from signal_analyzer.history import HistoricalDataStore
from signal_analyzer.signals import SignalStorage
from signal_analyzer.utils import get_logger, setup_logging

# Load .env from project root
load_dotenv(Path(__file__).parent.parent / ".env")

logger = get_logger("sync_signals")


async def sync(config_path: str | None, bar_assets: list[str], skip_sheets: bool) -> int:
    settings = get_settings(config_path)
    setup_logging(log_level=settings.log_level)

    feed = SignalFeedClient(settings)
    storage = SignalStorage(settings.storage.db_path)

    signals = []
    try:
        signals.extend(await feed.fetch_webhook_signals())
    except DataSourceError as e:
        logger.error("webhook_sync_failed", error=str(e))

    if not skip_sheets and settings.sheets.sources:
        signals.extend(await feed.fetch_all_sheet_signals())

    saved = storage.save_many(signals) if signals else 0
    print(f"Stored {saved} signals in {settings.storage.db_path}")

    if bar_assets:
        history = HistoricalDataStore(settings.storage.historical_dir)
        for asset in bar_assets:
            try:
                bars = await feed.fetch_historical_bars(asset)
            except DataSourceError as e:
                logger.error("bars_sync_failed", asset=asset, error=str(e))
                continue
            if not bars:
                print(f"No bars returned for {asset}")
                continue
            path = history.save_bars(asset, bars)
            print(f"Stored {len(bars)} bars for {asset} in {path}")

    return 0 if saved else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Sync signals from the configured feeds")
    parser.add_argument("--config", type=str, help="Path to config YAML")
    parser.add_argument("--bars", nargs="*", default=[], metavar="ASSET", help="Fetch bars for these assets")
    parser.add_argument("--no-sheets", action="store_true", help="Skip Google Sheets sources")
    args = parser.parse_args()

    sys.exit(asyncio.run(sync(args.config, args.bars, args.no_sheets)))


if __name__ == "__main__":
    main()
