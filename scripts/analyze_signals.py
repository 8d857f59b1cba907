#!/usr/bin/env python3
"""
Analyze a JSON file of signals against a CSV of historical bars and write a results CSV.

Usage:
    python scripts/analyze_signals.py signals.json bars.csv --asset BTCUSDT
    python scripts/analyze_signals.py signals.json bars.csv --asset BTCUSDT --out results.csv
    python scripts/analyze_signals.py signals.json bars.csv --asset BTCUSDT --start 2024-01-01 --end 2024-02-01
"""

import argparse
import sys
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

from signal_analyzer.config import get_settings
from signal_analyzer.errors import SignalAnalyzerError
from signal_analyzer.export import export_filename, export_results_csv
from signal_analyzer.history import parse_bars_csv
from signal_analyzer.signals import AnalysisOutcome, SignalNormalizer, analyze_signals
from signal_analyzer.utils import parse_timestamp, setup_logging

load_dotenv(Path(__file__).parent.parent / ".env")


def main() -> None:
    parser = argparse.ArgumentParser(description="Analyze trade signals against historical bars")
    parser.add_argument("signals", type=Path, help="JSON array of signals")
    parser.add_argument("bars", type=Path, help="CSV with timestamp,open,high,low,close,volume")
    parser.add_argument("--asset", required=True, help="Asset to analyze")
    parser.add_argument("--start", type=str, help="Only scan bars from this date")
    parser.add_argument("--end", type=str, help="Only scan bars up to this date")
    parser.add_argument("--out", type=Path, help="Output CSV path")
    parser.add_argument("--config", type=str, help="Path to config YAML")
    args = parser.parse_args()

    settings = get_settings(args.config)
    setup_logging(log_level=settings.log_level)

    start = parse_timestamp(args.start) if args.start else None
    end = parse_timestamp(args.end) if args.end else None

    normalizer = SignalNormalizer(
        default_market_type=settings.analysis.default_market_type,
        default_provider=settings.analysis.default_provider,
    )
    try:
        signals = normalizer.parse_json(args.signals.read_text(encoding="utf-8"))
        bars = parse_bars_csv(args.bars.read_text(encoding="utf-8"), start=start, end=end)
    except (OSError, SignalAnalyzerError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    expiry = timedelta(hours=settings.analysis.expiry_hours) if settings.analysis.expiry_hours else None

    results = analyze_signals(signals, bars, args.asset, start=start, end=end, expiry=expiry)
    if not results:
        print(f"No signals found for asset {args.asset}.")
        sys.exit(1)

    out = args.out or Path(export_filename())
    out.write_text(export_results_csv(results), encoding="utf-8")

    print("=" * 50)
    print(f"{args.asset}: {len(results)} signals, {len(bars)} bars")
    for outcome in AnalysisOutcome:
        count = sum(1 for r in results if r.outcome == outcome)
        if count:
            print(f"  {outcome.value:10} {count:>5}")
    print(f"Results written to {out}")
    print("=" * 50)


if __name__ == "__main__":
    main()
