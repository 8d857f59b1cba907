#!/usr/bin/env python3
"""View signals and analysis results from the database.

Usage:
    python scripts/view_signals.py              # Show stats + recent 10
    python scripts/view_signals.py --all        # Show all signals
    python scripts/view_signals.py --recent 20  # Show recent 20
    python scripts/view_signals.py --active     # Show active signals only
    python scripts/view_signals.py --resolved   # Show signals with an SL/TP hit
    python scripts/view_signals.py --asset BTC  # Search by asset
"""

import argparse
import json
import sqlite3
import sys
from pathlib import Path

DB_PATH = Path(__file__).parent.parent / "data" / "signals.db"

RESOLVED_OUTCOMES = ("SL Hit", "TP1 Hit", "TP2 Hit", "TP3 Hit")

SELECT_SIGNALS = """
    SELECT s.*, r.outcome, r.pnl_percentage
    FROM signals s
    LEFT JOIN analysis_results r ON r.signal_id = s.id
"""


def get_connection(db_path: Path) -> sqlite3.Connection:
    if not db_path.exists():
        print(f"Database not found: {db_path}")
        print("Run the server or scripts/sync_signals.py first to create the database.")
        sys.exit(1)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn


def show_stats(conn: sqlite3.Connection) -> None:
    print("=" * 70)
    print("SIGNAL STATISTICS")
    print("=" * 70)

    cur = conn.cursor()

    cur.execute("SELECT COUNT(*) FROM signals")
    total = cur.fetchone()[0]

    cur.execute("SELECT COUNT(*) FROM analysis_results")
    analyzed = cur.fetchone()[0]

    cur.execute("SELECT status, COUNT(*) as cnt FROM signals GROUP BY status")
    status_counts = {row["status"]: row["cnt"] for row in cur.fetchall()}

    cur.execute("SELECT outcome, COUNT(*) as cnt FROM analysis_results GROUP BY outcome")
    outcome_counts = {row["outcome"]: row["cnt"] for row in cur.fetchall()}

    placeholders = ", ".join("?" for _ in RESOLVED_OUTCOMES)
    cur.execute(
        f"""
        SELECT
            AVG(pnl_percentage) as avg_pnl,
            MIN(pnl_percentage) as min_pnl,
            MAX(pnl_percentage) as max_pnl,
            SUM(CASE WHEN pnl_percentage > 0 THEN 1 ELSE 0 END) as winners,
            COUNT(*) as resolved
        FROM analysis_results
        WHERE outcome IN ({placeholders})
    """,
        RESOLVED_OUTCOMES,
    )
    pnl = cur.fetchone()

    print(f"Total signals:     {total}")
    print(f"Analyzed:          {analyzed}")
    print(f"Not analyzed:      {total - analyzed}")
    print()
    print("By Status:")
    for status, count in sorted(status_counts.items()):
        print(f"  {status:15} {count:>6}")
    print()
    if outcome_counts:
        print("By Outcome:")
        for outcome, count in sorted(outcome_counts.items()):
            print(f"  {outcome:15} {count:>6}")
        print()

    if pnl["avg_pnl"] is not None:
        print("PnL (resolved signals):")
        print(f"  Average:  {pnl['avg_pnl']:.2f}%")
        print(f"  Min:      {pnl['min_pnl']:.2f}%")
        print(f"  Max:      {pnl['max_pnl']:.2f}%")
        print(f"  Win rate: {pnl['winners'] / pnl['resolved'] * 100:.1f}%")
    print()


def format_signal(row: sqlite3.Row) -> str:
    signal = json.loads(row["signal_json"])

    pnl = row["pnl_percentage"]
    pnl_str = f"{pnl:+.2f}%" if pnl is not None else "N/A"

    targets = [signal.get(f"take_profit_{n}") for n in (1, 2, 3)]
    targets_str = " / ".join(str(t) for t in targets if t) or "N/A"

    lines = [
        f"Signal:     {row['id']}",
        f"Asset:      {row['asset']:12}  {row['direction'].upper()}  ({signal.get('market_type')})",
        f"Status:     {row['status']:10}  Outcome: {row['outcome'] or 'N/A'}  PnL: {pnl_str}",
        f"Entry:      {signal.get('entry_price')}  SL: {signal.get('stop_loss') or 'N/A'}",
        f"Targets:    {targets_str}",
        f"Provider:   {row['provider']}  ({signal.get('source')})",
        f"Opened:     {row['signal_time']}",
    ]
    return "\n".join(lines)


def show_signals(conn: sqlite3.Connection, query: str, params: tuple = ()) -> None:
    cur = conn.cursor()
    cur.execute(query, params)
    rows = cur.fetchall()

    if not rows:
        print("No signals found.")
        return

    print(f"Found {len(rows)} signal(s):")
    print("-" * 70)

    for row in rows:
        print(format_signal(row))
        print("-" * 70)


def main() -> None:
    parser = argparse.ArgumentParser(description="View signals from database")
    parser.add_argument("--db", type=Path, default=DB_PATH, help="Path to signals.db")
    parser.add_argument("--all", action="store_true", help="Show all signals")
    parser.add_argument("--recent", type=int, metavar="N", help="Show recent N signals")
    parser.add_argument("--active", action="store_true", help="Show active signals only")
    parser.add_argument("--resolved", action="store_true", help="Show signals with an SL/TP hit")
    parser.add_argument("--asset", type=str, metavar="SYMBOL", help="Search by asset")
    parser.add_argument("--no-stats", action="store_true", help="Skip statistics")
    args = parser.parse_args()

    conn = get_connection(args.db)

    if not args.no_stats:
        show_stats(conn)

    params: tuple = ()
    if args.asset:
        query = SELECT_SIGNALS + " WHERE s.asset LIKE ? ORDER BY s.signal_time DESC"
        params = (f"%{args.asset}%",)
    elif args.active:
        query = SELECT_SIGNALS + " WHERE s.status = 'active' ORDER BY s.signal_time DESC LIMIT 20"
    elif args.resolved:
        placeholders = ", ".join("?" for _ in RESOLVED_OUTCOMES)
        query = SELECT_SIGNALS + f" WHERE r.outcome IN ({placeholders}) ORDER BY s.signal_time DESC"
        params = RESOLVED_OUTCOMES
    elif args.all:
        query = SELECT_SIGNALS + " ORDER BY s.signal_time DESC"
    else:
        query = SELECT_SIGNALS + " ORDER BY s.signal_time DESC LIMIT ?"
        params = (args.recent or 10,)

    show_signals(conn, query, params)


if __name__ == "__main__":
    main()
