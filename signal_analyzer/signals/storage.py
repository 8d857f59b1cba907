"""SQLite storage for signals and their latest analysis result."""

import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

import structlog

from signal_analyzer.signals.models import (
    AnalysisOutcome,
    AnalysisResult,
    SignalStatus,
    TradeSignal,
)
from signal_analyzer.utils.timestamps import ensure_utc, utc_now

logger = structlog.get_logger()


class SignalStorage:
    """SQLite-based signal storage. Signals are superseded, never deleted."""

    def __init__(self, db_path: Path | str = "data/signals.db"):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS signals (
                    id TEXT PRIMARY KEY,
                    asset TEXT NOT NULL,
                    direction TEXT NOT NULL,
                    signal_time TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'active',
                    provider TEXT,
                    signal_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS analysis_results (
                    signal_id TEXT PRIMARY KEY,
                    asset TEXT NOT NULL,
                    outcome TEXT NOT NULL,
                    pnl REAL,
                    pnl_percentage REAL,
                    result_json TEXT NOT NULL,
                    analyzed_at TEXT NOT NULL
                )
            """)

            # Indexes for common queries
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_signals_asset
                ON signals(asset COLLATE NOCASE)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_signals_status
                ON signals(status)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_signals_time
                ON signals(signal_time)
            """)

            conn.commit()
            logger.info("signal_storage_initialized", db_path=str(self.db_path))

    def save(self, signal: TradeSignal) -> None:
        """Save or replace a signal."""
        self.save_many([signal])

    def save_many(self, signals: list[TradeSignal]) -> int:
        """Save or replace a batch of signals. Returns the count written."""
        now = utc_now().isoformat()
        with self._get_connection() as conn:
            conn.executemany(
                """
                INSERT INTO signals (
                    id, asset, direction, signal_time, status, provider,
                    signal_json, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    asset = excluded.asset,
                    direction = excluded.direction,
                    signal_time = excluded.signal_time,
                    status = excluded.status,
                    provider = excluded.provider,
                    signal_json = excluded.signal_json,
                    updated_at = excluded.updated_at
            """,
                [
                    (
                        s.id,
                        s.asset,
                        s.direction.value,
                        s.timestamp.isoformat(),
                        s.status.value,
                        s.provider,
                        s.model_dump_json(),
                        now,
                        now,
                    )
                    for s in signals
                ],
            )
            conn.commit()

        logger.debug("signals_saved", count=len(signals))
        return len(signals)

    def get(self, signal_id: str) -> TradeSignal | None:
        """Get a signal by ID."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT signal_json FROM signals WHERE id = ?",
                (signal_id,),
            ).fetchone()

        return self._row_to_signal(row) if row else None

    def get_by_asset(self, asset: str) -> list[TradeSignal]:
        """Get all signals for an asset (case-insensitive), oldest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT signal_json FROM signals
                WHERE asset = ? COLLATE NOCASE
                ORDER BY signal_time ASC
            """,
                (asset,),
            ).fetchall()

        return [self._row_to_signal(row) for row in rows]

    def get_active(self, limit: int = 1000) -> list[TradeSignal]:
        """Get active signals awaiting an outcome."""
        return self.list_all(status=SignalStatus.ACTIVE, limit=limit)

    def get_active_before(self, cutoff: datetime) -> list[TradeSignal]:
        """Get active signals opened before ``cutoff``, oldest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT signal_json FROM signals
                WHERE status = ? AND signal_time < ?
                ORDER BY signal_time ASC
            """,
                (SignalStatus.ACTIVE.value, ensure_utc(cutoff).isoformat()),
            ).fetchall()

        return [self._row_to_signal(row) for row in rows]

    def list_all(
        self,
        status: SignalStatus | None = None,
        asset: str | None = None,
        limit: int = 1000,
    ) -> list[TradeSignal]:
        """List signals, newest first, optionally filtered."""
        query = "SELECT signal_json FROM signals WHERE 1 = 1"
        params: list[Any] = []
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        if asset:
            query += " AND asset = ? COLLATE NOCASE"
            params.append(asset)
        query += " ORDER BY signal_time DESC LIMIT ?"
        params.append(limit)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [self._row_to_signal(row) for row in rows]

    def update_status(self, signal_id: str, status: SignalStatus) -> None:
        """Update signal status."""
        signal = self.get(signal_id)
        if signal is None:
            logger.warning("signal_not_found", signal_id=signal_id)
            return
        signal.status = status
        self.save(signal)

    def save_result(self, result: AnalysisResult) -> None:
        """Save the latest analysis result for a signal."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO analysis_results (
                    signal_id, asset, outcome, pnl, pnl_percentage,
                    result_json, analyzed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    result.signal_id,
                    result.asset,
                    result.outcome.value,
                    result.pnl,
                    result.pnl_percentage,
                    result.model_dump_json(),
                    utc_now().isoformat(),
                ),
            )
            conn.commit()

    def get_result(self, signal_id: str) -> AnalysisResult | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT result_json FROM analysis_results WHERE signal_id = ?",
                (signal_id,),
            ).fetchone()

        return AnalysisResult.model_validate_json(row["result_json"]) if row else None

    def get_results(self, asset: str | None = None) -> list[AnalysisResult]:
        query = "SELECT result_json FROM analysis_results"
        params: tuple[Any, ...] = ()
        if asset:
            query += " WHERE asset = ? COLLATE NOCASE"
            params = (asset,)

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()

        return [AnalysisResult.model_validate_json(row["result_json"]) for row in rows]

    def get_stats(self) -> dict[str, Any]:
        """Get aggregate statistics for analysis."""
        resolved = [AnalysisOutcome.SL_HIT.value] + [
            AnalysisOutcome.for_take_profit(n).value for n in (1, 2, 3)
        ]
        placeholders = ", ".join("?" for _ in resolved)

        with self._get_connection() as conn:
            status_counts = conn.execute("""
                SELECT status, COUNT(*) as count
                FROM signals
                GROUP BY status
            """).fetchall()

            outcome_counts = conn.execute("""
                SELECT outcome, COUNT(*) as count
                FROM analysis_results
                GROUP BY outcome
            """).fetchall()

            pnl_stats = conn.execute(
                f"""
                SELECT
                    COUNT(*) as total,
                    AVG(pnl_percentage) as avg_pnl_pct,
                    MIN(pnl_percentage) as min_pnl_pct,
                    MAX(pnl_percentage) as max_pnl_pct,
                    SUM(CASE WHEN pnl_percentage > 0 THEN 1 ELSE 0 END) as winners,
                    SUM(CASE WHEN pnl_percentage <= 0 THEN 1 ELSE 0 END) as losers
                FROM analysis_results
                WHERE outcome IN ({placeholders})
            """,
                resolved,
            ).fetchone()

        return {
            "by_status": {row["status"]: row["count"] for row in status_counts},
            "by_outcome": {row["outcome"]: row["count"] for row in outcome_counts},
            "pnl": {
                "total_resolved": pnl_stats["total"] or 0,
                "avg_pnl_pct": pnl_stats["avg_pnl_pct"],
                "min_pnl_pct": pnl_stats["min_pnl_pct"],
                "max_pnl_pct": pnl_stats["max_pnl_pct"],
                "winners": pnl_stats["winners"] or 0,
                "losers": pnl_stats["losers"] or 0,
                "win_rate": (
                    pnl_stats["winners"] / pnl_stats["total"] * 100
                    if pnl_stats["total"]
                    else None
                ),
            },
        }

    def _row_to_signal(self, row: sqlite3.Row) -> TradeSignal:
        """Convert a database row to a TradeSignal model."""
        return TradeSignal.model_validate_json(row["signal_json"])
