"""CSV export of analysis results, and the matching re-import."""

import io
import math
from datetime import date
from typing import Any

import pandas as pd

from signal_analyzer.errors import HistoricalDataError
from signal_analyzer.signals.models import AnalysisResult
from signal_analyzer.utils.timestamps import parse_timestamp

EXPORT_COLUMNS: dict[str, str] = {
    "signal_id": "Signal ID",
    "asset": "Asset",
    "direction": "Direction",
    "entry_price": "Entry Price",
    "entry_time": "Entry Time",
    "stop_loss": "Stop Loss",
    "take_profit_1": "Take Profit 1",
    "take_profit_2": "Take Profit 2",
    "take_profit_3": "Take Profit 3",
    "outcome": "Outcome",
    "hit_time": "Hit Time",
    "pnl": "PnL",
    "pnl_percentage": "PnL %",
}


def export_results_csv(results: list[AnalysisResult]) -> str:
    """One row per evaluated signal. PnL % is written as ``-1.90%``."""
    rows = []
    for r in results:
        rows.append(
            {
                "signal_id": r.signal_id,
                "asset": r.asset,
                "direction": r.direction.value,
                "entry_price": r.entry_price,
                "entry_time": r.entry_time.isoformat(),
                "stop_loss": r.stop_loss,
                "take_profit_1": r.take_profit_1,
                "take_profit_2": r.take_profit_2,
                "take_profit_3": r.take_profit_3,
                "outcome": r.outcome.value,
                "hit_time": r.hit_time.isoformat() if r.hit_time else None,
                "pnl": round(r.pnl, 8) if r.pnl is not None else None,
                "pnl_percentage": f"{r.pnl_percentage:.2f}%" if r.pnl_percentage is not None else None,
            }
        )

    frame = pd.DataFrame(rows, columns=list(EXPORT_COLUMNS)).rename(columns=EXPORT_COLUMNS)
    return frame.to_csv(index=False)


def parse_results_csv(text: str) -> list[AnalysisResult]:
    """Read back a CSV produced by export_results_csv."""
    try:
        frame = pd.read_csv(io.StringIO(text), dtype=str, keep_default_na=False)
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise HistoricalDataError(f"invalid results CSV: {e}") from e

    missing = [c for c in EXPORT_COLUMNS.values() if c not in frame.columns]
    if missing:
        raise HistoricalDataError(f"results CSV is missing columns: {', '.join(missing)}")

    frame = frame.rename(columns={v: k for k, v in EXPORT_COLUMNS.items()})

    results = []
    for line, row in enumerate(frame.to_dict("records"), start=2):
        try:
            results.append(_row_to_result(row))
        except ValueError as e:
            raise HistoricalDataError(f"results CSV line {line}: {e}") from e
    return results


def _row_to_result(row: dict[str, Any]) -> AnalysisResult:
    return AnalysisResult(
        signal_id=row["signal_id"],
        asset=row["asset"],
        direction=row["direction"],
        entry_price=float(row["entry_price"]),
        entry_time=parse_timestamp(row["entry_time"]),
        stop_loss=_optional_float(row["stop_loss"]),
        take_profit_1=_optional_float(row["take_profit_1"]),
        take_profit_2=_optional_float(row["take_profit_2"]),
        take_profit_3=_optional_float(row["take_profit_3"]),
        outcome=row["outcome"],
        hit_time=parse_timestamp(row["hit_time"]),
        pnl=_optional_float(row["pnl"]),
        pnl_percentage=_optional_float(str(row["pnl_percentage"]).rstrip("%")),
    )


def export_filename(today: date | None = None) -> str:
    today = today or date.today()
    return f"signal_analysis_{today.isoformat()}.csv"


def _optional_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    number = float(value)
    return None if math.isnan(number) else number
