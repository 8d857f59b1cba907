"""Parse user-supplied OHLCV CSV files into HistoricalBar lists."""

import io
from datetime import datetime

import pandas as pd
from pydantic import ValidationError

from signal_analyzer.errors import HistoricalDataError
from signal_analyzer.models.bars import HistoricalBar
from signal_analyzer.utils import coerce_number, ensure_utc, get_logger, parse_timestamp

logger = get_logger(__name__)

# Canonical column -> accepted header names (matched case-insensitively)
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "timestamp": ("timestamp", "time", "date", "datetime"),
    "open": ("open", "o"),
    "high": ("high", "h"),
    "low": ("low", "l"),
    "close": ("close", "c"),
    "volume": ("volume", "vol", "v"),
}

REQUIRED_COLUMNS = ("timestamp", "open", "high", "low", "close")


def parse_bars_csv(
    text: str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[HistoricalBar]:
    """Parse CSV text with a header row into bars sorted by timestamp.

    Rows without a timestamp or with unparseable prices are skipped.
    Raises HistoricalDataError when the file is empty or a required
    column is missing.
    """
    try:
        frame = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
        )
    except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
        raise HistoricalDataError(f"invalid CSV: {e}") from e

    columns = _resolve_columns(list(frame.columns))
    missing = [c for c in REQUIRED_COLUMNS if c not in columns]
    if missing:
        raise HistoricalDataError(
            f"CSV is missing required columns: {', '.join(missing)}"
        )

    frame = frame.rename(columns={raw: canonical for canonical, raw in columns.items()})
    start = ensure_utc(start) if start else None
    end = ensure_utc(end) if end else None

    bars: list[HistoricalBar] = []
    skipped = 0

    for row in frame.to_dict("records"):
        timestamp = parse_timestamp(row.get("timestamp"))
        if timestamp is None:
            skipped += 1
            continue

        if start and timestamp < start:
            continue
        if end and timestamp > end:
            continue

        prices = {c: coerce_number(row.get(c)) for c in ("open", "high", "low", "close")}
        if any(v is None for v in prices.values()):
            skipped += 1
            continue

        try:
            bars.append(
                HistoricalBar(
                    timestamp=timestamp,
                    volume=coerce_number(row.get("volume")) or 0.0,
                    **prices,
                )
            )
        except ValidationError:
            skipped += 1

    if skipped:
        logger.debug("csv_rows_skipped", skipped=skipped)

    bars.sort(key=lambda b: b.timestamp)
    return bars


def bars_to_csv(bars: list[HistoricalBar]) -> str:
    """Serialize bars with the canonical ``timestamp,open,high,low,close,volume`` header."""
    frame = pd.DataFrame(
        [
            {
                "timestamp": bar.timestamp.isoformat(),
                "open": bar.open,
                "high": bar.high,
                "low": bar.low,
                "close": bar.close,
                "volume": bar.volume,
            }
            for bar in bars
        ],
        columns=list(COLUMN_ALIASES),
    )
    return frame.to_csv(index=False)


def _resolve_columns(headers: list[str]) -> dict[str, str]:
    """Map canonical column names to the raw header that provides them."""
    by_lower = {str(h).strip().lower(): h for h in headers}
    resolved: dict[str, str] = {}
    for canonical, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in by_lower:
                resolved[canonical] = by_lower[alias]
                break
    return resolved
