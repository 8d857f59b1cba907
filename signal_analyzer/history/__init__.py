"""Historical OHLCV data: CSV parsing and the uploaded-file store."""

from signal_analyzer.history.csv_loader import bars_to_csv, parse_bars_csv
from signal_analyzer.history.store import HistoricalDataStore

__all__ = ["HistoricalDataStore", "bars_to_csv", "parse_bars_csv"]
