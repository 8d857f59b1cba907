"""Tests for historical CSV parsing and the uploaded-file store."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from signal_analyzer.errors import HistoricalDataError
from signal_analyzer.history import HistoricalDataStore, bars_to_csv, parse_bars_csv

CSV = """timestamp,open,high,low,close,volume
2024-03-01T14:00:00Z,101,103,100,102,5
2024-03-01T12:00:00Z,100,101,99,100.5,10
2024-03-01T13:00:00Z,100.5,102,100,101,
"""


class TestParseBarsCsv:
    def test_parses_and_sorts(self) -> None:
        bars = parse_bars_csv(CSV)

        assert [b.timestamp.hour for b in bars] == [12, 13, 14]
        assert bars[0].high == 101
        assert bars[1].volume == 0

    def test_headers_are_case_insensitive_and_aliased(self) -> None:
        text = "Date,O,H,L,C,Volume\n2024-03-01 12:00:00,1,2,0.5,1.5,3\n"
        bars = parse_bars_csv(text)

        assert len(bars) == 1
        assert bars[0].low == 0.5
        assert bars[0].timestamp == datetime(2024, 3, 1, 12, tzinfo=UTC)

    def test_epoch_millisecond_timestamps(self) -> None:
        text = "time,open,high,low,close\n1709294400000,1,2,0.5,1.5\n"
        bars = parse_bars_csv(text)
        assert bars[0].timestamp == datetime(2024, 3, 1, 12, tzinfo=UTC)

    def test_bad_rows_skipped(self) -> None:
        text = (
            "timestamp,open,high,low,close,volume\n"
            ",1,2,0.5,1.5,3\n"
            "2024-03-01T12:00:00Z,abc,2,0.5,1.5,3\n"
            "2024-03-01T13:00:00Z,1,2,0.5,1.5,3\n"
        )
        bars = parse_bars_csv(text)
        assert len(bars) == 1

    def test_date_range_filter(self) -> None:
        bars = parse_bars_csv(
            CSV,
            start=datetime(2024, 3, 1, 12, 30, tzinfo=UTC),
            end=datetime(2024, 3, 1, 13, 30, tzinfo=UTC),
        )
        assert [b.timestamp.hour for b in bars] == [13]

    def test_missing_column_raises(self) -> None:
        with pytest.raises(HistoricalDataError, match="low"):
            parse_bars_csv("timestamp,open,high,close\n2024-03-01,1,2,1\n")

    def test_empty_file_raises(self) -> None:
        with pytest.raises(HistoricalDataError):
            parse_bars_csv("")

    def test_serialized_bars_parse_back(self) -> None:
        bars = parse_bars_csv(CSV)
        assert parse_bars_csv(bars_to_csv(bars)) == bars


class TestHistoricalDataStore:
    @pytest.fixture
    def store(self, tmp_path: Path) -> HistoricalDataStore:
        return HistoricalDataStore(tmp_path)

    def test_save_and_load(self, store: HistoricalDataStore) -> None:
        path = store.save_csv("BTCUSDT", CSV, "btc_1h.csv")

        assert path.exists()
        assert path.name.startswith("btcusdt_")
        assert path.name.endswith("_btc_1h.csv")
        assert len(store.load("BTCUSDT")) == 3
        assert store.available_assets() == ["btcusdt"]
        assert store.has_asset("btcUSDT")

    def test_newest_upload_wins(self, store: HistoricalDataStore) -> None:
        store.save_csv("BTCUSDT", CSV)
        assert len(store.load("BTCUSDT")) == 3

        store.save_csv("BTCUSDT", "timestamp,open,high,low,close\n2024-04-01T00:00:00Z,1,2,0.5,1\n")
        bars = store.load("BTCUSDT")

        assert len(bars) == 1
        assert bars[0].timestamp.month == 4

    def test_unknown_asset_returns_empty(self, store: HistoricalDataStore) -> None:
        assert store.load("NOPE") == []
        assert not store.has_asset("NOPE")

    def test_invalid_upload_not_stored(self, store: HistoricalDataStore) -> None:
        with pytest.raises(HistoricalDataError):
            store.save_csv("BTCUSDT", "just,some,columns\n1,2,3\n")
        assert store.available_assets() == []

    def test_load_with_range(self, store: HistoricalDataStore) -> None:
        store.save_csv("BTCUSDT", CSV)
        bars = store.load("BTCUSDT", start=datetime(2024, 3, 1, 13, tzinfo=UTC))
        assert len(bars) == 2
