"""Tests for analysis result CSV export."""

from datetime import UTC, date, datetime, timedelta

import pytest

from signal_analyzer.errors import HistoricalDataError
from signal_analyzer.export import export_filename, export_results_csv, parse_results_csv
from signal_analyzer.models import HistoricalBar
from signal_analyzer.signals import AnalysisOutcome, Direction, TradeSignal, analyze_signals

T0 = datetime(2024, 3, 1, 12, tzinfo=UTC)


def make_results() -> list:
    signals = [
        TradeSignal(id="sl", timestamp=T0, asset="BTCUSDT", entry_price=68500, stop_loss=67200, take_profit_1=70000),
        TradeSignal(id="tp", timestamp=T0, asset="BTCUSDT", entry_price=68500, stop_loss=60000, take_profit_1=68900),
        TradeSignal(
            id="short",
            timestamp=T0,
            asset="BTCUSDT",
            direction=Direction.SHORT,
            entry_price=68500,
            stop_loss=80000,
            take_profit_1=50000,
        ),
        TradeSignal(id="late", timestamp=T0 + timedelta(days=30), asset="BTCUSDT", entry_price=68500),
    ]
    bars = [
        HistoricalBar(timestamp=T0, open=68500, high=69000, low=68000, close=68600),
        HistoricalBar(timestamp=T0 + timedelta(hours=1), open=68600, high=68700, low=67100, close=67300),
    ]
    return analyze_signals(signals, bars, "BTCUSDT")


class TestExportResultsCsv:
    def test_header_and_formatting(self) -> None:
        text = export_results_csv(make_results())
        lines = text.strip().splitlines()

        assert lines[0].startswith("Signal ID,Asset,Direction,Entry Price,Entry Time")
        assert "Outcome" in lines[0] and "PnL %" in lines[0]
        assert len(lines) == 5
        assert "SL Hit" in lines[1]
        assert "-1.90%" in lines[1]

    def test_round_trip_preserves_rows_and_outcomes(self) -> None:
        results = make_results()
        parsed = parse_results_csv(export_results_csv(results))

        assert len(parsed) == len(results)
        assert [r.outcome for r in parsed] == [r.outcome for r in results]
        assert [r.signal_id for r in parsed] == [r.signal_id for r in results]
        assert parsed[0].pnl == pytest.approx(-1300)
        assert parsed[0].hit_time == results[0].hit_time

    def test_unresolved_rows_have_blank_pnl(self) -> None:
        parsed = parse_results_csv(export_results_csv(make_results()))

        assert parsed[2].outcome == AnalysisOutcome.ACTIVE
        assert parsed[2].pnl is None
        assert parsed[3].outcome == AnalysisOutcome.NO_DATA
        assert parsed[3].hit_time is None

    def test_empty_results_export_header_only(self) -> None:
        text = export_results_csv([])
        assert text.strip().startswith("Signal ID")
        assert parse_results_csv(text) == []

    def test_missing_columns_rejected(self) -> None:
        with pytest.raises(HistoricalDataError):
            parse_results_csv("Asset,Outcome\nBTC,SL Hit\n")

    def test_bad_values_rejected(self) -> None:
        text = export_results_csv(make_results()).replace("68500.0", "lots", 1)
        with pytest.raises(HistoricalDataError, match="line 2"):
            parse_results_csv(text)


class TestExportFilename:
    def test_dated_name(self) -> None:
        assert export_filename(date(2024, 3, 1)) == "signal_analysis_2024-03-01.csv"
