"""Tests for the feed client and Google Sheets parsing."""

import asyncio
import json

import httpx
import pytest

from signal_analyzer.config import FeedConfig, Settings, SheetSource
from signal_analyzer.config.settings import SheetsConfig
from signal_analyzer.errors import DataSourceError, MissingInputError
from signal_analyzer.feeds import SheetWriter, SignalFeedClient, build_sheet_updates, parse_gviz_response
from signal_analyzer.feeds.sheet_writer import column_letter
from signal_analyzer.signals import (
    AnalysisOutcome,
    AnalysisResult,
    MarketType,
    SignalSource,
    TradeSignal,
)

TRADINGVIEW_SIGNALS = [
    {"Symbol": "BTCUSDT", "Direction": "Long", "Entry Price": "68500", "Stop Loss": "67200", "Take Profit": "70000"},
]
INTERNAL_SIGNALS = {
    "signals": [
        {"id": "i1", "symbol": "ETHUSDT", "side": "short", "entryPrice": 3500, "stopLoss": 3600},
        {"id": "i2", "symbol": "", "side": "long", "entryPrice": 10},
    ]
}

GVIZ_BODY = {
    "version": "0.6",
    "status": "ok",
    "table": {
        "cols": [
            {"id": "A", "label": "Pair", "type": "string"},
            {"id": "B", "label": "Position", "type": "string"},
            {"id": "C", "label": "Entry", "type": "number"},
            {"id": "D", "label": "SL", "type": "number"},
            {"id": "E", "label": "Date", "type": "datetime"},
        ],
        "rows": [
            {"c": [{"v": "EURUSD"}, {"v": "Buy"}, {"v": 1.085}, {"v": 1.08}, {"v": "Date(2024,2,1,12,0,0)"}]},
            {"c": [None, None, None, None, None]},
            {"c": [{"v": "GBPUSD"}, {"v": "Sell"}, {"v": 1.27}, None, None]},
        ],
    },
}
GVIZ_TEXT = "/*O_o*/\ngoogle.visualization.Query.setResponse(" + json.dumps(GVIZ_BODY) + ");"


def make_settings(**overrides: object) -> Settings:
    return Settings(feeds=FeedConfig(base_url="http://feed.test"), **overrides)


def make_handler(routes: dict[str, httpx.Response]):
    def handler(request: httpx.Request) -> httpx.Response:
        return routes.get(request.url.path, httpx.Response(404))

    return handler


class TestFetchSignals:
    def test_webhook_feeds_merged_tradingview_first(self) -> None:
        transport = httpx.MockTransport(
            make_handler(
                {
                    "/api/webhooks/tradingview": httpx.Response(200, json=TRADINGVIEW_SIGNALS),
                    "/api/webhooks/signals": httpx.Response(200, json=INTERNAL_SIGNALS),
                }
            )
        )
        client = SignalFeedClient(make_settings(), transport=transport)

        signals = asyncio.run(client.fetch_webhook_signals())

        assert [s.asset for s in signals] == ["BTCUSDT", "ETHUSDT"]
        assert signals[0].source == SignalSource.TRADINGVIEW
        assert signals[1].source == SignalSource.INTERNAL

    def test_one_failing_feed_is_tolerated(self) -> None:
        transport = httpx.MockTransport(
            make_handler({"/api/webhooks/signals": httpx.Response(200, json=INTERNAL_SIGNALS)})
        )
        client = SignalFeedClient(make_settings(), transport=transport)

        signals = asyncio.run(client.fetch_webhook_signals())
        assert [s.id for s in signals] == ["i1"]

    def test_all_feeds_failing_raises(self) -> None:
        transport = httpx.MockTransport(make_handler({}))
        client = SignalFeedClient(make_settings(), transport=transport)

        with pytest.raises(DataSourceError, match="all signal feeds failed"):
            asyncio.run(client.fetch_webhook_signals())

    def test_invalid_json_raises(self) -> None:
        transport = httpx.MockTransport(
            make_handler({"/api/webhooks/signals": httpx.Response(200, text="<html>")})
        )
        client = SignalFeedClient(make_settings(), transport=transport)

        with pytest.raises(DataSourceError, match="invalid JSON"):
            asyncio.run(client.fetch_internal_signals())

    def test_unexpected_shape_raises(self) -> None:
        transport = httpx.MockTransport(
            make_handler({"/api/webhooks/signals": httpx.Response(200, json={"data": []})})
        )
        client = SignalFeedClient(make_settings(), transport=transport)

        with pytest.raises(DataSourceError):
            asyncio.run(client.fetch_internal_signals())

    def test_network_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = SignalFeedClient(make_settings(), transport=httpx.MockTransport(handler))

        with pytest.raises(DataSourceError, match="failed to fetch"):
            asyncio.run(client.fetch_tradingview_signals())


class TestFetchHistoricalBars:
    def test_bars_parsed_and_sorted(self) -> None:
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.url.params)
            return httpx.Response(
                200,
                json=[
                    {"timestamp": "2024-03-01T13:00:00Z", "open": 2, "high": 3, "low": 1, "close": 2, "volume": 5},
                    {"timestamp": "2024-03-01T12:00:00Z", "open": 1, "high": 2, "low": 0.5, "close": 2, "volume": 4},
                    {"timestamp": "garbage", "open": 1, "high": 2, "low": 0.5, "close": 2},
                ],
            )

        client = SignalFeedClient(make_settings(), transport=httpx.MockTransport(handler))
        bars = asyncio.run(client.fetch_historical_bars("BTCUSDT"))

        assert seen == {"asset": "BTCUSDT"}
        assert [b.timestamp.hour for b in bars] == [12, 13]

    def test_non_list_raises(self) -> None:
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"error": "No historical data found"})
        )
        client = SignalFeedClient(make_settings(), transport=transport)

        with pytest.raises(DataSourceError):
            asyncio.run(client.fetch_historical_bars("BTCUSDT"))

    def test_http_error_raises(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(404))
        client = SignalFeedClient(make_settings(), transport=transport)

        with pytest.raises(DataSourceError, match="HTTP 404"):
            asyncio.run(client.fetch_historical_bars("BTCUSDT"))


class TestSheets:
    def test_parse_gviz_response(self) -> None:
        rows = parse_gviz_response(GVIZ_TEXT)

        assert len(rows) == 2
        assert rows[0]["Pair"] == "EURUSD"
        assert rows[0]["Date"] == "2024-03-01T12:00:00+00:00"
        assert rows[1]["SL"] is None

    @pytest.mark.parametrize(
        "text",
        [
            '{"table":{"cols":[{"label":"Symbol"}],"rows":[null,{"c":[{"v":"BTC"}]}]}}',
            '{"table":{"cols":[{"label":"Symbol"}],"rows":[7,{"c":"junk"},{"c":[{"v":"BTC"}]}]}}',
            '{"table":{"cols":[null],"rows":[{"c":[{"v":"BTC"}]}]}}',
        ],
    )
    def test_malformed_rows_and_cols_skipped(self, text: str) -> None:
        rows = parse_gviz_response(text)

        assert len(rows) == 1
        assert "BTC" in rows[0].values()

    def test_parse_gviz_rejects_garbage(self) -> None:
        with pytest.raises(DataSourceError):
            parse_gviz_response("not a gviz response")

    def test_sheet_signals_tagged_per_source(self) -> None:
        source = SheetSource(url="http://sheets.test/gviz", market_type="forex", provider="Hybrid")
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text=GVIZ_TEXT))
        client = SignalFeedClient(make_settings(sheets=SheetsConfig(sources=[source])), transport=transport)

        signals = asyncio.run(client.fetch_all_sheet_signals())

        assert [s.id for s in signals] == ["Hybrid-0", "Hybrid-1"]
        assert all(s.market_type == MarketType.FOREX for s in signals)
        assert all(s.source == SignalSource.SHEET for s in signals)
        assert signals[1].stop_loss is None

    def test_failing_sheet_skipped(self) -> None:
        sources = [
            SheetSource(url="http://sheets.test/ok", provider="Paradox"),
            SheetSource(url="http://sheets.test/broken", provider="Solaris"),
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/broken":
                return httpx.Response(500)
            return httpx.Response(200, text=GVIZ_TEXT)

        client = SignalFeedClient(
            make_settings(sheets=SheetsConfig(sources=sources)),
            transport=httpx.MockTransport(handler),
        )
        signals = asyncio.run(client.fetch_all_sheet_signals())

        assert {s.provider for s in signals} == {"Paradox"}


def make_result(signal_id: str, outcome: AnalysisOutcome, pnl: float | None = None) -> AnalysisResult:
    signal = TradeSignal(id=signal_id, asset="EURUSD", entry_price=1.085, stop_loss=1.08, take_profit_1=1.09)
    result = AnalysisResult.for_signal(signal, outcome)
    if pnl is not None:
        result.pnl, result.pnl_percentage = pnl, pnl / 1.085 * 100
    return result


SHEET_ROWS = [
    ["ID", "Pair", "Entry", "Take Profit", "PnL", "PnL %"],
    ["s1", "EURUSD", "1.085", "1.09"],
    ["s2", "EURUSD", "1.085", "1.09"],
]


class TestSheetUpdates:
    def test_outcome_column_appended_and_pnl_matched(self) -> None:
        results = [make_result("s2", AnalysisOutcome.TP1_HIT, pnl=0.005), make_result("gone", AnalysisOutcome.SL_HIT)]

        update = build_sheet_updates("Signals", SHEET_ROWS, results)

        assert update.data == [
            {"range": "'Signals'!G1", "values": [["Outcome"]]},
            {"range": "'Signals'!G3", "values": [["TP1 Hit"]]},
            {"range": "'Signals'!E3", "values": [[0.005]]},
            {"range": "'Signals'!F3", "values": [[0.46]]},
        ]
        assert update.matched == ["s2"]
        assert update.missing == ["gone"]

    def test_existing_result_column_reused(self) -> None:
        rows = [["Signal ID", "Pair", "Result"], ["s1", "EURUSD", ""]]

        update = build_sheet_updates("Paradox", rows, [make_result("s1", AnalysisOutcome.SL_HIT)])

        assert update.data == [{"range": "'Paradox'!C2", "values": [["SL Hit"]]}]

    def test_sheet_without_id_column_rejected(self) -> None:
        with pytest.raises(DataSourceError, match="no signal id column"):
            build_sheet_updates("Signals", [["Pair", "Entry"]], [make_result("s1", AnalysisOutcome.ACTIVE)])

    def test_empty_sheet_rejected(self) -> None:
        with pytest.raises(DataSourceError, match="empty"):
            build_sheet_updates("Signals", [], [])

    def test_column_letters(self) -> None:
        assert [column_letter(i) for i in (0, 25, 26, 27, 51, 52)] == ["A", "Z", "AA", "AB", "AZ", "BA"]


class TestSheetWriter:
    def make_writer(self, handler) -> SheetWriter:
        settings = make_settings(sheets=SheetsConfig(api_base="http://sheets.test/v4", access_token="tok"))
        return SheetWriter(settings, transport=httpx.MockTransport(handler))

    def test_reads_then_batch_updates(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if request.method == "GET":
                return httpx.Response(200, json={"range": "Signals!A1:F3", "values": SHEET_ROWS})
            return httpx.Response(200, json={"totalUpdatedCells": 2})

        writer = self.make_writer(handler)
        update = asyncio.run(writer.write_results("sheet-1", "Signals", [make_result("s1", AnalysisOutcome.SL_HIT)]))

        assert update.cells == 2
        get, post = requests
        assert get.headers["Authorization"] == "Bearer tok"
        assert get.url.path == "/v4/spreadsheets/sheet-1/values/'Signals'!A:Z"
        assert post.url.path == "/v4/spreadsheets/sheet-1/values:batchUpdate"
        body = json.loads(post.content)
        assert body["valueInputOption"] == "RAW"
        assert body["data"][1] == {"range": "'Signals'!G2", "values": [["SL Hit"]]}

    def test_http_error_raises(self) -> None:
        writer = self.make_writer(lambda request: httpx.Response(403))

        with pytest.raises(DataSourceError, match="HTTP 403"):
            asyncio.run(writer.write_results("sheet-1", "Signals", [make_result("s1", AnalysisOutcome.SL_HIT)]))

    def test_missing_token_raises(self) -> None:
        writer = SheetWriter(make_settings())

        with pytest.raises(MissingInputError, match="access token"):
            asyncio.run(writer.write_results("sheet-1", "Signals", []))
