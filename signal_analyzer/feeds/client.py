"""Async client for the signal and historical-bar REST endpoints."""

import asyncio
from datetime import datetime
from typing import Any

import httpx
from pydantic import ValidationError

from signal_analyzer.config import Settings, SheetSource
from signal_analyzer.errors import DataSourceError, UnsupportedSignalShapeError
from signal_analyzer.feeds.sheets import parse_gviz_response
from signal_analyzer.models.bars import HistoricalBar
from signal_analyzer.signals.models import SignalSource, TradeSignal
from signal_analyzer.signals.normalizer import SignalNormalizer, unwrap_signal_payload
from signal_analyzer.utils import get_logger

logger = get_logger(__name__)


class SignalFeedClient:
    """Client for the signal webhook feeds, historical data and Google Sheets.

    Every failure (network, HTTP status, malformed body) surfaces as a
    DataSourceError. There are no retries.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.base_url = settings.feeds.base_url.rstrip("/")
        self.timeout = settings.feeds.timeout_seconds
        self.transport = transport
        self.normalizer = SignalNormalizer(
            default_market_type=settings.analysis.default_market_type,
            default_provider=settings.analysis.default_provider,
        )

    async def fetch_signals(self, path: str, source: SignalSource | None = None) -> list[TradeSignal]:
        """Fetch one signal endpoint and normalize whatever it returns."""
        data = await self._get_json(f"{self.base_url}{path}")
        try:
            records = unwrap_signal_payload(data)
        except UnsupportedSignalShapeError as e:
            raise DataSourceError(f"{path}: {e}") from e

        signals = self.normalizer.normalize_many(records, source)
        logger.info(
            "feed_signals_fetched",
            path=path,
            received=len(records),
            accepted=len(signals),
        )
        return signals

    async def fetch_tradingview_signals(self) -> list[TradeSignal]:
        return await self.fetch_signals(self.settings.feeds.tradingview_path, SignalSource.TRADINGVIEW)

    async def fetch_internal_signals(self) -> list[TradeSignal]:
        return await self.fetch_signals(self.settings.feeds.internal_path, SignalSource.INTERNAL)

    async def fetch_webhook_signals(self) -> list[TradeSignal]:
        """Fetch both webhook feeds concurrently, TradingView first in the result.

        A failing feed is logged and contributes nothing. Raises
        DataSourceError only when every feed fails.
        """
        names = ("tradingview", "internal")
        outcomes = await asyncio.gather(
            self.fetch_tradingview_signals(),
            self.fetch_internal_signals(),
            return_exceptions=True,
        )

        signals: list[TradeSignal] = []
        failures: list[str] = []
        for name, outcome in zip(names, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, DataSourceError):
                    raise outcome
                logger.warning("feed_request_failed", feed=name, error=str(outcome))
                failures.append(f"{name}: {outcome}")
                continue
            signals.extend(outcome)

        if len(failures) == len(names):
            raise DataSourceError("all signal feeds failed: " + "; ".join(failures))

        return signals

    async def fetch_historical_bars(
        self,
        asset: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[HistoricalBar]:
        """Fetch OHLCV bars for an asset, sorted by time."""
        params: dict[str, str] = {"asset": asset}
        if start:
            params["startDate"] = start.isoformat()
        if end:
            params["endDate"] = end.isoformat()

        data = await self._get_json(f"{self.base_url}{self.settings.feeds.historical_path}", params)
        if not isinstance(data, list):
            raise DataSourceError(f"historical data for {asset} is not a list")

        bars: list[HistoricalBar] = []
        skipped = 0
        for raw in data:
            try:
                bars.append(HistoricalBar.model_validate(raw))
            except ValidationError:
                skipped += 1

        bars.sort(key=lambda b: b.timestamp)
        logger.info("historical_bars_fetched", asset=asset, bars=len(bars), skipped=skipped)
        return bars

    async def fetch_sheet_signals(self, source: SheetSource) -> list[TradeSignal]:
        """Fetch one Google Sheets gviz export and normalize its rows."""
        text = await self._get_text(source.url)
        records = parse_gviz_response(text)
        signals = self.normalizer.normalize_many(
            records,
            SignalSource.SHEET,
            market_type=source.market_type,
            provider=source.provider,
        )
        logger.info(
            "sheet_signals_fetched",
            provider=source.provider,
            rows=len(records),
            accepted=len(signals),
        )
        return signals

    async def fetch_all_sheet_signals(self) -> list[TradeSignal]:
        """Fetch every configured sheet. Failed sheets are logged and skipped."""
        sources = self.settings.sheets.sources
        outcomes = await asyncio.gather(
            *(self.fetch_sheet_signals(s) for s in sources),
            return_exceptions=True,
        )

        signals: list[TradeSignal] = []
        for source, outcome in zip(sources, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, DataSourceError):
                    raise outcome
                logger.warning("sheet_request_failed", provider=source.provider, error=str(outcome))
                continue
            signals.extend(outcome)
        return signals

    async def _get_json(self, url: str, params: dict[str, str] | None = None) -> Any:
        response = await self._get(url, params)
        try:
            return response.json()
        except ValueError as e:
            raise DataSourceError(f"{url} returned invalid JSON") from e

    async def _get_text(self, url: str) -> str:
        response = await self._get(url)
        return response.text

    async def _get(self, url: str, params: dict[str, str] | None = None) -> httpx.Response:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
                return response
        except httpx.TimeoutException as e:
            logger.warning("feed_timeout", url=url)
            raise DataSourceError(f"timed out fetching {url}") from e
        except httpx.HTTPStatusError as e:
            logger.warning("feed_http_error", url=url, status=e.response.status_code)
            raise DataSourceError(f"{url} returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.warning("feed_request_error", url=url, error=str(e))
            raise DataSourceError(f"failed to fetch {url}: {e}") from e
