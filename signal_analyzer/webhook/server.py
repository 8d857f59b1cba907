"""FastAPI service: signal webhooks, historical data, outcome analysis and export."""

import json
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import FastAPI, Query, Request, status
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

from signal_analyzer.config import Settings, get_settings
from signal_analyzer.errors import (
    DataSourceError,
    InsightError,
    MissingInputError,
    UnsupportedSignalShapeError,
)
from signal_analyzer.export import export_filename, export_results_csv
from signal_analyzer.feeds import SheetWriter
from signal_analyzer.history import HistoricalDataStore
from signal_analyzer.insights import InsightGenerator, build_insight_generator
from signal_analyzer.models.events import SignalWebhookPayload
from signal_analyzer.signals import (
    OutcomeTracker,
    SignalAnalyzer,
    SignalNormalizer,
    SignalSource,
    SignalStatus,
    SignalStorage,
    TradeSignal,
)
from signal_analyzer.signals.normalizer import resolve_field
from signal_analyzer.utils import get_logger, setup_logging
from signal_analyzer.webhook.idempotency import IdempotencyStore

logger = get_logger(__name__)


class AnalyzeRequest(BaseModel):
    asset: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


class SheetUpdateRequest(BaseModel):
    spreadsheet_id: str = ""
    sheet_name: str = ""
    asset: str | None = None


def dedup_key(signal: TradeSignal) -> str:
    """Content key: senders retry with the same payload but without stable ids.

    The signal time is only part of the key when the record carried one;
    otherwise it defaults to the arrival time and would differ per retry.
    """
    parts = [
        signal.source.value,
        signal.asset.lower(),
        signal.direction.value,
        repr(signal.entry_price),
    ]
    if resolve_field(signal.raw_record or {}, signal.source, "timestamp") is not None:
        parts.append(signal.timestamp.isoformat())
    return ":".join(parts)


class SignalWebhookHandler:
    """Normalizes, deduplicates and stores signals pushed to a webhook."""

    def __init__(
        self,
        settings: Settings,
        storage: SignalStorage,
        normalizer: SignalNormalizer,
    ):
        self.settings = settings
        self.storage = storage
        self.normalizer = normalizer
        self.seen_signals = IdempotencyStore(max_size=settings.webhook.dedup_size)

    def handle(self, payload: SignalWebhookPayload, source: SignalSource | None) -> dict[str, Any]:
        """Process a payload and return a summary of what happened to each record."""
        rejected = 0
        duplicates = 0
        accepted: list[TradeSignal] = []
        accepted_keys: set[str] = set()

        for index, record in enumerate(payload.signals):
            try:
                signal = self.normalizer.normalize(record, source, index=index)
            except UnsupportedSignalShapeError as e:
                logger.warning("webhook_record_unsupported", index=index, error=str(e))
                rejected += 1
                continue

            if signal is None:
                rejected += 1
                continue

            key = dedup_key(signal)
            if key in self.seen_signals or key in accepted_keys:
                duplicates += 1
                logger.debug("duplicate_signal", asset=signal.asset, signal_id=signal.id)
                continue

            accepted.append(signal)
            accepted_keys.add(key)

        if accepted:
            # Keys are only remembered once stored, so a failed save can be retried
            self.storage.save_many(accepted)
            for key in accepted_keys:
                self.seen_signals.check_and_add(key)
            for signal in accepted:
                logger.info(
                    "signal_received",
                    signal_id=signal.id,
                    asset=signal.asset,
                    direction=signal.direction.value,
                    entry=signal.entry_price,
                    source=signal.source.value,
                )

        return {
            "status": "ok",
            "received": len(payload.signals),
            "accepted": len(accepted),
            "rejected": rejected,
            "duplicates": duplicates,
        }


def create_app(
    settings: Settings | None = None,
    insights: InsightGenerator | None = None,
    sheet_writer: SheetWriter | None = None,
) -> FastAPI:
    """Create FastAPI application with dependency injection."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        setup_logging(log_level=settings.log_level, json_format=True)
        logger.info(
            "server_starting",
            db_path=settings.storage.db_path,
            historical_dir=settings.storage.historical_dir,
            insights=settings.insights.backend.value,
        )
        yield
        logger.info("server_stopping")

    app = FastAPI(
        title="Trade Signal Analyzer",
        version="0.1.0",
        lifespan=lifespan,
    )

    storage = SignalStorage(settings.storage.db_path)
    history = HistoricalDataStore(settings.storage.historical_dir)
    normalizer = SignalNormalizer(
        default_market_type=settings.analysis.default_market_type,
        default_provider=settings.analysis.default_provider,
    )
    analyzer = SignalAnalyzer(history, expiry_hours=settings.analysis.expiry_hours)
    tracker = OutcomeTracker(storage, expiry_hours=settings.analysis.expiry_hours)
    insight_generator = insights or build_insight_generator(settings)
    sheet_writer = sheet_writer or SheetWriter(settings)
    handler = SignalWebhookHandler(settings, storage, normalizer)

    def token_valid(request: Request, payload: SignalWebhookPayload) -> bool:
        if settings.webhook.secret is None:
            return True
        expected = settings.webhook.secret.get_secret_value()
        supplied = request.headers.get("X-Webhook-Token") or payload.token or ""
        return secrets.compare_digest(supplied.encode(), expected.encode())

    async def receive(request: Request, source: SignalSource | None) -> JSONResponse:
        try:
            raw_body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return error_response("Request body is not valid JSON", status.HTTP_400_BAD_REQUEST)

        try:
            if settings.log_level.upper() == "DEBUG":
                logger.debug("raw_webhook_payload", payload=raw_body)

            payload = SignalWebhookPayload.from_body(raw_body)
            if not token_valid(request, payload):
                logger.warning("webhook_token_rejected", path=request.url.path)
                return error_response("Invalid webhook token", status.HTTP_401_UNAUTHORIZED)

            result = handler.handle(payload, source)
            return JSONResponse(content=result, status_code=status.HTTP_200_OK)
        except UnsupportedSignalShapeError as e:
            return error_response(str(e), status.HTTP_400_BAD_REQUEST)
        except Exception as e:
            logger.exception("webhook_error", error=str(e))
            return error_response(str(e), status.HTTP_500_INTERNAL_SERVER_ERROR)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy", "insights": insight_generator.name}

    @app.post("/webhooks/tradingview")
    async def tradingview_webhook(request: Request) -> JSONResponse:
        return await receive(request, SignalSource.TRADINGVIEW)

    @app.post("/webhooks/signals")
    async def signals_webhook(request: Request) -> JSONResponse:
        # Internal senders, sheets relays and manual posts share this endpoint
        return await receive(request, None)

    @app.get("/signals")
    async def list_signals(
        asset: str | None = None,
        status_filter: SignalStatus | None = Query(default=None, alias="status"),
        limit: int = 1000,
    ) -> dict[str, Any]:
        signals = storage.list_all(status=status_filter, asset=asset, limit=limit)
        return {"signals": [s.model_dump(mode="json") for s in signals]}

    @app.get("/signals/stats")
    async def signal_stats() -> dict[str, Any]:
        return storage.get_stats()

    @app.post("/signals/expire")
    async def expire_signals() -> dict[str, int]:
        return {"expired": tracker.expire_old_signals()}

    @app.get("/historical")
    async def historical_assets() -> dict[str, list[str]]:
        return {"assets": history.available_assets()}

    @app.post("/historical/{asset}")
    async def upload_historical(asset: str, request: Request, filename: str = "upload.csv") -> JSONResponse:
        body = await request.body()
        if not body:
            return error_response("No file uploaded", status.HTTP_400_BAD_REQUEST)

        try:
            path = history.save_csv(asset, body.decode("utf-8-sig"), filename)
        except UnicodeDecodeError:
            return error_response("CSV must be UTF-8 text", status.HTTP_400_BAD_REQUEST)
        except DataSourceError as e:
            return error_response(f"Failed to upload historical data: {e}", status.HTTP_400_BAD_REQUEST)

        return JSONResponse(
            content={
                "success": True,
                "message": f"Historical data for {asset} uploaded successfully",
                "file": path.name,
                "bars": len(history.load(asset)),
            }
        )

    @app.get("/historical/{asset}", response_model=None)
    async def historical_bars(
        asset: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> JSONResponse | list[dict[str, Any]]:
        try:
            bars = history.load(asset, start=start, end=end)
        except DataSourceError as e:
            return error_response(f"Failed to parse historical data: {e}", status.HTTP_500_INTERNAL_SERVER_ERROR)

        if not bars and not history.has_asset(asset):
            return error_response(f"No historical data found for {asset}", status.HTTP_404_NOT_FOUND)
        return [b.model_dump(mode="json") for b in bars]

    @app.post("/analyze")
    async def analyze(body: AnalyzeRequest) -> JSONResponse:
        signals = storage.get_by_asset(body.asset) if body.asset else []
        try:
            results = analyzer.analyze(signals, body.asset, start=body.start_date, end=body.end_date)
        except MissingInputError as e:
            return error_response(str(e), status.HTTP_400_BAD_REQUEST)
        except DataSourceError as e:
            logger.warning("analysis_failed", asset=body.asset, error=str(e))
            return error_response(str(e), status.HTTP_422_UNPROCESSABLE_ENTITY)

        changed = tracker.apply_results(results)

        summary: dict[str, int] = {}
        for result in results:
            summary[result.outcome.value] = summary.get(result.outcome.value, 0) + 1

        return JSONResponse(
            content={
                "asset": body.asset,
                "results": [r.model_dump(mode="json") for r in results],
                "summary": summary,
                "status_changes": len(changed),
            }
        )

    @app.get("/analyze/export")
    async def export_analysis(asset: str | None = None) -> Response:
        results = storage.get_results(asset)
        if not results:
            return error_response("No analysis results to export", status.HTTP_404_NOT_FOUND)

        results.sort(key=lambda r: r.entry_time)
        return Response(
            content=export_results_csv(results),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{export_filename()}"'},
        )

    @app.post("/analyze/sheet")
    async def update_sheet(body: SheetUpdateRequest) -> JSONResponse:
        results = storage.get_results(body.asset)
        if not results:
            return error_response("No analysis results to write", status.HTTP_404_NOT_FOUND)

        try:
            update = await sheet_writer.write_results(body.spreadsheet_id, body.sheet_name, results)
        except MissingInputError as e:
            return error_response(str(e), status.HTTP_400_BAD_REQUEST)
        except DataSourceError as e:
            logger.warning("sheet_update_failed", sheet=body.sheet_name, error=str(e))
            return error_response(str(e), status.HTTP_502_BAD_GATEWAY)

        return JSONResponse(
            content={
                "status": "ok",
                "message": f"Updated {update.cells} cells in Google Sheet",
                "rows": len(update.matched),
                "missing": update.missing,
            }
        )

    @app.post("/insights/{signal_id}")
    async def signal_insight(signal_id: str) -> JSONResponse:
        signal = storage.get(signal_id)
        if signal is None:
            return error_response(f"Signal {signal_id} not found", status.HTTP_404_NOT_FOUND)

        try:
            text = await insight_generator.generate(signal)
        except InsightError as e:
            logger.warning("insight_failed", signal_id=signal_id, error=str(e))
            return error_response(str(e), status.HTTP_502_BAD_GATEWAY)

        return JSONResponse(
            content={"signal_id": signal_id, "generator": insight_generator.name, "insight": text}
        )

    return app


def error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(content={"status": "error", "message": message}, status_code=status_code)


# Default app instance for uvicorn
app = create_app()
