"""Explicit state store for one analyzer dashboard session.

Holds the loaded signals, the latest analysis results and a status message.
Every operation reports success or failure through ``status`` and, on
failure, keeps the previously loaded data.
"""

from dataclasses import dataclass
from datetime import datetime

from signal_analyzer.errors import DataSourceError, InsightError, MissingInputError
from signal_analyzer.export import export_results_csv
from signal_analyzer.feeds import SignalFeedClient
from signal_analyzer.insights import InsightGenerator
from signal_analyzer.signals.evaluator import SignalAnalyzer
from signal_analyzer.signals.models import AnalysisResult, TradeSignal
from signal_analyzer.signals.normalizer import SignalNormalizer
from signal_analyzer.utils import get_logger

logger = get_logger(__name__)


@dataclass
class StatusMessage:
    success: bool
    message: str


class DashboardSession:
    def __init__(
        self,
        analyzer: SignalAnalyzer,
        feed: SignalFeedClient | None = None,
        insights: InsightGenerator | None = None,
        normalizer: SignalNormalizer | None = None,
    ):
        self.analyzer = analyzer
        self.feed = feed
        self.insights = insights
        self.normalizer = normalizer or SignalNormalizer()

        self.signals: list[TradeSignal] = []
        self.results: list[AnalysisResult] = []
        self.status: StatusMessage | None = None

    async def load_signals(self) -> bool:
        """Replace the loaded signals with the webhook feeds' current contents."""
        if self.feed is None:
            return self._fail("No signal feed is configured.")

        try:
            signals = await self.feed.fetch_webhook_signals()
        except DataSourceError as e:
            logger.warning("signal_load_failed", error=str(e))
            return self._fail(f"Failed to load signals: {e}")

        self.signals = signals
        return self._ok(f"Loaded {len(signals)} signals.")

    def import_json(self, text: str) -> bool:
        """Replace the loaded signals with a pasted JSON array."""
        try:
            signals = self.normalizer.parse_json(text)
        except DataSourceError as e:
            logger.warning("signal_import_failed", error=str(e))
            return self._fail(f"Failed to import signals: {e}")

        self.signals = signals
        return self._ok(f"Imported {len(signals)} signals.")

    def load_bars_csv(self, asset: str, text: str, filename: str = "upload.csv") -> bool:
        if not asset:
            return self._fail("Asset name is required.")

        try:
            self.analyzer.history.save_csv(asset, text, filename)
        except DataSourceError as e:
            logger.warning("historical_upload_failed", asset=asset, error=str(e))
            return self._fail(f"Failed to load historical data: {e}")

        return self._ok(f"Historical data for {asset} uploaded.")

    def analyze(
        self,
        asset: str | None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> bool:
        try:
            results = self.analyzer.analyze(self.signals, asset, start=start, end=end)
        except MissingInputError as e:
            return self._fail(str(e))
        except DataSourceError as e:
            logger.warning("analysis_failed", asset=asset, error=str(e))
            return self._fail(f"Failed to analyze signals: {e}")

        self.results = results
        resolved = sum(1 for r in results if r.outcome.is_resolved)
        return self._ok(f"Analyzed {len(results)} signals for {asset}, {resolved} resolved.")

    def export_csv(self) -> str | None:
        """CSV of the latest results, or None when there is nothing to export."""
        if not self.results:
            self._fail("No analysis results to export.")
            return None

        text = export_results_csv(self.results)
        self._ok(f"Exported {len(self.results)} results.")
        return text

    async def insight_for(self, signal_id: str) -> str | None:
        if self.insights is None:
            self._fail("No insight generator is configured.")
            return None

        signal = next((s for s in self.signals if s.id == signal_id), None)
        if signal is None:
            self._fail(f"Signal {signal_id} is not loaded.")
            return None

        try:
            return await self.insights.generate(signal)
        except InsightError as e:
            logger.warning("insight_failed", signal_id=signal_id, error=str(e))
            self._fail(f"Failed to generate insight: {e}")
            return None

    def available_assets(self) -> list[str]:
        """Unique assets of the loaded signals in first-seen order."""
        return list(dict.fromkeys(s.asset for s in self.signals))

    def _ok(self, message: str) -> bool:
        self.status = StatusMessage(success=True, message=message)
        return True

    def _fail(self, message: str) -> bool:
        self.status = StatusMessage(success=False, message=message)
        return False
