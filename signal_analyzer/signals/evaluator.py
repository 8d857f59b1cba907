"""Signal outcome evaluator - first touch of stop-loss vs. take-profit over OHLC bars.

Bars only carry open/high/low/close, so the order of prices inside a bar is
unknown. When one bar touches both the stop-loss and a take-profit level the
stop-loss wins. This is a fixed, conservative approximation of OHLC-level
backtesting and results should be read with it in mind.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime, timedelta

import structlog

from signal_analyzer.errors import MissingInputError
from signal_analyzer.history.store import HistoricalDataStore
from signal_analyzer.models.bars import HistoricalBar
from signal_analyzer.signals.models import (
    AnalysisOutcome,
    AnalysisResult,
    Direction,
    SignalStatus,
    TradeSignal,
)
from signal_analyzer.utils.timestamps import ensure_utc

logger = structlog.get_logger()


def compute_pnl(direction: Direction, entry_price: float, exit_price: float) -> tuple[float, float]:
    """Return (pnl, pnl_percentage), oriented so that a profit is positive."""
    if direction == Direction.LONG:
        pnl = exit_price - entry_price
    else:
        pnl = entry_price - exit_price
    return pnl, pnl / entry_price * 100


def evaluate_signal(
    signal: TradeSignal,
    bars: Sequence[HistoricalBar],
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    expiry: timedelta | None = None,
    as_of: datetime | None = None,
) -> AnalysisResult:
    """Scan bars forward from the signal's open time and classify the outcome.

    ``bars`` must already be in time order. ``start``/``end`` bound the scan
    window. When nothing is hit, ``expiry`` decides between Active and Expired,
    measured up to ``as_of`` or, by default, the last scanned bar.
    """
    opened_at = signal.timestamp
    start = ensure_utc(start) if start else None
    end = ensure_utc(end) if end else None

    window = [
        bar
        for bar in bars
        if bar.timestamp >= opened_at
        and (start is None or bar.timestamp >= start)
        and (end is None or bar.timestamp <= end)
    ]

    if not window:
        return AnalysisResult.for_signal(signal, AnalysisOutcome.NO_DATA)

    for index, bar in enumerate(window):
        hit = _check_bar(signal, bar)
        if hit is None:
            continue

        outcome, exit_price = hit
        pnl, pnl_pct = compute_pnl(signal.direction, signal.entry_price, exit_price)
        result = AnalysisResult.for_signal(signal, outcome)
        result.hit_index = index
        result.hit_time = bar.timestamp
        result.exit_price = exit_price
        result.pnl = pnl
        result.pnl_percentage = pnl_pct
        return result

    reference = ensure_utc(as_of) if as_of else window[-1].timestamp
    if expiry is not None and reference - opened_at >= expiry:
        return AnalysisResult.for_signal(signal, AnalysisOutcome.EXPIRED)

    if signal.status == SignalStatus.ACTIVE:
        return AnalysisResult.for_signal(signal, AnalysisOutcome.ACTIVE)

    # Closed elsewhere but never reached a level in the data we have
    return AnalysisResult.for_signal(signal, AnalysisOutcome.EXPIRED)


def _check_bar(signal: TradeSignal, bar: HistoricalBar) -> tuple[AnalysisOutcome, float] | None:
    """Return (outcome, exit price) if this bar crosses a threshold.

    Stop-loss is checked first so it wins a same-bar tie.
    """
    if signal.direction == Direction.LONG:
        if signal.stop_loss is not None and bar.low <= signal.stop_loss:
            return AnalysisOutcome.SL_HIT, signal.stop_loss

        def reached(level: float) -> bool:
            return bar.high >= level

    else:
        if signal.stop_loss is not None and bar.high >= signal.stop_loss:
            return AnalysisOutcome.SL_HIT, signal.stop_loss

        def reached(level: float) -> bool:
            return bar.low <= level

    # Highest consecutive take-profit level reached inside this bar
    best: tuple[AnalysisOutcome, float] | None = None
    for number, level in enumerate(signal.take_profits, start=1):
        if not reached(level):
            break
        best = AnalysisOutcome.for_take_profit(number), level

    return best


def analyze_signals(
    signals: Iterable[TradeSignal],
    bars: Iterable[HistoricalBar],
    asset: str,
    *,
    start: datetime | None = None,
    end: datetime | None = None,
    expiry: timedelta | None = None,
    as_of: datetime | None = None,
) -> list[AnalysisResult]:
    """Evaluate every signal for ``asset`` (case-insensitive) against one bar series."""
    ordered = sorted(bars, key=lambda b: b.timestamp)
    wanted = asset.lower()
    matching = [s for s in signals if s.asset.lower() == wanted]

    if not ordered:
        logger.warning("no_historical_data", asset=asset, signals=len(matching))
        return [AnalysisResult.for_signal(s, AnalysisOutcome.NO_DATA) for s in matching]

    results = [
        evaluate_signal(s, ordered, start=start, end=end, expiry=expiry, as_of=as_of)
        for s in matching
    ]

    logger.info(
        "signals_analyzed",
        asset=asset,
        signals=len(results),
        bars=len(ordered),
        resolved=sum(1 for r in results if r.outcome.is_resolved),
    )
    return results


class SignalAnalyzer:
    """Runs outcome analysis for one asset using a historical data store."""

    def __init__(
        self,
        history: HistoricalDataStore,
        expiry_hours: float | None = None,
    ):
        self.history = history
        self.expiry = timedelta(hours=expiry_hours) if expiry_hours else None

    def analyze(
        self,
        signals: Sequence[TradeSignal],
        asset: str | None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[AnalysisResult]:
        """Analyze signals for an asset.

        Raises MissingInputError before evaluating anything when no asset is
        selected, no signal matches it, or no historical data exists for it.
        """
        if not asset:
            raise MissingInputError("Please select an asset to analyze.")

        matching = [s for s in signals if s.asset.lower() == asset.lower()]
        if not matching:
            raise MissingInputError(f"No signals found for asset {asset}.")

        bars = self.history.load(asset, start=start, end=end)
        if not bars:
            raise MissingInputError(f"No historical data available for {asset}.")

        return analyze_signals(
            matching,
            bars,
            asset,
            start=start,
            end=end,
            expiry=self.expiry,
        )
