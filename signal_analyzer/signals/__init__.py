"""Signals module: canonical models, normalization, outcome evaluation and storage."""

from signal_analyzer.signals.evaluator import SignalAnalyzer, analyze_signals, evaluate_signal
from signal_analyzer.signals.models import (
    AnalysisOutcome,
    AnalysisResult,
    Direction,
    MarketType,
    SignalSource,
    SignalStatus,
    TradeSignal,
)
from signal_analyzer.signals.normalizer import SignalNormalizer, detect_source
from signal_analyzer.signals.storage import SignalStorage
from signal_analyzer.signals.tracker import OutcomeTracker

__all__ = [
    "AnalysisOutcome",
    "AnalysisResult",
    "Direction",
    "MarketType",
    "OutcomeTracker",
    "SignalAnalyzer",
    "SignalNormalizer",
    "SignalSource",
    "SignalStatus",
    "SignalStorage",
    "TradeSignal",
    "analyze_signals",
    "detect_source",
    "evaluate_signal",
]
