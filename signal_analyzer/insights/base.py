"""Insight generator interface."""

from abc import ABC, abstractmethod

from signal_analyzer.signals.models import TradeSignal


class InsightGenerator(ABC):
    """Produces a short natural-language commentary for a signal."""

    name: str = "base"

    @abstractmethod
    async def generate(self, signal: TradeSignal) -> str:
        """Return insight text for the signal.

        Raises InsightError if the backend fails.
        """
        ...
