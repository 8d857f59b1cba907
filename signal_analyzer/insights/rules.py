"""Template-based insights computed from the signal's own levels."""

from signal_analyzer.insights.base import InsightGenerator
from signal_analyzer.signals.models import Direction, MarketType, TradeSignal

_LONG_NOTES = {
    MarketType.CRYPTO: "Overall market sentiment and BTC dominance should be checked before entry.",
    MarketType.FOREX: "Check the economic calendar for market-moving releases.",
}
_SHORT_NOTES = {
    MarketType.CRYPTO: "Confirm bearish momentum with volume and moving averages before entry.",
    MarketType.FOREX: "Confirm trend direction on multiple timeframes before execution.",
}


def risk_reward_ratio(signal: TradeSignal) -> float | None:
    """Reward to TP1 divided by risk to the stop-loss, or None if either is missing."""
    if signal.stop_loss is None or signal.take_profit_1 is None:
        return None
    risk = abs(signal.entry_price - signal.stop_loss)
    if risk == 0:
        return None
    return abs(signal.take_profit_1 - signal.entry_price) / risk


class RuleBasedInsightGenerator(InsightGenerator):
    """Deterministic commentary: risk/reward profile plus a market-type note."""

    name = "rule"

    async def generate(self, signal: TradeSignal) -> str:
        return self.render(signal)

    def render(self, signal: TradeSignal) -> str:
        side = "LONG" if signal.direction == Direction.LONG else "SHORT"
        header = f"{signal.provider} signal analysis for {signal.asset}:"
        parts: list[str] = []

        ratio = risk_reward_ratio(signal)
        if ratio is None:
            parts.append(f"This {side} position has no complete stop-loss/TP1 pair to rate.")
        else:
            parts.append(f"This {side} position has a risk-reward ratio of {ratio:.2f}:1.")
            if ratio > 2:
                parts.append("Strong risk-reward profile.")
            elif ratio > 1:
                parts.append("Acceptable risk-reward profile.")
            else:
                parts.append("Caution: risk-reward ratio is below ideal levels.")

        notes = _LONG_NOTES if signal.direction == Direction.LONG else _SHORT_NOTES
        default = (
            "Monitor overall market liquidity and volatility."
            if signal.direction == Direction.LONG
            else "Check positioning reports for crowded trades."
        )
        parts.append(notes.get(signal.market_type, default))

        return header + "\n\n" + " ".join(parts)
