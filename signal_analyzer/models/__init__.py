"""Pydantic models for bars and inbound payloads."""

from signal_analyzer.models.bars import HistoricalBar
from signal_analyzer.models.events import SignalWebhookPayload

__all__ = [
    "HistoricalBar",
    "SignalWebhookPayload",
]
