"""Historical OHLCV bar model."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from signal_analyzer.utils.timestamps import parse_timestamp


class HistoricalBar(BaseModel):
    """One OHLCV sample for a fixed interval of one instrument. Immutable."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> datetime:
        parsed = parse_timestamp(value)
        if parsed is None:
            raise ValueError(f"unparseable timestamp: {value!r}")
        return parsed

    @field_validator("volume", mode="before")
    @classmethod
    def _default_volume(cls, value: Any) -> Any:
        return 0.0 if value in (None, "") else value
