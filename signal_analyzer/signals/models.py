"""Signal models for outcome analysis."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from signal_analyzer.utils.timestamps import parse_timestamp, utc_now


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"


class SignalStatus(str, Enum):
    """Signal lifecycle status: active -> completed | stopped | cancelled."""

    ACTIVE = "active"
    COMPLETED = "completed"  # A take-profit level was reached
    STOPPED = "stopped"  # Stop-loss was reached
    CANCELLED = "cancelled"  # Withdrawn or expired without a hit


class MarketType(str, Enum):
    CRYPTO = "crypto"
    FOREX = "forex"
    FUTURES = "futures"
    STOCKS = "stocks"


class SignalSource(str, Enum):
    """Known raw record shapes, one decoder each."""

    TRADINGVIEW = "tradingview"  # Capitalized fields: Symbol, "Entry Price", TP1...
    INTERNAL = "internal"  # Lowercase API fields: symbol, side, entryPrice...
    SHEET = "sheet"  # Spreadsheet export rows: Pair, Entry, SL, Target 1...
    CANONICAL = "canonical"  # Manual JSON matching TradeSignal itself


class AnalysisOutcome(str, Enum):
    SL_HIT = "SL Hit"
    TP1_HIT = "TP1 Hit"
    TP2_HIT = "TP2 Hit"
    TP3_HIT = "TP3 Hit"
    ACTIVE = "Active"
    EXPIRED = "Expired"
    NO_DATA = "No Data"

    @classmethod
    def for_take_profit(cls, level: int) -> "AnalysisOutcome":
        return (cls.TP1_HIT, cls.TP2_HIT, cls.TP3_HIT)[level - 1]

    @property
    def is_take_profit(self) -> bool:
        return self in (AnalysisOutcome.TP1_HIT, AnalysisOutcome.TP2_HIT, AnalysisOutcome.TP3_HIT)

    @property
    def is_resolved(self) -> bool:
        return self == AnalysisOutcome.SL_HIT or self.is_take_profit


class TradeSignal(BaseModel):
    """A proposed trade with entry, stop-loss and up to three take-profit levels."""

    id: str
    timestamp: datetime = Field(default_factory=utc_now)  # Signal open time
    asset: str = Field(min_length=1)
    direction: Direction = Direction.LONG

    entry_price: float = Field(gt=0)
    stop_loss: float | None = None
    take_profit_1: float | None = None
    take_profit_2: float | None = None
    take_profit_3: float | None = None

    status: SignalStatus = SignalStatus.ACTIVE
    market_type: MarketType = MarketType.CRYPTO
    provider: str = "Unknown"
    source: SignalSource = SignalSource.CANONICAL
    notes: str | None = None

    # Filled in by the outcome evaluator only
    pnl: float | None = None
    pnl_percentage: float | None = None

    # Raw data for debugging
    raw_record: dict[str, Any] | None = Field(default=None, exclude=True)

    @field_validator("asset")
    @classmethod
    def _strip_asset(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("asset must not be empty")
        return value

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> datetime:
        parsed = parse_timestamp(value)
        if parsed is None:
            raise ValueError(f"unparseable timestamp: {value!r}")
        return parsed

    @property
    def take_profits(self) -> list[float]:
        """Take-profit levels present on the signal, TP1 first.

        A missing level ends the ladder: TP3 without TP2 is ignored.
        """
        levels: list[float] = []
        for level in (self.take_profit_1, self.take_profit_2, self.take_profit_3):
            if not level:
                break
            levels.append(level)
        return levels

    def apply_result(self, result: "AnalysisResult") -> None:
        """Copy an evaluated outcome onto the signal's status and PNL fields."""
        if result.outcome == AnalysisOutcome.SL_HIT:
            self.status = SignalStatus.STOPPED
        elif result.outcome.is_take_profit:
            self.status = SignalStatus.COMPLETED
        elif result.outcome == AnalysisOutcome.EXPIRED:
            self.status = SignalStatus.CANCELLED

        if result.pnl is not None:
            self.pnl = result.pnl
            self.pnl_percentage = result.pnl_percentage


class AnalysisResult(BaseModel):
    """Outcome of evaluating one signal against historical bars."""

    signal_id: str
    asset: str
    direction: Direction
    entry_price: float
    entry_time: datetime
    stop_loss: float | None = None
    take_profit_1: float | None = None
    take_profit_2: float | None = None
    take_profit_3: float | None = None

    outcome: AnalysisOutcome
    hit_index: int | None = None  # Index into the scanned bars
    hit_time: datetime | None = None
    exit_price: float | None = None
    pnl: float | None = None
    pnl_percentage: float | None = None

    @classmethod
    def for_signal(cls, signal: TradeSignal, outcome: AnalysisOutcome) -> "AnalysisResult":
        return cls(
            signal_id=signal.id,
            asset=signal.asset,
            direction=signal.direction,
            entry_price=signal.entry_price,
            entry_time=signal.timestamp,
            stop_loss=signal.stop_loss,
            take_profit_1=signal.take_profit_1,
            take_profit_2=signal.take_profit_2,
            take_profit_3=signal.take_profit_3,
            outcome=outcome,
        )
