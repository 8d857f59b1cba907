"""Decode raw signal records from heterogeneous sources into TradeSignal."""

import json
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from signal_analyzer.errors import SignalImportError, UnsupportedSignalShapeError
from signal_analyzer.signals.models import (
    Direction,
    MarketType,
    SignalSource,
    SignalStatus,
    TradeSignal,
)
from signal_analyzer.utils import coerce_number, get_logger, parse_timestamp, utc_now

logger = get_logger(__name__)


@dataclass(frozen=True)
class FieldMap:
    """Ordered candidate source keys for each canonical field of one shape."""

    id: tuple[str, ...]
    timestamp: tuple[str, ...]
    asset: tuple[str, ...]
    direction: tuple[str, ...]
    entry_price: tuple[str, ...]
    stop_loss: tuple[str, ...]
    take_profit_1: tuple[str, ...]
    take_profit_2: tuple[str, ...]
    take_profit_3: tuple[str, ...]
    status: tuple[str, ...]
    market_type: tuple[str, ...]
    provider: tuple[str, ...]
    notes: tuple[str, ...]


FIELD_MAPS: dict[SignalSource, FieldMap] = {
    SignalSource.TRADINGVIEW: FieldMap(
        id=("id", "ID", "Signal ID"),
        timestamp=("Date", "Timestamp", "Time"),
        asset=("Symbol", "Asset", "Ticker", "Pair"),
        direction=("Direction", "Side", "Action"),
        entry_price=("Entry Price", "Entry", "Price"),
        stop_loss=("Stop Loss", "SL"),
        take_profit_1=("Take Profit", "TP1", "Take Profit 1"),
        take_profit_2=("TP2", "Take Profit 2"),
        take_profit_3=("TP3", "Take Profit 3"),
        status=("Status",),
        market_type=("marketType", "Market Type", "Market"),
        provider=("Provider", "Source"),
        notes=("Notes", "Comment"),
    ),
    SignalSource.INTERNAL: FieldMap(
        id=("id", "signalId"),
        timestamp=("timestamp", "generatedAt", "createdAt", "date"),
        asset=("symbol", "asset", "ticker", "instrument"),
        direction=("direction", "side", "type", "action"),
        entry_price=("entryPrice", "entry_price", "entry", "price"),
        stop_loss=("stopLoss", "stop_loss", "sl"),
        take_profit_1=("takeProfit1", "takeProfit", "take_profit", "tp1"),
        take_profit_2=("takeProfit2", "tp2"),
        take_profit_3=("takeProfit3", "tp3"),
        status=("status",),
        market_type=("marketType", "market_type"),
        provider=("provider", "source"),
        notes=("notes",),
    ),
    SignalSource.SHEET: FieldMap(
        id=("ID", "Signal ID"),
        timestamp=("Timestamp", "Date"),
        asset=("Symbol", "Asset", "Pair"),
        direction=("Direction", "Side", "Position"),
        entry_price=("Entry Price", "Entry"),
        stop_loss=("Stop Loss", "SL"),
        take_profit_1=("Take Profit", "TP1", "Target 1"),
        take_profit_2=("TP2", "Target 2"),
        take_profit_3=("TP3", "Target 3"),
        status=("Status", "Result"),
        market_type=("Market Type",),
        provider=("Provider",),
        notes=("Notes", "Comments"),
    ),
    SignalSource.CANONICAL: FieldMap(
        id=("id",),
        timestamp=("timestamp",),
        asset=("asset",),
        direction=("direction",),
        entry_price=("entryPrice", "entry_price"),
        stop_loss=("stopLoss", "stop_loss"),
        take_profit_1=("takeProfit1", "take_profit_1"),
        take_profit_2=("takeProfit2", "take_profit_2"),
        take_profit_3=("takeProfit3", "take_profit_3"),
        status=("status",),
        market_type=("marketType", "market_type"),
        provider=("provider",),
        notes=("notes",),
    ),
}

# Keys that identify a shape when no source tag is given
_CANONICAL_MARKERS = {"entryPrice", "entry_price"}
_TRADINGVIEW_MARKERS = {"Symbol", "Entry Price", "Stop Loss", "Take Profit", "TP1", "Direction"}
_INTERNAL_MARKERS = {"symbol", "entryPrice", "entry", "side", "stopLoss", "takeProfit"}
# Hand-written alerts in any casing, decoded with the TradingView map
_LOOSE_MARKERS = {"symbol", "ticker", "pair", "entry", "entry price", "stop loss", "take profit", "tp1", "direction"}

_LONG_TERMS = ("long", "buy", "bullish", "calls", "call")
_STOPPED_TERMS = ("stop", "sl hit", "loss")
_CANCELLED_TERMS = ("cancel", "invalid", "void")
_COMPLETED_TERMS = ("complete", "closed", "hit")

_MARKET_TYPES = {
    "crypto": MarketType.CRYPTO,
    "forex": MarketType.FOREX,
    "fx": MarketType.FOREX,
    "futures": MarketType.FUTURES,
    "future": MarketType.FUTURES,
    "stocks": MarketType.STOCKS,
    "stock": MarketType.STOCKS,
    "equity": MarketType.STOCKS,
}


def detect_source(record: Mapping[str, Any]) -> SignalSource:
    """Identify the shape of a raw record from its keys.

    Spreadsheet rows are never auto-detected; the sheets client tags them.
    """
    keys = set(record)

    if "asset" in keys and keys & _CANONICAL_MARKERS:
        return SignalSource.CANONICAL
    if keys & _TRADINGVIEW_MARKERS:
        return SignalSource.TRADINGVIEW
    if keys & _INTERNAL_MARKERS:
        return SignalSource.INTERNAL
    if {str(key).strip().lower() for key in keys} & _LOOSE_MARKERS:
        return SignalSource.TRADINGVIEW

    raise UnsupportedSignalShapeError(f"unrecognised signal fields: {sorted(keys)[:10]}")


def unwrap_signal_payload(data: Any) -> list[dict[str, Any]]:
    """Accept a bare array or a ``{"signals": [...]}`` envelope."""
    if isinstance(data, list):
        records = data
    elif isinstance(data, dict) and isinstance(data.get("signals"), list):
        records = data["signals"]
    else:
        raise UnsupportedSignalShapeError(
            f"expected an array or a signals envelope, got {type(data).__name__}"
        )
    return [r for r in records if isinstance(r, dict)]


class SignalNormalizer:
    """Decodes raw records into canonical TradeSignal objects.

    Each source shape has its own field map. A record is rejected (None) when
    it has no asset, a non-positive entry price or an unparseable timestamp.
    """

    def __init__(
        self,
        default_market_type: MarketType | str = MarketType.CRYPTO,
        default_provider: str = "Unknown",
    ):
        self.default_market_type = MarketType(default_market_type)
        self.default_provider = default_provider

    def normalize(
        self,
        record: Mapping[str, Any],
        source: SignalSource | None = None,
        *,
        index: int = 0,
        market_type: MarketType | str | None = None,
        provider: str | None = None,
    ) -> TradeSignal | None:
        """Decode one record. Raises UnsupportedSignalShapeError if the shape is unknown."""
        source = source or detect_source(record)
        fields = FIELD_MAPS[source]

        provider = _as_text(_resolve(record, fields.provider)) or provider or self.default_provider
        asset = _as_text(_resolve(record, fields.asset))
        entry_price = coerce_number(_resolve(record, fields.entry_price))

        if not asset or entry_price is None or entry_price <= 0:
            logger.debug(
                "signal_rejected",
                source=source.value,
                asset=asset,
                entry_price=entry_price,
            )
            return None

        raw_time = _resolve(record, fields.timestamp)
        timestamp = parse_timestamp(raw_time) if raw_time is not None else utc_now()
        if timestamp is None:
            logger.debug("signal_rejected", source=source.value, asset=asset, timestamp=raw_time)
            return None

        signal_id = _as_text(_resolve(record, fields.id))
        if not signal_id:
            signal_id = f"{provider}-{index}" if source == SignalSource.SHEET else str(uuid.uuid4())

        try:
            return TradeSignal(
                id=signal_id,
                timestamp=timestamp,
                asset=asset,
                direction=parse_direction(_resolve(record, fields.direction)),
                entry_price=entry_price,
                stop_loss=_positive(_resolve(record, fields.stop_loss)),
                take_profit_1=_positive(_resolve(record, fields.take_profit_1)),
                take_profit_2=_positive(_resolve(record, fields.take_profit_2)),
                take_profit_3=_positive(_resolve(record, fields.take_profit_3)),
                status=parse_status(_resolve(record, fields.status)),
                market_type=self._market_type(_resolve(record, fields.market_type), market_type),
                provider=provider,
                source=source,
                notes=_as_text(_resolve(record, fields.notes)),
                raw_record=dict(record),
            )
        except ValidationError as e:
            logger.debug("signal_rejected", source=source.value, asset=asset, error=str(e))
            return None

    def normalize_many(
        self,
        records: Iterable[Mapping[str, Any]],
        source: SignalSource | None = None,
        *,
        market_type: MarketType | str | None = None,
        provider: str | None = None,
    ) -> list[TradeSignal]:
        """Decode a batch. Unsupported or rejected records are dropped, never raised."""
        signals: list[TradeSignal] = []
        rejected = 0
        unsupported = 0

        for index, record in enumerate(records):
            try:
                signal = self.normalize(
                    record,
                    source,
                    index=index,
                    market_type=market_type,
                    provider=provider,
                )
            except UnsupportedSignalShapeError as e:
                unsupported += 1
                logger.warning("signal_shape_unsupported", index=index, error=str(e))
                continue

            if signal is None:
                rejected += 1
                continue
            signals.append(signal)

        logger.info(
            "signals_normalized",
            source=source.value if source else "auto",
            accepted=len(signals),
            rejected=rejected,
            unsupported=unsupported,
        )
        return signals

    def parse_json(self, text: str) -> list[TradeSignal]:
        """Parse a manual JSON paste: an array of signal objects."""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise SignalImportError(f"invalid JSON: {e.msg}") from e

        if not isinstance(data, list):
            raise SignalImportError("expected a JSON array of signals")

        return self.normalize_many(r for r in data if isinstance(r, dict))

    def _market_type(self, raw: Any, override: MarketType | str | None) -> MarketType:
        text = _as_text(raw)
        if text and text.lower() in _MARKET_TYPES:
            return _MARKET_TYPES[text.lower()]
        if override:
            return MarketType(override)
        return self.default_market_type


def parse_direction(value: Any) -> Direction:
    """Long for long/buy/bullish/call wording or a missing value, short otherwise."""
    text = _as_text(value)
    if not text:
        return Direction.LONG
    normalized = text.lower()
    if any(term in normalized for term in _LONG_TERMS):
        return Direction.LONG
    return Direction.SHORT


def parse_status(value: Any) -> SignalStatus:
    """Map free-form status wording onto the lifecycle states."""
    text = _as_text(value)
    if not text:
        return SignalStatus.ACTIVE

    normalized = text.lower()
    # Stop wording first: "SL hit" must not read as a take-profit hit
    if any(term in normalized for term in _STOPPED_TERMS):
        return SignalStatus.STOPPED
    if any(term in normalized for term in _CANCELLED_TERMS):
        return SignalStatus.CANCELLED
    if any(term in normalized for term in _COMPLETED_TERMS):
        return SignalStatus.COMPLETED
    return SignalStatus.ACTIVE


def resolve_field(record: Mapping[str, Any], source: SignalSource, field: str) -> Any:
    """Raw value of one canonical field as the record carried it, or None."""
    return _resolve(record, getattr(FIELD_MAPS[source], field))


def _resolve(record: Mapping[str, Any], candidates: tuple[str, ...]) -> Any:
    """First non-empty value among candidate keys: exact match, then case-insensitive."""
    for key in candidates:
        value = record.get(key)
        if not _is_empty(value):
            return value

    lowered: dict[str, Any] = {}
    for key, value in record.items():
        lowered.setdefault(str(key).lower(), value)

    for key in candidates:
        value = lowered.get(key.lower())
        if not _is_empty(value):
            return value

    return None


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_text(value: Any) -> str | None:
    if _is_empty(value):
        return None
    return str(value).strip()


def _positive(value: Any) -> float | None:
    number = coerce_number(value)
    return number if number is not None and number > 0 else None


def normalize_record(
    record: Mapping[str, Any],
    source: SignalSource | None = None,
    *,
    index: int = 0,
) -> TradeSignal | None:
    return SignalNormalizer().normalize(record, source, index=index)


def normalize_records(
    records: Iterable[Mapping[str, Any]],
    source: SignalSource | None = None,
) -> list[TradeSignal]:
    return SignalNormalizer().normalize_many(records, source)


def parse_signal_json(text: str) -> list[TradeSignal]:
    return SignalNormalizer().parse_json(text)
