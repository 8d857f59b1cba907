"""On-disk store for uploaded historical price files."""

import re
import time
from datetime import datetime
from pathlib import Path

from signal_analyzer.history.csv_loader import bars_to_csv, parse_bars_csv
from signal_analyzer.models.bars import HistoricalBar
from signal_analyzer.utils import get_logger

logger = get_logger(__name__)

# Files are named {asset}_{epoch_millis}_{original_name}
_FILE_PATTERN = re.compile(r"^(?P<asset>.+?)_(?P<stamp>\d{13})_(?P<name>.+)$")
_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")

CacheKey = tuple[str, datetime | None, datetime | None]


class HistoricalDataStore:
    """Keeps one CSV file per upload and serves the newest one per asset."""

    def __init__(self, directory: Path | str = "data/historical"):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._cache: dict[CacheKey, list[HistoricalBar]] = {}

    def save_csv(self, asset: str, text: str, filename: str = "upload.csv") -> Path:
        """Validate and store an uploaded CSV. Raises HistoricalDataError if unparseable."""
        bars = parse_bars_csv(text)
        asset_key = self._asset_key(asset)

        path = self.directory / f"{asset_key}_{self._next_stamp(asset_key)}_{self._safe_name(filename)}"
        path.write_text(text, encoding="utf-8")
        self._invalidate(asset_key)

        logger.info("historical_data_saved", asset=asset_key, bars=len(bars), path=str(path))
        return path

    def save_bars(self, asset: str, bars: list[HistoricalBar], filename: str = "feed.csv") -> Path:
        """Store bars fetched from an endpoint in the same format as uploads."""
        return self.save_csv(asset, bars_to_csv(bars), filename)

    def available_assets(self) -> list[str]:
        assets = {m.group("asset") for m in self._matching_files()}
        return sorted(assets)

    def has_asset(self, asset: str) -> bool:
        asset_key = self._asset_key(asset)
        return any(m.group("asset") == asset_key for m in self._matching_files())

    def load(
        self,
        asset: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[HistoricalBar]:
        """Bars from the most recent file for an asset, or [] if none exists."""
        asset_key = self._asset_key(asset)
        key: CacheKey = (asset_key, start, end)
        if key in self._cache:
            return self._cache[key]

        candidates = [m for m in self._matching_files() if m.group("asset") == asset_key]
        if not candidates:
            logger.debug("historical_data_missing", asset=asset_key)
            return []

        latest = max(candidates, key=lambda m: int(m.group("stamp")))
        text = (self.directory / latest.string).read_text(encoding="utf-8")
        bars = parse_bars_csv(text, start=start, end=end)

        self._cache[key] = bars
        return bars

    def _matching_files(self) -> list[re.Match[str]]:
        matches = []
        for path in self.directory.iterdir():
            if not path.is_file():
                continue
            match = _FILE_PATTERN.match(path.name)
            if match:
                matches.append(match)
        return matches

    def _next_stamp(self, asset_key: str) -> int:
        """Millisecond stamp, bumped past any existing file so uploads stay ordered."""
        stamp = int(time.time() * 1000)
        existing = [
            int(m.group("stamp")) for m in self._matching_files() if m.group("asset") == asset_key
        ]
        if existing:
            stamp = max(stamp, max(existing) + 1)
        return stamp

    def _invalidate(self, asset_key: str) -> None:
        for key in [k for k in self._cache if k[0] == asset_key]:
            del self._cache[key]

    @staticmethod
    def _asset_key(asset: str) -> str:
        return _UNSAFE.sub("-", asset.strip().lower())

    @staticmethod
    def _safe_name(filename: str) -> str:
        return _UNSAFE.sub("-", Path(filename).name) or "upload.csv"
