from signal_analyzer.utils.logging import get_logger, setup_logging
from signal_analyzer.utils.numbers import coerce_number
from signal_analyzer.utils.timestamps import ensure_utc, parse_timestamp, utc_now

__all__ = [
    "coerce_number",
    "ensure_utc",
    "get_logger",
    "parse_timestamp",
    "setup_logging",
    "utc_now",
]
