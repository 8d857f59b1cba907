"""Google Sheets gviz JSON export parsing."""

import json
import re
from typing import Any

from signal_analyzer.errors import DataSourceError

# gviz wraps the payload: /*O_o*/\ngoogle.visualization.Query.setResponse({...});
_GVIZ_WRAPPER = re.compile(r"setResponse\((?P<body>.*)\)\s*;?\s*$", re.DOTALL)
# gviz date cells: Date(2024,0,15,10,30,0) with a zero-based month
_GVIZ_DATE = re.compile(r"^Date\((?P<parts>[\d,\s]+)\)$")


def parse_gviz_response(text: str) -> list[dict[str, Any]]:
    """Turn a gviz response into one dict per row keyed by column label."""
    match = _GVIZ_WRAPPER.search(text)
    body = match.group("body") if match else text

    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise DataSourceError(f"invalid gviz response: {e.msg}") from e

    table = data.get("table") if isinstance(data, dict) else None
    if not isinstance(table, dict):
        raise DataSourceError("gviz response has no table")

    headers = column_labels(table)

    records: list[dict[str, Any]] = []
    for row in _as_list(table.get("rows")):
        if not isinstance(row, dict):
            continue
        record: dict[str, Any] = {}
        for header, cell in zip(headers, _as_list(row.get("c")), strict=False):
            record[header] = _cell_value(cell)
        if any(v is not None for v in record.values()):
            records.append(record)
    return records


def column_labels(table: dict[str, Any]) -> list[str]:
    """Header per column: label, else id, else its position."""
    labels = []
    for i, col in enumerate(_as_list(table.get("cols"))):
        col = col if isinstance(col, dict) else {}
        labels.append(str(col.get("label") or col.get("id") or f"col{i}"))
    return labels


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _cell_value(cell: Any) -> Any:
    if not isinstance(cell, dict):
        return None
    value = cell.get("v")
    if isinstance(value, str):
        date_match = _GVIZ_DATE.match(value)
        if date_match:
            return _gviz_date_to_iso(date_match.group("parts"))
    return value


def _gviz_date_to_iso(parts: str) -> str:
    numbers = [int(p) for p in parts.split(",") if p.strip()]
    numbers += [0] * (6 - len(numbers))
    year, month, day, hour, minute, second = numbers[:6]
    return f"{year:04d}-{month + 1:02d}-{day:02d}T{hour:02d}:{minute:02d}:{second:02d}+00:00"
