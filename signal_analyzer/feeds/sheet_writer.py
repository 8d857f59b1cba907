"""Write analysis results back into the Google Sheet the signals came from."""

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from signal_analyzer.config import Settings
from signal_analyzer.errors import DataSourceError, MissingInputError
from signal_analyzer.signals.models import AnalysisResult, SignalSource
from signal_analyzer.signals.normalizer import FIELD_MAPS
from signal_analyzer.utils import get_logger

logger = get_logger(__name__)

OUTCOME_HEADER = "Outcome"

_ID_HEADERS = {name.lower() for name in FIELD_MAPS[SignalSource.SHEET].id}
_OUTCOME_TERMS = ("outcome", "result", "status")
_PNL_TERMS = ("pnl", "p&l", "p/l", "profit/loss")


@dataclass
class SheetUpdate:
    """Cell writes for one sheet, as Sheets API ValueRange bodies."""

    data: list[dict[str, Any]] = field(default_factory=list)
    matched: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    @property
    def cells(self) -> int:
        return len(self.data)


def column_letter(index: int) -> str:
    """Zero-based column index to A1 letters: 0 -> A, 26 -> AA."""
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(65 + remainder) + letters
    return letters


def quote_sheet_name(sheet_name: str) -> str:
    return "'" + sheet_name.replace("'", "''") + "'"


def _find_column(headers: list[str], terms: tuple[str, ...], percent: bool | None = None) -> int | None:
    for i, header in enumerate(headers):
        text = header.strip().lower()
        if percent is not None and ("%" in text) != percent:
            continue
        if any(term in text for term in terms):
            return i
    return None


def build_sheet_updates(
    sheet_name: str,
    rows: list[list[Any]],
    results: list[AnalysisResult],
) -> SheetUpdate:
    """Plan the writes for ``results`` against a sheet's current values.

    Rows are matched on the signal id column. The outcome lands in the first
    Outcome/Result/Status column, appended as ``Outcome`` when there is none.
    PnL and PnL % are written only where the sheet already has such columns.
    """
    if not rows:
        raise DataSourceError(f"sheet {sheet_name!r} is empty or has no headers")

    headers = [str(h) for h in rows[0]]
    id_col = next((i for i, h in enumerate(headers) if h.strip().lower() in _ID_HEADERS), None)
    if id_col is None:
        raise DataSourceError(f"sheet {sheet_name!r} has no signal id column")

    prefix = quote_sheet_name(sheet_name)
    update = SheetUpdate()

    outcome_col = _find_column(headers, _OUTCOME_TERMS)
    if outcome_col is None:
        outcome_col = len(headers)
        update.data.append({"range": f"{prefix}!{column_letter(outcome_col)}1", "values": [[OUTCOME_HEADER]]})

    pnl_col = _find_column(headers, _PNL_TERMS, percent=False)
    pnl_pct_col = _find_column(headers, _PNL_TERMS, percent=True)

    row_numbers: dict[str, int] = {}
    for number, row in enumerate(rows[1:], start=2):
        if len(row) > id_col and str(row[id_col]).strip():
            row_numbers.setdefault(str(row[id_col]).strip(), number)

    for result in results:
        number = row_numbers.get(result.signal_id)
        if number is None:
            update.missing.append(result.signal_id)
            continue

        update.matched.append(result.signal_id)
        update.data.append(
            {"range": f"{prefix}!{column_letter(outcome_col)}{number}", "values": [[result.outcome.value]]}
        )
        if pnl_col is not None and result.pnl is not None:
            update.data.append(
                {"range": f"{prefix}!{column_letter(pnl_col)}{number}", "values": [[round(result.pnl, 8)]]}
            )
        if pnl_pct_col is not None and result.pnl_percentage is not None:
            update.data.append(
                {
                    "range": f"{prefix}!{column_letter(pnl_pct_col)}{number}",
                    "values": [[round(result.pnl_percentage, 2)]],
                }
            )

    return update


class SheetWriter:
    """Google Sheets values API client for result write-back.

    Authenticates with an OAuth access token from settings. Failures
    surface as DataSourceError.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        config = settings.sheets
        self.api_base = config.api_base.rstrip("/")
        self.access_token = config.access_token
        self.timeout = config.timeout_seconds
        self.transport = transport

    async def write_results(
        self,
        spreadsheet_id: str,
        sheet_name: str,
        results: list[AnalysisResult],
    ) -> SheetUpdate:
        """Read the sheet, then write outcome and PnL cells in one batch."""
        if self.access_token is None:
            raise MissingInputError("Google Sheets access token is not configured.")
        if not spreadsheet_id or not sheet_name:
            raise MissingInputError("Please provide a spreadsheet id and sheet name.")

        base = f"{self.api_base}/spreadsheets/{quote(spreadsheet_id, safe='')}"
        value_range = quote(f"{quote_sheet_name(sheet_name)}!A:Z", safe="")

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            headers={"Authorization": f"Bearer {self.access_token.get_secret_value()}"},
        ) as client:
            response = await self._send(client, "GET", f"{base}/values/{value_range}")
            try:
                rows = response.json().get("values") or []
            except (ValueError, AttributeError) as e:
                raise DataSourceError("Sheets API returned an invalid values response") from e

            update = build_sheet_updates(sheet_name, rows, results)
            if update.data:
                await self._send(
                    client,
                    "POST",
                    f"{base}/values:batchUpdate",
                    json={"valueInputOption": "RAW", "data": update.data},
                )

        for signal_id in update.missing:
            logger.warning("sheet_signal_not_found", sheet=sheet_name, signal_id=signal_id)
        logger.info(
            "sheet_updated",
            sheet=sheet_name,
            rows=len(update.matched),
            cells=update.cells,
            missing=len(update.missing),
        )
        return update

    async def _send(self, client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.TimeoutException as e:
            logger.warning("sheets_timeout", url=url)
            raise DataSourceError("timed out talking to the Sheets API") from e
        except httpx.HTTPStatusError as e:
            logger.warning("sheets_http_error", url=url, status=e.response.status_code)
            raise DataSourceError(f"Sheets API returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.warning("sheets_request_error", url=url, error=str(e))
            raise DataSourceError(f"Sheets API request failed: {e}") from e
